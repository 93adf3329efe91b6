from __future__ import annotations

import math

import pytest

from satchannel.rf.cir import compute_cir
from satchannel.rf.link_budget import compute_link_budget
from satchannel.rf.models import FLAT_CHANNEL_COHERENCE_MHZ, Environment, LinkParams, TapKind


def _labels(cir):
    return [t.label for t in cir.taps]


def test_suburban_scenario():
    cir = compute_cir(
        LinkParams(
            frequency_ghz=12.0,
            elevation_deg=45.0,
            slant_range_km=35786.0,
            environment=Environment.SUBURBAN,
            tec_tecu=50.0,
            rain_rate_mm_h=10.0,
        )
    )
    assert len(cir.taps) >= 1
    assert cir.taps[0].label == TapKind.LOS.value
    assert cir.taps[0].excess_delay_ns == 0.0
    assert cir.rms_delay_spread_ns >= 0.0
    assert TapKind.VEGETATION_SCATTER_NEAR.value in _labels(cir)
    assert TapKind.VEGETATION_SCATTER_FAR.value in _labels(cir)


def test_rural_has_no_scatter_or_reflection():
    for elev in (5.0, 30.0, 90.0):
        for tec in (0.0, 50.0):
            cir = compute_cir(LinkParams(environment=Environment.RURAL, elevation_deg=elev, tec_tecu=tec))
            assert set(_labels(cir)) <= {TapKind.LOS.value, TapKind.IONOSPHERIC.value}


def test_maritime_reflection_tap():
    cir = compute_cir(LinkParams(environment=Environment.MARITIME, elevation_deg=90.0))
    refl = [t for t in cir.taps if t.label == TapKind.SEA_REFLECTION.value]
    assert len(refl) == 1
    tap = refl[0]
    los = cir.taps[0]
    assert tap.phase_rad == pytest.approx(math.pi, abs=0.01)
    assert tap.amplitude_linear == pytest.approx(0.85 * los.amplitude_linear)
    assert tap.amplitude_db == pytest.approx(los.amplitude_db + 20.0 * math.log10(0.85))
    # 2 * 15 m at zenith is 100 ns
    assert tap.excess_delay_ns == pytest.approx(100.07, abs=0.1)


def test_los_delay():
    geo = compute_cir(LinkParams(slant_range_km=35786.0))
    assert geo.taps[0].delay_ns / 1e6 == pytest.approx(119.4, abs=0.1)
    leo = compute_cir(LinkParams(slant_range_km=550.0))
    assert leo.taps[0].delay_ns / 1e6 == pytest.approx(1.835, abs=0.001)


def test_los_amplitude_anchored_on_budget():
    params = LinkParams(frequency_ghz=20.0, rain_rate_mm_h=10.0, elevation_deg=30.0)
    budget = compute_link_budget(params)
    cir = compute_cir(params)
    assert cir.taps[0].amplitude_db == pytest.approx(-(budget.absolute_fspl_db + budget.total_atmospheric_loss_db))
    assert cir.absolute_fspl_db == budget.absolute_fspl_db
    assert cir.total_atmospheric_loss_db == budget.total_atmospheric_loss_db


def test_precomputed_budget_gives_same_result():
    params = LinkParams(environment=Environment.URBAN, elevation_deg=20.0, sim_time_s=4.0)
    assert compute_cir(params, compute_link_budget(params)) == compute_cir(params)


def test_urban_scatter_power_follows_elevation():
    high = compute_cir(LinkParams(environment=Environment.URBAN, elevation_deg=90.0))
    los_db = high.taps[0].amplitude_db
    near = next(t for t in high.taps if t.label == TapKind.BUILDING_SCATTER_NEAR.value)
    far = next(t for t in high.taps if t.label == TapKind.BUILDING_SCATTER_FAR.value)
    # elevation factor floors at 0.1 overhead
    assert near.amplitude_db == pytest.approx(los_db - 1.5)
    assert far.amplitude_db == pytest.approx(los_db - 2.2)
    assert near.excess_delay_ns == 100.0
    assert far.excess_delay_ns == 300.0

    low = compute_cir(LinkParams(environment=Environment.URBAN, elevation_deg=0.0))
    near_low = next(t for t in low.taps if t.label == TapKind.BUILDING_SCATTER_NEAR.value)
    assert near_low.amplitude_db == pytest.approx(low.taps[0].amplitude_db - 15.0)


def test_scatter_offset_shifts_scatter_taps_only():
    base = compute_cir(LinkParams(environment=Environment.URBAN, elevation_deg=40.0))
    shifted = compute_cir(LinkParams(environment=Environment.URBAN, elevation_deg=40.0, scatter_offset_db=3.0))
    assert shifted.taps[0].amplitude_db == base.taps[0].amplitude_db
    for a, b in zip(base.taps, shifted.taps):
        if a.label.startswith("building-scatter"):
            assert b.amplitude_db == pytest.approx(a.amplitude_db + 3.0)


def test_static_phases_are_fixed():
    cir = compute_cir(LinkParams(environment=Environment.SUBURBAN, frequency_ghz=1.5, sim_time_s=0.0))
    scatter = [t for t in cir.taps if "scatter" in t.label]
    assert [t.phase_rad for t in scatter] == pytest.approx([1.7, 3.4])
    iono = [t for t in cir.taps if t.label == TapKind.IONOSPHERIC.value]
    assert len(iono) == 1
    assert iono[0].phase_rad == 0.5


def test_time_varying_phases_are_deterministic():
    params = LinkParams(environment=Environment.URBAN, frequency_ghz=1.5, sim_time_s=42.0)
    a = compute_cir(params)
    b = compute_cir(params)
    assert [t.phase_rad for t in a.taps] == [t.phase_rad for t in b.taps]
    assert [t.phase_rad for t in a.taps[1:3]] != pytest.approx([1.7, 3.4])


def test_ionospheric_tap_threshold():
    with_iono = compute_cir(LinkParams(frequency_ghz=1.5, tec_tecu=50.0))
    assert TapKind.IONOSPHERIC.value in _labels(with_iono)
    iono = with_iono.taps[-1]
    assert iono.amplitude_db == pytest.approx(with_iono.taps[0].amplitude_db - 30.0 - 10.0 * math.log10(1.5))

    without = compute_cir(LinkParams(frequency_ghz=30.0, tec_tecu=0.0))
    assert _labels(without) == [TapKind.LOS.value]


def test_single_tap_channel_is_flat():
    cir = compute_cir(LinkParams(frequency_ghz=30.0, tec_tecu=0.0))
    assert cir.rms_delay_spread_ns == 0.0
    assert cir.coherence_bandwidth_mhz == FLAT_CHANNEL_COHERENCE_MHZ


def test_coherence_bandwidth_from_delay_spread():
    cir = compute_cir(LinkParams(environment=Environment.URBAN, elevation_deg=20.0, tec_tecu=0.0))
    assert cir.rms_delay_spread_ns > 0.001
    assert cir.coherence_bandwidth_mhz == pytest.approx(1000.0 / (5.0 * cir.rms_delay_spread_ns))


def test_tap_indices_sequential():
    cir = compute_cir(LinkParams(environment=Environment.URBAN, frequency_ghz=1.5))
    assert [t.index for t in cir.taps] == list(range(len(cir.taps)))


@pytest.mark.parametrize("env", list(Environment))
@pytest.mark.parametrize("elev", [-45.0, 0.0, 10.0, 90.0])
@pytest.mark.parametrize("freq", [0.0001, 2.0, 40.0])
def test_cir_always_finite(env, elev, freq):
    cir = compute_cir(
        LinkParams(environment=env, elevation_deg=elev, frequency_ghz=freq, rain_rate_mm_h=25.0, sim_time_s=9.0)
    )
    for t in cir.taps:
        for v in (t.delay_ns, t.excess_delay_ns, t.amplitude_linear, t.amplitude_db, t.phase_rad):
            assert math.isfinite(v)
    assert math.isfinite(cir.rms_delay_spread_ns)
    assert math.isfinite(cir.coherence_bandwidth_mhz)
