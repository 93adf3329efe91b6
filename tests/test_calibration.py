from __future__ import annotations

import numpy as np
import pytest

from satchannel.rf.link_budget import compute_link_budget, received_power_dbm
from satchannel.rf.models import LinkParams
from satchannel.services.calibration import (
    CalibrationProfile,
    Measurement,
    ReferenceSatellite,
    _solve_linear_system,
    apply_calibration,
    calibrate,
    create_default_calibration,
    get_calibration_param_defs,
)
from satchannel.utils import parse_iso

ELEVATIONS = (20.0, 35.0, 50.0, 70.0)
RAIN_RATES = (0.0, 5.0, 10.0, 25.0, 40.0)


def _synthetic(truth: LinkParams, with_rssi: bool = False):
    points = []
    for elev in ELEVATIONS:
        for rain in RAIN_RATES:
            p = truth.model_copy(update={"elevation_deg": elev, "rain_rate_mm_h": rain})
            b = compute_link_budget(p)
            raw = {"elevation": elev, "rainRate": rain, "measuredAttenuation_dB": b.total_atmospheric_loss_db}
            if with_rssi:
                raw["measuredRSSI_dBm"] = received_power_dbm(p, b)
            points.append(Measurement.model_validate(raw))
    return points


def _within_bounds(profile: CalibrationProfile) -> bool:
    return all(d.min <= profile.params[d.key] <= d.max for d in get_calibration_param_defs())


def test_param_definitions():
    defs = get_calibration_param_defs()
    assert [d.key for d in defs] == [
        "rain_correction",
        "gas_offset_db",
        "scatter_offset_db",
        "eirp_offset_db",
        "noise_temp_offset_k",
    ]
    for d in defs:
        assert d.min <= d.default <= d.max
        assert d.step > 0


def test_default_profile_is_identity():
    profile = create_default_calibration()
    assert profile.calibrated is False
    assert profile.timestamp is None
    assert profile.params == {
        "rain_correction": 1.0,
        "gas_offset_db": 0.0,
        "scatter_offset_db": 0.0,
        "eirp_offset_db": 0.0,
        "noise_temp_offset_k": 0.0,
    }


def test_empty_measurements_return_default():
    assert calibrate([], LinkParams()) == create_default_calibration()


def test_measurements_without_metrics_return_default():
    points = [Measurement.model_validate({"elevation": 30.0, "rainRate": 5.0})]
    assert calibrate(points, LinkParams()) == create_default_calibration()


def test_measurement_aliases():
    m = Measurement.model_validate(
        {
            "timestamp": "2024-01-01T00:00:00Z",
            "elevation": 42.0,
            "rainRate": 3.0,
            "measuredCN0_dB": 71.5,
            "measuredRSSI_dBm": -95.0,
            "measuredXPD_dB": 28.0,
            "measuredAttenuation_dB": 1.2,
            "measuredLoss": 3.4,
            "someOtherField": "ignored",
        }
    )
    assert m.elevation_deg == 42.0
    assert m.rain_rate_mm_h == 3.0
    assert m.cn0_dbhz == 71.5
    assert m.rssi_dbm == -95.0
    assert m.xpd_db == 28.0
    assert m.attenuation_db == 1.2
    assert m.loss_db == 3.4
    assert m.has_rich_metric


def test_recovers_rain_correction():
    truth = LinkParams(frequency_ghz=20.0, correction_factor=1.6)
    profile = calibrate(_synthetic(truth), LinkParams(frequency_ghz=20.0))

    assert profile.calibrated is True
    assert profile.data_point_count == len(ELEVATIONS) * len(RAIN_RATES)
    assert profile.usable_point_count == profile.data_point_count
    assert profile.params["rain_correction"] == pytest.approx(1.6, abs=0.01)
    assert profile.params["gas_offset_db"] == pytest.approx(0.0, abs=0.01)
    assert profile.residual_rms < 1e-3
    assert profile.timestamp.endswith("Z")
    assert parse_iso(profile.timestamp).tzinfo is not None
    assert _within_bounds(profile)


def test_point_counts_include_rows_without_metrics():
    truth = LinkParams(frequency_ghz=20.0, correction_factor=1.6)
    points = _synthetic(truth) + [Measurement(elevation_deg=40.0), Measurement(rain_rate_mm_h=3.0)]
    profile = calibrate(points, LinkParams(frequency_ghz=20.0))
    assert profile.data_point_count == len(points)
    assert profile.usable_point_count == len(points) - 2
    assert profile.params["rain_correction"] == pytest.approx(1.6, abs=0.01)


def test_recovers_eirp_offset_from_rssi():
    truth = LinkParams(frequency_ghz=20.0, eirp_dbw=62.0)
    profile = calibrate(_synthetic(truth, with_rssi=True), LinkParams(frequency_ghz=20.0, eirp_dbw=60.0))
    assert profile.params["eirp_offset_db"] == pytest.approx(2.0, abs=0.01)
    assert profile.params["rain_correction"] == pytest.approx(1.0, abs=0.01)
    assert profile.params["noise_temp_offset_k"] == 0.0


def test_reference_satellite_overrides_link():
    ref = ReferenceSatellite(name="TestSat", freq_ghz=20.0, eirp_dbw=62.0, polarization="RHCP", bandwidth_mhz=10.0)
    truth = LinkParams(frequency_ghz=20.0, eirp_dbw=62.0, bandwidth_mhz=10.0)
    profile = calibrate(_synthetic(truth, with_rssi=True), LinkParams(frequency_ghz=12.0, eirp_dbw=55.0), ref)
    assert profile.ref_satellite == "TestSat"
    assert profile.params["eirp_offset_db"] == pytest.approx(0.0, abs=0.01)
    assert profile.params["rain_correction"] == pytest.approx(1.0, abs=0.01)


def test_parameters_clamped_to_bounds():
    points = [
        Measurement.model_validate({"elevation": 30.0, "rainRate": 20.0, "measuredAttenuation_dB": 500.0}),
        Measurement.model_validate({"elevation": 45.0, "rainRate": 0.0, "measuredRSSI_dBm": 50.0}),
    ]
    profile = calibrate(points, LinkParams(frequency_ghz=20.0))
    assert _within_bounds(profile)
    assert profile.params["rain_correction"] == 3.0


def test_generic_loss_used_only_without_richer_metric():
    truth = LinkParams(frequency_ghz=20.0)
    points = []
    for p in _synthetic(truth):
        points.append(p.model_copy(update={"loss_db": 999.0}))
    profile = calibrate(points, LinkParams(frequency_ghz=20.0))
    assert profile.params["rain_correction"] == pytest.approx(1.0, abs=0.01)


def test_generic_loss_residual():
    truth = LinkParams(frequency_ghz=20.0, correction_factor=1.4)
    points = []
    for elev in ELEVATIONS:
        for rain in RAIN_RATES:
            b = compute_link_budget(truth.model_copy(update={"elevation_deg": elev, "rain_rate_mm_h": rain}))
            points.append(Measurement(elevation=elev, rainRate=rain, measuredLoss=b.total_loss_db))
    profile = calibrate(points, LinkParams(frequency_ghz=20.0))
    assert profile.params["rain_correction"] == pytest.approx(1.4, abs=0.02)


def test_apply_calibration_mapping():
    profile = CalibrationProfile(
        calibrated=True,
        params={
            "rain_correction": 1.3,
            "gas_offset_db": 0.4,
            "scatter_offset_db": -2.0,
            "eirp_offset_db": 1.5,
            "noise_temp_offset_k": -60.0,
        },
    )
    params = apply_calibration(LinkParams(eirp_dbw=50.0, rx_noise_temp_k=40.0), profile)
    assert params.correction_factor == 1.3
    assert params.gas_offset_db == 0.4
    assert params.scatter_offset_db == -2.0
    assert params.eirp_dbw == 51.5
    assert params.rx_noise_temp_k == 0.0


def test_apply_uncalibrated_is_noop():
    params = LinkParams(eirp_dbw=50.0)
    assert apply_calibration(params, create_default_calibration()) is params
    assert apply_calibration(params, None) is params


def test_solver_pivots():
    x = _solve_linear_system(np.array([[0.0, 1.0], [1.0, 0.0]]), np.array([2.0, 3.0]))
    assert x == pytest.approx([3.0, 2.0])


def test_solver_skips_zero_pivot():
    x = _solve_linear_system(np.array([[1.0, 0.0], [0.0, 0.0]]), np.array([1.0, 5.0]))
    assert x == pytest.approx([1.0, 0.0])


def test_solver_matches_numpy():
    a = np.array(
        [
            [4.0, 1.0, 0.5, 0.0, 0.2],
            [1.0, 5.0, 0.3, 0.1, 0.0],
            [0.5, 0.3, 6.0, 0.4, 0.1],
            [0.0, 0.1, 0.4, 3.0, 0.6],
            [0.2, 0.0, 0.1, 0.6, 2.0],
        ]
    )
    b = np.array([1.0, -2.0, 0.5, 3.0, -1.0])
    assert _solve_linear_system(a, b) == pytest.approx(np.linalg.solve(a, b))
