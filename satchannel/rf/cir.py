"""Tapped delay line channel impulse response.

The LOS tap anchors both delay and power; every other tap is expressed as an
excess delay and a power relative to it.
"""
from __future__ import annotations

import logging
from math import log10, pi
from typing import List, Optional, Tuple

import numpy as np

from satchannel.rf.fading import fading_value
from satchannel.rf.link_budget import SEA_ANTENNA_HEIGHT_M, compute_link_budget
from satchannel.rf.models import (
    CIR,
    FLAT_CHANNEL_COHERENCE_MHZ,
    LIGHT_SPEED_M_S,
    ChannelTap,
    Environment,
    LinkBudgetResult,
    LinkParams,
    TapKind,
)

logger = logging.getLogger(__name__)

SEA_REFLECTION_COEFF = -0.85
IONO_TAP_THRESHOLD_NS = 0.01

# (kind, excess delay ns, relative power dB)
SCATTER_PROFILES = {
    Environment.URBAN: (
        (TapKind.BUILDING_SCATTER_NEAR, 100.0, -15.0),
        (TapKind.BUILDING_SCATTER_FAR, 300.0, -22.0),
    ),
    Environment.SUBURBAN: (
        (TapKind.VEGETATION_SCATTER_NEAR, 80.0, -18.0),
        (TapKind.VEGETATION_SCATTER_FAR, 200.0, -25.0),
    ),
}


def _amplitude(power_db: float) -> float:
    return 10.0 ** (power_db / 20.0)


def _delay_statistics(taps: List[ChannelTap]) -> Tuple[float, float]:
    """RMS delay spread (ns) and 50%-correlation coherence bandwidth (MHz).

    Weights are powers relative to the LOS tap, which keeps them well inside
    the float range regardless of the absolute path loss.
    """
    anchor_db = taps[0].amplitude_db
    weights = np.array([10.0 ** ((t.amplitude_db - anchor_db) / 10.0) for t in taps])
    delays = np.array([t.excess_delay_ns for t in taps])

    total = weights.sum()
    mean_delay = float((weights * delays).sum() / total)
    mean_sq = float((weights * delays ** 2).sum() / total)
    rms = float(np.sqrt(max(0.0, mean_sq - mean_delay ** 2)))

    if rms > 0.001:
        coherence = 1000.0 / (5.0 * rms)
    else:
        coherence = FLAT_CHANNEL_COHERENCE_MHZ
    return rms, coherence


def compute_cir(params: LinkParams, budget: Optional[LinkBudgetResult] = None) -> CIR:
    """Build the multipath tap set for one snapshot.

    Args:
        params: Link configuration
        budget: Link budget already computed for ``params``; recomputed when omitted

    Returns:
        CIR with at least the LOS tap
    """
    if budget is None:
        budget = compute_link_budget(params)

    sim_time = params.sim_time_s
    los_delay = params.slant_range_km * 1e3 / LIGHT_SPEED_M_S * 1e9
    los_db = -(budget.absolute_fspl_db + budget.total_atmospheric_loss_db)
    los_amp = _amplitude(los_db)

    taps: List[ChannelTap] = [
        ChannelTap(
            index=0,
            label=TapKind.LOS.value,
            delay_ns=los_delay,
            excess_delay_ns=0.0,
            amplitude_linear=los_amp,
            amplitude_db=los_db,
            phase_rad=0.0,
        )
    ]

    if params.environment == Environment.MARITIME:
        excess = 2.0 * SEA_ANTENNA_HEIGHT_M * budget.sin_elevation / LIGHT_SPEED_M_S * 1e9
        refl_amp = los_amp * abs(SEA_REFLECTION_COEFF)
        taps.append(
            ChannelTap(
                index=len(taps),
                label=TapKind.SEA_REFLECTION.value,
                delay_ns=los_delay + excess,
                excess_delay_ns=excess,
                amplitude_linear=refl_amp,
                amplitude_db=los_db + 20.0 * log10(abs(SEA_REFLECTION_COEFF)),
                phase_rad=pi,
            )
        )

    scatter = SCATTER_PROFILES.get(params.environment, ())
    if scatter:
        elev_factor = max(0.1, 1.0 - max(0.0, params.elevation_deg) / 90.0)
        for i, (kind, delay, power) in enumerate(scatter):
            power_db = los_db + power * elev_factor + params.scatter_offset_db
            if sim_time > 0:
                phase = fading_value(sim_time + i * 7.3) * pi
            else:
                phase = (i + 1) * 1.7
            taps.append(
                ChannelTap(
                    index=len(taps),
                    label=kind.value,
                    delay_ns=los_delay + delay,
                    excess_delay_ns=delay,
                    amplitude_linear=_amplitude(power_db),
                    amplitude_db=power_db,
                    phase_rad=phase,
                )
            )

    dispersion = budget.dispersion_ns
    if dispersion > IONO_TAP_THRESHOLD_NS:
        freq = max(params.frequency_ghz, 1e-6)
        iono_db = los_db - 30.0 - 10.0 * log10(freq)
        phase = fading_value(sim_time * 0.3) * pi * 0.5 if sim_time > 0 else 0.5
        taps.append(
            ChannelTap(
                index=len(taps),
                label=TapKind.IONOSPHERIC.value,
                delay_ns=los_delay + dispersion,
                excess_delay_ns=dispersion,
                amplitude_linear=_amplitude(iono_db),
                amplitude_db=iono_db,
                phase_rad=phase,
            )
        )

    rms, coherence = _delay_statistics(taps)
    logger.debug("CIR: %d taps, rms delay spread %.3f ns", len(taps), rms)

    return CIR(
        taps=taps,
        rms_delay_spread_ns=rms,
        coherence_bandwidth_mhz=coherence,
        absolute_fspl_db=budget.absolute_fspl_db,
        total_atmospheric_loss_db=budget.total_atmospheric_loss_db,
    )
