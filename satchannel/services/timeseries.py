from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from satchannel.core.config import settings
from satchannel.rf.cir import compute_cir
from satchannel.rf.link_budget import (
    carrier_to_noise_density_dbhz,
    compute_link_budget,
    noise_floor_dbm,
    received_power_dbm,
    system_noise_temperature_k,
)
from satchannel.rf.mimo import compute_mimo_capacity
from satchannel.rf.models import MIN_SLANT_RANGE_KM, LinkParams, LookAngles, TimelineFrame
from satchannel.services.calibration import CalibrationProfile, apply_calibration
from satchannel.services.orbit import GroundStation, OrbitError, Propagator, SGP4Propagator
from satchannel.utils import to_utc

logger = logging.getLogger(__name__)

MIN_MODEL_ELEVATION_DEG = 0.1
SNR_FLOOR_DB = -30.0


def check_time_grid(start: datetime, end: datetime, step_seconds: float) -> int:
    """Number of frames in ``[start, end]``; raises ValueError for an unusable grid."""
    if step_seconds <= 0:
        raise ValueError("step_seconds must be positive")
    if end < start:
        raise ValueError("end must not be before start")

    count = int((end - start).total_seconds() // step_seconds) + 1
    if count > settings.MAX_TIMESERIES_FRAMES:
        raise ValueError(
            f"Time series would have {count} frames (limit {settings.MAX_TIMESERIES_FRAMES})"
        )
    return count


def _frame_times(start: datetime, end: datetime, step_seconds: float) -> List[datetime]:
    count = check_time_grid(start, end, step_seconds)
    return [start + timedelta(seconds=i * step_seconds) for i in range(count)]


def _build_frame(
    t: datetime, index: int, step_seconds: float, angles: LookAngles, params: LinkParams
) -> TimelineFrame:
    snapshot = params.model_copy(
        update={
            "elevation_deg": max(MIN_MODEL_ELEVATION_DEG, angles.elevation_deg),
            "slant_range_km": max(MIN_SLANT_RANGE_KM, angles.slant_range_km),
            "sim_time_s": index * step_seconds,
        }
    )
    budget = compute_link_budget(snapshot)
    cir = compute_cir(snapshot, budget)

    t_sys = system_noise_temperature_k(snapshot, budget)
    noise_dbm = noise_floor_dbm(t_sys, snapshot.bandwidth_mhz)
    rx_dbm = received_power_dbm(snapshot, budget)
    snr = max(SNR_FLOOR_DB, rx_dbm - noise_dbm)

    return TimelineFrame(
        timestamp=t,
        frame_index=index,
        elevation_deg=angles.elevation_deg,
        azimuth_deg=angles.azimuth_deg,
        slant_range_km=angles.slant_range_km,
        sim_time_s=snapshot.sim_time_s,
        budget=budget,
        rx_power_dbm=rx_dbm,
        noise_floor_dbm=noise_dbm,
        system_noise_temp_k=t_sys,
        snr_db=snr,
        cn0_dbhz=carrier_to_noise_density_dbhz(rx_dbm, t_sys),
        capacity=compute_mimo_capacity(snr, budget.xpd_db),
        cir=cir,
    )


def generate_channel_time_series(
    propagator: Propagator,
    start: datetime,
    end: datetime,
    step_seconds: float,
    params: LinkParams,
    calibration: Optional[CalibrationProfile] = None,
) -> List[TimelineFrame]:
    """
    Drive the channel engines across ``[start, end]`` at a fixed step.

    Frames the propagator cannot resolve are skipped; frames below the horizon
    are kept (``visible`` is False). The fading clock is ``frame_index *
    step_seconds`` so a replay yields identical frames.

    Args:
        propagator: Look angle source
        start: First timestamp (inclusive)
        end: Last timestamp (inclusive)
        step_seconds: Step between frames
        params: Base link parameters; geometry and sim time are overridden per frame
        calibration: Optional fitted profile applied before any frame is computed

    Returns:
        Frames in ascending timestamp order; empty for a non-positive step, a
        reversed interval or a grid above ``MAX_TIMESERIES_FRAMES``
    """
    try:
        times = _frame_times(start, end, step_seconds)
    except ValueError as exc:
        logger.warning("No channel frames generated: %s", exc)
        return []
    params = apply_calibration(params, calibration)

    if isinstance(propagator, SGP4Propagator):
        angles = propagator.look_angles_series(times)
    else:
        angles = [propagator.look_angles(t) for t in times]

    frames: List[TimelineFrame] = []
    for index, (t, look) in enumerate(zip(times, angles)):
        if look is None:
            logger.debug("Skipping frame %d at %s: no position", index, t)
            continue
        frames.append(_build_frame(t, index, step_seconds, look, params))

    logger.info("Generated %d/%d channel frames", len(frames), len(times))
    return frames


def generate_pass_time_series(
    line1: str,
    line2: str,
    station: GroundStation,
    start: datetime,
    end: datetime,
    step_seconds: float,
    params: LinkParams,
    calibration: Optional[CalibrationProfile] = None,
) -> List[TimelineFrame]:
    """SGP4-backed time series. A malformed TLE yields an empty list."""
    try:
        propagator = SGP4Propagator(line1, line2, station)
    except OrbitError as exc:
        logger.warning("Cannot build trajectory: %s", exc)
        return []
    return generate_channel_time_series(
        propagator, to_utc(start), to_utc(end), step_seconds, params, calibration
    )
