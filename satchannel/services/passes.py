from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List

from satchannel.services.orbit import GroundStation, SGP4Propagator
from satchannel.utils import to_utc


@dataclass
class PassWindow:
    aos: datetime
    tca: datetime
    los: datetime
    max_elevation_deg: float
    duration_s: float


def predict_passes(
    line1: str,
    line2: str,
    station: GroundStation,
    start: datetime,
    hours: float = 24.0,
    min_elevation_deg: float = 0.0,
    step_seconds: float = 30.0,
) -> List[PassWindow]:
    """Scan the look angles on a fixed grid and group samples above the mask.

    Raises:
        OrbitError: if the TLE cannot be parsed
        ValueError: if ``hours`` or ``step_seconds`` is not positive
    """
    if hours <= 0:
        raise ValueError("hours must be positive")
    if step_seconds <= 0:
        raise ValueError("step_seconds must be positive")

    propagator = SGP4Propagator(line1, line2, station)

    start = to_utc(start)
    end = start + timedelta(hours=hours)
    step = timedelta(seconds=step_seconds)

    times: List[datetime] = []
    t = start
    while t <= end:
        times.append(t)
        t += step

    angles = propagator.look_angles_series(times)

    # Unresolvable samples count as below the mask
    elevs = [a.elevation_deg if a is not None else -90.0 for a in angles]

    passes: List[PassWindow] = []
    in_pass = False
    pass_start_idx = 0

    for i in range(len(times)):
        above = elevs[i] >= min_elevation_deg
        if above and not in_pass:
            in_pass = True
            pass_start_idx = i
        elif not above and in_pass:
            in_pass = False
            passes.append(_build_pass(times, elevs, pass_start_idx, i - 1))

    # If ends while still in pass
    if in_pass:
        passes.append(_build_pass(times, elevs, pass_start_idx, len(times) - 1))

    return passes


def _build_pass(times: List[datetime], elevs: List[float], i0: int, i1: int) -> PassWindow:
    max_idx = max(range(i0, i1 + 1), key=lambda k: elevs[k])
    return PassWindow(
        aos=times[i0],
        tca=times[max_idx],
        los=times[i1],
        max_elevation_deg=elevs[max_idx],
        duration_s=(times[i1] - times[i0]).total_seconds(),
    )

