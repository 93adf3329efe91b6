"""Deterministic sum-of-sinusoids fading oscillator.

Replaces a random source for scintillation and multipath phase drift so that
replays are bit-reproducible. Five cosine terms at non-harmonically related
frequencies are summed and normalized by sqrt(5/2), which is the standard
deviation of a sum of five unit-amplitude cosines, giving an output with
approximately unit standard deviation over time.
"""
from __future__ import annotations

from math import cos, pi
from typing import Optional

SOS_FREQUENCIES_HZ = (0.11, 0.23, 0.37, 0.53, 0.79)
SOS_PHASES_RAD = (0.0, 1.3, 2.9, 4.1, 5.7)
SOS_NORMALIZATION = 1.581


def fading_value(t_sec: Optional[float]) -> float:
    """Return the fading sample at simulation time ``t_sec``.

    ``None`` or exactly 0 yields 0.0, which is the static (no fast fading) mode.
    """
    if not t_sec:
        return 0.0
    total = 0.0
    for f_hz, phi in zip(SOS_FREQUENCIES_HZ, SOS_PHASES_RAD):
        total += cos(2.0 * pi * f_hz * t_sec + phi)
    return total / SOS_NORMALIZATION
