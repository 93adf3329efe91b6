"""Orbit propagation seam.

The channel engines only consume the :class:`Propagator` contract
(timestamp -> look angles or ``None``). :class:`SGP4Propagator` is the
concrete implementation: SGP4 in TEME, rotated to ECEF by Greenwich mean
sidereal time, then projected into the observer's local ENU frame.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from astropy.time import Time
from astropy.utils.iers import conf
from pydantic import BaseModel, Field
from sgp4.api import WGS72, Satrec, jday

from satchannel.rf.models import LookAngles
from satchannel.utils import to_utc

logger = logging.getLogger(__name__)

# GMST only needs the bundled IERS-B table; never reach out to the network
conf.auto_download = False
conf.iers_degraded_accuracy = "warn"

# WGS84
EARTH_A_M = 6378137.0
EARTH_E2 = 6.69437999014e-3


class OrbitError(ValueError):
    """Raised when a trajectory cannot be built from the given elements."""


class GroundStation(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Geodetic latitude in degrees")
    lon: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    alt_m: float = Field(0.0, description="Altitude above the ellipsoid in meters")


class Propagator(Protocol):
    def look_angles(self, t: datetime) -> Optional[LookAngles]:
        """Return look angles at ``t`` or ``None`` when no position can be resolved."""
        ...


def _astropy_time(times: Sequence[datetime]) -> Time:
    return Time([to_utc(t).replace(tzinfo=None) for t in times], scale="utc")


# Coordinate transforms

def teme_to_ecef(r_teme_km: np.ndarray, gmst_rad: np.ndarray) -> np.ndarray:
    """Rotate TEME positions (N x 3) about z by GMST (N,)."""
    x, y, z = r_teme_km[:, 0], r_teme_km[:, 1], r_teme_km[:, 2]
    cosg = np.cos(gmst_rad)
    sing = np.sin(gmst_rad)
    xe = cosg * x + sing * y
    ye = -sing * x + cosg * y
    return np.column_stack((xe, ye, z))


def geodetic_to_ecef(lat_deg: float, lon_deg: float, alt_m: float) -> Tuple[float, float, float]:
    lat = math.radians(lat_deg)
    lon = math.radians(lon_deg)
    N = EARTH_A_M / math.sqrt(1 - EARTH_E2 * (math.sin(lat) ** 2))
    x = (N + alt_m) * math.cos(lat) * math.cos(lon)
    y = (N + alt_m) * math.cos(lat) * math.sin(lon)
    z = ((1 - EARTH_E2) * N + alt_m) * math.sin(lat)
    return x / 1000.0, y / 1000.0, z / 1000.0  # km


def ecef_to_enu(d_km: np.ndarray, lat_deg: float, lon_deg: float) -> np.ndarray:
    lat = math.radians(lat_deg)
    lon = math.radians(lon_deg)
    slat, clat = math.sin(lat), math.cos(lat)
    slon, clon = math.sin(lon), math.cos(lon)
    dx, dy, dz = d_km[:, 0], d_km[:, 1], d_km[:, 2]
    e = -slon * dx + clon * dy
    n = -slat * clon * dx - slat * slon * dy + clat * dz
    u = clat * clon * dx + clat * slon * dy + slat * dz
    return np.column_stack((e, n, u))


def enu_to_az_el_range(enu_km: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    e, n, u = enu_km[:, 0], enu_km[:, 1], enu_km[:, 2]
    slant = np.sqrt(e * e + n * n + u * u)
    horiz = np.sqrt(e * e + n * n)
    elev = np.degrees(np.arctan2(u, horiz))
    az = np.mod(np.degrees(np.arctan2(e, n)), 360.0)
    return az, elev, slant


class SGP4Propagator:
    """Look angles from a two-line element set for one ground station."""

    def __init__(self, line1: str, line2: str, station: GroundStation):
        line1, line2 = line1.strip(), line2.strip()
        if not (line1.startswith("1 ") and line2.startswith("2 ")):
            raise OrbitError("Invalid TLE format: expected lines starting with '1 ' and '2 '")
        if len(line1) < 69 or len(line2) < 69:
            raise OrbitError("Invalid TLE format: lines must be 69 characters")
        try:
            self.satellite = Satrec.twoline2rv(line1, line2, WGS72)
        except (ValueError, IndexError) as e:
            raise OrbitError(f"Invalid TLE: {e}") from e
        if self.satellite.error != 0:
            raise OrbitError(f"Invalid TLE: SGP4 error code {self.satellite.error}")

        self.station = station
        self._obs_ecef = np.array(geodetic_to_ecef(station.lat, station.lon, station.alt_m))

    def look_angles(self, t: datetime) -> Optional[LookAngles]:
        return self.look_angles_series([t])[0]

    def look_angles_series(self, times: Sequence[datetime]) -> List[Optional[LookAngles]]:
        """Vectorized look angles; entries SGP4 cannot resolve come back as ``None``."""
        if not times:
            return []

        jd = np.empty(len(times))
        fr = np.empty(len(times))
        for i, t in enumerate(times):
            u = to_utc(t)
            jd[i], fr[i] = jday(u.year, u.month, u.day, u.hour, u.minute, u.second + u.microsecond * 1e-6)

        err, r_teme, _ = self.satellite.sgp4_array(jd, fr)
        gmst = np.atleast_1d(_astropy_time(times).sidereal_time("mean", "greenwich").radian)

        r_ecef = teme_to_ecef(np.asarray(r_teme), gmst)
        enu = ecef_to_enu(r_ecef - self._obs_ecef, self.station.lat, self.station.lon)
        az, elev, slant = enu_to_az_el_range(enu)

        out: List[Optional[LookAngles]] = []
        for i, code in enumerate(err):
            if code != 0 or not np.isfinite(elev[i]):
                logger.debug("SGP4 could not resolve %s (error code %s)", times[i], code)
                out.append(None)
                continue
            out.append(
                LookAngles(
                    elevation_deg=float(elev[i]),
                    azimuth_deg=float(az[i]),
                    slant_range_km=float(slant[i]),
                )
            )
        return out
