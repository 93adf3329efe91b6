"""Calibration measurement files: parsing, validation and metadata mapping.

Two layouts are accepted: a bare list of measurement points, or an object
``{"measurements": [...], "metadata": {...}}``. Metadata may name a known
satellite by id (kept as a tag only) or fully describe a custom one.
"""
from __future__ import annotations

import logging
from math import cos, radians, sqrt
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from satchannel.core.config import settings
from satchannel.rf.models import Environment, LinkParams
from satchannel.services.calibration import Measurement, ReferenceSatellite

logger = logging.getLogger(__name__)

KM_PER_DEGREE = 111.32


class CalibrationInputError(ValueError):
    """Raised when a calibration file cannot support a meaningful fit."""


class CustomSatellite(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    freq: Optional[float] = Field(None, gt=0)
    eirp: Optional[float] = None
    polarization: Optional[str] = None
    bandwidth: Optional[float] = Field(None, gt=0)

    def missing_fields(self) -> List[str]:
        missing = []
        if self.freq is None:
            missing.append("freq")
        if self.eirp is None:
            missing.append("eirp")
        if not self.polarization:
            missing.append("polarization")
        if self.bandwidth is None:
            missing.append("bandwidth")
        return missing


class GroundStationMeta(BaseModel):
    lat: Optional[float] = None
    lon: Optional[float] = None
    alt: Optional[float] = None


class ReceiverMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    g_rx: Optional[float] = Field(None, alias="gRx")
    t_rx: Optional[float] = Field(None, ge=0, alias="tRx")
    bandwidth: Optional[float] = Field(None, gt=0)


class CalibrationMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    satellite: Optional[Union[str, CustomSatellite]] = None
    band: Optional[str] = None
    ground_station: Optional[GroundStationMeta] = Field(None, alias="groundStation")
    receiver: Optional[ReceiverMeta] = None
    environment: Optional[Environment] = None
    tec: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None

    @property
    def satellite_name(self) -> Optional[str]:
        if isinstance(self.satellite, str):
            return self.satellite
        if isinstance(self.satellite, CustomSatellite):
            return self.satellite.name or "custom"
        return None


class CalibrationInput(BaseModel):
    measurements: List[Measurement] = Field(default_factory=list)
    metadata: Optional[CalibrationMetadata] = None


def parse_calibration_input(data: Any) -> CalibrationInput:
    """Parse either accepted layout. Raises ``pydantic.ValidationError`` (a ValueError) on bad shapes."""
    if isinstance(data, list):
        return CalibrationInput(measurements=data)
    if isinstance(data, dict):
        return CalibrationInput.model_validate(data)
    raise CalibrationInputError("Calibration input must be a list or an object with 'measurements'")


def validate_calibration_input(inp: CalibrationInput) -> List[str]:
    """
    Check that a calibration run is meaningful.

    Returns:
        Advisory warnings (the run may proceed)

    Raises:
        CalibrationInputError: custom satellite underspecified or no usable metric
    """
    errors: List[str] = []
    warnings: List[str] = []
    meta = inp.metadata

    if meta is not None and isinstance(meta.satellite, CustomSatellite):
        missing = meta.satellite.missing_fields()
        if missing:
            errors.append(f"custom satellite missing required fields: {', '.join(missing)}")

    valid = [m for m in inp.measurements if m.has_metric]
    if not valid:
        errors.append("no measurement carries C/N0, RSSI, XPD, attenuation or loss")

    if errors:
        raise CalibrationInputError("; ".join(errors))

    if meta is not None:
        gs = meta.ground_station
        if gs is None or gs.lat is None or gs.lon is None:
            warnings.append("no ground station coordinates; geographic consistency cannot be checked")

    skipped = len(inp.measurements) - len(valid)
    if skipped:
        warnings.append(f"{skipped} points carry no metric and will be ignored")

    if all(m.elevation_deg is None for m in valid):
        warnings.append("no point carries an elevation; 30 deg will be assumed")

    if meta is None or meta.satellite is None:
        warnings.append("no reference satellite; current frequency and EIRP are used")

    for w in warnings:
        logger.warning("Calibration input: %s", w)
    return warnings


def link_params_from_metadata(params: LinkParams, metadata: Optional[CalibrationMetadata]) -> LinkParams:
    """Overlay satellite, receiver and environment metadata onto link parameters."""
    if metadata is None:
        return params

    update = {}
    sat = metadata.satellite
    if isinstance(sat, CustomSatellite):
        if sat.freq is not None:
            update["frequency_ghz"] = sat.freq
        if sat.eirp is not None:
            update["eirp_dbw"] = sat.eirp
        if sat.bandwidth is not None:
            update["bandwidth_mhz"] = sat.bandwidth
    elif isinstance(sat, str):
        logger.info("Known satellite id %r recorded as tag only", sat)

    rx = metadata.receiver
    if rx is not None:
        if rx.g_rx is not None:
            update["rx_gain_dbi"] = rx.g_rx
        if rx.t_rx is not None:
            update["rx_noise_temp_k"] = rx.t_rx
        if rx.bandwidth is not None:
            update["bandwidth_mhz"] = rx.bandwidth

    if metadata.environment is not None:
        update["environment"] = metadata.environment
    if metadata.tec is not None:
        update["tec_tecu"] = metadata.tec

    return params.model_copy(update=update)


def reference_satellite_from_metadata(metadata: Optional[CalibrationMetadata]) -> Optional[ReferenceSatellite]:
    if metadata is None or not isinstance(metadata.satellite, CustomSatellite):
        return None
    sat = metadata.satellite
    if sat.missing_fields():
        return None
    return ReferenceSatellite(
        name=sat.name or "custom",
        freq_ghz=sat.freq,
        eirp_dbw=sat.eirp,
        polarization=sat.polarization,
        bandwidth_mhz=sat.bandwidth,
    )


def ground_station_distance_km(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    """Equirectangular distance, scaled by the cosine of ``b_lat``. Good to a few percent at these ranges."""
    d_lat = (a_lat - b_lat) * KM_PER_DEGREE
    d_lon = (a_lon - b_lon) * KM_PER_DEGREE * cos(radians(b_lat))
    return sqrt(d_lat * d_lat + d_lon * d_lon)


def ground_station_advisory(
    metadata: Optional[CalibrationMetadata], lat: float, lon: float
) -> Optional[str]:
    """Compare the calibration site with the current station.

    Returns ``None``, ``"warning"`` or ``"critical"``. Advisory only.
    """
    if metadata is None or metadata.ground_station is None:
        return None
    gs = metadata.ground_station
    if gs.lat is None or gs.lon is None:
        return None

    distance = ground_station_distance_km(gs.lat, gs.lon, lat, lon)
    if distance > settings.GS_DISTANCE_CRITICAL_KM:
        level = "critical"
    elif distance > settings.GS_DISTANCE_WARN_KM:
        level = "warning"
    else:
        return None

    logger.warning(
        "Calibration site is %.1f km from the current ground station (%s)", distance, level
    )
    return level
