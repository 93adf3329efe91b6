from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from satchannel.core.config import settings
from satchannel.rf.models import LinkParams
from satchannel.services.calibration import CalibrationProfile
from satchannel.services.orbit import GroundStation


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = settings.VERSION


def _check_iso(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        datetime.fromisoformat(v.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError("Invalid ISO8601 time") from exc
    return v


class MimoRequest(BaseModel):
    snr_db: float
    xpd_db: float


class TLERequest(BaseModel):
    line1: str
    line2: str
    station: GroundStation


class PassesRequest(TLERequest):
    start_iso: Optional[str] = None
    hours: float = Field(24.0, gt=0, le=240)
    min_elevation_deg: float = Field(0.0, ge=0, le=90)
    step_seconds: float = Field(30.0, ge=1, le=600)

    @field_validator("start_iso")
    @classmethod
    def validate_iso8601(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso(v)


class PassOut(BaseModel):
    aos_utc: str
    tca_utc: str
    los_utc: str
    max_elevation_deg: float
    duration_s: float


class PassesResponse(BaseModel):
    passes: List[PassOut]


class TimeSeriesRequest(TLERequest):
    start_iso: str
    end_iso: str
    step_seconds: float = Field(settings.DEFAULT_STEP_SECONDS, gt=0)
    params: LinkParams = Field(default_factory=LinkParams)
    calibration: Optional[CalibrationProfile] = None

    @field_validator("start_iso", "end_iso")
    @classmethod
    def validate_iso8601(cls, v: Optional[str]) -> Optional[str]:
        return _check_iso(v)


class CalibrateRequest(BaseModel):
    # Bare measurement list or {"measurements": [...], "metadata": {...}}
    data: Any
    params: LinkParams = Field(default_factory=LinkParams)
    station: Optional[GroundStation] = None


class CalibrationParamOut(BaseModel):
    name: str
    label: str
    value: float
    min: float
    max: float
    default: float


class CalibrateResponse(BaseModel):
    profile: CalibrationProfile
    table: List[CalibrationParamOut]
    warnings: List[str] = Field(default_factory=list)
    ground_station_advisory: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
