"""
satchannel API

Thin HTTP surface over the propagation engines: snapshot link budget, CIR
and MIMO capacity, SGP4 pass prediction, pass time series and measurement
calibration.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from satchannel.core.config import settings
from satchannel.core.logging import get_logger, setup_logging
from satchannel.exporters import calibration_table, timeline_document
from satchannel.models import (
    CalibrateRequest,
    CalibrateResponse,
    HealthResponse,
    MimoRequest,
    PassesRequest,
    PassesResponse,
    PassOut,
    TimeSeriesRequest,
)
from satchannel.rf.cir import compute_cir
from satchannel.rf.link_budget import compute_link_budget
from satchannel.rf.mimo import compute_mimo_capacity
from satchannel.rf.models import LinkParams
from satchannel.services.calibration import calibrate
from satchannel.services.calibration_input import (
    ground_station_advisory,
    link_params_from_metadata,
    parse_calibration_input,
    reference_satellite_from_metadata,
    validate_calibration_input,
)
from satchannel.services.passes import predict_passes
from satchannel.services.timeseries import check_time_grid, generate_pass_time_series
from satchannel.utils import now_utc, parse_iso, to_iso

setup_logging()
logger = get_logger(__name__)

app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api = APIRouter(prefix="/api")


@api.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse()


@api.post("/link-budget")
async def link_budget(params: LinkParams) -> Dict[str, Any]:
    result = compute_link_budget(params)
    out = asdict(result)
    out["total_absolute_loss_db"] = result.total_absolute_loss_db
    return out


@api.post("/cir")
async def cir(params: LinkParams) -> Dict[str, Any]:
    return asdict(compute_cir(params))


@api.post("/mimo")
async def mimo(req: MimoRequest) -> Dict[str, Any]:
    return asdict(compute_mimo_capacity(req.snr_db, req.xpd_db))


@api.post("/passes", response_model=PassesResponse)
async def passes(req: PassesRequest) -> PassesResponse:
    start = parse_iso(req.start_iso, default=now_utc())
    try:
        windows = predict_passes(
            req.line1,
            req.line2,
            req.station,
            start,
            hours=req.hours,
            min_elevation_deg=req.min_elevation_deg,
            step_seconds=req.step_seconds,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return PassesResponse(
        passes=[
            PassOut(
                aos_utc=to_iso(w.aos),
                tca_utc=to_iso(w.tca),
                los_utc=to_iso(w.los),
                max_elevation_deg=w.max_elevation_deg,
                duration_s=w.duration_s,
            )
            for w in windows
        ]
    )


@api.post("/timeseries")
async def timeseries(req: TimeSeriesRequest) -> Dict[str, Any]:
    start = parse_iso(req.start_iso)
    end = parse_iso(req.end_iso)
    try:
        check_time_grid(start, end, req.step_seconds)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    frames = generate_pass_time_series(
        req.line1,
        req.line2,
        req.station,
        start,
        end,
        req.step_seconds,
        req.params,
        req.calibration,
    )
    return timeline_document(
        frames,
        {
            "start": to_iso(start),
            "end": to_iso(end),
            "step_s": req.step_seconds,
            "station": req.station.model_dump(),
            "calibrated": bool(req.calibration and req.calibration.calibrated),
        },
    )


@api.post("/calibrate", response_model=CalibrateResponse)
async def run_calibration(req: CalibrateRequest) -> CalibrateResponse:
    try:
        inp = parse_calibration_input(req.data)
        warnings = validate_calibration_input(inp)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    logger.info("Calibration request with %d measurements", len(inp.measurements))
    params = link_params_from_metadata(req.params, inp.metadata)
    ref = reference_satellite_from_metadata(inp.metadata)
    profile = calibrate(inp.measurements, params, ref)
    if profile.ref_satellite is None and inp.metadata is not None:
        profile.ref_satellite = inp.metadata.satellite_name

    advisory = None
    if req.station is not None:
        advisory = ground_station_advisory(inp.metadata, req.station.lat, req.station.lon)

    meta: Dict[str, Any] = {}
    if inp.metadata is not None:
        meta = inp.metadata.model_dump(mode="json", by_alias=True, exclude_none=True)

    return CalibrateResponse(
        profile=profile,
        table=calibration_table(profile),
        warnings=warnings,
        ground_station_advisory=advisory,
        metadata=meta,
    )


app.include_router(api)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("satchannel.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
