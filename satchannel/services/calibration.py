"""Fit link model bias parameters to field measurements.

Five scalar corrections (rain, gas, scatter, EIRP, noise temperature) are
estimated with a damped Gauss-Newton (Levenberg-Marquardt) iteration over a
weighted residual vector built from whatever metrics each measurement point
carries.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from math import sqrt
from typing import Dict, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from satchannel.core.config import settings
from satchannel.rf.link_budget import (
    carrier_to_noise_density_dbhz,
    compute_link_budget,
    received_power_dbm,
    system_noise_temperature_k,
)
from satchannel.rf.models import LinkParams
from satchannel.utils import now_utc, to_iso

logger = logging.getLogger(__name__)

DEFAULT_MEASUREMENT_ELEVATION_DEG = 30.0
PIVOT_EPSILON = 1e-12
DIAGONAL_EPSILON = 1e-6

# Residual weights per metric
WEIGHT_CN0 = 2.0
WEIGHT_RSSI = 1.5
WEIGHT_XPD = 1.0
WEIGHT_ATTENUATION = 1.5
WEIGHT_LOSS = 1.0


@dataclass(frozen=True)
class CalibrationParamDef:
    key: str
    label: str
    default: float
    min: float
    max: float
    step: float


CALIBRATION_PARAMS: List[CalibrationParamDef] = [
    CalibrationParamDef("rain_correction", "Rain correction factor", 1.0, 0.3, 3.0, 0.05),
    CalibrationParamDef("gas_offset_db", "Gas attenuation offset (dB)", 0.0, -2.0, 2.0, 0.1),
    CalibrationParamDef("scatter_offset_db", "Scatter power offset (dB)", 0.0, -10.0, 5.0, 0.5),
    CalibrationParamDef("eirp_offset_db", "EIRP offset (dB)", 0.0, -5.0, 5.0, 0.1),
    CalibrationParamDef("noise_temp_offset_k", "System noise temperature offset (K)", 0.0, -50.0, 200.0, 5.0),
]


class Measurement(BaseModel):
    """One field observation. Field names of recorded JSON files are accepted as aliases."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timestamp: Optional[str] = None
    elevation_deg: Optional[float] = Field(None, alias="elevation")
    rain_rate_mm_h: Optional[float] = Field(None, ge=0, alias="rainRate")
    cn0_dbhz: Optional[float] = Field(None, alias="measuredCN0_dB")
    rssi_dbm: Optional[float] = Field(None, alias="measuredRSSI_dBm")
    xpd_db: Optional[float] = Field(None, alias="measuredXPD_dB")
    attenuation_db: Optional[float] = Field(None, alias="measuredAttenuation_dB")
    loss_db: Optional[float] = Field(None, alias="measuredLoss")

    @property
    def has_rich_metric(self) -> bool:
        return any(
            v is not None for v in (self.cn0_dbhz, self.rssi_dbm, self.xpd_db, self.attenuation_db)
        )

    @property
    def has_metric(self) -> bool:
        return self.has_rich_metric or self.loss_db is not None


class ReferenceSatellite(BaseModel):
    name: str
    freq_ghz: float = Field(..., gt=0)
    eirp_dbw: float
    polarization: str
    bandwidth_mhz: float = Field(..., gt=0)


class CalibrationProfile(BaseModel):
    calibrated: bool = False
    timestamp: Optional[str] = None
    data_point_count: int = 0
    usable_point_count: int = 0
    residual_rms: float = 0.0
    ref_satellite: Optional[str] = None
    params: Dict[str, float] = Field(default_factory=dict)


def get_calibration_param_defs() -> List[CalibrationParamDef]:
    return list(CALIBRATION_PARAMS)


def create_default_calibration() -> CalibrationProfile:
    """Identity profile: every parameter at its default, ``calibrated=False``."""
    return CalibrationProfile(params={p.key: p.default for p in CALIBRATION_PARAMS})


def _with_corrections(params: LinkParams, values: Dict[str, float]) -> LinkParams:
    return params.model_copy(
        update={
            "correction_factor": values["rain_correction"],
            "gas_offset_db": values["gas_offset_db"],
            "scatter_offset_db": values["scatter_offset_db"],
            "eirp_dbw": params.eirp_dbw + values["eirp_offset_db"],
            "rx_noise_temp_k": max(0.0, params.rx_noise_temp_k + values["noise_temp_offset_k"]),
        }
    )


def apply_calibration(params: LinkParams, profile: Optional[CalibrationProfile]) -> LinkParams:
    """Merge a fitted profile into link parameters. Uncalibrated profiles are a no-op."""
    if profile is None or not profile.calibrated:
        return params
    values = {p.key: profile.params.get(p.key, p.default) for p in CALIBRATION_PARAMS}
    return _with_corrections(params, values)


def _with_reference(params: LinkParams, ref: Optional[ReferenceSatellite]) -> LinkParams:
    if ref is None:
        return params
    return params.model_copy(
        update={
            "frequency_ghz": ref.freq_ghz,
            "eirp_dbw": ref.eirp_dbw,
            "bandwidth_mhz": ref.bandwidth_mhz,
        }
    )


def _residuals(vector: np.ndarray, points: Sequence[Measurement], base: LinkParams) -> np.ndarray:
    """Weighted (measured - predicted) residuals for one parameter vector."""
    values = {p.key: float(v) for p, v in zip(CALIBRATION_PARAMS, vector)}
    trial = _with_corrections(base, values)

    out: List[float] = []
    for m in points:
        point = trial.model_copy(
            update={
                "elevation_deg": m.elevation_deg if m.elevation_deg is not None else DEFAULT_MEASUREMENT_ELEVATION_DEG,
                "rain_rate_mm_h": m.rain_rate_mm_h if m.rain_rate_mm_h is not None else trial.rain_rate_mm_h,
                "sim_time_s": 0.0,
            }
        )
        budget = compute_link_budget(point)

        if m.cn0_dbhz is not None or m.rssi_dbm is not None:
            rx_dbm = received_power_dbm(point, budget)
            if m.cn0_dbhz is not None:
                t_sys = system_noise_temperature_k(point, budget)
                predicted = carrier_to_noise_density_dbhz(rx_dbm, t_sys)
                out.append(WEIGHT_CN0 * (m.cn0_dbhz - predicted))
            if m.rssi_dbm is not None:
                out.append(WEIGHT_RSSI * (m.rssi_dbm - rx_dbm))
        if m.xpd_db is not None:
            out.append(WEIGHT_XPD * (m.xpd_db - budget.xpd_db))
        if m.attenuation_db is not None:
            out.append(WEIGHT_ATTENUATION * (m.attenuation_db - budget.total_atmospheric_loss_db))
        if not m.has_rich_metric and m.loss_db is not None:
            out.append(WEIGHT_LOSS * (m.loss_db - budget.total_loss_db))

    return np.array(out, dtype=float)


def _rms(residuals: np.ndarray) -> float:
    if residuals.size == 0:
        return 0.0
    return sqrt(float(np.mean(residuals ** 2)))


def _solve_linear_system(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Gaussian elimination with partial pivoting.

    A pivot whose magnitude is below ``PIVOT_EPSILON`` is skipped and the
    matching unknown is left at 0 instead of dividing by a near-zero value.
    """
    n = len(b)
    m = np.array(a, dtype=float)
    rhs = np.array(b, dtype=float)
    skipped = [False] * n

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(m[col:, col])))
        if abs(m[pivot_row, col]) < PIVOT_EPSILON:
            skipped[col] = True
            continue
        if pivot_row != col:
            m[[col, pivot_row]] = m[[pivot_row, col]]
            rhs[[col, pivot_row]] = rhs[[pivot_row, col]]
        for row in range(col + 1, n):
            factor = m[row, col] / m[col, col]
            m[row, col:] -= factor * m[col, col:]
            rhs[row] -= factor * rhs[col]

    x = np.zeros(n)
    for row in range(n - 1, -1, -1):
        if skipped[row]:
            continue
        x[row] = (rhs[row] - m[row, row + 1:] @ x[row + 1:]) / m[row, row]
    return x


def calibrate(
    measurements: Sequence[Measurement],
    link_params: LinkParams,
    ref_satellite: Optional[ReferenceSatellite] = None,
) -> CalibrationProfile:
    """Fit the five correction parameters to ``measurements``.

    Never raises on poor data: empty input, or input without any usable
    metric, returns the default profile, and non-convergence returns the
    last estimate together with its RMS residual.
    """
    points = [m for m in measurements if m.has_metric]
    if not points:
        logger.info("Calibration skipped: no usable measurements")
        return create_default_calibration()

    base = _with_reference(link_params, ref_satellite)

    lower = np.array([p.min for p in CALIBRATION_PARAMS])
    upper = np.array([p.max for p in CALIBRATION_PARAMS])
    steps = np.array([max(p.step * 0.1, 1e-6) for p in CALIBRATION_PARAMS])
    vector = np.array([p.default for p in CALIBRATION_PARAMS])

    damping = settings.CALIBRATION_DAMPING
    iterations = 0
    converged = False

    for iterations in range(1, settings.CALIBRATION_MAX_ITERATIONS + 1):
        r = _residuals(vector, points, base)

        jac = np.empty((r.size, vector.size))
        for j in range(vector.size):
            perturbed = vector.copy()
            perturbed[j] += steps[j]
            jac[:, j] = (r - _residuals(perturbed, points, base)) / steps[j]

        jtj = jac.T @ jac
        jtr = jac.T @ r
        lhs = jtj + damping * np.diag(np.diag(jtj) + DIAGONAL_EPSILON)
        delta = _solve_linear_system(lhs, jtr)

        # Convergence is judged on the step actually taken after clamping
        updated = np.clip(vector + delta, lower, upper)
        applied = updated - vector
        vector = updated

        if float(np.max(np.abs(applied))) < settings.CALIBRATION_TOLERANCE:
            converged = True
            break

    rms = _rms(_residuals(vector, points, base))
    logger.info(
        "Calibration %s after %d iterations: %d points, RMS residual %.4f",
        "converged" if converged else "stopped",
        iterations,
        len(points),
        rms,
    )

    return CalibrationProfile(
        calibrated=True,
        timestamp=to_iso(now_utc()),
        data_point_count=len(measurements),
        usable_point_count=len(points),
        residual_rms=rms,
        ref_satellite=ref_satellite.name if ref_satellite is not None else None,
        params={p.key: float(v) for p, v in zip(CALIBRATION_PARAMS, vector)},
    )
