"""Link budget engine.

Computes every scalar loss and noise term for one geometry + environment
snapshot. All functions are pure and total: degenerate inputs (horizon
elevations, near-DC frequencies) are absorbed by floors and clamps so every
output is a finite float.
"""
from __future__ import annotations

from math import cos, hypot, log10, pi, radians, sin, tan
from typing import Dict, Tuple

from satchannel.rf.fading import fading_value
from satchannel.rf.models import (
    AMBIENT_TEMPERATURE_K,
    COSMIC_BACKGROUND_K,
    FREQ_EPSILON_GHZ,
    GEO_SLANT_RANGE_KM,
    K_BOLTZMANN,
    LIGHT_SPEED_GHZ_M,
    MIN_SIN_ELEVATION,
    MIN_SLANT_RANGE_KM,
    UNLIMITED_SYMBOL_RATE_MBAUD,
    Environment,
    LinkBudgetResult,
    LinkParams,
    db,
    from_db,
)

# ITU-R P.838 coefficients keyed by frequency in GHz (nearest neighbour lookup)
RAIN_COEFFS: Dict[float, Tuple[float, float]] = {
    2.2: (0.0002, 0.95),
    12.0: (0.018, 1.15),
    30.0: (0.187, 1.021),
    40.0: (0.35, 0.93),
    50.0: (0.55, 0.88),
}

RAIN_HEIGHT_KM = 3.0
CLOUD_LIQUID_WATER_MM = 0.5
SEA_ANTENNA_HEIGHT_M = 15.0
XPD_CEILING_DB = 40.0
FARADAY_LOSS_CAP_DB = 60.0
IONO_DELAY_CONSTANT = 134.0  # ns * GHz^2 / TECU


def _clamp_frequency(frequency_ghz: float) -> float:
    return max(frequency_ghz, FREQ_EPSILON_GHZ)


def _refraction_correction_deg(elevation_deg: float) -> float:
    """ITU-R bending correction in degrees for a geometric elevation.

    The elevation is clamped at 0 before entering the formula, which keeps the
    cotangent argument away from its singularity.
    """
    e = max(0.0, elevation_deg)
    return 1.02 / tan(radians(e + 10.3 / (e + 5.11))) / 60.0


def _pointing_loss_db(refraction_deg: float, hpbw_deg: float) -> float:
    """Open-loop pointing loss assuming the pointing error equals the bending."""
    if hpbw_deg <= 0:
        return 0.0
    return 12.0 * (refraction_deg / hpbw_deg) ** 2


def rain_coefficients(frequency_ghz: float) -> Tuple[float, float]:
    """Return the (k, alpha) pair of the nearest tabulated frequency."""
    nearest = min(RAIN_COEFFS, key=lambda f: abs(f - frequency_ghz))
    return RAIN_COEFFS[nearest]


def _rain_attenuation_db(frequency_ghz: float, rain_rate: float, correction: float, sin_elev: float) -> float:
    """Rain attenuation along the slant path with the Rec. 618 reduction factor.

    Args:
        frequency_ghz: Carrier frequency in GHz
        rain_rate: Rain rate in mm/h
        correction: Calibration multiplier on the specific attenuation
        sin_elev: Floored sine of the apparent elevation

    Returns:
        Rain attenuation in dB
    """
    k, alpha = rain_coefficients(frequency_ghz)
    gamma = k * rain_rate ** alpha * correction
    slant_path = RAIN_HEIGHT_KM / sin_elev
    r_factor = 1.0 / (1.0 + 0.045 * slant_path)
    return gamma * slant_path * r_factor


def _zenith_gas_attenuation_db(frequency_ghz: float) -> float:
    if frequency_ghz < 10:
        return 0.05
    if frequency_ghz < 20:
        return 0.2
    if frequency_ghz < 35:
        return 0.3
    if frequency_ghz < 50:
        return 0.8
    return 4.0


def _cloud_attenuation_db(frequency_ghz: float, sin_elev: float) -> float:
    k_l = 0.0002 * frequency_ghz ** 1.95
    return CLOUD_LIQUID_WATER_MM * k_l / sin_elev


def _faraday_rotation_deg(tec: float, frequency_ghz: float, sin_elev: float) -> float:
    return 108.0 * tec / (frequency_ghz ** 2 * sin_elev)


def _faraday_loss_db(rotation_deg: float) -> float:
    """Polarization mismatch loss for a linear feed, capped on total depolarization."""
    c = abs(cos(radians(rotation_deg)))
    if c < 0.001:
        return FARADAY_LOSS_CAP_DB
    return max(0.0, -20.0 * log10(c))


def _combined_xpd_db(rotation_deg: float, att_rain_db: float, frequency_ghz: float, xpd_antenna_db: float) -> float:
    """Power-sum the Faraday, rain and antenna cross-polar leakages.

    Returns:
        Total XPD in dB, clamped to [0, 40]
    """
    t = abs(tan(radians(rotation_deg)))
    xpd_faraday = XPD_CEILING_DB if t < 1e-6 else -20.0 * log10(t)

    if att_rain_db > 0.1:
        xpd_rain = 30.0 * log10(frequency_ghz) - 20.0 * log10(att_rain_db)
    else:
        xpd_rain = XPD_CEILING_DB

    crosstalk = from_db(-xpd_faraday) + from_db(-xpd_rain) + from_db(-xpd_antenna_db)
    return min(XPD_CEILING_DB, max(0.0, -db(crosstalk)))


def _shadowing_db(environment: Environment, elevation_deg: float) -> float:
    """Loo/LMS mean shadowing, decreasing linearly with elevation."""
    e = min(90.0, max(0.0, elevation_deg))
    if environment == Environment.URBAN:
        return 15.0 - 0.15 * e
    if environment == Environment.SUBURBAN:
        return 6.0 - 0.05 * e
    if environment == Environment.MARITIME:
        return 0.0
    return 0.5


def _sea_multipath_loss_db(frequency_ghz: float, apparent_elev_rad: float) -> float:
    """Two-ray sea reflection interference; negative values are constructive gain."""
    phase = 2.0 * pi * SEA_ANTENNA_HEIGHT_M * abs(sin(apparent_elev_rad)) * frequency_ghz / LIGHT_SPEED_GHZ_M
    gain = max(0.01, 4.0 * sin(phase) ** 2)
    return -db(gain)


def _scan_loss_db(apparent_elevation_deg: float) -> float:
    """Cosine roll-off of a flat phased array steered away from boresight (zenith)."""
    scan_angle = 90.0 - apparent_elevation_deg
    cos_scan = max(0.01, cos(radians(scan_angle)))
    return -15.0 * log10(cos_scan)


def _scintillation_sigma_db(frequency_ghz: float, tec: float, sin_elev: float) -> float:
    path_factor = sin_elev ** 1.2
    sigma_tropo = 0.025 * frequency_ghz ** 0.58 / path_factor
    sigma_iono = (tec / 100.0) * (2.0 / frequency_ghz ** 1.5) / path_factor
    return hypot(sigma_tropo, sigma_iono)


def fspl_db(slant_range_km: float, frequency_ghz: float) -> float:
    """
    Calculate Free Space Path Loss (FSPL) in dB

    Args:
        slant_range_km: Distance in kilometers
        frequency_ghz: Frequency in GHz

    Returns:
        FSPL in dB
    """
    r = max(slant_range_km, MIN_SLANT_RANGE_KM)
    f = _clamp_frequency(frequency_ghz)
    return 20.0 * log10(r) + 20.0 * log10(f) + 92.45


def _ionospheric_terms(tec: float, frequency_ghz: float, bandwidth_mhz: float, sin_elev: float) -> Tuple[float, float, float]:
    """Group delay, pulse dispersion (both ns) and the ISI-limited symbol rate (MBaud)."""
    group_delay = IONO_DELAY_CONSTANT * tec / (frequency_ghz ** 2 * sin_elev)
    dispersion = 2.0 * IONO_DELAY_CONSTANT * tec * (bandwidth_mhz / 1000.0) / (frequency_ghz ** 3 * sin_elev)
    if dispersion > 0.001:
        max_rate = 1000.0 / (2.0 * dispersion)
    else:
        max_rate = UNLIMITED_SYMBOL_RATE_MBAUD
    return group_delay, dispersion, max_rate


def _sky_noise_temperature_k(atmospheric_loss_db: float) -> float:
    return AMBIENT_TEMPERATURE_K * (1.0 - 10.0 ** (-atmospheric_loss_db / 10.0))


def compute_link_budget(params: LinkParams) -> LinkBudgetResult:
    """Compute every loss term for one snapshot.

    The order follows the physical dependency chain: refraction first (it
    sets the apparent elevation every slant-path term uses), then the
    atmosphere, polarization, terminal effects, scintillation, spreading
    loss and the ionosphere.
    """
    freq = _clamp_frequency(params.frequency_ghz)

    refraction = _refraction_correction_deg(params.elevation_deg)
    apparent = params.elevation_deg + refraction
    apparent_rad = radians(apparent)
    sin_elev = max(MIN_SIN_ELEVATION, sin(apparent_rad))

    pointing = _pointing_loss_db(refraction, params.hpbw_deg)

    att_rain = _rain_attenuation_db(freq, params.rain_rate_mm_h, params.correction_factor, sin_elev)
    att_gas = max(0.0, _zenith_gas_attenuation_db(freq) / sin_elev + params.gas_offset_db)
    att_cloud = _cloud_attenuation_db(freq, sin_elev)
    atmospheric = att_rain + att_gas + att_cloud

    rotation = _faraday_rotation_deg(params.tec_tecu, freq, sin_elev)
    loss_faraday = _faraday_loss_db(rotation)
    xpd = _combined_xpd_db(rotation, att_rain, freq, params.xpd_antenna_db)

    fade_lms = _shadowing_db(params.environment, apparent)
    multipath = 0.0
    if params.environment == Environment.MARITIME:
        multipath = _sea_multipath_loss_db(freq, apparent_rad)

    scan_loss = _scan_loss_db(apparent) if params.is_phased_array else 0.0

    sigma = _scintillation_sigma_db(freq, params.tec_tecu, sin_elev)
    if params.disable_fast_fading or params.sim_time_s == 0:
        scint_loss = 0.0
    else:
        scint_loss = fading_value(params.sim_time_s) * sigma

    absolute_fspl = fspl_db(params.slant_range_km, freq)
    reference_fspl = fspl_db(GEO_SLANT_RANGE_KM, freq)
    delta_fspl = absolute_fspl - reference_fspl

    group_delay, dispersion, max_rate = _ionospheric_terms(params.tec_tecu, freq, params.bandwidth_mhz, sin_elev)

    total_loss = (
        atmospheric
        + fade_lms
        + loss_faraday
        + delta_fspl
        + pointing
        + scan_loss
        + multipath
        + scint_loss
    )

    return LinkBudgetResult(
        apparent_elevation_deg=apparent,
        refraction_deg=refraction,
        sin_elevation=sin_elev,
        att_rain_db=att_rain,
        att_gas_db=att_gas,
        att_cloud_db=att_cloud,
        total_atmospheric_loss_db=atmospheric,
        faraday_rotation_deg=rotation,
        loss_faraday_db=loss_faraday,
        xpd_db=xpd,
        pointing_loss_db=pointing,
        fade_lms_db=fade_lms,
        multipath_loss_db=multipath,
        scan_loss_db=scan_loss,
        scintillation_sigma_db=sigma,
        scint_loss_db=scint_loss,
        absolute_fspl_db=absolute_fspl,
        reference_fspl_db=reference_fspl,
        delta_fspl_db=delta_fspl,
        group_delay_ns=group_delay,
        dispersion_ns=dispersion,
        max_symbol_rate_mbaud=max_rate,
        total_loss_db=total_loss,
        t_sky_k=_sky_noise_temperature_k(atmospheric),
    )


# Receiver side -------------------------------------------------------------

def system_noise_temperature_k(params: LinkParams, result: LinkBudgetResult) -> float:
    """LNA + sky + cosmic background, floored at 1 K."""
    return max(1.0, params.rx_noise_temp_k + result.t_sky_k + COSMIC_BACKGROUND_K)


def noise_floor_dbm(system_noise_temp_k: float, bandwidth_mhz: float) -> float:
    """kTB noise power in dBm."""
    noise_w = K_BOLTZMANN * system_noise_temp_k * bandwidth_mhz * 1e6
    return db(noise_w) + 30.0


def received_power_dbm(params: LinkParams, result: LinkBudgetResult) -> float:
    return params.eirp_dbw + 30.0 - result.total_absolute_loss_db + params.rx_gain_dbi


def carrier_to_noise_density_dbhz(rx_power_dbm: float, system_noise_temp_k: float) -> float:
    """C/N0 in dB-Hz."""
    return rx_power_dbm - 30.0 - db(K_BOLTZMANN * system_noise_temp_k)
