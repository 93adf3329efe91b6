from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from math import log10
from typing import List

from pydantic import BaseModel, Field

# Physical constants
LIGHT_SPEED_M_S = 299_792_458.0  # Speed of light in m/s
LIGHT_SPEED_GHZ_M = 0.299792458  # c expressed in GHz * m
K_BOLTZMANN = 1.380649e-23  # Boltzmann constant in J/K
COSMIC_BACKGROUND_K = 3.0  # Cosmic microwave background in K
AMBIENT_TEMPERATURE_K = 290.0  # Physical temperature of the lossy atmosphere

# Reference geometry
GEO_SLANT_RANGE_KM = 35786.0

# Numerical floors
FREQ_EPSILON_GHZ = 1e-6
MIN_SIN_ELEVATION = 0.01
MIN_SLANT_RANGE_KM = 1e-6

# Sentinels
UNLIMITED_SYMBOL_RATE_MBAUD = 1e6
FLAT_CHANNEL_COHERENCE_MHZ = 1e6

# dB magnitude beyond which linear ratios would overflow a float
MAX_DB_MAGNITUDE = 3000.0


class Environment(str, Enum):
    """Ground terminal surroundings driving shadowing and multipath."""
    RURAL = "rural"
    SUBURBAN = "suburban"
    URBAN = "urban"
    MARITIME = "maritime"


class TapKind(str, Enum):
    """Kind tag carried by every channel tap."""
    LOS = "LOS"
    SEA_REFLECTION = "sea-reflection"
    BUILDING_SCATTER_NEAR = "building-scatter-near"
    BUILDING_SCATTER_FAR = "building-scatter-far"
    VEGETATION_SCATTER_NEAR = "vegetation-scatter-near"
    VEGETATION_SCATTER_FAR = "vegetation-scatter-far"
    IONOSPHERIC = "ionospheric"


class LinkParams(BaseModel):
    """Link configuration for a single propagation snapshot.

    Every optional field carries an explicit default so a bare
    ``LinkParams()`` describes a clear-sky GEO Ku-band rural link.
    """
    # RF
    frequency_ghz: float = Field(12.0, gt=0, description="Carrier frequency in GHz")
    bandwidth_mhz: float = Field(400.0, gt=0, description="Signal bandwidth in MHz")

    # Geometry
    elevation_deg: float = Field(90.0, ge=-90, le=90, description="Geometric elevation angle in degrees")
    slant_range_km: float = Field(GEO_SLANT_RANGE_KM, gt=0, description="Slant range in kilometers")

    # Environment
    environment: Environment = Field(Environment.RURAL, description="Ground terminal environment")
    rain_rate_mm_h: float = Field(0.0, ge=0, description="Rain rate in mm/h")
    tec_tecu: float = Field(50.0, ge=0, description="Total electron content in TECU")

    # Antenna
    xpd_antenna_db: float = Field(35.0, description="Antenna cross-polarization discrimination in dB")
    hpbw_deg: float = Field(2.0, ge=0, description="Half-power beamwidth in degrees (0 disables pointing loss)")
    is_phased_array: bool = Field(False, description="Apply phased-array scan loss")

    # Transmitter / receiver
    eirp_dbw: float = Field(60.0, description="Satellite EIRP in dBW")
    rx_gain_dbi: float = Field(42.0, description="Receive antenna gain in dBi")
    rx_noise_temp_k: float = Field(150.0, ge=0, description="Receiver LNA noise temperature in Kelvin")

    # Time
    sim_time_s: float = Field(0.0, ge=0, description="Simulation time in seconds (0 = static)")
    disable_fast_fading: bool = Field(False, description="Suppress realized scintillation")

    # Calibration
    correction_factor: float = Field(1.0, ge=0, description="Rain attenuation correction multiplier")
    gas_offset_db: float = Field(0.0, description="Gas attenuation offset in dB")
    scatter_offset_db: float = Field(0.0, description="Scatter tap power offset in dB")


@dataclass
class LinkBudgetResult:
    """Every loss and metric term for one geometry + environment snapshot."""
    # Geometry
    apparent_elevation_deg: float
    refraction_deg: float
    sin_elevation: float

    # Atmosphere
    att_rain_db: float
    att_gas_db: float
    att_cloud_db: float
    total_atmospheric_loss_db: float

    # Polarization
    faraday_rotation_deg: float
    loss_faraday_db: float
    xpd_db: float

    # Terminal and environment
    pointing_loss_db: float
    fade_lms_db: float
    multipath_loss_db: float
    scan_loss_db: float

    # Scintillation
    scintillation_sigma_db: float
    scint_loss_db: float

    # Spreading loss
    absolute_fspl_db: float
    reference_fspl_db: float
    delta_fspl_db: float

    # Ionosphere
    group_delay_ns: float
    dispersion_ns: float
    max_symbol_rate_mbaud: float

    # Totals
    total_loss_db: float
    t_sky_k: float

    @property
    def total_absolute_loss_db(self) -> float:
        """Total loss with the GEO-relative FSPL swapped for the absolute one."""
        return self.absolute_fspl_db + self.total_loss_db - self.delta_fspl_db


@dataclass
class ChannelTap:
    index: int
    label: str
    delay_ns: float
    excess_delay_ns: float
    amplitude_linear: float
    amplitude_db: float
    phase_rad: float


@dataclass
class CIR:
    taps: List[ChannelTap]
    rms_delay_spread_ns: float
    coherence_bandwidth_mhz: float
    absolute_fspl_db: float
    total_atmospheric_loss_db: float


@dataclass
class MimoCapacity:
    rank1_bps_hz: float
    rank2_bps_hz: float


@dataclass
class LookAngles:
    """Output contract of an orbit propagator for one timestamp."""
    elevation_deg: float
    azimuth_deg: float
    slant_range_km: float


@dataclass
class TimelineFrame:
    timestamp: datetime
    frame_index: int
    elevation_deg: float
    azimuth_deg: float
    slant_range_km: float
    sim_time_s: float
    budget: LinkBudgetResult
    rx_power_dbm: float
    noise_floor_dbm: float
    system_noise_temp_k: float
    snr_db: float
    cn0_dbhz: float
    capacity: MimoCapacity
    cir: CIR
    visible: bool = field(init=False)

    def __post_init__(self) -> None:
        self.visible = self.elevation_deg > 0.0


def db(x: float) -> float:
    """Convert a power ratio to decibels (floored at the smallest positive float)."""
    return 10.0 * log10(max(x, 1e-300))


def from_db(x_db: float) -> float:
    """Convert decibels to a linear power ratio (clamped to 1e-300..1e300)."""
    x_db = min(MAX_DB_MAGNITUDE, max(-MAX_DB_MAGNITUDE, x_db))
    return 10.0 ** (x_db / 10.0)
