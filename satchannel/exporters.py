from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, List, Optional, Sequence

from satchannel.rf.models import TimelineFrame
from satchannel.services.calibration import CalibrationProfile, get_calibration_param_defs
from satchannel.utils import to_iso

SCALAR_COLUMNS = [
    "Timestamp",
    "Frame",
    "SimTime_s",
    "Visible",
    "Elevation_deg",
    "Azimuth_deg",
    "SlantRange_km",
    "ApparentElevation_deg",
    "FSPL_dB",
    "DeltaFSPL_dB",
    "RainAtt_dB",
    "GasAtt_dB",
    "CloudAtt_dB",
    "AtmosphericLoss_dB",
    "FaradayRotation_deg",
    "FaradayLoss_dB",
    "XPD_dB",
    "PointingLoss_dB",
    "Shadowing_dB",
    "Multipath_dB",
    "ScanLoss_dB",
    "ScintSigma_dB",
    "ScintLoss_dB",
    "TotalLoss_dB",
    "TSky_K",
    "TSys_K",
    "RxPower_dBm",
    "NoiseFloor_dBm",
    "SNR_dB",
    "CN0_dBHz",
    "Rank1_bpsHz",
    "Rank2_bpsHz",
    "GroupDelay_ns",
    "Dispersion_ns",
    "MaxSymbolRate_MBaud",
    "RMSDelaySpread_ns",
    "CoherenceBW_MHz",
    "TapCount",
]


def _scalar_row(f: TimelineFrame) -> List[Any]:
    b = f.budget
    return [
        to_iso(f.timestamp),
        f.frame_index,
        f"{f.sim_time_s:.1f}",
        int(f.visible),
        f"{f.elevation_deg:.3f}",
        f"{f.azimuth_deg:.3f}",
        f"{f.slant_range_km:.3f}",
        f"{b.apparent_elevation_deg:.3f}",
        f"{b.absolute_fspl_db:.3f}",
        f"{b.delta_fspl_db:.3f}",
        f"{b.att_rain_db:.4f}",
        f"{b.att_gas_db:.4f}",
        f"{b.att_cloud_db:.4f}",
        f"{b.total_atmospheric_loss_db:.4f}",
        f"{b.faraday_rotation_deg:.4f}",
        f"{b.loss_faraday_db:.4f}",
        f"{b.xpd_db:.3f}",
        f"{b.pointing_loss_db:.4f}",
        f"{b.fade_lms_db:.3f}",
        f"{b.multipath_loss_db:.3f}",
        f"{b.scan_loss_db:.3f}",
        f"{b.scintillation_sigma_db:.4f}",
        f"{b.scint_loss_db:.4f}",
        f"{b.total_loss_db:.3f}",
        f"{b.t_sky_k:.2f}",
        f"{f.system_noise_temp_k:.2f}",
        f"{f.rx_power_dbm:.3f}",
        f"{f.noise_floor_dbm:.3f}",
        f"{f.snr_db:.3f}",
        f"{f.cn0_dbhz:.3f}",
        f"{f.capacity.rank1_bps_hz:.4f}",
        f"{f.capacity.rank2_bps_hz:.4f}",
        f"{b.group_delay_ns:.3f}",
        f"{b.dispersion_ns:.4f}",
        f"{b.max_symbol_rate_mbaud:.4f}",
        f"{f.cir.rms_delay_spread_ns:.4f}",
        f"{f.cir.coherence_bandwidth_mhz:.4f}",
        len(f.cir.taps),
    ]


def timeline_csv(frames: Sequence[TimelineFrame]) -> str:
    """One row per frame: every scalar plus a flattened tap table padded to the widest frame."""
    max_taps = max((len(f.cir.taps) for f in frames), default=0)

    header = list(SCALAR_COLUMNS)
    for i in range(max_taps):
        header += [
            f"Tap{i}_Label",
            f"Tap{i}_ExcessDelay_ns",
            f"Tap{i}_Amplitude_dB",
            f"Tap{i}_Phase_rad",
        ]

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    for f in frames:
        row = _scalar_row(f)
        for tap in f.cir.taps:
            row += [tap.label, f"{tap.excess_delay_ns:.3f}", f"{tap.amplitude_db:.3f}", f"{tap.phase_rad:.4f}"]
        row += [""] * (4 * (max_taps - len(f.cir.taps)))
        writer.writerow(row)
    return buf.getvalue()


def _frame_dict(f: TimelineFrame) -> Dict[str, Any]:
    b = f.budget
    return {
        "timestamp": to_iso(f.timestamp),
        "frame": f.frame_index,
        "simTime_s": f.sim_time_s,
        "visible": f.visible,
        "geometry": {
            "elevation_deg": f.elevation_deg,
            "apparentElevation_deg": b.apparent_elevation_deg,
            "azimuth_deg": f.azimuth_deg,
            "slantRange_km": f.slant_range_km,
        },
        "linkBudget": {
            "fspl_dB": b.absolute_fspl_db,
            "deltaFspl_dB": b.delta_fspl_db,
            "totalLoss_dB": b.total_loss_db,
            "rxPower_dBm": f.rx_power_dbm,
            "snr_dB": f.snr_db,
            "cn0_dBHz": f.cn0_dbhz,
        },
        "attenuation": {
            "rain_dB": b.att_rain_db,
            "gas_dB": b.att_gas_db,
            "cloud_dB": b.att_cloud_db,
            "atmospheric_dB": b.total_atmospheric_loss_db,
            "pointing_dB": b.pointing_loss_db,
            "shadowing_dB": b.fade_lms_db,
            "multipath_dB": b.multipath_loss_db,
            "scan_dB": b.scan_loss_db,
            "scintillation_dB": b.scint_loss_db,
            "scintillationSigma_dB": b.scintillation_sigma_db,
        },
        "noise": {
            "tSky_K": b.t_sky_k,
            "tSys_K": f.system_noise_temp_k,
            "noiseFloor_dBm": f.noise_floor_dbm,
        },
        "polarization": {
            "faradayRotation_deg": b.faraday_rotation_deg,
            "faradayLoss_dB": b.loss_faraday_db,
            "xpd_dB": b.xpd_db,
        },
        "mimo": {
            "rank1_bpsHz": f.capacity.rank1_bps_hz,
            "rank2_bpsHz": f.capacity.rank2_bps_hz,
        },
        "ionosphere": {
            "groupDelay_ns": b.group_delay_ns,
            "dispersion_ns": b.dispersion_ns,
            "maxSymbolRate_MBaud": b.max_symbol_rate_mbaud,
        },
        "cir": {
            "rmsDelaySpread_ns": f.cir.rms_delay_spread_ns,
            "coherenceBandwidth_MHz": f.cir.coherence_bandwidth_mhz,
            "taps": [
                {
                    "index": t.index,
                    "label": t.label,
                    "delay_ns": t.delay_ns,
                    "excessDelay_ns": t.excess_delay_ns,
                    "amplitude_dB": t.amplitude_db,
                    "phase_rad": t.phase_rad,
                }
                for t in f.cir.taps
            ],
        },
    }


def timeline_document(frames: Sequence[TimelineFrame], metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "metadata": dict(metadata or {}, frameCount=len(frames)),
        "frames": [_frame_dict(f) for f in frames],
    }


def timeline_json(frames: Sequence[TimelineFrame], metadata: Optional[Dict[str, Any]] = None) -> str:
    return json.dumps(timeline_document(frames, metadata), indent=2)


def calibration_table(profile: CalibrationProfile) -> List[Dict[str, Any]]:
    """Display rows for a calibration profile, one per fitted parameter."""
    rows = []
    for d in get_calibration_param_defs():
        rows.append(
            {
                "name": d.key,
                "label": d.label,
                "value": profile.params.get(d.key, d.default),
                "min": d.min,
                "max": d.max,
                "default": d.default,
            }
        )
    return rows
