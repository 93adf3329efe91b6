from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timedelta, timezone

import pytest

from satchannel.exporters import SCALAR_COLUMNS, calibration_table, timeline_csv, timeline_json
from satchannel.rf.models import Environment, LinkParams, LookAngles
from satchannel.services.calibration import create_default_calibration
from satchannel.services.timeseries import generate_channel_time_series

START = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)


class ClimbingPropagator:
    def look_angles(self, t):
        offset = (t - START).total_seconds()
        return LookAngles(elevation_deg=10.0 + offset, azimuth_deg=200.0, slant_range_km=1500.0)


@pytest.fixture
def frames():
    urban = generate_channel_time_series(
        ClimbingPropagator(), START, START + timedelta(seconds=20), 10.0,
        LinkParams(environment=Environment.URBAN, frequency_ghz=1.5),
    )
    rural = generate_channel_time_series(
        ClimbingPropagator(), START, START, 10.0,
        LinkParams(environment=Environment.RURAL, frequency_ghz=30.0, tec_tecu=0.0),
    )
    return urban + rural


def test_csv_has_header_and_padded_tap_block(frames):
    rows = list(csv.reader(io.StringIO(timeline_csv(frames))))
    header, body = rows[0], rows[1:]

    max_taps = max(len(f.cir.taps) for f in frames)
    assert header[: len(SCALAR_COLUMNS)] == SCALAR_COLUMNS
    assert len(header) == len(SCALAR_COLUMNS) + 4 * max_taps
    assert header[len(SCALAR_COLUMNS)] == "Tap0_Label"
    assert len(body) == len(frames)
    assert all(len(r) == len(header) for r in body)

    # single-tap rural frame is padded with blanks
    last = body[-1]
    assert last[len(SCALAR_COLUMNS)] == "LOS"
    assert last[-1] == ""


def test_csv_scalars(frames):
    rows = list(csv.DictReader(io.StringIO(timeline_csv(frames))))
    assert rows[0]["Timestamp"] == "2024-03-01T06:00:00Z"
    assert rows[0]["Frame"] == "0"
    assert rows[1]["SimTime_s"] == "10.0"
    assert rows[0]["Visible"] == "1"
    assert int(rows[0]["TapCount"]) == len(frames[0].cir.taps)


def test_csv_empty():
    assert timeline_csv([]).strip() == ",".join(SCALAR_COLUMNS)


def test_json_groups(frames):
    doc = json.loads(timeline_json(frames, {"satellite": "TEST"}))
    assert doc["metadata"] == {"satellite": "TEST", "frameCount": len(frames)}
    first = doc["frames"][0]
    for group in ("geometry", "linkBudget", "attenuation", "noise", "polarization", "mimo", "ionosphere", "cir"):
        assert group in first
    assert first["cir"]["taps"][0]["label"] == "LOS"
    assert first["linkBudget"]["snr_dB"] == pytest.approx(frames[0].snr_db)


def test_calibration_table():
    profile = create_default_calibration()
    profile.params["rain_correction"] = 1.25
    rows = calibration_table(profile)
    assert [r["name"] for r in rows] == list(profile.params)
    rain = rows[0]
    assert rain == {
        "name": "rain_correction",
        "label": "Rain correction factor",
        "value": 1.25,
        "min": 0.3,
        "max": 3.0,
        "default": 1.0,
    }
