from __future__ import annotations

from datetime import datetime, timezone

import pytest

from satchannel.services.orbit import GroundStation

# ISS, epoch 2023-09-06 12:31 UTC
ISS_LINE1 = "1 25544U 98067A   23249.52157811  .00018042  00000-0  32479-3 0  9997"
ISS_LINE2 = "2 25544  51.6420 330.1245 0005273  19.5398  65.7335 15.49841804414341"


@pytest.fixture
def iss_tle():
    return ISS_LINE1, ISS_LINE2


@pytest.fixture
def iss_epoch():
    return datetime(2023, 9, 6, 12, 31, tzinfo=timezone.utc)


@pytest.fixture
def station():
    return GroundStation(lat=40.0, lon=-75.0, alt_m=50.0)
