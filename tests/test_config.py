"""
Tests for settings validation and the property calendar date
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from roomsync.config import Settings
from roomsync.utils.dates import parse_date, property_today

from conftest import TEST_SECRET


class TestSettings:
    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError):
            Settings(secret_key="too-short")

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            Settings(secret_key=TEST_SECRET, property_timezone="Mars/Olympus_Mons")

    def test_cors_origins_deduplicated(self):
        settings = Settings(
            secret_key=TEST_SECRET,
            allowed_origins="http://a.test/, http://b.test,http://a.test",
        )
        assert settings.cors_origins == ["http://a.test", "http://b.test"]


class TestDates:
    def test_property_today_follows_zone(self):
        zone = "Pacific/Kiritimati"
        assert property_today(zone) == datetime.now(ZoneInfo(zone)).date()

    def test_parse_date_formats(self):
        assert str(parse_date("2031-03-02T14:00:00Z")) == "2031-03-02"
        assert str(parse_date("02/03/2031")) == "2031-03-02"
        assert str(parse_date("20310302")) == "2031-03-02"
        assert parse_date("soon") is None
        assert parse_date("") is None
