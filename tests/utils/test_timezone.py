"""Tests for utils/timezone.py - UTC storage, workshop calendar."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from utils.timezone import business_date, now_utc, to_utc


class TestNowUtc:

    def test_is_aware_utc(self):
        assert now_utc().tzinfo == timezone.utc


class TestToUtc:

    def test_raises_on_naive(self):
        with pytest.raises(ValueError, match="naive"):
            to_utc(datetime(2026, 1, 1, 12, 0, 0))

    def test_converts_workshop_time(self):
        """Kuala Lumpur 12:00 is 04:00 UTC (UTC+8, no DST)."""
        local = datetime(2026, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("Asia/Kuala_Lumpur"))

        result = to_utc(local)

        assert result.tzinfo == timezone.utc
        assert result.hour == 4


class TestBusinessDate:

    def test_late_utc_evening_is_next_day_at_workshop(self):
        """An invoice written at 20:00 UTC on the 31st belongs to the 1st in KL."""
        dt = datetime(2026, 1, 31, 20, 0, 0, tzinfo=timezone.utc)
        assert business_date(dt) == date(2026, 2, 1)

    def test_explicit_timezone(self):
        dt = datetime(2026, 1, 1, 3, 0, 0, tzinfo=timezone.utc)
        assert business_date(dt, "America/Chicago") == date(2025, 12, 31)

    def test_raises_on_naive(self):
        with pytest.raises(ValueError, match="naive"):
            business_date(datetime(2026, 1, 1))

    def test_raises_on_invalid_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            business_date(now_utc(), "Not/A/Timezone")
