"""
Tests for chatrelay.utils.dates.normalize: date requests, separator labels and
human-readable dates.
"""

from datetime import date, datetime, timezone

import pytest

from chatrelay.utils.dates.normalize import (
    local_now,
    normalize,
    to_display_label,
    to_human_label,
)

TZ = "America/Mexico_City"
# 2024-06-10 15:30 in Mexico City
REFERENCE = datetime(2024, 6, 10, 15, 30)


class TestNormalize:
    """Resolution of raw date text against a reference time."""

    def test_empty_is_today(self):
        assert normalize("", REFERENCE, TZ) == date(2024, 6, 10)
        assert normalize(None, REFERENCE, TZ) == date(2024, 6, 10)
        assert normalize("   ", REFERENCE, TZ) == date(2024, 6, 10)

    def test_today_tokens(self):
        assert normalize("hoy", REFERENCE, TZ) == date(2024, 6, 10)
        assert normalize("Today", REFERENCE, TZ) == date(2024, 6, 10)

    def test_yesterday_tokens(self):
        assert normalize("yesterday", REFERENCE, TZ) == date(2024, 6, 9)
        assert normalize("  AYER ", REFERENCE, TZ) == date(2024, 6, 9)

    def test_yesterday_crosses_year(self):
        assert normalize("ayer", datetime(2024, 1, 1, 8, 0), TZ) == date(2023, 12, 31)

    def test_full_date_ignores_reference(self):
        assert normalize("15/03/2024", REFERENCE, TZ) == date(2024, 3, 15)
        assert normalize("15/03/2019", REFERENCE, TZ) == date(2019, 3, 15)
        assert normalize("1/2/2024", REFERENCE, TZ) == date(2024, 2, 1)

    def test_day_month_uses_reference_year(self):
        assert normalize("15/03", REFERENCE, TZ) == date(2024, 3, 15)
        assert normalize("15/03", datetime(2021, 7, 1, 12, 0), TZ) == date(2021, 3, 15)

    def test_unrecognised_text_falls_back_to_today(self):
        assert normalize("next tuesday", REFERENCE, TZ) == date(2024, 6, 10)
        assert normalize("2024-03-15", REFERENCE, TZ) == date(2024, 6, 10)

    def test_impossible_date_falls_back_to_today(self):
        assert normalize("31/02/2024", REFERENCE, TZ) == date(2024, 6, 10)
        assert normalize("45/13", REFERENCE, TZ) == date(2024, 6, 10)

    def test_aware_reference_is_converted_to_zone(self):
        # 03:00 UTC on June 11 is still June 10 in Mexico City (UTC-6)
        utc_reference = datetime(2024, 6, 11, 3, 0, tzinfo=timezone.utc)
        assert normalize("", utc_reference, TZ) == date(2024, 6, 10)
        assert normalize("", utc_reference, "UTC") == date(2024, 6, 11)


class TestLabels:
    """Separator labels and human-readable dates."""

    def test_display_label_is_zero_padded_day_first(self):
        assert to_display_label(date(2024, 2, 4), "es-MX") == "04/02/2024"

    def test_display_label_us_is_month_first(self):
        assert to_display_label(date(2024, 2, 4), "en-US") == "02/04/2024"

    def test_human_label_spanish(self):
        assert to_human_label(date(2024, 2, 14), "es-MX") == "miércoles, 14 de febrero de 2024"

    def test_human_label_english(self):
        assert to_human_label(date(2024, 2, 14), "en-US") == "Wednesday, February 14, 2024"

    def test_human_label_unknown_language_uses_english(self):
        assert to_human_label(date(2024, 2, 14), "fr-FR") == "Wednesday, February 14, 2024"


def test_local_now_keeps_naive_wall_clock():
    now = local_now(TZ, REFERENCE)
    assert (now.hour, now.minute) == (15, 30)
    assert now.tzinfo is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
