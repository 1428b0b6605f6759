from datetime import date, datetime

import pytest

from utils.constants import CUSTOM_UNITS, FREQUENCIES
from utils.date_helpers import add_months, month_bounds, next_date, parse_date
from utils.errors import ConfigurationError, ValidationError


class TestNextDate:
    @pytest.mark.parametrize("frequency", FREQUENCIES)
    def test_always_moves_forward(self, frequency):
        d = date(2024, 1, 31)
        assert next_date(d, frequency, 1, "day") > d

    @pytest.mark.parametrize("unit", CUSTOM_UNITS)
    @pytest.mark.parametrize("interval", [1, 2, 5])
    def test_custom_intervals_move_forward(self, unit, interval):
        d = date(2024, 2, 29)
        assert next_date(d, "custom", interval, unit) > d

    def test_fixed_day_offsets(self):
        assert next_date(date(2024, 1, 1), "weekly") == date(2024, 1, 8)
        assert next_date(date(2024, 1, 1), "biweekly") == date(2024, 1, 15)

    def test_monthly_clamps_to_short_month(self):
        assert next_date(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
        assert next_date(date(2023, 1, 31), "monthly") == date(2023, 2, 28)

    def test_month_end_drift_is_kept(self):
        d = next_date(date(2024, 1, 31), "monthly")
        assert next_date(d, "monthly") == date(2024, 3, 29)

    def test_quarterly_and_yearly(self):
        assert next_date(date(2024, 11, 30), "quarterly") == date(2025, 2, 28)
        assert next_date(date(2024, 2, 29), "yearly") == date(2025, 2, 28)

    def test_bimonthly_crosses_year(self):
        assert next_date(date(2024, 12, 15), "bimonthly") == date(2025, 2, 15)

    def test_custom_defaults(self):
        # missing unit means months, missing or zero interval means one
        assert next_date(date(2024, 1, 10), "custom") == date(2024, 2, 10)
        assert next_date(date(2024, 1, 10), "custom", 0, "day") == date(2024, 1, 11)
        assert next_date(date(2024, 1, 10), "custom", -3, "week") == date(2024, 1, 17)

    def test_custom_units(self):
        d = date(2024, 1, 10)
        assert next_date(d, "custom", 10, "day") == date(2024, 1, 20)
        assert next_date(d, "custom", 2, "week") == date(2024, 1, 24)
        assert next_date(d, "custom", 3, "month") == date(2024, 4, 10)
        assert next_date(d, "custom", 2, "year") == date(2026, 1, 10)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ConfigurationError):
            next_date(date(2024, 1, 1), "fortnightly")

    def test_unknown_custom_unit_rejected(self):
        with pytest.raises(ConfigurationError):
            next_date(date(2024, 1, 1), "custom", 2, "hour")


class TestParseDate:
    def test_parses_iso(self):
        assert parse_date("2024-03-05") == date(2024, 3, 5)

    def test_passes_dates_through(self):
        d = date(2024, 3, 5)
        assert parse_date(d) is d

    def test_datetime_is_truncated_to_date(self):
        parsed = parse_date(datetime(2024, 3, 5, 14, 30))
        assert type(parsed) is date
        assert parsed == date(2024, 3, 5)
        assert parsed < date(2024, 3, 6)

    @pytest.mark.parametrize("bad", ["2024-3-5", "03/05/2024", "2024-02-30", "", None, "2024-03-05T00:00"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(ValidationError):
            parse_date(bad)


def test_add_months_negative():
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)


def test_month_bounds():
    assert month_bounds(date(2024, 2, 10)) == (date(2024, 2, 1), date(2024, 2, 29))
