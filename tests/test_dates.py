"""
Unit tests for date arithmetic
"""

import pytest
from datetime import date, datetime

from immunotrack.errors import InvalidDateError
from immunotrack.modules.dates import (
    add_days, age_in_days, age_in_years, days_between, describe_age,
    next_birthday, require_date
)


class TestRequireDate:
    """Test date presence checks"""

    def test_none_is_rejected(self):
        """Test that a missing date raises instead of defaulting"""
        with pytest.raises(InvalidDateError, match="birth_date is required"):
            require_date(None, "birth_date")

    def test_wrong_type_is_rejected(self):
        with pytest.raises(InvalidDateError):
            require_date("2024-01-01", "reference_date")

    def test_datetime_is_truncated(self):
        assert require_date(datetime(2024, 5, 3, 17, 45)) == date(2024, 5, 3)

    def test_invalid_date_error_is_value_error(self):
        """Test callers catching ValueError still see date failures"""
        with pytest.raises(ValueError):
            age_in_days(None, date(2024, 1, 1))


class TestDayArithmetic:
    """Test day-based helpers"""

    def test_days_between_is_signed(self):
        assert days_between(date(2024, 1, 1), date(2024, 3, 2)) == 61
        assert days_between(date(2024, 3, 2), date(2024, 1, 1)) == -61

    def test_age_in_days_across_leap_february(self):
        assert age_in_days(date(2024, 1, 1), date(2024, 3, 1)) == 60

    def test_add_days(self):
        assert add_days(date(2024, 1, 1), 60) == date(2024, 3, 1)
        assert add_days(date(2024, 1, 1), -1) == date(2023, 12, 31)


class TestBirthdays:
    """Test year-based helpers"""

    def test_age_in_years_before_and_after_birthday(self):
        assert age_in_years(date(2020, 6, 15), date(2024, 6, 14)) == 3
        assert age_in_years(date(2020, 6, 15), date(2024, 6, 15)) == 4

    def test_next_birthday_this_year(self):
        assert next_birthday(date(2021, 8, 20), date(2024, 8, 18)) == date(2024, 8, 20)

    def test_next_birthday_rolls_to_next_year(self):
        """Test that a birthday already passed rolls over"""
        assert next_birthday(date(2021, 1, 10), date(2024, 3, 1)) == date(2025, 1, 10)

    def test_next_birthday_on_the_day(self):
        assert next_birthday(date(2021, 3, 1), date(2024, 3, 1)) == date(2024, 3, 1)

    def test_leap_day_birthday_in_common_year(self):
        assert next_birthday(date(2020, 2, 29), date(2023, 2, 1)) == date(2023, 2, 28)


class TestDescribeAge:
    """Test esquema age labels"""

    @pytest.mark.parametrize("days,label", [
        (0, "Al nacer"),
        (15, "15 días"),
        (60, "2 meses"),
        (45, "1 mes"),
        (365, "12 meses"),
        (540, "1 año y 5 meses"),
        (1460, "4 años"),
        (-1, "Edad no válida"),
        (None, "Edad no válida"),
    ])
    def test_labels(self, days, label):
        assert describe_age(days) == label
