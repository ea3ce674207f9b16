"""
Test suite for schedule module

Tests installment amount splitting and monthly due date generation. The sum of
the schedule must always equal the loan total to the cent.
"""

import pytest
from decimal import Decimal
from datetime import date

from core_lending.schedule import (
    ScheduledInstallment, add_months, first_due_date, generate_schedule, split_amount
)


class TestSplitAmount:
    """Test installment amount splitting"""

    def test_even_split(self):
        """1050.00 over 12 installments is 87.50 each"""
        amounts = split_amount(Decimal('1050.00'), 12)

        assert len(amounts) == 12
        assert all(amount == Decimal('87.50') for amount in amounts)

    def test_last_installment_absorbs_residue(self):
        """1000.00 over 3 installments leaves the extra cent on the last one"""
        amounts = split_amount(Decimal('1000.00'), 3)

        assert amounts == [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')]

    def test_base_rounds_half_up(self):
        """100.00 / 8 = 12.50 exactly, 100.01 / 2 = 50.005 rounds up to 50.01"""
        assert split_amount(Decimal('100.00'), 8)[0] == Decimal('12.50')

        amounts = split_amount(Decimal('100.01'), 2)
        assert amounts == [Decimal('50.01'), Decimal('50.00')]

    @pytest.mark.parametrize("total", ['0.01', '100.00', '999.99', '1234.57', '60000.00'])
    @pytest.mark.parametrize("count", [6, 9, 12, 24])
    def test_sum_equals_total(self, total, count):
        """Installments sum to the total and all but the last are equal"""
        amounts = split_amount(Decimal(total), count)

        assert sum(amounts) == Decimal(total)
        assert len(set(amounts[:-1])) <= 1

    def test_single_installment(self):
        """A single installment carries the whole total"""
        assert split_amount(Decimal('600.00'), 1) == [Decimal('600.00')]

    def test_invalid_count(self):
        """Installment count must be positive"""
        with pytest.raises(ValueError, match="at least 1"):
            split_amount(Decimal('100.00'), 0)


class TestDueDates:
    """Test due date arithmetic"""

    def test_first_due_date_is_first_of_next_month(self):
        assert first_due_date(date(2024, 1, 15)) == date(2024, 2, 1)
        assert first_due_date(date(2024, 1, 1)) == date(2024, 2, 1)
        assert first_due_date(date(2024, 1, 31)) == date(2024, 2, 1)

    def test_first_due_date_crosses_year(self):
        assert first_due_date(date(2024, 12, 31)) == date(2025, 1, 1)

    def test_add_months_clamps_month_end(self):
        """Adding months to the 31st lands on the last day of short months"""
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 3, 31), 1) == date(2024, 4, 30)

    def test_add_months_multiple_years(self):
        assert add_months(date(2024, 11, 1), 14) == date(2026, 1, 1)
        assert add_months(date(2024, 5, 1), 0) == date(2024, 5, 1)


class TestGenerateSchedule:
    """Test full schedule generation"""

    def test_twelve_month_schedule(self):
        """Schedule for 1050.00 over 12 months created mid-January"""
        schedule = generate_schedule(Decimal('1050.00'), 12, date(2024, 1, 15))

        assert len(schedule) == 12
        assert schedule[0] == ScheduledInstallment(number=1, due_date=date(2024, 2, 1), amount=Decimal('87.50'))
        assert schedule[-1].due_date == date(2025, 1, 1)
        assert schedule[-1].number == 12
        assert sum(entry.amount for entry in schedule) == Decimal('1050.00')

    def test_due_dates_are_consecutive_firsts(self):
        """Every due date is day 1, one calendar month after the previous"""
        schedule = generate_schedule(Decimal('600.00'), 24, date(2024, 8, 20))

        for previous, current in zip(schedule, schedule[1:]):
            assert current.due_date.day == 1
            assert current.due_date == add_months(previous.due_date, 1)
        assert schedule[0].due_date == date(2024, 9, 1)
        assert schedule[-1].due_date == date(2026, 8, 1)
