"""
Installment Scheduling Module

Splits a loan's total amount into equal monthly installments. The last
installment absorbs the rounding residue so that the installments always sum
to the loan total exactly. Due dates fall on the first day of each month,
starting with the month after the loan was created.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from .money import quantize_money


@dataclass(frozen=True)
class ScheduledInstallment:
    """Single entry in an installment schedule"""
    number: int  # 1-based position in the schedule
    due_date: date
    amount: Decimal


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def first_due_date(created: date) -> date:
    """First day of the month following the creation date"""
    return add_months(created.replace(day=1), 1)


def split_amount(total_amount: Decimal, count: int) -> List[Decimal]:
    """
    Split a total into ``count`` installment amounts.

    Every installment but the last is ``total / count`` rounded half-up to
    cents; the last is whatever remains.
    """
    if count < 1:
        raise ValueError("Installment count must be at least 1")

    total_amount = quantize_money(total_amount)
    base = quantize_money(total_amount / Decimal(count))
    last = total_amount - base * (count - 1)
    return [base] * (count - 1) + [last]


def generate_schedule(total_amount: Decimal, count: int, created: date) -> List[ScheduledInstallment]:
    """
    Generate the installment schedule for a loan

    Args:
        total_amount: Loan total (principal plus interest), two decimals
        count: Number of monthly installments
        created: Loan creation date

    Returns:
        List of ScheduledInstallment ordered by due date
    """
    first_due = first_due_date(created)
    return [
        ScheduledInstallment(
            number=index + 1,
            due_date=add_months(first_due, index),
            amount=amount
        )
        for index, amount in enumerate(split_amount(total_amount, count))
    ]
