"""
Payment Allocation Module

Distributes a lump payment across a loan's due installments, oldest first.
Each installment's required payment is adjusted for timing: paying before the
due date earns a discount, paying after it costs a penalty, both at 0.1% of
the installment amount per day. Installments are paid in full or not at all.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable

from .money import ZERO, quantize_money, to_decimal
from .logging_config import get_logger

if TYPE_CHECKING:
    from .loans import LoanInstallment


ADJUSTMENT_RATE_PER_DAY = Decimal('0.001')

logger = get_logger("core_lending.payments")


def effective_payment(amount: Decimal, due_date: date, payment_date: date) -> Decimal:
    """
    Amount required to settle an installment on ``payment_date``

    Early payment (due date in the future) is discounted and late payment is
    penalized by ``amount * 0.001 * days``. Paying on the due date costs
    exactly the installment amount.
    """
    days_difference = (due_date - payment_date).days
    adjustment = amount * ADJUSTMENT_RATE_PER_DAY * abs(days_difference)

    if days_difference > 0:
        return quantize_money(amount - adjustment)
    if days_difference < 0:
        return quantize_money(amount + adjustment)
    return quantize_money(amount)


@dataclass
class PaymentResult:
    """Outcome of distributing one payment across a loan's installments"""
    paid_installments: int
    total_paid: Decimal
    remaining_funds: Decimal
    funds_exhausted: bool  # The whole payment amount was consumed
    is_loan_paid: bool = False  # Every installment of the loan is now paid

    def to_dict(self) -> Dict[str, Any]:
        return {
            'paid_installments': self.paid_installments,
            'total_paid': str(self.total_paid),
            'remaining_funds': str(self.remaining_funds),
            'funds_exhausted': self.funds_exhausted,
            'is_loan_paid': self.is_loan_paid
        }


class PaymentAllocator:
    """
    Greedy front-to-back allocator over a running balance of funds.

    Installments must be supplied unpaid and sorted by due date ascending.
    An installment that costs more than the remaining funds is skipped and
    the scan continues while any funds remain.
    """

    def __init__(self, payment_amount: Decimal):
        self.payment_amount = to_decimal(payment_amount)
        self.remaining_funds = self.payment_amount
        self.total_paid = ZERO
        self.paid_installments = 0

    def has_remaining_funds(self) -> bool:
        return self.remaining_funds > ZERO

    def process_installment(self, installment: 'LoanInstallment', payment_date: date) -> bool:
        """
        Pay one installment if the remaining funds cover its effective payment

        Returns:
            True if the installment was marked paid
        """
        required = effective_payment(installment.amount, installment.due_date, payment_date)

        if self.remaining_funds < required:
            logger.debug(
                f"Insufficient funds for installment id={installment.id}: "
                f"needed {required}, available {self.remaining_funds}"
            )
            return False

        self.remaining_funds -= required
        self.total_paid += required
        self.paid_installments += 1
        installment.mark_paid(required, payment_date)

        logger.debug(
            f"Installment id={installment.id} paid {required} "
            f"(amount {installment.amount}, due {installment.due_date}); "
            f"remaining funds {self.remaining_funds}"
        )
        return True

    def allocate(self, installments: Iterable['LoanInstallment'], payment_date: date) -> PaymentResult:
        """Run the payment against installments in the given order"""
        for installment in installments:
            if not self.has_remaining_funds():
                break
            self.process_installment(installment, payment_date)
        return self.result()

    def result(self) -> PaymentResult:
        return PaymentResult(
            paid_installments=self.paid_installments,
            total_paid=self.total_paid,
            remaining_funds=self.remaining_funds,
            funds_exhausted=self.remaining_funds == ZERO
        )
