"""
Loan Module

Handles loan creation against a customer's credit limit, installment schedule
persistence, payment distribution across due installments and loan payoff.
"""

from decimal import Decimal
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import calendar
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .config import LendingConfig
from .customers import CustomerManager
from .exceptions import (
    CreditLimitExceededError, CustomerNotFoundError, InvalidInstallmentError,
    InvalidInterestRateError, InvalidLoanAmountError, InvalidPaymentAmountError,
    LendingError, LoanNotFoundError, NoInstallmentsDueError, UnauthorizedAccessError
)
from .money import ZERO, quantize_money, to_decimal
from .payments import PaymentAllocator, PaymentResult
from .schedule import add_months, generate_schedule, split_amount
from .security import AccessGuard, Caller
from .logging_config import get_logger, log_action


@dataclass
class Loan(StorageRecord):
    """Consumer loan; owns its installments through LoanInstallment.loan_id"""
    customer_id: str
    loan_amount: Decimal  # Principal plus interest
    number_of_installments: int
    create_date: date
    is_paid: bool = False

    def __post_init__(self):
        self.loan_amount = quantize_money(self.loan_amount)
        if self.number_of_installments < 1:
            raise ValueError("Loan must have at least one installment")

    def mark_as_paid(self) -> None:
        self.is_paid = True
        self.touch()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            customer_id=data['customer_id'],
            loan_amount=Decimal(data['loan_amount']),
            number_of_installments=int(data['number_of_installments']),
            create_date=date.fromisoformat(data['create_date']),
            is_paid=bool(data.get('is_paid', False))
        )


@dataclass
class LoanInstallment(StorageRecord):
    """Single scheduled installment of a loan"""
    loan_id: str
    amount: Decimal
    due_date: date
    paid_amount: Decimal = ZERO
    payment_date: Optional[date] = None
    is_paid: bool = False

    def __post_init__(self):
        self.amount = quantize_money(self.amount)
        self.paid_amount = quantize_money(self.paid_amount)

    def mark_paid(self, paid_amount: Decimal, payment_date: date) -> None:
        """Settle the installment; a paid installment is never paid again"""
        if self.is_paid:
            raise ValueError(f"Installment {self.id} is already paid")
        self.paid_amount = quantize_money(paid_amount)
        self.payment_date = payment_date
        self.is_paid = True
        self.touch()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanInstallment':
        payment_date = data.get('payment_date')
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            amount=Decimal(data['amount']),
            due_date=date.fromisoformat(data['due_date']),
            paid_amount=Decimal(data.get('paid_amount', '0.00')),
            payment_date=date.fromisoformat(payment_date) if payment_date else None,
            is_paid=bool(data.get('is_paid', False))
        )


@dataclass
class LoanRequest:
    """Loan creation request"""
    customer_id: Optional[str]  # Ignored for non-admin callers
    amount: Decimal  # Principal
    interest_rate: Decimal
    number_of_installments: int


class LoanManager:
    """
    Loan lifecycle controller

    Every state-changing operation runs as a single storage unit of work so the
    loan, its installments, the customer's credit ledger and the audit trail
    change together or not at all.
    """

    def __init__(
        self,
        storage: StorageInterface,
        customer_manager: CustomerManager,
        audit_trail: AuditTrail,
        config: LendingConfig,
        access_guard: AccessGuard,
        clock: Callable[[], date] = date.today
    ):
        self.storage = storage
        self.customer_manager = customer_manager
        self.audit_trail = audit_trail
        self.config = config
        self.access_guard = access_guard
        self.clock = clock
        self.loans_table = "loans"
        self.installments_table = "loan_installments"
        self.logger = get_logger("core_lending.loans")

    def create_loan(self, request: LoanRequest, caller: Optional[Caller]) -> Loan:
        """
        Create a loan with its installment schedule

        Non-admin callers always borrow for their own customer record,
        whatever customer id the request carries.

        Args:
            request: Principal, interest rate, installment count and customer
            caller: Identity performing the request

        Returns:
            Created Loan

        Raises:
            InvalidInstallmentError: Installment count not allowed
            InvalidInterestRateError: Rate outside the configured range
            InvalidLoanAmountError: Principal not positive, fractions of a cent, or too
                small to give every installment a positive amount
            CustomerNotFoundError: Customer record missing
            CreditLimitExceededError: Loan total does not fit the credit limit
        """
        caller = self.access_guard.require_authenticated(caller)

        customer_id = request.customer_id
        if not caller.is_admin:
            customer_id = self.access_guard.current_customer_id(caller)
            if customer_id is None:
                self.logger.warning(f"No customer linked to username {caller.username}")
                raise CustomerNotFoundError(caller.username)

        self._validate_request(request)
        principal = to_decimal(request.amount)
        rate = to_decimal(request.interest_rate)

        try:
            with self.storage.atomic():
                customer = self.customer_manager.require_customer(customer_id)

                total_amount = quantize_money(principal * (Decimal('1') + rate))
                self.logger.debug(
                    f"Loan total for customer {customer_id}: {principal} x (1 + {rate}) = {total_amount}"
                )

                if not customer.can_borrow(total_amount):
                    self.logger.warning(
                        f"Credit limit exceeded for customer {customer_id}: "
                        f"used {customer.used_credit_limit} + {total_amount} > {customer.credit_limit}"
                    )
                    raise CreditLimitExceededError(
                        f"Credit limit exceeded: used {customer.used_credit_limit} + requested "
                        f"{total_amount} > limit {customer.credit_limit}"
                    )

                now = datetime.now(timezone.utc)
                loan = Loan(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    customer_id=customer.id,
                    loan_amount=total_amount,
                    number_of_installments=request.number_of_installments,
                    create_date=self.clock()
                )
                self._save_loan(loan)

                for entry in generate_schedule(total_amount, loan.number_of_installments, loan.create_date):
                    self._save_installment(LoanInstallment(
                        id=str(uuid.uuid4()),
                        created_at=now,
                        updated_at=now,
                        loan_id=loan.id,
                        amount=entry.amount,
                        due_date=entry.due_date
                    ))

                customer.use_credit(total_amount)
                self.customer_manager.save_customer(customer)

                self.audit_trail.log_event(
                    event_type=AuditEventType.LOAN_CREATED,
                    entity_type="loan",
                    entity_id=loan.id,
                    metadata={
                        "customer_id": customer.id,
                        "principal": principal,
                        "interest_rate": rate,
                        "loan_amount": total_amount,
                        "number_of_installments": loan.number_of_installments
                    },
                    user_id=caller.username
                )
                self.audit_trail.log_event(
                    event_type=AuditEventType.CREDIT_LIMIT_USED,
                    entity_type="customer",
                    entity_id=customer.id,
                    metadata={
                        "loan_id": loan.id,
                        "amount": total_amount,
                        "used_credit_limit": customer.used_credit_limit
                    },
                    user_id=caller.username
                )
        except LendingError:
            raise
        except Exception:
            self.logger.exception(f"Loan creation failed for customer {customer_id}")
            raise

        log_action(
            self.logger, "info", f"Loan created: {loan.id}",
            user_id=caller.username, action="create_loan", resource="loan",
            extra={
                "loan_id": loan.id,
                "customer_id": loan.customer_id,
                "loan_amount": str(loan.loan_amount),
                "number_of_installments": loan.number_of_installments
            }
        )
        return loan

    def process_payment(self, loan_id: str, amount: Decimal, caller: Optional[Caller]) -> PaymentResult:
        """
        Pay as many due installments of a loan as the amount covers

        Installments are considered oldest first and only when they fall due
        before the payment window closes. When the last unpaid installment is
        settled the loan is marked paid and its amount returned to the
        customer's available credit.

        Raises:
            InvalidPaymentAmountError: Negative amount or fractions of a cent
            LoanNotFoundError: Unknown loan
            UnauthorizedPaymentError: Caller neither admin nor owner
            NoInstallmentsDueError: Nothing unpaid inside the payment window
        """
        caller = self.access_guard.require_authenticated(caller)

        amount = to_decimal(amount)
        if amount < ZERO:
            self.logger.warning(f"Negative payment amount {amount} for loan {loan_id}")
            raise InvalidPaymentAmountError(f"Payment amount cannot be negative: {amount}")
        if amount != quantize_money(amount):
            self.logger.warning(f"Sub-cent payment amount {amount} for loan {loan_id}")
            raise InvalidPaymentAmountError(f"Payment amount has more than two decimals: {amount}")

        try:
            with self.storage.atomic():
                loan = self._require_loan(loan_id)
                self.access_guard.require_loan_payment(caller, loan)

                today = self.clock()
                window_end = self.payment_window_end(today)
                due_installments = [
                    installment for installment in self._load_installments(loan.id)
                    if not installment.is_paid and installment.due_date < window_end
                ]
                if not due_installments:
                    self.logger.warning(f"No installments due for loan {loan.id} before {window_end}")
                    raise NoInstallmentsDueError(
                        f"No unpaid installments due before {window_end.isoformat()} for loan {loan.id}"
                    )

                allocator = PaymentAllocator(amount)
                result = allocator.allocate(due_installments, today)
                for installment in due_installments:
                    self._save_installment(installment)

                if result.paid_installments:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.LOAN_PAYMENT_MADE,
                        entity_type="loan",
                        entity_id=loan.id,
                        metadata={
                            "amount": amount,
                            "paid_installments": result.paid_installments,
                            "total_paid": result.total_paid,
                            "remaining_funds": result.remaining_funds,
                            "payment_date": today
                        },
                        user_id=caller.username
                    )

                result.is_loan_paid = self._settle_if_fully_paid(loan, caller)
        except LendingError:
            raise
        except Exception:
            self.logger.exception(f"Payment processing failed for loan {loan_id}")
            raise

        log_action(
            self.logger, "info", f"Payment processed for loan {loan_id}",
            user_id=caller.username, action="pay_loan", resource="loan",
            extra={"loan_id": loan_id, **result.to_dict()}
        )
        return result

    def get_loan(self, loan_id: str, caller: Optional[Caller]) -> Loan:
        """Get a single loan visible to the caller"""
        return self._require_visible_loan(loan_id, caller)

    def get_loans_by_customer(self, customer_id: str, caller: Optional[Caller]) -> List[Loan]:
        """Get all loans of a customer; admins or the customer themself only"""
        self.access_guard.require_customer_access(caller, customer_id)
        loans_data = self.storage.find(self.loans_table, {"customer_id": customer_id})
        return [Loan.from_dict(data) for data in loans_data]

    def get_all_loans(self, caller: Optional[Caller]) -> List[Loan]:
        """Get every loan in the system; admins only"""
        self.access_guard.require_admin(caller)
        return [Loan.from_dict(data) for data in self.storage.load_all(self.loans_table)]

    def get_installments_by_loan(self, loan_id: str, caller: Optional[Caller]) -> List[LoanInstallment]:
        """Get a loan's installments ordered by due date"""
        loan = self._require_visible_loan(loan_id, caller)
        return self._load_installments(loan.id)

    def payment_window_end(self, today: date) -> date:
        """
        Exclusive upper bound on due dates payable today

        The configured day of the month, ``max_allowed_due_month_count``
        months after the current month. Clamped to the end of short months.
        """
        month_start = add_months(today.replace(day=1), self.config.max_allowed_due_month_count)
        last_day = calendar.monthrange(month_start.year, month_start.month)[1]
        return month_start.replace(day=min(self.config.day_of_payment, last_day))

    def _validate_request(self, request: LoanRequest) -> None:
        if request.number_of_installments not in self.config.installments_allowed:
            self.logger.warning(f"Rejected installment count {request.number_of_installments}")
            raise InvalidInstallmentError(
                f"Number of installments must be one of {sorted(self.config.installments_allowed)}"
            )

        rate = to_decimal(request.interest_rate)
        if rate < self.config.interest_min or rate > self.config.interest_max:
            self.logger.warning(f"Rejected interest rate {rate}")
            raise InvalidInterestRateError(
                f"Interest rate must be between {self.config.interest_min} and {self.config.interest_max}"
            )

        principal = to_decimal(request.amount)
        if principal <= ZERO:
            self.logger.warning(f"Rejected loan amount {request.amount}")
            raise InvalidLoanAmountError("Loan amount must be positive")
        if principal != quantize_money(principal):
            self.logger.warning(f"Rejected sub-cent loan amount {request.amount}")
            raise InvalidLoanAmountError("Loan amount cannot have more than two decimals")

        total_amount = quantize_money(principal * (Decimal('1') + rate))
        if min(split_amount(total_amount, request.number_of_installments)) <= ZERO:
            self.logger.warning(
                f"Rejected loan amount {request.amount}: too small for "
                f"{request.number_of_installments} installments"
            )
            raise InvalidLoanAmountError(
                f"Loan amount too small to split into {request.number_of_installments} installments"
            )

    def _settle_if_fully_paid(self, loan: Loan, caller: Caller) -> bool:
        """Mark the loan paid and release its credit once every installment is paid"""
        if loan.is_paid:
            return True
        if not all(installment.is_paid for installment in self._load_installments(loan.id)):
            return False

        loan.mark_as_paid()
        self._save_loan(loan)

        customer = self.customer_manager.require_customer(loan.customer_id)
        customer.release_credit(loan.loan_amount)
        self.customer_manager.save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_PAID_OFF,
            entity_type="loan",
            entity_id=loan.id,
            metadata={"customer_id": customer.id, "loan_amount": loan.loan_amount},
            user_id=caller.username
        )
        self.audit_trail.log_event(
            event_type=AuditEventType.CREDIT_LIMIT_RELEASED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={
                "loan_id": loan.id,
                "amount": loan.loan_amount,
                "used_credit_limit": customer.used_credit_limit
            },
            user_id=caller.username
        )
        self.logger.info(f"Loan {loan.id} paid off; released {loan.loan_amount} for customer {customer.id}")
        return True

    def _require_loan(self, loan_id: str) -> Loan:
        loan_data = self.storage.load(self.loans_table, loan_id)
        if not loan_data:
            self.logger.warning(f"Loan not found: id={loan_id}")
            raise LoanNotFoundError(loan_id)
        return Loan.from_dict(loan_data)

    def _require_visible_loan(self, loan_id: str, caller: Optional[Caller]) -> Loan:
        """Non-admins get access denied for unknown loans as well as foreign ones"""
        if self.access_guard.is_admin(caller):
            return self._require_loan(loan_id)

        loan_data = self.storage.load(self.loans_table, loan_id)
        if not loan_data:
            self.logger.warning(f"Loan access denied: caller={caller.username} loan={loan_id}")
            raise UnauthorizedAccessError()
        loan = Loan.from_dict(loan_data)
        self.access_guard.require_loan_access(caller, loan)
        return loan

    def _load_installments(self, loan_id: str) -> List[LoanInstallment]:
        installments = [
            LoanInstallment.from_dict(data)
            for data in self.storage.find(self.installments_table, {"loan_id": loan_id})
        ]
        installments.sort(key=lambda i: i.due_date)
        return installments

    def _save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def _save_installment(self, installment: LoanInstallment) -> None:
        self.storage.save(self.installments_table, installment.id, installment.to_dict())
