"""
Customer Management Module

Manages customer profiles and the credit ledger: each customer has a credit
limit and the portion of it consumed by outstanding loans. Loan creation
draws on the ledger, full payoff releases it.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import re
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .exceptions import (
    CreditLimitExceededError, CustomerNotFoundError, DuplicateUsernameError
)
from .money import ZERO, quantize_money, to_decimal
from .logging_config import get_logger, log_action


USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.@-]{3,64}$')


@dataclass
class Customer(StorageRecord):
    """
    Customer profile with credit ledger

    Invariant after every committed operation:
    0 <= used_credit_limit <= credit_limit
    """
    name: str
    surname: str
    username: str  # Links the customer to a caller identity
    credit_limit: Decimal
    used_credit_limit: Decimal = ZERO

    def __post_init__(self):
        if not USERNAME_PATTERN.match(self.username or ""):
            raise ValueError("Username must be 3-64 characters of letters, digits, '_', '.', '@' or '-'")

        self.credit_limit = quantize_money(self.credit_limit)
        self.used_credit_limit = quantize_money(self.used_credit_limit)

        if self.credit_limit < ZERO:
            raise ValueError("Credit limit cannot be negative")
        if self.used_credit_limit < ZERO:
            raise ValueError("Used credit limit cannot be negative")

    @property
    def full_name(self) -> str:
        """Get customer's full name"""
        return f"{self.name} {self.surname}"

    @property
    def available_credit(self) -> Decimal:
        """Credit still available for new loans"""
        return self.credit_limit - self.used_credit_limit

    def can_borrow(self, amount: Decimal) -> bool:
        """Check if a loan of the given total fits within the credit limit"""
        return self.used_credit_limit + amount <= self.credit_limit

    def use_credit(self, amount: Decimal) -> None:
        """Consume credit for a newly created loan"""
        amount = quantize_money(amount)
        if not self.can_borrow(amount):
            raise CreditLimitExceededError(
                f"Credit limit exceeded: used {self.used_credit_limit} + requested {amount} "
                f"> limit {self.credit_limit}"
            )
        self.used_credit_limit = self.used_credit_limit + amount
        self.touch()

    def release_credit(self, amount: Decimal) -> None:
        """Give back the credit held by a fully paid loan"""
        amount = quantize_money(amount)
        if amount > self.used_credit_limit:
            raise ValueError(
                f"Cannot release {amount}: only {self.used_credit_limit} of credit is in use"
            )
        self.used_credit_limit = self.used_credit_limit - amount
        self.touch()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            name=data['name'],
            surname=data['surname'],
            username=data['username'],
            credit_limit=Decimal(data['credit_limit']),
            used_credit_limit=Decimal(data.get('used_credit_limit', '0.00'))
        )


class CustomerManager:
    """
    Manages customer onboarding, lookup and credit ledger persistence
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "customers"
        self.logger = get_logger("core_lending.customers")

    def create_customer(
        self,
        name: str,
        surname: str,
        username: str,
        credit_limit: Decimal,
        used_credit_limit: Decimal = ZERO,
        created_by: Optional[str] = None
    ) -> Customer:
        """
        Onboard a new customer

        Args:
            name: Customer's first name
            surname: Customer's last name
            username: Unique username linking the customer to a login
            credit_limit: Total credit the customer may borrow against
            used_credit_limit: Credit already consumed (migrated customers)
            created_by: Username of the caller performing the onboarding

        Returns:
            Created Customer object
        """
        now = datetime.now(timezone.utc)
        customer = Customer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            surname=surname,
            username=username,
            credit_limit=to_decimal(credit_limit),
            used_credit_limit=to_decimal(used_credit_limit)
        )
        if customer.used_credit_limit > customer.credit_limit:
            raise CreditLimitExceededError("Used credit limit cannot exceed credit limit")

        with self.storage.atomic():
            if self.storage.find(self.table_name, {"username": username}):
                raise DuplicateUsernameError(f"Username already registered: {username}")

            self.save_customer(customer)

            self.audit_trail.log_event(
                event_type=AuditEventType.CUSTOMER_CREATED,
                entity_type="customer",
                entity_id=customer.id,
                metadata={
                    "username": username,
                    "credit_limit": customer.credit_limit
                },
                user_id=created_by
            )

        log_action(
            self.logger, "info", f"Customer created: {customer.id}",
            user_id=created_by, action="create_customer", resource="customer",
            extra={"customer_id": customer.id, "username": username}
        )
        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        customer_dict = self.storage.load(self.table_name, customer_id)
        if customer_dict:
            return Customer.from_dict(customer_dict)
        return None

    def require_customer(self, customer_id: str) -> Customer:
        """Get customer by ID or raise CustomerNotFoundError"""
        customer = self.get_customer(customer_id)
        if not customer:
            self.logger.warning(f"Customer not found: id={customer_id}")
            raise CustomerNotFoundError(customer_id)
        return customer

    def get_customer_by_username(self, username: str) -> Optional[Customer]:
        """Get customer by login username"""
        customers = self.storage.find(self.table_name, {"username": username})
        if customers:
            return Customer.from_dict(customers[0])
        return None

    def customer_exists(self, customer_id: str) -> bool:
        """Check whether a customer record exists"""
        return self.storage.exists(self.table_name, customer_id)

    def list_customers(self) -> List[Customer]:
        """Get all customers"""
        return [Customer.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def save_customer(self, customer: Customer) -> None:
        """Persist a customer record"""
        self.storage.save(self.table_name, customer.id, customer.to_dict())
