"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from ..customers import Customer
from ..loans import Loan, LoanInstallment, LoanRequest
from ..payments import PaymentResult


# Auth schemas
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: str


# Customer schemas
class CreateCustomerRequest(BaseModel):
    name: str = Field(..., min_length=1)
    surname: str = Field(..., min_length=1)
    username: str = Field(..., pattern=r'^[A-Za-z0-9_.@-]{3,64}$')
    credit_limit: Decimal = Field(..., ge=0, description="Decimal amount")
    used_credit_limit: Decimal = Field(Decimal("0"), ge=0, description="Decimal amount")
    password: Optional[str] = Field(None, description="Registers a login for the customer when given")


class CustomerResponse(BaseModel):
    id: str
    name: str
    surname: str
    username: str
    credit_limit: str = Field(..., description="Decimal amount as string")
    used_credit_limit: str = Field(..., description="Decimal amount as string")

    @classmethod
    def from_customer(cls, customer: Customer) -> 'CustomerResponse':
        return cls(
            id=customer.id,
            name=customer.name,
            surname=customer.surname,
            username=customer.username,
            credit_limit=str(customer.credit_limit),
            used_credit_limit=str(customer.used_credit_limit)
        )


# Loan schemas
class CreateLoanRequest(BaseModel):
    customer_id: Optional[str] = Field(None, description="Target customer; ignored for non-admin callers")
    amount: Decimal = Field(..., description="Principal as decimal")
    interest_rate: Decimal = Field(..., description="Interest rate, e.g. 0.2 for 20%")
    number_of_installments: int

    def to_loan_request(self) -> LoanRequest:
        return LoanRequest(
            customer_id=self.customer_id,
            amount=self.amount,
            interest_rate=self.interest_rate,
            number_of_installments=self.number_of_installments
        )


class LoanResponse(BaseModel):
    id: str
    customer_id: str
    loan_amount: str = Field(..., description="Principal plus interest as string")
    number_of_installments: int
    create_date: str  # ISO date
    is_paid: bool

    @classmethod
    def from_loan(cls, loan: Loan) -> 'LoanResponse':
        return cls(
            id=loan.id,
            customer_id=loan.customer_id,
            loan_amount=str(loan.loan_amount),
            number_of_installments=loan.number_of_installments,
            create_date=loan.create_date.isoformat(),
            is_paid=loan.is_paid
        )


class InstallmentResponse(BaseModel):
    id: str
    loan_id: str
    amount: str
    paid_amount: str
    due_date: str
    payment_date: Optional[str] = None
    is_paid: bool

    @classmethod
    def from_installment(cls, installment: LoanInstallment) -> 'InstallmentResponse':
        return cls(
            id=installment.id,
            loan_id=installment.loan_id,
            amount=str(installment.amount),
            paid_amount=str(installment.paid_amount),
            due_date=installment.due_date.isoformat(),
            payment_date=installment.payment_date.isoformat() if installment.payment_date else None,
            is_paid=installment.is_paid
        )


class PaymentResponse(BaseModel):
    paid_installments: int
    total_paid: str
    remaining_funds: str
    funds_exhausted: bool
    is_loan_paid: bool

    @classmethod
    def from_result(cls, result: PaymentResult) -> 'PaymentResponse':
        return cls(**result.to_dict())
