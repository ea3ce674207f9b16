"""
Loan endpoints
"""

from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, Query, status

from .auth import LendingSystem, get_current_caller, get_lending_system
from .schemas import CreateLoanRequest, InstallmentResponse, LoanResponse, PaymentResponse
from ..security import Caller


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=LoanResponse)
async def create_loan(
    request: CreateLoanRequest,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Create a loan and its installment schedule"""
    loan = system.loan_manager.create_loan(request.to_loan_request(), caller)
    return LoanResponse.from_loan(loan)


@router.get("", response_model=List[LoanResponse])
async def list_loans(
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """List every loan (admin only)"""
    return [LoanResponse.from_loan(loan) for loan in system.loan_manager.get_all_loans(caller)]


@router.get("/customer/{customer_id}", response_model=List[LoanResponse])
async def get_customer_loans(
    customer_id: str,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """List a customer's loans"""
    loans = system.loan_manager.get_loans_by_customer(customer_id, caller)
    return [LoanResponse.from_loan(loan) for loan in loans]


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: str,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get loan details"""
    return LoanResponse.from_loan(system.loan_manager.get_loan(loan_id, caller))


@router.post("/{loan_id}/pay", response_model=PaymentResponse)
async def pay_loan(
    loan_id: str,
    amount: Decimal = Query(..., description="Payment amount"),
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Pay due installments of a loan"""
    result = system.loan_manager.process_payment(loan_id, amount, caller)
    return PaymentResponse.from_result(result)


@router.get("/{loan_id}/installments", response_model=List[InstallmentResponse])
async def get_loan_installments(
    loan_id: str,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get a loan's installments ordered by due date"""
    installments = system.loan_manager.get_installments_by_loan(loan_id, caller)
    return [InstallmentResponse.from_installment(installment) for installment in installments]
