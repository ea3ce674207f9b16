"""
Customer endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import LendingSystem, get_current_caller, get_lending_system
from .schemas import CreateCustomerRequest, CustomerResponse
from ..exceptions import DuplicateUsernameError
from ..security import Caller, Role


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=CustomerResponse)
async def create_customer(
    request: CreateCustomerRequest,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Onboard a new customer (admin only); a password also registers a login"""
    system.access_guard.require_admin(caller)

    if request.password and system.user_directory.has_user(request.username):
        raise DuplicateUsernameError(f"Username already registered: {request.username}")

    # A directory conflict rolls the new customer back
    with system.storage.atomic():
        customer = system.customer_manager.create_customer(
            name=request.name,
            surname=request.surname,
            username=request.username,
            credit_limit=request.credit_limit,
            used_credit_limit=request.used_credit_limit,
            created_by=caller.username
        )
        if request.password:
            system.user_directory.add_user(customer.username, request.password, Role.CUSTOMER)

    return CustomerResponse.from_customer(customer)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: str,
    caller: Caller = Depends(get_current_caller),
    system: LendingSystem = Depends(get_lending_system)
):
    """Get customer details (admin only)"""
    system.access_guard.require_admin(caller)
    return CustomerResponse.from_customer(system.customer_manager.require_customer(customer_id))
