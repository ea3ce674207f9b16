"""
Authentication and authorization dependencies
"""

from datetime import date
from typing import Callable, Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail, AuditEventType
from ..customers import CustomerManager
from ..loans import LoanManager
from ..security import AccessGuard, Caller, UserDirectory, decode_token, issue_token
from ..exceptions import UnauthenticatedError
from ..config import LendingConfig, get_config
from ..logging_config import get_logger, log_action
from .schemas import LoginRequest, TokenResponse


logger = get_logger("core_lending.api")


class LendingSystem:
    """Core lending system with all components initialized"""

    def __init__(
        self,
        config: Optional[LendingConfig] = None,
        storage: Optional[StorageInterface] = None,
        clock: Callable[[], date] = date.today
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)

        self.audit_trail = AuditTrail(self.storage)
        self.customer_manager = CustomerManager(self.storage, self.audit_trail)
        self.user_directory = UserDirectory.from_config(self.config)
        self.access_guard = AccessGuard(self.customer_manager)
        self.loan_manager = LoanManager(
            self.storage, self.customer_manager, self.audit_trail,
            self.config, self.access_guard, clock=clock
        )


_lending_system: Optional[LendingSystem] = None


# Dependency to get lending system
def get_lending_system() -> LendingSystem:
    global _lending_system
    if _lending_system is None:
        _lending_system = LendingSystem()
    return _lending_system


# JWT Security
security = HTTPBearer(auto_error=False)


def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: LendingSystem = Depends(get_lending_system)
) -> Caller:
    """Dependency that validates the bearer JWT and returns the caller"""
    if not credentials:
        raise UnauthenticatedError()
    return decode_token(credentials.credentials, system.config)


router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    system: LendingSystem = Depends(get_lending_system)
):
    """Authenticate user and return JWT token"""
    try:
        caller = system.user_directory.authenticate(request.username, request.password)
    except UnauthenticatedError:
        system.audit_trail.log_event(
            event_type=AuditEventType.LOGIN_FAILED,
            entity_type="auth",
            entity_id=request.username,
            user_id=request.username
        )
        log_action(
            logger, "warning", "Authentication failed",
            action="login_failed", resource="auth",
            extra={"username": request.username}
        )
        raise

    system.audit_trail.log_event(
        event_type=AuditEventType.LOGIN_SUCCESS,
        entity_type="auth",
        entity_id=caller.username,
        metadata={"role": caller.role},
        user_id=caller.username
    )
    log_action(
        logger, "info", "User authenticated successfully",
        user_id=caller.username, action="login", resource="auth"
    )
    return TokenResponse(**issue_token(caller, system.config))
