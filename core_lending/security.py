"""
Security Module

Caller identity, the injected user directory and the access guard used by the
loan controller. Users are held in memory with salted scrypt password hashes
and seeded from configuration; the HTTP layer carries identities in JWT bearer
tokens.
"""

import hashlib
import hmac
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

import jwt

from .config import LendingConfig
from .customers import CustomerManager
from .exceptions import (
    DuplicateUsernameError, UnauthenticatedError, UnauthorizedAccessError,
    UnauthorizedPaymentError
)
from .logging_config import get_logger

if TYPE_CHECKING:
    from .loans import Loan


logger = get_logger("core_lending.security")


class Role(Enum):
    """Caller roles"""
    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass(frozen=True)
class Caller:
    """Authenticated identity performing an operation"""
    username: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class DirectoryUser:
    """User entry in the identity directory"""
    username: str
    role: Role
    password_salt: str
    password_hash: str


class UserDirectory:
    """
    In-memory identity directory

    Passwords are never stored: only a per-user random salt and the scrypt
    hash of the password with that salt.
    """

    def __init__(self):
        self._users: Dict[str, DirectoryUser] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: LendingConfig) -> 'UserDirectory':
        """Seed the directory with the admin and optional customer user"""
        directory = cls()
        directory.add_user(config.admin_username, config.admin_password, Role.ADMIN)
        if config.customer_username and config.customer_password:
            directory.add_user(config.customer_username, config.customer_password, Role.CUSTOMER)
        return directory

    def add_user(self, username: str, password: str, role: Role = Role.CUSTOMER) -> DirectoryUser:
        """
        Register a new user

        Raises:
            ValueError: Empty username or password
            DuplicateUsernameError: Username already registered
        """
        if not username or not password:
            raise ValueError("Username and password are required")

        salt = self._generate_salt()
        user = DirectoryUser(
            username=username,
            role=role,
            password_salt=salt,
            password_hash=self._hash_password(password, salt)
        )
        with self._lock:
            if username in self._users:
                logger.warning(f"Directory user already exists: {username}")
                raise DuplicateUsernameError(f"Username already registered: {username}")
            self._users[username] = user
        logger.info(f"Directory user registered: {username} ({role.value})")
        return user

    def has_user(self, username: str) -> bool:
        with self._lock:
            return username in self._users

    def get_user(self, username: str) -> Optional[DirectoryUser]:
        with self._lock:
            return self._users.get(username)

    def authenticate(self, username: str, password: str) -> Caller:
        """
        Verify credentials

        Returns:
            Caller for the user

        Raises:
            UnauthenticatedError: Unknown username or wrong password
        """
        user = self.get_user(username)
        if not user or not self._verify_password(user, password):
            logger.warning(f"Authentication failed for username: {username}")
            raise UnauthenticatedError("Invalid username or password")
        return Caller(username=user.username, role=user.role)

    def _generate_salt(self) -> str:
        """Generate random salt for password hashing"""
        return secrets.token_hex(16)

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, user: DirectoryUser, password: str) -> bool:
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)


def issue_token(caller: Caller, config: LendingConfig) -> Dict[str, str]:
    """Create a signed JWT for the caller"""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=config.jwt_expiry_hours)
    token_payload = {
        "sub": caller.username,
        "role": caller.role.value,
        "exp": expires_at,
        "iat": now
    }
    token = jwt.encode(token_payload, config.jwt_secret, algorithm=config.jwt_algorithm)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": expires_at.isoformat()
    }


def decode_token(token: str, config: LendingConfig) -> Caller:
    """
    Validate a JWT and return the caller it identifies

    Raises:
        UnauthenticatedError: Expired, malformed or unsigned token
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthenticatedError("Invalid token")

    username = payload.get("sub")
    if not username:
        raise UnauthenticatedError("Invalid token")
    try:
        role = Role(payload.get("role", Role.CUSTOMER.value))
    except ValueError:
        raise UnauthenticatedError("Invalid token")
    return Caller(username=username, role=role)


class AccessGuard:
    """
    Ownership and role checks performed at the top of each controller operation

    A caller owns a customer when the customer's username equals the caller's
    username. Admins pass every check.
    """

    def __init__(self, customer_manager: CustomerManager):
        self.customer_manager = customer_manager

    def require_authenticated(self, caller: Optional[Caller]) -> Caller:
        if caller is None:
            raise UnauthenticatedError()
        return caller

    def current_customer_id(self, caller: Optional[Caller]) -> Optional[str]:
        """Customer id linked to the caller's username, if any"""
        caller = self.require_authenticated(caller)
        customer = self.customer_manager.get_customer_by_username(caller.username)
        return customer.id if customer else None

    def is_admin(self, caller: Optional[Caller]) -> bool:
        return self.require_authenticated(caller).is_admin

    def is_own_customer(self, caller: Optional[Caller], customer_id: str) -> bool:
        own_id = self.current_customer_id(caller)
        return own_id is not None and own_id == customer_id

    def can_access_customer(self, caller: Optional[Caller], customer_id: str) -> bool:
        return self.is_admin(caller) or self.is_own_customer(caller, customer_id)

    def require_admin(self, caller: Optional[Caller]) -> None:
        if not self.is_admin(caller):
            logger.warning(f"Admin access denied for {caller.username}")
            raise UnauthorizedAccessError()

    def require_customer_access(self, caller: Optional[Caller], customer_id: str) -> None:
        if not self.can_access_customer(caller, customer_id):
            logger.warning(f"Customer access denied: caller={caller.username} customer={customer_id}")
            raise UnauthorizedAccessError()

    def require_loan_access(self, caller: Optional[Caller], loan: 'Loan') -> None:
        if not self.can_access_customer(caller, loan.customer_id):
            logger.warning(f"Loan access denied: caller={caller.username} loan={loan.id}")
            raise UnauthorizedAccessError()

    def require_loan_payment(self, caller: Optional[Caller], loan: 'Loan') -> None:
        if not self.can_access_customer(caller, loan.customer_id):
            logger.warning(f"Payment denied: caller={caller.username} loan={loan.id}")
            raise UnauthorizedPaymentError()
