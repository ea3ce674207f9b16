"""Exception hierarchy for lending business-rule violations."""


class LendingError(Exception):
    """Base exception for all lending errors."""

    error = "Invalid request"

    def __init__(self, message: str = ""):
        super().__init__(message or self.error)


class NotFoundError(LendingError):
    """Raised when a referenced record does not exist."""

    error = "Resource not found"


class CustomerNotFoundError(NotFoundError):
    """Raised when the target customer has no record."""

    def __init__(self, customer_ref: str):
        self.customer_ref = customer_ref
        super().__init__(f"Customer not found: {customer_ref}")


class LoanNotFoundError(NotFoundError):
    """Raised when the loan id has no record."""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan not found: {loan_id}")


class BusinessRuleError(LendingError):
    """Raised when a request violates a lending rule."""


class InvalidInstallmentError(BusinessRuleError):
    """Raised when the installment count is not in the allowed set."""


class InvalidInterestRateError(BusinessRuleError):
    """Raised when the interest rate is outside the configured range."""


class InvalidLoanAmountError(BusinessRuleError):
    """Raised when the requested principal is not positive."""


class InvalidPaymentAmountError(BusinessRuleError):
    """Raised when a payment amount is negative."""


class CreditLimitExceededError(BusinessRuleError):
    """Raised when used credit plus the new loan exceeds the credit limit."""


class NoInstallmentsDueError(BusinessRuleError):
    """Raised when no unpaid installment falls within the payment window."""


class DuplicateUsernameError(LendingError):
    """Raised when onboarding a customer whose username is taken."""

    error = "Conflict"


class AuthorizationError(LendingError):
    """Base for caller permission failures."""

    error = "Access denied"


class UnauthorizedAccessError(AuthorizationError):
    """Raised when a caller reads data it neither administers nor owns."""

    def __init__(self, message: str = "You don't have permission for this operation"):
        super().__init__(message)


class UnauthorizedPaymentError(AuthorizationError):
    """Raised when a caller pays a loan it neither administers nor owns."""

    def __init__(self, message: str = "You are not allowed to pay this loan"):
        super().__init__(message)


class UnauthenticatedError(LendingError):
    """Raised when no valid caller identity is present."""

    error = "Not authenticated"
