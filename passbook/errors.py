"""
Domain Errors

Every failure a caller can act on has a kind. Transport layers map the
kind (the direct subclass of PassbookError) to a protocol status; the
leaf classes only refine the message.

Store failures are NOT part of this hierarchy. They surface as
StorageError from the storage package and propagate unchanged.
"""

from typing import Optional


class PassbookError(Exception):
    """Base exception for all domain errors."""

    message = "passbook error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


# =============================================================================
# ERROR KINDS
# =============================================================================

class ValidationError(PassbookError):
    """Caller input is invalid. Never retried."""

    message = "invalid input"


class NotFoundError(PassbookError):
    """A month or expense does not exist."""

    message = "not found"


class ConflictError(PassbookError):
    """The entity already exists."""

    message = "conflict"


class InsufficientFundsError(PassbookError):
    """The month does not have enough spendable money left."""

    message = "insufficient funds"


class AuthError(PassbookError):
    """Wrong PIN or invalid/expired session."""

    message = "not authorized"


class RateLimitedError(PassbookError):
    """Too many failed attempts; further failures will lock the PIN."""

    message = "too many attempts"

    def __init__(self, attempts_remaining: int, message: Optional[str] = None):
        self.attempts_remaining = attempts_remaining
        super().__init__(message)


class LockedError(PassbookError):
    """PIN verification is refused until `locked_until` (epoch seconds)."""

    message = "account locked"

    def __init__(self, locked_until: int, message: Optional[str] = None):
        self.locked_until = locked_until
        super().__init__(message)


class CredentialFormatError(PassbookError):
    """The stored PIN hash cannot be parsed."""

    message = "invalid hash format"


# =============================================================================
# VALIDATION
# =============================================================================

class InvalidAmountError(ValidationError):
    message = "amount must be positive"


class DescriptionTooLongError(ValidationError):
    message = "description too long (max 100 characters)"


class NoChangesError(ValidationError):
    message = "no changes provided"


class InvalidMonthError(ValidationError):
    message = "invalid month format, use YYYY-MM"


class FundsNotPositiveError(ValidationError):
    message = "funds amount must be positive"


class PINTooShortError(ValidationError):
    message = "PIN must be 4-6 digits"


class PINNotNumericError(ValidationError):
    message = "PIN must contain only digits"


class InvalidCursorError(ValidationError):
    message = "invalid pagination cursor"


# =============================================================================
# NOT FOUND / CONFLICT / AUTH
# =============================================================================

class MonthNotFoundError(NotFoundError):
    message = "month not found"


class ExpenseNotFoundError(NotFoundError):
    message = "expense not found"


class MonthExistsError(ConflictError):
    message = "month already exists"


class PINAlreadySetError(ConflictError):
    message = "PIN already set up"


class InvalidPINError(AuthError):
    message = "invalid PIN"


class InvalidSessionError(AuthError):
    message = "invalid session"
