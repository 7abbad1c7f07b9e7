"""
Audit Models for Passbook

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every change to the ledger
2. A record of failed PIN attempts and lockouts
3. An operator trail for repairing counters after a partial failure

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Access control
    PIN_SETUP = "pin_setup"
    PIN_VERIFIED = "pin_verified"
    PIN_VERIFY_FAILED = "pin_verify_failed"
    PIN_LOCKED = "pin_locked"
    PIN_CHANGED = "pin_changed"
    SESSION_REVOKED = "session_revoked"
    RATE_LIMIT_CLEAR_FAILED = "rate_limit_clear_failed"

    # Ledger
    MONTH_CREATED = "month_created"
    FUNDS_ADDED = "funds_added"
    EXPENSE_ADDED = "expense_added"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # A counter update failed after the expense record was written.
    # Balance / month totals no longer match the expenses until repaired.
    LEDGER_DRIFT = "ledger_drift"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'month', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all steps of one expense add)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_item(self) -> dict:
        """Attributes for the key-value store (all JSON-safe)."""
        return self.model_dump(mode="json")


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, month, amount, correlation_id)
        event = AuditEventBuilder.pin_locked(locked_until)
    """

    @staticmethod
    def pin_setup() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_SETUP,
            entity_type="credential",
            description="PIN configured",
        )

    @staticmethod
    def pin_verified() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_VERIFIED,
            entity_type="credential",
            description="PIN verified, session issued",
        )

    @staticmethod
    def pin_verify_failed(
        attempts: int,
        attempts_remaining: Optional[int],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_VERIFY_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="credential",
            description=f"Invalid PIN (failed attempt {attempts})",
            details={
                "attempts": attempts,
                "attempts_remaining": attempts_remaining,
            },
        )

    @staticmethod
    def pin_locked(locked_until: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_LOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="credential",
            description="Too many failed attempts, PIN locked",
            details={
                "locked_until": locked_until,
            },
        )

    @staticmethod
    def pin_changed() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PIN_CHANGED,
            entity_type="credential",
            description="PIN changed",
        )

    @staticmethod
    def session_revoked() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_REVOKED,
            entity_type="session",
            description="Session revoked",
        )

    @staticmethod
    def rate_limit_clear_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMIT_CLEAR_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="rate_limit",
            description="Could not clear failed-attempt counter after a successful login",
            error_message=error_message,
        )

    @staticmethod
    def month_created(
        month: str,
        starting_balance: str,
        allowance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_CREATED,
            entity_type="month",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Month {month} created with allowance {allowance}",
            details={
                "starting_balance": starting_balance,
                "allowance": allowance,
            },
        )

    @staticmethod
    def funds_added(
        month: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FUNDS_ADDED,
            entity_type="month",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Added {amount} to {month}",
            details={
                "amount": amount,
            },
        )

    @staticmethod
    def expense_added(
        expense_id: str,
        month: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} added to {month}",
            details={
                "month": month,
                "amount": amount,
            },
        )

    @staticmethod
    def expense_updated(
        expense_id: str,
        month: str,
        delta: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense in {month} updated (amount delta {delta})",
            details={
                "month": month,
                "delta": delta,
            },
        )

    @staticmethod
    def expense_deleted(
        expense_id: str,
        month: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} deleted from {month}",
            details={
                "month": month,
                "amount": amount,
            },
        )

    @staticmethod
    def ledger_drift(
        operation: str,
        month: str,
        entity_id: Optional[str],
        pending: dict[str, str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_DRIFT,
            severity=AuditSeverity.CRITICAL,
            entity_type="month",
            entity_id=entity_id or month,
            correlation_id=correlation_id,
            description=(
                f"{operation} in {month} stopped after a partial write; "
                "counters need manual repair"
            ),
            details={
                "operation": operation,
                "month": month,
                "pending": pending,
            },
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
