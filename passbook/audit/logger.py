"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of balance changes
2. A trail of failed PIN attempts and lockouts
3. The data an operator needs to repair counters after a partial write

The audit logger:
- Is async so it fits the service call chain
- Gracefully handles failures (a failed audit write never aborts a ledger operation)
- Supports correlation IDs to trace the steps of one mutation
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from passbook.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from passbook.services.storage.interface import TTL, KeyValueStore
from passbook.services.storage.keys import EVENT_PREFIX, audit_pk


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (always)
    2. The key-value store, partitioned by month (when a store is given)
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Callable[[], float]] = None,
        retention_days: Optional[int] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Storage backend for persistence.
                   If None, only logs locally.
            clock: Epoch-seconds clock that stamps every event, so events
                   share the ledger's notion of time. If None, events keep
                   the wall-clock timestamp they were built with.
            retention_days: Persisted events get a ttl this many days after
                            their timestamp. If None, they never expire.
        """
        self._store = store
        self._clock = clock
        self._retention_days = retention_days
        self._logger = structlog.get_logger("passbook.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to the store if available.

        Returns True if the store write succeeded (or no store configured).
        """
        if self._clock is not None:
            event = event.model_copy(
                update={"timestamp": datetime.fromtimestamp(self._clock(), timezone.utc)}
            )
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.CRITICAL:
            self._logger.critical("audit_event", **log_dict)
        elif event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store is not None:
            try:
                await self._store.put(
                    audit_pk(event.timestamp.strftime("%Y-%m")),
                    self.event_sort_key(event),
                    self._to_item(event),
                )
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def _to_item(self, event: AuditEvent) -> dict:
        item = event.to_item()
        if self._retention_days is not None:
            item[TTL] = int(event.timestamp.timestamp()) + self._retention_days * 86400
        return item

    @staticmethod
    def event_sort_key(event: AuditEvent) -> str:
        """EVT#<unix-ns>#<id prefix>: sorts events chronologically."""
        ns = int(event.timestamp.timestamp()) * 1_000_000_000 + event.timestamp.microsecond * 1000
        return f"{EVENT_PREFIX}{ns:020d}#{event.event_id.hex[:8]}"

    # -------------------------------------------------------------------------
    # Access control
    # -------------------------------------------------------------------------

    async def log_pin_setup(self) -> None:
        await self.log(AuditEventBuilder.pin_setup())

    async def log_pin_verified(self) -> None:
        await self.log(AuditEventBuilder.pin_verified())

    async def log_pin_verify_failed(
        self,
        attempts: int,
        attempts_remaining: Optional[int],
    ) -> None:
        """Log a wrong PIN."""
        event = AuditEventBuilder.pin_verify_failed(
            attempts=attempts,
            attempts_remaining=attempts_remaining,
        )
        await self.log(event)

    async def log_pin_locked(self, locked_until: int) -> None:
        await self.log(AuditEventBuilder.pin_locked(locked_until))

    async def log_pin_changed(self) -> None:
        await self.log(AuditEventBuilder.pin_changed())

    async def log_session_revoked(self) -> None:
        await self.log(AuditEventBuilder.session_revoked())

    async def log_rate_limit_clear_failed(self, error_message: str) -> None:
        """Log a counter that could not be cleared after a successful login."""
        await self.log(AuditEventBuilder.rate_limit_clear_failed(error_message))

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def log_month_created(
        self,
        month: str,
        starting_balance: Decimal,
        allowance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log month creation (explicit or lazy)."""
        event = AuditEventBuilder.month_created(
            month=month,
            starting_balance=_money(starting_balance),
            allowance=_money(allowance),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_funds_added(
        self,
        month: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.funds_added(
            month=month,
            amount=_money(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_added(
        self,
        expense_id: str,
        month: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_added(
            expense_id=expense_id,
            month=month,
            amount=_money(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_updated(
        self,
        expense_id: str,
        month: str,
        delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            month=month,
            delta=_money(delta),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_expense_deleted(
        self,
        expense_id: str,
        month: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            month=month,
            amount=_money(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_ledger_drift(
        self,
        operation: str,
        month: str,
        entity_id: Optional[str],
        pending: dict[str, Decimal],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Log a multi-step mutation that stopped after a partial write.

        `pending` names every counter delta that was NOT applied, so the
        counters can be repaired by hand.
        """
        event = AuditEventBuilder.ledger_drift(
            operation=operation,
            month=month,
            entity_id=entity_id,
            pending={name: _money(delta) for name, delta in pending.items()},
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a ledger mutation and pass it through
    every event that mutation emits.
    """
    return uuid4()
