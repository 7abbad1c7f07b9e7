"""
Main Orchestrator for Passbook

This module ties together all the components and defines the
two entry points a frontend talks to:
1. AuthFlow (setup → unlock → session → change PIN → logout)
2. LedgerFlow (balance, months, expenses; session required)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No ledger operation runs without a valid session
- A locked PIN is refused before any hash comparison
- Every step is audited

Services below this layer never look at sessions.
"""

import time
from decimal import Decimal
from typing import Callable, Optional

import structlog

from passbook.audit import AuditLogger
from passbook.config import Settings, get_settings
from passbook.errors import (
    InvalidPINError,
    InvalidSessionError,
    LockedError,
    RateLimitedError,
)
from passbook.models.auth import VerifyResult
from passbook.models.ledger import (
    ExpenseResult,
    MonthData,
    MonthList,
    MonthResult,
)
from passbook.services.auth import (
    CredentialManager,
    PinHasher,
    RateLimiter,
    SessionManager,
)
from passbook.services.ledger import Ledger, decode_period_cursor
from passbook.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
)


logger = structlog.get_logger("passbook.orchestrator")


class AuthFlow:
    """
    Orchestrates PIN access control.

    Flow:
    1. Setup → first PIN stored (once)
    2. Verify → rate-limit check, hash comparison, session issued
    3. Change PIN → needs a session AND the current PIN
    4. Logout → session revoked
    """

    def __init__(
        self,
        credentials: CredentialManager,
        sessions: SessionManager,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._credentials = credentials
        self._sessions = sessions
        self._audit_logger = audit_logger

    async def is_setup(self) -> bool:
        return await self._credentials.is_setup()

    async def setup_pin(self, pin: str) -> None:
        await self._credentials.setup_pin(pin)

    async def verify_pin(self, pin: str) -> VerifyResult:
        return await self._credentials.verify_pin(pin)

    async def require_login(self, pin: str) -> str:
        """
        Verify a PIN, raising instead of returning a failed VerifyResult.

        Returns:
            Session token

        Raises:
            LockedError: PIN is locked (carries locked_until)
            RateLimitedError: Wrong PIN in the warning tier (carries attempts_remaining)
            InvalidPINError: Wrong PIN, or no PIN set up
        """
        result = await self._credentials.verify_pin(pin)
        if result.success:
            return result.token

        if result.locked_until is not None:
            raise LockedError(result.locked_until)
        # Zero remaining means the warning tier: the next failures lead to a lock
        if result.attempts_remaining == 0:
            raise RateLimitedError(0)
        raise InvalidPINError(result.error)

    async def validate_session(self, token: Optional[str]) -> bool:
        return await self._sessions.validate(token or "")

    async def require_session(self, token: Optional[str]) -> None:
        """
        Raises:
            InvalidSessionError: Token missing, unknown or expired
        """
        if not await self.validate_session(token):
            raise InvalidSessionError()

    async def change_pin(self, token: str, current_pin: str, new_pin: str) -> None:
        await self.require_session(token)
        await self._credentials.change_pin(current_pin, new_pin)

    async def logout(self, token: str) -> None:
        await self.require_session(token)
        await self._sessions.revoke(token)
        if self._audit_logger:
            await self._audit_logger.log_session_revoked()


class LedgerFlow:
    """
    Orchestrates ledger access.

    Every method takes the caller's session token and validates it
    before touching the ledger.
    """

    def __init__(
        self,
        ledger: Ledger,
        auth_flow: AuthFlow,
    ):
        self._ledger = ledger
        self._auth = auth_flow

    async def get_balance(self, token: str) -> Decimal:
        await self._auth.require_session(token)
        return await self._ledger.get_balance()

    async def create_month(self, token: str, period: str) -> MonthResult:
        await self._auth.require_session(token)
        return await self._ledger.create_month(period)

    async def add_funds(self, token: str, period: str, amount) -> MonthResult:
        await self._auth.require_session(token)
        return await self._ledger.add_funds(period, amount)

    async def add_expense(
        self,
        token: str,
        amount,
        description: Optional[str] = None,
    ) -> ExpenseResult:
        await self._auth.require_session(token)
        return await self._ledger.add_expense(amount, description)

    async def update_expense(
        self,
        token: str,
        period: str,
        expense_id: str,
        amount=None,
        description: Optional[str] = None,
    ) -> ExpenseResult:
        await self._auth.require_session(token)
        return await self._ledger.update_expense(period, expense_id, amount, description)

    async def delete_expense(self, token: str, period: str, expense_id: str) -> None:
        await self._auth.require_session(token)
        await self._ledger.delete_expense(period, expense_id)

    async def get_month_data(
        self,
        token: str,
        period: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MonthData:
        await self._auth.require_session(token)
        return await self._ledger.get_month_data(period, page_size, cursor)

    async def list_months(
        self,
        token: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MonthList:
        """
        Months most recent first. `cursor` is the opaque next_cursor
        from a previous page.
        """
        await self._auth.require_session(token)
        cursor_period = decode_period_cursor(cursor) if cursor else None
        return await self._ledger.list_months(page_size, cursor_period)


def create_store(
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
) -> KeyValueStore:
    """Build the key-value backend selected in the storage settings."""
    settings = settings or get_settings()
    if settings.storage.backend == "google_sheets":
        return GoogleSheetsKeyValueStore(GoogleSheetsClient(settings.google_sheets), clock=clock)
    return InMemoryKeyValueStore(clock=clock)


def create_app_components(
    store: Optional[KeyValueStore] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], float] = time.time,
    persist_audit: bool = True,
) -> tuple[AuthFlow, LedgerFlow, KeyValueStore]:
    """
    Factory function to create all application components.

    Args:
        store: Key-value backend. Built from settings when None.
        settings: Application settings. Loaded from the environment when None.
        clock: Epoch-seconds clock shared by every component.
        persist_audit: Whether audit events are also written to the store.
                       Set to False to keep them in the local log only.

    Returns:
        (auth_flow, ledger_flow, store)
    """
    settings = settings or get_settings()
    if store is None:
        store = create_store(settings, clock)
    auth_settings = settings.auth

    audit_logger = AuditLogger(
        store if persist_audit else None,
        clock=clock,
        retention_days=settings.storage.audit_retention_days,
    )

    sessions = SessionManager(
        store,
        ttl_hours=auth_settings.session_ttl_hours,
        clock=clock,
    )
    credentials = CredentialManager(
        store,
        hasher=PinHasher.from_settings(auth_settings),
        rate_limiter=RateLimiter.from_settings(store, auth_settings, clock=clock),
        sessions=sessions,
        audit_logger=audit_logger,
        clock=clock,
    )
    ledger = Ledger.from_settings(
        store,
        settings.ledger,
        clock=clock,
        audit_logger=audit_logger,
    )

    auth_flow = AuthFlow(credentials, sessions, audit_logger=audit_logger)
    ledger_flow = LedgerFlow(ledger, auth_flow)

    logger.info("app_components_created", backend=type(store).__name__)
    return auth_flow, ledger_flow, store
