"""
Flow tests through the orchestrator.

Components are built by create_app_components exactly as the app does,
on an in-memory store and a fake clock.
"""

import pytest
from decimal import Decimal

from passbook.config import Settings, get_settings, validate_all_settings
from passbook.errors import (
    InvalidCursorError,
    InvalidPINError,
    InvalidSessionError,
    LockedError,
    RateLimitedError,
)
from passbook.orchestrator import create_app_components, create_store
from passbook.services.storage import InMemoryKeyValueStore


@pytest.fixture
def fast_settings(monkeypatch):
    monkeypatch.setenv("PASSBOOK_AUTH_ARGON_TIME_COST", "1")
    monkeypatch.setenv("PASSBOOK_AUTH_ARGON_MEMORY_COST_KIB", "8")
    monkeypatch.setenv("PASSBOOK_MONTHLY_ALLOWANCE", "100.00")
    monkeypatch.setenv("PASSBOOK_STORAGE_BACKEND", "memory")
    return Settings()


@pytest.fixture
def components(fast_settings, clock):
    return create_app_components(
        store=InMemoryKeyValueStore(clock=clock),
        settings=fast_settings,
        clock=clock,
    )


@pytest.fixture
def auth_flow(components):
    return components[0]


@pytest.fixture
def ledger_flow(components):
    return components[1]


async def login(auth_flow, pin="1234"):
    if not await auth_flow.is_setup():
        await auth_flow.setup_pin(pin)
    return await auth_flow.require_login(pin)


class TestAuthFlow:
    """Tests for the access-control entry points."""

    @pytest.mark.asyncio
    async def test_setup_and_login(self, auth_flow):
        token = await login(auth_flow)
        assert await auth_flow.validate_session(token)

    @pytest.mark.asyncio
    async def test_require_login_raises_by_tier(self, auth_flow):
        await auth_flow.setup_pin("1234")

        for _ in range(4):
            with pytest.raises(InvalidPINError):
                await auth_flow.require_login("0000")
        for _ in range(5):
            with pytest.raises(RateLimitedError) as exc_info:
                await auth_flow.require_login("0000")
            assert exc_info.value.attempts_remaining == 0
        with pytest.raises(LockedError):
            await auth_flow.require_login("0000")
        with pytest.raises(LockedError) as exc_info:
            await auth_flow.require_login("1234")
        assert exc_info.value.locked_until > 0

    @pytest.mark.asyncio
    async def test_require_login_before_setup(self, auth_flow):
        with pytest.raises(InvalidPINError):
            await auth_flow.require_login("1234")

    @pytest.mark.asyncio
    async def test_logout(self, auth_flow):
        token = await login(auth_flow)
        await auth_flow.logout(token)
        assert not await auth_flow.validate_session(token)
        with pytest.raises(InvalidSessionError):
            await auth_flow.logout(token)

    @pytest.mark.asyncio
    async def test_change_pin_needs_session(self, auth_flow):
        await auth_flow.setup_pin("1234")
        with pytest.raises(InvalidSessionError):
            await auth_flow.change_pin("bogus", "1234", "5678")

        token = await auth_flow.require_login("1234")
        await auth_flow.change_pin(token, "1234", "5678")

        # The caller's own session survives a PIN change
        assert await auth_flow.validate_session(token)
        assert await auth_flow.require_login("5678")


class TestLedgerFlow:
    """Tests for session-guarded ledger access."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, "", "not-a-session"])
    async def test_requires_session(self, ledger_flow, token):
        with pytest.raises(InvalidSessionError):
            await ledger_flow.get_balance(token)
        with pytest.raises(InvalidSessionError):
            await ledger_flow.add_expense(token, 1, "x")

    @pytest.mark.asyncio
    async def test_expired_session_is_refused(self, auth_flow, ledger_flow, clock):
        token = await login(auth_flow)
        clock.advance(24 * 3600)
        with pytest.raises(InvalidSessionError):
            await ledger_flow.get_balance(token)

    @pytest.mark.asyncio
    async def test_month_and_expense_lifecycle(self, auth_flow, ledger_flow):
        token = await login(auth_flow)

        await ledger_flow.create_month(token, "2026-02")
        await ledger_flow.add_funds(token, "2026-02", Decimal("50"))
        added = await ledger_flow.add_expense(token, Decimal("20"), "Books")
        await ledger_flow.update_expense(token, "2026-02", added.expense.id, description="Novels")

        data = await ledger_flow.get_month_data(token, "2026-02")
        assert data.summary.ending_balance == Decimal("130.00")
        assert [e.description for e in data.expenses] == ["Novels"]

        await ledger_flow.delete_expense(token, "2026-02", added.expense.id)
        assert await ledger_flow.get_balance(token) == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_list_months_with_cursor_token(self, auth_flow, ledger_flow):
        token = await login(auth_flow)
        for period in ["2025-12", "2026-01", "2026-02"]:
            await ledger_flow.create_month(token, period)

        first = await ledger_flow.list_months(token, page_size=2)
        second = await ledger_flow.list_months(token, page_size=2, cursor=first.next_cursor)

        assert [m.month for m in first.months] == ["2026-02", "2026-01"]
        assert [m.month for m in second.months] == ["2025-12"]

        with pytest.raises(InvalidCursorError):
            await ledger_flow.list_months(token, cursor="%%%")


class TestComponents:
    """Tests for wiring and configuration."""

    def test_default_backend_is_memory(self, fast_settings):
        assert isinstance(create_store(fast_settings), InMemoryKeyValueStore)

    def test_settings_validation_skips_unused_sheets(self, fast_settings):
        get_settings.cache_clear()
        try:
            status = validate_all_settings()
        finally:
            get_settings.cache_clear()
        assert status["ledger"] and status["auth"] and status["storage"]
        assert "google_sheets" not in status

    def test_lockout_must_not_precede_warning(self, monkeypatch):
        monkeypatch.setenv("PASSBOOK_AUTH_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("PASSBOOK_AUTH_LOCKOUT_ATTEMPTS", "3")
        with pytest.raises(ValueError):
            Settings().auth

    @pytest.mark.asyncio
    async def test_audit_events_are_persisted(self, auth_flow, components):
        store = components[2]
        await login(auth_flow)

        events = await store.scan(lambda item: item["pk"].startswith("AUDIT#"))
        assert {e["event_type"] for e in events} >= {"pin_setup", "pin_verified"}

    @pytest.mark.asyncio
    async def test_audit_events_follow_the_shared_clock(self, auth_flow, components, clock):
        """Events land in the month the clock reports and expire after retention."""
        store = components[2]
        await login(auth_flow)

        events = await store.scan(lambda item: item["pk"].startswith("AUDIT#"))
        assert {e["pk"] for e in events} == {"AUDIT#2026-02"}
        assert all(e["ttl"] == int(clock()) + 400 * 86400 for e in events)

        clock.advance(401 * 86400)
        await store.purge_expired()
        assert await store.scan(lambda item: item["pk"].startswith("AUDIT#")) == []
