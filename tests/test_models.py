"""
Tests for Passbook models

Test strategy:
1. Unit tests for individual components (models, codecs, services)
2. Flow tests through the orchestrator on the in-memory store
3. No real API calls in tests (Google Sheets is faked)
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from passbook.errors import CredentialFormatError
from passbook.models.auth import PinHash, RateLimitEntry, Session
from passbook.models.ledger import (
    Balance,
    Expense,
    MonthSummary,
    quantize_money,
)
from passbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestMoney:
    """Tests for decimal money handling."""

    def test_quantize_rounds_half_up(self):
        assert quantize_money("1.005") == Decimal("1.01")
        assert quantize_money(2) == Decimal("2.00")

    def test_quantize_float_uses_its_repr(self):
        """0.1 + 0.2 must not leak binary noise into the ledger."""
        assert quantize_money(0.1 + 0.2) == Decimal("0.30")

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", "", "1e30"])
    def test_quantize_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            quantize_money(value)


class TestLedgerModels:
    """Tests for ledger records."""

    def test_balance_defaults_to_zero(self):
        assert Balance.model_validate({}).total_balance == Decimal("0.00")

    def test_month_summary_from_stored_strings(self):
        """Sheets storage hands amounts back as strings."""
        summary = MonthSummary.model_validate({
            "pk": "MONTH#2026-02",
            "sk": "SUMMARY",
            "month": "2026-02",
            "starting_balance": "42.5",
            "allowance_added": "100",
            "total_expenses": "10.25",
            "ending_balance": "132.25",
        })
        assert summary.starting_balance == Decimal("42.50")
        assert summary.monthly_saved == Decimal("89.75")

    def test_month_summary_rejects_bad_period(self):
        with pytest.raises(ValueError):
            MonthSummary(month="2026-2")

    def test_empty_summary_is_all_zero(self):
        summary = MonthSummary.empty("2026-02")
        assert summary.ending_balance == Decimal("0.00")
        assert summary.created_at is None

    def test_expense_reads_id_from_sort_key(self):
        expense = Expense.model_validate({
            "pk": "MONTH#2026-02",
            "sk": "EXP#1#abcd1234",
            "amount": Decimal("5"),
            "description": "Coffee",
            "created_at": "2026-02-15T12:00:00+00:00",
        })
        assert expense.id == "EXP#1#abcd1234"
        assert expense.amount == Decimal("5.00")

    def test_expense_rejects_non_positive_amount(self):
        with pytest.raises(ValueError):
            Expense(id="EXP#1#a", amount=Decimal("0"), created_at=datetime.now(timezone.utc))

    def test_expense_rejects_long_description(self):
        with pytest.raises(ValueError):
            Expense(
                id="EXP#1#a",
                amount=Decimal("1"),
                description="x" * 101,
                created_at=datetime.now(timezone.utc),
            )


class TestPinHash:
    """Tests for the self-describing hash record."""

    def test_serialize_parse_keeps_every_field(self):
        original = PinHash(
            memory_cost=16384,
            time_cost=3,
            parallelism=1,
            salt=b"0123456789abcdef",
            digest=b"\x01" * 32,
        )
        encoded = original.serialize()

        assert encoded.startswith("$argon2id$v=19$m=16384,t=3,p=1$")
        assert "=" not in encoded.split("$")[-1]
        assert PinHash.parse(encoded) == original

    @pytest.mark.parametrize("encoded", [
        "",
        "plain-text-pin",
        "$argon2id$v=19$m=16384,t=3,p=1$c2FsdA",
        "$argon2id$19$m=16384,t=3,p=1$c2FsdHNhbHQ$ZGlnZXN0",
        "$argon2id$v=19$m=16384;t=3;p=1$c2FsdHNhbHQ$ZGlnZXN0",
        "$argon2id$v=19$m=16384,t=3,p=1$!!!$ZGlnZXN0",
        "$argon2id$v=19$m=16384,t=3,p=1$c2FsdHNhbHQ$",
    ])
    def test_parse_rejects_malformed(self, encoded):
        with pytest.raises(CredentialFormatError):
            PinHash.parse(encoded)


class TestAccessModels:
    """Tests for session and rate-limit records."""

    def test_session_expiry_is_inclusive(self):
        session = Session(token="t", created_at=0, ttl=100)
        assert not session.is_expired(99)
        assert session.is_expired(100)

    def test_rate_limit_entry_lock(self):
        entry = RateLimitEntry(attempts=10, locked_at=200, ttl=200)
        assert entry.is_locked(199)
        assert not entry.is_locked(200)
        assert not RateLimitEntry(attempts=3, ttl=200).is_locked(0)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.PIN_SETUP,
            description="Test event",
        )
        assert event.event_type == AuditEventType.PIN_SETUP
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.expense_added("EXP#1#a", "2026-02", "5.00")
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "expense_added"
        assert log_dict["entity_id"] == "EXP#1#a"
        assert log_dict["details"]["amount"] == "5.00"

    def test_ledger_drift_is_critical(self):
        event = AuditEventBuilder.ledger_drift(
            operation="add_expense",
            month="2026-02",
            entity_id="EXP#1#a",
            pending={"balance.total_balance": "-5.00"},
            error_message="boom",
        )
        assert event.severity == AuditSeverity.CRITICAL
        assert event.details["pending"] == {"balance.total_balance": "-5.00"}

    def test_to_item_is_json_safe(self):
        item = AuditEventBuilder.pin_locked(1771158600).to_item()
        assert isinstance(item["event_id"], str)
        assert isinstance(item["timestamp"], str)
