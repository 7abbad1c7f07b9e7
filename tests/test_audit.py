"""Tests for the audit logger."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from passbook.audit import AuditLogger, create_correlation_id
from passbook.models.audit import AuditEventBuilder
from passbook.services.storage import InMemoryKeyValueStore
from passbook.services.storage.interface import StorageError


class FailingStore(InMemoryKeyValueStore):
    async def put(self, pk, sk, attributes):
        raise StorageError("write failed")


class TestAuditLogger:
    """Tests for local logging and persistence."""

    @pytest.mark.asyncio
    async def test_local_only(self):
        assert await AuditLogger().log(AuditEventBuilder.pin_setup())

    @pytest.mark.asyncio
    async def test_persists_under_month_partition(self, store):
        audit_logger = AuditLogger(store)
        event = AuditEventBuilder.pin_verified()

        assert await audit_logger.log(event)

        pk = "AUDIT#" + event.timestamp.strftime("%Y-%m")
        page = await store.query(pk, "EVT#", limit=10)
        assert len(page.items) == 1
        assert page.items[0]["event_id"] == str(event.event_id)
        assert page.items[0]["sk"] == AuditLogger.event_sort_key(event)

    @pytest.mark.asyncio
    async def test_clock_stamps_events(self, store, clock):
        audit_logger = AuditLogger(store, clock=clock)
        clock.advance(20 * 86400)  # 2026-03-07

        await audit_logger.log(AuditEventBuilder.pin_verified())

        page = await store.query("AUDIT#2026-03", "EVT#", limit=10)
        assert len(page.items) == 1
        assert page.items[0]["timestamp"].startswith("2026-03-07T12:00:00")
        assert "ttl" not in page.items[0]

    @pytest.mark.asyncio
    async def test_retention_sets_ttl(self, store, clock):
        audit_logger = AuditLogger(store, clock=clock, retention_days=30)

        await audit_logger.log(AuditEventBuilder.pin_changed())

        items = await store.scan(lambda item: item["pk"].startswith("AUDIT#"))
        assert items[0]["ttl"] == int(clock()) + 30 * 86400

    @pytest.mark.asyncio
    async def test_storage_failure_is_not_raised(self):
        audit_logger = AuditLogger(FailingStore())
        assert not await audit_logger.log(AuditEventBuilder.pin_changed())

    def test_event_keys_sort_chronologically(self):
        base = datetime(2026, 2, 15, 12, 0, tzinfo=timezone.utc)
        keys = [
            AuditLogger.event_sort_key(
                AuditEventBuilder.pin_setup().model_copy(update={"timestamp": base + delta})
            )
            for delta in (timedelta(seconds=9), timedelta(microseconds=1), timedelta(seconds=10))
        ]
        assert sorted(keys) == [keys[1], keys[0], keys[2]]

    @pytest.mark.asyncio
    async def test_ledger_event_amounts_are_strings(self, store):
        audit_logger = AuditLogger(store)
        correlation_id = create_correlation_id()

        await audit_logger.log_expense_added(
            expense_id="EXP#1#abcd1234",
            month="2026-02",
            amount=Decimal("12.5"),
            correlation_id=correlation_id,
        )

        items = await store.scan(lambda item: item.get("event_type") == "expense_added")
        assert items[0]["details"] == {"month": "2026-02", "amount": "12.50"}
        assert items[0]["correlation_id"] == str(correlation_id)
