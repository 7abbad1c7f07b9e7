"""
Tests for the key-value stores.

The in-memory store is the reference; the Google Sheets store runs the
same operations against a fake worksheet.
"""

import pytest
from decimal import Decimal

from passbook.services.storage import GoogleSheetsKeyValueStore, InMemoryKeyValueStore
from passbook.services.storage.google_sheets import ITEM_COLUMNS
from passbook.services.storage.memory import add_numbers, paginate


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the store."""

    def __init__(self):
        self.rows = [list(ITEM_COLUMNS)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append(list(row))

    def update(self, range_name, values, value_input_option=None):
        row_number = int(range_name.split(":")[0][1:])
        self.rows[row_number - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheet = FakeWorksheet()

    def get_items_sheet(self):
        return self.sheet


@pytest.fixture(params=["memory", "google_sheets"])
def any_store(request, clock):
    if request.param == "memory":
        return InMemoryKeyValueStore(clock=clock)
    return GoogleSheetsKeyValueStore(FakeSheetsClient(), clock=clock)


class TestHelpers:
    """Tests for shared store helpers."""

    def test_add_numbers_keeps_ints(self):
        assert add_numbers(None, 1) == 1
        assert isinstance(add_numbers(2, 3), int)

    def test_add_numbers_mixes_into_decimal(self):
        assert add_numbers("10.50", Decimal("-0.25")) == Decimal("10.25")
        assert add_numbers(1, Decimal("0.5")) == Decimal("1.5")

    def test_paginate_sets_key_only_when_more_follow(self):
        items = [{"pk": "P", "sk": f"EXP#{i}"} for i in range(3)]

        first = paginate(items, "P", "EXP#", limit=2)
        assert [i["sk"] for i in first.items] == ["EXP#0", "EXP#1"]
        assert first.last_evaluated_key == {"pk": "P", "sk": "EXP#1"}

        last = paginate(items, "P", "EXP#", limit=2, exclusive_start_key=first.last_evaluated_key)
        assert [i["sk"] for i in last.items] == ["EXP#2"]
        assert last.last_evaluated_key is None

    def test_paginate_exact_fit_has_no_next_page(self):
        items = [{"pk": "P", "sk": f"EXP#{i}"} for i in range(2)]
        assert paginate(items, "P", "EXP#", limit=2).last_evaluated_key is None


class TestKeyValueStore:
    """Interface behaviour shared by every backend."""

    @pytest.mark.asyncio
    async def test_put_get_roundtrip_includes_keys(self, any_store):
        await any_store.put("A", "B", {"name": "x", "n": 1})
        item = await any_store.get("A", "B")
        assert item == {"pk": "A", "sk": "B", "name": "x", "n": 1}
        assert await any_store.get("A", "missing") is None

    @pytest.mark.asyncio
    async def test_put_replaces_whole_item(self, any_store):
        await any_store.put("A", "B", {"old": 1})
        await any_store.put("A", "B", {"new": 2})
        item = await any_store.get("A", "B")
        assert "old" not in item
        assert item["new"] == 2

    @pytest.mark.asyncio
    async def test_delete_returns_previous(self, any_store):
        await any_store.put("A", "B", {"n": 1})
        removed = await any_store.delete("A", "B")
        assert removed["n"] == 1
        assert await any_store.get("A", "B") is None
        assert await any_store.delete("A", "B") is None

    @pytest.mark.asyncio
    async def test_increment_creates_and_adds(self, any_store):
        item = await any_store.increment("C", "C", {"attempts": 1}, {"ttl": 100})
        assert item["attempts"] == 1
        item = await any_store.increment("C", "C", {"attempts": 1})
        assert item["attempts"] == 2
        assert item["ttl"] == 100

    @pytest.mark.asyncio
    async def test_increment_decimal_fields(self, any_store):
        await any_store.put("M", "S", {"ending_balance": Decimal("142.50")})
        item = await any_store.increment(
            "M", "S", {"ending_balance": Decimal("-42.50"), "total_expenses": Decimal("42.50")}
        )
        assert Decimal(str(item["ending_balance"])) == Decimal("100.00")
        assert Decimal(str(item["total_expenses"])) == Decimal("42.50")

    @pytest.mark.asyncio
    async def test_update_must_exist(self, any_store):
        assert await any_store.update("A", "B", {"n": 1}, must_exist=True) is None
        assert await any_store.get("A", "B") is None

        await any_store.put("A", "B", {"n": 1, "keep": "yes"})
        previous = await any_store.update("A", "B", {"n": 2}, must_exist=True)
        assert previous["n"] == 1

        item = await any_store.get("A", "B")
        assert item["n"] == 2
        assert item["keep"] == "yes"

    @pytest.mark.asyncio
    async def test_query_filters_partition_and_prefix(self, any_store):
        await any_store.put("MONTH#2026-02", "SUMMARY", {})
        await any_store.put("MONTH#2026-02", "EXP#2", {})
        await any_store.put("MONTH#2026-02", "EXP#1", {})
        await any_store.put("MONTH#2026-03", "EXP#3", {})

        page = await any_store.query("MONTH#2026-02", "EXP#", limit=10)
        assert [i["sk"] for i in page.items] == ["EXP#1", "EXP#2"]
        assert page.last_evaluated_key is None

    @pytest.mark.asyncio
    async def test_query_reverse_pages(self, any_store):
        for i in range(5):
            await any_store.put("P", f"EXP#{i}", {})

        seen = []
        start = None
        while True:
            page = await any_store.query("P", "EXP#", limit=2, exclusive_start_key=start, reverse=True)
            seen.extend(i["sk"] for i in page.items)
            start = page.last_evaluated_key
            if start is None:
                break

        assert seen == ["EXP#4", "EXP#3", "EXP#2", "EXP#1", "EXP#0"]

    @pytest.mark.asyncio
    async def test_scan(self, any_store):
        await any_store.put("MONTH#2026-01", "SUMMARY", {})
        await any_store.put("MONTH#2026-01", "EXP#1", {})
        await any_store.put("BALANCE", "BALANCE", {})

        items = await any_store.scan(lambda item: item["sk"] == "SUMMARY")
        assert [i["pk"] for i in items] == ["MONTH#2026-01"]

    @pytest.mark.asyncio
    async def test_purge_expired(self, any_store, clock):
        now = int(clock())
        await any_store.put("S", "old", {"ttl": now - 1})
        await any_store.put("S", "edge", {"ttl": now})
        await any_store.put("S", "live", {"ttl": now + 60})
        await any_store.put("S", "forever", {})

        assert await any_store.purge_expired() == 2
        assert await any_store.get("S", "live") is not None
        assert await any_store.get("S", "forever") is not None
        assert await any_store.get("S", "old") is None


class TestInMemoryStore:
    """Behaviour specific to the in-memory store."""

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, store):
        await store.put("A", "B", {"tags": ["x"]})
        item = await store.get("A", "B")
        item["tags"].append("y")
        assert (await store.get("A", "B"))["tags"] == ["x"]

    @pytest.mark.asyncio
    async def test_expired_items_stay_until_purged(self, store, clock):
        await store.put("S", "T", {"ttl": int(clock()) - 10})
        assert await store.get("S", "T") is not None
        await store.purge_expired()
        assert len(store) == 0


class TestGoogleSheetsStore:
    """Row layout of the Sheets backend."""

    @pytest.mark.asyncio
    async def test_one_row_per_item(self):
        client = FakeSheetsClient()
        sheets_store = GoogleSheetsKeyValueStore(client)

        await sheets_store.put("BALANCE", "BALANCE", {"total_balance": Decimal("12.50")})
        await sheets_store.increment("BALANCE", "BALANCE", {"total_balance": Decimal("1.00")})

        assert len(client.sheet.rows) == 2
        pk, sk, attributes_json, ttl = client.sheet.rows[1]
        assert (pk, sk, ttl) == ("BALANCE", "BALANCE", "")
        assert '"total_balance": "13.50"' in attributes_json

    @pytest.mark.asyncio
    async def test_ttl_column_mirrors_attribute(self):
        client = FakeSheetsClient()
        sheets_store = GoogleSheetsKeyValueStore(client)
        await sheets_store.put("SESSION#t", "SESSION#t", {"ttl": 1234})
        assert client.sheet.rows[1][3] == "1234"

    @pytest.mark.asyncio
    async def test_blank_rows_are_skipped(self):
        client = FakeSheetsClient()
        client.sheet.rows.append(["", "", "", ""])
        sheets_store = GoogleSheetsKeyValueStore(client)
        assert await sheets_store.scan(lambda item: True) == []
