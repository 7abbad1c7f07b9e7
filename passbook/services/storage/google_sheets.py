"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. The user can open their passbook directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a personal ledger is tiny)
- No server-side atomic updates: increments are read-modify-write,
  serialized by a process-local lock. Two processes writing the same
  sheet can lose an update.
- No TTL sweeper: expired sessions stay in the sheet until
  purge_expired() runs. Readers check ttl themselves anyway.
- Limited query capabilities (we filter in Python)

One worksheet holds every item, one item per row. Attributes are
JSON-encoded; Decimals are written as strings and re-parsed by the models.
"""

import asyncio
import json
import time
from typing import Any, Callable, Mapping, Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from passbook.config import GoogleSheetsSettings, get_settings
from passbook.services.storage.interface import (
    PK,
    SK,
    TTL,
    ConnectionError,
    Item,
    Key,
    KeyValueStore,
    Number,
    QueryPage,
    StorageError,
)
from passbook.services.storage.memory import add_numbers, paginate


# Column mappings for the items sheet
ITEM_COLUMNS = [
    "pk",
    "sk",
    "attributes_json",
    "ttl",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_items_sheet(self) -> gspread.Worksheet:
        """Get or create the items worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(self._settings.items_sheet_name)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=self._settings.items_sheet_name,
                rows=1000,
                cols=len(ITEM_COLUMNS),
            )
            sheet.append_row(ITEM_COLUMNS)
        return sheet


class GoogleSheetsKeyValueStore(KeyValueStore):
    """
    Google Sheets implementation of the key-value store.

    Every public method re-reads the sheet; nothing is cached between
    calls, so edits made by hand in the spreadsheet are picked up.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client or GoogleSheetsClient()
        self._clock = clock
        self._lock = asyncio.Lock()

    def _item_to_row(self, item: Item) -> list:
        """Convert an item to a spreadsheet row."""
        attributes = {k: v for k, v in item.items() if k not in (PK, SK)}
        ttl = item.get(TTL)
        return [
            item[PK],
            item[SK],
            json.dumps(attributes, default=str, sort_keys=True),
            str(ttl) if ttl is not None else "",
        ]

    def _row_to_item(self, row: list) -> Item:
        """Convert a spreadsheet row to an item."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        attributes_json = safe_get(2)
        item = json.loads(attributes_json) if attributes_json else {}
        item[PK] = safe_get(0)
        item[SK] = safe_get(1)
        return item

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _load_rows(self) -> list[tuple[int, Item]]:
        """Read every item with its 1-based sheet row number."""
        sheet = self._client.get_items_sheet()
        rows = []
        # Row 1 is the header
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if not row or not row[0]:
                continue
            rows.append((idx, self._row_to_item(row)))
        return rows

    def _find(self, pk: str, sk: str) -> tuple[Optional[int], Optional[Item]]:
        for idx, item in self._load_rows():
            if item[PK] == pk and item[SK] == sk:
                return idx, item
        return None, None

    def _write(self, row_number: Optional[int], item: Item) -> None:
        sheet = self._client.get_items_sheet()
        row = self._item_to_row(item)
        if row_number is None:
            sheet.append_row(row, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{row_number}:D{row_number}",
                values=[row],
                value_input_option="RAW",
            )

    async def get(self, pk: str, sk: str) -> Optional[Item]:
        try:
            _, item = self._find(pk, sk)
            return item
        except Exception as e:
            raise StorageError(f"Failed to get item {pk}/{sk}: {e}")

    async def put(self, pk: str, sk: str, attributes: Mapping[str, Any]) -> None:
        async with self._lock:
            try:
                row_number, _ = self._find(pk, sk)
                self._write(row_number, {**attributes, PK: pk, SK: sk})
            except Exception as e:
                raise StorageError(f"Failed to save item {pk}/{sk}: {e}")

    async def delete(self, pk: str, sk: str) -> Optional[Item]:
        async with self._lock:
            try:
                row_number, item = self._find(pk, sk)
                if row_number is None:
                    return None
                self._client.get_items_sheet().delete_rows(row_number)
                return item
            except Exception as e:
                raise StorageError(f"Failed to delete item {pk}/{sk}: {e}")

    async def increment(
        self,
        pk: str,
        sk: str,
        deltas: Mapping[str, Number],
        set_fields: Optional[Mapping[str, Any]] = None,
    ) -> Item:
        async with self._lock:
            try:
                row_number, item = self._find(pk, sk)
                item = item or {PK: pk, SK: sk}
                for name, delta in deltas.items():
                    item[name] = add_numbers(item.get(name), delta)
                if set_fields:
                    item.update(set_fields)
                self._write(row_number, item)
                return item
            except Exception as e:
                raise StorageError(f"Failed to increment item {pk}/{sk}: {e}")

    async def update(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        must_exist: bool = False,
    ) -> Optional[Item]:
        async with self._lock:
            try:
                row_number, existing = self._find(pk, sk)
                if existing is None and must_exist:
                    return None
                item = dict(existing) if existing else {PK: pk, SK: sk}
                item.update(attributes)
                self._write(row_number, item)
                return existing
            except Exception as e:
                raise StorageError(f"Failed to update item {pk}/{sk}: {e}")

    async def query(
        self,
        pk: str,
        sk_prefix: str,
        limit: int,
        exclusive_start_key: Optional[Key] = None,
        reverse: bool = False,
    ) -> QueryPage:
        try:
            items = [item for _, item in self._load_rows()]
        except Exception as e:
            raise StorageError(f"Failed to query partition {pk}: {e}")
        return paginate(items, pk, sk_prefix, limit, exclusive_start_key, reverse)

    async def scan(self, predicate: Callable[[Item], bool]) -> list[Item]:
        try:
            return [item for _, item in self._load_rows() if predicate(item)]
        except Exception as e:
            raise StorageError(f"Failed to scan items: {e}")

    async def purge_expired(self) -> int:
        """Delete rows whose ttl has passed. Returns the number removed."""
        async with self._lock:
            try:
                now = self._clock()
                sheet = self._client.get_items_sheet()
                expired = [
                    idx for idx, item in self._load_rows()
                    if item.get(TTL) is not None and int(item[TTL]) <= now
                ]
                # Bottom-up so earlier row numbers stay valid
                for idx in sorted(expired, reverse=True):
                    sheet.delete_rows(idx)
                return len(expired)
            except Exception as e:
                raise StorageError(f"Failed to purge expired items: {e}")
