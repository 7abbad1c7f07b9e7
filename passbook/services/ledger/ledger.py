"""
Ledger Consistency Engine

Keeps three independently stored records in agreement without
multi-item transactions:

    Expense      MONTH#<period> / EXP#...    source of truth
    MonthSummary MONTH#<period> / SUMMARY    per-month counters
    Balance      BALANCE / BALANCE           global total

Every mutation runs as a fixed sequence of single-item store calls:

    1. write the expense record (or the month summary)
    2. adjust the month counters by a signed delta
    3. adjust the balance by a signed delta

Nothing is rolled back. If step 2 or 3 fails the counters lag behind
the expense records; a LEDGER_DRIFT audit event names the deltas that
were not applied and the store error is re-raised.

Funds checks read the month summary before writing, so two concurrent
expenses can both pass and overspend the month. That is accepted for a
single-user ledger.
"""

import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

import structlog

from passbook.audit import AuditLogger, create_correlation_id
from passbook.config import LedgerSettings
from passbook.errors import (
    DescriptionTooLongError,
    ExpenseNotFoundError,
    FundsNotPositiveError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidCursorError,
    InvalidMonthError,
    MonthExistsError,
    MonthNotFoundError,
    NoChangesError,
)
from passbook.models.ledger import (
    DEFAULT_DESCRIPTION,
    MAX_DESCRIPTION_LENGTH,
    ZERO,
    Balance,
    Expense,
    ExpenseItem,
    ExpenseResult,
    MonthData,
    MonthList,
    MonthListItem,
    MonthResult,
    MonthSummary,
    quantize_money,
)
from passbook.services.ledger.pagination import (
    decode_cursor,
    encode_cursor,
    encode_period_cursor,
)
from passbook.services.storage.interface import PK, SK, Item, KeyValueStore, StorageError
from passbook.services.storage.keys import (
    EXPENSE_PREFIX,
    MONTH_PREFIX,
    PK_BALANCE,
    SK_BALANCE,
    SK_SUMMARY,
    month_pk,
)


logger = structlog.get_logger("passbook.ledger")


# =============================================================================
# PERIODS
# =============================================================================

def current_period(now: float) -> str:
    """The YYYY-MM period containing an epoch timestamp (UTC)."""
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m")


def previous_period(period: str) -> str:
    year, month = int(period[:4]), int(period[5:7])
    if month == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{month - 1:02d}"


def validate_period(period: str) -> str:
    """
    Check a period is a real YYYY-MM month.

    Raises:
        InvalidMonthError: Wrong shape or month outside 01-12
    """
    if not isinstance(period, str) or len(period) != 7:
        raise InvalidMonthError()
    try:
        datetime.strptime(period, "%Y-%m")
    except ValueError:
        raise InvalidMonthError()
    # strptime matches any Unicode digit
    if not period.isascii():
        raise InvalidMonthError()
    return period


def _amount(value) -> Decimal:
    try:
        return quantize_money(value)
    except ValueError:
        raise InvalidAmountError()


def _description(value: Optional[str]) -> str:
    description = (value or "").strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise DescriptionTooLongError()
    return description or DEFAULT_DESCRIPTION


class Ledger:
    """
    Balance, month and expense operations.

    Holds no state between calls besides its collaborators.
    """

    def __init__(
        self,
        store: KeyValueStore,
        monthly_allowance: Decimal = Decimal("100.00"),
        clock: Callable[[], float] = time.time,
        audit_logger: Optional[AuditLogger] = None,
        default_page_size: int = 50,
        max_page_size: int = 100,
    ):
        self._store = store
        self.monthly_allowance = quantize_money(monthly_allowance)
        self._clock = clock
        self._audit_logger = audit_logger
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        settings: LedgerSettings,
        clock: Callable[[], float] = time.time,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "Ledger":
        return cls(
            store,
            monthly_allowance=settings.monthly_allowance,
            clock=clock,
            audit_logger=audit_logger,
            default_page_size=settings.default_page_size,
            max_page_size=settings.max_page_size,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _utcnow(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _new_expense_id(self) -> str:
        ns = int(self._clock() * 1_000_000_000)
        return f"{EXPENSE_PREFIX}{ns}#{secrets.token_hex(4)}"

    async def _get_summary(self, period: str) -> Optional[MonthSummary]:
        item = await self._store.get(month_pk(period), SK_SUMMARY)
        return MonthSummary.model_validate(item) if item else None

    async def _apply_deltas(
        self,
        operation: str,
        period: str,
        entity_id: Optional[str],
        month_deltas: dict[str, Decimal],
        balance_delta: Decimal,
        correlation_id: UUID,
    ) -> tuple[Optional[MonthSummary], Decimal]:
        """
        Steps 2 and 3 of a mutation: month counters, then balance.

        Returns the month summary and balance after the update.
        """
        pending = {f"month.{name}": delta for name, delta in month_deltas.items()}
        pending["balance.total_balance"] = balance_delta
        updated_at = self._utcnow().isoformat()

        try:
            summary = None
            if month_deltas:
                item = await self._store.increment(
                    month_pk(period),
                    SK_SUMMARY,
                    month_deltas,
                    {"month": period, "updated_at": updated_at},
                )
                summary = MonthSummary.model_validate(item)
                for name in month_deltas:
                    del pending[f"month.{name}"]

            item = await self._store.increment(
                PK_BALANCE,
                SK_BALANCE,
                {"total_balance": balance_delta},
                {"updated_at": updated_at},
            )
            balance = Balance.model_validate(item).total_balance
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_ledger_drift(
                    operation=operation,
                    month=period,
                    entity_id=entity_id,
                    pending=pending,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            else:
                logger.critical(
                    "ledger_drift",
                    operation=operation,
                    month=period,
                    entity_id=entity_id,
                    pending={k: str(v) for k, v in pending.items()},
                    error=str(e),
                )
            raise

        return summary, balance

    # -------------------------------------------------------------------------
    # Balance and months
    # -------------------------------------------------------------------------

    async def get_balance(self) -> Decimal:
        item = await self._store.get(PK_BALANCE, SK_BALANCE)
        return Balance.model_validate(item or {}).total_balance

    async def create_month(self, period: str) -> MonthResult:
        """
        Open a month with the configured allowance.

        The starting balance is the previous month's ending balance
        (zero if that month was never created).

        Raises:
            InvalidMonthError: period is not a real YYYY-MM month
            MonthExistsError: The month already exists
        """
        validate_period(period)
        if await self._get_summary(period) is not None:
            raise MonthExistsError()

        previous = await self._get_summary(previous_period(period))
        starting = previous.ending_balance if previous else ZERO
        allowance = self.monthly_allowance
        now = self._utcnow()

        summary = MonthSummary(
            month=period,
            starting_balance=starting,
            allowance_added=allowance,
            total_expenses=ZERO,
            ending_balance=starting + allowance,
            created_at=now,
            updated_at=now,
        )
        correlation_id = create_correlation_id()
        await self._store.put(month_pk(period), SK_SUMMARY, summary.to_item())

        _, balance = await self._apply_deltas(
            "create_month", period, None, {}, allowance, correlation_id
        )

        logger.info("month_created", month=period, allowance=str(allowance))
        if self._audit_logger:
            await self._audit_logger.log_month_created(
                month=period,
                starting_balance=starting,
                allowance=allowance,
                correlation_id=correlation_id,
            )

        return MonthResult(summary=summary, total_balance=balance)

    async def add_funds(self, period: str, amount) -> MonthResult:
        """
        Add money to an existing month's allowance.

        Raises:
            FundsNotPositiveError: amount <= 0
            MonthNotFoundError: The month was never created
        """
        try:
            amount = quantize_money(amount)
        except ValueError:
            raise FundsNotPositiveError()
        if amount <= 0:
            raise FundsNotPositiveError()
        validate_period(period)

        if await self._get_summary(period) is None:
            raise MonthNotFoundError()

        correlation_id = create_correlation_id()
        summary, balance = await self._apply_deltas(
            "add_funds",
            period,
            None,
            {"allowance_added": amount, "ending_balance": amount},
            amount,
            correlation_id,
        )

        if self._audit_logger:
            await self._audit_logger.log_funds_added(
                month=period,
                amount=amount,
                correlation_id=correlation_id,
            )

        return MonthResult(summary=summary, total_balance=balance)

    async def _ensure_month(self, period: str) -> MonthSummary:
        """Get the month, creating it with no allowance if missing."""
        summary = await self._get_summary(period)
        if summary is not None:
            return summary

        now = self._utcnow()
        summary = MonthSummary(month=period, created_at=now, updated_at=now)
        await self._store.put(month_pk(period), SK_SUMMARY, summary.to_item())

        if self._audit_logger:
            await self._audit_logger.log_month_created(
                month=period,
                starting_balance=ZERO,
                allowance=ZERO,
            )
        return summary

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(self, amount, description: Optional[str] = None) -> ExpenseResult:
        """
        Record an expense in the current month.

        A month that does not exist yet is created empty (no allowance),
        so the expense only succeeds if funds were added to it.

        Raises:
            InvalidAmountError: amount <= 0
            DescriptionTooLongError: description over 100 characters
            InsufficientFundsError: The month's ending balance is below amount
        """
        amount = _amount(amount)
        if amount <= 0:
            raise InvalidAmountError()
        description = _description(description)

        period = current_period(self._clock())
        summary = await self._ensure_month(period)
        if summary.ending_balance < amount:
            raise InsufficientFundsError()

        expense = Expense(
            id=self._new_expense_id(),
            amount=amount,
            description=description,
            created_at=self._utcnow(),
        )
        correlation_id = create_correlation_id()
        await self._store.put(month_pk(period), expense.id, expense.to_item())

        summary, balance = await self._apply_deltas(
            "add_expense",
            period,
            expense.id,
            {"total_expenses": amount, "ending_balance": -amount},
            -amount,
            correlation_id,
        )

        logger.info("expense_added", month=period, expense_id=expense.id, amount=str(amount))
        if self._audit_logger:
            await self._audit_logger.log_expense_added(
                expense_id=expense.id,
                month=period,
                amount=amount,
                correlation_id=correlation_id,
            )

        return ExpenseResult(
            expense=ExpenseItem.from_expense(expense),
            month_balance=summary.ending_balance,
            total_balance=balance,
        )

    async def update_expense(
        self,
        period: str,
        expense_id: str,
        amount=None,
        description: Optional[str] = None,
    ) -> ExpenseResult:
        """
        Change an expense's amount and/or description.

        Counters move by the amount delta only; a description-only edit
        leaves every number untouched.

        Raises:
            NoChangesError: Neither amount nor description given
            InvalidAmountError / DescriptionTooLongError: Bad new values
            ExpenseNotFoundError: No such expense (or deleted meanwhile)
            MonthNotFoundError: Amount grows but the month summary is missing
            InsufficientFundsError: Amount grows beyond the month's ending balance
        """
        if amount is None and description is None:
            raise NoChangesError()
        if amount is not None:
            amount = _amount(amount)
            if amount <= 0:
                raise InvalidAmountError()
        if description is not None:
            description = _description(description)
        validate_period(period)

        if not expense_id.startswith(EXPENSE_PREFIX):
            raise ExpenseNotFoundError()
        item = await self._store.get(month_pk(period), expense_id)
        if item is None:
            raise ExpenseNotFoundError()
        current = Expense.model_validate(item)

        new_amount = amount if amount is not None else current.amount
        new_description = description if description is not None else current.description
        delta = new_amount - current.amount

        if delta > 0:
            summary = await self._get_summary(period)
            if summary is None:
                raise MonthNotFoundError()
            if summary.ending_balance < delta:
                raise InsufficientFundsError()

        previous = await self._store.update(
            month_pk(period),
            expense_id,
            {"amount": new_amount, "description": new_description},
            must_exist=True,
        )
        if previous is None:
            raise ExpenseNotFoundError()

        correlation_id = create_correlation_id()
        if delta != 0:
            summary, balance = await self._apply_deltas(
                "update_expense",
                period,
                expense_id,
                {"total_expenses": delta, "ending_balance": -delta},
                -delta,
                correlation_id,
            )
        else:
            summary = await self._get_summary(period) or MonthSummary.empty(period)
            balance = await self.get_balance()

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(
                expense_id=expense_id,
                month=period,
                delta=delta,
                correlation_id=correlation_id,
            )

        return ExpenseResult(
            expense=ExpenseItem(
                id=expense_id,
                amount=new_amount,
                description=new_description,
                created_at=current.created_at,
            ),
            month_balance=summary.ending_balance,
            total_balance=balance,
        )

    async def delete_expense(self, period: str, expense_id: str) -> None:
        """
        Remove an expense and refund its amount to the month and balance.

        Raises:
            ExpenseNotFoundError: No such expense
        """
        validate_period(period)
        if not expense_id.startswith(EXPENSE_PREFIX):
            raise ExpenseNotFoundError()

        item = await self._store.delete(month_pk(period), expense_id)
        if item is None:
            raise ExpenseNotFoundError()
        expense = Expense.model_validate(item)

        correlation_id = create_correlation_id()
        await self._apply_deltas(
            "delete_expense",
            period,
            expense_id,
            {"total_expenses": -expense.amount, "ending_balance": expense.amount},
            expense.amount,
            correlation_id,
        )

        logger.info("expense_deleted", month=period, expense_id=expense_id)
        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(
                expense_id=expense_id,
                month=period,
                amount=expense.amount,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _page_size(self, page_size: Optional[int]) -> int:
        if page_size is None or page_size <= 0:
            page_size = self.default_page_size
        return min(page_size, self.max_page_size)

    async def get_month_data(
        self,
        period: str,
        page_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MonthData:
        """
        One page of a month's expenses, newest first.

        A month that was never created reads as an all-zero summary.

        Raises:
            InvalidMonthError: Bad period
            InvalidCursorError: Cursor malformed or from another month
        """
        validate_period(period)
        pk = month_pk(period)

        start_key = None
        if cursor:
            start_key = decode_cursor(cursor)
            if start_key.get(PK) != pk or not start_key.get(SK, "").startswith(EXPENSE_PREFIX):
                raise InvalidCursorError()

        summary = await self._get_summary(period) or MonthSummary.empty(period)
        page = await self._store.query(
            pk,
            EXPENSE_PREFIX,
            limit=self._page_size(page_size),
            exclusive_start_key=start_key,
            reverse=True,
        )
        balance = await self.get_balance()

        return MonthData(
            month=period,
            summary=summary,
            expenses=[
                ExpenseItem.from_expense(Expense.model_validate(item))
                for item in page.items
            ],
            total_balance=balance,
            next_cursor=encode_cursor(page.last_evaluated_key) if page.last_evaluated_key else "",
        )

    async def list_months(
        self,
        page_size: Optional[int] = None,
        cursor_period: Optional[str] = None,
    ) -> MonthList:
        """
        Months most recent first, with what each one saved.

        The store has no ordered index over months, so every summary is
        read and sorted here.

        Raises:
            InvalidCursorError: cursor_period is not one of the listed months
        """
        items = await self._store.scan(_is_month_summary)
        summaries = sorted(
            (MonthSummary.model_validate(item) for item in items),
            key=lambda s: s.month,
            reverse=True,
        )

        start = 0
        if cursor_period:
            periods = [s.month for s in summaries]
            if cursor_period not in periods:
                raise InvalidCursorError()
            start = periods.index(cursor_period) + 1

        end = start + self._page_size(page_size)
        page = summaries[start:end]

        next_cursor = ""
        if page and end < len(summaries):
            next_cursor = encode_period_cursor(page[-1].month)

        return MonthList(
            months=[
                MonthListItem(month=s.month, monthly_saved=s.monthly_saved)
                for s in page
            ],
            next_cursor=next_cursor,
        )


def _is_month_summary(item: Item) -> bool:
    return item[PK].startswith(MONTH_PREFIX) and item[SK] == SK_SUMMARY
