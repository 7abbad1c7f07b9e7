"""
Ledger Data Models

Three denormalized records live in the store independently:
1. Balance - the global running total
2. MonthSummary - per-period counters
3. Expense - one row per spending entry (the source of truth)

The counters are derived from expenses and allowances by signed deltas.
They may lag behind the expense records if a multi-step mutation is
interrupted; nothing here recomputes them.

DESIGN DECISION: Money is a Decimal quantized to 2 places everywhere.
Floats never enter the ledger.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


CENT = Decimal("0.01")
ZERO = Decimal("0.00")

DEFAULT_DESCRIPTION = "Expense"
MAX_DESCRIPTION_LENGTH = 100


def quantize_money(value: Any) -> Decimal:
    """
    Convert a number (or numeric string) to a 2-place Decimal.

    Raises:
        ValueError: If the value is not a finite number
    """
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the decimal context can hold once quantized
        raise ValueError(f"Amount out of range: {value!r}")


# Every amount that crosses a model boundary is held in cents
Money = Annotated[Decimal, BeforeValidator(quantize_money)]


# =============================================================================
# STORED RECORDS
# =============================================================================

class Balance(BaseModel):
    """Global running balance. Defaults to zero before the first write."""

    model_config = ConfigDict(extra="ignore")

    total_balance: Money = ZERO
    updated_at: Optional[datetime] = None


class MonthSummary(BaseModel):
    """
    Counters for one calendar month.

    INVARIANT: ending_balance = starting_balance + allowance_added - total_expenses

    starting_balance is copied from the previous month's ending balance
    when the month is created and never re-linked afterwards.
    """

    model_config = ConfigDict(extra="ignore")

    month: str = Field(
        ...,
        pattern=r"^\d{4}-\d{2}$",
        description="Period key in YYYY-MM form"
    )
    starting_balance: Money = ZERO
    allowance_added: Money = ZERO
    total_expenses: Money = ZERO
    ending_balance: Money = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def monthly_saved(self) -> Decimal:
        """What was left of this month's own allowance."""
        return self.allowance_added - self.total_expenses

    @classmethod
    def empty(cls, month: str) -> "MonthSummary":
        """All-zero summary for a month that was never created."""
        return cls(month=month)

    def to_item(self) -> dict:
        """Attributes to persist (keys are added by the store)."""
        return {
            "month": self.month,
            "starting_balance": self.starting_balance,
            "allowance_added": self.allowance_added,
            "total_expenses": self.total_expenses,
            "ending_balance": self.ending_balance,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Expense(BaseModel):
    """
    A single spending entry.

    The id doubles as the store sort key: EXP#<unix-ns>#<random suffix>.
    Sorting ids as strings therefore sorts expenses chronologically.
    """

    id: str = Field(..., alias="sk")
    amount: Money = Field(..., gt=0)
    description: str = Field(
        default=DEFAULT_DESCRIPTION,
        max_length=MAX_DESCRIPTION_LENGTH
    )
    created_at: datetime

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def to_item(self) -> dict:
        return {
            "amount": self.amount,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# READ MODELS
# =============================================================================

class ExpenseItem(BaseModel):
    """An expense as shown to callers."""

    id: str
    amount: Money
    description: str
    created_at: datetime

    @classmethod
    def from_expense(cls, expense: Expense) -> "ExpenseItem":
        return cls(
            id=expense.id,
            amount=expense.amount,
            description=expense.description,
            created_at=expense.created_at,
        )


class MonthData(BaseModel):
    """One page of a month: summary, expenses newest-first, and balance."""

    month: str
    summary: MonthSummary
    expenses: list[ExpenseItem] = Field(default_factory=list)
    total_balance: Decimal
    next_cursor: str = Field(
        default="",
        description="Opaque token for the next page; empty on the last page"
    )


class MonthListItem(BaseModel):
    month: str
    monthly_saved: Money


class MonthList(BaseModel):
    """Months sorted most recent first."""

    months: list[MonthListItem] = Field(default_factory=list)
    next_cursor: str = ""


class ExpenseResult(BaseModel):
    """Result of adding or updating an expense."""

    expense: ExpenseItem
    month_balance: Decimal
    total_balance: Decimal


class MonthResult(BaseModel):
    """Result of creating a month or adding funds to it."""

    summary: MonthSummary
    total_balance: Decimal
