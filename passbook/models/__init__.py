"""
Data Models Package

This package contains all Pydantic models used in Passbook.
All data flowing through the system must conform to these schemas.
"""

from passbook.models.ledger import (
    DEFAULT_DESCRIPTION,
    MAX_DESCRIPTION_LENGTH,
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
from passbook.models.auth import (
    Credential,
    PinHash,
    RateLimitEntry,
    RateLimitState,
    RateLimitStatus,
    Session,
    VerifyResult,
)
from passbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_DESCRIPTION",
    "MAX_DESCRIPTION_LENGTH",
    "Balance",
    "Expense",
    "ExpenseItem",
    "ExpenseResult",
    "MonthData",
    "MonthList",
    "MonthListItem",
    "MonthResult",
    "MonthSummary",
    "quantize_money",
    # Access-control models
    "Credential",
    "PinHash",
    "RateLimitEntry",
    "RateLimitState",
    "RateLimitStatus",
    "Session",
    "VerifyResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
