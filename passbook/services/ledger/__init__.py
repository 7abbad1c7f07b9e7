"""
Ledger Services

Balance, monthly periods and expenses, plus the cursor codec used to
page through them.
"""

from passbook.services.ledger.ledger import (
    Ledger,
    current_period,
    previous_period,
    validate_period,
)
from passbook.services.ledger.pagination import (
    decode_cursor,
    decode_period_cursor,
    encode_cursor,
    encode_period_cursor,
)

__all__ = [
    "Ledger",
    "current_period",
    "decode_cursor",
    "decode_period_cursor",
    "encode_cursor",
    "encode_period_cursor",
    "previous_period",
    "validate_period",
]
