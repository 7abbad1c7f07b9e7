"""
Pagination Cursors

A cursor is a store continuation key (a flat string mapping) rendered as
URL-safe base64 of its JSON form. Callers treat it as opaque; anything
that does not decode back to a string mapping is rejected.
"""

import base64
import binascii
import json
import re
from typing import Mapping

from passbook.errors import InvalidCursorError


_PERIOD_RE = re.compile(r"\d{4}-\d{2}")


def encode_cursor(key: Mapping[str, str]) -> str:
    payload = json.dumps(dict(key), sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(token: str) -> dict[str, str]:
    """
    Inverse of encode_cursor.

    Raises:
        InvalidCursorError: Bad base64, UTF-8 or JSON, or not a string mapping
    """
    try:
        raw = base64.b64decode(token.encode("ascii"), altchars=b"-_", validate=True)
        key = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidCursorError()

    if not isinstance(key, dict) or not key:
        raise InvalidCursorError()
    if not all(isinstance(v, str) for v in key.values()):
        raise InvalidCursorError()
    return key


def encode_period_cursor(period: str) -> str:
    return base64.urlsafe_b64encode(period.encode("utf-8")).decode("ascii")


def decode_period_cursor(token: str) -> str:
    """
    Decode a month-list cursor back to its YYYY-MM period.

    Raises:
        InvalidCursorError: Not base64 of a YYYY-MM string
    """
    try:
        period = base64.b64decode(token.encode("ascii"), altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        raise InvalidCursorError()
    if not _PERIOD_RE.fullmatch(period):
        raise InvalidCursorError()
    return period
