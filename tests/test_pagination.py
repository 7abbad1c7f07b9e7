"""Tests for the opaque cursor codec."""

import base64

import pytest

from passbook.errors import InvalidCursorError
from passbook.services.ledger import (
    decode_cursor,
    decode_period_cursor,
    encode_cursor,
    encode_period_cursor,
)


class TestKeyCursor:
    """Tests for store-key cursors."""

    def test_roundtrip(self):
        key = {"pk": "MONTH#2026-02", "sk": "EXP#1771156800000000000#abcd1234"}
        assert decode_cursor(encode_cursor(key)) == key

    def test_is_url_safe(self):
        token = encode_cursor({"pk": "MONTH#2026-02", "sk": "EXP#~~~???>>>"})
        assert "+" not in token
        assert "/" not in token

    def test_key_order_does_not_matter(self):
        assert encode_cursor({"a": "1", "b": "2"}) == encode_cursor({"b": "2", "a": "1"})

    @pytest.mark.parametrize("token", [
        "%%%not-base64%%%",
        base64.urlsafe_b64encode(b"\xff\xfe").decode(),
        base64.urlsafe_b64encode(b"{not json").decode(),
        base64.urlsafe_b64encode(b'["pk", "sk"]').decode(),
        base64.urlsafe_b64encode(b'{"pk": 1}').decode(),
        base64.urlsafe_b64encode(b"{}").decode(),
    ])
    def test_malformed(self, token):
        with pytest.raises(InvalidCursorError):
            decode_cursor(token)


class TestPeriodCursor:
    """Tests for month-list cursors."""

    def test_roundtrip(self):
        assert decode_period_cursor(encode_period_cursor("2026-02")) == "2026-02"

    def test_is_plain_base64_of_period(self):
        assert encode_period_cursor("2026-02") == base64.urlsafe_b64encode(b"2026-02").decode()

    @pytest.mark.parametrize("token", [
        "%%%",
        base64.urlsafe_b64encode(b"2026-2").decode(),
        base64.urlsafe_b64encode(b"2026-02\n").decode(),
        base64.urlsafe_b64encode(b"\xff").decode(),
    ])
    def test_malformed(self, token):
        with pytest.raises(InvalidCursorError):
            decode_period_cursor(token)
