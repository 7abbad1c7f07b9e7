"""
Key schema shared by every component that touches the store.

    CONFIG            / CONFIG             PIN credential
    BALANCE           / BALANCE            global balance
    RATELIMIT         / RATELIMIT          failed-attempt counter
    MONTH#<YYYY-MM>   / SUMMARY            month counters
    MONTH#<YYYY-MM>   / EXP#<ns>#<suffix>  expense records
    SESSION#<token>   / SESSION#<token>    sessions
    AUDIT#<YYYY-MM>   / EVT#<ns>#<id>      audit trail
"""

PK_CONFIG = "CONFIG"
SK_CONFIG = "CONFIG"
PK_BALANCE = "BALANCE"
SK_BALANCE = "BALANCE"
PK_RATE_LIMIT = "RATELIMIT"
SK_RATE_LIMIT = "RATELIMIT"

MONTH_PREFIX = "MONTH#"
SK_SUMMARY = "SUMMARY"
EXPENSE_PREFIX = "EXP#"
SESSION_PREFIX = "SESSION#"
AUDIT_PREFIX = "AUDIT#"
EVENT_PREFIX = "EVT#"


def month_pk(month: str) -> str:
    return MONTH_PREFIX + month


def session_key(token: str) -> str:
    return SESSION_PREFIX + token


def audit_pk(month: str) -> str:
    return AUDIT_PREFIX + month
