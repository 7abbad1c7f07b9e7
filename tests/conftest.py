"""
Shared fixtures.

Everything runs against the in-memory store with a clock the tests
move by hand. Argon2 runs with minimal cost so the suite stays fast.
"""

from decimal import Decimal

import pytest

from passbook.audit import AuditLogger
from passbook.services.auth import CredentialManager, PinHasher, RateLimiter, SessionManager
from passbook.services.ledger import Ledger
from passbook.services.storage import InMemoryKeyValueStore


# 2026-02-15 12:00:00 UTC
START = 1771156800.0


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryKeyValueStore(clock=clock)


@pytest.fixture
def audit_logger(clock):
    # Local log only; persistence is covered in test_audit.py
    return AuditLogger(clock=clock)


@pytest.fixture
def hasher():
    return PinHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def rate_limiter(store, clock):
    return RateLimiter(store, clock=clock)


@pytest.fixture
def sessions(store, clock):
    return SessionManager(store, clock=clock)


@pytest.fixture
def credentials(store, hasher, rate_limiter, sessions, audit_logger, clock):
    return CredentialManager(
        store,
        hasher=hasher,
        rate_limiter=rate_limiter,
        sessions=sessions,
        audit_logger=audit_logger,
        clock=clock,
    )


@pytest.fixture
def ledger(store, clock, audit_logger):
    return Ledger(
        store,
        monthly_allowance=Decimal("100.00"),
        clock=clock,
        audit_logger=audit_logger,
    )
