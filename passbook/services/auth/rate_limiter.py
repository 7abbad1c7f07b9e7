"""
Failed-attempt Rate Limiter

Two tiers on top of one counter item:

    attempts < max_attempts                      NORMAL
    max_attempts <= attempts < lockout_attempts  WARNING (remaining attempts reported)
    attempts >= lockout_attempts                 LOCKED for lockout_minutes

The counter carries a ttl. While unlocked, every failure pushes the ttl
out by the attempt window; once locked, the ttl is the lock expiry. When
the ttl passes the counter is ignored, whether or not the store has
purged it yet, so the limiter cools down to NORMAL on its own.
"""

import time
from typing import Callable, Optional

import structlog

from passbook.config import AuthSettings
from passbook.models.auth import RateLimitEntry, RateLimitState, RateLimitStatus
from passbook.services.storage.interface import KeyValueStore
from passbook.services.storage.keys import PK_RATE_LIMIT, SK_RATE_LIMIT


logger = structlog.get_logger("passbook.auth")


class RateLimiter:
    """Tracks failed PIN attempts and escalates to a lockout."""

    def __init__(
        self,
        store: KeyValueStore,
        max_attempts: int = 5,
        lockout_attempts: int = 10,
        lockout_minutes: int = 30,
        attempt_window_minutes: int = 15,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.max_attempts = max_attempts
        self.lockout_attempts = lockout_attempts
        self.lockout_seconds = lockout_minutes * 60
        self.window_seconds = attempt_window_minutes * 60
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        settings: AuthSettings,
        clock: Callable[[], float] = time.time,
    ) -> "RateLimiter":
        return cls(
            store,
            max_attempts=settings.max_attempts,
            lockout_attempts=settings.lockout_attempts,
            lockout_minutes=settings.lockout_minutes,
            attempt_window_minutes=settings.attempt_window_minutes,
            clock=clock,
        )

    def _now(self) -> int:
        return int(self._clock())

    async def _load(self, now: int) -> Optional[RateLimitEntry]:
        item = await self._store.get(PK_RATE_LIMIT, SK_RATE_LIMIT)
        if item is None:
            return None
        entry = RateLimitEntry.model_validate(item)
        if entry.is_expired(now):
            return None
        return entry

    def _status(self, attempts: int) -> RateLimitStatus:
        remaining = max(0, self.max_attempts - attempts)
        state = RateLimitState.WARNING if attempts >= self.max_attempts else RateLimitState.NORMAL
        return RateLimitStatus(state=state, attempts=attempts, attempts_remaining=remaining)

    async def _lock(self, attempts: int, now: int) -> RateLimitStatus:
        locked_until = now + self.lockout_seconds
        await self._store.update(
            PK_RATE_LIMIT,
            SK_RATE_LIMIT,
            {"locked_at": locked_until, "ttl": locked_until, "updated_at": now},
        )
        logger.warning("pin_locked", attempts=attempts, locked_until=locked_until)
        return RateLimitStatus(
            state=RateLimitState.LOCKED,
            attempts=attempts,
            attempts_remaining=0,
            locked_until=locked_until,
        )

    async def check(self) -> RateLimitStatus:
        """
        Current state, read before any PIN comparison.

        Does not consume an attempt. A counter that reached the lockout
        threshold without an active lock is locked here.
        """
        now = self._now()
        entry = await self._load(now)
        if entry is None:
            return self._status(0)

        if entry.is_locked(now):
            return RateLimitStatus(
                state=RateLimitState.LOCKED,
                attempts=entry.attempts,
                attempts_remaining=0,
                locked_until=entry.locked_at,
            )

        if entry.attempts >= self.lockout_attempts:
            return await self._lock(entry.attempts, now)

        return self._status(entry.attempts)

    async def record_failure(self) -> RateLimitStatus:
        """Count one failed attempt and report the resulting state."""
        now = self._now()
        entry = await self._load(now)

        if entry is None:
            # Nothing live: start a fresh window, discarding any stale counter
            await self._store.put(
                PK_RATE_LIMIT,
                SK_RATE_LIMIT,
                RateLimitEntry(attempts=1, ttl=now + self.window_seconds, updated_at=now).model_dump(),
            )
            attempts = 1
        else:
            set_fields = {"updated_at": now}
            if not entry.is_locked(now):
                set_fields["ttl"] = now + self.window_seconds
            item = await self._store.increment(
                PK_RATE_LIMIT, SK_RATE_LIMIT, {"attempts": 1}, set_fields
            )
            attempts = int(item["attempts"])

        if attempts >= self.lockout_attempts:
            return await self._lock(attempts, now)

        return self._status(attempts)

    async def clear(self) -> None:
        """Forget every failed attempt (after a successful login)."""
        await self._store.delete(PK_RATE_LIMIT, SK_RATE_LIMIT)
