"""
Credential Manager

Owns the PIN lifecycle: setup, verification and change.

VERIFY FLOW:
    rate-limit check -> (locked? stop, no attempt consumed)
    -> load credential -> (not set up? stop, no attempt consumed)
    -> Argon2id comparison
    -> failure: count the attempt, report remaining attempts or lock
    -> success: clear the counter (best effort), issue a session

A failed verification is returned as a VerifyResult, not raised.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from passbook.audit import AuditLogger
from passbook.errors import InvalidPINError, PINAlreadySetError
from passbook.models.auth import Credential, RateLimitState, VerifyResult
from passbook.services.auth.hashing import PinHasher, validate_pin
from passbook.services.auth.rate_limiter import RateLimiter
from passbook.services.auth.sessions import SessionManager
from passbook.services.storage.interface import KeyValueStore, StorageError
from passbook.services.storage.keys import PK_CONFIG, SK_CONFIG


logger = structlog.get_logger("passbook.auth")

ERROR_NOT_SET_UP = "PIN not set up"
ERROR_INVALID_PIN = "invalid PIN"
ERROR_LOCKED = "account locked"


class CredentialManager:
    """PIN setup, verification and change."""

    def __init__(
        self,
        store: KeyValueStore,
        hasher: PinHasher,
        rate_limiter: RateLimiter,
        sessions: SessionManager,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._hasher = hasher
        self._rate_limiter = rate_limiter
        self._sessions = sessions
        self._audit_logger = audit_logger
        self._clock = clock

    def _utcnow(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    async def _load(self) -> Credential:
        item = await self._store.get(PK_CONFIG, SK_CONFIG)
        return Credential.model_validate(item) if item else Credential()

    async def is_setup(self) -> bool:
        return (await self._load()).is_set

    async def setup_pin(self, pin: str) -> None:
        """
        Store the first PIN.

        Raises:
            PINAlreadySetError: A PIN already exists (use change_pin)
            PINTooShortError / PINNotNumericError: Bad PIN format
        """
        if await self.is_setup():
            raise PINAlreadySetError()
        validate_pin(pin)

        now = self._utcnow()
        credential = Credential(
            pin_hash=self._hasher.hash(pin).serialize(),
            created_at=now,
            updated_at=now,
        )
        await self._store.put(PK_CONFIG, SK_CONFIG, credential.to_item())
        logger.info("pin_setup")

        if self._audit_logger:
            await self._audit_logger.log_pin_setup()

    async def verify_pin(self, pin: str) -> VerifyResult:
        """
        Check a PIN and issue a session on success.

        Raises:
            CredentialFormatError: The stored hash is unreadable
            StorageError: Any store failure except the counter clear
        """
        status = await self._rate_limiter.check()
        if status.state == RateLimitState.LOCKED:
            return VerifyResult(
                success=False,
                error=ERROR_LOCKED,
                locked_until=status.locked_until,
            )

        credential = await self._load()
        if not credential.is_set:
            return VerifyResult(success=False, error=ERROR_NOT_SET_UP)

        if not self._hasher.verify(pin, credential.pin_hash):
            status = await self._rate_limiter.record_failure()

            if status.state == RateLimitState.LOCKED:
                if self._audit_logger:
                    await self._audit_logger.log_pin_locked(status.locked_until)
                return VerifyResult(
                    success=False,
                    error=ERROR_LOCKED,
                    locked_until=status.locked_until,
                )

            if self._audit_logger:
                await self._audit_logger.log_pin_verify_failed(
                    attempts=status.attempts,
                    attempts_remaining=status.attempts_remaining,
                )
            return VerifyResult(
                success=False,
                error=ERROR_INVALID_PIN,
                attempts_remaining=status.attempts_remaining,
            )

        try:
            await self._rate_limiter.clear()
        except StorageError as e:
            # Login still succeeds; the counter expires on its own
            logger.warning("rate_limit_clear_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_rate_limit_clear_failed(str(e))

        token = await self._sessions.issue()

        if self._audit_logger:
            await self._audit_logger.log_pin_verified()

        return VerifyResult(success=True, token=token)

    async def change_pin(self, current_pin: str, new_pin: str) -> None:
        """
        Replace the PIN.

        The current PIN goes through verify_pin, so wrong guesses here
        count toward the lockout like any other.

        Raises:
            PINTooShortError / PINNotNumericError: Bad new PIN format
            InvalidPINError: Current PIN wrong, not set up, or locked out
        """
        validate_pin(new_pin)

        result = await self.verify_pin(current_pin)
        if not result.success:
            raise InvalidPINError()

        # The check above is not a login
        await self._sessions.revoke(result.token)

        credential = await self._load()
        credential.pin_hash = self._hasher.hash(new_pin).serialize()
        credential.updated_at = self._utcnow()
        await self._store.put(PK_CONFIG, SK_CONFIG, credential.to_item())
        logger.info("pin_changed")

        if self._audit_logger:
            await self._audit_logger.log_pin_changed()
