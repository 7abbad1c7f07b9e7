"""
Session Manager

Sessions are opaque bearer tokens stored under SESSION#<token> with a
ttl. Expiry is checked on every read; store purge is only housekeeping.
"""

import secrets
import time
from typing import Callable

from passbook.models.auth import Session
from passbook.services.storage.interface import KeyValueStore
from passbook.services.storage.keys import session_key


TOKEN_BYTES = 32


class SessionManager:
    """Issues, validates and revokes session tokens."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl_hours: int = 24,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self.ttl_seconds = ttl_hours * 3600
        self._clock = clock

    async def issue(self) -> str:
        now = int(self._clock())
        token = secrets.token_urlsafe(TOKEN_BYTES)
        session = Session(token=token, created_at=now, ttl=now + self.ttl_seconds)
        key = session_key(token)
        await self._store.put(key, key, session.model_dump())
        return token

    async def validate(self, token: str) -> bool:
        """True only for a known token whose ttl has not passed."""
        if not token:
            return False
        key = session_key(token)
        item = await self._store.get(key, key)
        if item is None:
            return False
        return not Session.model_validate(item).is_expired(self._clock())

    async def revoke(self, token: str) -> None:
        """Delete a session. Unknown tokens are ignored."""
        if not token:
            return
        key = session_key(token)
        await self._store.delete(key, key)
