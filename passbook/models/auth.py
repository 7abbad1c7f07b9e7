"""
Access-Control Models

The PIN hash is kept as a tagged record (algorithm, parameters, salt,
digest) in memory and as a self-describing PHC-style string in storage:

    $argon2id$v=19$m=16384,t=3,p=1$<b64 salt>$<b64 digest>

DESIGN DECISION: Because every stored hash carries its own parameters,
the hashing cost can be raised later without invalidating existing PINs.
"""

import base64
import binascii
import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from passbook.errors import CredentialFormatError


_PARAMS_RE = re.compile(r"^m=(\d+),t=(\d+),p=(\d+)$")


def _b64encode(raw: bytes) -> str:
    # Unpadded standard alphabet, as in the reference argon2 encoding
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    return base64.b64decode(padded, validate=True)


class PinHash(BaseModel):
    """Parsed form of a stored PIN hash."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = "argon2id"
    version: int = 19
    memory_cost: int = Field(..., ge=1, description="Memory in KiB")
    time_cost: int = Field(..., ge=1, description="Number of passes")
    parallelism: int = Field(..., ge=1)
    salt: bytes
    digest: bytes

    def serialize(self) -> str:
        return (
            f"${self.algorithm}$v={self.version}"
            f"$m={self.memory_cost},t={self.time_cost},p={self.parallelism}"
            f"${_b64encode(self.salt)}${_b64encode(self.digest)}"
        )

    @classmethod
    def parse(cls, encoded: str) -> "PinHash":
        """
        Parse a stored hash string.

        Raises:
            CredentialFormatError: If the string is not a well-formed descriptor
        """
        parts = encoded.split("$")
        if len(parts) != 6 or parts[0] != "":
            raise CredentialFormatError("invalid hash format")

        _, algorithm, version, params, salt, digest = parts

        if not version.startswith("v=") or not version[2:].isdigit():
            raise CredentialFormatError("invalid hash version")

        match = _PARAMS_RE.match(params)
        if not match:
            raise CredentialFormatError("failed to parse hash parameters")

        try:
            salt_bytes = _b64decode(salt)
            digest_bytes = _b64decode(digest)
        except (binascii.Error, ValueError):
            raise CredentialFormatError("failed to decode salt or digest")

        if not digest_bytes:
            raise CredentialFormatError("empty digest")

        try:
            return cls(
                algorithm=algorithm,
                version=int(version[2:]),
                memory_cost=int(match.group(1)),
                time_cost=int(match.group(2)),
                parallelism=int(match.group(3)),
                salt=salt_bytes,
                digest=digest_bytes,
            )
        except ValidationError:
            raise CredentialFormatError("hash parameters out of range")


class Credential(BaseModel):
    """The single stored PIN credential."""

    model_config = ConfigDict(extra="ignore")

    pin_hash: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return bool(self.pin_hash)

    def to_item(self) -> dict:
        return {
            "pin_hash": self.pin_hash,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Session(BaseModel):
    """An issued bearer token. Times are epoch seconds."""

    model_config = ConfigDict(extra="ignore")

    token: str
    created_at: int
    ttl: int = Field(..., description="Expiry; also the store's auto-purge field")

    def is_expired(self, now: float) -> bool:
        return self.ttl <= now


class RateLimitEntry(BaseModel):
    """Failed-attempt counter. Times are epoch seconds."""

    model_config = ConfigDict(extra="ignore")

    attempts: int = 0
    locked_at: Optional[int] = Field(
        default=None,
        description="Lock expiry; the lock is active while this is in the future"
    )
    ttl: int = 0
    updated_at: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        return self.ttl <= now

    def is_locked(self, now: float) -> bool:
        return bool(self.locked_at) and self.locked_at > now


class RateLimitState(str, Enum):
    """Where the failed-attempt counter stands."""
    NORMAL = "normal"
    WARNING = "warning"
    LOCKED = "locked"


class RateLimitStatus(BaseModel):
    """Outcome of a rate-limit check or of recording a failure."""

    state: RateLimitState
    attempts: int = 0
    attempts_remaining: Optional[int] = None
    locked_until: Optional[int] = None


class VerifyResult(BaseModel):
    """
    Result of a PIN verification.

    A failed verification is a normal outcome, not an exception:
    callers need the remaining attempts / lock expiry to render it.
    """

    success: bool
    token: Optional[str] = None
    error: Optional[str] = None
    attempts_remaining: Optional[int] = None
    locked_until: Optional[int] = None
