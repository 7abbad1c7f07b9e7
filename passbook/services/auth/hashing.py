"""
PIN Hashing

Argon2id via argon2-cffi's low-level binding. We drive the raw hash
ourselves (rather than argon2.PasswordHasher) so the stored descriptor is
exactly the PinHash record: algorithm, version, parameters, salt, digest.

Verification always uses the parameters stored with the hash, never the
current configuration.
"""

import hmac
import secrets
from typing import Optional

from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, Type, hash_secret_raw

from passbook.config import AuthSettings
from passbook.errors import CredentialFormatError, PINNotNumericError, PINTooShortError
from passbook.models.auth import PinHash


PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6
SALT_LENGTH = 16
DIGEST_LENGTH = 32

_DIGITS = frozenset("0123456789")


def validate_pin(pin: str) -> None:
    """
    Check a PIN is 4-6 ASCII digits.

    Raises:
        PINTooShortError: Length outside 4-6
        PINNotNumericError: Any non-digit character
    """
    if len(pin) < PIN_MIN_LENGTH or len(pin) > PIN_MAX_LENGTH:
        raise PINTooShortError()
    # str.isdigit() accepts non-ASCII digits, so compare against the set
    if not set(pin) <= _DIGITS:
        raise PINNotNumericError()


class PinHasher:
    """Hashes and verifies PINs with Argon2id."""

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 16 * 1024,
        parallelism: int = 1,
    ):
        self.time_cost = time_cost
        self.memory_cost = memory_cost
        self.parallelism = parallelism

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> "PinHasher":
        return cls(
            time_cost=settings.argon_time_cost,
            memory_cost=settings.argon_memory_cost_kib,
            parallelism=settings.argon_parallelism,
        )

    def hash(self, pin: str, salt: Optional[bytes] = None) -> PinHash:
        """Hash a PIN with a fresh random salt."""
        salt = salt or secrets.token_bytes(SALT_LENGTH)
        digest = hash_secret_raw(
            secret=pin.encode("utf-8"),
            salt=salt,
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=DIGEST_LENGTH,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
        return PinHash(
            algorithm="argon2id",
            version=ARGON2_VERSION,
            memory_cost=self.memory_cost,
            time_cost=self.time_cost,
            parallelism=self.parallelism,
            salt=salt,
            digest=digest,
        )

    def verify(self, pin: str, encoded: str) -> bool:
        """
        Check a PIN against a stored hash string.

        Raises:
            CredentialFormatError: Malformed descriptor or unsupported algorithm
        """
        stored = PinHash.parse(encoded)
        if stored.algorithm != "argon2id":
            raise CredentialFormatError(f"unsupported algorithm: {stored.algorithm}")
        if stored.version != ARGON2_VERSION:
            raise CredentialFormatError(f"unsupported argon2 version: {stored.version}")

        try:
            candidate = hash_secret_raw(
                secret=pin.encode("utf-8"),
                salt=stored.salt,
                time_cost=stored.time_cost,
                memory_cost=stored.memory_cost,
                parallelism=stored.parallelism,
                hash_len=len(stored.digest),
                type=Type.ID,
                version=stored.version,
            )
        except HashingError as e:
            # Parameters parsed but argon2 refuses them
            raise CredentialFormatError(f"unusable argon2 parameters: {e}")
        return hmac.compare_digest(candidate, stored.digest)
