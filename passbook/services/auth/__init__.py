"""
Access-Control Services

PIN credential lifecycle, failed-attempt limiting and sessions.
"""

from passbook.services.auth.credentials import CredentialManager
from passbook.services.auth.hashing import PinHasher, validate_pin
from passbook.services.auth.rate_limiter import RateLimiter
from passbook.services.auth.sessions import SessionManager

__all__ = [
    "CredentialManager",
    "PinHasher",
    "RateLimiter",
    "SessionManager",
    "validate_pin",
]
