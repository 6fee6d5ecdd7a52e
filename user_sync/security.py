"""
Password hashing for imported accounts.
"""

import logging
from typing import Optional

from passlib.context import CryptContext

logger = logging.getLogger(__name__)


class CredentialHashError(Exception):
    """Raised when the hashing backend cannot produce a hash."""
    pass


class CredentialHasher:
    """Hashes plaintext credentials through a passlib CryptContext."""

    def __init__(self, scheme: str = 'bcrypt', rounds: Optional[int] = 10):
        settings = {}
        if rounds:
            settings[f'{scheme}__default_rounds'] = rounds
        self.scheme = scheme
        self.context = CryptContext(schemes=[scheme], deprecated='auto', **settings)
        logger.debug(f"Credential hasher configured: scheme={scheme}, rounds={rounds}")

    def hash(self, plaintext: str) -> str:
        """
        Hash a plaintext credential.

        Raises:
            CredentialHashError: If the backend is missing or rejects the input
        """
        try:
            return self.context.hash(plaintext)
        except (ValueError, TypeError, RuntimeError) as e:
            # passlib's MissingBackendError is a RuntimeError
            raise CredentialHashError(f"Hashing with {self.scheme} failed: {e}") from e

    def verify(self, plaintext: str, hashed: str) -> bool:
        if not hashed:
            return False
        return self.context.verify(plaintext, hashed)
