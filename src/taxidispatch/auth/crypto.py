"""Encryption of the session record persisted on the device."""

import json
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

# Bumped when the shape of the stored session record changes; older records
# are then treated as absent and the user logs in again.
RECORD_VERSION = 1


class SessionEncryption:
    """
    Seal the stored session record with Fernet.

    The record is wrapped in a small envelope carrying RECORD_VERSION.
    Fernet tokens embed their creation time, so a max_age makes records older
    than the session lifetime unreadable even if the file is copied elsewhere.
    """

    def __init__(self, encryption_key: str, max_age: Optional[int] = None):
        """
        Args:
            encryption_key: Fernet encryption key (base64 encoded)
            max_age: Seconds after which a sealed record is rejected
        """
        self.cipher = Fernet(encryption_key.encode())
        self.max_age = max_age

    def encrypt_record(self, record: dict) -> str:
        """Seal a session record (user and token) into a token string."""
        envelope = {"v": RECORD_VERSION, "session": record}
        return self.cipher.encrypt(json.dumps(envelope).encode()).decode()

    def decrypt_record(self, encrypted: str) -> Optional[dict]:
        """
        Open a sealed session record.

        Returns:
            The record, or None if the token is invalid, expired, or was
            written with a different record version
        """
        try:
            envelope = json.loads(self.cipher.decrypt(encrypted.encode(), ttl=self.max_age))
        except (InvalidToken, ValueError):
            return None

        if not isinstance(envelope, dict) or envelope.get("v") != RECORD_VERSION:
            return None
        return envelope.get("session")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()
