"""Persisted session holder.

The logged-in user is kept in a small JSON file under a single fixed key,
the way a mobile client keeps it in local storage. Only one session record
exists per file.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..data.models import User
from .crypto import SessionEncryption
from .service import AuthService

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Current session state."""

    user: Optional[User] = None
    token: Optional[str] = None
    loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


class SessionStore:
    """Load, update and clear the persisted session record."""

    def __init__(
        self,
        path,
        auth_service: AuthService,
        key: str = "@user_data",
        crypto: Optional[SessionEncryption] = None
    ):
        """
        Initialize session store.

        Args:
            path: File holding the session record
            auth_service: Issues and verifies the session token
            key: Fixed key the record is stored under
            crypto: Optional encryption for the stored record
        """
        self.path = Path(path).expanduser()
        self.auth = auth_service
        self.key = key
        self.crypto = crypto
        self.session = Session()

    def _read_storage(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.error(f"Error reading session storage: {e}")
            return {}

    def _write_storage(self, storage: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(storage))

    def load(self) -> Session:
        """Load the stored session; invalid or expired records are cleared."""
        raw = self._read_storage().get(self.key)
        session = Session(loading=False)

        if raw is None:
            self.session = session
            return session

        record = self.crypto.decrypt_record(raw) if self.crypto and isinstance(raw, str) else raw
        if not isinstance(record, dict):
            logger.warning("Stored session could not be decoded, clearing it")
            self.clear()
            return self.session

        token = record.get("token")
        if not token or self.auth.verify_token(token) is None:
            logger.info("Stored session token is invalid or expired, clearing it")
            self.clear()
            return self.session

        try:
            session.user = User.model_validate(record.get("user"))
        except ValidationError as e:
            logger.error(f"Stored session user is malformed: {e}")
            self.clear()
            return self.session

        session.token = token
        self.session = session
        return session

    def update_user(self, user: Optional[User]) -> Session:
        """
        Persist the given user as the current session, or clear it when None.

        Args:
            user: Logged-in user, or None to log out

        Returns:
            The updated session
        """
        if user is None:
            return self.clear()

        token = self.auth.create_access_token(user.id, user.role.value).access_token
        record = {"user": user.model_dump(mode="json"), "token": token}
        stored = self.crypto.encrypt_record(record) if self.crypto else record

        storage = self._read_storage()
        storage[self.key] = stored
        self._write_storage(storage)

        self.session = Session(user=user, token=token, loading=False)
        return self.session

    def clear(self) -> Session:
        """Remove the stored record."""
        storage = self._read_storage()
        if self.key in storage:
            del storage[self.key]
            self._write_storage(storage)
        self.session = Session(loading=False)
        return self.session

    def logout(self) -> Session:
        """Log out the current user."""
        return self.clear()
