"""Authentication service: PIN hashing and JWT session tokens."""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from ..data.models import AuthToken


class AuthService:
    """Handles PIN verification and session token management."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", token_expiry_days: int = 7):
        """
        Initialize authentication service.

        Args:
            secret_key: Secret key for JWT encoding/decoding
            algorithm: JWT algorithm (default: HS256)
            token_expiry_days: Number of days until token expires (default: 7)
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.token_expiry = timedelta(days=token_expiry_days)

    def hash_pin(self, pin: str) -> str:
        """
        Hash a login PIN using bcrypt.

        Args:
            pin: Plain text PIN

        Returns:
            Hashed PIN string
        """
        salt = bcrypt.gensalt()
        return bcrypt.hashpw(pin.encode(), salt).decode()

    @staticmethod
    def is_hashed(stored_pin: str) -> bool:
        """Whether a stored PIN is a bcrypt hash rather than a legacy plain value."""
        return stored_pin.startswith(("$2a$", "$2b$", "$2y$"))

    def verify_pin(self, pin: str, stored_pin: Optional[str]) -> bool:
        """
        Verify a PIN against the stored value.

        Rows created before PINs were hashed hold the plain PIN; those are
        compared in constant time.

        Args:
            pin: Plain text PIN entered at login
            stored_pin: Hash (or legacy plain PIN) from the users table

        Returns:
            True if the PIN matches, False otherwise
        """
        if not stored_pin:
            return False

        if not self.is_hashed(stored_pin):
            return hmac.compare_digest(pin.encode(), stored_pin.encode())

        try:
            return bcrypt.checkpw(pin.encode(), stored_pin.encode())
        except ValueError:
            return False

    def create_access_token(self, user_id: str, role: str) -> AuthToken:
        """
        Generate JWT access token for a logged-in user.

        Args:
            user_id: Unique user identifier
            role: User role

        Returns:
            AuthToken containing access token and metadata
        """
        now = datetime.now(timezone.utc)
        expire = now + self.token_expiry

        payload = {
            "sub": user_id,
            "role": role,
            "exp": expire,
            "iat": now
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

        return AuthToken(
            access_token=token,
            expires_in=int(self.token_expiry.total_seconds())
        )

    def verify_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Decoded token payload if valid, None otherwise
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return payload
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def get_user_id_from_token(self, token: str) -> Optional[str]:
        """
        Extract user ID from token.

        Args:
            token: JWT token string

        Returns:
            User ID if token is valid, None otherwise
        """
        payload = self.verify_token(token)
        if payload:
            return payload.get("sub")
        return None
