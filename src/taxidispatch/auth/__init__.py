"""Authentication module for TaxiDispatch."""

from .service import AuthService
from .crypto import SessionEncryption
from .session import Session, SessionStore

__all__ = ["AuthService", "SessionEncryption", "Session", "SessionStore"]
