"""Factory for creating data store instances."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from taxidispatch.auth.crypto import SessionEncryption
from taxidispatch.auth.service import AuthService
from taxidispatch.auth.session import SessionStore
from taxidispatch.config import config, env_config
from taxidispatch.data.analytics import AnalyticsStore
from taxidispatch.data.driver_store import DriverStore
from taxidispatch.data.operator_store import OperatorStore
from taxidispatch.data.supabase_client import get_supabase_client
from taxidispatch.data.trip_store import TripStore
from taxidispatch.data.user_store import UserStore


@dataclass
class Stores:
    """All data stores sharing one backend client."""

    users: UserStore
    drivers: DriverStore
    operators: OperatorStore
    trips: TripStore
    analytics: AnalyticsStore


def build_stores(client, auth_service: AuthService) -> Stores:
    """Wire the stores around an existing client."""
    users = UserStore(client, auth_service)
    return Stores(
        users=users,
        drivers=DriverStore(client, users),
        operators=OperatorStore(client, users),
        trips=TripStore(client, config.dispatch),
        analytics=AnalyticsStore(client),
    )


@lru_cache(maxsize=1)
def get_auth_service() -> AuthService:
    """Return a cached AuthService configured from the environment."""
    env_config.validate_auth()
    return AuthService(
        secret_key=env_config.JWT_SECRET_KEY,
        algorithm=env_config.JWT_ALGORITHM,
        token_expiry_days=env_config.JWT_EXPIRY_DAYS,
    )


@lru_cache(maxsize=1)
def get_stores() -> Stores:
    """Return cached stores bound to the Supabase client."""
    return build_stores(get_supabase_client(), get_auth_service())


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    """Return the session store for the local session file."""
    crypto = None
    if env_config.ENCRYPTION_KEY:
        crypto = SessionEncryption(
            env_config.ENCRYPTION_KEY,
            max_age=env_config.JWT_EXPIRY_DAYS * 24 * 3600,
        )
    return SessionStore(
        path=Path(env_config.SESSION_FILE).expanduser(),
        auth_service=get_auth_service(),
        key=config.session_storage_key,
        crypto=crypto,
    )
