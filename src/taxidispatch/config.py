"""Configuration management for TaxiDispatch."""

import os
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DispatchSettings(BaseModel):
    """Timing and pricing rules used by the dispatch screens and workers."""

    commission_rate: float = Field(
        default=0.1,
        description="Share of a completed trip's price deducted from the driver's balance"
    )
    request_poll_seconds: int = 10
    watcher_poll_seconds: int = 15
    watcher_background_poll_seconds: int = 30
    map_refresh_seconds: int = 30
    max_broadcast_radius_m: int = 15000
    default_search_radius_m: int = 3000
    special_driver_head_start_seconds: int = 10


class DisplayLabels(BaseModel):
    """Spanish labels shown in the UI."""

    trip_status: Dict[str, str] = {
        'broadcasting': 'Buscando chofer',
        'pending': 'Pendiente',
        'in_progress': 'En curso',
        'pickup_reached': 'En punto de recogida',
        'completed': 'Completado',
        'cancelled': 'Cancelado',
    }

    balance_type: Dict[str, str] = {
        'recarga': 'Recarga',
        'descuento': 'Descuento',
        'viaje': 'Viaje',
    }

    vehicle_type: Dict[str, str] = {
        '2_ruedas': 'Moto (2 ruedas)',
        '4_ruedas': 'Auto (4 ruedas)',
    }

    status_colors: Dict[str, str] = {
        'broadcasting': '#3B82F6',
        'pending': '#F59E0B',
        'in_progress': '#6366F1',
        'pickup_reached': '#8B5CF6',
        'completed': '#10B981',
        'cancelled': '#EF4444',
    }


class AppConfig(BaseModel):
    """Main application configuration."""

    app_title: str = "TaxiDispatch"
    session_storage_key: str = "@user_data"
    session_file: str = Field(
        default="~/.taxidispatch/session.json",
        description="Local file holding the persisted session record"
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone for 'today' boundaries; local time when unset"
    )
    dispatch: DispatchSettings = DispatchSettings()
    labels: DisplayLabels = DisplayLabels()
    report_columns: List[str] = [
        'created_at', 'origin', 'destination', 'price', 'commission', 'net',
        'driver_name', 'operator_name'
    ]


config = AppConfig()


class EnvConfig:
    """Environment-based configuration for the backend and authentication."""

    # Backend
    SUPABASE_URL: Optional[str] = os.getenv("SUPABASE_URL")
    SUPABASE_API_KEY: Optional[str] = os.getenv("SUPABASE_API_KEY")

    # Authentication
    JWT_SECRET_KEY: Optional[str] = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_DAYS: int = int(os.getenv("JWT_EXPIRY_DAYS", "7"))

    # Session encryption
    ENCRYPTION_KEY: Optional[str] = os.getenv("ENCRYPTION_KEY")
    SESSION_FILE: str = os.getenv("SESSION_FILE", config.session_file)

    # Notifications
    NOTIFY_WEBHOOK_URL: Optional[str] = os.getenv("NOTIFY_WEBHOOK_URL")
    HEALTHCHECK_URL: Optional[str] = os.getenv("HEALTHCHECK_URL")

    @classmethod
    def validate(cls) -> None:
        """
        Validate required configuration.

        Raises:
            ValueError: If required environment variables are missing
        """
        required = [
            ("SUPABASE_URL", cls.SUPABASE_URL),
            ("SUPABASE_API_KEY", cls.SUPABASE_API_KEY),
        ]

        missing = [name for name, value in required if not value]
        if missing:
            raise ValueError(f"Missing required config: {', '.join(missing)}")

    @classmethod
    def validate_auth(cls) -> None:
        """
        Validate authentication configuration.

        Raises:
            ValueError: If authentication variables are missing
        """
        required = [
            ("JWT_SECRET_KEY", cls.JWT_SECRET_KEY),
        ]

        missing = [name for name, value in required if not value]
        if missing:
            raise ValueError(
                f"Missing required auth config: {', '.join(missing)}\n"
                "Generate keys with:\n"
                "  JWT_SECRET_KEY: openssl rand -hex 32\n"
                "  ENCRYPTION_KEY: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
            )


env_config = EnvConfig()
