"""Data models for TaxiDispatch."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from taxidispatch.data.schema import (
    BalanceOperationType,
    RequestStatus,
    Role,
    TripStatus,
    VehicleType,
)


def _first_or_none(value: Any) -> Any:
    """Collapse a one-element embedded list into its row."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class DriverProfile(BaseModel):
    """Driver profile row."""

    id: str = Field(..., description="Same id as the owning user")
    first_name: str = Field("", description="Driver's first name")
    last_name: str = Field("", description="Driver's last name")
    license_number: Optional[str] = None
    phone_number: Optional[str] = None
    vehicle: Optional[str] = Field(None, description="Vehicle description or plate")
    vehicle_type: Optional[VehicleType] = None
    is_special: bool = Field(default=False, description="Special drivers see broadcasts first")
    balance: float = Field(default=0.0, description="Running account balance")
    is_on_duty: bool = Field(default=False, description="Driver-toggled availability flag")
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    last_location_update: Optional[datetime] = None
    last_duty_change: Optional[datetime] = None
    created_at: Optional[datetime] = None
    users: Optional[Dict[str, Any]] = Field(None, description="Embedded user row")

    class Config:
        """Pydantic model configuration."""
        from_attributes = True

    @field_validator("users", mode="before")
    @classmethod
    def unwrap_users(cls, value):
        return _first_or_none(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def active(self) -> bool:
        """Whether the owning user account is active (True when not embedded)."""
        if not self.users:
            return True
        return bool(self.users.get("active", True))

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class OperatorProfile(BaseModel):
    """Dispatch operator profile row."""

    id: str
    first_name: str = ""
    last_name: str = ""
    identity_card: Optional[str] = None
    created_at: Optional[datetime] = None
    users: Optional[Dict[str, Any]] = None

    class Config:
        """Pydantic model configuration."""
        from_attributes = True

    @field_validator("users", mode="before")
    @classmethod
    def unwrap_users(cls, value):
        return _first_or_none(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def active(self) -> bool:
        if not self.users:
            return True
        return bool(self.users.get("active", True))

    @property
    def phone_number(self) -> Optional[str]:
        return (self.users or {}).get("phone_number")


class User(BaseModel):
    """User account model."""

    id: str = Field(..., description="Unique user identifier")
    phone_number: str = Field(..., description="Login phone number")
    pin: Optional[str] = Field(None, description="Stored PIN hash", exclude=True)
    role: Role = Field(..., description="Role gating navigation")
    active: bool = Field(default=True, description="Inactive accounts cannot log in")
    created_at: Optional[datetime] = None
    driver_profiles: Optional[DriverProfile] = None
    operator_profiles: Optional[OperatorProfile] = None

    class Config:
        """Pydantic model configuration."""
        from_attributes = True

    @field_validator("driver_profiles", "operator_profiles", mode="before")
    @classmethod
    def unwrap_profiles(cls, value):
        return _first_or_none(value)

    @property
    def display_name(self) -> str:
        if self.driver_profiles is not None:
            return self.driver_profiles.full_name
        if self.operator_profiles is not None:
            return self.operator_profiles.full_name
        return self.phone_number


class TripStop(BaseModel):
    """Intermediate stop of a trip request."""

    id: Optional[str] = None
    name: str
    latitude: float
    longitude: float
    order_index: Optional[int] = None


class Trip(BaseModel):
    """Trip row."""

    id: str
    driver_id: Optional[str] = None
    created_by: Optional[str] = None
    origin: str = ""
    destination: str = ""
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    status: TripStatus = TripStatus.PENDING
    price: float = 0.0
    vehicle_type: Optional[VehicleType] = None
    passenger_phone: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    trip_stops: List[TripStop] = Field(default_factory=list)
    driver_profiles: Optional[Dict[str, Any]] = Field(None, description="Embedded driver row")

    @field_validator("trip_stops", mode="before")
    @classmethod
    def default_stops(cls, value):
        return value or []

    @field_validator("driver_profiles", mode="before")
    @classmethod
    def unwrap_driver(cls, value):
        return _first_or_none(value)

    @property
    def driver_name(self) -> str:
        if not self.driver_profiles:
            return ""
        first = self.driver_profiles.get("first_name") or ""
        last = self.driver_profiles.get("last_name") or ""
        return f"{first} {last}".strip()


class TripRequest(BaseModel):
    """Trip request broadcast to nearby drivers."""

    id: str
    created_by: Optional[str] = None
    driver_id: Optional[str] = None
    origin: str = ""
    destination: str = ""
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    price: float = 0.0
    search_radius: Optional[int] = None
    current_radius: Optional[int] = None
    observations: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None
    passenger_phone: Optional[str] = None
    notified_drivers: List[str] = Field(default_factory=list)
    cancelled_trip_id: Optional[str] = None
    status: RequestStatus = RequestStatus.BROADCASTING
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    trip_stops: List[TripStop] = Field(default_factory=list)

    @field_validator("notified_drivers", "trip_stops", mode="before")
    @classmethod
    def default_lists(cls, value):
        return value or []


class BalanceHistory(BaseModel):
    """Append-only balance ledger entry."""

    id: str
    driver_id: str
    amount: float
    type: BalanceOperationType
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None


# Payloads

class DriverCreate(BaseModel):
    """Driver registration payload."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=6)
    pin: str = Field(..., min_length=4, description="Login PIN (hashed before storage)")
    vehicle: str = ""
    vehicle_type: VehicleType = VehicleType.FOUR_WHEELS
    is_special: bool = False


class DriverUpdate(BaseModel):
    """Partial driver update; unset fields are left untouched."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    vehicle: Optional[str] = None
    vehicle_type: Optional[VehicleType] = None
    is_special: Optional[bool] = None
    pin: Optional[str] = Field(None, min_length=4)


class OperatorCreate(BaseModel):
    """Operator registration payload."""

    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone_number: str = Field(..., min_length=6)
    pin: str = Field(..., min_length=4)


class OperatorUpdate(BaseModel):
    """Partial operator update."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    pin: Optional[str] = Field(None, min_length=4)


class StopCreate(BaseModel):
    """Stop entered on the broadcast form."""

    name: str
    latitude: float
    longitude: float


class BroadcastRequestCreate(BaseModel):
    """Trip request created by an operator."""

    operator_id: str
    origin: str
    destination: str
    price: float = Field(..., gt=0)
    origin_lat: float
    origin_lng: float
    destination_lat: float
    destination_lng: float
    search_radius: int = Field(3000, gt=0)
    observations: str = ""
    vehicle_type: VehicleType = VehicleType.FOUR_WHEELS
    passenger_phone: str = ""
    status: RequestStatus = RequestStatus.BROADCASTING
    stops: List[StopCreate] = Field(default_factory=list)


class BalanceAdjustment(BaseModel):
    """Recharge or deduction entered by an administrator."""

    driver_id: str
    amount: float = Field(..., gt=0)
    type: BalanceOperationType = BalanceOperationType.RECHARGE
    description: str = ""


# Results

class Position(BaseModel):
    """Device position report."""

    latitude: float
    longitude: float
    timestamp: datetime = Field(default_factory=datetime.now)


class DutyToggleResult(BaseModel):
    """Outcome of a duty toggle."""

    success: bool
    is_on_duty: bool


class BalanceUpdateResult(BaseModel):
    """Ledger entry written plus the driver's balance after the change."""

    entry: BalanceHistory
    balance: Optional[float] = None


class BroadcastResult(BaseModel):
    """Number of drivers notified in each broadcast wave."""

    success: bool = True
    special_drivers_count: int = 0
    regular_drivers_count: int = 0


class OperatorTripItem(BaseModel):
    """Row in the operator's list of today's trips and open requests."""

    id: str
    kind: Literal["trip", "request"]
    status: str
    price: float = 0.0
    origin: str = ""
    destination: str = ""
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class DriverTripStats(BaseModel):
    """Trip count, earnings and balance for one driver over a time frame."""

    total_trips: int = 0
    total_earnings: float = 0.0
    balance: float = 0.0


class AdminDashboardStats(BaseModel):
    """Counters shown on the admin panel."""

    trips_today: int = 0
    active_drivers: int = 0
    total_users: int = 0


class AuthToken(BaseModel):
    """JWT session token."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Token expiration time in seconds")
