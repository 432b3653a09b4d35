"""Database schema definitions for TaxiDispatch.

The tables live in the hosted Supabase project; the DDL below is kept as a
reference for setting up a fresh project from the dashboard SQL editor.
"""

from enum import Enum


class Role(str, Enum):
    """Enum for user roles."""
    ADMIN = "admin"
    OPERATOR = "operador"
    DRIVER = "chofer"


class TripStatus(str, Enum):
    """Enum for trip statuses."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PICKUP_REACHED = "pickup_reached"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    """Enum for trip request statuses."""
    BROADCASTING = "broadcasting"
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class VehicleType(str, Enum):
    """Enum for vehicle types."""
    TWO_WHEELS = "2_ruedas"
    FOUR_WHEELS = "4_ruedas"


class BalanceOperationType(str, Enum):
    """Enum for balance ledger entry types."""
    RECHARGE = "recarga"
    DEDUCTION = "descuento"
    TRIP = "viaje"


# Table names
USERS = "users"
DRIVER_PROFILES = "driver_profiles"
OPERATOR_PROFILES = "operator_profiles"
TRIPS = "trips"
TRIP_REQUESTS = "trip_requests"
TRIP_STOPS = "trip_stops"
BALANCE_HISTORY = "balance_history"

ALL_TABLES = [
    USERS,
    DRIVER_PROFILES,
    OPERATOR_PROFILES,
    TRIPS,
    TRIP_REQUESTS,
    TRIP_STOPS,
    BALANCE_HISTORY,
]

# Backend functions called through rpc()
RPC_INCREMENT_BALANCE = "increment_driver_balance"
RPC_CONVERT_REQUEST = "convert_request_to_trip"
RPC_ATTEMPT_ACCEPT = "attempt_accept_trip_request"
RPC_CONFIRM_ACCEPT = "confirm_trip_request_acceptance"
RPC_RELEASE_REQUEST = "release_trip_request"
RPC_DRIVERS_IN_RADIUS = "get_available_drivers_in_radius"


CREATE_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    phone_number TEXT UNIQUE NOT NULL,
    pin TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'operador', 'chofer')),
    active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

CREATE_DRIVER_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS driver_profiles (
    id UUID PRIMARY KEY REFERENCES users(id),
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    license_number TEXT,
    phone_number TEXT,
    vehicle TEXT,
    vehicle_type TEXT CHECK (vehicle_type IN ('2_ruedas', '4_ruedas')),
    is_special BOOLEAN DEFAULT FALSE,
    balance NUMERIC DEFAULT 0,
    is_on_duty BOOLEAN DEFAULT FALSE,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    last_location_update TIMESTAMPTZ,
    last_duty_change TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

CREATE_OPERATOR_PROFILES_TABLE = """
CREATE TABLE IF NOT EXISTS operator_profiles (
    id UUID PRIMARY KEY REFERENCES users(id),
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    identity_card TEXT,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

CREATE_TRIP_REQUESTS_TABLE = """
CREATE TABLE IF NOT EXISTS trip_requests (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    created_by UUID REFERENCES users(id),
    driver_id UUID REFERENCES driver_profiles(id),
    origin TEXT NOT NULL,
    destination TEXT NOT NULL,
    origin_lat DOUBLE PRECISION,
    origin_lng DOUBLE PRECISION,
    destination_lat DOUBLE PRECISION,
    destination_lng DOUBLE PRECISION,
    price NUMERIC NOT NULL,
    search_radius INTEGER,
    current_radius INTEGER,
    observations TEXT,
    vehicle_type TEXT,
    passenger_phone TEXT,
    notified_drivers UUID[] DEFAULT '{}',
    cancelled_trip_id UUID,
    status TEXT NOT NULL DEFAULT 'broadcasting',
    expires_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

CREATE_TRIP_STOPS_TABLE = """
CREATE TABLE IF NOT EXISTS trip_stops (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    trip_request_id UUID REFERENCES trip_requests(id),
    trip_id UUID,
    name TEXT NOT NULL,
    latitude DOUBLE PRECISION,
    longitude DOUBLE PRECISION,
    order_index INTEGER
);
"""

CREATE_TRIPS_TABLE = """
CREATE TABLE IF NOT EXISTS trips (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    driver_id UUID REFERENCES driver_profiles(id),
    created_by UUID REFERENCES users(id),
    origin TEXT NOT NULL,
    destination TEXT NOT NULL,
    origin_lat DOUBLE PRECISION,
    origin_lng DOUBLE PRECISION,
    destination_lat DOUBLE PRECISION,
    destination_lng DOUBLE PRECISION,
    price NUMERIC NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    vehicle_type TEXT,
    passenger_phone TEXT,
    cancellation_reason TEXT,
    cancelled_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

CREATE_BALANCE_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS balance_history (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    driver_id UUID REFERENCES driver_profiles(id),
    amount NUMERIC NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('recarga', 'descuento', 'viaje')),
    description TEXT,
    created_by UUID REFERENCES users(id),
    created_at TIMESTAMPTZ DEFAULT now()
);
"""

TABLE_DDL = {
    USERS: CREATE_USERS_TABLE,
    DRIVER_PROFILES: CREATE_DRIVER_PROFILES_TABLE,
    OPERATOR_PROFILES: CREATE_OPERATOR_PROFILES_TABLE,
    TRIPS: CREATE_TRIPS_TABLE,
    TRIP_REQUESTS: CREATE_TRIP_REQUESTS_TABLE,
    TRIP_STOPS: CREATE_TRIP_STOPS_TABLE,
    BALANCE_HISTORY: CREATE_BALANCE_HISTORY_TABLE,
}
