"""Driver profile, duty status and balance data access layer."""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from ..errors import NotFoundError
from .dates import to_iso
from .models import (
    BalanceHistory,
    BalanceUpdateResult,
    DriverCreate,
    DriverProfile,
    DriverUpdate,
    DutyToggleResult,
    Trip,
)
from .schema import (
    BALANCE_HISTORY,
    DRIVER_PROFILES,
    RPC_INCREMENT_BALANCE,
    TRIPS,
    USERS,
    BalanceOperationType,
    Role,
    TripStatus,
)
from .user_store import UserStore

logger = logging.getLogger(__name__)

ACTIVE_TRIP_STATUSES = [
    TripStatus.PENDING.value,
    TripStatus.IN_PROGRESS.value,
    TripStatus.PICKUP_REACHED.value,
]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_license_number() -> str:
    """Placeholder license number assigned at driver creation."""
    return f"LIC-{int(time.time() * 1000)}-{uuid.uuid4().hex[:5]}"


class DriverStore:
    """Manage driver profiles, duty status, location and balance."""

    def __init__(self, client, user_store: UserStore):
        """
        Initialize driver store.

        Args:
            client: Supabase client
            user_store: Store for the user rows that own driver profiles
        """
        self.client = client
        self.users = user_store

    def create_driver(self, driver_data: DriverCreate) -> DriverProfile:
        """
        Register a driver: a 'chofer' user plus its profile.

        The user row is removed again if the profile cannot be created.

        Args:
            driver_data: Driver registration data

        Returns:
            Created DriverProfile

        Raises:
            DuplicateUserError: If the phone number is already registered
            ValueError: If the profile insert fails
        """
        user = self.users.register(driver_data.phone_number, driver_data.pin, Role.DRIVER)

        profile = {
            "id": user.id,
            "first_name": driver_data.first_name,
            "last_name": driver_data.last_name,
            "phone_number": driver_data.phone_number,
            "vehicle": driver_data.vehicle,
            "vehicle_type": driver_data.vehicle_type.value,
            "is_special": driver_data.is_special,
            "license_number": generate_license_number(),
        }

        try:
            result = self.client.table(DRIVER_PROFILES).insert(profile).execute()
        except Exception as e:
            logger.error(f"Error creating driver profile: {e}", exc_info=True)
            self.client.table(USERS).delete().eq("id", user.id).execute()
            raise ValueError(f"Error al crear perfil del conductor: {e}") from e

        if not result.data:
            self.client.table(USERS).delete().eq("id", user.id).execute()
            raise ValueError("No se pudo crear el perfil del conductor")

        logger.info(f"Created driver {user.id}")
        return DriverProfile.model_validate(result.data[0])

    def get_driver_profile(self, driver_id: str) -> DriverProfile:
        """
        Get a driver profile by ID.

        Raises:
            NotFoundError: If the profile does not exist
        """
        result = (self.client
                  .table(DRIVER_PROFILES)
                  .select("*, users(active, phone_number)")
                  .eq("id", driver_id)
                  .limit(1)
                  .execute())

        if not result.data:
            raise NotFoundError("Perfil de conductor no encontrado")
        return DriverProfile.model_validate(result.data[0])

    def update_location(self, driver_id: str, latitude: float, longitude: float) -> None:
        """Store the driver's latest reported position."""
        (self.client
         .table(DRIVER_PROFILES)
         .update({
             "latitude": latitude,
             "longitude": longitude,
             "last_location_update": _now_iso(),
         })
         .eq("id", driver_id)
         .execute())

    def get_available_drivers(self) -> List[DriverProfile]:
        """Active, on-duty drivers with a known position."""
        result = (self.client
                  .table(DRIVER_PROFILES)
                  .select("*, users!inner(active)")
                  .eq("users.active", True)
                  .eq("is_on_duty", True)
                  .not_.is_("latitude", "null")
                  .not_.is_("longitude", "null")
                  .execute())
        return [DriverProfile.model_validate(row) for row in result.data or []]

    def get_all_drivers(self) -> List[DriverProfile]:
        """All drivers, newest first, with their account status."""
        result = (self.client
                  .table(DRIVER_PROFILES)
                  .select("*, users(active, phone_number)")
                  .order("created_at", desc=True)
                  .execute())
        return [DriverProfile.model_validate(row) for row in result.data or []]

    def get_all_drivers_with_location(self) -> List[DriverProfile]:
        """Active drivers with a known position, on duty or not."""
        try:
            result = (self.client
                      .table(DRIVER_PROFILES)
                      .select("*, users!inner(active)")
                      .eq("users.active", True)
                      .not_.is_("latitude", "null")
                      .not_.is_("longitude", "null")
                      .order("created_at", desc=True)
                      .execute())
        except Exception as e:
            logger.error(f"Error fetching drivers with location: {e}", exc_info=True)
            return []
        return [DriverProfile.model_validate(row) for row in result.data or []]

    def update_driver_status(self, driver_id: str, is_on_duty: bool) -> DriverProfile:
        """
        Set the driver's duty flag.

        Returns:
            The updated profile

        Raises:
            NotFoundError: If no profile was updated
        """
        result = (self.client
                  .table(DRIVER_PROFILES)
                  .update({"is_on_duty": is_on_duty, "last_duty_change": _now_iso()})
                  .eq("id", driver_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Perfil de conductor no encontrado")
        return DriverProfile.model_validate(result.data[0])

    def toggle_duty_status(self, driver_id: str) -> DutyToggleResult:
        """Invert the stored duty flag; failures are reported, not raised."""
        try:
            current = self.get_driver_profile(driver_id)
            updated = self.update_driver_status(driver_id, not current.is_on_duty)
        except Exception as e:
            logger.error(f"Error toggling duty status: {e}", exc_info=True)
            return DutyToggleResult(success=False, is_on_duty=False)

        logger.info(f"Driver {driver_id} duty status is now {updated.is_on_duty}")
        return DutyToggleResult(success=True, is_on_duty=updated.is_on_duty)

    def set_active(self, driver_id: str, active: bool) -> None:
        """Activate or deactivate the driver's account (drivers are never hard-deleted)."""
        self.users.set_active(driver_id, active)

    def update_driver(self, driver_id: str, driver_data: DriverUpdate) -> DriverProfile:
        """
        Update profile fields and, when given, the login phone number and PIN.

        Raises:
            NotFoundError: If no profile was updated
        """
        if driver_data.phone_number or driver_data.pin:
            self.users.update_credentials(driver_id, driver_data.phone_number, driver_data.pin)

        updates = driver_data.model_dump(exclude_none=True, exclude={"pin"}, mode="json")
        if not updates:
            return self.get_driver_profile(driver_id)

        result = (self.client
                  .table(DRIVER_PROFILES)
                  .update(updates)
                  .eq("id", driver_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Perfil de conductor no encontrado")
        return DriverProfile.model_validate(result.data[0])

    def update_driver_balance(
        self,
        driver_id: str,
        amount: float,
        operation: BalanceOperationType,
        description: str,
        created_by: str
    ) -> BalanceUpdateResult:
        """
        Append a ledger entry and apply it to the driver's balance.

        Deductions are applied as negative amounts; the ledger keeps the
        positive amount and its type.

        Args:
            driver_id: Driver whose balance changes
            amount: Positive amount of the operation
            operation: recarga, descuento or viaje
            description: Free-text reason shown in the history
            created_by: User who performed the operation

        Returns:
            The ledger entry and the balance after the change
        """
        operation = BalanceOperationType(operation)
        result = self.client.table(BALANCE_HISTORY).insert({
            "driver_id": driver_id,
            "amount": amount,
            "type": operation.value,
            "description": description,
            "created_by": created_by,
        }).execute()

        if not result.data:
            raise ValueError("No se pudo registrar el movimiento de saldo")
        entry = BalanceHistory.model_validate(result.data[0])

        signed_amount = -amount if operation == BalanceOperationType.DEDUCTION else amount
        self.client.rpc(RPC_INCREMENT_BALANCE, {
            "driver_id": driver_id,
            "amount": signed_amount,
        }).execute()

        balance = self.get_driver_profile(driver_id).balance
        logger.info(f"Balance of driver {driver_id} changed by {signed_amount} to {balance}")
        return BalanceUpdateResult(entry=entry, balance=balance)

    def get_balance_history(
        self,
        driver_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[BalanceHistory]:
        """Ledger entries for a driver, newest first, optionally bounded by date."""
        try:
            query = (self.client
                     .table(BALANCE_HISTORY)
                     .select("*")
                     .eq("driver_id", driver_id)
                     .order("created_at", desc=True))
            if start:
                query = query.gte("created_at", to_iso(start))
            if end:
                query = query.lte("created_at", to_iso(end))
            result = query.execute()
        except Exception as e:
            logger.error(f"Error fetching balance history: {e}", exc_info=True)
            return []
        return [BalanceHistory.model_validate(row) for row in result.data or []]

    def get_active_trips(self, driver_id: str) -> List[Trip]:
        """Trips assigned to the driver that are not finished."""
        result = (self.client
                  .table(TRIPS)
                  .select("*")
                  .eq("driver_id", driver_id)
                  .in_("status", ACTIVE_TRIP_STATUSES)
                  .execute())
        return [Trip.model_validate(row) for row in result.data or []]
