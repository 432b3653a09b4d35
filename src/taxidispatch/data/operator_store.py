"""Operator profile data access layer."""

import logging
import time
from typing import List

from ..errors import NotFoundError
from .models import DriverProfile, OperatorCreate, OperatorProfile, OperatorUpdate, Trip
from .schema import DRIVER_PROFILES, OPERATOR_PROFILES, TRIPS, USERS, Role, TripStatus
from .user_store import UserStore

logger = logging.getLogger(__name__)


def generate_identity_card() -> str:
    """Identity card assigned at operator creation: 'OP' plus the last 6 ms digits."""
    return f"OP{str(int(time.time() * 1000))[-6:]}"


class OperatorStore:
    """Manage dispatch operators and the trips they assign."""

    def __init__(self, client, user_store: UserStore):
        self.client = client
        self.users = user_store

    def create_operator(self, operator_data: OperatorCreate) -> OperatorProfile:
        """
        Register an operator: an 'operador' user plus its profile.

        Raises:
            DuplicateUserError: If the phone number is already registered
            ValueError: If the profile insert fails (the user row is removed)
        """
        user = self.users.register(operator_data.phone_number, operator_data.pin, Role.OPERATOR)

        profile = {
            "id": user.id,
            "first_name": operator_data.first_name,
            "last_name": operator_data.last_name,
            "identity_card": generate_identity_card(),
        }

        try:
            result = self.client.table(OPERATOR_PROFILES).insert(profile).execute()
        except Exception as e:
            logger.error(f"Error creating operator profile: {e}", exc_info=True)
            self.client.table(USERS).delete().eq("id", user.id).execute()
            raise ValueError(f"Error al crear el operador: {e}") from e

        if not result.data:
            self.client.table(USERS).delete().eq("id", user.id).execute()
            raise ValueError("Error al crear el operador")

        logger.info(f"Created operator {user.id}")
        return OperatorProfile.model_validate(result.data[0])

    def get_all_operators(self) -> List[OperatorProfile]:
        """All operators, newest first, with phone number and account status."""
        result = (self.client
                  .table(OPERATOR_PROFILES)
                  .select("*, users(id, phone_number, active)")
                  .order("created_at", desc=True)
                  .execute())
        return [OperatorProfile.model_validate(row) for row in result.data or []]

    def update_operator(self, operator_id: str, operator_data: OperatorUpdate) -> OperatorProfile:
        """Update names and, when given, the login phone number and PIN."""
        self.users.update_credentials(operator_id, operator_data.phone_number, operator_data.pin)

        updates = operator_data.model_dump(exclude_none=True, include={"first_name", "last_name"})
        query = self.client.table(OPERATOR_PROFILES)
        if updates:
            result = query.update(updates).eq("id", operator_id).execute()
        else:
            result = query.select("*").eq("id", operator_id).limit(1).execute()

        if not result.data:
            raise NotFoundError("Operador no encontrado")
        return OperatorProfile.model_validate(result.data[0])

    def update_operator_status(self, operator_id: str, active: bool) -> None:
        self.users.set_active(operator_id, active)

    def delete_operator(self, operator_id: str) -> None:
        """Soft delete: the account is deactivated, rows are kept."""
        self.users.set_active(operator_id, False)
        logger.info(f"Deactivated operator {operator_id}")

    def get_active_drivers_with_location(self) -> List[DriverProfile]:
        """On-duty drivers of active accounts with a known position."""
        result = (self.client
                  .table(DRIVER_PROFILES)
                  .select("*, users!inner(active)")
                  .eq("users.active", True)
                  .eq("is_on_duty", True)
                  .not_.is_("latitude", "null")
                  .not_.is_("longitude", "null")
                  .execute())
        return [DriverProfile.model_validate(row) for row in result.data or []]

    def assign_trip_to_driver(self, trip_id: str, driver_id: str) -> Trip:
        """Hand a trip to a driver and mark it in progress."""
        result = (self.client
                  .table(TRIPS)
                  .update({"driver_id": driver_id, "status": TripStatus.IN_PROGRESS.value})
                  .eq("id", trip_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Viaje no encontrado")
        return Trip.model_validate(result.data[0])

    def get_pending_trips(self) -> List[Trip]:
        result = (self.client
                  .table(TRIPS)
                  .select("*, driver_profiles(first_name, last_name, vehicle)")
                  .eq("status", TripStatus.PENDING.value)
                  .execute())
        return [Trip.model_validate(row) for row in result.data or []]
