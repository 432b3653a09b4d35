"""User account data access layer."""

import logging
from typing import Optional

from ..auth.service import AuthService
from ..errors import DuplicateUserError, LoginError, NotFoundError
from .models import User
from .schema import DRIVER_PROFILES, OPERATOR_PROFILES, USERS, Role

logger = logging.getLogger(__name__)

USER_WITH_PROFILES = "*, driver_profiles(*), operator_profiles(*)"


class UserStore:
    """Manage user accounts and phone/PIN login."""

    def __init__(self, client, auth_service: AuthService):
        """
        Initialize user store.

        Args:
            client: Supabase client
            auth_service: Authentication service for PIN hashing
        """
        self.client = client
        self.auth = auth_service

    def _fetch_user_row(self, column: str, value: str) -> Optional[dict]:
        result = (self.client
                  .table(USERS)
                  .select(USER_WITH_PROFILES)
                  .eq(column, value)
                  .limit(1)
                  .execute())
        return result.data[0] if result.data else None

    def get_user_by_phone(self, phone_number: str) -> Optional[User]:
        """
        Find user by phone number.

        Args:
            phone_number: Login phone number

        Returns:
            User instance if found, None otherwise
        """
        row = self._fetch_user_row("phone_number", phone_number)
        return User.model_validate(row) if row else None

    def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Find user by ID.

        Args:
            user_id: Unique user identifier

        Returns:
            User instance if found, None otherwise
        """
        row = self._fetch_user_row("id", user_id)
        return User.model_validate(row) if row else None

    def login(self, phone_number: str, pin: str) -> User:
        """
        Authenticate a user with phone number and PIN.

        Inactive accounts are rejected even when the credentials match.

        Args:
            phone_number: Login phone number
            pin: Plain text PIN

        Returns:
            The authenticated User

        Raises:
            LoginError: If the credentials do not match or the account is inactive
        """
        row = self._fetch_user_row("phone_number", phone_number)

        if not row or not self.auth.verify_pin(pin, row.get("pin")):
            raise LoginError("Usuario no encontrado")

        user = User.model_validate(row)

        if not user.active:
            if user.role == Role.DRIVER:
                raise LoginError("Cuenta de chofer inactiva")
            raise LoginError("Cuenta inactiva")

        logger.info(f"User {user.id} logged in as {user.role.value}")
        return user

    def register(self, phone_number: str, pin: str, role: Role, active: bool = True) -> User:
        """
        Create a user account.

        Args:
            phone_number: Login phone number
            pin: Plain text PIN (hashed before storage)
            role: Account role
            active: Whether the account can log in

        Returns:
            Created User instance

        Raises:
            DuplicateUserError: If the phone number is already registered
        """
        if self._fetch_user_row("phone_number", phone_number):
            raise DuplicateUserError("Ya existe un usuario con este número de teléfono")

        result = self.client.table(USERS).insert({
            "phone_number": phone_number,
            "pin": self.auth.hash_pin(pin),
            "role": Role(role).value,
            "active": active,
        }).execute()

        if not result.data:
            raise NotFoundError("No se pudo crear el usuario")

        return User.model_validate(result.data[0])

    def update_credentials(
        self,
        user_id: str,
        phone_number: Optional[str] = None,
        pin: Optional[str] = None
    ) -> None:
        """Update the login phone number and/or PIN of a user."""
        updates = {}
        if phone_number:
            updates["phone_number"] = phone_number
        if pin:
            updates["pin"] = self.auth.hash_pin(pin)

        if updates:
            self.client.table(USERS).update(updates).eq("id", user_id).execute()

    def set_active(self, user_id: str, active: bool) -> None:
        """Activate or deactivate a user account."""
        self.client.table(USERS).update({"active": active}).eq("id", user_id).execute()

    def delete_user(self, user_id: str) -> None:
        """
        Delete a user and its role profile.

        Args:
            user_id: Unique user identifier

        Raises:
            NotFoundError: If the user does not exist
        """
        result = self.client.table(USERS).select("role").eq("id", user_id).execute()
        if not result.data:
            raise NotFoundError(f"User {user_id} not found")

        role = result.data[0].get("role")
        if role == Role.DRIVER.value:
            self.client.table(DRIVER_PROFILES).delete().eq("id", user_id).execute()
        elif role == Role.OPERATOR.value:
            self.client.table(OPERATOR_PROFILES).delete().eq("id", user_id).execute()

        self.client.table(USERS).delete().eq("id", user_id).execute()
        logger.info(f"Deleted user {user_id} ({role})")
