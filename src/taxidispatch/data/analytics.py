"""Read-only queries behind the dashboards and reports."""

import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from ..errors import NotFoundError
from .dates import day_bounds, local_now, timeframe_start, to_iso
from .models import AdminDashboardStats, DriverTripStats, Trip
from .schema import DRIVER_PROFILES, TRIPS, USERS, TripStatus

logger = logging.getLogger(__name__)

COMPLETED_TRIPS_SELECT = (
    "*, driver_profiles(id, first_name, last_name), "
    "users!created_by(id, role, operator_profiles(first_name, last_name))"
)


def _flatten_operator(row: Dict[str, Any]) -> Dict[str, Any]:
    """Lift the creating operator's profile to the top level of a trip row."""
    creator = row.get("users")
    if isinstance(creator, list):
        creator = creator[0] if creator else None
    operator = (creator or {}).get("operator_profiles")
    if isinstance(operator, list):
        operator = operator[0] if operator else None
    return {**row, "operator_profiles": operator}


class AnalyticsStore:
    """Aggregate trip and driver data for the admin, operator and driver reports."""

    def __init__(self, client):
        self.client = client

    def _completed_between(self, start: datetime, end: datetime):
        return (self.client
                .table(TRIPS)
                .select("*")
                .eq("status", TripStatus.COMPLETED.value)
                .gte("created_at", to_iso(start))
                .lte("created_at", to_iso(end)))

    def get_driver_stats(self, driver_id: str, start: datetime, end: datetime) -> List[Trip]:
        """Completed trips of a driver in a date range."""
        result = self._completed_between(start, end).eq("driver_id", driver_id).execute()
        return [Trip.model_validate(row) for row in result.data or []]

    def get_operator_stats(self, operator_id: str, start: datetime, end: datetime) -> List[Trip]:
        """Completed trips created by an operator in a date range."""
        result = self._completed_between(start, end).eq("created_by", operator_id).execute()
        return [Trip.model_validate(row) for row in result.data or []]

    def get_daily_revenue(self, day: date) -> float:
        """Sum of completed trip prices on a calendar day."""
        start = datetime.combine(day, time.min).astimezone()
        _, end = day_bounds(start)
        result = (self.client
                  .table(TRIPS)
                  .select("price")
                  .eq("status", TripStatus.COMPLETED.value)
                  .gte("created_at", to_iso(start))
                  .lte("created_at", to_iso(end))
                  .execute())
        return sum(float(row.get("price") or 0) for row in result.data or [])

    def get_admin_dashboard_stats(self, now: Optional[datetime] = None) -> AdminDashboardStats:
        """Completed trips today, on-duty drivers with active accounts and active users."""
        start, end = day_bounds(now)

        trips_today = (self.client
                       .table(TRIPS)
                       .select("*", count="exact")
                       .eq("status", TripStatus.COMPLETED.value)
                       .gte("created_at", to_iso(start))
                       .lte("created_at", to_iso(end))
                       .execute())

        active_drivers = (self.client
                          .table(DRIVER_PROFILES)
                          .select("*, users!inner(*)", count="exact")
                          .eq("users.active", True)
                          .eq("is_on_duty", True)
                          .execute())

        total_users = (self.client
                       .table(USERS)
                       .select("*", count="exact")
                       .eq("active", True)
                       .execute())

        return AdminDashboardStats(
            trips_today=trips_today.count or 0,
            active_drivers=active_drivers.count or 0,
            total_users=total_users.count or 0,
        )

    def get_driver_trip_stats(
        self,
        driver_id: str,
        timeframe: str,
        now: Optional[datetime] = None
    ) -> DriverTripStats:
        """
        Trip count, price total and current balance of a driver.

        Args:
            driver_id: Driver to summarize
            timeframe: 'day', 'week' (last 7 days) or 'month' (one month back)
            now: Reference time (defaults to the current local time)

        Raises:
            NotFoundError: If the driver does not exist or is inactive
        """
        now = now or local_now()
        start = timeframe_start(timeframe, now)

        trips = (self.client
                 .table(TRIPS)
                 .select("*")
                 .eq("driver_id", driver_id)
                 .gte("created_at", to_iso(start))
                 .lte("created_at", to_iso(now))
                 .execute())

        driver = (self.client
                  .table(DRIVER_PROFILES)
                  .select("*, users!inner(*)")
                  .eq("id", driver_id)
                  .eq("users.active", True)
                  .limit(1)
                  .execute())

        if not driver.data:
            raise NotFoundError("Conductor no encontrado o inactivo")

        rows = trips.data or []
        return DriverTripStats(
            total_trips=len(rows),
            total_earnings=sum(float(row.get("price") or 0) for row in rows),
            balance=float(driver.data[0].get("balance") or 0),
        )

    def get_completed_trips(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        driver_id: Optional[str] = None,
        operator_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Completed trips with driver and operator names, newest first.

        Every filter is optional. Rows are returned as dicts for the report
        frames, with the creating operator's profile under 'operator_profiles'.
        """
        query = (self.client
                 .table(TRIPS)
                 .select(COMPLETED_TRIPS_SELECT)
                 .eq("status", TripStatus.COMPLETED.value)
                 .order("created_at", desc=True))

        if start:
            query = query.gte("created_at", to_iso(start))
        if end:
            query = query.lte("created_at", to_iso(end))
        if driver_id:
            query = query.eq("driver_id", driver_id)
        if operator_id:
            query = query.eq("created_by", operator_id)

        result = query.execute()
        return [_flatten_operator(row) for row in result.data or []]

    def get_operator_completed_trips(
        self,
        start: datetime,
        end: datetime,
        operator_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Completed trips in a date range, optionally for one operator."""
        return self.get_completed_trips(start=start, end=end, operator_id=operator_id)
