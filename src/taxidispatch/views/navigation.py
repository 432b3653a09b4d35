"""Role-based navigation: which tabs each role gets."""

from typing import Dict, List

from ..data.schema import Role

DRIVER_HOME = "Inicio"
DRIVER_TRIPS = "Mis viajes"
DRIVER_BALANCE = "Mi saldo"
DRIVER_STATS = "Estadísticas"

OPERATOR_REQUEST = "Solicitar viaje"
OPERATOR_MAP = "Mapa de choferes"
OPERATOR_TRIPS = "Viajes de hoy"

ADMIN_DASHBOARD = "Panel"
ADMIN_DRIVERS = "Choferes"
ADMIN_OPERATORS = "Operadores"
ADMIN_BALANCES = "Saldos"
ADMIN_REPORTS = "Reportes"
ADMIN_REQUEST = "Nuevo viaje"

ROLE_TABS: Dict[Role, List[str]] = {
    Role.DRIVER: [DRIVER_HOME, DRIVER_TRIPS, DRIVER_BALANCE, DRIVER_STATS],
    Role.OPERATOR: [OPERATOR_REQUEST, OPERATOR_MAP, OPERATOR_TRIPS],
    Role.ADMIN: [
        ADMIN_DASHBOARD, ADMIN_DRIVERS, ADMIN_OPERATORS,
        ADMIN_BALANCES, ADMIN_REPORTS, ADMIN_REQUEST,
    ],
}


def tabs_for_role(role) -> List[str]:
    """Tab titles for a role; an unknown role gets none."""
    try:
        role = Role(role)
    except ValueError:
        return []
    return list(ROLE_TABS[role])
