"""
Query keys and mutation side effects.

Every cached query lives under one of the keys below. INVALIDATIONS declares,
per mutating operation, which key prefixes become stale once it succeeds.
"""

from enum import Enum

QueryKey = tuple[str, ...]

# Auth
AUTH = ("auth",)
AUTH_ME = ("auth", "me")

# Organization
ORGANIZATION = ("organization",)
ORGANIZATION_DETAIL = ("organization", "detail")

# Employees
EMPLOYEES = ("employees",)
EMPLOYEES_LIST = ("employees", "list")

# Data quality
DATA_QUALITY = ("data-quality",)
DATA_QUALITY_ISSUES = ("data-quality", "issues")

# Data sources
DATA_SOURCES = ("dataSources",)

# Dashboard
DASHBOARD = ("dashboard",)
DASHBOARD_STATS = ("dashboard", "stats")


def connection_stats(connection_id: str) -> QueryKey:
    return ("dataSources", "stats", connection_id)


class Operation(str, Enum):
    """Mutating operations exposed by the service facade."""

    LOGIN = "login"
    REGISTER = "register"
    LOGOUT = "logout"
    REFRESH_TOKEN = "refresh_token"
    CREATE_ORGANIZATION = "create_organization"
    UPDATE_ORGANIZATION = "update_organization"
    CREATE_EMPLOYEE = "create_employee"
    UPDATE_EMPLOYEE = "update_employee"
    DISCOVER_EMPLOYEES = "discover_employees"
    RESOLVE_ISSUE = "resolve_issue"
    COLLECT_DATA = "collect_data"
    RUN_ANONYMIZATION = "run_anonymization"
    COMPLETE_SETUP = "complete_setup"
    CREATE_CONNECTION = "create_connection"
    CONNECT_SOURCE = "connect_source"


INVALIDATIONS: dict[Operation, tuple[QueryKey, ...]] = {
    Operation.LOGIN: (),
    Operation.REGISTER: (),
    Operation.LOGOUT: (),
    Operation.REFRESH_TOKEN: (),
    Operation.CREATE_ORGANIZATION: (ORGANIZATION, AUTH),
    Operation.UPDATE_ORGANIZATION: (ORGANIZATION,),
    Operation.CREATE_EMPLOYEE: (EMPLOYEES, DASHBOARD),
    Operation.UPDATE_EMPLOYEE: (EMPLOYEES, DASHBOARD),
    Operation.DISCOVER_EMPLOYEES: (EMPLOYEES, DASHBOARD),
    Operation.RESOLVE_ISSUE: (DATA_QUALITY,),
    Operation.COLLECT_DATA: (EMPLOYEES, DATA_QUALITY, DASHBOARD),
    Operation.RUN_ANONYMIZATION: (AUTH, DASHBOARD),
    Operation.COMPLETE_SETUP: (AUTH, DASHBOARD),
    Operation.CREATE_CONNECTION: (DATA_SOURCES,),
    Operation.CONNECT_SOURCE: (DATA_SOURCES,),
}
