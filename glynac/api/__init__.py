"""
Service facade for the Glynac onboarding API.

Every operation returns an ApiResponse envelope; transport, auth and cache
errors never escape as exceptions.
"""

from glynac.api.auth import AuthService
from glynac.api.connections import (
    ConnectionResponse,
    ConnectionService,
    ConnectionsService,
    ConnectionStats,
    ConnectionStatus,
)
from glynac.api.data_quality import DataQualityService
from glynac.api.employees import EmployeeService
from glynac.api.models import ApiResponse
from glynac.api.organization import LogoUpload, OrganizationService
from glynac.api.setup import AnonymizationService, DashboardService, SetupService
from glynac.services.client import ApiClient, get_api_client


class GlynacApi:
    """All facade services over one shared ApiClient."""

    def __init__(self, client: ApiClient | None = None):
        self.client = client or get_api_client()
        self.auth = AuthService(self.client)
        self.organization = OrganizationService(self.client)
        self.employees = EmployeeService(self.client)
        self.data_quality = DataQualityService(self.client)
        self.anonymization = AnonymizationService(self.client)
        self.setup = SetupService(self.client)
        self.dashboard = DashboardService(self.client)
        self.connections = ConnectionsService(self.client)

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> "GlynacApi":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "GlynacApi",
    "ApiResponse",
    "AuthService",
    "OrganizationService",
    "LogoUpload",
    "EmployeeService",
    "DataQualityService",
    "AnonymizationService",
    "SetupService",
    "DashboardService",
    "ConnectionsService",
    "ConnectionService",
    "ConnectionStatus",
    "ConnectionResponse",
    "ConnectionStats",
]
