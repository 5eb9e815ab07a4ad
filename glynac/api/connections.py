"""
Data-source connections (Microsoft 365, Google Workspace, Slack, ...).

Connection payloads use snake_case on the wire, unlike the rest of the API.
"""

from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict

from glynac.api.base import BaseService, failure
from glynac.api.models import ApiResponse
from glynac.keys import Operation, connection_stats
from glynac.services.errors import ValidationError
from glynac.utils import mask_secrets


class ConnectionService(str, Enum):
    MICROSOFT365 = "microsoft365"
    GOOGLEWORKSPACE = "googleworkspace"
    DROPBOX = "dropbox"
    SLACK = "slack"
    ZOOM = "zoom"
    JIRA = "jira"
    ASANA = "asana"
    CUSTOMAPI = "customapi"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


_OAUTH = ("client_id", "client_secret", "redirect_uri")

REQUIRED_FIELDS: dict[ConnectionService, tuple[str, ...]] = {
    ConnectionService.MICROSOFT365: ("tenant_id", *_OAUTH),
    ConnectionService.GOOGLEWORKSPACE: ("account_id", *_OAUTH),
    ConnectionService.DROPBOX: ("app_key", *_OAUTH),
    ConnectionService.SLACK: ("workspace_id", *_OAUTH),
    ConnectionService.ZOOM: ("account_id", *_OAUTH),
    ConnectionService.JIRA: ("instance_url", *_OAUTH),
    ConnectionService.ASANA: ("api_token",),
    ConnectionService.CUSTOMAPI: ("api_url", "api_key", "auth_type"),
}


class ConnectionResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    connection_id: str
    status: ConnectionStatus
    error: str | None = None


class ConnectionStats(ConnectionResponse):
    last_connected_at: str | None = None
    created_at: str | None = None


def validate_config(service: ConnectionService, config: dict[str, Any]) -> None:
    missing = {
        field: f"Missing required field: {field} for {service.value} connection"
        for field in REQUIRED_FIELDS[service]
        if not config.get(field)
    }
    if missing:
        raise ValidationError(
            f"Invalid {service.value} connection configuration", details=missing
        )


class ConnectionsService(BaseService):
    PATH = "/connections"

    async def create_connection(
        self, service: ConnectionService | str, config: dict[str, Any]
    ) -> ApiResponse[ConnectionResponse]:
        try:
            try:
                service = ConnectionService(str(getattr(service, "value", service)).lower())
            except ValueError:
                raise ValidationError(
                    f"Unsupported connection service: {service}",
                    details={"service": "Unsupported service"},
                ) from None
            validate_config(service, config)
        except ValidationError as e:
            return failure(e)

        logger.info(f"Creating {service.value} connection with config: {mask_secrets(config)}")
        return await self._call(
            lambda: self.client.mutate(
                Operation.CREATE_CONNECTION,
                "POST",
                f"{self.PATH}/{service.value}",
                json=config,
            ),
            ConnectionResponse,
            action=f"create_{service.value}_connection",
        )

    async def connect(self, connection_id: str) -> ApiResponse[ConnectionResponse]:
        """Start the connection using its stored credentials."""
        if not connection_id or not isinstance(connection_id, str):
            return failure(
                ValidationError(
                    "Invalid connection ID provided", {"connection_id": "Required"}
                )
            )

        return await self._call(
            lambda: self.client.mutate(
                Operation.CONNECT_SOURCE,
                "POST",
                f"{self.PATH}/connect",
                json={"connection_id": connection_id},
            ),
            ConnectionResponse,
            action="connect",
        )

    async def get_connection_stats(
        self, connection_id: str
    ) -> ApiResponse[ConnectionStats]:
        """Connection stats, cached per connection (the endpoint is a POST)."""
        if not connection_id or not isinstance(connection_id, str):
            return failure(
                ValidationError(
                    "Invalid connection ID provided", {"connection_id": "Required"}
                )
            )

        descriptor = self.client.build(
            "POST", f"{self.PATH}/stats", json={"connection_id": connection_id}
        )
        return await self._call(
            lambda: self.client.cache.fetch(
                connection_stats(connection_id),
                lambda: self.client.send(descriptor),
            ),
            ConnectionStats,
            action="get_connection_stats",
        )

    async def is_connection_active(self, connection_id: str) -> bool:
        response = await self.get_connection_stats(connection_id)
        if not response.success or response.data is None:
            logger.warning(f"Could not check connection {connection_id}: {response.error}")
            return False
        return response.data.status == ConnectionStatus.CONNECTED
