"""
Authentication operations.

login/register start the auth session and seed the ("auth", "me") query;
logout always clears local state, even when the server call fails.
"""

from typing import Any

from loguru import logger

from glynac.api.base import BaseService, failure, validate_input
from glynac.api.models import (
    ApiResponse,
    AuthPayload,
    LoginCredentials,
    RegisterData,
    User,
)
from glynac.keys import AUTH_ME, Operation
from glynac.services.errors import AuthExpiredError, ValidationError


class AuthService(BaseService):
    """Login, registration and session management."""

    BASE_PATH = "/auth"

    async def login(self, email: str, password: str) -> ApiResponse[AuthPayload]:
        try:
            credentials = validate_input(
                LoginCredentials,
                {"email": email, "password": password},
                "Email and password are required",
            )
        except ValidationError as e:
            return failure(e)

        logger.info(f"Login attempt: {credentials.email}")
        response = await self._call(
            lambda: self.client.mutate(
                Operation.LOGIN,
                "POST",
                f"{self.BASE_PATH}/login",
                json=credentials.to_payload(),
            ),
            AuthPayload,
            action="login",
        )
        if response.success and response.data:
            self._start_session(response.data)
        return response

    async def register(
        self, email: str, password: str, name: str | None = None
    ) -> ApiResponse[AuthPayload]:
        try:
            data = validate_input(
                RegisterData,
                {"email": email, "password": password, "name": name},
                "Email and password are required",
            )
        except ValidationError as e:
            return failure(e)

        logger.info(f"Register attempt: {data.email}")
        response = await self._call(
            lambda: self.client.mutate(
                Operation.REGISTER,
                "POST",
                f"{self.BASE_PATH}/register",
                json=data.to_payload(),
            ),
            AuthPayload,
            action="register",
        )
        if response.success and response.data:
            self._start_session(response.data)
        return response

    async def verify(self) -> ApiResponse[User]:
        """Check the current token with the server (never served from cache)."""
        if not self.client.auth.is_authenticated:
            return failure(AuthExpiredError("No token provided", status=401))

        response = await self._call(
            lambda: self.client.send(self.client.build("GET", f"{self.BASE_PATH}/verify")),
            User,
            action="verify",
        )
        if response.success and response.data:
            self._remember_user(response.data)
        return response

    async def get_me(self) -> ApiResponse[User]:
        """Current user profile, cached under ("auth", "me")."""
        if not self.client.auth.is_authenticated:
            return failure(AuthExpiredError("No token provided", status=401))

        return await self._call(
            lambda: self.client.query(AUTH_ME, f"{self.BASE_PATH}/verify"),
            User,
            action="get_me",
        )

    async def refresh_token(self) -> ApiResponse[dict[str, Any]]:
        token = await self.client.auth.refresh()
        if token is None:
            return failure(AuthExpiredError("Token refresh failed", status=401))
        return ApiResponse(success=True, data={"token": token})

    async def logout(self) -> ApiResponse[Any]:
        response = await self._call(
            lambda: self.client.mutate(
                Operation.LOGOUT, "POST", f"{self.BASE_PATH}/logout", max_retries=0
            ),
            action="logout",
        )
        self.client.auth.logout()
        self.client.cache.clear()
        return response

    def _start_session(self, payload: AuthPayload) -> None:
        user = payload.user.to_payload()
        self.client.auth.set_session(payload.token, user)
        self.client.cache.write(AUTH_ME, {"success": True, "data": user})

    def _remember_user(self, user: User) -> None:
        payload = user.to_payload()
        self.client.auth.update_user(payload)
        self.client.cache.write(AUTH_ME, {"success": True, "data": payload})
