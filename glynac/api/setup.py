"""
Final onboarding steps: PII anonymization, setup completion and dashboard.
"""

from loguru import logger

from glynac.api.base import BaseService
from glynac.api.models import ApiResponse, DashboardStats, ProcessedResult, User
from glynac.keys import AUTH_ME, DASHBOARD_STATS, Operation


class AnonymizationService(BaseService):
    async def run_anonymization(self) -> ApiResponse[ProcessedResult]:
        logger.info("Running anonymization...")
        return await self._call(
            lambda: self.client.mutate(
                Operation.RUN_ANONYMIZATION, "POST", "/anonymization/run"
            ),
            ProcessedResult,
            action="run_anonymization",
        )


class SetupService(BaseService):
    async def complete_setup(self) -> ApiResponse[User]:
        """Mark onboarding done; the returned user replaces the stored profile."""
        logger.info("Completing setup...")
        response = await self._call(
            lambda: self.client.mutate(Operation.COMPLETE_SETUP, "POST", "/setup/complete"),
            User,
            action="complete_setup",
        )
        if response.success and response.data:
            user = response.data.to_payload()
            self.client.auth.update_user(user)
            self.client.cache.write(AUTH_ME, {"success": True, "data": user})
        return response


class DashboardService(BaseService):
    async def get_stats(self) -> ApiResponse[DashboardStats]:
        return await self._call(
            lambda: self.client.query(DASHBOARD_STATS, "/dashboard/stats"),
            DashboardStats,
            action="get_dashboard_stats",
        )
