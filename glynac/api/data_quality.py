"""
Data-quality triage: list issues, resolve them, run collection.
"""

from typing import Any

from loguru import logger

from glynac.api.base import BaseService, failure
from glynac.api.models import (
    ApiResponse,
    DataQualityIssue,
    ProcessedResult,
    ResolutionResult,
)
from glynac.keys import DATA_QUALITY_ISSUES, Operation
from glynac.services.errors import ValidationError


class DataQualityService(BaseService):
    PATH = "/data-quality"

    async def get_issues(self) -> ApiResponse[list[DataQualityIssue]]:
        return await self._call(
            lambda: self.client.query(DATA_QUALITY_ISSUES, f"{self.PATH}/issues"),
            list[DataQualityIssue],
            action="get_issues",
        )

    async def get_open_issues(self) -> ApiResponse[list[DataQualityIssue]]:
        response = await self.get_issues()
        if response.success and response.data is not None:
            response.data = [issue for issue in response.data if not issue.resolved]
        return response

    async def resolve_issue(
        self, issue_id: str, resolution: dict[str, Any] | None = None
    ) -> ApiResponse[ResolutionResult]:
        if not issue_id:
            return failure(ValidationError("Issue id is required", {"id": "Required"}))

        logger.info(f"Resolving issue: {issue_id}")
        return await self._call(
            lambda: self.client.mutate(
                Operation.RESOLVE_ISSUE,
                "POST",
                f"{self.PATH}/issues/{issue_id}/resolve",
                json=resolution or {},
            ),
            ResolutionResult,
            action="resolve_issue",
        )

    async def run_collection(self) -> ApiResponse[ProcessedResult]:
        logger.info("Running data collection...")
        return await self._call(
            lambda: self.client.mutate(
                Operation.COLLECT_DATA, "POST", f"{self.PATH}/collect"
            ),
            ProcessedResult,
            action="run_collection",
        )
