"""
Employee discovery and management.
"""

from typing import Any, Callable

from loguru import logger
from pydantic.alias_generators import to_camel

from glynac.api.base import BaseService, failure, validate_input
from glynac.api.models import ApiResponse, DiscoveryResult, Employee, NewEmployee
from glynac.keys import EMPLOYEES_LIST, Operation
from glynac.services.errors import ValidationError

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "email",
        "department",
        "position",
        "location",
        "status",
        "work_model",
        "age",
        "gender",
        "ethnicity",
        "language",
        "timezone",
    }
)


class EmployeeService(BaseService):
    PATH = "/employees"

    async def get_employees(self) -> ApiResponse[list[Employee]]:
        return await self._call(
            lambda: self.client.query(EMPLOYEES_LIST, self.PATH),
            list[Employee],
            action="get_employees",
        )

    async def create_employee(
        self, employee: NewEmployee | dict[str, Any]
    ) -> ApiResponse[Employee]:
        """Add an employee; the list query is invalidated on success."""
        try:
            new_employee = validate_input(NewEmployee, employee, "Invalid employee")
        except ValidationError as e:
            return failure(e)

        logger.info(f"Adding new employee: {new_employee.name}")
        return await self._call(
            lambda: self.client.mutate(
                Operation.CREATE_EMPLOYEE,
                "POST",
                self.PATH,
                json=new_employee.to_payload(),
            ),
            Employee,
            action="create_employee",
        )

    async def update_employee(
        self, employee_id: str, **updates: Any
    ) -> ApiResponse[dict[str, Any]]:
        if not employee_id:
            return failure(
                ValidationError("Employee id is required", {"id": "Required"})
            )
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            return failure(
                ValidationError(
                    "Unknown employee fields",
                    {key: "Unknown field" for key in sorted(unknown)},
                )
            )
        if updates.get("status") not in (None, "included", "excluded"):
            return failure(
                ValidationError(
                    "Invalid status", {"status": "Must be 'included' or 'excluded'"}
                )
            )

        payload = {to_camel(k): v for k, v in updates.items()}
        logger.info(f"Updating employee {employee_id}: {sorted(payload)}")
        rollback = self._patch_cached_list(employee_id, payload)
        response = await self._call(
            lambda: self.client.mutate(
                Operation.UPDATE_EMPLOYEE,
                "PATCH",
                f"{self.PATH}/{employee_id}",
                json=payload,
            ),
            dict[str, Any],
            action="update_employee",
        )
        if not response.success:
            rollback()
        return response

    def _patch_cached_list(
        self, employee_id: str, changes: dict[str, Any]
    ) -> Callable[[], None]:
        """Apply `changes` to the cached employee list ahead of the PATCH."""
        cached = self.client.cache.read(EMPLOYEES_LIST)
        if not isinstance(cached, dict) or not isinstance(cached.get("data"), list):
            return lambda: None
        employees = [
            {**item, **changes}
            if isinstance(item, dict) and item.get("id") == employee_id
            else item
            for item in cached["data"]
        ]
        return self.client.cache.write_optimistic(
            EMPLOYEES_LIST, {**cached, "data": employees}
        )

    async def set_included(
        self, employee_id: str, included: bool
    ) -> ApiResponse[dict[str, Any]]:
        return await self.update_employee(
            employee_id, status="included" if included else "excluded"
        )

    async def discover_employees(self) -> ApiResponse[DiscoveryResult]:
        logger.info("Running employee discovery...")
        return await self._call(
            lambda: self.client.mutate(
                Operation.DISCOVER_EMPLOYEES, "POST", f"{self.PATH}/discover"
            ),
            DiscoveryResult,
            action="discover_employees",
        )
