"""
Domain payloads exchanged with the Glynac API.

Wire names are camelCase; attributes are snake_case. Unknown fields are kept so
records round-trip without loss.
"""

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for a request body."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ApiResponse(BaseModel, Generic[T]):
    """Normalized envelope returned by every facade operation."""

    success: bool
    data: T | None = None
    message: str | None = None
    error: str | None = None
    code: str | None = None
    status: int | None = None
    details: dict[str, Any] | None = None


class User(ApiModel):
    id: str
    email: str
    name: str | None = None
    is_first_time_user: bool = True
    setup_completed: bool = False
    created_at: str | None = None
    updated_at: str | None = None


class AuthPayload(ApiModel):
    user: User
    token: str


class LoginCredentials(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterData(ApiModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str | None = None


class Organization(ApiModel):
    id: str | None = None
    name: str
    country: str
    state: str
    industry: str
    size: str
    website: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    zip_code: str | None = None
    logo: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Employee(ApiModel):
    id: str
    name: str
    email: str
    department: str | None = None
    position: str | None = None
    location: str | None = None
    status: Literal["included", "excluded"] = "included"
    email_count: int = 0
    chat_count: int = 0
    meeting_count: int = 0
    file_access_count: int = 0
    work_model: str | None = None
    age: str | None = None
    gender: str | None = None
    ethnicity: str | None = None
    language: str | None = None
    timezone: str | None = None


class NewEmployee(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    email: str = Field(pattern=r"^\S+@\S+\.\S+$")
    department: str = Field(min_length=1)
    position: str = Field(min_length=1)
    location: str = Field(min_length=1)
    work_model: str | None = None
    timezone: str | None = None


class DataQualityIssue(ApiModel):
    id: str
    type: Literal["email_alias", "data_conflict", "missing_data"]
    employee_id: str
    employee_name: str
    description: str
    severity: Literal["low", "medium", "high"]
    resolved: bool = False


class DataCollection(ApiModel):
    emails: int = 0
    meetings: int = 0
    chat_messages: int = 0
    file_accesses: int = 0


class DashboardStats(ApiModel):
    total_employees: int = 0
    departments: int = 0
    locations: int = 0
    remote_workers: int = 0
    data_collection: DataCollection = Field(default_factory=DataCollection)


class DiscoveryResult(ApiModel):
    count: int


class ProcessedResult(ApiModel):
    processed_count: int


class ResolutionResult(ApiModel):
    resolved: bool = True
