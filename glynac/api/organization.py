"""
Organization setup: create, fetch and update (multipart, optional logo).
"""

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic.alias_generators import to_camel

from glynac.api.base import BaseService, failure
from glynac.api.models import ApiResponse, Organization
from glynac.keys import ORGANIZATION_DETAIL, Operation
from glynac.services.errors import ValidationError

MAX_LOGO_BYTES = 5 * 1024 * 1024
ALLOWED_LOGO_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/gif"})

REQUIRED_FIELDS = {
    "name": "Organization name is required",
    "country": "Country is required",
    "state": "State is required",
    "industry": "Industry is required",
    "size": "Organization size is required",
}

OPTIONAL_FIELDS = ("website", "phone", "address", "city", "zip_code")


@dataclass(frozen=True)
class LogoUpload:
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path) -> "LogoUpload":
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type)

    def as_file(self) -> tuple[str, bytes, str]:
        return (self.filename, self.content, self.content_type)


def validate_logo(logo: LogoUpload) -> None:
    """Reject unsupported or oversized logos before anything is uploaded."""
    if logo.content_type not in ALLOWED_LOGO_TYPES:
        raise ValidationError(
            "Invalid file type. Please upload PNG, JPG, or GIF files only.",
            details={"logo": f"Unsupported type {logo.content_type}"},
        )
    if logo.size > MAX_LOGO_BYTES:
        raise ValidationError(
            "File size too large. Please upload files smaller than 5MB.",
            details={"logo": f"{logo.size} bytes exceeds {MAX_LOGO_BYTES}"},
        )


def _to_form(fields: dict[str, Any]) -> dict[str, str]:
    """snake_case form fields -> wire names, dropping empty values."""
    form = {}
    for key, value in fields.items():
        if value is None or value == "":
            continue
        form[to_camel(key)] = str(value)
    return form


class OrganizationService(BaseService):
    """Organization profile operations."""

    PATH = "/organization"

    async def create_organization(
        self,
        name: str,
        country: str,
        state: str,
        industry: str,
        size: str,
        logo: LogoUpload | None = None,
        **optional: str,
    ) -> ApiResponse[Organization]:
        fields = {
            "name": name,
            "country": country,
            "state": state,
            "industry": industry,
            "size": size,
        }
        try:
            missing = {
                key: message
                for key, message in REQUIRED_FIELDS.items()
                if not (fields.get(key) or "").strip()
            }
            if missing:
                raise ValidationError("Missing required fields", details=missing)
            unknown = set(optional) - set(OPTIONAL_FIELDS)
            if unknown:
                raise ValidationError(
                    "Unknown organization fields",
                    details={key: "Unknown field" for key in sorted(unknown)},
                )
            if logo is not None:
                validate_logo(logo)
        except ValidationError as e:
            logger.warning(f"Organization rejected: {e.details}")
            return failure(e)

        logger.info(f"Creating organization: {name}")
        form = _to_form({**fields, **optional})
        files = {"logo": logo.as_file()} if logo is not None else None
        return await self._call(
            lambda: self.client.mutate(
                Operation.CREATE_ORGANIZATION, "POST", self.PATH, data=form, files=files
            ),
            Organization,
            action="create_organization",
        )

    async def get_organization(self) -> ApiResponse[Organization]:
        return await self._call(
            lambda: self.client.query(ORGANIZATION_DETAIL, self.PATH),
            Organization,
            action="get_organization",
        )

    async def update_organization(
        self, logo: LogoUpload | None = None, **updates: str
    ) -> ApiResponse[dict[str, Any]]:
        allowed = set(REQUIRED_FIELDS) | set(OPTIONAL_FIELDS)
        try:
            unknown = set(updates) - allowed
            if unknown:
                raise ValidationError(
                    "Unknown organization fields",
                    details={key: "Unknown field" for key in sorted(unknown)},
                )
            form = _to_form(updates)
            if not form and logo is None:
                raise ValidationError("Nothing to update")
            if logo is not None:
                validate_logo(logo)
        except ValidationError as e:
            return failure(e)

        logger.info(f"Updating organization with: {sorted(form)}")
        files = {"logo": logo.as_file()} if logo is not None else None
        return await self._call(
            lambda: self.client.mutate(
                Operation.UPDATE_ORGANIZATION, "PATCH", self.PATH, data=form, files=files
            ),
            # PATCH answers with a partial record
            dict[str, Any],
            action="update_organization",
        )
