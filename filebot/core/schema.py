"""Pydantic v2 models for attachment input trees and reconstituted indexes."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

NOT_AVAILABLE = "Not Available"

# Keys on a legacy package group that describe the group itself rather than a file
PACKAGE_RESERVED_KEYS = frozenset(
    {
        "packageName",
        "packageType",
        "packageSecure",
        "package_name",
        "package_type",
        "package_secure",
        "files",
    }
)


class AttachmentInput(BaseModel):
    """A single file attachment as supplied by the caller."""

    model_config = ConfigDict(extra="ignore")

    uri: str | None = None
    name: str | None = None
    description: str | None = None

    @field_validator("uri", "name", "description", mode="before")
    @classmethod
    def coerce_to_string(cls, value: Any) -> str | None:
        """Accept scalars for text fields, keeping None as missing."""
        if value is None:
            return None
        return str(value)


class PackageGroup(BaseModel):
    """
    A named group of attachments belonging to a project.

    Accepts either an explicit ``files`` list or the legacy shape where
    every non-reserved key of the group maps to a file descriptor.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    package_name: str | None = Field(default=None, alias="packageName")
    package_type: str | None = Field(default=None, alias="packageType")
    package_secure: bool = Field(default=False, alias="packageSecure")
    files: list[AttachmentInput] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def collect_legacy_members(cls, data: Any) -> Any:
        """Gather file descriptors stored directly on the group."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        members = list(data.get("files") or [])
        for key, value in list(data.items()):
            if key in PACKAGE_RESERVED_KEYS:
                continue
            if isinstance(value, dict):
                members.append(value)
            data.pop(key)
        data["files"] = [m for m in members if isinstance(m, (dict, AttachmentInput))]

        # Only an explicit boolean true marks a package as secure
        secure = data.pop("package_secure", data.get("packageSecure"))
        data["packageSecure"] = secure is True
        return data


class PackageFile(BaseModel):
    """A reconstituted attachment ready for indexing."""

    model_config = ConfigDict(populate_by_name=True)

    file_description: str = Field(default=NOT_AVAILABLE, alias="fileDescription")
    file_name: str = Field(default=NOT_AVAILABLE, alias="fileName")
    file_uri: str = Field(default="", alias="fileURI")
    file_body: str = Field(default="", alias="fileBody")


class PackageIndexEntry(BaseModel):
    """All reconstituted attachments sharing a package name."""

    model_config = ConfigDict(populate_by_name=True)

    package_name: str = Field(default=NOT_AVAILABLE, alias="packageName")
    package_details: list[PackageFile] = Field(default_factory=list, alias="packageDetails")

    def to_dict(self) -> dict[str, Any]:
        """Serialise using the camelCase field names downstream indexers expect."""
        return self.model_dump(by_alias=True)


def parse_package_tree(raw: list[dict[str, Any]] | list[PackageGroup]) -> list[PackageGroup]:
    """Validate a raw package-grouped descriptor tree."""
    return [
        group if isinstance(group, PackageGroup) else PackageGroup.model_validate(group)
        for group in raw
    ]
