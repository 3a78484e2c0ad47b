"""
Vault Models — Secret records, plaintext input and export rows.

Plaintext fields (password, username) only ever appear on input models and
on single-record / export views. Stored records carry envelopes.
"""
from typing import Any, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ValidationFailure

MAX_NAME_LENGTH = 128
MAX_URL_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 512
MAX_SECRET_BYTES = 4096
MAX_USERNAME_BYTES = 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_tags(tags: Any) -> list[str]:
    """Strip tags, drop blanks and duplicates (first occurrence wins)."""
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    seen: dict[str, None] = {}
    for tag in tags:
        tag = str(tag).strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


class SecretInput(BaseModel):
    """Plaintext values submitted on create/update.

    Validated before any encryption is attempted.
    """

    name: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    url: str = Field(default="", max_length=MAX_URL_LENGTH)
    description: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    tags: list[str] = Field(min_length=1)
    password: str = ""
    username: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, v: Any) -> list[str]:
        return normalize_tags(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_SECRET_BYTES:
            raise ValueError(f"secret must not exceed {MAX_SECRET_BYTES} bytes")
        return v

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        if len(v.encode("utf-8")) > MAX_USERNAME_BYTES:
            raise ValueError(
                f"username must not exceed {MAX_USERNAME_BYTES} bytes"
            )
        return v

    @classmethod
    def parse(cls, **data: Any) -> "SecretInput":
        """Build a SecretInput, turning pydantic errors into ValidationFailure."""
        try:
            return cls(**data)
        except ValidationError as err:
            errors = err.errors(
                include_url=False, include_context=False, include_input=False,
            )
            fields = ", ".join(
                ".".join(str(p) for p in e["loc"]) or "secret" for e in errors
            )
            raise ValidationFailure(
                f"invalid secret fields: {fields}", errors=errors,
            ) from err


class ProtectedFields(BaseModel):
    """Envelopes of the two encrypted attributes of a secret."""

    encoded_secret: bytes = b""
    encoded_username: bytes = b""


class SecretRecord(BaseModel):
    """A stored secret row."""

    id: str
    user_id: str
    name: str
    url: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    encoded_secret: bytes = b""
    encoded_username: bytes = b""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def protected_fields(self) -> ProtectedFields:
        return ProtectedFields(
            encoded_secret=self.encoded_secret,
            encoded_username=self.encoded_username,
        )


class SecretSummary(BaseModel):
    """List view of a secret; never carries secret values."""

    id: str
    name: str
    tags: list[str] = Field(default_factory=list)


class Secret(BaseModel):
    """Single-record view with revealed values."""

    id: str
    name: str
    url: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    username: str = ""
    password: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SecretExportItem(BaseModel):
    """One row of an export bundle.

    The original envelopes travel with the item but are never serialized.
    """

    name: str
    url: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    username: str = ""
    password: str = ""
    encoded_password: bytes = Field(default=b"", exclude=True)
    encoded_username: bytes = Field(default=b"", exclude=True)


class SecretQuery(BaseModel):
    """Filter for list views."""

    name: Optional[str] = None
    tag: Optional[str] = None

    def matches(self, record: SecretRecord) -> bool:
        if self.name and self.name.lower() not in record.name.lower():
            return False
        if self.tag and self.tag not in record.tags:
            return False
        return True
