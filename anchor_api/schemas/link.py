from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator


class LinkBase(BaseModel):
    url: HttpUrl
    title: Optional[str] = None
    description: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=200)


class LinkCreate(LinkBase):
    pass


class LinkUpdate(BaseModel):
    title: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    note: Optional[str] = Field(default=None, max_length=200)


class LinkRead(BaseModel):
    id: UUID
    user_id: UUID
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    domain: Optional[str] = None
    note: Optional[str] = None
    metadata_complete: bool
    metadata_fetch_attempts: int
    last_metadata_attempt_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RetryableLink(BaseModel):
    """The slice of a stored link the metadata retry sweep reads.

    Built from ORM rows with ``model_validate``; a row of the wrong shape
    raises ``ValidationError`` here instead of deep inside the sweep.
    """

    id: UUID
    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    domain: Optional[str] = None
    metadata_complete: bool
    metadata_fetch_attempts: int = Field(ge=0)
    last_metadata_attempt_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, frozen=True, strict=True)

    @field_validator("last_metadata_attempt_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class RetryResult(BaseModel):
    updated: int
