from anchor_api.schemas.link import (
    LinkCreate,
    LinkRead,
    LinkUpdate,
    RetryableLink,
    RetryResult,
)
from anchor_api.schemas.metadata import (
    ExtractedMetadata,
    FetchOutcome,
    LinkMetadata,
    MetadataRead,
    MetadataRequest,
)
from anchor_api.schemas.user import UserCreate, UserRead, UserWithApiKey

__all__ = [
    "ExtractedMetadata",
    "FetchOutcome",
    "LinkCreate",
    "LinkMetadata",
    "LinkRead",
    "LinkUpdate",
    "MetadataRead",
    "MetadataRequest",
    "RetryableLink",
    "RetryResult",
    "UserCreate",
    "UserRead",
    "UserWithApiKey",
]
