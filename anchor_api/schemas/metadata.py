from typing import Optional

from pydantic import BaseModel, ConfigDict, HttpUrl


class ExtractedMetadata(BaseModel):
    """Whatever a page yielded; missing fields are filled in by the fetcher."""

    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class LinkMetadata(BaseModel):
    title: str
    domain: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def fallback(cls, domain: str) -> "LinkMetadata":
        """Domain-only metadata used whenever nothing better is available."""
        return cls(title=domain, domain=domain)

    @property
    def is_fallback(self) -> bool:
        # A title equal to the domain means extraction found nothing usable.
        return self.title == self.domain


class FetchOutcome(BaseModel):
    metadata: LinkMetadata
    final_url: str

    model_config = ConfigDict(frozen=True)


class MetadataRequest(BaseModel):
    url: HttpUrl


class MetadataRead(BaseModel):
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    domain: str
    final_url: str
    fallback: bool

    @classmethod
    def from_outcome(cls, outcome: FetchOutcome) -> "MetadataRead":
        metadata = outcome.metadata
        return cls(
            title=metadata.title,
            description=metadata.description,
            thumbnail_url=metadata.thumbnail_url,
            domain=metadata.domain,
            final_url=outcome.final_url,
            fallback=metadata.is_fallback,
        )
