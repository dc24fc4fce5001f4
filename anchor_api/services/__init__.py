from anchor_api.services.domain import extract_domain
from anchor_api.services.extractor import extract_metadata, make_absolute_url
from anchor_api.services.link_store import LinkStore, SqlAlchemyLinkStore
from anchor_api.services.metadata import MetadataService
from anchor_api.services.retry import MetadataRetryService

__all__ = [
    "LinkStore",
    "MetadataRetryService",
    "MetadataService",
    "SqlAlchemyLinkStore",
    "extract_domain",
    "extract_metadata",
    "make_absolute_url",
]
