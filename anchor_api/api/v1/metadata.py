from typing import Annotated

from fastapi import APIRouter, Depends

from anchor_api.api.deps import get_current_user, get_metadata_service
from anchor_api.models import User
from anchor_api.schemas import MetadataRead, MetadataRequest
from anchor_api.services import MetadataService

router = APIRouter(prefix="/metadata", tags=["metadata"])


@router.post("", response_model=MetadataRead)
async def fetch_metadata(
    payload: MetadataRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    metadata_service: Annotated[MetadataService, Depends(get_metadata_service)],
) -> MetadataRead:
    """Preview a URL's metadata without saving it.

    Unreachable pages are not an error: the response carries domain-only
    metadata with ``fallback`` set.
    """
    outcome = await metadata_service.fetch_metadata_with_final_url(str(payload.url))
    return MetadataRead.from_outcome(outcome)
