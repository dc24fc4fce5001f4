import logging
from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from anchor_api.api.deps import (
    get_current_user,
    get_metadata_service,
    get_retry_service,
    get_session,
)
from anchor_api.models import Link, User
from anchor_api.schemas import LinkCreate, LinkRead, LinkUpdate, RetryResult
from anchor_api.services import MetadataRetryService, MetadataService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/links", tags=["links"])


@router.get("", response_model=list[LinkRead])
async def list_links(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> list[LinkRead]:
    """List all links for the current user."""
    result = await db.execute(
        select(Link)
        .where(Link.user_id == current_user.id)
        .order_by(Link.created_at.desc())
    )
    links = result.scalars().all()
    return [LinkRead.model_validate(link) for link in links]


@router.post("", response_model=LinkRead, status_code=status.HTTP_201_CREATED)
async def create_link(
    payload: LinkCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_session)],
    metadata_service: Annotated[MetadataService, Depends(get_metadata_service)],
) -> LinkRead:
    """Save a link, filling in metadata from one fetch of the page.

    A failed fetch still saves the link with domain-only metadata; the
    background retry picks it up later.
    """
    outcome = await metadata_service.fetch_metadata_with_final_url(str(payload.url))
    metadata = outcome.metadata

    link = Link(
        user_id=current_user.id,
        url=outcome.final_url,
        title=payload.title or metadata.title,
        description=payload.description or metadata.description,
        thumbnail_url=metadata.thumbnail_url,
        domain=metadata.domain,
        note=payload.note,
        metadata_complete=not metadata.is_fallback,
        metadata_fetch_attempts=0,
        last_metadata_attempt_at=datetime.now(timezone.utc),
    )
    db.add(link)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Link already saved"
        )
    await db.refresh(link)
    return LinkRead.model_validate(link)


@router.post("/metadata/retry", response_model=RetryResult)
async def retry_link_metadata(
    current_user: Annotated[User, Depends(get_current_user)],
    retry_service: Annotated[MetadataRetryService, Depends(get_retry_service)],
) -> RetryResult:
    """Re-fetch metadata for a batch of the user's incomplete links."""
    updated = await retry_service.retry_incomplete_links(current_user.id)
    return RetryResult(updated=updated)


@router.get("/{link_id}", response_model=LinkRead)
async def get_link(
    link_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> LinkRead:
    """Get a specific link by ID (must belong to current user)."""
    link = await _get_owned_link(db, link_id, current_user)
    return LinkRead.model_validate(link)


@router.patch("/{link_id}", response_model=LinkRead)
async def update_link(
    link_id: UUID,
    payload: LinkUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> LinkRead:
    """Edit a link's title, description or note."""
    link = await _get_owned_link(db, link_id, current_user)

    for field, value in payload.model_dump(exclude_none=True).items():
        setattr(link, field, value)

    await db.commit()
    await db.refresh(link)
    return LinkRead.model_validate(link)


async def _get_owned_link(db: AsyncSession, link_id: UUID, user: User) -> Link:
    result = await db.execute(
        select(Link).where(Link.id == link_id, Link.user_id == user.id)
    )
    link = result.scalar_one_or_none()
    if not link:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Link not found"
        )
    return link
