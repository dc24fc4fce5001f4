from functools import lru_cache

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anchor_api.config import settings
from anchor_api.database import get_db, get_session_factory
from anchor_api.models import User
from anchor_api.services import (
    MetadataRetryService,
    MetadataService,
    SqlAlchemyLinkStore,
)


async def get_session(session: AsyncSession = Depends(get_db)) -> AsyncSession:
    return session


async def get_current_user(
    x_api_key: str = Header(..., alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the current user from the X-API-Key header."""
    result = await db.execute(
        select(User).where(User.api_key == x_api_key)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    return user


# Process-wide singletons: the retry service keeps its debounce state in memory.
@lru_cache()
def get_metadata_service() -> MetadataService:
    return MetadataService()


@lru_cache()
def get_link_store() -> SqlAlchemyLinkStore:
    return SqlAlchemyLinkStore(
        get_session_factory(), max_attempts=settings.metadata_max_attempts
    )


@lru_cache()
def get_retry_fetcher() -> MetadataService:
    return MetadataService(timeout=settings.retry_fetch_timeout)


@lru_cache()
def get_retry_service() -> MetadataRetryService:
    return MetadataRetryService(get_link_store(), get_retry_fetcher())
