import logging
from datetime import datetime, timezone
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anchor_api.models import Link
from anchor_api.schemas.link import RetryableLink

logger = logging.getLogger(__name__)


class LinkStore(Protocol):
    """Persistence used by the metadata retry sweep."""

    async def get_links_with_incomplete_metadata(
        self, user_id: UUID, limit: int
    ) -> list[RetryableLink]: ...

    async def update_link_metadata(
        self,
        link_id: UUID,
        *,
        url: Optional[str] = None,
        title: Optional[str],
        description: Optional[str],
        thumbnail_url: Optional[str],
        domain: Optional[str],
        metadata_complete: bool,
        metadata_fetch_attempts: int,
        attempted_at: Optional[datetime] = None,
    ) -> None: ...


class LinkNotFoundError(LookupError):
    pass


class SqlAlchemyLinkStore:
    """LinkStore over the ``links`` table.

    Every call runs in its own session and commits on its own, so a failed
    write leaves nothing behind for the next one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    async def get_links_with_incomplete_metadata(
        self, user_id: UUID, limit: int
    ) -> list[RetryableLink]:
        stmt = (
            select(Link)
            .where(Link.user_id == user_id, Link.metadata_complete.is_(False))
            .order_by(
                Link.last_metadata_attempt_at.asc().nulls_first(),
                Link.created_at.desc(),
            )
            .limit(limit)
        )
        if self.max_attempts is not None:
            stmt = stmt.where(Link.metadata_fetch_attempts < self.max_attempts)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [RetryableLink.model_validate(row) for row in rows]

    async def update_link_metadata(
        self,
        link_id: UUID,
        *,
        url: Optional[str] = None,
        title: Optional[str],
        description: Optional[str],
        thumbnail_url: Optional[str],
        domain: Optional[str],
        metadata_complete: bool,
        metadata_fetch_attempts: int,
        attempted_at: Optional[datetime] = None,
    ) -> None:
        """Write a fetch outcome for ``link_id``.

        ``url`` is only applied when the user has not already saved that URL.
        On a collision the stored URL is kept and the rest is still written.
        """
        values = {
            "title": title,
            "description": description,
            "thumbnail_url": thumbnail_url,
            "domain": domain,
            "metadata_complete": metadata_complete,
            "metadata_fetch_attempts": metadata_fetch_attempts,
            "last_metadata_attempt_at": attempted_at or datetime.now(timezone.utc),
        }
        if url is None:
            await self._update(link_id, values)
        else:
            try:
                await self._update(link_id, {**values, "url": url})
            except IntegrityError:
                logger.warning(
                    "Link %s redirects to %s, which is already saved; keeping its URL",
                    link_id,
                    url,
                )
                await self._update(link_id, values)
        logger.debug("Stored metadata for link %s (complete=%s)", link_id, metadata_complete)

    async def _update(self, link_id: UUID, values: dict) -> None:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Link).where(Link.id == link_id).values(**values)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise LinkNotFoundError(f"Link {link_id} not found")
            await session.commit()
