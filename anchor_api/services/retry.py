"""Background retry of metadata fetches that came back incomplete.

A sweep is triggered when a client comes back to the foreground. It picks up
a small batch of the user's links whose metadata is still missing and fetches
them again, one at a time.
"""
import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from uuid import UUID

from anchor_api.config import settings
from anchor_api.schemas.link import RetryableLink
from anchor_api.services.link_store import LinkStore
from anchor_api.services.metadata import MetadataService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetadataRetryService:
    """Re-fetches metadata for links saved without it.

    Two debounce gates keep sweeps cheap: one per user so repeated triggers
    collapse into one sweep, and one per link so slow or broken URLs are
    not hit again right away. Timestamps live in memory only.
    """

    def __init__(
        self,
        store: LinkStore,
        fetcher: MetadataService,
        *,
        clock: Clock = utcnow,
        min_sweep_interval: timedelta = timedelta(
            seconds=settings.retry_min_sweep_interval
        ),
        min_per_link_interval: timedelta = timedelta(
            seconds=settings.retry_min_per_link_interval
        ),
        max_batch_size: int = settings.retry_max_batch_size,
        fetch_timeout: float = settings.retry_fetch_timeout,
    ):
        self.store = store
        self.fetcher = fetcher
        self.clock = clock
        self.min_sweep_interval = min_sweep_interval
        self.min_per_link_interval = min_per_link_interval
        self.max_batch_size = max_batch_size
        self.fetch_timeout = fetch_timeout

        self.last_retry_at: dict[UUID, datetime] = {}
        self._lock = asyncio.Lock()
        self._in_flight: set[UUID] = set()

    async def retry_incomplete_links(self, user_id: UUID) -> int:
        """Retry one batch of ``user_id``'s incomplete links.

        Returns:
            Number of links that now have real metadata.
        """
        async with self._lock:
            now = self.clock()
            last_sweep = self.last_retry_at.get(user_id)
            if last_sweep is not None and now - last_sweep < self.min_sweep_interval:
                logger.debug(
                    "Skipping metadata retry for user %s, last sweep was %s",
                    user_id,
                    last_sweep,
                )
                return 0
            self.last_retry_at[user_id] = now

        links = await self.store.get_links_with_incomplete_metadata(
            user_id, limit=self.max_batch_size
        )
        if not links:
            logger.debug("No links need a metadata retry for user %s", user_id)
            return 0

        logger.info("Retrying metadata for %d links of user %s", len(links), user_id)

        success_count = 0
        for link in links:
            if not await self._claim(link):
                continue
            try:
                if await self._retry_link(link):
                    success_count += 1
            except Exception:
                logger.exception("Metadata retry failed for link %s", link.id)
            finally:
                self._in_flight.discard(link.id)

        logger.info("Metadata retry finished: %d/%d links complete", success_count, len(links))
        return success_count

    async def _claim(self, link: RetryableLink) -> bool:
        """Check the per-link debounce and mark the link as being worked on."""
        async with self._lock:
            if link.id in self._in_flight:
                logger.debug("Link %s is already being retried", link.id)
                return False
            last_attempt = link.last_metadata_attempt_at
            if (
                last_attempt is not None
                and self.clock() - last_attempt < self.min_per_link_interval
            ):
                logger.debug("Skipping link %s, last attempt at %s", link.id, last_attempt)
                return False
            self._in_flight.add(link.id)
            return True

    async def _retry_link(self, link: RetryableLink) -> bool:
        attempts = link.metadata_fetch_attempts + 1
        logger.debug("Fetching metadata for %s (attempt #%d)", link.url, attempts)

        try:
            outcome = await asyncio.wait_for(
                self.fetcher.fetch_metadata_with_final_url(link.url),
                timeout=self.fetch_timeout,
            )
        except Exception as exc:
            logger.warning("Metadata fetch raised for %s: %r", link.url, exc)
            await self.store.update_link_metadata(
                link.id,
                title=link.title,
                description=link.description,
                thumbnail_url=link.thumbnail_url,
                domain=link.domain,
                metadata_complete=False,
                metadata_fetch_attempts=attempts,
                attempted_at=self.clock(),
            )
            return False

        metadata = outcome.metadata
        has_metadata = not metadata.is_fallback
        if has_metadata:
            title = metadata.title
            description = metadata.description
            thumbnail_url = metadata.thumbnail_url
        else:
            # Nothing new was learned; keep whatever the user saved or edited.
            logger.info("Only fallback metadata for %s", link.url)
            title = link.title or metadata.title
            description = link.description
            thumbnail_url = link.thumbnail_url

        await self.store.update_link_metadata(
            link.id,
            url=outcome.final_url if outcome.final_url != link.url else None,
            title=title,
            description=description,
            thumbnail_url=thumbnail_url,
            domain=metadata.domain,
            metadata_complete=has_metadata,
            metadata_fetch_attempts=attempts,
            attempted_at=self.clock(),
        )
        return has_metadata
