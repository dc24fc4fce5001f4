from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anchor_api.models.base import Base

if TYPE_CHECKING:
    from anchor_api.models.user import User


class Link(Base):
    __tablename__ = "links"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    url: Mapped[str]
    title: Mapped[Optional[str]]
    description: Mapped[Optional[str]]
    thumbnail_url: Mapped[Optional[str]]
    domain: Mapped[Optional[str]]
    note: Mapped[Optional[str]]

    # Background metadata retry bookkeeping
    metadata_complete: Mapped[bool] = mapped_column(default=False)
    metadata_fetch_attempts: Mapped[int] = mapped_column(default=0)
    last_metadata_attempt_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="links")

    # Constraints
    __table_args__ = (
        UniqueConstraint("user_id", "url", name="unique_user_url"),
        Index(
            "idx_links_incomplete_metadata",
            "user_id",
            "metadata_complete",
            "last_metadata_attempt_at",
        ),
    )
