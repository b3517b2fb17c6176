from __future__ import annotations

import enum
import uuid

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, IDMixin, TimestampMixin


class VoteType(str, enum.Enum):
    UP = "UP"
    DOWN = "DOWN"


class Vote(Base, IDMixin, TimestampMixin):
    __tablename__ = "votes"

    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(4), nullable=False)

    __table_args__ = (
        UniqueConstraint("post_id", "user_id", name="uq_votes_post_user"),
        CheckConstraint("type IN ('UP', 'DOWN')", name="ck_votes_type_valid"),
    )
