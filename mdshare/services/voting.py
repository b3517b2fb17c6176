"""Up/down voting on public posts.

One vote per (post, user). Re-submitting the same type cancels the vote,
submitting the other type switches it. ``Post.upvotes`` and ``Post.downvotes``
always match the vote rows; both change in the same transaction, with the post
row locked so that concurrent votes on a post are serialized.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mdshare.exceptions import InvalidStateError, NotFoundError
from mdshare.models.post import Post
from mdshare.models.vote import Vote, VoteType

logger = logging.getLogger(__name__)


@dataclass
class VoteResult:
    post: Post
    user_vote: Optional[VoteType]


def _counter_deltas(old: Optional[VoteType], new: Optional[VoteType]) -> tuple[int, int]:
    """(upvotes delta, downvotes delta) for moving a user's vote from old to new."""
    up = (new is VoteType.UP) - (old is VoteType.UP)
    down = (new is VoteType.DOWN) - (old is VoteType.DOWN)
    return up, down


def _locked_post_query(post_id: uuid.UUID) -> Select:
    """Select the post with a row lock held until commit or rollback.

    The lock serializes votes on one post. SQLite ignores FOR UPDATE.
    """
    return (
        select(Post)
        .where(Post.id == post_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def cast_vote(
    db: AsyncSession,
    post_id: uuid.UUID,
    user_id: uuid.UUID,
    vote_type: VoteType,
) -> VoteResult:
    post = (await db.execute(_locked_post_query(post_id))).scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found")
    if not post.is_public:
        raise InvalidStateError("Cannot vote on private posts")

    try:
        existing = (
            await db.execute(select(Vote).where(Vote.post_id == post_id, Vote.user_id == user_id))
        ).scalar_one_or_none()
        previous = VoteType(existing.type) if existing is not None else None

        if existing is None:
            db.add(Vote(post_id=post_id, user_id=user_id, type=vote_type.value))
            current: Optional[VoteType] = vote_type
        elif previous is vote_type:
            await db.delete(existing)
            current = None
        else:
            existing.type = vote_type.value
            current = vote_type

        up, down = _counter_deltas(previous, current)
        await db.execute(
            update(Post)
            .where(Post.id == post_id)
            .values(upvotes=Post.upvotes + up, downvotes=Post.downvotes + down)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(post)
    logger.info(
        "Vote on post %s by user %s: %s -> %s",
        post_id,
        user_id,
        previous.value if previous else None,
        current.value if current else None,
    )
    return VoteResult(post=post, user_vote=current)


async def votes_for_user(
    db: AsyncSession, user_id: uuid.UUID, post_ids: list[uuid.UUID]
) -> dict[uuid.UUID, VoteType]:
    """Map post id -> the user's vote, for the given posts only."""
    if not post_ids:
        return {}
    rows = (
        await db.execute(
            select(Vote.post_id, Vote.type).where(Vote.user_id == user_id, Vote.post_id.in_(post_ids))
        )
    ).all()
    return {post_id: VoteType(vote_type) for post_id, vote_type in rows}
