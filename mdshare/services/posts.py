from __future__ import annotations

import logging
import math
import uuid
from typing import Optional, Sequence

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mdshare.exceptions import NotFoundError, UnauthorizedError
from mdshare.models.post import Post
from mdshare.models.user import User
from mdshare.schemas.posts import Pagination

logger = logging.getLogger(__name__)


def can_view(post: Post, user: Optional[User]) -> bool:
    return post.is_public or (user is not None and post.author_id == user.id)


def is_author(post: Post, user: Optional[User]) -> bool:
    return user is not None and post.author_id == user.id


async def get_post(db: AsyncSession, post_id: uuid.UUID) -> Post:
    result = await db.execute(
        select(Post)
        .options(selectinload(Post.author))
        .where(Post.id == post_id)
        .execution_options(populate_existing=True)
    )
    post = result.scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def get_viewable_post(db: AsyncSession, post_id: uuid.UUID, user: Optional[User]) -> Post:
    post = await get_post(db, post_id)
    if not can_view(post, user):
        raise UnauthorizedError("Unauthorized")
    return post


async def get_owned_post(db: AsyncSession, post_id: uuid.UUID, user: User) -> Post:
    post = await get_post(db, post_id)
    if not is_author(post, user):
        raise UnauthorizedError("Unauthorized")
    return post


async def paginate(
    db: AsyncSession, base_query: Select, order_by: Sequence, page: int, limit: int
) -> tuple[list[Post], Pagination]:
    count_query = select(func.count()).select_from(base_query.subquery())
    total = (await db.execute(count_query)).scalar_one()

    offset = (page - 1) * limit
    rows: Sequence[Post] = []
    # Past the last page there is nothing to fetch, and a huge offset would overflow the bind.
    if offset < total:
        page_query = (
            base_query.options(selectinload(Post.author))
            .order_by(*order_by)
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        rows = (await db.execute(page_query)).scalars().all()
    pagination = Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit),
    )
    return list(rows), pagination


async def list_documents(
    db: AsyncSession, user: Optional[User], page: int, limit: int
) -> tuple[list[Post], Pagination]:
    """The caller's own documents plus everyone's public ones, newest first."""
    if user is not None:
        query = select(Post).where(or_(Post.author_id == user.id, Post.is_public.is_(True)))
    else:
        query = select(Post).where(Post.is_public.is_(True))

    posts, pagination = await paginate(db, query, [Post.created_at.desc(), Post.id], page, limit)

    leaked = [p.id for p in posts if not can_view(p, user)]
    if leaked:
        logger.error("Visibility filter returned private posts %s to user %s", leaked, user and user.id)
        raise RuntimeError("Document listing returned posts the caller may not view")
    return posts, pagination


async def list_public(db: AsyncSession, page: int, limit: int) -> tuple[list[Post], Pagination]:
    """Public feed ranked by upvotes, newest first among equals."""
    query = select(Post).where(Post.is_public.is_(True))
    return await paginate(
        db, query, [Post.upvotes.desc(), Post.created_at.desc(), Post.id], page, limit
    )
