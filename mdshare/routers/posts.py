import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from mdshare.database import get_db
from mdshare.dependencies import get_current_user, get_current_user_optional
from mdshare.models.post import Post
from mdshare.models.user import User
from mdshare.models.vote import Vote
from mdshare.schemas.common import MessageResponse
from mdshare.schemas.posts import (
    PostCreate,
    PostListResponse,
    PostOut,
    PostUpdate,
    VoteRequest,
    VoteResponse,
)
from mdshare.services import posts as post_service
from mdshare.services.voting import cast_vote, votes_for_user

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


async def _serialize(db: AsyncSession, posts: list[Post], user: Optional[User]) -> list[PostOut]:
    user_votes = await votes_for_user(db, user.id, [p.id for p in posts]) if user else {}
    return [
        PostOut.model_validate(p).model_copy(update={"user_vote": user_votes.get(p.id)})
        for p in posts
    ]


@router.get("", response_model=PostListResponse)
async def list_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
) -> PostListResponse:
    """
    "My documents": the caller's own posts plus everyone's public posts, newest first.

    Anonymous callers see public posts only.
    **Response:** PostListResponse (posts, pagination)
    """
    posts, pagination = await post_service.list_documents(db, current_user, page, limit)
    return PostListResponse(posts=await _serialize(db, posts, current_user), pagination=pagination)


@router.post("", response_model=PostOut, status_code=status.HTTP_201_CREATED)
async def create_post(
    payload: PostCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostOut:
    """
    Create a markdown document owned by the caller.

    **Request:** PostCreate (title, content, isPublic)
    **Response:** PostOut
    **Errors:** 400 (missing title/content, content over 1MB), 401 (not signed in)
    """
    post = Post(author_id=current_user.id, **payload.model_dump())
    db.add(post)
    await db.commit()

    logger.info("Post %s created by user %s", post.id, current_user.id)
    return PostOut.model_validate(await post_service.get_post(db, post.id))


# --- Fixed-path endpoints BEFORE /{post_id} ---

@router.get("/public", response_model=PostListResponse)
async def list_public_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
) -> PostListResponse:
    """
    Explore feed: public posts ranked by upvotes, newest first among equals.

    Each post carries the caller's own vote (userVote) when signed in.
    **Response:** PostListResponse (posts, pagination)
    """
    posts, pagination = await post_service.list_public(db, page, limit)
    return PostListResponse(posts=await _serialize(db, posts, current_user), pagination=pagination)


# --- Parametric endpoints ---

@router.get("/{post_id}", response_model=PostOut)
async def get_post(
    post_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
) -> PostOut:
    """
    Fetch one post. Private posts are visible to their author only.

    **Errors:** 404 (no such post), 401 (private post of another user)
    """
    post = await post_service.get_viewable_post(db, post_id, current_user)
    (out,) = await _serialize(db, [post], current_user)
    return out


@router.put("/{post_id}", response_model=PostOut)
async def update_post(
    post_id: uuid.UUID,
    payload: PostUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostOut:
    """
    Update title, content and/or visibility. Author only; omitted fields are left unchanged.

    **Errors:** 400 (content over 1MB), 401 (not the author), 404 (no such post)
    """
    post = await post_service.get_owned_post(db, post_id, current_user)

    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(post, field, value)

    await db.commit()
    (out,) = await _serialize(db, [await post_service.get_post(db, post.id)], current_user)
    return out


@router.delete("/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """
    Delete a post and its votes. Author only.

    **Errors:** 401 (not the author), 404 (no such post)
    """
    post = await post_service.get_owned_post(db, post_id, current_user)

    await db.execute(delete(Vote).where(Vote.post_id == post.id))
    await db.delete(post)
    await db.commit()

    logger.info("Post %s deleted by user %s", post_id, current_user.id)
    return MessageResponse(message="Post deleted successfully")


@router.post("/{post_id}/vote", response_model=VoteResponse)
async def vote_on_post(
    post_id: uuid.UUID,
    payload: VoteRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> VoteResponse:
    """
    Cast, switch or cancel the caller's vote on a public post.

    Voting the same type twice cancels the vote; voting the other type switches it.
    **Request:** VoteRequest (type: UP | DOWN)
    **Response:** VoteResponse (id, upvotes, downvotes, userVote)
    **Errors:** 400 (private post, invalid type), 401 (not signed in), 404 (no such post)
    """
    result = await cast_vote(db, post_id, current_user.id, payload.type)
    return VoteResponse(
        id=result.post.id,
        upvotes=result.post.upvotes,
        downvotes=result.post.downvotes,
        user_vote=result.user_vote,
    )
