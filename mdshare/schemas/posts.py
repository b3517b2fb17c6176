from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from mdshare.models.vote import VoteType

from .common import CamelModel

# 1 MiB, measured on the UTF-8 encoding
MAX_CONTENT_BYTES = 1024 * 1024


def validate_content_size(v: Optional[str]) -> Optional[str]:
    if v is not None and len(v.encode("utf-8")) > MAX_CONTENT_BYTES:
        raise ValueError("Content size exceeds the 1MB limit")
    return v


class PostCreate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "title": "Release notes",
                    "content": "# v1.2\n\n- faster search",
                    "isPublic": True,
                }
            ]
        },
    )
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    is_public: bool = False

    @field_validator("content")
    @classmethod
    def content_size(cls, v: str) -> str:
        return validate_content_size(v)


class PostUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    is_public: Optional[bool] = None

    @field_validator("content")
    @classmethod
    def content_size(cls, v: Optional[str]) -> Optional[str]:
        return validate_content_size(v)


class AuthorOut(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    id: UUID
    name: Optional[str] = None
    image: Optional[str] = None


class PostOut(CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
    id: UUID
    title: str
    content: str
    is_public: bool
    author_id: UUID
    upvotes: int
    downvotes: int
    created_at: datetime
    updated_at: datetime
    author: Optional[AuthorOut] = None
    user_vote: Optional[VoteType] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class PostListResponse(CamelModel):
    posts: list[PostOut]
    pagination: Pagination


class VoteRequest(CamelModel):
    type: VoteType


class VoteResponse(CamelModel):
    id: UUID
    upvotes: int
    downvotes: int
    user_vote: Optional[VoteType] = None
