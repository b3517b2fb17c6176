"""Single-use, time-boxed tokens for email verification and password reset.

A token is issued with a random 256-bit value and an expiry. Presenting it
either consumes it (the row is deleted and the caller applies its effect in the
same transaction) or, once past expiry, deletes it and fails.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import Type, Union

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from mdshare.exceptions import InvalidTokenError, TokenExpiredError
from mdshare.models.email_verification_token import EmailVerificationToken
from mdshare.models.password_reset_token import PasswordResetToken
from mdshare.utils.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
PASSWORD_RESET_TOKEN_TTL = timedelta(hours=1)
MAX_RESET_TOKENS_PER_HOUR = 3

TokenModel = Union[Type[EmailVerificationToken], Type[PasswordResetToken]]


def generate_token() -> str:
    return secrets.token_urlsafe(32)


async def issue_verification_token(db: AsyncSession, user_id: uuid.UUID) -> str:
    """Replace any outstanding verification tokens of the user with a fresh one.

    The caller commits.
    """
    await db.execute(delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user_id))
    token = generate_token()
    db.add(
        EmailVerificationToken(
            user_id=user_id,
            token=token,
            expires_at=utcnow() + VERIFICATION_TOKEN_TTL,
        )
    )
    return token


async def recent_reset_token_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(PasswordResetToken)
        .where(
            PasswordResetToken.user_id == user_id,
            PasswordResetToken.created_at > utcnow() - timedelta(hours=1),
        )
    )
    return result.scalar_one()


async def issue_password_reset_token(db: AsyncSession, user_id: uuid.UUID) -> str:
    """Add a reset token for the user. The caller commits."""
    token = generate_token()
    db.add(
        PasswordResetToken(
            user_id=user_id,
            token=token,
            expires_at=utcnow() + PASSWORD_RESET_TOKEN_TTL,
        )
    )
    return token


async def consume_token(db: AsyncSession, model: TokenModel, token: str) -> uuid.UUID:
    """Claim a token and return the owning user's id.

    Raises InvalidTokenError when the token is unknown or was claimed by a
    concurrent request, TokenExpiredError when it is past expiry (the row is
    deleted and committed in that case). On success the delete is pending in
    the session's transaction; the caller applies the effect and commits.
    """
    row = (await db.execute(select(model).where(model.token == token))).scalar_one_or_none()
    if row is None:
        raise InvalidTokenError(_invalid_message(model))

    if ensure_utc(row.expires_at) < utcnow():
        await db.execute(delete(model).where(model.id == row.id))
        await db.commit()
        raise TokenExpiredError(_expired_message(model))

    user_id = row.user_id
    # Guarded delete: of two concurrent redemptions only one sees rowcount 1.
    result = await db.execute(
        delete(model).where(model.id == row.id).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.warning("Token for user %s was consumed concurrently", user_id)
        raise InvalidTokenError(_invalid_message(model))
    db.expunge(row)
    return user_id


def _invalid_message(model: TokenModel) -> str:
    if model is EmailVerificationToken:
        return "Invalid verification token"
    return "Invalid reset token"


def _expired_message(model: TokenModel) -> str:
    if model is EmailVerificationToken:
        return "Verification token has expired"
    return "Reset token has expired"
