"""Verification and reset token lifecycle tests."""
from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import claim_elsewhere_first
from mdshare.exceptions import InvalidTokenError, TokenExpiredError
from mdshare.models import EmailVerificationToken, PasswordResetToken, User
from mdshare.services.tokens import (
    PASSWORD_RESET_TOKEN_TTL,
    VERIFICATION_TOKEN_TTL,
    consume_token,
    generate_token,
    issue_password_reset_token,
    issue_verification_token,
    recent_reset_token_count,
)
from mdshare.utils.timeutils import ensure_utc, utcnow

pytestmark = pytest.mark.asyncio


class TestIssue:
    async def test_tokens_are_random_and_url_safe(self):
        tokens = {generate_token() for _ in range(50)}
        assert len(tokens) == 50
        for token in tokens:
            assert len(token) >= 43
            assert all(c.isalnum() or c in "-_" for c in token)

    async def test_verification_token_replaces_previous(self, db_session, make_user):
        user = await make_user(verified=False)
        first = await issue_verification_token(db_session, user.id)
        await db_session.commit()
        second = await issue_verification_token(db_session, user.id)
        await db_session.commit()

        rows = (await db_session.execute(select(EmailVerificationToken))).scalars().all()
        assert [r.token for r in rows] == [second]
        assert first != second

    async def test_verification_token_expiry(self, db_session, make_user):
        user = await make_user(verified=False)
        before = utcnow()
        await issue_verification_token(db_session, user.id)
        await db_session.commit()

        row = (await db_session.execute(select(EmailVerificationToken))).scalar_one()
        expires = ensure_utc(row.expires_at)
        assert before + VERIFICATION_TOKEN_TTL <= expires <= utcnow() + VERIFICATION_TOKEN_TTL

    async def test_reset_tokens_accumulate_and_are_counted(self, db_session, make_user):
        user = await make_user()
        for _ in range(2):
            await issue_password_reset_token(db_session, user.id)
        await db_session.commit()

        assert await recent_reset_token_count(db_session, user.id) == 2
        row = (await db_session.execute(select(PasswordResetToken))).scalars().first()
        assert ensure_utc(row.expires_at) <= utcnow() + PASSWORD_RESET_TOKEN_TTL

    async def test_old_reset_tokens_not_counted(self, db_session, make_user):
        user = await make_user()
        db_session.add(
            PasswordResetToken(
                user_id=user.id,
                token=generate_token(),
                expires_at=utcnow() - timedelta(hours=1),
                created_at=utcnow() - timedelta(hours=2),
            )
        )
        await db_session.commit()
        assert await recent_reset_token_count(db_session, user.id) == 0


class TestConsume:
    async def test_consume_returns_user_and_deletes(self, db_session, make_user):
        user = await make_user(verified=False)
        user_id = user.id
        token = await issue_verification_token(db_session, user_id)
        await db_session.commit()

        assert await consume_token(db_session, EmailVerificationToken, token) == user_id
        await db_session.commit()
        assert (await db_session.execute(select(EmailVerificationToken))).scalars().all() == []

    async def test_consume_twice_fails(self, db_session, make_user):
        user = await make_user()
        token = await issue_password_reset_token(db_session, user.id)
        await db_session.commit()

        await consume_token(db_session, PasswordResetToken, token)
        await db_session.commit()
        with pytest.raises(InvalidTokenError, match="Invalid reset token"):
            await consume_token(db_session, PasswordResetToken, token)

    async def test_unknown_token(self, db_session):
        with pytest.raises(InvalidTokenError, match="Invalid verification token"):
            await consume_token(db_session, EmailVerificationToken, "missing")

    async def test_token_claimed_concurrently_is_rejected(self, db_session, make_user, monkeypatch):
        user = await make_user(verified=False)
        user_id = user.id
        token = await issue_verification_token(db_session, user_id)
        await db_session.commit()
        claim_elsewhere_first(monkeypatch, db_session, EmailVerificationToken)

        with pytest.raises(InvalidTokenError, match="Invalid verification token"):
            await consume_token(db_session, EmailVerificationToken, token)

        verified_at = (
            await db_session.execute(select(User.email_verified_at).where(User.id == user_id))
        ).scalar_one()
        assert verified_at is None

    async def test_expired_token_is_deleted(self, db_session, make_user):
        user = await make_user(verified=False)
        token = generate_token()
        db_session.add(
            EmailVerificationToken(
                user_id=user.id, token=token, expires_at=utcnow() - timedelta(seconds=5)
            )
        )
        await db_session.commit()

        with pytest.raises(TokenExpiredError, match="Verification token has expired"):
            await consume_token(db_session, EmailVerificationToken, token)
        assert (await db_session.execute(select(EmailVerificationToken))).scalars().all() == []

    async def test_token_of_other_kind_not_accepted(self, db_session, make_user):
        user = await make_user()
        token = await issue_password_reset_token(db_session, user.id)
        await db_session.commit()
        with pytest.raises(InvalidTokenError):
            await consume_token(db_session, EmailVerificationToken, token)

    async def test_invalid_token_maps_to_400(self):
        assert InvalidTokenError("x").status_code == 400
        assert TokenExpiredError("x").status_code == 400
