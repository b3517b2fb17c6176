"""GitHub sign-in tests. The GitHub HTTP exchange is replaced with a canned profile."""
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from mdshare.models import EmailVerificationToken, OAuthAccount, User
from mdshare.services import github_oauth
from mdshare.services.github_oauth import GitHubProfile, _primary_email

pytestmark = pytest.mark.asyncio


@pytest.fixture
def github_profile(monkeypatch):
    """Make get_profile_for_code return the given profile."""

    def _install(**fields) -> GitHubProfile:
        profile = GitHubProfile(
            account_id=fields.get("account_id", "4242"),
            email=fields.get("email", "octo@example.com"),
            name=fields.get("name", "Octo Cat"),
            avatar_url=fields.get("avatar_url", "https://avatars.githubusercontent.com/u/4242"),
        )

        async def fake_get_profile_for_code(code: str) -> GitHubProfile:
            return profile

        monkeypatch.setattr(github_oauth, "get_profile_for_code", fake_get_profile_for_code)
        return profile

    return _install


class TestGitHubLogin:
    async def test_creates_verified_user(self, client: AsyncClient, db_session, github_profile):
        github_profile()
        response = await client.post("/api/auth/github", json={"code": "abc"})
        assert response.status_code == 200
        assert response.json()["access_token"]

        user = (await db_session.execute(select(User).where(User.email == "octo@example.com"))).scalar_one()
        assert user.email_verified
        assert user.hashed_password is None
        assert user.image == "https://avatars.githubusercontent.com/u/4242"

        me = await client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {response.json()['access_token']}"}
        )
        assert me.json()["email"] == "octo@example.com"

    async def test_second_login_reuses_link(self, client: AsyncClient, db_session, github_profile):
        github_profile()
        await client.post("/api/auth/github", json={"code": "abc"})
        # Email changed on GitHub; the account link still identifies the user.
        github_profile(email="new-address@example.com")
        response = await client.post("/api/auth/github", json={"code": "def"})
        assert response.status_code == 200

        users = (await db_session.execute(select(User))).scalars().all()
        assert [u.email for u in users] == ["octo@example.com"]
        links = (await db_session.execute(select(OAuthAccount))).scalars().all()
        assert len(links) == 1

    async def test_links_existing_verified_user(self, client: AsyncClient, db_session, make_user, github_profile):
        user = await make_user(email="octo@example.com")
        user_id = user.id
        github_profile()

        response = await client.post("/api/auth/github", json={"code": "abc"})
        assert response.status_code == 200

        link = (await db_session.execute(select(OAuthAccount))).scalar_one()
        assert link.user_id == user_id
        assert link.provider == "github"
        # password login keeps working
        login = await client.post(
            "/api/auth/login", json={"email": "octo@example.com", "password": "TestPass123"}
        )
        assert login.status_code == 200

    async def test_unverified_account_is_taken_over(self, client: AsyncClient, db_session, github_profile):
        await client.post(
            "/api/auth/register",
            json={"email": "octo@example.com", "password": "Squatter123", "name": "Squatter"},
        )
        github_profile()

        response = await client.post("/api/auth/github", json={"code": "abc"})
        assert response.status_code == 200

        user = (await db_session.execute(select(User).where(User.email == "octo@example.com"))).scalar_one()
        await db_session.refresh(user)
        assert user.email_verified
        assert user.hashed_password is None
        assert (await db_session.execute(select(EmailVerificationToken))).scalars().all() == []

        login = await client.post(
            "/api/auth/login", json={"email": "octo@example.com", "password": "Squatter123"}
        )
        assert login.status_code == 401

    async def test_profile_without_email(self, client: AsyncClient, github_profile):
        github_profile(email=None)
        response = await client.post("/api/auth/github", json={"code": "abc"})
        assert response.status_code == 400

    async def test_not_configured(self, client: AsyncClient):
        response = await client.post("/api/auth/github", json={"code": "abc"})
        assert response.status_code == 400
        assert response.json()["detail"] == "GitHub sign-in is not configured"

    async def test_missing_code(self, client: AsyncClient):
        response = await client.post("/api/auth/github", json={})
        assert response.status_code == 400


class TestPrimaryEmail:
    async def test_prefers_primary_verified(self):
        emails = [
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "main@example.com", "primary": True, "verified": True},
        ]
        assert _primary_email(emails) == "main@example.com"

    async def test_falls_back_to_any_verified(self):
        emails = [
            {"email": "main@example.com", "primary": True, "verified": False},
            {"email": "alt@example.com", "primary": False, "verified": True},
        ]
        assert _primary_email(emails) == "alt@example.com"

    async def test_no_verified_address(self):
        assert _primary_email([{"email": "x@example.com", "primary": True, "verified": False}]) is None
