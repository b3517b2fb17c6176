"""GitHub OAuth client: exchange an authorization code for the user's profile."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from mdshare.config import get_settings
from mdshare.exceptions import UnauthorizedError, ValidationFailedError

logger = logging.getLogger(__name__)

TOKEN_URL = "https://github.com/login/oauth/access_token"
API_URL = "https://api.github.com"
PROVIDER = "github"


@dataclass
class GitHubProfile:
    account_id: str
    email: Optional[str]
    name: Optional[str]
    avatar_url: Optional[str]


def _primary_email(emails: list[dict]) -> Optional[str]:
    for entry in emails:
        if entry.get("primary") and entry.get("verified"):
            return entry.get("email")
    for entry in emails:
        if entry.get("verified"):
            return entry.get("email")
    return None


async def _exchange_code(client: httpx.AsyncClient, code: str) -> str:
    settings = get_settings()
    response = await client.post(
        TOKEN_URL,
        data={
            "client_id": settings.github_client_id,
            "client_secret": settings.github_client_secret,
            "code": code,
        },
        headers={"Accept": "application/json"},
    )
    payload = response.json() if response.status_code == 200 else {}
    access_token = payload.get("access_token")
    if not access_token:
        logger.warning("GitHub code exchange failed: %s %s", response.status_code, payload.get("error"))
        raise UnauthorizedError("GitHub authorization failed")
    return access_token


async def get_profile_for_code(code: str) -> GitHubProfile:
    settings = get_settings()
    if not settings.github_client_id or not settings.github_client_secret:
        raise ValidationFailedError("GitHub sign-in is not configured")

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            access_token = await _exchange_code(client, code)
            headers = {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            }
            user_resp = await client.get(f"{API_URL}/user", headers=headers)
            if user_resp.status_code != 200:
                logger.warning("GitHub /user returned %s", user_resp.status_code)
                raise UnauthorizedError("GitHub authorization failed")
            data = user_resp.json()

            email = data.get("email")
            if not email:
                emails_resp = await client.get(f"{API_URL}/user/emails", headers=headers)
                if emails_resp.status_code == 200:
                    email = _primary_email(emails_resp.json())
    except httpx.HTTPError as e:
        logger.error("GitHub OAuth request failed: %s", e)
        raise UnauthorizedError("GitHub authorization failed")

    return GitHubProfile(
        account_id=str(data["id"]),
        email=email.lower().strip() if email else None,
        name=data.get("name") or data.get("login"),
        avatar_url=data.get("avatar_url"),
    )
