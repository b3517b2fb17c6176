"""Seed a verified demo account with a few sample documents."""
import asyncio

from sqlalchemy import select

from mdshare.auth.jwt_handler import hash_password
from mdshare.database import session_scope
from mdshare.models import Post, User
from mdshare.services.avatar import generate_avatar_url
from mdshare.utils.timeutils import utcnow

DEMO_EMAIL = "demo@mdshare.dev"

SAMPLE_POSTS = [
    (
        "Welcome to MDShare",
        "# Welcome\n\nWrite in **markdown**, keep it private or publish it to the explore feed.",
        True,
    ),
    (
        "Markdown cheatsheet",
        "## Lists\n\n- one\n- two\n\n## Code\n\n```python\nprint('hello')\n```\n",
        True,
    ),
    (
        "Private scratchpad",
        "Only the author can see this one.",
        False,
    ),
]


async def seed() -> None:
    async with session_scope() as db:
        result = await db.execute(select(User).where(User.email == DEMO_EMAIL))
        if result.scalar_one_or_none():
            print("Demo user already exists, skipping seed")
            return

        user = User(
            email=DEMO_EMAIL,
            name="Demo User",
            hashed_password=hash_password("DemoPassword1"),
            image=generate_avatar_url(DEMO_EMAIL),
            email_verified_at=utcnow(),
        )
        db.add(user)
        await db.flush()

        for title, content, is_public in SAMPLE_POSTS:
            db.add(Post(title=title, content=content, is_public=is_public, author_id=user.id))

        await db.commit()
        print(f"Seeded {DEMO_EMAIL} with {len(SAMPLE_POSTS)} posts")


if __name__ == "__main__":
    asyncio.run(seed())
