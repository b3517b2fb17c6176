import hashlib

from mdshare.config import get_settings


def generate_avatar_url(email: str) -> str:
    """Deterministic DiceBear avatar seeded by the MD5 of the lower-cased email."""
    seed = hashlib.md5(email.lower().encode("utf-8")).hexdigest()
    return f"{get_settings().avatar_base_url}?seed={seed}"
