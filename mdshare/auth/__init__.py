from .jwt_handler import (
    access_token_ttl,
    create_access_token,
    create_refresh_token,
    hash_password,
    hash_token,
    refresh_token_ttl,
    verify_password,
    verify_token,
)

__all__ = [
    "access_token_ttl",
    "create_access_token",
    "create_refresh_token",
    "hash_password",
    "hash_token",
    "refresh_token_ttl",
    "verify_password",
    "verify_token",
]
