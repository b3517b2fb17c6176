from .base import Base
from .user import User, RefreshToken, OAuthAccount
from .email_verification_token import EmailVerificationToken
from .password_reset_token import PasswordResetToken
from .post import Post
from .vote import Vote, VoteType

__all__ = [
    "Base",
    "User",
    "RefreshToken",
    "OAuthAccount",
    "EmailVerificationToken",
    "PasswordResetToken",
    "Post",
    "Vote",
    "VoteType",
]
