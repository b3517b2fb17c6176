import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from mdshare.auth import (
    access_token_ttl,
    create_access_token,
    create_refresh_token,
    hash_password,
    hash_token,
    refresh_token_ttl,
    verify_password,
    verify_token,
)
from mdshare.database import get_db
from mdshare.dependencies import get_current_user, limiter
from mdshare.exceptions import (
    AppError,
    ConflictError,
    InvalidTokenError,
    UnauthorizedError,
    ValidationFailedError,
)
from mdshare.models.email_verification_token import EmailVerificationToken
from mdshare.models.password_reset_token import PasswordResetToken
from mdshare.models.user import OAuthAccount, RefreshToken, User
from mdshare.schemas.auth import (
    ForgotPasswordRequest,
    GitHubLoginRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenResponse,
    UserOut,
    VerifyEmailRequest,
)
from mdshare.schemas.common import MessageResponse
from mdshare.services import github_oauth
from mdshare.services.avatar import generate_avatar_url
from mdshare.services.email_service import send_password_reset_email, send_verification_email
from mdshare.services.tokens import (
    MAX_RESET_TOKENS_PER_HOUR,
    consume_token,
    issue_password_reset_token,
    issue_verification_token,
    recent_reset_token_count,
)
from mdshare.utils.timeutils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


async def _find_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower().strip()))
    return result.scalar_one_or_none()


async def _issue_token_pair(db: AsyncSession, user: User) -> TokenResponse:
    access_token = create_access_token(str(user.id))
    refresh_token = create_refresh_token(str(user.id))

    db.add(
        RefreshToken(
            user_id=user.id,
            token_hash=hash_token(refresh_token),
            expires_at=utcnow() + refresh_token_ttl(),
        )
    )
    await db.commit()

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(access_token_ttl().total_seconds()),
    )


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/hour")
async def register_user(
    request: Request,
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Register a new account and email a verification link.

    Registering again with the email of an account that was never verified
    replaces its name and password and sends a fresh link.

    **Request:** RegisterRequest (email, password, name)
    **Response:** MessageResponse
    **Errors:** 400 (email already registered, invalid fields, weak password), 500 (registration failed)
    """
    email = payload.email
    try:
        user = await _find_user_by_email(db, email)
        if user is not None and user.email_verified:
            raise ConflictError("Email already registered")

        if user is None:
            user = User(
                email=email,
                name=payload.name,
                hashed_password=hash_password(payload.password),
                image=generate_avatar_url(email),
            )
            db.add(user)
            await db.flush()
        else:
            logger.info("Re-registration of unverified account %s", user.id)
            user.name = payload.name
            user.hashed_password = hash_password(payload.password)

        token = await issue_verification_token(db, user.id)
        await db.commit()
    except AppError:
        raise
    except IntegrityError as e:
        await db.rollback()
        err_msg = str(getattr(e, "orig", e)).lower()
        if "unique" in err_msg or "duplicate" in err_msg:
            raise ConflictError("Email already registered")
        logger.exception("Registration integrity error: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed, please try again",
        )
    except Exception as e:
        await db.rollback()
        logger.exception("Registration failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed, please try again",
        )

    await send_verification_email(to_email=user.email, token=token, name=user.name)

    return MessageResponse(
        message="User created successfully. Please check your email to verify your account."
    )


@router.post("/verify-email", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def verify_email(payload: VerifyEmailRequest, db: AsyncSession = Depends(get_db)) -> MessageResponse:
    """
    Confirm an email address with the token from the verification link.

    The token is single-use: it is deleted on success, and an expired token is
    deleted when presented.
    **Request:** VerifyEmailRequest (token)
    **Response:** MessageResponse
    **Errors:** 400 (invalid, already used or expired token)
    """
    user_id = await consume_token(db, EmailVerificationToken, payload.token)

    user = await db.get(User, user_id)
    if user is None:
        await db.rollback()
        raise InvalidTokenError("Invalid verification token")

    if user.email_verified_at is None:
        user.email_verified_at = utcnow()
    await db.commit()

    logger.info("Email verified for user %s", user.id)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse, status_code=status.HTTP_200_OK)
@limiter.limit("3/hour")
async def resend_verification(
    request: Request,
    payload: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Send a fresh verification link to an unverified account.

    Returns the same message whether or not the account exists.
    **Request:** ResendVerificationRequest (email)
    **Response:** MessageResponse
    """
    generic = MessageResponse(
        message="If an unverified account exists with that email, a verification link has been sent."
    )

    user = await _find_user_by_email(db, payload.email)
    if user is None or user.email_verified:
        return generic

    token = await issue_verification_token(db, user.id)
    await db.commit()

    await send_verification_email(to_email=user.email, token=token, name=user.name)
    return generic


@router.post("/forgot-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
@limiter.limit("3/hour")
async def forgot_password(
    request: Request,
    payload: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Request password reset email.

    Sends reset link to email if account exists. Always returns same message for security.
    Rate limited to 3 requests per hour per IP, and at most 3 links per account per hour.
    **Request:** ForgotPasswordRequest (email)
    **Response:** MessageResponse
    """
    generic = MessageResponse(
        message="If an account exists with this email, a password reset link has been sent."
    )

    user = await _find_user_by_email(db, payload.email)
    if user is None or not user.is_active:
        return generic

    if await recent_reset_token_count(db, user.id) >= MAX_RESET_TOKENS_PER_HOUR:
        logger.info("Password reset throttled for user %s", user.id)
        return generic

    token = await issue_password_reset_token(db, user.id)
    await db.commit()

    await send_password_reset_email(to_email=user.email, token=token)

    return generic


@router.post("/reset-password", response_model=MessageResponse, status_code=status.HTTP_200_OK)
@limiter.limit("3/hour")
async def reset_password(
    request: Request,
    payload: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Reset password using token from email.

    Invalidates the reset token, any other outstanding reset tokens and all refresh tokens for the user.
    **Request:** ResetPasswordRequest (token, password)
    **Response:** MessageResponse
    **Errors:** 400 (invalid or expired token, weak password)
    """
    user_id = await consume_token(db, PasswordResetToken, payload.token)

    user = await db.get(User, user_id)
    if user is None:
        await db.rollback()
        raise InvalidTokenError("Invalid reset token")

    user.hashed_password = hash_password(payload.password)
    await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
    await db.commit()

    logger.info("Password reset for user %s", user.id)
    return MessageResponse(message="Password has been reset successfully")


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
@limiter.limit("5/minute")
async def login(
    request: Request,
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """
    Authenticate with email and password and receive JWT tokens.

    **Request:** LoginRequest (email, password)
    **Response:** TokenResponse (access_token, refresh_token, token_type, expires_in)
    **Errors:** 401 (invalid credentials, unverified email, deactivated account)
    """
    user = await _find_user_by_email(db, payload.email)
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise UnauthorizedError("Invalid email or password")
    if not user.is_active:
        raise UnauthorizedError("User deactivated")
    if not user.email_verified:
        raise UnauthorizedError("Please verify your email before logging in")

    return await _issue_token_pair(db, user)


@router.post("/refresh", response_model=TokenResponse, status_code=status.HTTP_200_OK)
async def refresh_token_endpoint(
    payload: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """
    Exchange refresh token for new access and refresh tokens.

    Rotates refresh token (old one is invalidated).
    **Request:** RefreshRequest (refresh_token)
    **Response:** TokenResponse (access_token, refresh_token)
    **Errors:** 401 (invalid, expired or revoked refresh token)
    """
    claims = verify_token(payload.refresh_token, token_type="refresh")
    if claims is None:
        raise UnauthorizedError("Invalid or expired refresh token")

    result = await db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(payload.refresh_token))
    )
    stored = result.scalar_one_or_none()
    if stored is None or str(stored.user_id) != claims.get("sub"):
        raise UnauthorizedError("Refresh token not recognized")
    if ensure_utc(stored.expires_at) < utcnow():
        await db.delete(stored)
        await db.commit()
        raise UnauthorizedError("Invalid or expired refresh token")

    user = await db.get(User, stored.user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    await db.delete(stored)
    return await _issue_token_pair(db, user)


@router.get("/me", response_model=UserOut, status_code=status.HTTP_200_OK)
async def get_me(current_user: User = Depends(get_current_user)) -> UserOut:
    """
    Get current authenticated user details.

    **Response:** UserOut (id, email, name, image, emailVerified)
    **Errors:** 401 (unauthorized)
    """
    return UserOut.model_validate(current_user)


@router.post("/github", response_model=TokenResponse, status_code=status.HTTP_200_OK)
async def github_login(payload: GitHubLoginRequest, db: AsyncSession = Depends(get_db)) -> TokenResponse:
    """
    Sign in with a GitHub OAuth authorization code.

    Links the GitHub account to the user with the same email, or creates a new
    verified account.
    **Request:** GitHubLoginRequest (code)
    **Response:** TokenResponse
    **Errors:** 400 (no verified email on the GitHub account), 401 (GitHub rejected the code)
    """
    profile = await github_oauth.get_profile_for_code(payload.code)

    result = await db.execute(
        select(OAuthAccount).where(
            OAuthAccount.provider == github_oauth.PROVIDER,
            OAuthAccount.provider_account_id == profile.account_id,
        )
    )
    account = result.scalar_one_or_none()

    if account is not None:
        user = await db.get(User, account.user_id)
    else:
        if not profile.email:
            raise ValidationFailedError("GitHub account has no verified email address")

        user = await _find_user_by_email(db, profile.email)
        if user is None:
            user = User(
                email=profile.email,
                name=profile.name,
                image=profile.avatar_url or generate_avatar_url(profile.email),
                email_verified_at=utcnow(),
            )
            db.add(user)
            await db.flush()
            logger.info("Created user %s from GitHub account %s", user.id, profile.account_id)
        elif not user.email_verified:
            # Whoever set the password never proved ownership of the address.
            user.hashed_password = None
            user.email_verified_at = utcnow()
            await db.execute(
                delete(EmailVerificationToken).where(EmailVerificationToken.user_id == user.id)
            )

        db.add(
            OAuthAccount(
                user_id=user.id,
                provider=github_oauth.PROVIDER,
                provider_account_id=profile.account_id,
            )
        )
        await db.commit()

    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")

    return await _issue_token_pair(db, user)
