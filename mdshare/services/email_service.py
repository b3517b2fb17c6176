"""Email service using Resend for transactional emails."""

import logging
from urllib.parse import quote

import resend

from mdshare.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()
resend.api_key = settings.resend_api_key

_BUTTON_STYLE = (
    "display: inline-block; padding: 12px 24px; background-color: #4F46E5; "
    "color: #ffffff; text-decoration: none; border-radius: 6px; margin: 16px 0;"
)


def _render(heading: str, intro: str, url: str, label: str, footer: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 32px;">
        <h2 style="color: #111827;">{heading}</h2>
        <p style="color: #374151; font-size: 16px; line-height: 1.6;">{intro}</p>
        <a href="{url}" style="{_BUTTON_STYLE}">{label}</a>
        <p style="color: #6b7280; font-size: 14px;">Or copy and paste this link into your browser:</p>
        <p style="color: #6b7280; font-size: 14px; word-break: break-all;">{url}</p>
        <p style="color: #6b7280; font-size: 14px;">{footer}</p>
    </div>
    """


def _send(to_email: str, subject: str, html: str) -> bool:
    try:
        resend.Emails.send(
            {
                "from": settings.email_from,
                "to": [to_email],
                "subject": subject,
                "html": html,
            }
        )
        return True
    except Exception as e:
        logger.error("Failed to send '%s' email to %s: %s", subject, to_email, e)
        return False


async def send_verification_email(to_email: str, token: str, name: str | None = None) -> bool:
    """Send an email verification link to a newly registered user.

    Returns:
        True if the email was handed to Resend, False otherwise.
    """
    verification_url = f"{settings.frontend_url}/verify-email?token={quote(token)}"
    greeting = f"Hi {name}, thank you" if name else "Thank you"
    html = _render(
        heading="Verify your email address",
        intro=f"{greeting} for registering! Please click the button below to verify your email address.",
        url=verification_url,
        label="Verify Email",
        footer="This link will expire in 24 hours.",
    )
    sent = _send(to_email, "Verify your email address", html)
    if sent:
        logger.info("Verification email sent to %s", to_email)
    return sent


async def send_password_reset_email(to_email: str, token: str) -> bool:
    """Send a password reset link.

    Returns:
        True if the email was handed to Resend, False otherwise.
    """
    reset_url = f"{settings.frontend_url}/reset-password?token={quote(token)}"
    html = _render(
        heading="Reset your password",
        intro="You requested to reset your password. Click the button below to create a new password.",
        url=reset_url,
        label="Reset Password",
        footer="This link will expire in 1 hour. If you didn't request this, you can safely ignore this email.",
    )
    sent = _send(to_email, "Reset your password", html)
    if sent:
        logger.info("Password reset email sent to %s", to_email)
    return sent
