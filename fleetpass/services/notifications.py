"""
FleetPass - Notification Dispatcher

Outbound account notifications (verification, password reset, welcome).
Only the interface is consumed by the auth flows; the transport is
pluggable. LogNotificationDispatcher renders the messages to the log and
is the default for local development. Bodies that carry a verification or
reset link are logged at DEBUG only; INFO records just the recipient.

Delivery is best-effort: dispatch_safely() logs a failure and reports it
as False, and the calling flow carries on.
"""

import logging
from abc import ABC, abstractmethod
from typing import Awaitable


logger = logging.getLogger(__name__)


class NotificationDispatcher(ABC):
    """Interface for sending account notifications."""

    @abstractmethod
    async def send_verification_email(self, to: str, token: str) -> None:
        ...

    @abstractmethod
    async def send_password_reset_email(self, to: str, token: str) -> None:
        ...

    @abstractmethod
    async def send_welcome_email(self, to: str, first_name: str) -> None:
        ...


class LogNotificationDispatcher(NotificationDispatcher):
    """
    Writes notifications to the application log instead of sending them.

    Args:
        frontend_url: Base URL for verification/reset links
    """

    def __init__(self, frontend_url: str = "http://localhost:3000"):
        self.frontend_url = frontend_url.rstrip("/")

    async def send_verification_email(self, to: str, token: str) -> None:
        logger.info("Verification email queued for %s", to)
        logger.debug(
            "EMAIL to=%s subject=%r\n"
            "Welcome to FleetPass!\n\n"
            "Please click the link below to verify your email address:\n"
            "%s/verify-email?token=%s\n\n"
            "This link will expire in 24 hours.\n"
            "If you didn't create an account, please ignore this email.",
            to, "Verify Your Email Address", self.frontend_url, token,
        )

    async def send_password_reset_email(self, to: str, token: str) -> None:
        logger.info("Password reset email queued for %s", to)
        logger.debug(
            "EMAIL to=%s subject=%r\n"
            "You requested to reset your password.\n\n"
            "Click the link below to reset your password:\n"
            "%s/reset-password?token=%s\n\n"
            "This link will expire in 1 hour.\n"
            "If you didn't request this, please ignore this email. "
            "Your password will not be changed.",
            to, "Reset Your Password", self.frontend_url, token,
        )

    async def send_welcome_email(self, to: str, first_name: str) -> None:
        logger.info(
            "EMAIL to=%s subject=%r\n"
            "Hi %s,\n\n"
            "Welcome to FleetPass! Your email has been verified.\n"
            "You can now log in and start managing your fleet.",
            to, "Welcome to FleetPass!", first_name,
        )


async def dispatch_safely(send: Awaitable[None], kind: str, to: str) -> bool:
    """
    Await a notification without letting its failure escape.

    Args:
        send: The pending send_* coroutine
        kind: Notification kind for the log line ("verification", ...)
        to: Recipient address for the log line

    Returns:
        True if delivered, False if the dispatcher raised
    """
    try:
        await send
    except Exception:
        # Delivery is best-effort; the orchestrating write has already happened
        logger.exception("Failed to send %s notification to %s", kind, to)
        return False
    return True
