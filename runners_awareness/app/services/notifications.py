# runners_awareness/app/services/notifications.py
"""
Verification / account e-mails and SMS.

Delivery is fire-and-forget: messages are queued on FastAPI BackgroundTasks
after the state change has been committed, and a delivery failure is
logged, never propagated.

Transports:
- Email: SMTP (STARTTLS + optional login) when SMTP_HOST is set
- SMS: Twilio-style REST form post when SMS_ACCOUNT_SID is set
- Otherwise the message is only logged (local development)
"""
import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Awaitable, Callable, Optional

import httpx
from fastapi import BackgroundTasks

from runners_awareness.app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, config: Optional[Settings] = None):
        self.config = config or get_settings()

    # ─────────────────────────────────────────────────────────────
    # Transports
    # ─────────────────────────────────────────────────────────────

    def _send_smtp(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        cfg = self.config
        msg = MIMEMultipart("alternative")
        msg["From"] = f"{cfg.SMTP_FROM_NAME} <{cfg.SMTP_FROM_EMAIL}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=cfg.NOTIFICATION_TIMEOUT_SECONDS) as server:
            if cfg.SMTP_USE_TLS:
                server.starttls(context=ssl.create_default_context())
            if cfg.SMTP_USERNAME and cfg.SMTP_PASSWORD:
                server.login(cfg.SMTP_USERNAME, cfg.SMTP_PASSWORD)
            server.sendmail(cfg.SMTP_FROM_EMAIL, [to_email], msg.as_string())

    async def send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        if not self.config.SMTP_HOST:
            logger.info("Email (not sent, SMTP disabled) to=%s subject=%r", to_email, subject)
            return
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._send_smtp, to_email, subject, html_body, text_body)
        logger.info("Email sent to=%s subject=%r", to_email, subject)

    async def send_sms(self, to_phone: str, body: str) -> None:
        cfg = self.config
        if not cfg.SMS_ACCOUNT_SID:
            logger.info("SMS (not sent, provider disabled) to=%s", to_phone)
            return

        url = cfg.SMS_API_URL.format(account_sid=cfg.SMS_ACCOUNT_SID)
        async with httpx.AsyncClient(timeout=cfg.NOTIFICATION_TIMEOUT_SECONDS) as client:
            res = await client.post(
                url,
                data={"To": to_phone, "From": cfg.SMS_FROM_NUMBER, "Body": body},
                auth=(cfg.SMS_ACCOUNT_SID, cfg.SMS_AUTH_TOKEN),
            )
        res.raise_for_status()
        logger.info("SMS sent to=%s", to_phone)

    # ─────────────────────────────────────────────────────────────
    # Account messages
    # ─────────────────────────────────────────────────────────────

    async def send_verification_email(self, email: str, name: str, token: str) -> None:
        link = f"{self.config.FRONTEND_URL}/verify-email.html?token={token}"
        await self.send_email(
            email,
            "Verify your 241 Runners Awareness account",
            f"<p>Hello {name},</p>"
            f"<p>Please confirm your email address by opening "
            f"<a href=\"{link}\">this link</a>. The link expires in "
            f"{self.config.EMAIL_VERIFICATION_EXPIRE_HOURS} hours.</p>",
            f"Hello {name},\n\nConfirm your email address: {link}\n",
        )

    async def send_verification_sms(self, phone: Optional[str], code: str) -> None:
        if not phone:
            return
        await self.send_sms(
            phone,
            f"241 Runners Awareness verification code: {code}. "
            f"It expires in {self.config.PHONE_VERIFICATION_EXPIRE_MINUTES} minutes.",
        )

    async def send_welcome_email(self, email: str, name: str) -> None:
        await self.send_email(
            email,
            "Welcome to 241 Runners Awareness",
            f"<p>Hello {name},</p><p>Your email address is verified. Welcome aboard.</p>",
            f"Hello {name},\n\nYour email address is verified. Welcome aboard.\n",
        )

    async def send_welcome_sms(self, phone: Optional[str], name: str) -> None:
        if not phone:
            return
        await self.send_sms(phone, f"Hi {name}, your phone number is verified with 241 Runners Awareness.")

    async def send_password_reset_email(self, email: str, name: str, token: str) -> None:
        link = f"{self.config.FRONTEND_URL}/reset-password.html?token={token}"
        await self.send_email(
            email,
            "Reset your 241 Runners Awareness password",
            f"<p>Hello {name},</p><p>Reset your password using "
            f"<a href=\"{link}\">this link</a>. If you did not ask for a reset, "
            f"ignore this email.</p>",
            f"Hello {name},\n\nReset your password: {link}\n",
        )

    async def send_password_change_confirmation(self, email: str, name: str) -> None:
        await self.send_email(
            email,
            "Your password was changed",
            f"<p>Hello {name},</p><p>Your password was just changed. "
            f"Contact support if this was not you.</p>",
            f"Hello {name},\n\nYour password was just changed.\n",
        )


async def deliver_safely(send: Callable[..., Awaitable[Any]], *args: Any) -> None:
    """Run one delivery; failures are logged and swallowed."""
    try:
        await send(*args)
    except Exception:
        logger.exception("Notification delivery failed (%s)", getattr(send, "__name__", send))


def enqueue(background_tasks: BackgroundTasks, send: Callable[..., Awaitable[Any]], *args: Any) -> None:
    background_tasks.add_task(deliver_safely, send, *args)


def get_notifier() -> NotificationService:
    """FastAPI dependency; tests override it with a recording double."""
    return NotificationService()
