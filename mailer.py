import html
import logging
import os
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)

EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
APP_NAME = os.getenv("APP_NAME", "GUCollab")


def is_configured() -> bool:
    return bool(EMAIL_USER and EMAIL_PASS)


def send_mail(to: str, subject: str, body: str) -> bool:
    if not is_configured():
        logger.info("Email not configured, skipping '%s' to %s", subject, to)
        return False
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = EMAIL_USER
    msg["To"] = to
    msg.set_content("This message requires an HTML capable mail client.")
    msg.add_alternative(body, subtype="html")
    with smtplib.SMTP(EMAIL_HOST, EMAIL_PORT, timeout=30) as smtp:
        smtp.starttls()
        smtp.login(EMAIL_USER, EMAIL_PASS)
        smtp.send_message(msg)
    logger.info("Sent '%s' to %s", subject, to)
    return True


def send_otp_email(to: str, otp: str, minutes: int) -> bool:
    return send_mail(
        to,
        f"{APP_NAME} - Password Reset OTP",
        f"<h2>Password Reset OTP</h2>"
        f"<p>Your OTP for password reset is: <strong>{otp}</strong></p>"
        f"<p>This OTP will expire in {minutes} minutes.</p>",
    )


def send_welcome_email(to: str, name: str) -> bool:
    return send_mail(
        to,
        f"Welcome to {APP_NAME}",
        f"<h2>Welcome, {html.escape(name)}!</h2>"
        f"<p>Your {APP_NAME} account is ready. Find a project or start your own.</p>",
    )
