import json
import logging
import os
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from dotenv import load_dotenv

from payment_service import database
from payment_service.models import EmailLog, EmailStatus

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"<[^>]*>?")


class MailerError(Exception):
    pass


def _smtp_settings():
    host = os.getenv("SMTP_HOST")
    if not host:
        raise MailerError("SMTP settings not configured")
    return {
        "host": host,
        "port": int(os.getenv("SMTP_PORT", "587")),
        "username": os.getenv("SMTP_USERNAME"),
        "password": os.getenv("SMTP_PASSWORD"),
        "encryption": os.getenv("SMTP_ENCRYPTION", "tls").lower(),
        "from_name": os.getenv("SMTP_FROM_NAME", "Fashion By Grant"),
        "from_email": os.getenv("SMTP_FROM_EMAIL", "no-reply@localhost"),
    }


def _log_attempt(session_factory, **fields):
    db = session_factory()
    try:
        db.add(EmailLog(**fields))
        db.commit()
    finally:
        db.close()


def send_email(to: str, subject: str, html: str, text: str = None, *, session_factory=None):
    """Send an HTML email over SMTP and record the attempt in ``email_logs``.

    Raises on any failure after the FAILED row is written; callers that treat
    mail as best effort must catch.
    """
    session_factory = session_factory or database.SessionLocal

    try:
        settings = _smtp_settings()

        message = EmailMessage()
        message["From"] = formataddr((settings["from_name"], settings["from_email"]))
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text or TAG_RE.sub("", html))
        message.add_alternative(html, subtype="html")

        if settings["encryption"] == "ssl":
            smtp = smtplib.SMTP_SSL(settings["host"], settings["port"], timeout=30)
        else:
            smtp = smtplib.SMTP(settings["host"], settings["port"], timeout=30)

        with smtp:
            if settings["encryption"] == "tls":
                smtp.starttls()
            if settings["username"]:
                smtp.login(settings["username"], settings["password"] or "")
            smtp.send_message(message)
    except Exception as e:
        logger.error("Email sending failed to %s: %s", to, e)
        _log_attempt(
            session_factory,
            to_email=to,
            subject=subject,
            status=EmailStatus.FAILED,
            error_message=str(e),
        )
        raise

    _log_attempt(
        session_factory,
        to_email=to,
        subject=subject,
        status=EmailStatus.SENT,
        payload=json.dumps({"messageId": message["Message-ID"]}),
    )
    logger.info("Email sent to %s: %s", to, subject)
    return {"success": True, "message_id": message["Message-ID"]}
