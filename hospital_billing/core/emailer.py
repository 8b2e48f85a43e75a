# FILE: hospital_billing/core/emailer.py
from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import List, Optional, Tuple

from hospital_billing.core.config import settings

logger = logging.getLogger(__name__)

# (filename, bytes_content, mime_type)
Attachment = Tuple[str, bytes, str]


def _get_from_email() -> str:
    """
    Decide FROM email:
    - Prefer settings.SMTP_FROM
    - Fallback to settings.SMTP_USER
    """
    from_email = settings.SMTP_FROM or settings.SMTP_USER
    if not from_email:
        raise RuntimeError(
            "No FROM email configured. Set SMTP_FROM or SMTP_USER in settings."
        )
    return from_email


def build_message(
    to_email: str,
    subject: str,
    body: str,
    *,
    html: Optional[str] = None,
    attachments: Optional[List[Attachment]] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = _get_from_email()
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    if attachments:
        for filename, content, mime_type in attachments:
            maintype, _, subtype = (mime_type or
                                    "application/octet-stream").partition("/")
            if not maintype or not subtype:
                maintype = "application"
                subtype = "octet-stream"
            msg.add_attachment(
                content,
                maintype=maintype,
                subtype=subtype,
                filename=filename,
            )

    return msg


def send_email(
    to_email: str,
    subject: str,
    body: str,
    *,
    html: Optional[str] = None,
    attachments: Optional[List[Attachment]] = None,
) -> None:
    if not to_email:
        raise ValueError("send_email: recipient is required")

    host = settings.SMTP_HOST
    port = int(settings.SMTP_PORT or 587)
    user = settings.SMTP_USER
    password = settings.SMTP_PASSWORD

    if not host:
        raise RuntimeError("SMTP_HOST is not configured")

    msg = build_message(to_email, subject, body, html=html, attachments=attachments)

    if settings.SMTP_TLS:
        context = ssl.create_default_context()
        with smtplib.SMTP(host, port) as server:
            server.starttls(context=context)
            if user and password:
                server.login(user, password)
            server.send_message(msg)
    else:
        with smtplib.SMTP(host, port) as server:
            if user and password:
                server.login(user, password)
            server.send_message(msg)

    logger.info("Email sent to %s (%s)", to_email, subject)
