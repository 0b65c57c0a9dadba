"""
Transactional email over SMTP.

Usage:
    from dogshift.services.email_service import send_email

    send_email(
        to="owner@example.com",
        subject="Payment received – DogShift",
        text="Hello ...",
        html=render_template("emails/notification.html", **context),
    )

Sending is synchronous: the notification dispatcher only writes its
idempotency ledger row once the message has actually gone out, so it needs
to know whether delivery failed.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The SMTP server rejected the message or couldn't be reached."""


def _send_smtp(app, msg):
    """Deliver a built message. Raises EmailDeliveryError on failure."""
    host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = app.config.get("MAIL_SMTP_PORT", 587)
    username = app.config.get("MAIL_USERNAME")
    password = app.config.get("MAIL_PASSWORD")

    try:
        with smtplib.SMTP(host, port, timeout=30) as server:
            server.ehlo()
            server.starttls()
            server.ehlo()
            server.login(username, password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {msg['To']}: {e}")
        raise EmailDeliveryError(str(e)) from e

    logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")


def send_email(to, subject, text, html=None):
    """
    Send a plain-text email with an optional HTML alternative.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        text:      Plain-text body.
        html:      Optional HTML body.

    Returns "smtp" when delivered, "log" when sending is suppressed or SMTP
    isn't configured (the message is only logged).
    Raises EmailDeliveryError when SMTP delivery fails.
    """
    app = current_app._get_current_object()

    from_name = app.config.get("MAIL_FROM_NAME", "DogShift")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME", "")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)

    # Plain text first: clients render the last alternative they support.
    msg.attach(MIMEText(text, "plain"))
    if html:
        msg.attach(MIMEText(html, "html"))

    if app.config.get("MAIL_SUPPRESS_SEND"):
        logger.info(f"[mail suppressed] to={msg['To']} subject={subject}")
        return "log"

    if not app.config.get("MAIL_USERNAME") or not app.config.get("MAIL_PASSWORD"):
        logger.warning(
            f"Email not sent — MAIL_USERNAME or MAIL_PASSWORD not configured "
            f"(to={msg['To']} subject={subject})"
        )
        return "log"

    _send_smtp(app, msg)
    return "smtp"
