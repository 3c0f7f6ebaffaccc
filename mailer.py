import logging
import os
from typing import Optional

import resend

logger = logging.getLogger(__name__)

RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
MAIL_FROM = os.getenv("MAIL_FROM", "Valora Gold <no-reply@valoragold.com>")


def send_mail(to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
    """Send a transactional email. Returns False instead of raising on failure."""
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not configured, email to %s not sent", to)
        return False

    resend.api_key = RESEND_API_KEY
    payload = {
        "from": MAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if text:
        payload["text"] = text

    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        logger.error("Email send to %s failed: %s", to, exc)
        return False

    if not isinstance(response, dict) or not response.get("id"):
        logger.error("Unexpected response sending email to %s: %r", to, response)
        return False
    return True
