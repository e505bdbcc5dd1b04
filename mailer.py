import logging
from html import escape
from typing import Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)


class Mailer:
    """
    Fire-and-forget transactional email through the Resend HTTP API.

    ``send`` never raises: any failure is logged and handed back as
    ``{"error": ...}`` so callers can report it without retrying.
    """

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 sender: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self.api_url = api_url or settings.RESEND_API_URL
        self.sender = sender or settings.EMAIL_FROM
        self.transport = transport

    async def send(self, to: str, subject: str, html: str) -> dict:
        if not self.api_key:
            logger.info("Email to %s skipped: RESEND_API_KEY is not set", to)
            return {"error": "Email delivery is not configured"}

        payload = {"from": self.sender, "to": to, "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=10.0) as client:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Email provider rejected message to %s: %s", to, e.response.text[:200])
            return {"error": f"Email provider returned {e.response.status_code}"}
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return {"error": str(e)[:200] or e.__class__.__name__}

        logger.info("Email sent to %s", to)
        return data

    async def send_chat_notification(self, to: str, message: str, chat_id: str) -> dict:
        subject = "New message on Campus Rides"
        html = (
            "<p>You have a new message:</p>"
            f"<blockquote>{escape(message)}</blockquote>"
            f"<p>Open the conversation: /chat/{chat_id}</p>"
        )
        return await self.send(to, subject, html)


def get_mailer() -> Mailer:
    return Mailer()
