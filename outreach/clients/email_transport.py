# outreach/clients/email_transport.py
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests
from requests.exceptions import RequestException

from outreach.errors import DeliveryError
from outreach.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class DeliveryResult:
    delivered: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None


class ResendEmailTransport:
    """Sends transactional email through the Resend HTTP API."""

    def __init__(self, api_key: str, sender: str, api_url: str = "https://api.resend.com/emails",
                 reply_to: Optional[str] = None, timeout: int = 30):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.reply_to = reply_to
        self.timeout = timeout
        self.session = requests.Session()

    def send(self, to: str, subject: str, html: str, idempotency_key: Optional[str] = None,
             tags: Optional[Dict[str, str]] = None, attachments: Optional[List[dict]] = None) -> DeliveryResult:
        """
        Send one email.

        Returns:
            DeliveryResult: delivered=False when the provider rejected the message

        Raises:
            DeliveryError: Transport not configured or the request could not be made
        """
        if not self.api_key:
            raise DeliveryError("RESEND_API_KEY is not configured")

        message = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if self.reply_to:
            message["reply_to"] = self.reply_to
        if tags:
            message["tags"] = [{"name": name, "value": str(value)} for name, value in tags.items()]
        if attachments:
            message["attachments"] = attachments

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            r = self.session.post(self.api_url, json=message, headers=headers, timeout=self.timeout)
        except RequestException as e:
            raise DeliveryError(f"Email request failed: {e}") from e

        if r.status_code >= 400:
            logger.warning(
                "Email rejected by provider",
                status_code=r.status_code,
                idempotency_key=idempotency_key,
                response=r.text[:500],
            )
            return DeliveryResult(delivered=False, error=f"{r.status_code}: {r.text[:500]}")

        provider_id = (r.json() or {}).get("id") if r.text else None
        logger.info("Email delivered", provider_id=provider_id, idempotency_key=idempotency_key)
        return DeliveryResult(delivered=True, provider_id=provider_id)
