# outreach/clients/content_generator.py
import json
import re
from dataclasses import dataclass
from typing import Optional

import requests
from requests.exceptions import RequestException

from outreach.errors import ContentGenerationError
from outreach.logging_config import get_logger
from outreach.queue.tasks import Channel, ProfileSnapshot, Urgency

logger = get_logger(__name__)

URGENT_STRATEGY = """
- Mental model: a direct job notification. Short and urgent.
- Hook: a project is ready now in their area.
- Value: the contract and budget are already secured.
- Call to action: can they start soon?
"""

STANDARD_STRATEGY = """
- Mental model: an invitation to a preferred vendor list.
- Hook: we are expanding our network in their area for upcoming contracts.
- Value: preferred access to jobs without any sales effort.
- Call to action: open to a brief intro to join the shortlist?
"""


@dataclass
class Draft:
    channel: Channel
    body: str
    subject: Optional[str] = None


def build_prompt(profile: ProfileSnapshot, channel: Channel) -> str:
    """Prompt for a first-touch message, shaped by channel and urgency."""
    urgent = profile.urgency is Urgency.URGENT
    scenario = "Active contract" if urgent else "Building supply"
    location = ", ".join(part for part in (profile.city, profile.state) if part) or "their area"
    specialty = profile.specialty or ", ".join(profile.capabilities) or "facility services"

    if channel is Channel.SMS:
        return f"""
Write an SMS to "{profile.business_name}" (Specialty: {specialty}, Location: {location}).
Context: {scenario}.
{URGENT_STRATEGY if urgent else STANDARD_STRATEGY}
Constraint: max 160 characters.

Return JSON: {{"body": "..."}}
"""

    return f"""
You are a vendor relations manager writing a cold outreach email to
"{profile.business_name}" (Specialty: {specialty}, Location: {location}).
Scenario: {scenario}

Strategy:
{URGENT_STRATEGY if urgent else STANDARD_STRATEGY}
Always mention that we handle sales, admin and on-time payment.

Formatting:
- Max 100 words.
- One sentence per paragraph.
- Professional, opportunity-driven tone.

Return JSON: {{"subject": "...", "body": "..."}}
"""


class ContentGeneratorClient:
    """Drafts outreach copy through an LLM generate endpoint."""

    def __init__(self, url: str, model: str = "mistral", timeout: int = 60):
        if not url:
            raise ValueError("Missing content generator URL")
        self.url = url
        self.model = model
        self.timeout = timeout
        self.session = requests.Session()

    def draft(self, profile: ProfileSnapshot, channel: Channel) -> Draft:
        """
        Generate a draft for ``profile`` on ``channel``.

        Raises:
            ContentGenerationError: Transport failure or an unusable response
        """
        prompt = build_prompt(profile, channel)
        try:
            res = self.session.post(
                self.url,
                json={"model": self.model, "prompt": prompt, "stream": False, "format": "json"},
                timeout=self.timeout,
            )
            res.raise_for_status()
            text = res.json()["response"]
        except (RequestException, KeyError, ValueError) as e:
            raise ContentGenerationError(f"Content generator request failed: {e}") from e

        content = self._parse(text)
        body = (content.get("body") or "").strip()
        if not body:
            raise ContentGenerationError("Content generator returned an empty body")

        subject = content.get("subject") if channel is Channel.EMAIL else None
        if channel is Channel.EMAIL and not subject:
            raise ContentGenerationError("Content generator returned no subject")

        logger.info(
            "Draft generated",
            business_name=profile.business_name,
            channel=channel.value,
            urgency=profile.urgency.value,
        )
        return Draft(channel=channel, subject=subject, body=body)

    @staticmethod
    def _parse(text: str) -> dict:
        # Models sometimes wrap JSON in a fenced block
        cleaned = re.sub(r"```(?:json)?", "", text or "").strip()
        try:
            content = json.loads(cleaned)
        except ValueError as e:
            raise ContentGenerationError(f"Content generator returned invalid JSON: {e}") from e
        if not isinstance(content, dict):
            raise ContentGenerationError("Content generator returned a non-object response")
        return content
