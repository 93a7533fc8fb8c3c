# outreach/clients/website_enricher.py
import json
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from requests.exceptions import RequestException

from outreach.errors import EnrichmentError
from outreach.logging_config import get_logger

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; VendorOutreachBot/1.0)"

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(\+1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
GENERIC_MAILBOX_RE = re.compile(r"^(info|admin|noreply|no-reply|support|hello|contact|webmaster)@", re.I)
PLACEHOLDER_DOMAINS = ("example.com", "domain.com", "sentry.io")
CONTACT_KEYWORDS = ("contact", "about", "location", "reach-us", "get-in-touch")


@dataclass
class EnrichmentResult:
    email: Optional[str] = None
    phone: Optional[str] = None
    confidence: str = "low"     # high: structured data, medium: contact page, low: page text


def clean_email(email: Optional[str]) -> Optional[str]:
    """Lowercased address, or None for malformed, placeholder or generic mailboxes."""
    if not email:
        return None
    email = email.strip().split("?")[0]
    if not EMAIL_RE.fullmatch(email):
        return None
    if GENERIC_MAILBOX_RE.match(email) or any(domain in email.lower() for domain in PLACEHOLDER_DOMAINS):
        return None
    return email.lower()


def format_phone(phone: Optional[str]) -> Optional[str]:
    """US numbers as (xxx) xxx-xxxx, anything else None."""
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 11 and digits[0] == "1":
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


def _structured_contacts(soup: BeautifulSoup):
    email = phone = None
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "{}")
        except ValueError:
            continue
        if isinstance(data, dict) and data.get("@type") in ("Organization", "LocalBusiness"):
            email = email or clean_email(data.get("email"))
            phone = phone or format_phone(data.get("telephone"))
    return email, phone


def _pattern_contacts(soup: BeautifulSoup):
    email = None
    for link in soup.select('a[href^="mailto:"]'):
        email = clean_email(link["href"][len("mailto:"):])
        if email:
            break
    if not email:
        for candidate in EMAIL_RE.findall(soup.get_text(" ")):
            email = clean_email(candidate)
            if email:
                break

    phone = None
    for link in soup.select('a[href^="tel:"]'):
        phone = format_phone(link["href"][len("tel:"):])
        if phone:
            break
    if not phone:
        match = PHONE_RE.search(soup.get_text(" "))
        phone = format_phone(match.group(0)) if match else None
    return email, phone


def _contact_page_url(soup: BeautifulSoup, base_url: str) -> Optional[str]:
    for link in soup.find_all("a", href=True):
        href = link["href"].lower()
        text = link.get_text(" ").lower()
        if any(keyword in href or keyword in text for keyword in CONTACT_KEYWORDS):
            return urljoin(base_url, link["href"])
    return None


class WebsiteEnricher:
    """Recovers contact details from a vendor's public website."""

    def __init__(self, timeout: int = 10):
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def _fetch(self, url: str) -> str:
        r = self.session.get(url, timeout=self.timeout)
        r.raise_for_status()
        return r.text

    def scrape(self, url: str) -> EnrichmentResult:
        """
        Fetch ``url`` (and its contact page when needed) and extract an email and phone.

        Raises:
            EnrichmentError: The home page could not be fetched
        """
        if not url.startswith("http"):
            url = "https://" + url

        try:
            html = self._fetch(url)
        except RequestException as e:
            raise EnrichmentError(f"Failed to fetch {url}: {e}") from e

        soup = BeautifulSoup(html, "html.parser")

        email, phone = _structured_contacts(soup)
        if email or phone:
            confidence = "high"
        else:
            confidence = "low"

        if not email or not phone:
            found_email, found_phone = _pattern_contacts(soup)
            email = email or found_email
            phone = phone or found_phone

        if not email:
            contact_url = _contact_page_url(soup, url)
            if contact_url and contact_url.rstrip("/") != url.rstrip("/"):
                try:
                    contact_soup = BeautifulSoup(self._fetch(contact_url), "html.parser")
                except RequestException as e:
                    logger.warning("Contact page fetch failed", url=contact_url, error=str(e))
                else:
                    contact_email, contact_phone = _pattern_contacts(contact_soup)
                    if contact_email:
                        confidence = "medium" if confidence == "low" else confidence
                    email = email or contact_email
                    phone = phone or contact_phone

        logger.info("Website scraped", url=url, found_email=bool(email), found_phone=bool(phone),
                    confidence=confidence)
        return EnrichmentResult(email=email, phone=phone, confidence=confidence)
