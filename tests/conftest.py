"""
Shared fixtures: an app on in-memory SQLite with fake collaborators and a
frozen clock.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from outreach import create_app, get_context
from outreach.clients import DeliveryResult, Draft, EnrichmentResult
from outreach.models import db
from outreach.queue.tasks import Channel

# Tuesday 2025-03-04 10:00 America/New_York (EST, UTC-5)
TUESDAY_10AM_UTC = datetime(2025, 3, 4, 15, 0)


class FrozenClock:
    """Naive-UTC clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now):
        self.now = now
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(TUESDAY_10AM_UTC)


@pytest.fixture
def collaborators():
    """Mocks standing in for the LLM, the email provider and the website scraper."""
    content_generator = Mock()
    content_generator.draft.side_effect = lambda profile, channel: Draft(
        channel=channel,
        subject="Join our vendor network" if channel is Channel.EMAIL else None,
        body=f"Hi {profile.business_name}, we have work for you.",
    )

    transport = Mock()
    transport.send.return_value = DeliveryResult(delivered=True, provider_id="re_123")

    enricher = Mock()
    enricher.scrape.return_value = EnrichmentResult()

    return SimpleNamespace(content_generator=content_generator, transport=transport, enricher=enricher)


@pytest.fixture
def app(clock, collaborators):
    """Create Flask application for testing."""
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SCHEDULER_ENABLED": False,
            "BUSINESS_TIMEZONE": "America/New_York",
            "WORKER_ID": "test-worker",
        },
        content_generator=collaborators.content_generator,
        transport=collaborators.transport,
        enricher=collaborators.enricher,
        clock=clock,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def ctx(app):
    return get_context(app)


@pytest.fixture
def make_vendor(ctx):
    """Factory for vendors with a complete profile unless overridden."""

    def _make(vendor_id="v1", **fields):
        values = {
            "status": "pending_review",
            "business_name": "Acme Cleaning",
            "capabilities": ["janitorial"],
            "contact_name": "Dana",
            "email": "dana@acmecleaning.com",
            "phone": None,
            "website": None,
            "city": "Newark",
            "state": "NJ",
            "preferred_language": "en",
            "has_active_contract": False,
        }
        values.update(fields)
        return ctx.vendor_store.create(vendor_id, **values)

    return _make
