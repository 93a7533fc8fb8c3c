"""
Tests for the GENERATE, SEND and FOLLOW_UP handlers.
"""
import pytest
from datetime import datetime

from outreach.clients import DeliveryResult
from outreach.errors import ContentGenerationError, DeliveryError
from outreach.models import OutreachStatus, TaskType, VendorActivity, db
from outreach.queue.results import Completed, Skipped, SmsDeferred
from outreach.queue.tasks import (
    Channel,
    FollowUpPayload,
    GeneratePayload,
    NewTask,
    ProfileSnapshot,
    SendPayload,
)


def activity_types(vendor_id):
    rows = db.session.query(VendorActivity).filter_by(vendor_id=vendor_id).order_by(VendorActivity.id).all()
    return [row.activity_type for row in rows]


@pytest.fixture
def queued(ctx, clock):
    """Enqueue a task and return it as the dispatcher would see it."""

    def _queued(task_type, payload, subject_id="v1"):
        task_id = ctx.task_store.enqueue(NewTask(subject_id, task_type, clock.now, payload))
        return ctx.task_store.get(task_id)

    return _queued


@pytest.fixture
def generate(ctx):
    return ctx.dispatcher.handlers[TaskType.GENERATE]


@pytest.fixture
def send(ctx):
    return ctx.dispatcher.handlers[TaskType.SEND]


@pytest.fixture
def follow_up(ctx):
    return ctx.dispatcher.handlers[TaskType.FOLLOW_UP]


# ==============================================================================
# GENERATE
# ==============================================================================

class TestGenerateHandler:

    def test_standard_vendor_send_goes_to_next_business_day(self, generate, queued, make_vendor, clock):
        vendor = make_vendor()
        task = queued(TaskType.GENERATE, GeneratePayload(profile=ProfileSnapshot.from_vendor(vendor)))

        outcome = generate.handle(task, clock.now)

        assert isinstance(outcome, Completed)
        [send_task] = outcome.follow_on
        assert send_task.type is TaskType.SEND
        # Wednesday 10:00 EST
        assert send_task.scheduled_at == datetime(2025, 3, 5, 15, 0)
        assert send_task.payload.channel is Channel.EMAIL
        assert send_task.payload.subject == "Join our vendor network"
        assert "Acme Cleaning" in send_task.payload.body

    def test_urgent_vendor_send_goes_out_shortly(self, generate, queued, make_vendor, clock):
        vendor = make_vendor(has_active_contract=True)
        task = queued(TaskType.GENERATE, GeneratePayload(profile=ProfileSnapshot.from_vendor(vendor)))

        outcome = generate.handle(task, clock.now)

        assert outcome.follow_on[0].scheduled_at == datetime(2025, 3, 4, 15, 10)

    def test_draft_is_logged(self, generate, queued, make_vendor, clock):
        vendor = make_vendor()
        task = queued(TaskType.GENERATE, GeneratePayload(profile=ProfileSnapshot.from_vendor(vendor)))

        generate.handle(task, clock.now)

        entry = db.session.query(VendorActivity).filter_by(vendor_id="v1", activity_type="OUTREACH_QUEUED").one()
        assert entry.details["subject"] == "Join our vendor network"
        assert entry.details["urgency"] == "STANDARD"

    def test_phone_only_profile_drafts_sms(self, generate, queued, collaborators, clock):
        profile = ProfileSnapshot(business_name="Acme", capabilities=["hvac"], phone="555-0100")
        task = queued(TaskType.GENERATE, GeneratePayload(profile=profile))

        outcome = generate.handle(task, clock.now)

        assert collaborators.content_generator.draft.call_args.args[1] is Channel.SMS
        assert outcome.follow_on[0].payload.channel is Channel.SMS
        assert outcome.follow_on[0].payload.subject is None

    def test_generator_failure_propagates(self, generate, queued, make_vendor, collaborators, clock):
        collaborators.content_generator.draft.side_effect = ContentGenerationError("model offline")
        vendor = make_vendor()
        task = queued(TaskType.GENERATE, GeneratePayload(profile=ProfileSnapshot.from_vendor(vendor)))

        with pytest.raises(ContentGenerationError):
            generate.handle(task, clock.now)
        assert "OUTREACH_QUEUED" not in activity_types("v1")


# ==============================================================================
# SEND
# ==============================================================================

def send_payload():
    return SendPayload(channel=Channel.EMAIL, subject="Join our vendor network", body="We have work for you.")


class TestSendHandler:

    def test_email_sent_and_vendor_advanced(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="qualified")
        task = queued(TaskType.SEND, send_payload())

        outcome = send.handle(task, clock.now)

        assert isinstance(outcome, Completed)
        kwargs = collaborators.transport.send.call_args.kwargs
        assert kwargs["to"] == "dana@acmecleaning.com"
        assert kwargs["subject"] == "Join our vendor network"
        assert kwargs["idempotency_key"] == f"send-{task.id}"
        assert "We have work for you." in kwargs["html"]
        assert "unsubscribe?vendorId=v1" in kwargs["html"]

        vendor = ctx.vendor_store.get("v1")
        assert vendor.status == "awaiting_onboarding"
        assert vendor.outreach_status is OutreachStatus.SENT
        assert vendor.outreach_channel == "EMAIL"
        assert vendor.outreach_sent_at == clock.now
        assert "OUTREACH_SENT" in activity_types("v1")

    def test_delivery_starts_the_drip(self, ctx, send, queued, make_vendor, clock):
        make_vendor(status="qualified")

        send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        follow_ups = [t for t in ctx.task_store.list_tasks(subject_id="v1") if t.type is TaskType.FOLLOW_UP]
        assert [t.payload.sequence for t in follow_ups] == [1, 2, 3, 4]

    def test_uses_current_contact_details(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="qualified")
        task = queued(TaskType.SEND, send_payload())
        ctx.vendor_store.update("v1", {"email": "owner@acmecleaning.com"})

        send.handle(task, clock.now)

        assert collaborators.transport.send.call_args.kwargs["to"] == "owner@acmecleaning.com"

    def test_rejected_email_raises_and_leaves_vendor(self, ctx, send, queued, make_vendor, collaborators, clock):
        collaborators.transport.send.return_value = DeliveryResult(delivered=False, error="422: invalid")
        make_vendor(status="qualified", outreach_status=OutreachStatus.PENDING)

        with pytest.raises(DeliveryError):
            send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        vendor = ctx.vendor_store.get("v1")
        assert vendor.status == "qualified"
        assert vendor.outreach_status is OutreachStatus.PENDING

    def test_phone_only_vendor_is_deferred(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="qualified", email=None, phone="555-0100")

        outcome = send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        assert isinstance(outcome, SmsDeferred)
        collaborators.transport.send.assert_not_called()
        assert ctx.vendor_store.get("v1").status == "qualified"
        assert "OUTREACH_SMS_DEFERRED" in activity_types("v1")

    def test_no_contact_channel(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="qualified", email=None, phone=None)

        outcome = send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()
        assert ctx.vendor_store.get("v1").outreach_status is OutreachStatus.NEEDS_CONTACT

    def test_vendor_past_outreach_is_not_emailed(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="compliance_review")

        outcome = send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()
        vendor = ctx.vendor_store.get("v1")
        assert vendor.status == "compliance_review"
        assert vendor.outreach_status is None

    def test_outreach_already_sent_is_not_repeated(self, ctx, send, queued, make_vendor, collaborators, clock):
        make_vendor(status="qualified", outreach_status=OutreachStatus.SENT)

        outcome = send.handle(queued(TaskType.SEND, send_payload()), clock.now)

        assert outcome == Skipped("outreach already sent")
        collaborators.transport.send.assert_not_called()
        assert ctx.vendor_store.get("v1").status == "qualified"


# ==============================================================================
# FOLLOW_UP
# ==============================================================================

class TestFollowUpHandler:

    def test_sends_copy_for_sequence(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding")
        task = queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1))

        outcome = follow_up.handle(task, clock.now)

        assert isinstance(outcome, Completed)
        kwargs = collaborators.transport.send.call_args.kwargs
        assert kwargs["subject"] == "Quick follow-up, Acme Cleaning"
        assert kwargs["idempotency_key"] == f"follow_up-{task.id}"
        assert "contractor?vid=v1" in kwargs["html"]
        assert "FOLLOW_UP_SENT" in activity_types("v1")

    def test_spanish_copy(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding", preferred_language="es")

        follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1)), clock.now)

        assert collaborators.transport.send.call_args.kwargs["subject"] == "Seguimiento rápido, Acme Cleaning"

    def test_unknown_language_falls_back_to_english(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding", preferred_language="fr")

        follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=4)), clock.now)

        assert collaborators.transport.send.call_args.kwargs["subject"] == "Closing the loop"

    def test_warm_variant_after_open(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding", email_engagement="opened")

        follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1)), clock.now)

        assert collaborators.transport.send.call_args.kwargs["subject"] == "Thanks for taking a look, Acme Cleaning"

    def test_vendor_moved_on(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="compliance_review")

        outcome = follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=2)), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()

    def test_missing_vendor(self, follow_up, queued, collaborators, clock):
        outcome = follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1), subject_id="gone"), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()

    def test_no_email(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding", email=None)

        outcome = follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1)), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()

    def test_bounced_email_needs_manual_outreach(self, ctx, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding", email_engagement="bounced")

        outcome = follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=2)), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()
        assert ctx.vendor_store.get("v1").outreach_status is OutreachStatus.NEEDS_MANUAL
        assert "NEEDS_MANUAL_OUTREACH" in activity_types("v1")

    def test_sequence_past_copy_is_skipped(self, follow_up, queued, make_vendor, collaborators, clock):
        make_vendor(status="awaiting_onboarding")

        outcome = follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=5)), clock.now)

        assert isinstance(outcome, Skipped)
        collaborators.transport.send.assert_not_called()

    def test_rejected_follow_up_raises(self, follow_up, queued, make_vendor, collaborators, clock):
        collaborators.transport.send.return_value = DeliveryResult(delivered=False, error="500")
        make_vendor(status="awaiting_onboarding")

        with pytest.raises(DeliveryError):
            follow_up.handle(queued(TaskType.FOLLOW_UP, FollowUpPayload(sequence=1)), clock.now)
