# outreach/handlers/generate.py
from datetime import datetime

from outreach.logging_config import get_logger
from outreach.models import TaskType
from outreach.queue.results import Completed
from outreach.queue.tasks import Channel, NewTask, QueueTask, SendPayload
from outreach.scheduling import BusinessHoursConfig, next_slot_utc
from outreach.services.audit_log import ActivityType, AuditLogService

logger = get_logger(__name__)


class GenerateHandler:
    """Drafts first-touch copy and schedules the SEND for the next valid slot."""

    def __init__(self, content_generator, audit_log: AuditLogService, business_hours: BusinessHoursConfig, tz):
        self.content_generator = content_generator
        self.audit_log = audit_log
        self.business_hours = business_hours
        self.tz = tz

    def handle(self, task: QueueTask, now: datetime) -> Completed:
        payload = task.payload
        profile = payload.profile
        channel = Channel.EMAIL if profile.email else Channel.SMS

        # ContentGenerationError propagates to the retry path
        draft = self.content_generator.draft(profile, channel)

        self.audit_log.append(
            task.subject_id,
            ActivityType.OUTREACH_QUEUED,
            f"Outreach {draft.channel.value.lower()} draft generated (sequence {payload.sequence})",
            {
                "channel": draft.channel.value,
                "subject": draft.subject,
                "body": draft.body,
                "sequence": payload.sequence,
                "urgency": profile.urgency.value,
            },
        )

        send_at = next_slot_utc(profile.urgency, now, self.tz, self.business_hours)
        logger.info(
            "Send scheduled",
            task_id=task.id,
            vendor_id=task.subject_id,
            channel=draft.channel.value,
            urgency=profile.urgency.value,
            send_at=send_at.isoformat(),
        )
        return Completed(follow_on=[
            NewTask(
                subject_id=task.subject_id,
                type=TaskType.SEND,
                scheduled_at=send_at,
                payload=SendPayload(
                    channel=draft.channel,
                    subject=draft.subject,
                    body=draft.body,
                    sequence=payload.sequence,
                ),
            )
        ])
