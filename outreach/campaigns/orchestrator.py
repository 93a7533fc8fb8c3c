# outreach/campaigns/orchestrator.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from outreach.campaigns.drip import build_follow_up_cohort
from outreach.campaigns.profile_gate import missing_profile_fields
from outreach.datetime_utils import get_business_timezone, utcnow
from outreach.errors import EnrichmentError
from outreach.logging_config import get_logger
from outreach.models import OutreachStatus, RUNNABLE_TASK_STATUSES, TaskType
from outreach.queue.store import TaskStore
from outreach.queue.tasks import GeneratePayload, NewTask, ProfileSnapshot, QueueTask
from outreach.services.audit_log import ActivityType, AuditLogService
from outreach.vendors.events import VendorStatusChanged
from outreach.vendors.store import VendorStore

logger = get_logger(__name__)

CAMPAIGN_TASK_TYPES = (TaskType.GENERATE, TaskType.SEND)


@dataclass
class CampaignSettings:
    eligible_status: str = "qualified"
    drip_status: str = "awaiting_onboarding"
    past_outreach_statuses: Tuple[str, ...] = (
        "compliance_review",
        "pending_verification",
        "onboarding_scheduled",
        "ready_for_assignment",
        "active",
        "suspended",
        "dismissed",
    )
    follow_up_day_offsets: Tuple[int, ...] = (3, 7, 14, 21)
    follow_up_send_hour: int = 10
    timezone: str = "America/New_York"
    onboarding_url_template: str = "https://example.com/contractor?vid={vendor_id}"
    unsubscribe_url_template: str = "https://example.com/api/unsubscribe?vendorId={vendor_id}"
    tz: object = field(init=False, repr=False)

    def __post_init__(self):
        self.tz = get_business_timezone(self.timezone)

    @classmethod
    def from_config(cls, cfg) -> "CampaignSettings":
        get = cfg.get if hasattr(cfg, "get") else lambda key, default=None: getattr(cfg, key, default)
        defaults = cls()
        return cls(
            eligible_status=get("OUTREACH_ELIGIBLE_STATUS", defaults.eligible_status),
            drip_status=get("DRIP_STATUS", defaults.drip_status),
            past_outreach_statuses=tuple(get("PAST_OUTREACH_STATUSES", defaults.past_outreach_statuses)),
            follow_up_day_offsets=tuple(get("FOLLOW_UP_DAY_OFFSETS", defaults.follow_up_day_offsets)),
            follow_up_send_hour=int(get("FOLLOW_UP_SEND_HOUR", defaults.follow_up_send_hour)),
            timezone=get("BUSINESS_TIMEZONE", defaults.timezone),
            onboarding_url_template=get("ONBOARDING_URL_TEMPLATE", defaults.onboarding_url_template),
            unsubscribe_url_template=get("UNSUBSCRIBE_URL_TEMPLATE", defaults.unsubscribe_url_template),
        )

    def onboarding_url(self, vendor_id: str) -> str:
        return self.onboarding_url_template.format(vendor_id=vendor_id)

    def unsubscribe_url(self, vendor_id: str) -> str:
        return self.unsubscribe_url_template.format(vendor_id=vendor_id)


class CampaignOrchestrator:
    """
    Reacts to vendor lifecycle transitions.

    - Entering the eligible status starts a campaign (GENERATE task), after
      the profile gate and, when needed, website enrichment.
    - Entering the drip status schedules the follow-up cohort.
    - Entering any past-outreach status cancels outstanding tasks.
    """

    def __init__(self, task_store: TaskStore, vendor_store: VendorStore, audit_log: AuditLogService,
                 enricher, settings: Optional[CampaignSettings] = None, clock=utcnow):
        self.task_store = task_store
        self.vendor_store = vendor_store
        self.audit_log = audit_log
        self.enricher = enricher
        self.settings = settings or CampaignSettings()
        self.clock = clock

    def handle_status_change(self, event: VendorStatusChanged) -> None:
        if event.after == self.settings.eligible_status:
            self.start_campaign(event.vendor_id)
        elif event.after == self.settings.drip_status:
            self.schedule_drip(event.vendor_id, event.occurred_at)
        elif event.after in self.settings.past_outreach_statuses:
            self.cancel_campaign(event.vendor_id, event.after)

    def start_campaign(self, vendor_id: str) -> Optional[int]:
        """
        Enqueue the GENERATE task for a newly eligible vendor.

        Returns:
            The GENERATE task id, or None if the vendor is not ready for outreach
            or already has a GENERATE or SEND task outstanding
        """
        vendor = self.vendor_store.get(vendor_id)
        if vendor is None:
            logger.warning("Vendor not found, campaign not started", vendor_id=vendor_id)
            return None

        if self.task_store.has_outstanding(vendor_id, CAMPAIGN_TASK_TYPES):
            logger.info("Campaign already in progress", vendor_id=vendor_id)
            return None

        if not vendor.email:
            if not vendor.website:
                self._needs_contact(vendor_id, "No email address or website on file")
                return None
            if not self._enrich(vendor):
                return None
            vendor = self.vendor_store.get(vendor_id)

        missing = missing_profile_fields(vendor)
        if missing:
            self.vendor_store.update(vendor_id, {
                "outreach_status": OutreachStatus.PROFILE_INCOMPLETE,
                "missing_profile_fields": missing,
            })
            self.audit_log.append(
                vendor_id,
                ActivityType.PROFILE_INCOMPLETE,
                f"Outreach held: missing {', '.join(missing)}",
                {"missing_fields": missing},
            )
            logger.info("Profile incomplete, campaign held", vendor_id=vendor_id, missing_fields=missing)
            return None

        now = self.clock()
        self.vendor_store.update(vendor_id, {
            "outreach_status": OutreachStatus.PENDING,
            "missing_profile_fields": [],
        })
        task_id = self.task_store.enqueue(
            NewTask(
                subject_id=vendor_id,
                type=TaskType.GENERATE,
                scheduled_at=now,
                payload=GeneratePayload(profile=ProfileSnapshot.from_vendor(vendor)),
            ),
            now=now,
        )
        logger.info("Campaign started", vendor_id=vendor_id, task_id=task_id)
        return task_id

    def _enrich(self, vendor) -> bool:
        """Look for an email on the vendor's website. True if one was found and saved."""
        self.vendor_store.update(vendor.id, {"outreach_status": OutreachStatus.ENRICHING})
        self.audit_log.append(
            vendor.id,
            ActivityType.ENRICHMENT_STARTED,
            f"Searching {vendor.website} for contact details",
            {"website": vendor.website},
        )

        try:
            result = self.enricher.scrape(vendor.website)
        except EnrichmentError as e:
            logger.warning("Website enrichment failed", vendor_id=vendor.id, error=str(e))
            self._needs_contact(vendor.id, f"Website enrichment failed: {e}")
            return False

        if not result.email:
            self._needs_contact(vendor.id, "No email address found on website")
            return False

        updates = {"email": result.email}
        if result.phone and not vendor.phone:
            updates["phone"] = result.phone
        self.vendor_store.update(vendor.id, updates)
        self.audit_log.append(
            vendor.id,
            ActivityType.ENRICHMENT_COMPLETED,
            f"Found contact email {result.email}",
            {"email": result.email, "phone": result.phone, "confidence": result.confidence},
        )
        return True

    def _needs_contact(self, vendor_id: str, reason: str) -> None:
        self.vendor_store.update(vendor_id, {"outreach_status": OutreachStatus.NEEDS_CONTACT})
        self.audit_log.append(vendor_id, ActivityType.OUTREACH_NEEDS_CONTACT, reason)
        logger.info("Vendor needs contact details", vendor_id=vendor_id, reason=reason)

    def schedule_drip(self, vendor_id: str, sent_at: Optional[datetime] = None) -> List[int]:
        """Enqueue the follow-up cohort for a vendor awaiting onboarding."""
        vendor = self.vendor_store.get(vendor_id)
        if vendor is None:
            logger.warning("Vendor not found, drip not scheduled", vendor_id=vendor_id)
            return []

        existing = [
            task for task in self.task_store.list_tasks(subject_id=vendor_id)
            if task.type is TaskType.FOLLOW_UP and task.status in RUNNABLE_TASK_STATUSES
        ]
        if existing:
            logger.info("Drip already scheduled", vendor_id=vendor_id, pending_follow_ups=len(existing))
            return []

        sent_at = sent_at or self.clock()
        cohort = build_follow_up_cohort(
            vendor,
            sent_at,
            self.settings.follow_up_day_offsets,
            self.settings.follow_up_send_hour,
            self.settings.tz,
        )
        task_ids = self.task_store.enqueue_many(cohort, now=self.clock())
        self.audit_log.append(
            vendor_id,
            ActivityType.DRIP_SCHEDULED,
            f"Scheduled {len(cohort)} follow-ups",
            {
                "task_ids": task_ids,
                "scheduled_at": [task.scheduled_at.isoformat() for task in cohort],
            },
        )
        logger.info("Drip scheduled", vendor_id=vendor_id, follow_ups=len(cohort))
        return task_ids

    def cancel_campaign(self, vendor_id: str, new_status: str) -> int:
        """Cancel every outstanding task for a vendor that has moved past outreach."""
        cancelled = self.task_store.cancel_by_subject(vendor_id, now=self.clock())
        logger.info("Campaign cancelled", vendor_id=vendor_id, status=new_status, cancelled_count=cancelled)
        if cancelled:
            self.audit_log.append(
                vendor_id,
                ActivityType.TASKS_CANCELLED,
                f"Cancelled {cancelled} pending outreach tasks ({new_status})",
                {"cancelled_count": cancelled, "status": new_status},
            )
        return cancelled

    def handle_task_failure(self, task: QueueTask, error: str) -> None:
        """Escalate a task that exhausted its retries."""
        vendor = self.vendor_store.get(task.subject_id)
        if vendor is None:
            logger.warning("Vendor not found for failed task", vendor_id=task.subject_id, task_id=task.id)
            return

        self.vendor_store.update(task.subject_id, {"outreach_status": OutreachStatus.FAILED})
        self.audit_log.append(
            task.subject_id,
            ActivityType.OUTREACH_FAILED,
            f"Outreach failed after {task.retry_count} attempts: {error[:200]}",
            {"error": error[:500], "retry_count": task.retry_count, "task_type": task.type.value, "task_id": task.id},
        )
        logger.error(
            "Outreach failed permanently",
            vendor_id=task.subject_id,
            task_id=task.id,
            task_type=task.type.value,
            retry_count=task.retry_count,
        )
