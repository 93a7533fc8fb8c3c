# outreach/context.py
"""
Wires the outreach services together from application config.

Everything that talks to the outside world (content generator, email
transport, website enricher, clock) can be swapped for a test double.
"""
from dataclasses import dataclass
from typing import Optional

from outreach.campaigns.orchestrator import CampaignOrchestrator, CampaignSettings
from outreach.clients import ContentGeneratorClient, ResendEmailTransport, WebsiteEnricher
from outreach.datetime_utils import utcnow
from outreach.handlers import FollowUpHandler, GenerateHandler, SendHandler
from outreach.models import TaskType
from outreach.queue.dispatcher import Dispatcher, DispatcherSettings
from outreach.queue.store import TaskStore
from outreach.scheduling import BusinessHoursConfig
from outreach.services.audit_log import AuditLogService
from outreach.tick_lock import TickLockManager
from outreach.vendors.service import VendorLifecycleService
from outreach.vendors.store import VendorStore


@dataclass
class OutreachContext:
    task_store: TaskStore
    vendor_store: VendorStore
    audit_log: AuditLogService
    lifecycle: VendorLifecycleService
    orchestrator: CampaignOrchestrator
    dispatcher: Dispatcher
    tick_lock: TickLockManager


def build_context(config, session=None, content_generator=None, transport=None, enricher=None,
                  clock=utcnow, context_factory=None, tick_lock: Optional[TickLockManager] = None) -> OutreachContext:
    """
    Build the service graph.

    Args:
        config: Flask config mapping or Config class
        session: SQLAlchemy session, defaults to db.session
        content_generator, transport, enricher: Collaborator overrides
        clock: Callable returning naive UTC now
        context_factory: Context each handler runs in (e.g. app.app_context)
        tick_lock: Shared tick lock, one per process by default
    """
    get = config.get if hasattr(config, "get") else lambda key, default=None: getattr(config, key, default)

    campaign_settings = CampaignSettings.from_config(config)
    business_hours = BusinessHoursConfig.from_config(config)

    if content_generator is None:
        content_generator = ContentGeneratorClient(
            get("CONTENT_GENERATOR_URL"),
            model=get("CONTENT_GENERATOR_MODEL", "mistral"),
            timeout=int(get("CONTENT_GENERATOR_TIMEOUT", 60)),
        )
    if transport is None:
        transport = ResendEmailTransport(
            get("RESEND_API_KEY"),
            get("EMAIL_FROM"),
            api_url=get("RESEND_API_URL", "https://api.resend.com/emails"),
            reply_to=get("EMAIL_REPLY_TO"),
            timeout=int(get("EMAIL_TIMEOUT", 30)),
        )
    if enricher is None:
        enricher = WebsiteEnricher(timeout=int(get("ENRICHMENT_TIMEOUT", 10)))

    task_store = TaskStore(session)
    vendor_store = VendorStore(session)
    audit_log = AuditLogService(session)

    orchestrator = CampaignOrchestrator(task_store, vendor_store, audit_log, enricher,
                                        settings=campaign_settings, clock=clock)
    lifecycle = VendorLifecycleService(vendor_store, audit_log, clock=clock)
    lifecycle.subscribe(orchestrator.handle_status_change)

    handlers = {
        TaskType.GENERATE: GenerateHandler(content_generator, audit_log, business_hours, campaign_settings.tz),
        TaskType.SEND: SendHandler(vendor_store, transport, audit_log, lifecycle, campaign_settings),
        TaskType.FOLLOW_UP: FollowUpHandler(vendor_store, transport, audit_log, campaign_settings),
    }

    tick_lock = tick_lock or TickLockManager()
    dispatcher = Dispatcher(
        task_store,
        handlers,
        worker_id=get("WORKER_ID"),
        settings=DispatcherSettings.from_config(config),
        clock=clock,
        failure_listeners=[orchestrator.handle_task_failure],
        context_factory=context_factory,
        tick_lock=tick_lock,
    )

    return OutreachContext(
        task_store=task_store,
        vendor_store=vendor_store,
        audit_log=audit_log,
        lifecycle=lifecycle,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        tick_lock=tick_lock,
    )
