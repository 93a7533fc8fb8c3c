# outreach/vendors/service.py
from typing import Callable, List, Optional

from outreach.datetime_utils import utcnow
from outreach.errors import InvalidTransition, VendorNotFound
from outreach.logging_config import get_logger
from outreach.services.audit_log import ActivityType, AuditLogService
from outreach.vendors.events import VendorStatus, VendorStatusChanged
from outreach.vendors.store import VendorStore

logger = get_logger(__name__)

StatusListener = Callable[[VendorStatusChanged], None]


class VendorLifecycleService:
    """
    Commits vendor status changes and notifies listeners synchronously.

    Listeners run after the status write has committed. A failing listener
    is logged and does not undo the status change or stop other listeners.
    """

    def __init__(self, vendor_store: VendorStore, audit_log: AuditLogService,
                 listeners: Optional[List[StatusListener]] = None, clock=utcnow):
        self.vendor_store = vendor_store
        self.audit_log = audit_log
        self.listeners = list(listeners or [])
        self.clock = clock

    def subscribe(self, listener: StatusListener) -> None:
        self.listeners.append(listener)

    def change_status(self, vendor_id: str, new_status: str, source: str = "system",
                      fields: Optional[dict] = None, now=None) -> Optional[VendorStatusChanged]:
        """
        Move a vendor to ``new_status`` and apply any extra ``fields`` in the same write.

        Returns:
            VendorStatusChanged if the status actually changed, None otherwise

        Raises:
            InvalidTransition: Unknown target status
            VendorNotFound, StaleVendorError
        """
        if new_status not in VendorStatus.ALL:
            raise InvalidTransition(f"Unknown vendor status: {new_status}")
        now = now or self.clock()
        vendor = self.vendor_store.get(vendor_id)
        if vendor is None:
            raise VendorNotFound(f"Vendor {vendor_id} not found")

        before = vendor.status
        updates = dict(fields or {})
        if before == new_status:
            if updates:
                self.vendor_store.update(vendor_id, updates, expected_version=vendor.version)
            logger.debug("Vendor status unchanged", vendor_id=vendor_id, status=new_status)
            return None

        updates["status"] = new_status
        updates["status_updated_at"] = now
        self.vendor_store.update(vendor_id, updates, expected_version=vendor.version)

        self.audit_log.append(
            vendor_id,
            ActivityType.STATUS_CHANGE,
            f"Pipeline moved: {before} → {new_status}",
            {"from": before, "to": new_status, "trigger": source},
        )
        logger.info("Vendor status changed", vendor_id=vendor_id, before=before, after=new_status, source=source)

        event = VendorStatusChanged(vendor_id=vendor_id, before=before, after=new_status,
                                    occurred_at=now, source=source)
        self._notify(event)
        return event

    def unsubscribe(self, vendor_id: str, now=None) -> bool:
        """
        Dismiss a vendor who opted out of outreach.

        Returns:
            bool: False if the vendor was already dismissed
        """
        now = now or self.clock()
        vendor = self.vendor_store.get(vendor_id)
        if vendor is None:
            raise VendorNotFound(f"Vendor {vendor_id} not found")
        if vendor.status == VendorStatus.DISMISSED:
            logger.info("Vendor already dismissed", vendor_id=vendor_id)
            return False

        self.change_status(
            vendor_id,
            VendorStatus.DISMISSED,
            source="unsubscribe_link",
            fields={"dismiss_reason": "unsubscribed", "unsubscribed_at": now},
            now=now,
        )
        return True

    def _notify(self, event: VendorStatusChanged) -> None:
        for listener in self.listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "Status listener failed",
                    vendor_id=event.vendor_id,
                    after=event.after,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(e),
                    exc_info=True,
                )
