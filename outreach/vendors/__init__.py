from outreach.vendors.events import VendorStatus, VendorStatusChanged
from outreach.vendors.store import VendorStore
from outreach.vendors.service import VendorLifecycleService

__all__ = ['VendorStatus', 'VendorStatusChanged', 'VendorStore', 'VendorLifecycleService']
