# outreach/vendors/store.py
from typing import Optional

from sqlalchemy.orm.exc import StaleDataError

from outreach.errors import StaleVendorError, VendorNotFound
from outreach.logging_config import get_logger
from outreach.models import Vendor, db

logger = get_logger(__name__)


class VendorStore:
    """Vendor records with per-record conditional updates.

    ``Vendor.version`` is the mapper's version counter: every UPDATE is
    issued as ``... WHERE id = :id AND version = :seen`` and a lost race
    surfaces as StaleVendorError.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def get(self, vendor_id: str) -> Optional[Vendor]:
        """Current vendor row, re-read from the database."""
        return self.session.get(Vendor, vendor_id, populate_existing=True)

    def create(self, vendor_id: str, **fields) -> Vendor:
        vendor = Vendor(id=vendor_id, **fields)
        try:
            self.session.add(vendor)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info("Vendor created", vendor_id=vendor_id, status=vendor.status)
        return vendor

    def update(self, vendor_id: str, fields: dict, expected_version: Optional[int] = None) -> Vendor:
        """
        Apply ``fields`` to one vendor.

        Args:
            vendor_id: Vendor identifier
            fields: Attribute -> value
            expected_version: If given, fail unless the row is still at this version

        Raises:
            VendorNotFound: No such vendor
            StaleVendorError: The row changed since it was read
        """
        vendor = self.get(vendor_id)
        if vendor is None:
            raise VendorNotFound(f"Vendor {vendor_id} not found")
        if expected_version is not None and vendor.version != expected_version:
            raise StaleVendorError(
                f"Vendor {vendor_id} is at version {vendor.version}, expected {expected_version}"
            )

        for name, value in fields.items():
            if not hasattr(Vendor, name):
                raise AttributeError(f"Vendor has no field {name!r}")
            setattr(vendor, name, value)

        try:
            self.session.commit()
        except StaleDataError as e:
            self.session.rollback()
            logger.warning("Concurrent vendor update rejected", vendor_id=vendor_id)
            raise StaleVendorError(f"Vendor {vendor_id} was modified concurrently") from e
        except Exception:
            self.session.rollback()
            raise

        return vendor
