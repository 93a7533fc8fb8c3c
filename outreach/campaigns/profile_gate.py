# outreach/campaigns/profile_gate.py
from typing import List


def missing_profile_fields(vendor) -> List[str]:
    """Names of the fields that keep a vendor out of automated outreach.

    A vendor needs a business name, at least one capability or a specialty,
    and an email address.
    """
    missing = []
    if not (vendor.business_name or "").strip():
        missing.append("business_name")
    if not (vendor.capabilities or (vendor.specialty or "").strip()):
        missing.append("capabilities")
    if not (vendor.email or "").strip():
        missing.append("email")
    return missing
