"""
Helpers for parsing operator requests and shaping API responses.
"""
from typing import Any, Dict, Optional

from outreach.models import TaskStatus

VENDOR_FIELDS = (
    "business_name",
    "capabilities",
    "specialty",
    "contact_name",
    "email",
    "phone",
    "website",
    "city",
    "state",
    "preferred_language",
    "has_active_contract",
    "email_engagement",
)


def parse_task_status(value: Optional[str]) -> Optional[TaskStatus]:
    """TaskStatus from a query string value, None when absent.

    Raises:
        ValueError: Unknown status name
    """
    if not value:
        return None
    try:
        return TaskStatus(value.upper())
    except ValueError:
        raise ValueError(f"Unknown task status: {value}")


def vendor_fields_from_json(data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only the profile fields an operator may set."""
    fields = {key: data[key] for key in VENDOR_FIELDS if key in data}
    if "capabilities" in fields and isinstance(fields["capabilities"], str):
        fields["capabilities"] = [part.strip() for part in fields["capabilities"].split(",") if part.strip()]
    return fields


def unsubscribe_page(title: str, message: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{title}</title></head>"
        "<body style=\"font-family: sans-serif; max-width: 480px; margin: 80px auto; text-align: center;\">"
        f"<h2>{title}</h2><p>{message}</p></body></html>"
    )
