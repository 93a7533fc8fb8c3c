# outreach/campaigns/messages.py
"""
Follow-up copy and email rendering.

Copy is keyed by language, sequence and engagement variant. Missing
variants fall back to ``standard``; unsupported languages fall back to
English.
"""
from html import escape
from typing import Dict, Optional, Tuple

DEFAULT_LANGUAGE = "en"
DEFAULT_SUBJECT = "Partnership opportunity for {vendor_name}"

FOLLOW_UP_COPY: Dict[str, Dict[Tuple[int, str], Tuple[str, str]]] = {
    "en": {
        (1, "standard"): (
            "Quick follow-up, {vendor_name}",
            "Hi {contact_name},\n\n"
            "Following up on my note about joining our preferred vendor network in {city}.\n"
            "We handle sales, admin and on-time payment so you can focus on {services}.\n"
            "You can finish onboarding in a few minutes here: {onboarding_url}",
        ),
        (2, "standard"): (
            "Still interested in {services} work in {city}?",
            "Hi {contact_name},\n\n"
            "We keep receiving requests for {services} in {city}.\n"
            "Preferred vendors get first access to these jobs with no bidding.\n"
            "Complete your profile: {onboarding_url}",
        ),
        (3, "standard"): (
            "Your spot on our shortlist, {vendor_name}",
            "Hi {contact_name},\n\n"
            "We are finalizing our vendor shortlist for {city}.\n"
            "If you want to be considered, onboarding takes about ten minutes: {onboarding_url}",
        ),
        (4, "standard"): (
            "Closing the loop",
            "Hi {contact_name},\n\n"
            "This is my last note for now.\n"
            "If the timing is ever right, your onboarding link stays open: {onboarding_url}",
        ),
        (1, "warm"): (
            "Thanks for taking a look, {vendor_name}",
            "Hi {contact_name},\n\n"
            "Glad my last note reached you.\n"
            "The next step is a short onboarding form: {onboarding_url}",
        ),
        (2, "warm"): (
            "Picking up where you left off",
            "Hi {contact_name},\n\n"
            "Your onboarding for {services} in {city} is only partly done.\n"
            "You can pick it up here: {onboarding_url}",
        ),
    },
    "es": {
        (1, "standard"): (
            "Seguimiento rápido, {vendor_name}",
            "Hola {contact_name},\n\n"
            "Le escribo de nuevo sobre unirse a nuestra red de proveedores preferidos en {city}.\n"
            "Nosotros nos encargamos de ventas, administración y pagos puntuales para que usted se enfoque en {services}.\n"
            "Puede completar su registro aquí: {onboarding_url}",
        ),
        (2, "standard"): (
            "¿Sigue interesado en trabajos de {services} en {city}?",
            "Hola {contact_name},\n\n"
            "Seguimos recibiendo solicitudes de {services} en {city}.\n"
            "Los proveedores preferidos reciben estos trabajos primero, sin licitar.\n"
            "Complete su perfil: {onboarding_url}",
        ),
        (3, "standard"): (
            "Su lugar en nuestra lista, {vendor_name}",
            "Hola {contact_name},\n\n"
            "Estamos cerrando nuestra lista de proveedores para {city}.\n"
            "Si desea ser considerado, el registro toma unos diez minutos: {onboarding_url}",
        ),
        (4, "standard"): (
            "Último mensaje",
            "Hola {contact_name},\n\n"
            "Este es mi último mensaje por ahora.\n"
            "Su enlace de registro sigue disponible: {onboarding_url}",
        ),
    },
}

UNSUBSCRIBE_FOOTER = {
    "en": "Not interested? Unsubscribe: {unsubscribe_url}",
    "es": "¿No le interesa? Cancelar suscripción: {unsubscribe_url}",
}

SEQUENCE_LENGTH = 4


def engagement_variant(engagement: Optional[str]) -> str:
    """Copy variant for the vendor's last email engagement event."""
    if engagement in ("opened", "clicked"):
        return "warm"
    if engagement == "delivered":
        return "cold"
    return "standard"


def merge_vars(vendor, onboarding_url: str, unsubscribe_url: str) -> Dict[str, str]:
    capabilities = list(vendor.capabilities or [])
    return {
        "vendor_name": vendor.business_name or "your company",
        "contact_name": vendor.contact_name or vendor.business_name or "there",
        "city": vendor.city or "your area",
        "state": vendor.state or "",
        "services": ", ".join(capabilities) if capabilities else (vendor.specialty or "facility services"),
        "onboarding_url": onboarding_url,
        "unsubscribe_url": unsubscribe_url,
    }


def render_follow_up(sequence: int, language: Optional[str], variables: Dict[str, str],
                     variant: str = "standard") -> Tuple[str, str]:
    """
    Subject and plain-text body for follow-up ``sequence``.

    Raises:
        ValueError: sequence outside 1..SEQUENCE_LENGTH
    """
    if not 1 <= sequence <= SEQUENCE_LENGTH:
        raise ValueError(f"Follow-up sequence must be 1-{SEQUENCE_LENGTH}, got {sequence}")

    language = language if language in FOLLOW_UP_COPY else DEFAULT_LANGUAGE
    copy = FOLLOW_UP_COPY[language]
    subject, body = copy.get((sequence, variant)) or copy[(sequence, "standard")]

    footer = UNSUBSCRIBE_FOOTER[language]
    body = f"{body}\n\n{footer}"
    return subject.format(**variables), body.format(**variables)


def to_html(body: str) -> str:
    """Wrap plain text for an HTML email, one line break per newline."""
    return (
        '<div style="font-family: sans-serif; line-height: 1.6;">'
        + escape(body).replace("\n", "<br/>")
        + "</div>"
    )
