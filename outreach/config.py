import os
from dotenv import load_dotenv

load_dotenv()


def _int_list(value, default):
    if not value:
        return default
    return [int(part.strip()) for part in value.split(",") if part.strip()]


class Config:
    """Base configuration class with common settings."""
    # Business hours
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "America/New_York")
    BUSINESS_START_HOUR = int(os.environ.get("BUSINESS_START_HOUR", 9))
    BUSINESS_END_HOUR = int(os.environ.get("BUSINESS_END_HOUR", 17))
    BUSINESS_WEEKDAYS = _int_list(os.environ.get("BUSINESS_WEEKDAYS"), [0, 1, 2, 3, 4])  # Mon-Fri
    URGENT_LEAD_MINUTES = int(os.environ.get("URGENT_LEAD_MINUTES", 10))
    URGENT_SLOT_HOUR = int(os.environ.get("URGENT_SLOT_HOUR", 9))
    STANDARD_SLOT_HOUR = int(os.environ.get("STANDARD_SLOT_HOUR", 10))

    # Queue worker
    QUEUE_TICK_MINUTES = int(os.environ.get("QUEUE_TICK_MINUTES", 1))
    QUEUE_FETCH_LIMIT = int(os.environ.get("QUEUE_FETCH_LIMIT", 10))
    QUEUE_MAX_RETRIES = int(os.environ.get("QUEUE_MAX_RETRIES", 5))
    QUEUE_LEASE_SECONDS = int(os.environ.get("QUEUE_LEASE_SECONDS", 300))
    QUEUE_TICK_TIMEOUT_SECONDS = int(os.environ.get("QUEUE_TICK_TIMEOUT_SECONDS", 50))
    # 0 runs handlers inline; the tick timeout still applies to each handler
    QUEUE_HANDLER_TIMEOUT_SECONDS = int(os.environ.get("QUEUE_HANDLER_TIMEOUT_SECONDS", 0))
    WORKER_ID = os.environ.get("WORKER_ID")

    # Drip campaign
    FOLLOW_UP_DAY_OFFSETS = _int_list(os.environ.get("FOLLOW_UP_DAY_OFFSETS"), [3, 7, 14, 21])
    FOLLOW_UP_SEND_HOUR = int(os.environ.get("FOLLOW_UP_SEND_HOUR", 10))

    # Vendor lifecycle
    OUTREACH_ELIGIBLE_STATUS = "qualified"
    DRIP_STATUS = "awaiting_onboarding"
    PAST_OUTREACH_STATUSES = [
        "compliance_review",
        "pending_verification",
        "onboarding_scheduled",
        "ready_for_assignment",
        "active",
        "suspended",
        "dismissed",
    ]

    # Content generator (LLM over HTTP)
    CONTENT_GENERATOR_URL = os.environ.get("CONTENT_GENERATOR_URL", "http://localhost:11434/api/generate")
    CONTENT_GENERATOR_MODEL = os.environ.get("CONTENT_GENERATOR_MODEL", "mistral")
    CONTENT_GENERATOR_TIMEOUT = int(os.environ.get("CONTENT_GENERATOR_TIMEOUT", 60))

    # Email transport (Resend)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com/emails")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "Vendor Relations <onboarding@example.com>")
    EMAIL_REPLY_TO = os.environ.get("EMAIL_REPLY_TO")
    EMAIL_TIMEOUT = int(os.environ.get("EMAIL_TIMEOUT", 30))

    # Website enrichment
    ENRICHMENT_TIMEOUT = int(os.environ.get("ENRICHMENT_TIMEOUT", 10))

    # Links merged into outreach copy
    ONBOARDING_URL_TEMPLATE = os.environ.get(
        "ONBOARDING_URL_TEMPLATE", "https://example.com/contractor?vid={vendor_id}"
    )
    UNSUBSCRIBE_URL_TEMPLATE = os.environ.get(
        "UNSUBSCRIBE_URL_TEMPLATE", "https://example.com/api/unsubscribe?vendorId={vendor_id}"
    )

    # Scheduler
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "false").lower() in ("1", "true", "yes", "on")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


def get_config():
    """Get the appropriate configuration class based on environment variable.
    
    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    
    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()
    
    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
