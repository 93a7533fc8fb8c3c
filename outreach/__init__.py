import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS

from outreach.models import db
from outreach.api import api_bp

# scheduler imports
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor
from outreach.logging_config import configure_logging, get_logger

# Configure logging
logger = configure_logging(
    log_level=os.environ.get("LOG_LEVEL", "INFO"),
    log_file=os.environ.get("LOG_FILE", "logs/outreach.log"),
)

EXTENSION_KEY = "outreach"


def get_context(app=None):
    """The OutreachContext attached to ``app`` (default: current_app)."""
    if app is None:
        from flask import current_app
        app = current_app
    return app.extensions[EXTENSION_KEY]


def run_queue_tick(app):
    """Scheduler entry point: one dispatcher tick inside an app context."""
    with app.app_context():
        try:
            get_context(app).dispatcher.tick()
        except Exception as e:
            logger.error("Queue tick failed", error=str(e), exc_info=True)
        finally:
            db.session.remove()


def init_scheduler(app):
    """Start the queue ticker and a heartbeat on the scheduler instance."""

    if not app.config.get("SCHEDULER_ENABLED"):
        logger.info("Scheduler disabled by configuration")
        return None

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SCHEDULER"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    # --- Configure scheduler ---
    executors = {"default": ThreadPoolExecutor(3)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=run_queue_tick,
        args=[app],
        trigger="interval",
        minutes=app.config.get("QUEUE_TICK_MINUTES", 1),
        id="outreach_queue_tick",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    # --- Optional heartbeat job to confirm scheduler alive ---
    scheduler.add_job(
        func=lambda: logger.info("Scheduler heartbeat: alive"),
        trigger="interval",
        minutes=30,
        id="heartbeat",
        replace_existing=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started", tick_minutes=app.config.get("QUEUE_TICK_MINUTES", 1))
    return scheduler


def create_app(config_overrides=None, content_generator=None, transport=None, enricher=None, clock=None):
    """
    Application factory.

    Args:
        config_overrides: Settings applied on top of the environment's config class
        content_generator, transport, enricher: Collaborator overrides (tests)
        clock: Callable returning naive UTC now (tests)
    """
    # Import config after dotenv is loaded
    from outreach.config import get_config
    from outreach.context import build_context
    from outreach.datetime_utils import utcnow
    from outreach.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure database separately
    configure_database(app, config_overrides)
    if config_overrides:
        app.config.update(config_overrides)

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    # Initialize database
    db.init_app(app)

    app.extensions[EXTENSION_KEY] = build_context(
        app.config,
        content_generator=content_generator,
        transport=transport,
        enricher=enricher,
        clock=clock or utcnow,
        context_factory=app.app_context,
    )

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "environment": config_class.ENV}), 200

    app.register_blueprint(api_bp, url_prefix="/api")

    # Global error handler so every failure comes back as JSON
    @app.errorhandler(Exception)
    def handle_exception(e):
        logger.error("Unhandled exception", error=str(e), exc_info=True)

        if hasattr(e, 'code'):
            status_code = e.code
        elif hasattr(e, 'status_code'):
            status_code = e.status_code
        else:
            status_code = 500

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    # Initialize scheduler safely
    try:
        init_scheduler(app)
    except Exception as e:
        logger.error("Failed to start scheduler", error=str(e))

    return app
