import logging
import logging.config
import os
import uuid
from datetime import datetime
from typing import Optional

import structlog

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Route stdlib and structlog output through one JSON renderer.

    Events go to stderr, and also to a rotating ``log_file`` when one is
    given. Returns the "outreach" logger.
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = {"stderr": {"class": "logging.StreamHandler", "formatter": "plain"}}
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "plain",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": LOG_FILE_BACKUPS,
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        # structlog already rendered the JSON line
        "formatters": {"plain": {"format": "%(message)s"}},
        "handlers": handlers,
        "root": {"level": log_level, "handlers": list(handlers)},
    })

    logger = structlog.get_logger("outreach")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger

def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)

class TickContext:
    """Context manager for a dispatcher tick with a correlation ID."""
    
    def __init__(self, worker_id: str, tick_id: Optional[str] = None):
        self.worker_id = worker_id
        self.tick_id = tick_id or str(uuid.uuid4())[:8]
        self.logger = get_logger("outreach.queue.tick")
        self.start_time = None
        self.counts = {}
        
    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.info(
            "Queue tick started",
            worker_id=self.worker_id,
            tick_id=self.tick_id,
            start_time=self.start_time.isoformat()
        )
        return self
        
    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()
        
        if exc_type is None:
            self.logger.info(
                "Queue tick completed",
                worker_id=self.worker_id,
                tick_id=self.tick_id,
                duration_seconds=duration,
                status="success",
                **self.counts
            )
        else:
            self.logger.error(
                "Queue tick aborted",
                worker_id=self.worker_id,
                tick_id=self.tick_id,
                duration_seconds=duration,
                status="error",
                error_type=exc_type.__name__,
                error_message=str(exc_val)
            )
        
        return False  # Don't suppress exceptions

def log_queue_event(event: str, task, **kwargs):
    """Log a queue task transition with structured task fields."""
    logger = get_logger("outreach.queue")
    logger.info(
        event,
        task_id=task.id,
        subject_id=task.subject_id,
        task_type=task.type.value,
        **kwargs
    )
