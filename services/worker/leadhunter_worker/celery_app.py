"""Celery application configuration for LeadHunter Worker."""

import os

from celery import Celery
from celery.signals import setup_logging

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

HUNTING_INTERVAL_SECONDS = float(os.getenv("HUNTING_INTERVAL_SECONDS", "1800"))
RESPONSE_CHECK_INTERVAL_SECONDS = float(os.getenv("RESPONSE_CHECK_INTERVAL_SECONDS", "60"))

app = Celery(
    "leadhunter_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "leadhunter_worker.tasks.hunting",
        "leadhunter_worker.tasks.responses",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds); the hunting cycle stops itself at its own budget
    task_soft_time_limit=600,  # 10 minutes
    task_time_limit=900,  # 15 minutes
    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    # Queue routing
    task_routes={
        "hunting.*": {"queue": "hunting"},
        "responses.*": {"queue": "responses"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Hunting cycle over every active session
    "hunting-cycle-periodic": {
        "task": "hunting.run_cycle",
        "schedule": HUNTING_INTERVAL_SECONDS,
        "args": (),
    },
    # Inbox check for lead replies
    "response-check-periodic": {
        "task": "responses.check_all",
        "schedule": RESPONSE_CHECK_INTERVAL_SECONDS,
        "args": (),
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the core structured logging setup instead of Celery's."""
    from leadhunter_core.config import get_settings
    from leadhunter_core.observability import configure_logging

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="leadhunter-worker",
    )


if __name__ == "__main__":
    app.start()
