import os

from celery import Celery

BROKER_URL = os.environ.get("FAMILYSYNC_BROKER_URL", "redis://redis:6379/0")
RESULT_BACKEND = os.environ.get("FAMILYSYNC_RESULT_BACKEND", "redis://redis:6379/1")
REFRESH_INTERVAL_SECONDS = float(os.environ.get("FAMILYSYNC_REFRESH_INTERVAL_SECONDS", "300"))

celery_app = Celery(
    "familysync_worker",
    broker=BROKER_URL,
    backend=RESULT_BACKEND,
)

celery_app.conf.beat_schedule = {
    "family-roster-refresh": {
        "task": "worker.tasks.refresh_family_roster",
        "schedule": REFRESH_INTERVAL_SECONDS,
    },
}
celery_app.conf.timezone = "UTC"
