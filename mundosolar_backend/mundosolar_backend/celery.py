import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "mundosolar_backend.settings")

app = Celery("mundosolar_backend")

# Load config from Django settings (CELERY_BROKER_URL, etc.)
app.config_from_object("django.conf:settings", namespace="CELERY")

# Autodiscover tasks in installed apps
app.autodiscover_tasks()


CELERY_BEAT_SCHEDULE = {
    # Growatt daily totals settle late in the evening (local time)
    "sync-growatt-data-nightly": {
        "task": "growatt.tasks.sync_growatt_data",
        "schedule": crontab(minute=0, hour=22),
        "options": {"queue": "default"},
    },
    "cleanup-growatt-cache-daily": {
        "task": "growatt.tasks.cleanup_growatt_cache",
        "schedule": crontab(minute=30, hour=3),
        "options": {"queue": "default"},
    },
}

app.conf.beat_schedule = CELERY_BEAT_SCHEDULE
