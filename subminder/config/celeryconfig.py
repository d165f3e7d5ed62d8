from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
result_backend = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"

# Task Discovery
include = ["subminder.tasks"]

# Timezone Configuration
timezone = settings.REMINDER_TIMEZONE
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 30 * 60  # 30 minutes
task_soft_time_limit = 25 * 60  # 25 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# A run is never redelivered; the next beat slot is the only recovery path
task_acks_late = False
task_reject_on_worker_lost = False

# Scheduled in REMINDER_TIMEZONE
beat_schedule = {
    "daily-subscription-reminder": {
        "task": "subminder.tasks.cron.daily_subscription_reminder.daily_subscription_reminder_task",
        "schedule": crontab(hour=settings.REMINDER_HOUR, minute=settings.REMINDER_MINUTE),
        "args": ("daily_subscription_reminder_cron",),
    },
}

# Default Queue
task_default_queue = "subminder"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"
