from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "daily_subscription_reminder_task",
]
