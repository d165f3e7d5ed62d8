from .daily_subscription_reminder import daily_subscription_reminder_task

__all__ = [
    "daily_subscription_reminder_task",
]
