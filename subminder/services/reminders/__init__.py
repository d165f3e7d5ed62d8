from .store import ReminderStore, SqlAlchemyReminderStore
from .scan import ReminderScan
from .fanout import ReminderFanout
from .job import SubscriptionReminderJob

__all__ = [
    "ReminderStore",
    "SqlAlchemyReminderStore",
    "ReminderScan",
    "ReminderFanout",
    "SubscriptionReminderJob",
]
