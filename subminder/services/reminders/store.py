from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from subminder.db.models import DeviceToken, Notification, Subscription
from subminder.schemas.reminder_schemas import DueSubscription
from subminder.utils.errors import DatabaseError, ReminderQueryError
from subminder.utils.logging import get_logger

logger = get_logger()

DUE_INDEX_HINT = (
    "Create the composite index idx_subscriptions_reminder_due "
    "on subscriptions (reminder_days, next_bill_date)."
)


class ReminderStore(ABC):
    """Record store operations the reminder job depends on."""

    @abstractmethod
    async def find_due_subscriptions(
        self, start: datetime, end: datetime, reminder_days: int
    ) -> List[DueSubscription]:
        """Subscriptions of every user billed within [start, end] with the given lead time."""
        pass

    @abstractmethod
    async def list_device_tokens(self, user_id: str) -> List[str]:
        pass

    @abstractmethod
    async def create_notification(
        self,
        user_id: str,
        title: str,
        body: str,
        dedupe_key: Optional[str] = None,
    ) -> Optional[str]:
        """
        Create an unread notification for the user and return its ID.

        Returns None when ``dedupe_key`` is given and a notification with the
        same key already exists.
        """
        pass


def to_due_subscription(subscription: Subscription) -> DueSubscription:
    currency = subscription.currency
    return DueSubscription(
        id=subscription.id,
        user_id=subscription.user_id,
        service_name=subscription.service_name,
        cost=subscription.cost,
        currency=currency.value if hasattr(currency, "value") else str(currency),
        next_bill_date=subscription.next_bill_date,
        reminder_days=subscription.reminder_days,
    )


class SqlAlchemyReminderStore(ReminderStore):
    def __init__(self, db_session: Session):
        self.db = db_session

    async def find_due_subscriptions(
        self, start: datetime, end: datetime, reminder_days: int
    ) -> List[DueSubscription]:
        try:
            result = self.db.execute(
                select(Subscription).where(
                    and_(
                        Subscription.next_bill_date >= start,
                        Subscription.next_bill_date <= end,
                        Subscription.reminder_days == reminder_days,
                    )
                )
            )
            return [to_due_subscription(s) for s in result.scalars().all()]
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ReminderQueryError(
                f"Due subscription query failed for reminder_days={reminder_days}",
                details=f"{DUE_INDEX_HINT} Store error: {getattr(e, 'orig', None) or e}",
            ) from e

    async def list_device_tokens(self, user_id: str) -> List[str]:
        result = self.db.execute(
            select(DeviceToken.token).where(DeviceToken.user_id == user_id)
        )
        return list(result.scalars().all())

    def _dedupe_key_exists(self, dedupe_key: str) -> bool:
        existing = self.db.execute(
            select(Notification.id).where(Notification.dedupe_key == dedupe_key)
        ).scalar_one_or_none()
        return existing is not None

    async def create_notification(
        self,
        user_id: str,
        title: str,
        body: str,
        dedupe_key: Optional[str] = None,
    ) -> Optional[str]:
        if dedupe_key is not None and self._dedupe_key_exists(dedupe_key):
            return None

        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            read=False,
            dedupe_key=dedupe_key,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if dedupe_key is not None and self._dedupe_key_exists(dedupe_key):
                # Lost a race against an overlapping run writing the same key
                logger.info("Notification already recorded", dedupe_key=dedupe_key)
                return None
            raise DatabaseError(f"Failed to save notification: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to save notification: {e}") from e

        return notification.id
