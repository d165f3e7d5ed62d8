import asyncio
from typing import Optional

from sqlalchemy.orm import Session

from subminder.celery import celery
from subminder.config.settings import settings
from subminder.db.session import get_sync_session
from subminder.services.push import PushGateway, get_push_gateway
from subminder.services.reminders import (
    ReminderFanout,
    ReminderScan,
    SqlAlchemyReminderStore,
    SubscriptionReminderJob,
)
from subminder.utils.context import reset_request_id, set_request_id
from subminder.utils.datetime_utils import parse_iso_datetime, utc_now
from subminder.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def daily_subscription_reminder_task(self, request_id: str, run_at: Optional[str] = None):
    """
    Daily task to remind users about upcoming subscription charges.

    Runs at REMINDER_HOUR:REMINDER_MINUTE in REMINDER_TIMEZONE (08:00
    Europe/Skopje by default) to:
    1. Find subscriptions billed 1, 3, 7 or 14 days from today whose lead time
       matches that offset
    2. Save an in-app notification for each one's owner
    3. Push the reminder to every device the owner registered

    The task never retries; a failed run is picked up by the next day's run.

    Args:
        request_id: Request ID for tracking purposes (provided by Celery Beat configuration)
        run_at: Optional ISO timestamp to replay a run as of that instant
    """
    return asyncio.run(_async_daily_subscription_reminder(request_id, run_at))


def build_reminder_job(
    db_session: Session, push_gateway: PushGateway
) -> SubscriptionReminderJob:
    store = SqlAlchemyReminderStore(db_session)
    scan = ReminderScan(
        store,
        offsets=settings.REMINDER_OFFSETS,
        home_timezone=settings.REMINDER_TIMEZONE,
    )
    fanout = ReminderFanout(
        store,
        push_gateway,
        title=settings.NOTIFICATION_TITLE,
        default_reminder_days=settings.DEFAULT_REMINDER_DAYS,
        currency_symbol=settings.CURRENCY_SYMBOL,
        use_subscription_currency=settings.USE_SUBSCRIPTION_CURRENCY,
        push_icon=settings.PUSH_ICON,
        dedupe_enabled=settings.REMINDER_DEDUPE_ENABLED,
    )
    return SubscriptionReminderJob(scan, fanout)


async def _async_daily_subscription_reminder(request_id: str, run_at: Optional[str] = None):
    token = set_request_id(request_id)
    logger = get_logger().bind(request_id=request_id)

    try:
        run_time = parse_iso_datetime(run_at) if run_at else utc_now()

        for db_session in get_sync_session():
            job = build_reminder_job(db_session, get_push_gateway())
            result = await job.run(run_time)

            return {
                "success": result.success,
                "request_id": request_id,
                **result.model_dump(mode="json"),
            }

    except Exception as e:
        logger.exception(
            "Daily subscription reminder task exception",
            request_id=request_id,
            error=str(e),
        )

        return {"success": False, "error": str(e), "request_id": request_id}

    finally:
        reset_request_id(token)
