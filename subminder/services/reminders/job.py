from datetime import datetime

from subminder.schemas.reminder_schemas import (
    FanoutOutcome,
    ReminderRunResult,
    RunStatus,
)
from subminder.services.reminders.fanout import ReminderFanout
from subminder.services.reminders.scan import ReminderScan
from subminder.utils.datetime_utils import to_utc
from subminder.utils.errors import ReminderQueryError
from subminder.utils.logging import get_logger

logger = get_logger()


class SubscriptionReminderJob:
    """One daily reminder run: scan every user's subscriptions, then fan out."""

    def __init__(self, scan: ReminderScan, fanout: ReminderFanout):
        self.scan = scan
        self.fanout = fanout

    async def run(self, run_time: datetime) -> ReminderRunResult:
        run_time = to_utc(run_time)
        logger.info("Subscription reminder run started", run_time=run_time.isoformat())

        try:
            due = await self.scan.scan(run_time)
        except ReminderQueryError as e:
            logger.error(
                "Subscription query failed, no reminders sent",
                error=e.message,
                details=e.details,
                error_code=e.error_code,
            )
            logger.info("Subscription reminder run ended", status=RunStatus.QUERY_FAILED.value)
            return ReminderRunResult(
                status=RunStatus.QUERY_FAILED,
                run_time=run_time,
                error=e.message,
                error_details=e.details,
            )

        if not due:
            logger.info("Query ran, but found 0 subscriptions matching any date/offset")
            logger.info("Subscription reminder run ended", status=RunStatus.EMPTY.value)
            return ReminderRunResult(status=RunStatus.EMPTY, run_time=run_time)

        logger.info("Found subscriptions to remind", matched_count=len(due))
        summary = await self.fanout.fan_out(due)

        result = ReminderRunResult(
            status=RunStatus.COMPLETE,
            run_time=run_time,
            matched_count=len(due),
            notifications_written=summary.notifications_written,
            pushes_dispatched=summary.pushes_dispatched,
            tokens_succeeded=summary.tokens_succeeded,
            tokens_failed=summary.tokens_failed,
            skipped_count=(
                summary.count(FanoutOutcome.SKIPPED_NO_TENANT)
                + summary.count(FanoutOutcome.SKIPPED_NO_TOKENS)
                + summary.count(FanoutOutcome.DUPLICATE)
            ),
            failed_count=summary.count(FanoutOutcome.FAILED),
        )
        logger.info(
            "Subscription reminder run ended",
            status=result.status.value,
            matched_count=result.matched_count,
            notifications_written=result.notifications_written,
            pushes_dispatched=result.pushes_dispatched,
            skipped_count=result.skipped_count,
            failed_count=result.failed_count,
        )
        return result
