import asyncio
from datetime import datetime, timedelta
from typing import List, Sequence, Union
from zoneinfo import ZoneInfo

from subminder.db.models import REMINDER_DAY_CHOICES
from subminder.schemas.reminder_schemas import DueSubscription, ReminderWindow
from subminder.services.reminders.store import ReminderStore
from subminder.utils.datetime_utils import local_date, utc_day_bounds
from subminder.utils.errors import ReminderQueryError
from subminder.utils.logging import get_logger

logger = get_logger()


class ReminderScan:
    """
    Finds every subscription, across all users, that should be reminded today.

    For each offset ``d`` the target day is today's date in the home zone plus
    ``d`` days. The query window spans that calendar day in UTC, which is how
    bill dates are stored (naive UTC midnight of the chosen date). A
    subscription matches offset ``d`` only if its ``reminder_days`` equals
    ``d`` as well.
    """

    def __init__(
        self,
        store: ReminderStore,
        offsets: Sequence[int] = REMINDER_DAY_CHOICES,
        home_timezone: Union[str, ZoneInfo] = "Europe/Skopje",
    ):
        self.store = store
        self.offsets = tuple(offsets)
        self.home_timezone = (
            ZoneInfo(home_timezone) if isinstance(home_timezone, str) else home_timezone
        )

    def compute_window(self, run_time: datetime, offset: int) -> ReminderWindow:
        today = local_date(run_time, self.home_timezone)
        target_date = today + timedelta(days=offset)
        start, end = utc_day_bounds(target_date)
        return ReminderWindow(
            offset=offset, target_date=target_date, start=start, end=end
        )

    async def _query_offset(self, window: ReminderWindow) -> List[DueSubscription]:
        logger.info(
            "Checking for subscriptions due",
            offset=window.offset,
            target_date=window.target_date.isoformat(),
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
        )
        matches = await self.store.find_due_subscriptions(
            window.start, window.end, window.offset
        )
        return [m.model_copy(update={"matched_offset": window.offset}) for m in matches]

    async def scan(self, run_time: datetime) -> List[DueSubscription]:
        """
        Gather the offset queries and return the concatenated matches.

        The queries share no state and their order does not matter. With the
        SQLAlchemy store they execute one after another on the run's session.

        Raises:
            ReminderQueryError: if any offset query fails; results of the
                other offsets are discarded.
        """
        windows = [self.compute_window(run_time, d) for d in self.offsets]

        try:
            per_offset = await asyncio.gather(
                *(self._query_offset(window) for window in windows)
            )
        except ReminderQueryError:
            raise
        except Exception as e:
            raise ReminderQueryError(
                f"Due subscription query failed: {e}", details=str(e)
            ) from e

        return [subscription for matches in per_offset for subscription in matches]
