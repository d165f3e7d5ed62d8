from typing import Iterable, Optional

from subminder.schemas.reminder_schemas import (
    DueSubscription,
    FanoutOutcome,
    FanoutSummary,
    SubscriptionFanoutResult,
)
from subminder.services.push.base import PushGateway
from subminder.services.reminders.message import build_dedupe_key, compose_reminder_body
from subminder.services.reminders.store import ReminderStore
from subminder.utils.logging import get_logger

logger = get_logger()

REMINDER_TITLE = "Upcoming Subscription Charge!"


class ReminderFanout:
    """
    Turns each matched subscription into one in-app notification and one
    push batch addressed to every device of the owning user.

    Every subscription is processed on its own: the notification write and
    the push dispatch are independent best-effort steps, and nothing that
    goes wrong for one subscription stops the others.
    """

    def __init__(
        self,
        store: ReminderStore,
        push_gateway: PushGateway,
        title: str = REMINDER_TITLE,
        default_reminder_days: int = 3,
        currency_symbol: str = "$",
        use_subscription_currency: bool = False,
        push_icon: Optional[str] = "/favicon.ico",
        dedupe_enabled: bool = False,
    ):
        self.store = store
        self.push_gateway = push_gateway
        self.title = title
        self.default_reminder_days = default_reminder_days
        self.currency_symbol = currency_symbol
        self.use_subscription_currency = use_subscription_currency
        self.push_icon = push_icon
        self.dedupe_enabled = dedupe_enabled

    async def fan_out(self, subscriptions: Iterable[DueSubscription]) -> FanoutSummary:
        summary = FanoutSummary()
        for subscription in subscriptions:
            try:
                result = await self.notify(subscription)
            except Exception as e:
                logger.exception(
                    "Error processing subscription reminder",
                    subscription_id=subscription.id,
                    error=str(e),
                )
                result = SubscriptionFanoutResult(
                    subscription_id=subscription.id,
                    user_id=subscription.user_id,
                    outcome=FanoutOutcome.FAILED,
                    errors=[str(e)],
                )
            summary.results.append(result)
        return summary

    async def notify(self, subscription: DueSubscription) -> SubscriptionFanoutResult:
        logger.info(
            "Processing subscription",
            subscription_id=subscription.id,
            service_name=subscription.service_name,
        )

        user_id = subscription.user_id
        if not user_id:
            logger.warning(
                "Could not find user for subscription, skipping",
                subscription_id=subscription.id,
            )
            return SubscriptionFanoutResult(
                subscription_id=subscription.id,
                outcome=FanoutOutcome.SKIPPED_NO_TENANT,
            )

        tokens = await self.store.list_device_tokens(user_id)
        if not tokens:
            logger.warning(
                "User has no notification tokens, skipping",
                subscription_id=subscription.id,
                user_id=user_id,
            )
            return SubscriptionFanoutResult(
                subscription_id=subscription.id,
                user_id=user_id,
                outcome=FanoutOutcome.SKIPPED_NO_TOKENS,
            )

        body = compose_reminder_body(
            subscription,
            default_reminder_days=self.default_reminder_days,
            currency_symbol=self.currency_symbol,
            use_subscription_currency=self.use_subscription_currency,
        )
        result = SubscriptionFanoutResult(
            subscription_id=subscription.id,
            user_id=user_id,
            outcome=FanoutOutcome.DELIVERED,
            tokens_targeted=len(tokens),
        )

        dedupe_key = build_dedupe_key(subscription) if self.dedupe_enabled else None
        try:
            notification_id = await self.store.create_notification(
                user_id, self.title, body, dedupe_key=dedupe_key
            )
            if notification_id is None and dedupe_key is not None:
                logger.info(
                    "Reminder already sent for this due date, skipping",
                    subscription_id=subscription.id,
                    dedupe_key=dedupe_key,
                )
                result.outcome = FanoutOutcome.DUPLICATE
                return result
            result.notification_id = notification_id
            result.notification_written = True
        except Exception as e:
            logger.error(
                "Error saving notification",
                subscription_id=subscription.id,
                user_id=user_id,
                error=str(e),
            )
            result.errors.append(f"notification: {e}")

        try:
            batch = await self.push_gateway.send_multicast(
                tokens, self.title, body, icon=self.push_icon
            )
            result.push_dispatched = True
            result.tokens_succeeded = batch.success_count
            result.tokens_failed = batch.failure_count
            logger.info(
                "Sent push to user",
                subscription_id=subscription.id,
                user_id=user_id,
                success_count=batch.success_count,
                failure_count=batch.failure_count,
            )
        except Exception as e:
            logger.error(
                "Error sending push to user",
                subscription_id=subscription.id,
                user_id=user_id,
                error=str(e),
            )
            result.errors.append(f"push: {e}")

        return result
