import pytest
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, Mock, patch

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from subminder.db.models import Notification
from subminder.schemas.reminder_schemas import DueSubscription, FanoutOutcome
from subminder.services.reminders.fanout import REMINDER_TITLE, ReminderFanout
from subminder.services.reminders.scan import ReminderScan
from subminder.services.reminders.store import SqlAlchemyReminderStore
from subminder.utils.errors import DatabaseError, PushGatewayError

TODAY = date(2025, 3, 10)


def due_on(offset: int) -> datetime:
    day = TODAY + timedelta(days=offset)
    return datetime(day.year, day.month, day.day)


def notifications_for(db_session, user_id):
    return list(
        db_session.execute(select(Notification).where(Notification.user_id == user_id))
        .scalars()
        .all()
    )


class TestFanoutDelivery:
    """Test the notification record and push batch for matched subscriptions."""

    @pytest.mark.asyncio
    async def test_one_record_and_one_batch_for_all_devices(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        """Reminder due in 3 days for a user with two devices."""
        subscription_factory(
            sample_user, due_on(3), 3, service_name="Netflix", cost=15.99
        )
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        summary = await ReminderFanout(store, push_gateway).fan_out(due)

        assert len(push_gateway.batches) == 1
        batch = push_gateway.batches[0]
        assert sorted(batch["tokens"]) == ["token-laptop", "token-phone"]
        assert batch["title"] == "Upcoming Subscription Charge!"
        assert batch["body"] == "Your Netflix subscription for $15.99 is due in 3 days."
        assert batch["icon"] == "/favicon.ico"

        notifications = notifications_for(db_session, sample_user.id)
        assert len(notifications) == 1
        assert notifications[0].title == REMINDER_TITLE
        assert notifications[0].body == batch["body"]
        assert notifications[0].read is False
        assert notifications[0].created_at is not None

        assert summary.results[0].outcome == FanoutOutcome.DELIVERED
        assert summary.notifications_written == 1
        assert summary.pushes_dispatched == 1
        assert summary.tokens_succeeded == 2

    @pytest.mark.asyncio
    async def test_same_user_subscriptions_are_not_merged(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        subscription_factory(sample_user, due_on(1), 1, service_name="Spotify", cost=9.99)
        subscription_factory(sample_user, due_on(7), 7, service_name="iCloud", cost=2.99)
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        await ReminderFanout(store, push_gateway).fan_out(due)

        assert len(push_gateway.batches) == 2
        bodies = sorted(n.body for n in notifications_for(db_session, sample_user.id))
        assert bodies == [
            "Your Spotify subscription for $9.99 is due in 1 days.",
            "Your iCloud subscription for $2.99 is due in 7 days.",
        ]

    @pytest.mark.asyncio
    async def test_partial_token_failures_still_count_as_dispatched(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        push_gateway.failing_tokens = {"token-phone"}
        subscription_factory(sample_user, due_on(14), 14)
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        summary = await ReminderFanout(store, push_gateway).fan_out(due)

        result = summary.results[0]
        assert result.outcome == FanoutOutcome.DELIVERED
        assert result.push_dispatched is True
        assert result.tokens_succeeded == 1
        assert result.tokens_failed == 1


class TestFanoutSkips:
    """Test subscriptions that cannot be delivered."""

    @pytest.mark.asyncio
    async def test_user_without_tokens_gets_nothing(
        self, db_session, tokenless_user, subscription_factory, push_gateway, run_time
    ):
        subscription_factory(tokenless_user, due_on(3), 3)
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        summary = await ReminderFanout(store, push_gateway).fan_out(due)

        assert push_gateway.batches == []
        assert notifications_for(db_session, tokenless_user.id) == []
        assert summary.results[0].outcome == FanoutOutcome.SKIPPED_NO_TOKENS

    @pytest.mark.asyncio
    async def test_subscription_without_owner_is_skipped(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        subscription_factory(None, due_on(3), 3, service_name="Orphan")
        owned = subscription_factory(sample_user, due_on(3), 3, service_name="Owned")
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        summary = await ReminderFanout(store, push_gateway).fan_out(due)

        outcomes = {r.subscription_id: r.outcome for r in summary.results}
        assert outcomes[owned.id] == FanoutOutcome.DELIVERED
        assert FanoutOutcome.SKIPPED_NO_TENANT in outcomes.values()
        assert len(push_gateway.batches) == 1


class TestFanoutFailureIsolation:
    """Test that per-step and per-subscription failures stay contained."""

    @staticmethod
    def _due(subscription_id: str, user_id: str = "user-1") -> DueSubscription:
        return DueSubscription(
            id=subscription_id,
            user_id=user_id,
            service_name="Disney+",
            cost=7.99,
            next_bill_date=due_on(3),
            reminder_days=3,
            matched_offset=3,
        )

    @pytest.mark.asyncio
    async def test_push_failure_keeps_notification_record(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        push_gateway.error = PushGatewayError("FCM unavailable")
        subscription_factory(sample_user, due_on(3), 3)
        store = SqlAlchemyReminderStore(db_session)
        due = await ReminderScan(store).scan(run_time)

        summary = await ReminderFanout(store, push_gateway).fan_out(due)

        assert len(push_gateway.batches) == 1
        assert len(notifications_for(db_session, sample_user.id)) == 1
        result = summary.results[0]
        assert result.notification_written is True
        assert result.push_dispatched is False
        assert any("FCM unavailable" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_notification_write_failure_still_pushes(self, push_gateway):
        store = AsyncMock()
        store.list_device_tokens.return_value = ["token-a"]
        store.create_notification.side_effect = DatabaseError("disk full")

        summary = await ReminderFanout(store, push_gateway).fan_out([self._due("sub-1")])

        assert len(push_gateway.batches) == 1
        result = summary.results[0]
        assert result.notification_written is False
        assert result.push_dispatched is True
        assert result.outcome == FanoutOutcome.DELIVERED

    @pytest.mark.asyncio
    async def test_one_broken_subscription_does_not_stop_others(self, push_gateway):
        store = AsyncMock()

        def tokens_for(user_id):
            if user_id == "broken-user":
                raise RuntimeError("token listing failed")
            return ["token-a", "token-b"]

        store.list_device_tokens.side_effect = tokens_for
        store.create_notification.return_value = "notification-1"

        summary = await ReminderFanout(store, push_gateway).fan_out(
            [self._due("sub-1", "broken-user"), self._due("sub-2")]
        )

        assert [r.outcome for r in summary.results] == [
            FanoutOutcome.FAILED,
            FanoutOutcome.DELIVERED,
        ]
        assert len(push_gateway.batches) == 1
        assert store.create_notification.await_count == 1


class TestFanoutOptions:
    """Test configurable message and dedupe behavior."""

    @pytest.mark.asyncio
    async def test_subscription_currency_symbol(self, push_gateway):
        store = AsyncMock()
        store.list_device_tokens.return_value = ["token-a"]
        store.create_notification.return_value = "notification-1"
        subscription = DueSubscription(
            id="sub-eur",
            user_id="user-1",
            service_name="Zattoo",
            cost=4.5,
            currency="EUR",
            next_bill_date=due_on(1),
            reminder_days=1,
        )

        await ReminderFanout(
            store, push_gateway, use_subscription_currency=True
        ).fan_out([subscription])

        assert push_gateway.batches[0]["body"] == (
            "Your Zattoo subscription for €4.50 is due in 1 days."
        )

    @pytest.mark.asyncio
    async def test_dedupe_suppresses_second_run_on_same_day(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        subscription_factory(sample_user, due_on(3), 3)
        store = SqlAlchemyReminderStore(db_session)
        fanout = ReminderFanout(store, push_gateway, dedupe_enabled=True)

        first = await fanout.fan_out(await ReminderScan(store).scan(run_time))
        second = await fanout.fan_out(await ReminderScan(store).scan(run_time))

        assert first.results[0].outcome == FanoutOutcome.DELIVERED
        assert second.results[0].outcome == FanoutOutcome.DUPLICATE
        assert len(push_gateway.batches) == 1
        assert len(notifications_for(db_session, sample_user.id)) == 1

    @pytest.mark.asyncio
    async def test_without_dedupe_repeated_runs_duplicate(
        self, db_session, sample_user, subscription_factory, push_gateway, run_time
    ):
        subscription_factory(sample_user, due_on(3), 3)
        store = SqlAlchemyReminderStore(db_session)
        fanout = ReminderFanout(store, push_gateway)

        await fanout.fan_out(await ReminderScan(store).scan(run_time))
        await fanout.fan_out(await ReminderScan(store).scan(run_time))

        assert len(push_gateway.batches) == 2
        assert len(notifications_for(db_session, sample_user.id)) == 2

    @pytest.mark.asyncio
    async def test_notify_logs_skip_reason(self, push_gateway):
        store = AsyncMock()
        store.list_device_tokens.return_value = []

        with patch("subminder.services.reminders.fanout.logger") as mock_logger:
            result = await ReminderFanout(store, push_gateway).notify(self._due_noowner())

        assert result.outcome == FanoutOutcome.SKIPPED_NO_TENANT
        mock_logger.warning.assert_called_once()
        store.list_device_tokens.assert_not_awaited()

    @staticmethod
    def _due_noowner() -> DueSubscription:
        return DueSubscription(
            id="sub-orphan",
            user_id=None,
            service_name="Hulu",
            cost=5.0,
            next_bill_date=due_on(7),
            reminder_days=7,
        )


class TestNotificationWriteErrors:
    """Test how the store reads integrity errors on notification writes."""

    @staticmethod
    def _lookup(value):
        result = Mock()
        result.scalar_one_or_none.return_value = value
        return result

    def _store(self, *lookups):
        session = Mock()
        session.execute.side_effect = [self._lookup(v) for v in lookups]
        session.commit.side_effect = IntegrityError(
            "INSERT INTO notifications", {}, Exception("FOREIGN KEY constraint failed")
        )
        return SqlAlchemyReminderStore(session), session

    @pytest.mark.asyncio
    async def test_foreign_key_violation_with_dedupe_key_raises(self):
        store, session = self._store(None, None)

        with pytest.raises(DatabaseError):
            await store.create_notification(
                "missing-user", REMINDER_TITLE, "body", dedupe_key="sub-1:2025-03-13:3"
            )

        session.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_key_is_suppressed(self):
        store, session = self._store(None, "notification-from-other-run")

        result = await store.create_notification(
            "user-1", REMINDER_TITLE, "body", dedupe_key="sub-1:2025-03-13:3"
        )

        assert result is None
        session.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_integrity_error_without_dedupe_key_raises(self):
        store, session = self._store()

        with pytest.raises(DatabaseError):
            await store.create_notification("missing-user", REMINDER_TITLE, "body")

        session.execute.assert_not_called()
