import pytest
from datetime import datetime, timezone
from typing import Generator, List, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subminder.db.models import (
    Base,
    Currency,
    DeviceToken,
    Subscription,
    SubscriptionCategory,
    SubscriptionCycle,
    User,
)
from subminder.schemas.reminder_schemas import PushBatchResult, TokenDeliveryResult
from subminder.services.push.base import PushGateway


# Test database setup
TEST_DATABASE_URL = "sqlite://"

# 08:00 in Skopje (CET, UTC+1) on 2025-03-10
RUN_TIME = datetime(2025, 3, 10, 7, 0, tzinfo=timezone.utc)


class FakePushGateway(PushGateway):
    """Records every batch it is asked to send."""

    def __init__(self, failing_tokens: Sequence[str] = (), error: Optional[Exception] = None):
        self.batches: List[dict] = []
        self.failing_tokens = set(failing_tokens)
        self.error = error

    async def send_multicast(self, tokens, title, body, icon=None) -> PushBatchResult:
        self.batches.append(
            {"tokens": list(tokens), "title": title, "body": body, "icon": icon}
        )
        if self.error is not None:
            raise self.error
        return PushBatchResult(
            responses=[
                TokenDeliveryResult(
                    token=token,
                    success=token not in self.failing_tokens,
                    message_id=None if token in self.failing_tokens else f"msg-{token}",
                    error="registration-token-not-registered"
                    if token in self.failing_tokens
                    else None,
                )
                for token in tokens
            ]
        )


@pytest.fixture
def test_engine():
    """Create test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(engine)

    yield engine
    engine.dispose()


@pytest.fixture
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    session_maker = sessionmaker(bind=test_engine, class_=Session, expire_on_commit=False)

    with session_maker() as session:
        yield session
        session.rollback()


@pytest.fixture
def push_gateway() -> FakePushGateway:
    return FakePushGateway()


# Test data factories
def make_subscription(
    db_session: Session,
    user: Optional[User],
    next_bill_date: datetime,
    reminder_days: Optional[int],
    service_name: str = "Netflix",
    cost: float = 15.99,
    currency: Currency = Currency.USD,
) -> Subscription:
    subscription = Subscription(
        user_id=user.id if user else None,
        service_name=service_name,
        cost=cost,
        currency=currency,
        cycle=SubscriptionCycle.MONTHLY,
        next_bill_date=next_bill_date,
        reminder_days=reminder_days,
        category=SubscriptionCategory.ENTERTAINMENT,
        management_url="https://example.com/account",
    )
    db_session.add(subscription)
    db_session.commit()
    return subscription


def register_tokens(db_session: Session, user: User, *tokens: str) -> None:
    for token in tokens:
        db_session.add(DeviceToken(user_id=user.id, token=token))
    db_session.commit()


@pytest.fixture
def sample_user(db_session: Session) -> User:
    """Create a user with two registered devices."""
    user = User(email="ana@example.com", display_name="Ana")
    db_session.add(user)
    db_session.commit()
    register_tokens(db_session, user, "token-laptop", "token-phone")
    return user


@pytest.fixture
def tokenless_user(db_session: Session) -> User:
    """Create a user that never enabled push notifications."""
    user = User(email="marko@example.com", display_name="Marko")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def subscription_factory(db_session: Session):
    """Factory for subscriptions persisted in the test database."""

    def _create(user: Optional[User], next_bill_date: datetime, reminder_days: Optional[int], **kwargs):
        return make_subscription(db_session, user, next_bill_date, reminder_days, **kwargs)

    return _create


@pytest.fixture
def run_time() -> datetime:
    return RUN_TIME
