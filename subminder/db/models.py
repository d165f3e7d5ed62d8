from typing import List, Optional
from datetime import datetime
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Float,
    Text,
    ForeignKey,
    Enum,
    Index,
    func,
    CheckConstraint,
    DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import enum


class Base(DeclarativeBase):
    pass


def new_uuid() -> str:
    return str(uuid.uuid4())


# Enums
class Currency(enum.Enum):
    USD = "USD"
    EUR = "EUR"
    MKD = "MKD"
    GBP = "GBP"


class SubscriptionCycle(enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionCategory(enum.Enum):
    ENTERTAINMENT = "Entertainment"
    WORK = "Work"
    HEALTH = "Health"
    UTILITY = "Utility"
    OTHER = "Other"


# Lead times the client lets a user pick, in days
REMINDER_DAY_CHOICES = (1, 3, 7, 14)


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


# Models
class User(Base, AuditMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email: Mapped[Optional[str]] = mapped_column(
        String(320), unique=True
    )  # RFC 5321 max length
    display_name: Mapped[Optional[str]] = mapped_column(String(200))

    # Relationships
    subscriptions: Mapped[List["Subscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    device_tokens: Mapped[List["DeviceToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    notifications: Mapped[List["Notification"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


class Subscription(Base, AuditMixin):
    """A recurring payment, owned and edited by the client; read-only here."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    # Structural parent. Nullable so rows detached from a user can still exist
    user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE")
    )
    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    cost: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Currency] = mapped_column(
        Enum(Currency), default=Currency.USD, nullable=False
    )
    cycle: Mapped[SubscriptionCycle] = mapped_column(
        Enum(SubscriptionCycle), default=SubscriptionCycle.MONTHLY, nullable=False
    )
    # Calendar date stored as naive UTC midnight
    next_bill_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reminder_days: Mapped[Optional[int]] = mapped_column(Integer)
    category: Mapped[SubscriptionCategory] = mapped_column(
        Enum(SubscriptionCategory), default=SubscriptionCategory.OTHER, nullable=False
    )
    management_url: Mapped[Optional[str]] = mapped_column(String(2048))

    # Relationships
    user: Mapped[Optional["User"]] = relationship(back_populates="subscriptions")

    # Constraints
    __table_args__ = (
        CheckConstraint("cost >= 0", name="ck_subscriptions_cost_non_negative"),
        Index("idx_subscriptions_reminder_due", "reminder_days", "next_bill_date"),
        Index("idx_subscriptions_user", "user_id"),
    )


class DeviceToken(Base):
    """Push address of one registered device. Re-registering a token is a no-op."""

    __tablename__ = "device_tokens"

    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    token: Mapped[str] = mapped_column(String(512), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="device_tokens")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Only set when per-day deduplication is enabled
    dedupe_key: Mapped[Optional[str]] = mapped_column(String(128), unique=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="notifications")

    # Constraints
    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
