from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class DueSubscription(BaseModel):
    """Snapshot of a subscription matched by the reminder scan."""

    id: str = Field(..., description="Subscription ID")
    user_id: Optional[str] = Field(None, description="Owning user, from the parent relation")
    service_name: str = Field(..., description="Display name of the service")
    cost: float = Field(..., ge=0, description="Amount charged per cycle")
    currency: str = Field("USD", description="Currency code of the cost")
    next_bill_date: datetime = Field(..., description="Next charge date, naive UTC")
    reminder_days: Optional[int] = Field(None, description="Lead time chosen by the user")
    matched_offset: Optional[int] = Field(
        None, description="Scan offset whose window matched this subscription"
    )


class ReminderWindow(BaseModel):
    offset: int
    target_date: date
    start: datetime
    end: datetime


class TokenDeliveryResult(BaseModel):
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class PushBatchResult(BaseModel):
    responses: List[TokenDeliveryResult] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.responses if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.responses if not r.success)


class FanoutOutcome(str, Enum):
    DELIVERED = "delivered"
    SKIPPED_NO_TENANT = "skipped_no_tenant"
    SKIPPED_NO_TOKENS = "skipped_no_tokens"
    DUPLICATE = "duplicate"
    FAILED = "failed"


class SubscriptionFanoutResult(BaseModel):
    subscription_id: str
    user_id: Optional[str] = None
    outcome: FanoutOutcome
    notification_id: Optional[str] = None
    notification_written: bool = False
    push_dispatched: bool = False
    tokens_targeted: int = 0
    tokens_succeeded: int = 0
    tokens_failed: int = 0
    errors: List[str] = Field(default_factory=list)


class FanoutSummary(BaseModel):
    results: List[SubscriptionFanoutResult] = Field(default_factory=list)

    def count(self, outcome: FanoutOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def notifications_written(self) -> int:
        return sum(1 for r in self.results if r.notification_written)

    @property
    def pushes_dispatched(self) -> int:
        return sum(1 for r in self.results if r.push_dispatched)

    @property
    def tokens_succeeded(self) -> int:
        return sum(r.tokens_succeeded for r in self.results)

    @property
    def tokens_failed(self) -> int:
        return sum(r.tokens_failed for r in self.results)


class RunStatus(str, Enum):
    EMPTY = "empty"
    COMPLETE = "complete"
    QUERY_FAILED = "query_failed"


class ReminderRunResult(BaseModel):
    status: RunStatus
    run_time: datetime
    matched_count: int = 0
    notifications_written: int = 0
    pushes_dispatched: int = 0
    tokens_succeeded: int = 0
    tokens_failed: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    error: Optional[str] = None
    error_details: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != RunStatus.QUERY_FAILED
