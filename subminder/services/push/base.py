from abc import ABC, abstractmethod
from typing import Optional, Sequence

from subminder.schemas.reminder_schemas import PushBatchResult


class PushGateway(ABC):
    """Delivers one message to a batch of device tokens."""

    @abstractmethod
    async def send_multicast(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        icon: Optional[str] = None,
    ) -> PushBatchResult:
        """
        Attempt delivery to every token.

        Per-token failures are reported in the result and never raise; an
        exception means the batch itself could not be submitted.
        """
        pass
