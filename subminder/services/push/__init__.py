from functools import lru_cache

from .base import PushGateway
from .fcm_gateway import FcmPushGateway, create_push_gateway


@lru_cache(maxsize=1)
def get_push_gateway() -> PushGateway:
    """Process-wide push gateway, created on first use."""
    return create_push_gateway()


__all__ = ["PushGateway", "FcmPushGateway", "create_push_gateway", "get_push_gateway"]
