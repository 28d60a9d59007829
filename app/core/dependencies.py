from fastapi import Depends

from app.core.redis_client import get_redis_client
from app.services.broadcaster import EventBroadcaster, broadcaster
from app.services.checkin import CheckinService
from app.services.token_store import TokenStore


def get_broadcaster() -> EventBroadcaster:
    return broadcaster


def get_token_store(redis_client=Depends(get_redis_client)) -> TokenStore:
    return TokenStore(redis_client)


def get_checkin_service(
    token_store: TokenStore = Depends(get_token_store),
    events: EventBroadcaster = Depends(get_broadcaster),
) -> CheckinService:
    return CheckinService(token_store, events)
