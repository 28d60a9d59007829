import logging

from app.core.celery_config import celery_app
from app.core.redis_client import get_redis_client
from app.services.token_store import TokenStore

logger = logging.getLogger(__name__)


@celery_app.task(bind=True)
def purge_expired_tokens_task(self) -> int:
    """Reclaim expired check-in tokens (scheduled by celery beat)."""
    store = TokenStore(get_redis_client())
    removed = store.purge()
    logger.info(f"Token purge finished: removed={removed}")
    return removed
