from celery import Celery

from app.core.config import TOKEN_PURGE_INTERVAL_SECONDS, get_redis_url


def make_celery(app_name: str = "workshop_checkin") -> Celery:
    redis_url = get_redis_url()
    celery = Celery(app_name, broker=redis_url, backend=redis_url, include=["app.tasks"])
    celery.conf.task_serializer = "json"
    celery.conf.result_serializer = "json"
    celery.conf.accept_content = ["json"]
    celery.conf.result_persistent = False
    celery.conf.task_track_started = True
    celery.conf.beat_schedule = {
        "purge-expired-checkin-tokens": {
            "task": "app.tasks.purge_expired_tokens_task",
            "schedule": float(TOKEN_PURGE_INTERVAL_SECONDS),
        },
    }
    return celery


celery_app = make_celery()
