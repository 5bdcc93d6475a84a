from celery import Celery
from callflow.core.config import settings

celery_app = Celery(
    "callflow",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["callflow.tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=60,
    worker_prefetch_multiplier=1,
)
