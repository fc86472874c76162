"""
Celery application instance.

Imported by task modules and by the worker process:
    celery -A chain_agent.workers.celery_app worker --queues memory -l info
    celery -A chain_agent.workers.celery_app beat -l info
"""

from celery import Celery
from celery.schedules import crontab

from chain_agent.core.config import get_settings

settings = get_settings()

celery = Celery(
    "chain_agent",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["chain_agent.workers.tasks"],
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "chain_agent.workers.tasks.prune_threads": {"queue": "memory"},
    },
    # Retention sweep once a day
    beat_schedule={
        "prune-idle-threads": {
            "task": "chain_agent.workers.tasks.prune_threads",
            "schedule": crontab(hour=3, minute=0),
            "kwargs": {"older_than_days": 30},
        },
    },
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
