"""Celery application configuration."""

from celery import Celery

from foldcss.core.config import settings

celery_app = Celery("foldcss")

broker_url = settings.celery_broker_url or settings.redis_url
result_backend = settings.celery_result_backend or settings.redis_url

# Each task launches its own Chromium; keep the per-task limits above the
# extraction timeout.
hard_limit_seconds = max(settings.extraction_timeout_ms // 1000 * 3, 60)

celery_app.conf.update(
    broker_url=broker_url,
    result_backend=result_backend,
    task_default_queue="foldcss",
    task_soft_time_limit=hard_limit_seconds - 30,
    task_time_limit=hard_limit_seconds,
    worker_max_tasks_per_child=50,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_always_eager=settings.debug,
    task_eager_propagates=False,
)

celery_app.autodiscover_tasks(["foldcss.tasks"], related_name="css_tasks")
