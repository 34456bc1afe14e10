"""Celery application for background catalog jobs."""

from celery import Celery
from celery.signals import worker_process_init

from ..logging_config import configure_logging
from ..settings import settings

celery_app = Celery(
    "zhanwen_admin",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["zhanwen_admin.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)


@worker_process_init.connect
def _configure_worker_logging(**kwargs) -> None:
    configure_logging("worker")
