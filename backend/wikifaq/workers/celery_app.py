"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab

from wikifaq.core.config import get_settings

settings = get_settings()

# Create Celery application
celery_app = Celery(
    "wikifaq",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=2 * 60 * 60,  # a full batch of slow pages
    task_soft_time_limit=115 * 60,
    result_expires=3600,
    # One batch at a time per worker; concurrency lives inside the batch
    worker_prefetch_multiplier=1,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'process-pending-pages': {
        'task': 'pipeline.process_pending_pages',
        'schedule': float(settings.WORKER_POLL_INTERVAL_SECONDS),
        'options': {'queue': 'pipeline', 'expires': settings.WORKER_POLL_INTERVAL_SECONDS},
    },
    'repair-vector-flags': {
        'task': 'pipeline.repair_vector_flags',
        'schedule': crontab(minute=f'*/{settings.REPAIR_CHECK_INTERVAL_MINUTES}')
        if settings.REPAIR_CHECK_INTERVAL_MINUTES < 60 else crontab(minute='0'),
        'options': {'queue': 'repair'},
    },
    'fix-blank-vector-slugs': {
        'task': 'pipeline.fix_blank_vector_slugs',
        'schedule': crontab(minute='30', hour='3'),  # Daily at 3:30 AM
        'options': {'queue': 'repair'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'pipeline.process_*': {'queue': 'pipeline'},
    'pipeline.seed_*': {'queue': 'pipeline'},
    'pipeline.repair_*': {'queue': 'repair'},
    'pipeline.fix_*': {'queue': 'repair'},
    'pipeline.propagate_*': {'queue': 'repair'},
    'pipeline.recanonicalize_*': {'queue': 'repair'},
}

# Auto-discover tasks from wikifaq.tasks
celery_app.autodiscover_tasks(['wikifaq.tasks'], related_name='pipeline_tasks')
