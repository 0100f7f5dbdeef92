"""
Celery tasks for background processing.

Tasks are registered through ``celery_app.autodiscover_tasks``.
"""
