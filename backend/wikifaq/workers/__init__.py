"""Celery application and standalone poller."""
