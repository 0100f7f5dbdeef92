"""
FastAPI dependencies.

The service container is built in the application lifespan and stored on
``app.state``; routes reach components through these providers so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Request

from wikifaq.services.container import ServiceContainer
from wikifaq.services.queue import ProcessingQueue


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_queue(request: Request) -> ProcessingQueue:
    return get_container(request).queue
