"""
Standalone queue poller.

Alternative to the Celery beat schedule for single-host deployments:

    python -m wikifaq.workers.poller

Runs an orchestrator batch every WORKER_POLL_INTERVAL_SECONDS until
SIGINT/SIGTERM.
"""

import asyncio
import signal

from wikifaq.core.config import get_settings
from wikifaq.core.logging import get_logger, setup_logging
from wikifaq.services.container import ServiceContainer

logger = get_logger(__name__)


async def run_poller() -> None:
    settings = get_settings()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    container = await ServiceContainer.create(settings)
    logger.info(
        "poller_started",
        interval=settings.WORKER_POLL_INTERVAL_SECONDS,
        concurrency=settings.WORKER_CONCURRENCY,
    )
    try:
        await container.orchestrator.poll_forever(
            settings.WORKER_POLL_INTERVAL_SECONDS,
            stop_event=stop_event,
        )
    finally:
        await container.aclose()
        logger.info("poller_stopped")


def main() -> None:
    setup_logging()
    asyncio.run(run_poller())


if __name__ == "__main__":
    main()
