"""Operator process entry point."""

import asyncio
import logging
import signal

import logfire

from fanout.application.di import create_container
from fanout.config import Config, configure_logging
from fanout.infrastructure.runtime.controller import ControllerManager

logger = logging.getLogger(__name__)


def run() -> None:
    """Run every reconciler until SIGINT or SIGTERM."""
    config = Config()  # type: ignore[call-arg]
    configure_logging(config.logging)

    logfire.configure(send_to_logfire="if-token-present", service_name="fanout-operator")
    logfire.instrument_httpx()

    asyncio.run(serve(config))


async def serve(config: Config) -> None:
    container = create_container(config)
    try:
        manager = await container.get(ControllerManager)

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        async with manager:
            logger.info("Operator running")
            await stop.wait()
            logger.info("Shutdown requested")
    finally:
        await container.close()
