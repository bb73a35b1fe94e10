"""Main application entry point - runs the relay pipeline + HTTP/SSE server."""

import asyncio
import contextlib
import signal
import sys
from time import time

import uvicorn

from src.config.settings import settings
from src.utils.logger import logger
from src.utils.validators import ConfigValidator

shutdown_in_progress = False


class ObservatoryServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to main_async."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


async def main_async():
    """Main async application entry point."""
    from src.api.app import create_app
    from src.services.container import build_container

    logger.info("=" * 60)
    logger.info("Nostr Media Observatory - time-navigable media feed")
    logger.info("=" * 60)

    # Validate configuration
    is_valid, errors = ConfigValidator.validate_all()

    if not is_valid:
        logger.error("Configuration validation failed:")
        for error in errors:
            logger.error(f"  - {error}")
        sys.exit(1)

    logger.info("✓ Configuration validated successfully")

    # Initialize services
    container = build_container()
    app = create_app(container)
    server = ObservatoryServer(
        uvicorn.Config(
            app,
            host=settings.HOST,
            port=settings.PORT,
            log_level=settings.LOG_LEVEL.lower(),
        )
    )
    session_start_time = time()

    tasks = [
        asyncio.create_task(container.pipeline.initialize()),
        asyncio.create_task(server.serve()),
    ]

    stats = container.store.stats()
    logger.info(f"✓ Relays: {len(settings.relay_urls)}")
    logger.info(
        "✓ Archive: " + ", ".join(f"{count} {t.value}" for t, count in stats.items())
    )
    logger.info(f"✓ Listening on http://{settings.HOST}:{settings.PORT}")
    logger.info("=" * 60)

    # Setup signal handlers for graceful shutdown
    async def shutdown_handler(sig):
        """Handle shutdown signals gracefully."""
        global shutdown_in_progress

        # Guard against duplicate signals
        if shutdown_in_progress:
            logger.info(f"Shutdown already in progress, ignoring {sig.name} signal")
            return
        shutdown_in_progress = True

        uptime = int(time() - session_start_time)
        logger.info(f"Received {sig.name} signal after {uptime}s uptime...")

        server.should_exit = True

        # Closes the subscription, cancels retries/monitor, flushes the archive
        await container.pipeline.close()

        # Stop an initialize() still waiting on relays; the server drains on its own
        tasks[0].cancel()

        logger.info("✓ Shutdown complete")

    # Register signal handlers
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: asyncio.create_task(shutdown_handler(s)))

    # Wait for all tasks
    try:
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        if not shutdown_in_progress:
            await container.pipeline.close()


def main():
    """Main entry point."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
