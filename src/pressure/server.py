from __future__ import annotations

import logging
import signal
import sys
from typing import Optional

import uvicorn

from src.pressure.config import Settings
from src.pressure.log_config import configure_logging
from src.pressure.pressure_service import create_app
from src.pressure.shutdown.coordinator import EXIT_FORCED, ShutdownCoordinator

logger = logging.getLogger(__name__)


class PressureServer(uvicorn.Server):
    """uvicorn server that puts the coordinator into draining before it stops listening."""

    def __init__(self, config: uvicorn.Config, coordinator: ShutdownCoordinator):
        super().__init__(config)
        self.coordinator = coordinator

    def handle_exit(self, sig, frame) -> None:
        self.coordinator.begin_drain()
        super().handle_exit(sig, frame)


def run(settings: Optional[Settings] = None) -> int:
    settings = settings or Settings.from_env()
    configure_logging(settings)

    app = create_app(settings)
    coordinator: ShutdownCoordinator = app.state.coordinator

    # uvicorn restores and re-raises captured signals after serve(); with these
    # in place that re-raise only hits an idempotent begin_drain()
    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, lambda s, f: coordinator.begin_drain())

    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = PressureServer(config, coordinator)
    logger.info("Starting server on port %d", settings.port)
    server.run()

    if not server.started:
        logger.error("Server failed to start on %s:%d", settings.host, settings.port)
        return EXIT_FORCED
    return coordinator.server_stopped()


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
