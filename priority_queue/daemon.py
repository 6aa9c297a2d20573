"""
Long-running queue server.

Holds the state directory for its lifetime and exposes the queue through:
- the HTTP API (uvicorn)
- the inbox directory watcher

Other processes must go through the HTTP API while the server runs.
"""

import sys
import logging
from pathlib import Path
from typing import Optional

import uvicorn

from priority_queue.api import QueueAPI
from priority_queue.config import ConfigManager
from priority_queue.inbox import InboxWatcher, INBOX_DIR_NAME
from priority_queue.service import QueueService


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"

logger = logging.getLogger("priority-queue")


def configure_logging(level: int = logging.INFO) -> None:
    """Log to stdout; keep watchdog's observer chatter out."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logging.getLogger("watchdog.observers.inotify_buffer").setLevel(logging.WARNING)
    logging.getLogger("watchdog.observers").setLevel(logging.WARNING)


class QueueDaemon:
    """
    Runs the queue service, inbox watcher and HTTP server together.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        host: Optional[str] = None,
        port: Optional[int] = None,
        watch_inbox: Optional[bool] = None
    ):
        """
        Initialize daemon.

        Args:
            config_manager: Loaded configuration
            host: HTTP bind address (default from settings)
            port: HTTP port (default from settings)
            watch_inbox: Enable the inbox watcher (default from settings)
        """
        settings = config_manager.settings

        self.state_dir: Path = config_manager.state_dir
        self.host = host or settings.host
        self.port = port or settings.port
        self.watch_inbox = settings.inbox_enabled if watch_inbox is None else watch_inbox

        self.service = QueueService(self.state_dir, settings, background=True)
        self.inbox: Optional[InboxWatcher] = None
        if self.watch_inbox:
            self.inbox = InboxWatcher(
                self.state_dir / INBOX_DIR_NAME,
                enqueue=self.service.enqueue,
                debounce_ms=settings.inbox_debounce_ms,
            )

    def start(self) -> None:
        """
        Start serving. Blocks until the HTTP server stops (SIGINT/SIGTERM).

        Raises:
            QueueLocked: If another process holds the state directory
        """
        logger.info("=" * 60)
        logger.info("Priority Queue Server Starting")
        logger.info("=" * 60)

        self.service.start()

        try:
            if self.inbox is not None:
                self.inbox.start()

            app = QueueAPI(self.service).create_app()
            logger.info(f"Task Queue server: http://{self.host}:{self.port}")
            uvicorn.run(app, host=self.host, port=self.port, log_level="warning")
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        logger.info("Priority Queue Server Shutting Down")

        if self.inbox is not None:
            self.inbox.stop()

        self.service.stop()
        logger.info("Server stopped")
