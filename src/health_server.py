#!/usr/bin/env python3
"""Liveness endpoint for the hosting platform (returns 200 with no payload semantics)"""

import logging
import threading
from typing import Optional

from flask import Flask
from werkzeug.serving import make_server

logger = logging.getLogger(__name__)


def create_app() -> Flask:
    app = Flask("rewards_watcher")

    @app.get("/")
    def home():
        return "ok", 200

    @app.get("/health")
    def health():
        return "ok", 200

    return app


class HealthServer:
    """Serves `create_app()` from a daemon thread until `shutdown()`"""

    def __init__(self, port: int, host: str = "0.0.0.0"):
        self.host = host
        self.port = port
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._server = make_server(self.host, self.port, create_app(), threaded=True)
        self._thread = threading.Thread(target=self._server.serve_forever, name="health-server", daemon=True)
        self._thread.start()
        logger.info(f"⚡ Health check running on port {self.port}")

    def shutdown(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        logger.info("Health check server stopped")
