"""
Ephemeral uvicorn server used only to snapshot the host application.

Usage:
    with ephemeral_server(app) as address:
        requests.get(f"{address}/")
"""

from __future__ import annotations

import contextlib
import logging
import socket
import threading
import time
from collections.abc import Callable, Iterator
from typing import Any

import uvicorn

from niobium.exceptions import ServerStartError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.01


class EphemeralServer:
    """
    uvicorn running in a background thread on an OS-assigned port.

    The socket is bound before uvicorn starts so the port is known up front.
    ``shutdown`` blocks until uvicorn has closed every connection.
    """

    def __init__(self, app: Any, *, host: str = "127.0.0.1", startup_timeout: float = 10.0) -> None:
        self._app = app
        self._host = host
        self._startup_timeout = startup_timeout
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._socket: socket.socket | None = None
        self._lock = threading.Lock()
        self._stopped = False

    def start(self) -> str:
        """Start serving and return the loopback base address."""
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self._host, 0))
        port = sock.getsockname()[1]
        self._socket = sock

        config = uvicorn.Config(
            self._app,
            host=self._host,
            port=port,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="auto",
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name="niobium-ephemeral-server",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + self._startup_timeout
        while not self._server.started:
            if not self._thread.is_alive():
                self.shutdown()
                raise ServerStartError("Ephemeral server exited during startup")
            if time.monotonic() > deadline:
                self.shutdown()
                raise ServerStartError(timeout_seconds=self._startup_timeout)
            time.sleep(_POLL_INTERVAL)

        host = f"[{self._host}]" if family == socket.AF_INET6 else self._host
        address = f"http://{host}:{port}"
        logger.info("Ephemeral server started", extra={"address": address})
        return address

    def shutdown(self) -> None:
        """Stop the server and wait for it to finish. Safe to call repeatedly."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None and self._thread.is_alive():
            self._thread.join()
        if self._socket is not None:
            self._socket.close()
        logger.debug("Ephemeral server stopped")


def start(app: Any, *, host: str = "127.0.0.1", startup_timeout: float = 10.0) -> tuple[str, Callable[[], None]]:
    """Start ``app`` on a free port; return ``(base_address, shutdown)``."""
    server = EphemeralServer(app, host=host, startup_timeout=startup_timeout)
    address = server.start()
    return address, server.shutdown


@contextlib.contextmanager
def ephemeral_server(app: Any, *, host: str = "127.0.0.1", startup_timeout: float = 10.0) -> Iterator[str]:
    """Serve ``app`` for the duration of the block, shutting down on every exit path."""
    address, shutdown = start(app, host=host, startup_timeout=startup_timeout)
    try:
        yield address
    finally:
        shutdown()
