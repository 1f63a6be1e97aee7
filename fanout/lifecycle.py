from __future__ import annotations

import logging
import math
import queue
import signal
from enum import Enum
from threading import Event, Lock, Thread

import uvicorn

logger = logging.getLogger("fanout.lifecycle")

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ServeError(Exception):
    pass


class LifecycleState(str, Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Lifecycle:
    """Owns the HTTP listener and its signal-driven shutdown.

    Shutdown flows through two waiter threads:
      1) signal waiter: first SIGINT/SIGTERM (or stop()) -> cancellation event
      2) shutdown waiter: cancellation event -> one graceful server shutdown

    In-flight requests get `grace_s` seconds to finish; after that the server
    is forced down and the overrun is logged.
    """

    def __init__(
        self,
        app,
        host: str = "0.0.0.0",
        port: int = 8080,
        grace_s: float = 10.0,
        server: uvicorn.Server | None = None,
    ):
        self.host = host
        self.port = port
        self.grace_s = grace_s
        if server is None:
            config = uvicorn.Config(
                app,
                host=host,
                port=port,
                log_config=None,
                timeout_graceful_shutdown=max(1, math.ceil(grace_s)),
            )
            server = uvicorn.Server(config)
        self.server = server
        self.state: LifecycleState | None = None
        self.shutdown_error: str | None = None

        self._signals: queue.SimpleQueue[int | None] = queue.SimpleQueue()
        self._cancelled = Event()
        self._shutdown_lock = Lock()
        self._shutdown_done = False
        self._serve_thr: Thread | None = None
        self._shutdown_thr: Thread | None = None

    def stop(self, signum: int = signal.SIGTERM) -> None:
        """Request shutdown exactly as if `signum` had been received."""
        self._signals.put(signum)

    def _on_signal(self, signum, frame) -> None:
        self._signals.put(signum)

    def serve(self, install_signals: bool = True) -> None:
        """Run the server until it is shut down.

        Signal handlers can only be installed from the main thread; the
        previous handlers are restored on return.
        """
        previous = {}
        if install_signals:
            for sig in STOP_SIGNALS:
                previous[sig] = signal.signal(sig, self._on_signal)

        # uvicorn leaves process signals alone when it runs off the main thread.
        self._serve_thr = Thread(target=self.server.run, name="http-server")
        self._shutdown_thr = Thread(target=self._wait_for_cancel, name="shutdown-waiter", daemon=True)
        signal_thr = Thread(target=self._wait_for_signal, name="signal-waiter", daemon=True)

        logger.info("Starting http server at %s:%d", self.host, self.port)
        self._serve_thr.start()
        signal_thr.start()
        self._shutdown_thr.start()
        try:
            # Short joins keep the main thread responsive to signals.
            while self._serve_thr.is_alive():
                self._serve_thr.join(0.05)
                with self._shutdown_lock:
                    if self.state is None and getattr(self.server, "started", False):
                        self.state = LifecycleState.RUNNING
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        stopped_on_request = self._cancelled.is_set()
        self._signals.put(None)
        self._cancelled.set()
        self._shutdown_thr.join()
        signal_thr.join()

        bound = getattr(self.server, "started", False)
        if self.state is not None or bound:
            self.state = LifecycleState.STOPPED
        if not stopped_on_request and not bound:
            raise ServeError(f"Could not listen on {self.host}:{self.port}")
        logger.info("Http server stopped")

    def _wait_for_signal(self) -> None:
        signum = self._signals.get()
        if signum is None:
            return
        logger.info("Received %s. Exiting...", signal.Signals(signum).name)
        self._cancelled.set()

    def _wait_for_cancel(self) -> None:
        self._cancelled.wait()
        if self._serve_thr is not None and self._serve_thr.is_alive():
            self._shutdown()

    def _shutdown(self) -> None:
        with self._shutdown_lock:
            if self._shutdown_done:
                return
            self._shutdown_done = True
            self.state = LifecycleState.STOPPING

        self.server.should_exit = True
        self._serve_thr.join(self.grace_s)
        if self._serve_thr.is_alive():
            self.shutdown_error = f"in-flight requests still running after {self.grace_s:g}s"
            logger.error("Could not gracefully shutdown the server: %s", self.shutdown_error)
            self.server.force_exit = True
