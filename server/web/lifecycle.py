"""Listener lifecycle for the application server.

``ServerLifecycle`` binds the HTTP listener, tells bind-time failures apart
from faults that happen once connections are being accepted, and drains the
listener when the process is asked to terminate::

    [unbound] --start() ok--> [listening] --termination--> [draining] --closed--> [terminated]
    [unbound] --start() fails--> [failed]
    [listening] --runtime error--> [listening]

The manager never raises out of its public methods; outcomes are reported
through the injected logger and the ``state`` attribute.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import errno
import logging
import signal
import socket
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import uvicorn

from server.web.logs import VERBOSE


DEFAULT_HOST = "0.0.0.0"
DEFAULT_BACKLOG = 2048
HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)

ASGIHandler = Callable[..., Awaitable[None]]


class ServerState(enum.Enum):
    UNBOUND = "unbound"
    LISTENING = "listening"
    FAILED = "failed"
    DRAINING = "draining"
    TERMINATED = "terminated"


def bind_socket(host: str, port: int, backlog: int = DEFAULT_BACKLOG) -> socket.socket:
    """Bind and listen on ``host:port``; the caller owns the returned socket."""
    family, sock_type, proto, _, address = socket.getaddrinfo(
        host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE
    )[0]
    sock = socket.socket(family, sock_type, proto)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(address)
        sock.listen(backlog)
    except OSError:
        sock.close()
        raise
    return sock


class _Listener(uvicorn.Server):
    """uvicorn server that reports readiness and leaves signals to its owner."""

    def __init__(self, config: uvicorn.Config, on_started: Callable[[], None]) -> None:
        super().__init__(config)
        self._on_started = on_started

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return

    async def startup(self, sockets: Optional[List[socket.socket]] = None) -> None:
        try:
            await super().startup(sockets=sockets)
        except SystemExit:
            # newer uvicorn exits the process when application startup fails
            self.should_exit = True
        if not self.should_exit:
            self._on_started()


class ServerLifecycle:
    """Own a single HTTP listener from bind to drained close."""

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        host: str = DEFAULT_HOST,
        drain_timeout: Optional[float] = None,
        backlog: int = DEFAULT_BACKLOG,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.host = host
        self.drain_timeout = drain_timeout
        self.backlog = backlog
        self.state = ServerState.UNBOUND
        self.port: Optional[int] = None
        self._started = False
        self._pending_signal: Optional[str] = None
        self._listener: Optional[_Listener] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_exception_handler: Optional[Callable[..., Any]] = None
        self._signal_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def started(self) -> bool:
        """True once the listener began accepting connections; never reset."""
        return self._started

    def start(self, handler: ASGIHandler, port: int) -> None:
        """Bind ``handler`` to ``port`` and begin serving in the background.

        Must be called from a coroutine running on the event loop that will
        serve the listener. Readiness is announced by the "awaiting
        connections" log record, not by a return value.
        """
        if self.state is not ServerState.UNBOUND:
            self._logger.warning("Listener already %s, ignoring start request", self.state.value)
            return
        self.port = port
        if not 0 < port < 65536:
            self._logger.error("Unable to listen on port %s: not a valid TCP port", port)
            self._fail()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.error("Unable to listen on port %s: no running event loop", port)
            self._fail()
            return
        try:
            sock = bind_socket(self.host, port, self.backlog)
        except OSError as exc:
            self.report_error(exc)
            self._fail()
            return

        try:
            config = uvicorn.Config(
                handler,
                log_config=None,
                access_log=False,
                proxy_headers=False,
                lifespan="auto",
                backlog=self.backlog,
                timeout_graceful_shutdown=self.drain_timeout,
            )
            listener = _Listener(config, self._mark_listening)
            self._task = loop.create_task(self._serve(listener, sock))
        except Exception as exc:
            sock.close()
            self.report_error(exc)
            self._fail()
            return
        self._listener = listener

    async def _serve(self, listener: _Listener, sock: socket.socket) -> None:
        faulted = False
        try:
            await listener.serve(sockets=[sock])
        except Exception as exc:
            faulted = True
            self.report_error(exc)
            if not self._started:
                self.state = ServerState.FAILED
        finally:
            sock.close()
        self._finish(faulted)

    def _mark_listening(self) -> None:
        self._started = True
        self.state = ServerState.LISTENING
        self._loop = asyncio.get_running_loop()
        self._previous_exception_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._handle_loop_exception)
        self._logger.info("HTTP server awaiting connections on port %d", self.port)
        if self._pending_signal is not None:
            # uvicorn skips its shutdown sequence if exit is requested during startup
            self._loop.call_soon(self._drain, self._pending_signal)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            self._logger.error("Unexpected server error: %s", context.get("message"))
            return
        self.report_error(exc)

    def report_error(self, exc: BaseException) -> None:
        """Log ``exc`` as a bind failure or, once listening, as a runtime fault."""
        if self._started:
            self._logger.error("Unexpected server error: %s", exc, exc_info=exc)
            return
        code = getattr(exc, "errno", None)
        if code == errno.EACCES:
            self._logger.error(
                "Unable to listen on port %s. This is usually due to the process not having "
                "permissions to bind to this port. Did you mean to run the server in dev mode "
                "with a non-privileged port instead?",
                self.port,
            )
        elif code == errno.EADDRINUSE:
            self._logger.error(
                "Unable to listen on port %s because another process is already listening on "
                "this port. Do you have another instance of the server already running?",
                self.port,
            )
        else:
            self._logger.error("Unable to listen on port %s: %s", self.port, exc)

    def on_termination_signal(self, signame: str = "SIGTERM") -> None:
        """Stop accepting connections and close once in-flight requests finish."""
        if self.state is ServerState.LISTENING:
            self._drain(signame)
        elif self.state is ServerState.DRAINING:
            self._logger.warning("%s received, already draining connections", signame)
        elif self.state is ServerState.UNBOUND and self._listener is not None:
            self._logger.info("%s received before listener was ready, draining once started", signame)
            self._pending_signal = signame
        else:
            self._logger.warning("%s received, no active listener", signame)

    def _drain(self, signame: str) -> None:
        if self.state is not ServerState.LISTENING:
            return
        self.state = ServerState.DRAINING
        self._logger.info("%s received, draining connections...", signame)
        self._listener.should_exit = True

    def _fail(self) -> None:
        self.state = ServerState.FAILED
        self._close()

    def _finish(self, faulted: bool = False) -> None:
        if not self._started:
            if self.state is not ServerState.FAILED:
                self._logger.error("Unable to listen on port %s: application startup failed", self.port)
            self._fail()
            return
        if self.state is ServerState.LISTENING and not faulted:
            self._logger.error("Unexpected server error: listener stopped without a termination request")
        self.state = ServerState.TERMINATED
        self._logger.log(VERBOSE, "HTTP server closed. Terminating process")
        self._close()

    def _close(self) -> None:
        if self._loop is not None:
            self._loop.set_exception_handler(self._previous_exception_handler)
            self._previous_exception_handler = None
            self._loop = None
        if self._signal_loop is not None:
            for sig in HANDLED_SIGNALS:
                self._signal_loop.remove_signal_handler(sig)
            self._signal_loop = None
        self._closed.set()

    def install_signal_handlers(self) -> None:
        """Route SIGTERM and SIGINT on the running loop to ``on_termination_signal``."""
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, self.on_termination_signal, sig.name)
        self._signal_loop = loop

    async def wait_closed(self) -> ServerState:
        await self._closed.wait()
        return self.state
