"""Server lifecycle state and connection liveness tracking."""

import asyncio
import enum
import logging
from typing import Optional

from registration.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.lifecycle"), {}
)


class ServerPhase(enum.Enum):
    """Process-level shutdown phases; transitions only move forward."""

    ACCEPTING = "accepting"
    DRAINING = "draining"
    STOPPED = "stopped"


class LivenessToken:
    """Marks one connection handler as running until released.

    Used as a context manager by the handler so the release happens on every
    exit path. Releasing twice is a no-op.
    """

    def __init__(self, lifecycle: "ServerLifecycle", peer: str) -> None:
        self._lifecycle = lifecycle
        self.peer = peer
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._lifecycle._release(self)  # pylint: disable=protected-access

    def __enter__(self) -> "LivenessToken":
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.release()


class ServerLifecycle:
    """Counts live connection handlers and coordinates the drain at shutdown.

    All methods must be called from the event loop thread; the counters are
    only ever touched there, so concurrent releases from many handler tasks
    cannot be lost.
    """

    def __init__(self) -> None:
        self._phase = ServerPhase.ACCEPTING
        self._active = 0
        self._issued = 0
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def phase(self) -> ServerPhase:
        return self._phase

    def is_draining(self) -> bool:
        """True once shutdown has begun, including after the drain finished."""
        return self._phase is not ServerPhase.ACCEPTING

    def is_stopped(self) -> bool:
        return self._phase is ServerPhase.STOPPED

    def active_connection_count(self) -> int:
        """Return the number of outstanding liveness tokens."""
        return self._active

    def issued_token_count(self) -> int:
        return self._issued

    def acquire_token(self, peer: str = "-") -> LivenessToken:
        """Issue a token for a handler that is about to be spawned."""
        if self._phase is ServerPhase.STOPPED:
            raise RuntimeError("cannot start a connection handler after shutdown")
        self._active += 1
        self._issued += 1
        self._drained.clear()
        return LivenessToken(self, peer)

    def _release(self, token: LivenessToken) -> None:
        self._active -= 1
        if LIFECYCLE_LOGGER.logger.isEnabledFor(logging.DEBUG):
            LIFECYCLE_LOGGER.debug(
                "Liveness token released",
                extra={
                    "event": "token_released",
                    "client": token.peer,
                    "active_connections": self._active,
                },
            )
        if self._active == 0:
            self._drained.set()
            if self._phase is ServerPhase.DRAINING:
                self._stop()

    def begin_draining(self) -> None:
        """Stop admitting work; enter STOPPED as soon as no handler is live."""
        if self._phase is not ServerPhase.ACCEPTING:
            return
        self._phase = ServerPhase.DRAINING
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown",
            extra={
                "event": "draining_started",
                "active_connections": self._active,
            },
        )
        if self._active == 0:
            self._stop()

    def _stop(self) -> None:
        self._phase = ServerPhase.STOPPED
        LIFECYCLE_LOGGER.info(
            "All connections drained",
            extra={"event": "drain_complete", "issued_tokens": self._issued},
        )

    async def wait_for_drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until every issued token has been released.

        Returns False when ``timeout`` elapses with handlers still running.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._active:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            try:
                await asyncio.wait_for(self._drained.wait(), remaining)
            except asyncio.TimeoutError:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={
                        "event": "shutdown_timeout",
                        "active_connections": self._active,
                    },
                )
                return False
        return True
