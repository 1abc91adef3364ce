"""One-shot shutdown signal fed by SIGINT and SIGTERM."""

import asyncio
import logging
import signal
from typing import Optional

from registration.domain.correlation_id import CorrelationLoggerAdapter

SIGNAL_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.lifecycle.signals"), {}
)


class SignalInstallError(RuntimeError):
    """Raised when the process cannot register its termination handlers."""


def _termination_signals() -> list[signal.Signals]:
    signals = [signal.SIGINT]
    if hasattr(signal, "SIGTERM"):
        signals.append(signal.SIGTERM)
    return signals


class ShutdownSignal:
    """Broadcast-once shutdown event shared by the accept loop and every handler.

    Resolves the first time ``trigger`` runs, whether from an installed OS
    signal handler or a direct call, and stays resolved for the rest of the
    process. Any number of tasks may ``await wait()`` concurrently.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._received: Optional[str] = None
        self._loop_handlers: list[signal.Signals] = []
        self._fallback_handlers: dict[signal.Signals, object] = {}

    @property
    def received(self) -> Optional[str]:
        """Name of the source that resolved the signal, if any."""
        return self._received

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def trigger(self, source: str = "manual") -> None:
        """Resolve the signal; later calls are ignored."""
        if self._event.is_set():
            SIGNAL_LOGGER.debug(
                "Shutdown already in progress",
                extra={"event": "shutdown_signal_repeated", "signal": source},
            )
            return
        self._received = source
        SIGNAL_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal_received", "signal": source},
        )
        self._event.set()

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Route SIGINT, and SIGTERM where available, into ``trigger``."""
        loop = loop or asyncio.get_running_loop()
        for sig in _termination_signals():
            try:
                loop.add_signal_handler(sig, self.trigger, sig.name)
                self._loop_handlers.append(sig)
            except NotImplementedError:
                # loops without add_signal_handler only get the interrupt
                if sig is signal.SIGINT:
                    self._install_fallback(loop, sig)
            except (ValueError, OSError, RuntimeError) as error:
                raise SignalInstallError(
                    f"failed to install {sig.name} handler"
                ) from error

    def _install_fallback(
        self, loop: asyncio.AbstractEventLoop, sig: signal.Signals
    ) -> None:
        def _forward(signum, _frame) -> None:
            loop.call_soon_threadsafe(self.trigger, signal.Signals(signum).name)

        try:
            self._fallback_handlers[sig] = signal.signal(sig, _forward)
        except (ValueError, OSError) as error:
            raise SignalInstallError(f"failed to install {sig.name} handler") from error

    def uninstall(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Restore the handlers that were in place before ``install``."""
        loop = loop or asyncio.get_running_loop()
        for sig in self._loop_handlers:
            loop.remove_signal_handler(sig)
        self._loop_handlers.clear()
        for sig, previous in self._fallback_handlers.items():
            signal.signal(sig, previous)
        self._fallback_handlers.clear()
