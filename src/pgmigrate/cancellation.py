"""
Cooperative cancellation for migration tasks.

A single CancellationToken is created per run and passed explicitly to every
task and external operation; there is no global or context-local
cancellation state. Tasks observe the token at two points:

1. Before starting an external operation (raise_if_cancelled).
2. While the operation is outstanding, by racing its completion against
   the signal (race). When the signal wins, the operation's termination
   callback runs and CancellationError is raised instead of whatever error
   the terminated operation would have produced.

Example:
    >>> token = CancellationToken()
    >>> loop.add_signal_handler(signal.SIGINT, token.cancel)
    >>>
    >>> process = await asyncio.create_subprocess_exec("pg_dump", ...)
    >>> returncode = await token.race(
    ...     process.wait(),
    ...     on_cancel=process.kill,
    ...     operation="pg_dump",
    ...     unit="orders",
    ... )
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pgmigrate.exceptions import CancellationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Best-effort termination hook; may be a plain function or a coroutine function
TerminationCallback = Callable[[], Any]


class CancellationToken:
    """
    Shared, set-once cancellation signal.

    cancel() is idempotent: only the first call records a reason and wakes
    waiters; later calls are no-ops.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason given to the first cancel() call, if any."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """
        Signal cancellation to every task observing this token.

        Safe to call from a signal handler registered with
        loop.add_signal_handler().

        Args:
            reason: Optional description, e.g. the signal name.
        """
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.warning("Cancellation requested%s", f" ({reason})" if reason else "")

    async def wait(self) -> None:
        """Block until cancellation is signalled."""
        await self._event.wait()

    def raise_if_cancelled(
        self,
        operation: str | None = None,
        unit: str | None = None,
    ) -> None:
        """
        Raise CancellationError if cancellation has been signalled.

        Args:
            operation: Operation about to start, for the error message.
            unit: Unit the operation belongs to.

        Raises:
            CancellationError: If the token is cancelled.
        """
        if self._event.is_set():
            raise CancellationError(operation, unit=unit)

    async def race(
        self,
        awaitable: Awaitable[T],
        *,
        on_cancel: TerminationCallback | None = None,
        operation: str | None = None,
        unit: str | None = None,
    ) -> T:
        """
        Await an operation, abandoning it if cancellation fires first.

        If the operation completes first its result (or exception) is
        returned as-is. If the signal fires first, on_cancel is invoked as
        a best-effort termination of the underlying work, the operation is
        cancelled and awaited, and CancellationError is raised.

        Args:
            awaitable: The outstanding operation.
            on_cancel: Termination hook for the underlying work (e.g.
                process.kill). Failures of the hook are logged, not raised.
            operation: Operation name, for the error message.
            unit: Unit the operation belongs to.

        Returns:
            The operation's result.

        Raises:
            CancellationError: If the signal fired before completion.
        """
        operation_task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            await self._abandon(operation_task, on_cancel, operation, unit)
            raise CancellationError(operation, unit=unit)

        signal_task = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {operation_task, signal_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            operation_task.cancel()
            raise
        finally:
            signal_task.cancel()

        if operation_task in done:
            return operation_task.result()

        await self._abandon(operation_task, on_cancel, operation, unit)
        raise CancellationError(operation, unit=unit)

    async def _abandon(
        self,
        operation_task: asyncio.Future[Any],
        on_cancel: TerminationCallback | None,
        operation: str | None,
        unit: str | None,
    ) -> None:
        """Terminate the underlying work and reap the abandoned operation."""
        if on_cancel is not None:
            try:
                result = on_cancel()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Failed to terminate %s of %s: %s",
                    operation or "operation",
                    unit or "run",
                    e,
                )

        operation_task.cancel()
        await asyncio.wait({operation_task})
        if not operation_task.cancelled() and operation_task.exception() is not None:
            logger.debug(
                "%s of %s ended with %r after cancellation",
                operation or "operation",
                unit or "run",
                operation_task.exception(),
            )


SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)


def register_signals(
    token: CancellationToken,
    loop: asyncio.AbstractEventLoop | None = None,
) -> None:
    """
    Cancel the token when SIGTERM or SIGINT is received.

    Args:
        token: Token to cancel
        loop: Event loop to register handlers on. Defaults to the
              running event loop.

    Note:
        On platforms without loop.add_signal_handler (Windows) the
        default handlers stay in place and Ctrl+C raises KeyboardInterrupt.
    """
    loop = loop or asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, token.cancel, sig.name)
            logger.debug("Registered %s handler", sig.name)
        except NotImplementedError:
            logger.warning("Signal handling not supported on this platform for %s", sig.name)


def unregister_signals(loop: asyncio.AbstractEventLoop | None = None) -> None:
    """Remove the handlers installed by register_signals."""
    loop = loop or asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except (NotImplementedError, ValueError):
            pass


__all__ = [
    "CancellationToken",
    "TerminationCallback",
    "SHUTDOWN_SIGNALS",
    "register_signals",
    "unregister_signals",
]
