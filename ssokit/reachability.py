"""Network reachability sensing.

A Reachability source reports edge events only: the handlers run when
the network becomes reachable or unreachable, never twice in a row for
the same state.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import contextlib
import logging

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("ssokit.reachability")


class Reachability(ABC):
    """Abstract reachability source."""

    def __init__(self) -> None:
        """Initialize with unknown reachability."""
        self.reachable: bool | None = None
        self._on_reachable: Callable[[], None] | None = None
        self._on_unreachable: Callable[[], None] | None = None

    def set_handlers(
        self,
        on_reachable: Callable[[], None] | None,
        on_unreachable: Callable[[], None] | None,
    ) -> None:
        """Set the edge handlers. Both are called on the event loop thread."""
        self._on_reachable = on_reachable
        self._on_unreachable = on_unreachable

    @abstractmethod
    async def start(self) -> None:
        """Start sensing.

        Raises
        ------
        OSError
            If sensing cannot start.
        """

    async def stop(self) -> None:  # noqa: B027
        """Stop sensing."""

    def _emit(self, reachable: bool) -> None:
        if reachable == self.reachable:
            return
        previous, self.reachable = self.reachable, reachable
        # The first observation only establishes the baseline.
        if previous is None and reachable:
            return
        logger.info("Network became %s", "reachable" if reachable else "unreachable")
        handler = self._on_reachable if reachable else self._on_unreachable
        if handler is not None:
            handler()


class ManualReachability(Reachability):
    """Reachability driven by the application.

    Use when the platform already reports connectivity changes, or in
    tests.
    """

    async def start(self) -> None:
        """Nothing to start."""

    def set_reachable(self, reachable: bool) -> None:
        """Report the current connectivity."""
        self._emit(reachable)


class PollingReachability(Reachability):
    """Reachability sensed by periodically opening a TCP connection.

    Parameters
    ----------
    host : str
        Host to probe, typically the issuer host.
    port : int
        Port to probe (default ``443``).
    interval : float
        Seconds between probes (default ``10``).
    connect_timeout : float
        Seconds before a probe counts as failed (default ``3``).
    """

    def __init__(
        self,
        host: str,
        port: int = 443,
        interval: float = 10.0,
        connect_timeout: float = 3.0,
    ) -> None:
        """Initialize the poller."""
        super().__init__()
        self.host = host
        self.port = port
        self.interval = interval
        self.connect_timeout = connect_timeout
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the polling task is active."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the polling task."""
        if self.is_running:
            return
        if not self.host:
            msg = "PollingReachability needs a host to probe"
            raise OSError(msg)
        self._task = asyncio.get_running_loop().create_task(self._poll())
        logger.debug("Polling %s:%d every %.0fs", self.host, self.port, self.interval)

    async def stop(self) -> None:
        """Cancel the polling task."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def probe(self) -> bool:
        """Attempt one connection. Returns whether it succeeded."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("Probe of %s:%d failed: %s", self.host, self.port, exc)
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def _poll(self) -> None:
        while True:
            self._emit(await self.probe())
            await asyncio.sleep(self.interval)
