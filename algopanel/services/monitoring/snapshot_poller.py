"""Fixed-interval snapshot poller (status, trades, pnl).

Guarantees:
- Each fetch is stamped with a monotonically increasing sequence number; a
  response older than the latest applied one is dropped.
- A failed fetch is logged and reported, never raised out of the loop, and
  never clears the last good snapshot (stale data beats no data).
- stop() bumps an epoch; anything issued before it is discarded on arrival.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

from algopanel.infrastructure.engine.errors import PanelError
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.infrastructure.utils.timeutils import utc_now

T = TypeVar("T")


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    value: T
    seq: int
    received_at: datetime


class SnapshotPoller(Generic[T]):
    def __init__(self, name: str, fetch: Callable[[], Awaitable[T]]) -> None:
        self._logger = get_logger("poller", poller=name)
        self.name = name
        self._fetch = fetch

        self._issued_seq = 0
        self._applied_seq = 0
        self._epoch = 0
        self._in_flight = 0

        self._latest: Optional[Snapshot[T]] = None
        self._last_error: Optional[PanelError] = None
        self._last_success_at: Optional[datetime] = None

        self._task: Optional[asyncio.Task[None]] = None
        self._listeners: List[Callable[[T], None]] = []
        self._error_listeners: List[Callable[[PanelError], None]] = []

    # ---- read side ----
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def latest(self) -> Optional[T]:
        return self._latest.value if self._latest else None

    @property
    def snapshot(self) -> Optional[Snapshot[T]]:
        return self._latest

    @property
    def last_error(self) -> Optional[PanelError]:
        return self._last_error

    @property
    def last_success_at(self) -> Optional[datetime]:
        return self._last_success_at

    @property
    def is_stale(self) -> bool:
        return self._latest is not None and self._last_error is not None

    def subscribe(self, listener: Callable[[T], None]) -> None:
        self._listeners.append(listener)

    def on_error(self, listener: Callable[[PanelError], None]) -> None:
        self._error_listeners.append(listener)

    # ---- lifecycle ----
    def start(self, interval_sec: float) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(interval_sec))
        self._logger.info("poller_started", interval_sec=interval_sec)

    def stop(self) -> None:
        self._epoch += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
            self._logger.info("poller_stopped")

    def clear(self) -> None:
        """Forget everything fetched so far (used when the session ends)."""
        self._latest = None
        self._last_error = None
        self._last_success_at = None

    async def _run(self, interval_sec: float) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            if self._in_flight:
                # A refresh issued elsewhere is still out; this tick would only overlap it
                self._logger.debug("tick_skipped_in_flight")
            else:
                try:
                    await self.refresh()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self._logger.error("poller_loop_error", error=str(e))

            next_tick += interval_sec
            now = loop.time()
            while next_tick <= now:
                self._logger.debug("tick_skipped_overrun")
                next_tick += interval_sec
            await asyncio.sleep(next_tick - now)

    # ---- one fetch ----
    async def refresh(self) -> Optional[T]:
        """Fetch once and apply the result if it is still the newest.

        Returns the value now considered latest (may be an older snapshot when
        this fetch failed or arrived out of order), or None.
        """
        self._issued_seq += 1
        seq = self._issued_seq
        epoch = self._epoch

        self._in_flight += 1
        try:
            value = await self._fetch()
        except PanelError as e:
            self._record_failure(seq, epoch, e)
            return self.latest
        finally:
            self._in_flight -= 1

        if epoch != self._epoch:
            self._logger.debug("response_discarded_after_stop", seq=seq)
            return None
        if seq <= self._applied_seq:
            self._logger.debug("response_out_of_order", seq=seq, applied_seq=self._applied_seq)
            return self.latest

        self._applied_seq = seq
        self._latest = Snapshot(value=value, seq=seq, received_at=utc_now())
        self._last_success_at = self._latest.received_at
        self._last_error = None

        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                self._logger.error("poller_listener_error", error=str(e))
        return value

    def _record_failure(self, seq: int, epoch: int, error: PanelError) -> None:
        if epoch != self._epoch or seq <= self._applied_seq:
            self._logger.debug("failure_discarded", seq=seq, error=str(error))
            return

        self._last_error = error
        self._logger.warning("poll_failed", seq=seq, error=str(error), stale=self._latest is not None)
        for listener in list(self._error_listeners):
            try:
                listener(error)
            except Exception as e:
                self._logger.error("poller_listener_error", error=str(e))
