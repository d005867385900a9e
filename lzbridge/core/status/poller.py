from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..errors import TrackerFull
from .models import TransferContext, TransferStatus
from .reconciler import StatusReconciler


UpdateCallback = Callable[[TransferStatus], Union[None, Awaitable[None]]]
ReconcilerFactory = Callable[[], StatusReconciler]
Clock = Callable[[], float]


class TransferPoller:
    """Periodic, cancellable status loop for one transfer.

    The loop ends when the transfer executes, when the on-chain source sees
    the source tx revert, or once ``max_age_seconds`` have passed since
    ``start``. ``stop_reason`` records which.
    """

    def __init__(
        self,
        reconciler: StatusReconciler,
        context: TransferContext,
        *,
        interval_seconds: float = 5.0,
        max_age_seconds: Optional[float] = None,
        on_update: Optional[UpdateCallback] = None,
        logger: Optional[logging.Logger] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.reconciler = reconciler
        self.context = context
        self.interval_seconds = interval_seconds
        self.max_age_seconds = max_age_seconds
        self.on_update = on_update
        self.logger = logger or logging.getLogger("lzbridge.poller")
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._executed = asyncio.Event()
        self.tick_count = 0
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.stop_reason: Optional[str] = None

    @property
    def tx_hash(self) -> str:
        return self.context.tx_hash

    @property
    def status(self) -> Optional[TransferStatus]:
        return self.reconciler.status

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ---------------------------
    # Lifecycle
    # ---------------------------
    def start(self) -> None:
        if self.is_running:
            return
        self.reconciler.track(self.context)
        self.started_at = self._clock()
        self.finished_at = None
        self.stop_reason = None
        self._executed.clear()
        self._task = asyncio.create_task(self._run_loop(), name=f"transfer-poller-{self.tx_hash[:10]}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        if self.finished_at is None:
            self.finished_at = self._clock()
            self.stop_reason = "stopped"

    async def wait_until_executed(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._executed.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # ---------------------------
    # Loop
    # ---------------------------
    async def tick(self) -> TransferStatus:
        status = await self.reconciler.poll(self.tx_hash)
        self.tick_count += 1
        if self.on_update is not None:
            try:
                result = self.on_update(status)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("on_update callback failed for %s: %s", self.tx_hash, exc, exc_info=True)
        return status

    def _expired(self) -> bool:
        if self.max_age_seconds is None or self.started_at is None:
            return False
        return self._clock() - self.started_at >= self.max_age_seconds

    async def _run_loop(self) -> None:
        try:
            while True:
                try:
                    status = await self.tick()
                except Exception as exc:  # noqa: BLE001
                    self.logger.warning("Status tick failed for %s: %s", self.tx_hash, exc, exc_info=True)
                else:
                    if status.is_final:
                        self.logger.info("Transfer %s executed; polling stopped", self.tx_hash)
                        self.stop_reason = "executed"
                        self._executed.set()
                        return
                    if self.reconciler.source_failed:
                        self.logger.warning("Source tx %s reverted; polling stopped", self.tx_hash)
                        self.stop_reason = "source_failed"
                        return
                if self._expired():
                    self.logger.warning(
                        "Transfer %s not executed after %ss; polling stopped",
                        self.tx_hash,
                        self.max_age_seconds,
                    )
                    self.stop_reason = "expired"
                    return
                await asyncio.sleep(self.interval_seconds)
        except asyncio.CancelledError:
            self.stop_reason = "stopped"
            return
        finally:
            self.finished_at = self._clock()


class StatusTracker:
    """One poller (and reconciler) per tracked tx hash.

    At most ``max_active`` pollers run at once. Finished pollers stay
    queryable for ``retention_seconds`` and are dropped on the next
    ``track`` after that.
    """

    def __init__(
        self,
        reconciler_factory: ReconcilerFactory,
        *,
        interval_seconds: float = 5.0,
        max_active: int = 100,
        retention_seconds: float = 3600.0,
        max_age_seconds: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._factory = reconciler_factory
        self.interval_seconds = interval_seconds
        self.max_active = max_active
        self.retention_seconds = retention_seconds
        self.max_age_seconds = max_age_seconds
        self.logger = logger or logging.getLogger("lzbridge.tracker")
        self._clock = clock
        self._pollers: Dict[str, TransferPoller] = {}

    @property
    def active_count(self) -> int:
        return sum(1 for poller in self._pollers.values() if poller.is_running)

    def _evict_finished(self) -> None:
        now = self._clock()
        for key, poller in list(self._pollers.items()):
            if poller.is_running or poller.finished_at is None:
                continue
            if now - poller.finished_at >= self.retention_seconds:
                del self._pollers[key]
                self.logger.debug("Dropped finished poller for %s", poller.tx_hash)

    def _ensure_capacity(self) -> None:
        if self.active_count >= self.max_active:
            raise TrackerFull(f"Already tracking {self.max_active} transfers; try again later")

    def track(self, context: TransferContext, on_update: Optional[UpdateCallback] = None) -> TransferPoller:
        """Start polling ``context.tx_hash``, or return the poller that already owns it.

        A known hash keeps its reconciler, so its published status never
        goes back to ``unknown``. Executed transfers are not polled again.

        Raises:
            TrackerFull: when ``max_active`` pollers are already running
        """
        self._evict_finished()
        key = context.tx_hash.lower()
        poller = self._pollers.get(key)

        if poller is not None:
            if poller.is_running or (poller.status is not None and poller.status.is_final):
                return poller
            self._ensure_capacity()
            poller.context = context
            if on_update is not None:
                poller.on_update = on_update
            poller.start()
            self.logger.info("Resumed tracking transfer %s", context.tx_hash)
            return poller

        self._ensure_capacity()
        poller = TransferPoller(
            self._factory(),
            context,
            interval_seconds=self.interval_seconds,
            max_age_seconds=self.max_age_seconds,
            on_update=on_update,
            logger=self.logger,
            clock=self._clock,
        )
        self._pollers[key] = poller
        poller.start()
        self.logger.info("Tracking transfer %s", context.tx_hash)
        return poller

    def get(self, tx_hash: str) -> Optional[TransferPoller]:
        return self._pollers.get(tx_hash.lower())

    def snapshot(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        poller = self.get(tx_hash)
        if poller is None or poller.status is None:
            return None
        payload = poller.status.to_dict()
        payload["polling"] = poller.is_running
        payload["stopReason"] = poller.stop_reason
        payload["errors"] = dict(poller.reconciler.last_errors)
        return payload

    async def stop_all(self) -> None:
        pollers = list(self._pollers.values())
        if pollers:
            await asyncio.gather(*(p.stop() for p in pollers), return_exceptions=True)
        self._pollers.clear()


__all__ = ["TransferPoller", "StatusTracker"]
