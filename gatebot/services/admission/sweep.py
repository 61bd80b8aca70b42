"""
Periodic eviction of members whose challenge deadline has passed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable

from gatebot.core.exceptions import StoreError
from gatebot.core.logging import get_logger
from gatebot.models.admission import Action, Resolution
from gatebot.models.pending import utcnow
from gatebot.services.admission.executor import AdmissionOutcomeExecutor
from gatebot.state.members import MemberRecordStore

logger = get_logger(__name__)


class SweepScheduler:
    """
    Bans every pending member past their deadline, once per interval.

    Ticks never overlap: the next tick is scheduled ``interval`` seconds after
    the previous one started, or right away if that tick overran.
    """

    def __init__(
        self,
        store: MemberRecordStore,
        executor: AdmissionOutcomeExecutor,
        interval: float,
        *,
        chat_scope: set[int] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if interval <= 0:
            raise ValueError("Sweep interval must be positive")
        self._store = store
        self._executor = executor
        self._interval = interval
        self._chat_scope = chat_scope or None
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        """
        Ban all expired pending members.

        Returns:
            Number of members this tick claimed
        """
        now = self._clock()
        try:
            expired = await self._store.find_expired(self._chat_scope, now)
        except StoreError as exc:
            logger.error("Failed to get expired members: %s", exc)
            return 0

        if not expired:
            return 0

        results = await asyncio.gather(
            *(self._executor.resolve(member, Action.BAN) for member in expired),
            return_exceptions=True,
        )

        claimed = 0
        for member, result in zip(expired, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Failed to evict user %s in chat %s: %s",
                    member.user_id, member.chat_id, result,
                )
            elif result is Resolution.CLAIMED:
                claimed += 1

        logger.info("Sweep evicted %s of %s expired members", claimed, len(expired))
        return claimed

    def start(self) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self.running:
            return self._task
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="captcha-sweep")
        self._task.add_done_callback(self._handle_task_result)
        logger.info("Captcha sweep started, interval %.1fs", self._interval)
        return self._task

    async def stop(self) -> None:
        """Signal the sweep loop to exit and wait for the current tick to finish."""
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Captcha sweep stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while not self._stopping.is_set():
            started = loop.time()
            try:
                await self.sweep_once()
            except Exception as exc:  # noqa: BLE001
                logger.error("Captcha sweep tick failed: %s", exc)

            delay = max(0.0, self._interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
            except asyncio.TimeoutError:
                continue

    @staticmethod
    def _handle_task_result(done_task: asyncio.Task) -> None:
        try:
            done_task.result()
        except asyncio.CancelledError:
            return
        except Exception as exc:  # noqa: BLE001
            logger.error("Captcha sweep task failed: %s", exc)
