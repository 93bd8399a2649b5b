"""
dposgov/protocol/election_trigger.py

Periodic, time-gated schedule election.

The trigger is the only caller of update_elected_producers on a running
node. It waits until the network activation threshold has been reached
and then elects at most once per election interval.
"""

import logging
from typing import Awaitable, Callable, List, Optional, TYPE_CHECKING

import trio

from .election import ProposedSchedule

if TYPE_CHECKING:
    from .governance import GovernanceContract

logger = logging.getLogger("dposgov.protocol.election_trigger")

AsyncScheduleCallback = Callable[[ProposedSchedule], Awaitable[None]]


class ElectionTrigger:
    """
    Runs elections on a fixed interval.

    Usage:
        trigger = ElectionTrigger(contract)
        trigger.on_elected(storage_callback)
        async with trio.open_nursery() as nursery:
            await nursery.start(trigger.run)
    """

    def __init__(self, contract: "GovernanceContract", poll_seconds: Optional[float] = None):
        self.contract = contract
        self.poll_seconds = (
            poll_seconds if poll_seconds is not None
            else contract.config.election_poll_seconds
        )
        self._callbacks: List[AsyncScheduleCallback] = []
        self._cancel_scope: Optional[trio.CancelScope] = None
        self.elections_run = 0
        self.elections_skipped = 0

    def on_elected(self, callback: AsyncScheduleCallback) -> None:
        """Register an async callback for accepted schedules."""
        self._callbacks.append(callback)

    async def tick(self, now: Optional[int] = None) -> Optional[ProposedSchedule]:
        """
        Run one election if it is due.

        Returns:
            The accepted schedule, or None if not due or nothing was proposed
        """
        now = self.contract.clock() if now is None else now
        if not self.contract.election_due(now):
            return None

        self.elections_run += 1
        schedule = self.contract.update_elected_producers(now)
        if schedule is None:
            self.elections_skipped += 1
            return None

        for callback in self._callbacks:
            try:
                await callback(schedule)
            except Exception as e:
                logger.error(f"Election callback error: {e}")
        return schedule

    async def run(self, task_status=trio.TASK_STATUS_IGNORED) -> None:
        """
        Run the election loop in a nursery.

        Usage:
            async with trio.open_nursery() as nursery:
                await nursery.start(trigger.run)
        """
        self._cancel_scope = trio.CancelScope()
        task_status.started()

        with self._cancel_scope:
            logger.info(
                f"Election trigger started (interval "
                f"{self.contract.config.election_interval_seconds}s)"
            )
            while True:
                await self.tick()
                await trio.sleep(self.poll_seconds)

    def stop(self) -> None:
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
            logger.info("Election trigger stopped")
