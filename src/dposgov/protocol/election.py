"""
dposgov/protocol/election.py

Producer schedule election.

Walks the vote-ordered producer index, takes the top producers that are
active and have positive votes, and proposes them to the consensus layer
sorted by account. A schedule is never allowed to shrink below the size
of the last accepted one.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..config import GovernanceConfig
from .state import ChainState

logger = logging.getLogger("dposgov.protocol.election")


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass(frozen=True, order=True)
class ProducerKeyEntry:
    """One (account, signing key) pair of a proposed schedule."""
    owner: str
    producer_key: str

    def to_dict(self) -> dict:
        return {"owner": self.owner, "producer_key": self.producer_key}


@dataclass
class ProposedSchedule:
    """Schedule accepted by the consensus boundary."""
    producers: List[ProducerKeyEntry] = field(default_factory=list)
    proposed_at: int = 0

    def __len__(self) -> int:
        return len(self.producers)

    def owners(self) -> List[str]:
        return [entry.owner for entry in self.producers]

    def to_dict(self) -> dict:
        return {
            "producers": [entry.to_dict() for entry in self.producers],
            "proposed_at": self.proposed_at,
            "size": len(self.producers),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProposedSchedule":
        return cls(
            producers=[
                ProducerKeyEntry(owner=p["owner"], producer_key=p.get("producer_key", ""))
                for p in data.get("producers", [])
            ],
            proposed_at=int(data.get("proposed_at", 0)),
        )


# Consensus boundary: receives the ordered schedule, returns True if accepted
ScheduleProposer = Callable[[Sequence[ProducerKeyEntry]], bool]


def accept_all(entries: Sequence[ProducerKeyEntry]) -> bool:
    """Proposer for standalone nodes: every schedule is accepted."""
    return True


# ============================================================================
# SCHEDULE ELECTOR
# ============================================================================

class ScheduleElector:
    """
    Elects the producer schedule from the current vote index.

    Usage:
        elector = ScheduleElector(state, config, proposer=consensus.set_proposed_producers)
        schedule = elector.elect(current_time)
        if schedule is None:
            ...  # too few candidates or rejected by consensus
    """

    def __init__(
        self,
        state: ChainState,
        config: GovernanceConfig,
        proposer: Optional[ScheduleProposer] = None,
    ):
        self.state = state
        self.config = config
        self.proposer = proposer or accept_all
        self.last_schedule: Optional[ProposedSchedule] = None

    def select_top_producers(self) -> List[ProducerKeyEntry]:
        """Top active producers by votes, stopping at the first ineligible one."""
        top: List[ProducerKeyEntry] = []
        for producer in self.state.producers.iter_by_votes():
            if len(top) >= self.config.max_schedule_size:
                break
            # Active producers come first in the index, so the first zero-vote
            # or inactive producer ends the eligible run.
            if producer.total_votes <= 0 or not producer.is_active:
                break
            top.append(ProducerKeyEntry(producer.owner, producer.producer_key))
        return top

    def elect(self, current_time: int) -> Optional[ProposedSchedule]:
        """
        Propose a new schedule.

        Returns:
            The accepted schedule, or None if the candidate set shrank or
            the proposer rejected it (state is then left unchanged)
        """
        gstate = self.state.global_state
        top = self.select_top_producers()

        if len(top) < gstate.last_producer_schedule_size:
            logger.warning(
                f"Election aborted: {len(top)} eligible producer(s), "
                f"last schedule had {gstate.last_producer_schedule_size}"
            )
            return None

        top.sort()

        if not self.proposer(list(top)):
            logger.warning(f"Schedule of {len(top)} producer(s) rejected by consensus")
            return None

        gstate.last_producer_schedule_size = len(top)
        gstate.last_producer_schedule_update = current_time
        self.last_schedule = ProposedSchedule(producers=top, proposed_at=current_time)
        logger.info(f"Proposed schedule of {len(top)} producer(s) at {current_time}")
        return self.last_schedule
