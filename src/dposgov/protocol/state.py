"""
dposgov/protocol/state.py

Global governance counters and the chain state aggregate.

ChainState owns the voter table, the producer table and the global
singleton, and is passed explicitly to every engine. Its transaction()
context journals the pre-image of every touched row so a failing
action leaves no partial write behind.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .producers import ProducerRegistry
from .voters import VoterRegistry

logger = logging.getLogger("dposgov.protocol.state")


# ============================================================================
# GLOBAL STATE
# ============================================================================

@dataclass
class GlobalGovernanceState:
    """Process-wide voting counters, created at genesis."""
    total_activated_stake: int = 0
    total_producer_vote_weight: float = 0.0
    thresh_activated_stake_time: int = 0     # 0 = threshold never reached
    last_producer_schedule_update: int = 0
    last_producer_schedule_size: int = 0

    def is_activated(self) -> bool:
        return self.thresh_activated_stake_time != 0

    def restore(self, snapshot: "GlobalGovernanceState") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(snapshot, f.name))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "GlobalGovernanceState":
        return cls(
            total_activated_stake=int(data.get("total_activated_stake", 0)),
            total_producer_vote_weight=float(data.get("total_producer_vote_weight", 0.0)),
            thresh_activated_stake_time=int(data.get("thresh_activated_stake_time", 0)),
            last_producer_schedule_update=int(data.get("last_producer_schedule_update", 0)),
            last_producer_schedule_size=int(data.get("last_producer_schedule_size", 0)),
        )


# ============================================================================
# JOURNAL
# ============================================================================

class Journal:
    """Undo log: first pre-image of every row written in a transaction."""

    def __init__(self):
        self._entries: List[Tuple[Any, str, Any]] = []
        self._seen: set = set()

    def record(self, registry, key: str, snapshot) -> None:
        marker = (registry.TABLE, key)
        if marker in self._seen:
            return
        self._seen.add(marker)
        self._entries.append((registry, key, snapshot))

    def __len__(self) -> int:
        return len(self._entries)

    def rollback(self) -> None:
        for registry, key, snapshot in reversed(self._entries):
            registry.restore(key, snapshot)
        self._entries.clear()
        self._seen.clear()


# ============================================================================
# CHAIN STATE
# ============================================================================

class ChainState:
    """
    Voters, producers and global counters of one chain.

    Usage:
        state = ChainState()
        with state.transaction():
            state.producers.modify("alice", total_votes=10.0)
            raise ValueError  # every write above is undone
    """

    def __init__(
        self,
        producers: Optional[ProducerRegistry] = None,
        voters: Optional[VoterRegistry] = None,
        global_state: Optional[GlobalGovernanceState] = None,
    ):
        self.producers = producers or ProducerRegistry()
        self.voters = voters or VoterRegistry()
        self.global_state = global_state or GlobalGovernanceState()
        self._journal: Optional[Journal] = None

    def in_transaction(self) -> bool:
        return self._journal is not None

    @contextmanager
    def transaction(self) -> Iterator[Journal]:
        """
        Run a block atomically. Nested calls join the outer transaction.
        """
        if self._journal is not None:
            yield self._journal
            return

        journal = Journal()
        global_snapshot = replace(self.global_state)
        self._journal = journal
        self.producers.attach_journal(journal)
        self.voters.attach_journal(journal)
        try:
            yield journal
        except BaseException:
            logger.debug(f"Rolling back {len(journal)} row(s)")
            journal.rollback()
            self.global_state.restore(global_snapshot)
            raise
        finally:
            self._journal = None
            self.producers.attach_journal(None)
            self.voters.attach_journal(None)

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global": self.global_state.to_dict(),
            "producers": self.producers.to_list(),
            "voters": self.voters.to_list(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainState":
        state = cls()
        state.load(data)
        return state

    def load(self, data: Dict[str, Any]) -> None:
        """Replace the whole state in place (engines keep their references)."""
        if self._journal is not None:
            raise RuntimeError("cannot load state inside a transaction")
        self.global_state.restore(GlobalGovernanceState.from_dict(data.get("global", {})))
        self.producers.load(data.get("producers", []))
        self.voters.load(data.get("voters", []))
