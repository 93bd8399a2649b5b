"""
dposgov/protocol/producers.py

Producer candidate records and the vote-ordered producer index.

The index mirrors a secondary key of (by_votes, owner) where
by_votes = -total_votes for active producers and +total_votes for
inactive ones, so walking it from the start yields every active
producer by descending votes before any inactive producer.
"""

import logging
from dataclasses import dataclass, asdict, replace
from typing import Dict, Iterator, List, Optional, Tuple, TYPE_CHECKING

from sortedcontainers import SortedList

from ..errors import NotFoundError, InvariantViolation

if TYPE_CHECKING:
    from .state import Journal

logger = logging.getLogger("dposgov.protocol.producers")


# ============================================================================
# DATA CLASSES
# ============================================================================

@dataclass
class Producer:
    """A registered block producer candidate."""
    owner: str
    producer_key: str = ""
    url: str = ""
    location: int = 0
    total_votes: float = 0.0
    is_active: bool = True

    def by_votes(self) -> float:
        """Secondary index key: active producers sort first, by descending votes."""
        return -self.total_votes if self.is_active else self.total_votes

    def index_key(self) -> Tuple[float, str]:
        return (self.by_votes(), self.owner)

    def deactivate(self) -> None:
        self.producer_key = ""
        self.is_active = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Producer":
        return cls(
            owner=data["owner"],
            producer_key=data.get("producer_key", ""),
            url=data.get("url", ""),
            location=int(data.get("location", 0)),
            total_votes=float(data.get("total_votes", 0.0)),
            is_active=bool(data.get("is_active", True)),
        )


# ============================================================================
# PRODUCER REGISTRY
# ============================================================================

class ProducerRegistry:
    """
    Keyed table of producers plus an incrementally maintained vote index.

    All writes go through emplace() / modify() so the index never goes
    stale and an attached journal can undo them.
    """

    TABLE = "producers"

    def __init__(self):
        self._producers: Dict[str, Producer] = {}
        self._by_votes: SortedList = SortedList()
        self._journal: Optional["Journal"] = None

    def attach_journal(self, journal: Optional["Journal"]) -> None:
        self._journal = journal

    # ========================================================================
    # READS
    # ========================================================================

    def find(self, owner: str) -> Optional[Producer]:
        return self._producers.get(owner)

    def get(self, owner: str, message: str = "producer not found") -> Producer:
        """Get a producer that the caller requires to exist."""
        producer = self._producers.get(owner)
        if producer is None:
            raise NotFoundError(message)
        return producer

    def require(self, owner: str) -> Producer:
        """Get a producer that stored state says must exist."""
        producer = self._producers.get(owner)
        if producer is None:
            logger.error(f"Producer {owner} referenced by stored state is missing")
            raise InvariantViolation(f"producer not found: {owner}")
        return producer

    def __contains__(self, owner: str) -> bool:
        return owner in self._producers

    def __len__(self) -> int:
        return len(self._producers)

    def count(self) -> int:
        """Number of registered producers, active or not."""
        return len(self._producers)

    def count_active(self) -> int:
        return sum(1 for p in self._producers.values() if p.is_active)

    def iter_by_votes(self) -> Iterator[Producer]:
        """Active producers by descending votes, then inactive ones."""
        for _, owner in self._by_votes:
            yield self._producers[owner]

    def all(self) -> List[Producer]:
        return [self._producers[o] for o in sorted(self._producers)]

    # ========================================================================
    # WRITES
    # ========================================================================

    def emplace(self, producer: Producer) -> Producer:
        if producer.owner in self._producers:
            raise InvariantViolation(f"producer already exists: {producer.owner}")

        if self._journal is not None:
            self._journal.record(self, producer.owner, None)

        self._producers[producer.owner] = producer
        self._by_votes.add(producer.index_key())
        return producer

    def modify(self, owner: str, **changes) -> Producer:
        """Update fields of an existing producer, keeping the index in sync."""
        producer = self.require(owner)

        if self._journal is not None:
            self._journal.record(self, owner, replace(producer))

        for name in changes:
            if not hasattr(producer, name):
                raise AttributeError(f"Producer has no field {name}")

        self._by_votes.remove(producer.index_key())
        for name, value in changes.items():
            setattr(producer, name, value)
        self._by_votes.add(producer.index_key())
        return producer

    def deactivate(self, owner: str) -> Producer:
        producer = self.require(owner)

        if self._journal is not None:
            self._journal.record(self, owner, replace(producer))

        self._by_votes.remove(producer.index_key())
        producer.deactivate()
        self._by_votes.add(producer.index_key())
        return producer

    def restore(self, owner: str, snapshot: Optional[Producer]) -> None:
        """Journal rollback hook: put back `snapshot` (None = never existed)."""
        current = self._producers.get(owner)
        if current is not None:
            self._by_votes.remove(current.index_key())

        if snapshot is None:
            self._producers.pop(owner, None)
            return

        if current is None:
            current = snapshot
            self._producers[owner] = current
        else:
            # Restore in place so outstanding references see the old values
            current.__dict__.update(snapshot.__dict__)
        self._by_votes.add(current.index_key())

    # ========================================================================
    # SERIALIZATION
    # ========================================================================

    def to_list(self) -> List[dict]:
        return [p.to_dict() for p in self.all()]

    def load(self, rows: List[dict]) -> None:
        self._producers.clear()
        self._by_votes.clear()
        for row in rows:
            producer = Producer.from_dict(row)
            self._producers[producer.owner] = producer
            self._by_votes.add(producer.index_key())
