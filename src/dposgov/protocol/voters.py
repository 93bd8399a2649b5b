"""
dposgov/protocol/voters.py

Voter and proxy records.

A voter row is created by the staking ledger on first stake (or by
register_proxy). It either votes directly for a sorted list of
producers or names a proxy, never both.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from ..errors import NotFoundError, InvariantViolation

if TYPE_CHECKING:
    from .state import Journal

logger = logging.getLogger("dposgov.protocol.voters")


@dataclass
class Voter:
    """Stake holder that votes directly or through a proxy."""
    owner: str
    staked: int = 0
    proxy: Optional[str] = None
    is_proxy: bool = False
    proxied_vote_weight: float = 0.0
    last_vote_weight: float = 0.0     # <= 0 means never voted
    producers: Tuple[str, ...] = field(default_factory=tuple)

    def has_voted(self) -> bool:
        return self.last_vote_weight > 0

    def to_dict(self) -> dict:
        return {
            "owner": self.owner,
            "staked": self.staked,
            "proxy": self.proxy,
            "is_proxy": self.is_proxy,
            "proxied_vote_weight": self.proxied_vote_weight,
            "last_vote_weight": self.last_vote_weight,
            "producers": list(self.producers),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Voter":
        return cls(
            owner=data["owner"],
            staked=int(data.get("staked", 0)),
            proxy=data.get("proxy") or None,
            is_proxy=bool(data.get("is_proxy", False)),
            proxied_vote_weight=float(data.get("proxied_vote_weight", 0.0)),
            last_vote_weight=float(data.get("last_vote_weight", 0.0)),
            producers=tuple(data.get("producers", [])),
        )


class VoterRegistry:
    """Keyed table of voters. Writes go through emplace() / modify()."""

    TABLE = "voters"

    def __init__(self):
        self._voters: Dict[str, Voter] = {}
        self._journal: Optional["Journal"] = None

    def attach_journal(self, journal: Optional["Journal"]) -> None:
        self._journal = journal

    def find(self, owner: str) -> Optional[Voter]:
        return self._voters.get(owner)

    def get(self, owner: str, message: str = "voter not found") -> Voter:
        voter = self._voters.get(owner)
        if voter is None:
            raise NotFoundError(message)
        return voter

    def require(self, owner: str, message: str = "voter not found") -> Voter:
        """Get a voter that stored state says must exist."""
        voter = self._voters.get(owner)
        if voter is None:
            logger.error(f"Voter {owner} referenced by stored state is missing")
            raise InvariantViolation(f"{message}: {owner}")
        return voter

    def __contains__(self, owner: str) -> bool:
        return owner in self._voters

    def __len__(self) -> int:
        return len(self._voters)

    def count_proxies(self) -> int:
        return sum(1 for v in self._voters.values() if v.is_proxy)

    def all(self) -> List[Voter]:
        return [self._voters[o] for o in sorted(self._voters)]

    def emplace(self, voter: Voter) -> Voter:
        if voter.owner in self._voters:
            raise InvariantViolation(f"voter already exists: {voter.owner}")
        if self._journal is not None:
            self._journal.record(self, voter.owner, None)
        self._voters[voter.owner] = voter
        return voter

    def modify(self, owner: str, **changes) -> Voter:
        voter = self.require(owner)
        if self._journal is not None:
            self._journal.record(self, owner, replace(voter))
        for name, value in changes.items():
            if not hasattr(voter, name):
                raise AttributeError(f"Voter has no field {name}")
            setattr(voter, name, value)
        return voter

    def restore(self, owner: str, snapshot: Optional[Voter]) -> None:
        """Journal rollback hook."""
        if snapshot is None:
            self._voters.pop(owner, None)
            return
        current = self._voters.get(owner)
        if current is None:
            self._voters[owner] = snapshot
        else:
            current.__dict__.update(snapshot.__dict__)

    def to_list(self) -> List[dict]:
        return [v.to_dict() for v in self.all()]

    def load(self, rows: List[dict]) -> None:
        self._voters.clear()
        for row in rows:
            voter = Voter.from_dict(row)
            self._voters[voter.owner] = voter
