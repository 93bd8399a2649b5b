"""
dposgov - Stake-weighted delegated voting and block producer election

Stakeholders vote directly for up to 30 producer candidates or delegate
to a proxy. Stake is converted to a non-linear vote weight that rewards
spreading support, and the top 21 active producers are periodically
proposed as the block production schedule.

Built with:
- sortedcontainers for the vote-ordered producer index
- python-evrmorelib for account signatures and producer keys
- trio for the REST API and the election trigger

Usage:
    from dposgov import GovernanceContract, GovernanceConfig
    from dposgov.protocol.actions import RegisterProducerAction, VoteProducerAction

    contract = GovernanceContract(config=GovernanceConfig())
    contract.change_stake("alice", 1000)
    contract.register_producer(RegisterProducerAction("bob", producer_key=key))
    contract.vote_producer(VoteProducerAction("alice", producers=["bob"]))

REST API Usage:
    from dposgov.api import GovernanceAPI

    api = GovernanceAPI(contract, host="0.0.0.0", port=8888)
    await api.start()

Node:
    python -m dposgov.node
"""

__version__ = "1.0.0"

from .config import GovernanceConfig
from .errors import (
    GovernanceError,
    ValidationError,
    NotFoundError,
    AuthorizationError,
    InvariantViolation,
)
from .protocol.governance import GovernanceContract
from .protocol.state import ChainState, GlobalGovernanceState
from .protocol.election import ProposedSchedule, ProducerKeyEntry

__all__ = [
    # Core
    "GovernanceContract",
    "GovernanceConfig",
    "ChainState",
    "GlobalGovernanceState",
    "ProposedSchedule",
    "ProducerKeyEntry",
    # Errors
    "GovernanceError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "InvariantViolation",
]
