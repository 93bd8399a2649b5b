"""
dposgov/protocol/

Voting state machine: registries, vote weight, vote updates, proxy
propagation and schedule election.
"""

from .vote_weight import inverse_vote_weight, deterministic_sin
from .producers import Producer, ProducerRegistry
from .voters import Voter, VoterRegistry
from .state import ChainState, GlobalGovernanceState, Journal
from .propagation import ProxyPropagationEngine
from .voting import VoteUpdateEngine
from .election import ScheduleElector, ProposedSchedule, ProducerKeyEntry
from .actions import (
    RegisterProducerAction,
    UnregisterProducerAction,
    VoteProducerAction,
    RegisterProxyAction,
    ChangeStakeAction,
)
from .governance import GovernanceContract

__all__ = [
    "inverse_vote_weight",
    "deterministic_sin",
    "Producer",
    "ProducerRegistry",
    "Voter",
    "VoterRegistry",
    "ChainState",
    "GlobalGovernanceState",
    "Journal",
    "ProxyPropagationEngine",
    "VoteUpdateEngine",
    "ScheduleElector",
    "ProposedSchedule",
    "ProducerKeyEntry",
    # Actions
    "RegisterProducerAction",
    "UnregisterProducerAction",
    "VoteProducerAction",
    "RegisterProxyAction",
    "ChangeStakeAction",
    "GovernanceContract",
]
