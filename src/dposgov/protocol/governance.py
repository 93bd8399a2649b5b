"""
dposgov/protocol/governance.py

Producer governance contract.

Entry point for every governance action:
- register_producer / unregister_producer: producer candidacy
- vote_producer: vote for producers or delegate to a proxy
- register_proxy: become (or stop being) a proxy
- change_stake / apply_stake_change: staking ledger hook that re-evaluates
  existing votes
- update_elected_producers: privileged, time-gated schedule election

Each action is checked by the authorizer and then executed inside a
single ChainState transaction, so a failing action leaves no trace.
"""

import time
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..auth import Authorizer
from ..config import GovernanceConfig
from ..errors import GovernanceError, InvariantViolation, NotFoundError, ValidationError
from ..signing import is_valid_public_key
from .actions import (
    RegisterProducerAction,
    UnregisterProducerAction,
    VoteProducerAction,
    RegisterProxyAction,
    ChangeStakeAction,
)
from .election import ProposedSchedule, ScheduleElector, ScheduleProposer
from .producers import Producer
from .propagation import ProxyPropagationEngine
from .state import ChainState
from .voters import Voter
from .voting import VoteUpdateEngine

logger = logging.getLogger("dposgov.protocol.governance")

T = TypeVar("T")

# Callback signatures
ActionCallback = Callable[[str, bool], None]             # (action name, succeeded)
ScheduleCallback = Callable[[ProposedSchedule], None]


class GovernanceContract:
    """
    Stake-weighted producer voting over one ChainState.

    Usage:
        contract = GovernanceContract(config=GovernanceConfig())
        contract.change_stake("alice", 1000)
        contract.register_producer(RegisterProducerAction("bob", producer_key=key))
        contract.vote_producer(VoteProducerAction("alice", producers=["bob"]))
        schedule = contract.update_elected_producers()
    """

    def __init__(
        self,
        state: Optional[ChainState] = None,
        config: Optional[GovernanceConfig] = None,
        authorizer: Optional[Authorizer] = None,
        proposer: Optional[ScheduleProposer] = None,
        clock: Optional[Callable[[], int]] = None,
        ledger_authorizer: Optional[Authorizer] = None,
    ):
        """
        Args:
            state: Chain state (a fresh one if omitted)
            config: Engine parameters
            authorizer: Checks account actions; None trusts the caller
            proposer: Consensus boundary receiving elected schedules
            clock: Current chain time in seconds
            ledger_authorizer: Checks stake changes reported by the staking
                ledger; None trusts the caller
        """
        self.state = state or ChainState()
        self.config = config or GovernanceConfig()
        self.authorizer = authorizer
        self.ledger_authorizer = ledger_authorizer
        self.clock = clock or (lambda: int(time.time()))

        self.propagation = ProxyPropagationEngine(self.state, self.config)
        self.voting = VoteUpdateEngine(
            self.state, self.config, self.propagation, clock=self.clock
        )
        self.elector = ScheduleElector(self.state, self.config, proposer=proposer)

        self._action_callbacks: List[ActionCallback] = []
        self._schedule_callbacks: List[ScheduleCallback] = []

        if self.authorizer is None:
            logger.info("No authorizer configured; callers are trusted to authenticate accounts")

    # ========================================================================
    # CALLBACKS
    # ========================================================================

    def on_action(self, callback: ActionCallback) -> None:
        """Register a callback fired after every action attempt."""
        self._action_callbacks.append(callback)

    def on_schedule(self, callback: ScheduleCallback) -> None:
        """Register a callback fired when a schedule is accepted."""
        self._schedule_callbacks.append(callback)

    def _notify_action(self, name: str, succeeded: bool) -> None:
        for callback in self._action_callbacks:
            try:
                callback(name, succeeded)
            except Exception as e:
                logger.error(f"Action callback error: {e}")

    def _execute(
        self,
        name: str,
        action,
        body: Callable[[], T],
        authorizer: Optional[Authorizer] = None,
    ) -> T:
        """Authorize and run `body` atomically."""
        authorizer = authorizer or self.authorizer
        try:
            if action is not None and authorizer is not None:
                authorizer.require_auth(action)
            with self.state.transaction():
                result = body()
        except InvariantViolation as e:
            logger.error(f"{name} aborted on corrupted state: {e}")
            self._notify_action(name, False)
            raise
        except GovernanceError as e:
            logger.warning(f"{name} rejected: {e}")
            self._notify_action(name, False)
            raise
        self._notify_action(name, True)
        return result

    # ========================================================================
    # PRODUCER ACTIONS
    # ========================================================================

    def register_producer(self, action: RegisterProducerAction) -> Producer:
        """Register a producer, or update key/url/location and re-activate it."""
        def body() -> Producer:
            if len(action.url) >= self.config.max_url_length:
                raise ValidationError("url too long")
            if not is_valid_public_key(action.producer_key):
                raise ValidationError("public key should not be the default value")

            producers = self.state.producers
            if action.owner in producers:
                producer = producers.modify(
                    action.owner,
                    producer_key=action.producer_key,
                    is_active=True,
                    url=action.url,
                    location=action.location,
                )
                logger.info(f"Updated producer {action.owner}")
            else:
                producer = producers.emplace(Producer(
                    owner=action.owner,
                    producer_key=action.producer_key,
                    url=action.url,
                    location=action.location,
                    total_votes=0.0,
                    is_active=True,
                ))
                logger.info(f"Registered producer {action.owner}")
            return producer

        return self._execute(action.ACTION, action, body)

    def unregister_producer(self, action: UnregisterProducerAction) -> Producer:
        """Deactivate a producer; its votes stay but it cannot be elected."""
        def body() -> Producer:
            self.state.producers.get(action.owner, "producer not found")
            producer = self.state.producers.deactivate(action.owner)
            logger.info(f"Unregistered producer {action.owner}")
            return producer

        return self._execute(action.ACTION, action, body)

    # ========================================================================
    # VOTER ACTIONS
    # ========================================================================

    def vote_producer(self, action: VoteProducerAction) -> Voter:
        """Vote for producers or delegate to a proxy."""
        def body() -> Voter:
            weight = self.voting.update_votes(
                action.voter, action.proxy, action.producers, voting=True
            )
            if action.proxy:
                logger.info(f"{action.voter} delegated to proxy {action.proxy}")
            else:
                logger.info(
                    f"{action.voter} voted for {len(action.producers)} producer(s) "
                    f"with weight {weight:.4f}"
                )
            return self.state.voters.get(action.voter)

        return self._execute(action.ACTION, action, body)

    def register_proxy(self, action: RegisterProxyAction) -> Voter:
        """Flag or unflag an account as a proxy."""
        def body() -> Voter:
            voters = self.state.voters
            voter = voters.find(action.proxy)
            if voter is None:
                voter = voters.emplace(Voter(owner=action.proxy, is_proxy=action.isproxy))
            else:
                if action.isproxy == voter.is_proxy:
                    raise ValidationError("action has no effect")
                if action.isproxy and voter.proxy:
                    raise ValidationError(
                        "account that uses a proxy is not allowed to become a proxy"
                    )
                voter = voters.modify(action.proxy, is_proxy=action.isproxy)
            logger.info(f"{action.proxy} proxy flag set to {action.isproxy}")
            return voter

        return self._execute(action.ACTION, action, body)

    # ========================================================================
    # STAKING LEDGER HOOK
    # ========================================================================

    def change_stake(self, account: str, delta: int) -> Voter:
        """
        Apply a stake change from the staking ledger.

        Creates the voter on first stake. When the voter already votes or
        delegates, its vote is re-evaluated with the new stake.

        Raises:
            ValidationError: If the stake would drop below zero
        """
        return self._execute(ChangeStakeAction.ACTION, None, self._stake_body(account, delta))

    def apply_stake_change(self, action: ChangeStakeAction) -> Voter:
        """Stake change reported by the staking ledger, checked by the ledger authorizer."""
        checked = action if self.ledger_authorizer is not None else None
        return self._execute(
            action.ACTION,
            checked,
            self._stake_body(action.account, action.delta),
            authorizer=self.ledger_authorizer,
        )

    def _stake_body(self, account: str, delta: int) -> Callable[[], Voter]:
        def body() -> Voter:
            voters = self.state.voters
            voter = voters.find(account)
            if voter is None:
                if delta < 0:
                    raise NotFoundError("user must stake before they can vote")
                voter = voters.emplace(Voter(owner=account))

            staked = voter.staked + delta
            if staked < 0:
                raise ValidationError("insufficient staked balance")
            voters.modify(account, staked=staked)

            if voter.producers or voter.proxy:
                self.voting.update_votes(account, voter.proxy, voter.producers, voting=False)
            logger.info(f"Stake of {account} changed by {delta:+d} to {staked}")
            return voters.get(account)

        return body

    # ========================================================================
    # ELECTION
    # ========================================================================

    def update_elected_producers(self, now: Optional[int] = None) -> Optional[ProposedSchedule]:
        """
        Elect and propose a producer schedule.

        Returns:
            The accepted schedule, or None when nothing was proposed
        """
        current_time = self.clock() if now is None else now
        schedule = self._execute(
            "electproducers", None, lambda: self.elector.elect(current_time)
        )
        if schedule is not None:
            for callback in self._schedule_callbacks:
                try:
                    callback(schedule)
                except Exception as e:
                    logger.error(f"Schedule callback error: {e}")
        return schedule

    def election_due(self, now: int) -> bool:
        """Whether the periodic trigger may run an election at `now`."""
        gstate = self.state.global_state
        if self.config.require_activation and not gstate.is_activated():
            return False
        elapsed = now - gstate.last_producer_schedule_update
        return elapsed >= self.config.election_interval_seconds

    # ========================================================================
    # QUERIES
    # ========================================================================

    def get_producer(self, owner: str) -> Producer:
        return self.state.producers.get(owner, f"producer not found: {owner}")

    def get_voter(self, owner: str) -> Voter:
        return self.state.voters.get(owner, f"voter not found: {owner}")

    def list_producers(self, by_votes: bool = False) -> List[Producer]:
        if by_votes:
            return list(self.state.producers.iter_by_votes())
        return self.state.producers.all()

    def list_voters(self) -> List[Voter]:
        return self.state.voters.all()

    def list_proxies(self) -> List[Voter]:
        return [v for v in self.state.voters.all() if v.is_proxy]

    def get_schedule(self) -> Optional[ProposedSchedule]:
        return self.elector.last_schedule

    def get_stats(self) -> Dict[str, Any]:
        """Governance statistics."""
        gstate = self.state.global_state
        return {
            "producers": self.state.producers.count(),
            "active_producers": self.state.producers.count_active(),
            "voters": len(self.state.voters),
            "proxies": self.state.voters.count_proxies(),
            "total_activated_stake": gstate.total_activated_stake,
            "total_producer_vote_weight": gstate.total_producer_vote_weight,
            "activated": gstate.is_activated(),
            "thresh_activated_stake_time": gstate.thresh_activated_stake_time,
            "last_producer_schedule_size": gstate.last_producer_schedule_size,
            "last_producer_schedule_update": gstate.last_producer_schedule_update,
        }
