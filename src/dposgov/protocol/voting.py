"""
dposgov/protocol/voting.py

Vote update engine: the state transition behind every vote.

An update reverses the voter's previous effect and applies the new one:
- direct votes move total_votes by signed deltas (-old weight, +new weight)
- delegations move the proxy's proxied_vote_weight and let the proxy
  propagate its recomputed weight
- the first non-zero vote activates the voter's stake

`voting=True` is an explicit vote action. `voting=False` is the internal
re-evaluation run by the staking ledger after a stake change; it skips
activation accounting, sets (rather than adds) the proxy's delegated
weight and does not hand out new producer deltas.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from ..config import GovernanceConfig
from ..errors import ValidationError, NotFoundError, InvariantViolation
from .propagation import ProxyPropagationEngine
from .state import ChainState
from .voters import Voter
from .vote_weight import inverse_vote_weight

logger = logging.getLogger("dposgov.protocol.voting")


class VoteUpdateEngine:
    """Applies one voter's vote change to voters, producers and globals."""

    def __init__(
        self,
        state: ChainState,
        config: GovernanceConfig,
        propagation: Optional[ProxyPropagationEngine] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            state: Chain state to mutate
            config: Engine parameters
            propagation: Proxy propagation engine sharing `state`
            clock: Returns the current chain time (used to latch activation)
        """
        self.state = state
        self.config = config
        self.propagation = propagation or ProxyPropagationEngine(state, config)
        self.clock = clock or (lambda: 0)

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def validate(
        self,
        voter_name: str,
        proxy: Optional[str],
        producers: Sequence[str],
        voting: bool,
    ) -> Voter:
        """Check every precondition before anything is written."""
        if proxy:
            if producers:
                raise ValidationError("cannot vote for producers and proxy at same time")
            if voter_name == proxy:
                raise ValidationError("cannot proxy to self")
        else:
            if len(producers) > self.config.max_voted_producers:
                raise ValidationError("attempt to vote for too many producers")
            for i in range(1, len(producers)):
                if not producers[i - 1] < producers[i]:
                    raise ValidationError("producer votes must be unique and sorted")

        voter = self.state.voters.find(voter_name)
        if voter is None:
            raise NotFoundError("user must stake before they can vote")

        if proxy and voter.is_proxy:
            raise ValidationError(
                "account registered as a proxy is not allowed to use a proxy"
            )

        if proxy:
            new_proxy = self.state.voters.find(proxy)
            if new_proxy is None:
                if voting:
                    raise NotFoundError("invalid proxy specified")
                raise InvariantViolation(f"proxy not found: {proxy}")
            if voting and not new_proxy.is_proxy:
                raise NotFoundError("proxy not found")

        if voting:
            for owner in producers:
                producer = self.state.producers.find(owner)
                if producer is None:
                    raise NotFoundError(f"producer is not registered: {owner}")
                if not producer.is_active:
                    raise ValidationError(f"producer is not currently registered: {owner}")

        return voter

    # ========================================================================
    # UPDATE
    # ========================================================================

    def update_votes(
        self,
        voter_name: str,
        proxy: Optional[str],
        producers: Sequence[str],
        voting: bool,
    ) -> float:
        """
        Move `voter_name`'s vote to `proxy` or `producers`.

        Must run inside ChainState.transaction(); any exception leaves the
        state untouched once the transaction unwinds.

        Returns:
            The voter's new last_vote_weight
        """
        if not self.state.in_transaction():
            raise RuntimeError("update_votes must run inside a state transaction")

        proxy = proxy or None
        producers = tuple(producers)
        voter = self.validate(voter_name, proxy, producers, voting)

        voters = self.state.voters
        gstate = self.state.global_state

        total_staked = voter.staked
        if proxy:
            total_staked += voters.find(proxy).proxied_vote_weight

        new_vote_weight = inverse_vote_weight(
            total_staked,
            len(producers),
            self.state.producers.count(),
            self.config.vote_variation,
        )

        # Activation accounting: a voter's stake counts towards the network
        # threshold from its first non-zero vote until it withdraws.
        if voting:
            if voter.last_vote_weight <= 0.0 and producers:
                activated = voter.staked
                if voter.proxied_vote_weight > 0:
                    activated += voter.proxied_vote_weight
                gstate.total_activated_stake += activated
                logger.info(f"Activated {activated} stake from {voter_name}")
                self._check_network_activation()
            elif voter.last_vote_weight <= 0.0 and proxy:
                if voters.find(proxy).has_voted():
                    gstate.total_activated_stake += voter.staked
                    logger.info(f"Activated {voter.staked} stake from {voter_name} via {proxy}")
                    self._check_network_activation()
            elif not producers and not proxy and self._has_activated_stake(voter):
                withdrawn = voter.staked
                if voter.proxied_vote_weight > 0:
                    withdrawn += voter.proxied_vote_weight
                gstate.total_activated_stake -= withdrawn
                logger.info(f"Withdrew {withdrawn} activated stake from {voter_name}")

        # owner -> (delta, from new vote set)
        producer_deltas: Dict[str, List] = {}

        if voter.has_voted():
            if voter.proxy:
                old_proxy = voters.require(voter.proxy, "old proxy not found")
                voters.modify(
                    old_proxy.owner,
                    proxied_vote_weight=old_proxy.proxied_vote_weight - voter.last_vote_weight,
                )
                self.propagation.propagate(old_proxy)
            else:
                for owner in voter.producers:
                    delta = producer_deltas.setdefault(owner, [0.0, False])
                    delta[0] -= voter.last_vote_weight
                    delta[1] = False

        if proxy:
            new_proxy = voters.require(proxy, "invalid proxy specified")
            if voting:
                voters.modify(
                    proxy,
                    proxied_vote_weight=new_proxy.proxied_vote_weight + voter.staked,
                )
            else:
                voters.modify(proxy, proxied_vote_weight=float(voter.staked))

            if new_proxy.has_voted():
                self.propagation.propagate(new_proxy)
        else:
            if voter.proxy:
                old_proxy = voters.require(voter.proxy, "old proxy not found")
                voters.modify(
                    old_proxy.owner,
                    proxied_vote_weight=old_proxy.proxied_vote_weight - voter.staked,
                )
                self.propagation.propagate(old_proxy)

            if voting:
                for owner in producers:
                    delta = producer_deltas.setdefault(owner, [0.0, False])
                    delta[0] += new_vote_weight
                    delta[1] = True
            elif voter.has_voted():
                self.propagation.propagate(voter)

        self._apply_deltas(producer_deltas, voting)

        voters.modify(
            voter_name,
            last_vote_weight=new_vote_weight,
            producers=producers,
            proxy=proxy,
        )
        return new_vote_weight

    # ========================================================================
    # INTERNAL
    # ========================================================================

    def _apply_deltas(self, producer_deltas: Dict[str, List], voting: bool) -> None:
        """Apply accumulated deltas in account order, clamping totals at zero."""
        registry = self.state.producers
        gstate = self.state.global_state

        for owner in sorted(producer_deltas):
            delta, is_new = producer_deltas[owner]
            producer = registry.find(owner)

            if producer is None:
                if is_new:
                    raise NotFoundError(f"producer is not registered: {owner}")
                # A producer voted for earlier must still exist
                raise InvariantViolation(f"producer not found: {owner}")

            if voting and is_new and not producer.is_active:
                raise ValidationError(f"producer is not currently registered: {owner}")

            total_votes = producer.total_votes + delta
            if total_votes < 0:
                # floating point arithmetic can leave tiny negative totals
                total_votes = 0.0
            registry.modify(owner, total_votes=total_votes)
            gstate.total_producer_vote_weight += delta
            logger.debug(f"Producer {owner} delta {delta:+.4f} -> {total_votes:.4f}")

    def _has_activated_stake(self, voter: Voter) -> bool:
        """Whether the voter's stake is currently counted as activated."""
        if voter.has_voted():
            return True
        if voter.proxy:
            proxy = self.state.voters.find(voter.proxy)
            return proxy is not None and proxy.has_voted()
        return False

    def _check_network_activation(self) -> None:
        gstate = self.state.global_state
        if (
            gstate.total_activated_stake >= self.config.min_activated_stake
            and gstate.thresh_activated_stake_time == 0
        ):
            gstate.thresh_activated_stake_time = self.clock()
            logger.info(
                f"Network activated: {gstate.total_activated_stake} stake "
                f"at {gstate.thresh_activated_stake_time}"
            )
