"""
dposgov/protocol/propagation.py

Proxy weight propagation.

When the weight available to a proxy changes, its own vote weight is
recomputed against the current number of active producers and pushed
downstream. Unlike vote updates, which add signed deltas, propagation
OVERWRITES total_votes of the proxy's producers with the new weight,
or recurses into the proxy's own upstream proxy.
"""

import logging

from ..config import GovernanceConfig
from ..errors import InvariantViolation
from .state import ChainState
from .voters import Voter
from .vote_weight import inverse_vote_weight

logger = logging.getLogger("dposgov.protocol.propagation")


class ProxyPropagationEngine:
    """Recomputes and cascades a proxy's aggregate weight."""

    def __init__(self, state: ChainState, config: GovernanceConfig):
        self.state = state
        self.config = config

    def propagate(self, voter: Voter, depth: int = 0) -> float:
        """
        Push `voter`'s recomputed weight to its producers or upstream proxy.

        Args:
            voter: Voter (normally a proxy) whose weight changed
            depth: Current recursion depth

        Returns:
            The voter's new last_vote_weight
        """
        if voter.proxy and voter.is_proxy:
            raise InvariantViolation(
                "account registered as a proxy is not allowed to use a proxy"
            )
        if depth >= self.config.max_proxy_chain_depth:
            logger.error(f"Proxy chain through {voter.owner} exceeds depth {depth}")
            raise InvariantViolation(f"proxy chain too deep at {voter.owner}")

        producers = self.state.producers
        voters = self.state.voters

        active_producers = producers.count_active()
        total_stake = voter.staked + voter.proxied_vote_weight
        new_weight = inverse_vote_weight(
            total_stake,
            active_producers,
            producers.count(),
            self.config.vote_variation,
        )

        if voter.proxy:
            upstream = voters.require(voter.proxy, "proxy not found")
            voters.modify(upstream.owner, proxied_vote_weight=float(voter.staked))
            logger.debug(
                f"Propagating {voter.owner} -> proxy {upstream.owner} "
                f"(proxied_vote_weight={voter.staked})"
            )
            self.propagate(upstream, depth + 1)
        else:
            for owner in voter.producers:
                producers.require(owner)
                producers.modify(owner, total_votes=new_weight)
            if voter.producers:
                logger.debug(
                    f"Propagated {voter.owner} weight {new_weight:.4f} "
                    f"to {len(voter.producers)} producer(s)"
                )

        voters.modify(voter.owner, last_vote_weight=new_weight)
        return new_weight
