"""
dposgov/tests/test_voting.py

Tests for VoteUpdateEngine: validation, delta application, activation
accounting and proxy delegation.
"""

import math

import pytest

from dposgov.config import GovernanceConfig
from dposgov.errors import InvariantViolation, NotFoundError, ValidationError
from dposgov.protocol.propagation import ProxyPropagationEngine
from dposgov.protocol.state import ChainState
from dposgov.protocol.voters import Voter
from dposgov.protocol.vote_weight import inverse_vote_weight
from dposgov.protocol.voting import VoteUpdateEngine


def weight(staked, voted, registered=10):
    return (0.9 * math.sin(math.pi / 2 * voted / registered) + 0.1) * staked


@pytest.fixture
def engine(seeded_state, config):
    return VoteUpdateEngine(seeded_state, config, clock=lambda: 1234)


def vote(engine, voter, proxy=None, producers=(), voting=True):
    with engine.state.transaction():
        return engine.update_votes(voter, proxy, list(producers), voting)


def total_votes(state: ChainState, owner: str) -> float:
    return state.producers.find(owner).total_votes


# ============================================================================
# VALIDATION
# ============================================================================

class TestVoteValidation:
    """Tests for update_votes() preconditions."""

    @pytest.fixture(autouse=True)
    def voters(self, seeded_state):
        seeded_state.voters.emplace(Voter(owner="alice", staked=1000))
        seeded_state.voters.emplace(Voter(owner="proxy1", is_proxy=True))
        seeded_state.voters.emplace(Voter(owner="bob", staked=10))

    def test_proxy_and_producers_exclusive(self, engine):
        with pytest.raises(ValidationError, match="proxy at same time"):
            vote(engine, "alice", proxy="proxy1", producers=["prod00"])

    def test_cannot_proxy_to_self(self, engine):
        with pytest.raises(ValidationError, match="cannot proxy to self"):
            vote(engine, "alice", proxy="alice")

    def test_too_many_producers(self, engine):
        names = [f"x{i:02d}" for i in range(31)]
        with pytest.raises(ValidationError, match="too many producers"):
            vote(engine, "alice", producers=names)

    def test_unsorted_producers(self, engine):
        with pytest.raises(ValidationError, match="unique and sorted"):
            vote(engine, "alice", producers=["prod02", "prod01"])

    def test_duplicate_producers(self, engine):
        with pytest.raises(ValidationError, match="unique and sorted"):
            vote(engine, "alice", producers=["prod01", "prod01"])

    def test_voter_must_exist(self, engine):
        with pytest.raises(NotFoundError, match="must stake"):
            vote(engine, "nobody", producers=["prod01"])

    def test_proxy_cannot_use_proxy(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="proxy2", is_proxy=True))
        with pytest.raises(ValidationError, match="not allowed to use a proxy"):
            vote(engine, "proxy2", proxy="proxy1")

    def test_unknown_proxy(self, engine):
        with pytest.raises(NotFoundError, match="invalid proxy"):
            vote(engine, "alice", proxy="ghost")

    def test_proxy_must_be_flagged(self, engine):
        with pytest.raises(NotFoundError, match="proxy not found"):
            vote(engine, "alice", proxy="bob")

    def test_unknown_proxy_on_reevaluation_is_corruption(self, engine):
        with pytest.raises(InvariantViolation):
            vote(engine, "alice", proxy="ghost", voting=False)

    def test_unregistered_producer(self, engine):
        with pytest.raises(NotFoundError, match="not registered"):
            vote(engine, "alice", producers=["prod01", "zzz"])

    def test_inactive_producer(self, engine, seeded_state):
        seeded_state.producers.deactivate("prod03")
        with pytest.raises(ValidationError, match="not currently registered"):
            vote(engine, "alice", producers=["prod01", "prod03"])

    def test_failure_leaves_state_untouched(self, engine, seeded_state):
        vote(engine, "alice", producers=["prod01"])
        before = seeded_state.to_dict()

        seeded_state.producers.deactivate("prod05")
        after_deactivate = seeded_state.to_dict()
        with pytest.raises(ValidationError):
            vote(engine, "alice", producers=["prod02", "prod05"])

        assert seeded_state.to_dict() == after_deactivate
        assert after_deactivate["voters"] == before["voters"]

    def test_requires_transaction(self, engine):
        with pytest.raises(RuntimeError):
            engine.update_votes("alice", None, ["prod01"], True)


# ============================================================================
# DIRECT VOTES
# ============================================================================

class TestDirectVotes:
    """Tests for voting directly for producers."""

    @pytest.fixture(autouse=True)
    def alice(self, seeded_state):
        return seeded_state.voters.emplace(Voter(owner="alice", staked=1000))

    def test_three_of_ten(self, engine, seeded_state):
        """1000 stake, three producers out of ten."""
        expected = weight(1000, 3)

        result = vote(engine, "alice", producers=["prod01", "prod02", "prod03"])

        assert result == pytest.approx(expected)
        assert result == pytest.approx(508.59, abs=0.01)
        for owner in ("prod01", "prod02", "prod03"):
            assert total_votes(seeded_state, owner) == pytest.approx(expected)
        assert total_votes(seeded_state, "prod04") == 0.0

        gstate = seeded_state.global_state
        assert gstate.total_activated_stake == 1000
        assert gstate.total_producer_vote_weight == pytest.approx(3 * expected)

        alice = seeded_state.voters.find("alice")
        assert alice.last_vote_weight == result
        assert alice.producers == ("prod01", "prod02", "prod03")
        assert alice.proxy is None

    def test_revote_same_set_is_exact(self, engine, seeded_state):
        producers = ["prod01", "prod04", "prod07"]
        vote(engine, "alice", producers=producers)
        totals = {o: total_votes(seeded_state, o) for o in producers}
        activated = seeded_state.global_state.total_activated_stake

        vote(engine, "alice", producers=producers)

        for owner in producers:
            assert total_votes(seeded_state, owner) == totals[owner]
        assert seeded_state.global_state.total_activated_stake == activated

    def test_change_vote_moves_weight(self, engine, seeded_state):
        vote(engine, "alice", producers=["prod01", "prod02"])
        vote(engine, "alice", producers=["prod02", "prod03", "prod04"])

        new_weight = weight(1000, 3)
        assert total_votes(seeded_state, "prod01") == 0.0
        assert total_votes(seeded_state, "prod02") == pytest.approx(new_weight)
        assert total_votes(seeded_state, "prod03") == pytest.approx(new_weight)
        assert total_votes(seeded_state, "prod04") == pytest.approx(new_weight)
        assert seeded_state.global_state.total_activated_stake == 1000

    def test_vote_then_withdraw(self, engine, seeded_state):
        producers = ["prod00", "prod05"]
        vote(engine, "alice", producers=producers)

        result = vote(engine, "alice", producers=[])

        assert result == 0.0
        for owner in producers:
            assert total_votes(seeded_state, owner) == 0.0
        assert seeded_state.global_state.total_activated_stake == 0
        assert seeded_state.voters.find("alice").producers == ()

    def test_withdraw_without_prior_vote_keeps_activated_stake(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))
        vote(engine, "alice", producers=["prod01"])

        vote(engine, "bob", producers=[])

        assert seeded_state.global_state.total_activated_stake == 1000

    def test_two_voters_accumulate(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=400))
        vote(engine, "alice", producers=["prod01"])
        vote(engine, "bob", producers=["prod01"])

        expected = weight(1000, 1) + weight(400, 1)
        assert total_votes(seeded_state, "prod01") == pytest.approx(expected)
        assert seeded_state.global_state.total_activated_stake == 1400

    def test_vote_reorders_index(self, engine, seeded_state):
        vote(engine, "alice", producers=["prod09"])
        first = next(seeded_state.producers.iter_by_votes())
        assert first.owner == "prod09"

    def test_near_zero_total_is_clamped(self, engine, seeded_state):
        vote(engine, "alice", producers=["prod02"])
        cast = seeded_state.voters.find("alice").last_vote_weight
        # total slightly below the weight being withdrawn
        seeded_state.producers.modify("prod02", total_votes=cast - 1e-9)

        vote(engine, "alice", producers=[])

        assert total_votes(seeded_state, "prod02") == 0.0

    def test_inactive_old_producer_still_loses_votes(self, engine, seeded_state):
        vote(engine, "alice", producers=["prod01", "prod02"])
        seeded_state.producers.deactivate("prod01")

        vote(engine, "alice", producers=["prod02"])

        assert total_votes(seeded_state, "prod01") == 0.0
        assert total_votes(seeded_state, "prod02") == pytest.approx(weight(1000, 1))

    def test_weight_uses_registered_not_active_count(self, engine, seeded_state):
        for owner in ("prod05", "prod06", "prod07", "prod08", "prod09"):
            seeded_state.producers.deactivate(owner)
        result = vote(engine, "alice", producers=["prod01"])
        assert result == pytest.approx(inverse_vote_weight(1000, 1, 10))


# ============================================================================
# ACTIVATION
# ============================================================================

class TestActivation:
    """Tests for activated stake accounting and the activation latch."""

    def test_threshold_latches_once(self, seeded_state):
        config = GovernanceConfig(min_activated_stake=1500)
        now = {"t": 100}
        engine = VoteUpdateEngine(seeded_state, config, clock=lambda: now["t"])
        seeded_state.voters.emplace(Voter(owner="alice", staked=1000))
        seeded_state.voters.emplace(Voter(owner="bob", staked=1000))
        seeded_state.voters.emplace(Voter(owner="carol", staked=1000))

        vote(engine, "alice", producers=["prod01"])
        assert seeded_state.global_state.thresh_activated_stake_time == 0

        now["t"] = 200
        vote(engine, "bob", producers=["prod01"])
        assert seeded_state.global_state.thresh_activated_stake_time == 200

        now["t"] = 300
        vote(engine, "carol", producers=["prod01"])
        assert seeded_state.global_state.thresh_activated_stake_time == 200
        assert seeded_state.global_state.is_activated()

    def test_proxy_voter_activates_with_proxied_weight(self, engine, seeded_state):
        seeded_state.voters.emplace(
            Voter(owner="proxy1", staked=100, is_proxy=True, proxied_vote_weight=400.0)
        )
        vote(engine, "proxy1", producers=["prod01"])
        assert seeded_state.global_state.total_activated_stake == 500

    def test_reevaluation_does_not_activate(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="alice", staked=1000))
        vote(engine, "alice", producers=["prod01"], voting=False)
        assert seeded_state.global_state.total_activated_stake == 0


# ============================================================================
# PROXY DELEGATION
# ============================================================================

class TestProxyDelegation:
    """Tests for delegating to a proxy."""

    @pytest.fixture(autouse=True)
    def proxy(self, seeded_state):
        """An already activated proxy voting for prod01 and prod02."""
        seeded_state.producers.modify("prod01", total_votes=1.0)
        seeded_state.producers.modify("prod02", total_votes=1.0)
        return seeded_state.voters.emplace(Voter(
            owner="carol",
            is_proxy=True,
            last_vote_weight=1.0,
            producers=("prod01", "prod02"),
        ))

    def test_delegate_to_activated_proxy(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))

        result = vote(engine, "bob", proxy="carol")

        carol = seeded_state.voters.find("carol")
        assert carol.proxied_vote_weight == 500
        # propagation overwrites with the proxy's aggregate weight
        assert total_votes(seeded_state, "prod01") == pytest.approx(500.0)
        assert total_votes(seeded_state, "prod02") == pytest.approx(500.0)
        assert carol.last_vote_weight == pytest.approx(500.0)
        assert seeded_state.global_state.total_activated_stake == 500

        bob = seeded_state.voters.find("bob")
        assert bob.proxy == "carol"
        assert bob.producers == ()
        assert result == 0.0

    def test_delegate_to_inactive_proxy_does_not_propagate(self, engine, seeded_state):
        seeded_state.voters.modify("carol", last_vote_weight=0.0)
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))

        vote(engine, "bob", proxy="carol")

        assert seeded_state.voters.find("carol").proxied_vote_weight == 500
        assert total_votes(seeded_state, "prod01") == 1.0
        assert seeded_state.global_state.total_activated_stake == 0

    def test_delegations_add_up(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))
        seeded_state.voters.emplace(Voter(owner="dave", staked=300))

        vote(engine, "bob", proxy="carol")
        vote(engine, "dave", proxy="carol")

        assert seeded_state.voters.find("carol").proxied_vote_weight == 800
        assert total_votes(seeded_state, "prod01") == pytest.approx(800.0)

    def test_reevaluation_sets_proxied_weight(self, engine, seeded_state):
        """Internal re-evaluation assigns the voter's stake instead of adding it."""
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))
        seeded_state.voters.emplace(Voter(owner="dave", staked=300))
        vote(engine, "bob", proxy="carol")
        vote(engine, "dave", proxy="carol")

        seeded_state.voters.modify("bob", staked=600)
        vote(engine, "bob", proxy="carol", voting=False)

        assert seeded_state.voters.find("carol").proxied_vote_weight == 600
        assert total_votes(seeded_state, "prod01") == pytest.approx(600.0)

    def test_leave_proxy_for_direct_votes(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))
        vote(engine, "bob", proxy="carol")

        vote(engine, "bob", producers=["prod05"])

        carol = seeded_state.voters.find("carol")
        assert carol.proxied_vote_weight == 0
        assert carol.last_vote_weight == 0.0
        assert total_votes(seeded_state, "prod01") == 0.0
        assert total_votes(seeded_state, "prod05") == pytest.approx(weight(500, 1))
        bob = seeded_state.voters.find("bob")
        assert bob.proxy is None
        assert bob.producers == ("prod05",)

    def test_missing_old_proxy_is_corruption(self, engine, seeded_state):
        seeded_state.voters.emplace(Voter(owner="bob", staked=500, proxy="ghost"))
        with pytest.raises(InvariantViolation):
            vote(engine, "bob", producers=["prod05"])
        assert total_votes(seeded_state, "prod05") == 0.0

    def test_propagation_failure_rolls_back(self, seeded_state, config):
        class FailingPropagation(ProxyPropagationEngine):
            def propagate(self, voter, depth=0):
                raise InvariantViolation("boom")

        engine = VoteUpdateEngine(
            seeded_state, config, FailingPropagation(seeded_state, config)
        )
        seeded_state.voters.emplace(Voter(owner="bob", staked=500))
        before = seeded_state.to_dict()

        with pytest.raises(InvariantViolation):
            vote(engine, "bob", proxy="carol")

        assert seeded_state.to_dict() == before
