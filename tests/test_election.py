"""
dposgov/tests/test_election.py

Tests for ScheduleElector.
"""

from unittest.mock import Mock

import pytest

from dposgov.protocol.election import (
    ProducerKeyEntry,
    ProposedSchedule,
    ScheduleElector,
    accept_all,
)
from dposgov.protocol.producers import Producer
from dposgov.protocol.state import ChainState


def make_state(votes):
    """State with producers named after the given {owner: total_votes} map."""
    state = ChainState()
    for owner, total in votes.items():
        state.producers.emplace(Producer(owner=owner, producer_key=f"key-{owner}", total_votes=total))
    return state


def elect(elector, now=1000):
    with elector.state.transaction():
        return elector.elect(now)


class TestProposedSchedule:
    """Tests for ProposedSchedule."""

    def test_dict_roundtrip(self):
        schedule = ProposedSchedule(
            producers=[ProducerKeyEntry("a", "ka"), ProducerKeyEntry("b", "kb")],
            proposed_at=7,
        )
        data = schedule.to_dict()
        assert data["size"] == 2
        assert ProposedSchedule.from_dict(data) == schedule

    def test_entries_order_by_owner_then_key(self):
        entries = [ProducerKeyEntry("b", "1"), ProducerKeyEntry("a", "2"), ProducerKeyEntry("a", "1")]
        assert sorted(entries) == [
            ProducerKeyEntry("a", "1"), ProducerKeyEntry("a", "2"), ProducerKeyEntry("b", "1"),
        ]

    def test_accept_all(self):
        assert accept_all([]) is True


class TestScheduleElector:
    """Tests for ScheduleElector.elect()."""

    def test_sorted_by_owner(self, config):
        state = make_state({"carol": 30.0, "alice": 10.0, "bob": 20.0})
        elector = ScheduleElector(state, config)

        schedule = elect(elector, now=555)

        assert schedule.owners() == ["alice", "bob", "carol"]
        assert schedule.producers[0] == ProducerKeyEntry("alice", "key-alice")
        assert schedule.proposed_at == 555
        assert state.global_state.last_producer_schedule_size == 3
        assert state.global_state.last_producer_schedule_update == 555
        assert elector.last_schedule is schedule

    def test_top_twenty_one(self, config):
        state = make_state({f"p{i:02d}": float(i + 1) for i in range(25)})
        elector = ScheduleElector(state, config)

        schedule = elect(elector)

        assert len(schedule) == 21
        # the four lowest-voted producers are left out
        assert schedule.owners() == [f"p{i:02d}" for i in range(4, 25)]

    def test_vote_tie_broken_by_owner(self, config):
        votes = {f"p{i:02d}": 1.0 for i in range(22)}
        state = make_state(votes)
        schedule = elect(ScheduleElector(state, config))
        assert "p21" not in schedule.owners()
        assert len(schedule) == 21

    def test_stops_at_zero_votes(self, config):
        state = make_state({"alice": 5.0, "bob": 0.0, "carol": 3.0})
        schedule = elect(ScheduleElector(state, config))
        assert schedule.owners() == ["alice", "carol"]

    def test_inactive_excluded(self, config):
        state = make_state({"alice": 5.0, "bob": 500.0, "carol": 3.0})
        state.producers.deactivate("bob")
        schedule = elect(ScheduleElector(state, config))
        assert schedule.owners() == ["alice", "carol"]

    def test_never_shrinks(self, config):
        state = make_state({"alice": 5.0, "bob": 4.0, "carol": 3.0})
        elector = ScheduleElector(state, config)
        elect(elector, now=100)

        state.producers.deactivate("carol")
        result = elect(elector, now=200)

        assert result is None
        assert state.global_state.last_producer_schedule_size == 3
        assert state.global_state.last_producer_schedule_update == 100

    def test_same_size_accepted(self, config):
        state = make_state({"alice": 5.0, "bob": 4.0, "carol": 3.0})
        elector = ScheduleElector(state, config)
        elect(elector, now=100)

        state.producers.deactivate("carol")
        state.producers.emplace(Producer(owner="dave", producer_key="key-dave", total_votes=1.0))
        schedule = elect(elector, now=200)

        assert schedule.owners() == ["alice", "bob", "dave"]

    def test_proposer_receives_sorted_entries(self, config):
        proposer = Mock(return_value=True)
        state = make_state({"zed": 9.0, "amy": 1.0})

        elect(ScheduleElector(state, config, proposer=proposer))

        proposer.assert_called_once_with([
            ProducerKeyEntry("amy", "key-amy"),
            ProducerKeyEntry("zed", "key-zed"),
        ])

    def test_rejected_schedule_leaves_state(self, config):
        state = make_state({"alice": 5.0})
        elector = ScheduleElector(state, config, proposer=Mock(return_value=False))

        assert elect(elector) is None
        assert state.global_state.last_producer_schedule_size == 0
        assert state.global_state.last_producer_schedule_update == 0
        assert elector.last_schedule is None

    def test_custom_schedule_size(self):
        from dposgov.config import GovernanceConfig

        state = make_state({"a": 3.0, "b": 2.0, "c": 1.0})
        elector = ScheduleElector(state, GovernanceConfig(max_schedule_size=2))
        assert elect(elector).owners() == ["a", "b"]

    def test_elected_from_votes(self, seeded_state, config):
        seeded_state.producers.modify("prod04", total_votes=2.0)
        seeded_state.producers.modify("prod07", total_votes=3.0)
        schedule = elect(ScheduleElector(seeded_state, config))
        assert schedule.owners() == ["prod04", "prod07"]
