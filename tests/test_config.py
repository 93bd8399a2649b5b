"""
dposgov/tests/test_config.py

Tests for GovernanceConfig.
"""

from pathlib import Path

import pytest

from dposgov.config import (
    DEFAULT_STORAGE_DIR,
    MAX_SCHEDULE_SIZE,
    MAX_VOTED_PRODUCERS,
    GovernanceConfig,
)


class TestGovernanceConfig:
    """Tests for GovernanceConfig defaults and validation."""

    def test_defaults(self):
        config = GovernanceConfig()
        assert config.vote_variation == 0.1
        assert config.max_voted_producers == MAX_VOTED_PRODUCERS == 30
        assert config.max_schedule_size == MAX_SCHEDULE_SIZE == 21
        assert config.max_url_length == 512
        assert config.require_activation is True

    @pytest.mark.parametrize("variation", [0.0, 1.0, -0.5, 2.0])
    def test_variation_bounds(self, variation):
        with pytest.raises(ValueError, match="vote_variation"):
            GovernanceConfig(vote_variation=variation)

    @pytest.mark.parametrize("field", ["max_voted_producers", "max_schedule_size", "max_proxy_chain_depth"])
    def test_positive_limits(self, field):
        with pytest.raises(ValueError):
            GovernanceConfig(**{field: 0})

    def test_storage_dir(self, tmp_path):
        assert GovernanceConfig().get_storage_dir() == DEFAULT_STORAGE_DIR
        assert GovernanceConfig(storage_dir=tmp_path).get_storage_dir() == tmp_path

    def test_to_dict(self, tmp_path):
        data = GovernanceConfig(storage_dir=tmp_path).to_dict()
        assert data["storage_dir"] == str(tmp_path)
        assert data["api_port"] == 8888


class TestConfigFromEnv:
    """Tests for GovernanceConfig.from_env()."""

    def test_empty_env(self):
        assert GovernanceConfig.from_env({}) == GovernanceConfig()

    def test_overrides(self):
        config = GovernanceConfig.from_env({
            "DPOSGOV_VOTE_VARIATION": "0.25",
            "DPOSGOV_API_PORT": "9000",
            "DPOSGOV_REQUIRE_SIGNATURES": "no",
            "DPOSGOV_STORAGE_DIR": "/tmp/dposgov",
            "DPOSGOV_API_HOST": "",
        })
        assert config.vote_variation == 0.25
        assert config.api_port == 9000
        assert config.require_signatures is False
        assert config.storage_dir == Path("/tmp/dposgov")
        assert config.api_host == "127.0.0.1"

    def test_invalid_number(self):
        with pytest.raises(ValueError, match="DPOSGOV_API_PORT"):
            GovernanceConfig.from_env({"DPOSGOV_API_PORT": "eighty"})

    def test_invalid_bool(self):
        with pytest.raises(ValueError, match="DPOSGOV_REQUIRE_ACTIVATION"):
            GovernanceConfig.from_env({"DPOSGOV_REQUIRE_ACTIVATION": "maybe"})

    def test_out_of_range_value(self):
        with pytest.raises(ValueError):
            GovernanceConfig.from_env({"DPOSGOV_VOTE_VARIATION": "1.5"})

    def test_ledger_address(self):
        config = GovernanceConfig.from_env({"DPOSGOV_LEDGER_ADDRESS": "EXyzLedger"})
        assert config.ledger_address == "EXyzLedger"
        assert GovernanceConfig().ledger_address is None
