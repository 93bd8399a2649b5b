"""
dposgov/config.py

Configuration constants and settings for dposgov.
"""

import os
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger("dposgov.config")


# Vote weight floor: share of stake credited for voting at all
VOTE_VARIATION = 0.1

# Producers a single voter may select
MAX_VOTED_PRODUCERS = 30

# Producers in a proposed schedule
MAX_SCHEDULE_SIZE = 21

# Producer url must be strictly shorter than this
MAX_URL_LENGTH = 512

# Stake (in smallest units, 4 decimals) that must be activated before
# the network is considered live: 15% of a 1B supply
MIN_ACTIVATED_STAKE = 150_000_000_0000

# Minimum seconds between two schedule elections
ELECTION_INTERVAL_SECONDS = 60

# How often the election trigger wakes up
ELECTION_POLL_SECONDS = 1.0

# Proxy chains are at most two hops by construction
MAX_PROXY_CHAIN_DEPTH = 4

# REST API
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8888

# Storage
DEFAULT_STORAGE_DIR = Path.home() / ".dposgov" / "storage"

ENV_PREFIX = "DPOSGOV_"


@dataclass
class GovernanceConfig:
    """Tunable parameters of the voting engine and node."""
    vote_variation: float = VOTE_VARIATION
    max_voted_producers: int = MAX_VOTED_PRODUCERS
    max_schedule_size: int = MAX_SCHEDULE_SIZE
    max_url_length: int = MAX_URL_LENGTH
    min_activated_stake: int = MIN_ACTIVATED_STAKE
    election_interval_seconds: int = ELECTION_INTERVAL_SECONDS
    election_poll_seconds: float = ELECTION_POLL_SECONDS
    require_activation: bool = True
    require_signatures: bool = True
    max_proxy_chain_depth: int = MAX_PROXY_CHAIN_DEPTH
    ledger_address: Optional[str] = None    # Evrmore address that signs stake changes
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT
    storage_dir: Optional[Path] = None

    def __post_init__(self):
        if not 0.0 < self.vote_variation < 1.0:
            raise ValueError(
                f"vote_variation must be in (0, 1), got {self.vote_variation}"
            )
        if self.max_voted_producers < 1:
            raise ValueError("max_voted_producers must be positive")
        if self.max_schedule_size < 1:
            raise ValueError("max_schedule_size must be positive")
        if self.max_proxy_chain_depth < 1:
            raise ValueError("max_proxy_chain_depth must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "GovernanceConfig":
        """
        Build configuration from DPOSGOV_* environment variables.

        Unset variables keep their defaults. Example:
            DPOSGOV_VOTE_VARIATION=0.1 DPOSGOV_API_PORT=9000
        """
        env = os.environ if environ is None else environ
        kwargs: Dict[str, Any] = {}

        casts = {
            "vote_variation": float,
            "max_voted_producers": int,
            "max_schedule_size": int,
            "max_url_length": int,
            "min_activated_stake": int,
            "election_interval_seconds": int,
            "election_poll_seconds": float,
            "require_activation": _parse_bool,
            "require_signatures": _parse_bool,
            "max_proxy_chain_depth": int,
            "ledger_address": str,
            "api_host": str,
            "api_port": int,
            "storage_dir": Path,
        }

        for name, cast in casts.items():
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            try:
                kwargs[name] = cast(raw)
            except ValueError as e:
                raise ValueError(f"Invalid {ENV_PREFIX}{name.upper()}={raw!r}: {e}") from e
            logger.debug(f"Config {name} from env: {kwargs[name]}")

        return cls(**kwargs)

    def get_storage_dir(self) -> Path:
        return self.storage_dir or DEFAULT_STORAGE_DIR

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["storage_dir"] = str(self.storage_dir) if self.storage_dir else None
        return data


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value}")
