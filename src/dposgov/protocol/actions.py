"""
dposgov/protocol/actions.py

Governance action records.

Each action names the account that must authorize it and carries that
account's signature over get_signing_message().
"""

import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Type

from ..errors import ValidationError


def _text(data: Dict[str, Any], name: str, default: Optional[str] = None) -> str:
    """String field of an action document; missing required fields raise KeyError."""
    value = data[name] if default is None else data.get(name, default)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value


def _int(data: Dict[str, Any], name: str, default: int = 0) -> int:
    value = data.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value


def _optional_text(data: Dict[str, Any], name: str) -> Optional[str]:
    if data.get(name) is None:
        return None
    return _text(data, name) or None


def _bool(data: Dict[str, Any], name: str, default: bool) -> bool:
    value = data.get(name, default)
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be a boolean")
    return value


def _text_list(data: Dict[str, Any], name: str) -> List[str]:
    values = data.get(name, [])
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValidationError(f"{name} must be a list of strings")
    return values


@dataclass
class RegisterProducerAction:
    """Register or update a producer candidate."""
    owner: str
    producer_key: str
    url: str = ""
    location: int = 0
    timestamp: int = 0
    signature: str = ""

    ACTION = "regproducer"

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    @property
    def account(self) -> str:
        return self.owner

    def get_signing_message(self) -> str:
        return f"{self.ACTION}:{self.owner}:{self.producer_key}:{self.url}:{self.location}:{self.timestamp}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RegisterProducerAction":
        return cls(
            owner=_text(data, "owner"),
            producer_key=_text(data, "producer_key", ""),
            url=_text(data, "url", ""),
            location=_int(data, "location"),
            timestamp=_int(data, "timestamp"),
            signature=_text(data, "signature", ""),
        )


@dataclass
class UnregisterProducerAction:
    """Deactivate a producer candidate."""
    owner: str
    timestamp: int = 0
    signature: str = ""

    ACTION = "unregprod"

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    @property
    def account(self) -> str:
        return self.owner

    def get_signing_message(self) -> str:
        return f"{self.ACTION}:{self.owner}:{self.timestamp}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UnregisterProducerAction":
        return cls(
            owner=_text(data, "owner"),
            timestamp=_int(data, "timestamp"),
            signature=_text(data, "signature", ""),
        )


@dataclass
class VoteProducerAction:
    """
    Vote for up to 30 producers, or delegate to a proxy.

    `producers` must be sorted and unique; `proxy` and `producers` are
    mutually exclusive.
    """
    voter: str
    proxy: Optional[str] = None
    producers: List[str] = field(default_factory=list)
    timestamp: int = 0
    signature: str = ""

    ACTION = "voteproducer"

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())
        self.producers = list(self.producers)

    @property
    def account(self) -> str:
        return self.voter

    def get_signing_message(self) -> str:
        producers = ",".join(self.producers)
        return f"{self.ACTION}:{self.voter}:{self.proxy or ''}:{producers}:{self.timestamp}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "VoteProducerAction":
        return cls(
            voter=_text(data, "voter"),
            proxy=_optional_text(data, "proxy"),
            producers=_text_list(data, "producers"),
            timestamp=_int(data, "timestamp"),
            signature=_text(data, "signature", ""),
        )


@dataclass
class RegisterProxyAction:
    """Flag or unflag an account as a proxy."""
    proxy: str
    isproxy: bool = True
    timestamp: int = 0
    signature: str = ""

    ACTION = "regproxy"

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    @property
    def account(self) -> str:
        return self.proxy

    def get_signing_message(self) -> str:
        return f"{self.ACTION}:{self.proxy}:{int(self.isproxy)}:{self.timestamp}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "RegisterProxyAction":
        return cls(
            proxy=_text(data, "proxy"),
            isproxy=_bool(data, "isproxy", True),
            timestamp=_int(data, "timestamp"),
            signature=_text(data, "signature", ""),
        )


@dataclass
class ChangeStakeAction:
    """
    Stake change reported by the staking ledger.

    Signed by the ledger operator rather than by `account`; the contract
    checks it with its ledger authorizer.
    """
    account: str
    delta: int
    timestamp: int = 0
    signature: str = ""

    ACTION = "changestake"

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    def get_signing_message(self) -> str:
        return f"{self.ACTION}:{self.account}:{self.delta}:{self.timestamp}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeStakeAction":
        if "delta" not in data:
            raise ValidationError("delta is required")
        return cls(
            account=_text(data, "account"),
            delta=_int(data, "delta"),
            timestamp=_int(data, "timestamp"),
            signature=_text(data, "signature", ""),
        )


ACTION_TYPES: Dict[str, Type] = {
    RegisterProducerAction.ACTION: RegisterProducerAction,
    UnregisterProducerAction.ACTION: UnregisterProducerAction,
    VoteProducerAction.ACTION: VoteProducerAction,
    RegisterProxyAction.ACTION: RegisterProxyAction,
    ChangeStakeAction.ACTION: ChangeStakeAction,
}
