"""
dposgov/metrics.py

Prometheus metrics for producer governance.

Exposes stake activation, vote weight, registry sizes, the current
schedule and per-action outcome counters in Prometheus text format.
"""

import time
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:
    from .protocol.governance import GovernanceContract

from . import __version__

logger = logging.getLogger("dposgov.metrics")


def _escape_label(value: str) -> str:
    """Escape a label value for the Prometheus text format."""
    return value.replace("\\", "\\\\").replace("\"", "\\\"").replace("\n", "\\n")


class GovernanceMetrics:
    """
    Prometheus metrics collector for a GovernanceContract.

    Usage:
        metrics = GovernanceMetrics(contract)
        prometheus_output = metrics.collect()
    """

    METRICS = {
        "dposgov_total_activated_stake": {
            "type": "gauge",
            "help": "Stake counted towards network activation",
        },
        "dposgov_total_producer_vote_weight": {
            "type": "gauge",
            "help": "Sum of vote weight applied to producers",
        },
        "dposgov_network_activated": {
            "type": "gauge",
            "help": "Whether the activation threshold was reached (1=yes, 0=no)",
        },
        "dposgov_producers": {
            "type": "gauge",
            "help": "Number of registered producers",
        },
        "dposgov_active_producers": {
            "type": "gauge",
            "help": "Number of active producers",
        },
        "dposgov_voters": {
            "type": "gauge",
            "help": "Number of voter records",
        },
        "dposgov_proxies": {
            "type": "gauge",
            "help": "Number of voters registered as proxies",
        },
        "dposgov_schedule_size": {
            "type": "gauge",
            "help": "Size of the last accepted producer schedule",
        },
        "dposgov_last_schedule_update": {
            "type": "gauge",
            "help": "Chain time of the last accepted schedule",
        },
        "dposgov_producer_votes": {
            "type": "gauge",
            "help": "Total votes per producer",
        },
        "dposgov_actions_total": {
            "type": "counter",
            "help": "Governance actions by name and result",
        },
        "dposgov_uptime_seconds": {
            "type": "counter",
            "help": "Node uptime in seconds",
        },
    }

    def __init__(self, contract: "GovernanceContract", per_producer: bool = True):
        """
        Args:
            contract: Contract to collect from; action outcomes are recorded
                through its on_action callback
            per_producer: Emit one labelled sample per producer
        """
        self.contract = contract
        self.per_producer = per_producer
        self._start_time = time.time()
        self._actions: Dict[str, Dict[str, int]] = defaultdict(lambda: {"ok": 0, "error": 0})
        contract.on_action(self.record_action)

    def record_action(self, name: str, succeeded: bool) -> None:
        self._actions[name]["ok" if succeeded else "error"] += 1

    def collect(self) -> str:
        """Return all metrics in Prometheus text format."""
        lines = []

        def header(name: str) -> None:
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")

        def add_metric(name: str, value: float) -> None:
            header(name)
            lines.append(f"{name} {value}")

        stats = self.contract.get_stats()
        add_metric("dposgov_total_activated_stake", stats["total_activated_stake"])
        add_metric("dposgov_total_producer_vote_weight", stats["total_producer_vote_weight"])
        add_metric("dposgov_network_activated", 1 if stats["activated"] else 0)
        add_metric("dposgov_producers", stats["producers"])
        add_metric("dposgov_active_producers", stats["active_producers"])
        add_metric("dposgov_voters", stats["voters"])
        add_metric("dposgov_proxies", stats["proxies"])
        add_metric("dposgov_schedule_size", stats["last_producer_schedule_size"])
        add_metric("dposgov_last_schedule_update", stats["last_producer_schedule_update"])

        if self.per_producer:
            header("dposgov_producer_votes")
            for producer in self.contract.list_producers():
                active = "1" if producer.is_active else "0"
                lines.append(
                    f'dposgov_producer_votes{{producer="{_escape_label(producer.owner)}",active="{active}"}} '
                    f"{producer.total_votes}"
                )

        if self._actions:
            header("dposgov_actions_total")
            for name in sorted(self._actions):
                for result, count in self._actions[name].items():
                    lines.append(
                        f'dposgov_actions_total{{action="{_escape_label(name)}",result="{result}"}} {count}'
                    )

        add_metric("dposgov_uptime_seconds", time.time() - self._start_time)

        lines.append("# HELP dposgov_info Node information")
        lines.append("# TYPE dposgov_info gauge")
        lines.append(f'dposgov_info{{version="{__version__}"}} 1')

        return "\n".join(lines) + "\n"

    def get_stats(self) -> Dict[str, Any]:
        """Metrics as a dictionary (for the JSON API)."""
        stats = dict(self.contract.get_stats())
        stats["actions"] = {name: dict(counts) for name, counts in self._actions.items()}
        stats["uptime_seconds"] = time.time() - self._start_time
        return stats

    def reset_counters(self) -> None:
        self._actions.clear()
