"""
dposgov/node.py

Standalone governance node.
Run with: python -m dposgov.node

Loads persisted state, serves the REST API and runs the periodic
election trigger in one trio nursery. State is saved after every
accepted schedule and on shutdown.
"""

import logging
import os

import trio

from .auth import AllowAllAuthorizer, SignatureAuthorizer
from .api import GovernanceAPI
from .config import GovernanceConfig
from .protocol.election import ProposedSchedule
from .protocol.election_trigger import ElectionTrigger
from .protocol.governance import GovernanceContract
from .protocol.storage import GovernanceStorage

logger = logging.getLogger("dposgov.node")


def build_contract(config: GovernanceConfig) -> GovernanceContract:
    """
    Contract with the node's authorizers.

    Account actions must be signed by the account. Stake changes must be
    signed by the configured staking ledger address; without one the
    stake endpoint rejects every change.
    """
    if not config.require_signatures:
        logger.warning("Signature checks disabled; every caller is trusted")
        trusted = AllowAllAuthorizer()
        return GovernanceContract(config=config, authorizer=trusted, ledger_authorizer=trusted)

    if not config.ledger_address:
        logger.warning("No DPOSGOV_LEDGER_ADDRESS configured; stake changes will be rejected")
    ledger = SignatureAuthorizer(resolve_address=lambda account: config.ledger_address)
    return GovernanceContract(
        config=config,
        authorizer=SignatureAuthorizer(),
        ledger_authorizer=ledger,
    )


async def main(config: GovernanceConfig = None) -> None:
    """Run the node until interrupted."""
    config = config or GovernanceConfig.from_env()
    logger.info(f"Starting dposgov node: {config.to_dict()}")

    contract = build_contract(config)
    storage = GovernanceStorage(storage_dir=config.get_storage_dir())
    await storage.load_state(contract.state)
    contract.elector.last_schedule = await storage.load_schedule()

    async def persist(schedule: ProposedSchedule) -> None:
        await storage.save_state(contract.state)
        await storage.save_schedule(schedule)

    trigger = ElectionTrigger(contract)
    trigger.on_elected(persist)
    api = GovernanceAPI(contract, host=config.api_host, port=config.api_port)

    try:
        async with trio.open_nursery() as nursery:
            await nursery.start(trigger.run)
            nursery.start_soon(api.start)
    finally:
        with trio.CancelScope(shield=True):
            await storage.save_state(contract.state)
        logger.info("dposgov node stopped")


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("DPOSGOV_LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )
    try:
        trio.run(main)
    except KeyboardInterrupt:
        logger.info("Interrupted")
