import argparse
import os
import time
import traceback
from typing import List

from bittensor.core.config import Config
from bittensor.utils.btlogging import logging

from campaign_engine import __version__
from campaign_engine.adapters.mirror_store import SupabaseMirrorStore
from campaign_engine.chain_factory import ChainFactory
from campaign_engine.constants import (
    CHAIN_IDS,
    DEFAULT_CHAIN,
    DEFAULT_MIRROR_TABLE,
    DEFAULT_RPC_TIMEOUT,
    ENV_TARGET_CHAIN,
)
from campaign_engine.domain.mirror import MirrorStatus
from campaign_engine.domain.results import AuditEntry, CreationResult, ReconcileResult
from campaign_engine.engine import CampaignCreationEngine
from campaign_engine.engine_config import EngineConfig
from campaign_engine.errors import CampaignEngineError, MirrorStoreError
from campaign_engine.nonce_manager import SenderNonceManager
from campaign_engine.request_builder import CampaignRequestBuilder
from campaign_engine.resolvers import DeploymentResolver, NativeUsdRateResolver

DEFAULT_VERIFY_INTERVAL = 60  # seconds between verify sweeps in run()


class CampaignRelayer:
    """
    Relayer process for one chain.

    Wires the mirror store, chain objects and engine from configuration and exposes
    the engine's entry points. ``run`` periodically re-verifies mirrors left in
    pending_onchain so stuck transactions converge without an operator.
    """

    def __init__(self):
        """Initialize relayer from command line arguments and environment."""
        self.config = self._get_config()
        self._setup_logging()

        deployment = DeploymentResolver()(self.config.chain)
        chain_objects = ChainFactory.create(deployment, rpc_timeout=self.config.rpc_timeout)
        self.deployment = deployment
        self.chain_client = chain_objects.chain_client

        self._initialize_core_components()

    def _initialize_core_components(self):
        """Initialize store, request builder and engine."""
        self.store = SupabaseMirrorStore(table=self.config.table)

        engine_config = EngineConfig.from_env()
        if self.config.max_attempts is not None:
            engine_config.max_attempts = self.config.max_attempts
        if self.config.confirmation_timeout is not None:
            engine_config.confirmation_timeout = self.config.confirmation_timeout

        request_builder = CampaignRequestBuilder(
            rate_resolver=NativeUsdRateResolver(),
            fallback_beneficiary=self.chain_client.sender_address,
            default_chain=self.deployment.chain,
        )
        self.engine = CampaignCreationEngine(
            store=self.store,
            chain_client=self.chain_client,
            request_builder=request_builder,
            config=engine_config,
            nonce_manager=SenderNonceManager(),
        )

    def _get_config(self) -> Config:
        """Get relayer configuration."""
        parser = argparse.ArgumentParser()
        parser.add_argument(
            "--chain",
            type=str,
            default=os.getenv(ENV_TARGET_CHAIN, DEFAULT_CHAIN),
            choices=sorted(CHAIN_IDS),
            help="Target chain selector.",
        )
        parser.add_argument("--mirror-id", type=str, default=None, help="Submission row id to act on.")
        parser.add_argument("--table", type=str, default=DEFAULT_MIRROR_TABLE, help="Submission mirror table.")
        parser.add_argument(
            "--max-attempts", type=int, default=None, help="Override ENGINE_MAX_ATTEMPTS for this process."
        )
        parser.add_argument(
            "--confirmation-timeout",
            type=float,
            default=None,
            help="Override ENGINE_CONFIRMATION_TIMEOUT (seconds) for this process.",
        )
        parser.add_argument("--rpc-timeout", type=int, default=DEFAULT_RPC_TIMEOUT, help="Per-request RPC timeout.")
        parser.add_argument(
            "--verify-interval",
            type=int,
            default=DEFAULT_VERIFY_INTERVAL,
            help="Seconds between pending_onchain verify sweeps in the relayer loop.",
        )
        logging.add_args(parser)

        config = Config(parser)

        if config.max_attempts is not None and config.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {config.max_attempts}")

        config.full_path = os.path.expanduser(
            "{}/campaign_relayer/{}".format(config.logging.logging_dir, config.chain)
        )
        os.makedirs(config.full_path, exist_ok=True)
        return config

    def _setup_logging(self):
        """Set up logging."""
        logging(config=self.config, logging_dir=self.config.full_path)
        logging.info(f"Running campaign relayer {__version__} for chain: {self.config.chain}")

    def create(self, mirror_id: str) -> CreationResult:
        """Create the on-chain campaign for one mirror."""
        result = self.engine.create(mirror_id)
        logging.info(f"Create {mirror_id}: {result.to_dict()}")
        return result

    def verify(self, mirror_id: str) -> ReconcileResult:
        """Reconcile one mirror with chain state."""
        result = self.engine.verify(mirror_id)
        logging.info(f"Verify {mirror_id}: {result.to_dict()}")
        return result

    def audit(self) -> List[AuditEntry]:
        """Audit every minted mirror."""
        return self.engine.audit_minted()

    def verify_pending(self) -> List[ReconcileResult]:
        """Reconcile every mirror currently in pending_onchain."""
        mirrors = self.store.list_by_status(MirrorStatus.PENDING_ONCHAIN)
        logging.info(f"Verifying {len(mirrors)} pending_onchain mirrors")

        results = []
        for mirror in mirrors:
            try:
                results.append(self.engine.verify(mirror.mirror_id))
            except (CampaignEngineError, MirrorStoreError) as e:
                logging.error(f"Error verifying mirror {mirror.mirror_id}: {e}")
                traceback.print_exc()

        resolved = sum(1 for result in results if result.changed)
        logging.success(f"Verify sweep done: {resolved}/{len(mirrors)} mirrors updated")
        return results

    def run(self):
        """Main relayer loop."""
        logging.info("Starting relayer loop.")
        while True:
            try:
                self.verify_pending()
                logging.info(f"Sleeping for {self.config.verify_interval} seconds.")
                time.sleep(self.config.verify_interval)
            except RuntimeError as e:
                logging.error(f"Runtime error in relayer loop: {e}")
                traceback.print_exc()
            except KeyboardInterrupt:
                logging.success("Keyboard interrupt detected. Exiting relayer.")
                break


# Run the relayer.
if __name__ == "__main__":
    relayer = CampaignRelayer()
    relayer.run()
