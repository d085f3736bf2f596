"""
Resolvers for per-chain configuration.

This module contains resolver functions that map chain selectors to configuration values.
Following Single Responsibility Principle - each resolver has one clear purpose.
"""
import os
from typing import Dict, Optional, Set

from bittensor.utils.btlogging import logging

from campaign_engine.constants import (
    CHAIN_IDS,
    DEFAULT_CONTRACT_VERSIONS,
    DEFAULT_NATIVE_USD_RATES,
)
from campaign_engine.domain.deployment import ChainDeployment


def _env_key(chain: str, suffix: str) -> str:
    return f"{chain.upper()}_{suffix}"


class NativeUsdRateResolver:
    """
    Resolves the USD value of one native coin for a chain.

    Rates come from configuration (``<CHAIN>_NATIVE_USD_RATE`` or the defaults), not
    from a price feed. The first lookup per chain logs that the rate is static so
    operators notice when it drifts from the market.
    """

    def __init__(self, default_rates: Dict[str, float] = None):
        """
        Initialize rate resolver.

        Args:
            default_rates: Mapping of chain selector to USD per native coin
        """
        self.default_rates = default_rates if default_rates is not None else dict(DEFAULT_NATIVE_USD_RATES)
        self._announced: Set[str] = set()

    def __call__(self, chain: str) -> float:
        """
        Resolve the native/USD rate for a chain.

        Args:
            chain: Chain selector

        Returns:
            USD per native coin

        Raises:
            ValueError: If no positive rate is configured for the chain
        """
        raw = os.getenv(_env_key(chain, "NATIVE_USD_RATE"))
        rate = float(raw) if raw else self.default_rates.get(chain)
        if rate is None or rate <= 0:
            raise ValueError(f"No positive native/USD rate configured for chain {chain!r}")
        if chain not in self._announced:
            logging.info(f"[yellow]Using static native/USD rate for {chain}: {rate}[/yellow]")
            self._announced.add(chain)
        return rate


class DeploymentResolver:
    """
    Resolves the contract deployment for a chain selector.

    Reads ``<CHAIN>_RPC_URL``, ``<CHAIN>_CONTRACT_ADDRESS`` and ``<CHAIN>_CONTRACT_VERSION``.
    """

    def __init__(self, chain_ids: Dict[str, int] = None, default_versions: Dict[str, str] = None):
        self.chain_ids = chain_ids if chain_ids is not None else dict(CHAIN_IDS)
        self.default_versions = default_versions if default_versions is not None else dict(DEFAULT_CONTRACT_VERSIONS)

    def __call__(self, chain: str) -> ChainDeployment:
        """
        Resolve the deployment for a chain.

        Args:
            chain: Chain selector

        Returns:
            ChainDeployment

        Raises:
            ValueError: If the chain is unknown or its RPC/contract address is not configured
        """
        chain = chain.lower()
        if chain not in self.chain_ids:
            raise ValueError(f"Unknown chain {chain!r}; expected one of {sorted(self.chain_ids)}")

        rpc_url = os.getenv(_env_key(chain, "RPC_URL"))
        contract_address = os.getenv(_env_key(chain, "CONTRACT_ADDRESS"))
        if not rpc_url:
            raise ValueError(f"{_env_key(chain, 'RPC_URL')} must be set")
        if not contract_address:
            raise ValueError(f"{_env_key(chain, 'CONTRACT_ADDRESS')} must be set")

        version = os.getenv(_env_key(chain, "CONTRACT_VERSION")) or self.default_versions.get(chain, "v5")
        return ChainDeployment(
            chain=chain,
            chain_id=self.chain_ids[chain],
            rpc_url=rpc_url.strip(),
            contract_address=contract_address.strip(),
            contract_version=version.lower(),
        )


def resolve_chain(requested: Optional[str], default: str) -> str:
    """Normalize a chain selector from a submission row, falling back to the default."""
    return (requested or default).strip().lower()
