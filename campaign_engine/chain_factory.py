"""
Factory for creating and validating chain objects.

Builds the Web3 provider, relayer account, contract handle and chain client for one
deployment, and refuses to start when the node is unreachable or on the wrong chain.
"""
import os
from typing import Optional

from bittensor.utils.btlogging import logging
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract

from campaign_engine.adapters.chain_client import Web3ChainClient
from campaign_engine.constants import DEFAULT_RPC_TIMEOUT, ENV_RELAYER_KEY
from campaign_engine.contract_profiles import ContractProfile, get_profile
from campaign_engine.domain.deployment import ChainDeployment


class ChainObjects:
    """Container for chain-related objects."""

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        contract: Contract,
        profile: ContractProfile,
        chain_client: Web3ChainClient,
        deployment: ChainDeployment,
    ):
        """
        Initialize chain objects container.

        Args:
            w3: Connected Web3 instance
            account: Relayer account
            contract: Fundraiser contract handle
            profile: Contract generation codecs
            chain_client: Chain client wired from the above
            deployment: Deployment the objects were built for
        """
        self.w3 = w3
        self.account = account
        self.contract = contract
        self.profile = profile
        self.chain_client = chain_client
        self.deployment = deployment


class ChainFactory:
    """Factory for creating chain objects."""

    @staticmethod
    def create(
        deployment: ChainDeployment,
        private_key: Optional[str] = None,
        rpc_timeout: int = DEFAULT_RPC_TIMEOUT,
    ) -> ChainObjects:
        """
        Create and validate all chain objects.

        Args:
            deployment: Target deployment
            private_key: Relayer key. If not provided, read from RELAYER_PRIVATE_KEY.
            rpc_timeout: Per-request RPC timeout in seconds

        Returns:
            ChainObjects container

        Raises:
            ValueError: If the key is missing or the contract version is unknown
            SystemExit: If the node is unreachable or reports a different chain id
        """
        logging.info(f"Setting up chain objects for {deployment}")

        private_key = private_key or os.getenv(ENV_RELAYER_KEY)
        if not private_key:
            raise ValueError(f"{ENV_RELAYER_KEY} must be set as environment variable or passed as parameter")
        profile = get_profile(deployment.contract_version)

        w3 = Web3(Web3.HTTPProvider(deployment.rpc_url, request_kwargs={"timeout": rpc_timeout}))
        if not w3.is_connected():
            logging.error(f"RPC node {deployment.rpc_url} is not reachable.")
            raise SystemExit(1)

        node_chain_id = w3.eth.chain_id
        if node_chain_id != deployment.chain_id:
            logging.error(
                f"RPC node {deployment.rpc_url} reports chain id {node_chain_id}, "
                f"expected {deployment.chain_id} for {deployment.chain}."
            )
            raise SystemExit(1)

        account = Account.from_key(private_key)
        logging.info(f"Relayer: {account.address}")

        contract = w3.eth.contract(address=Web3.to_checksum_address(deployment.contract_address), abi=profile.abi)
        logging.info(f"Contract: {contract.address} ({profile.version})")

        chain_client = Web3ChainClient(
            w3=w3,
            account=account,
            contract=contract,
            profile=profile,
            chain_id=deployment.chain_id,
        )
        logging.info("Chain objects initialized successfully.")

        return ChainObjects(
            w3=w3,
            account=account,
            contract=contract,
            profile=profile,
            chain_client=chain_client,
            deployment=deployment,
        )
