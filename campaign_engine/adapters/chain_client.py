"""
Chain client for the fundraiser contract.

IChainClient is the port the engine depends on. Its abstract methods are the raw
chain primitives; receipt waiting, transaction status and event parsing are built on
top of them once, here, so every implementation shares the same timeout and
classification behaviour.

Web3ChainClient implements the primitives with web3.py and translates transport and
RPC failures into the engine's error taxonomy at this boundary. "Node unreachable"
is never reported as a revert.
"""
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

import requests
from bittensor.utils.btlogging import logging
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from campaign_engine.contract_profiles import ContractProfile
from campaign_engine.domain.campaign import CampaignCreationRequest, ChainCampaign
from campaign_engine.errors import (
    AlreadyKnownError,
    CampaignEngineError,
    ConfirmationTimeoutError,
    FatalChainError,
    NodeUnreachableError,
    NonceConflictError,
    TransactionRevertedError,
)
from campaign_engine.event_decoders import DEFAULT_DECODERS, CampaignCreatedDecoder, CampaignCreatedEvent, decode_campaign_created
from campaign_engine.polling import PollTimeout, poll_until

ALREADY_KNOWN_PATTERNS = ("already known", "known transaction", "already imported")
NONCE_PATTERNS = ("nonce", "replacement", "underpriced")
REVERT_PATTERNS = ("execution reverted", "revert")
UNREACHABLE_HTTP_CODES = {429, 502, 503, 504}


class TxStatus(Enum):
    MINED = "mined"
    PENDING = "pending"
    UNKNOWN = "unknown"  # Never seen, or dropped from the mempool


def _error_message(exc: Exception) -> str:
    # web3 surfaces JSON-RPC errors as {"code": ..., "message": ...} in args[0]
    if exc.args and isinstance(exc.args[0], dict):
        payload = exc.args[0]
        return str(payload.get("message") or payload.get("reason") or payload)
    return str(exc)


def classify_rpc_error(exc: Exception, description: str) -> CampaignEngineError:
    """
    Map an RPC error message onto the error taxonomy.

    Args:
        exc: Raw exception raised by web3 or the node
        description: What the client was doing, for the error message

    Returns:
        Typed engine error (not raised)
    """
    message = _error_message(exc)
    lowered = message.lower()
    if any(pattern in lowered for pattern in ALREADY_KNOWN_PATTERNS):
        return AlreadyKnownError(f"{description}: {message}")
    if any(pattern in lowered for pattern in NONCE_PATTERNS):
        return NonceConflictError(f"{description}: {message}")
    if any(pattern in lowered for pattern in REVERT_PATTERNS):
        return TransactionRevertedError(f"{description}: {message}")
    return FatalChainError(f"{description}: {message}")


class IChainClient(ABC):
    """Interface for reading and writing the fundraiser contract."""

    clock: Callable[[], float] = staticmethod(time.monotonic)
    sleep: Callable[[float], None] = staticmethod(time.sleep)

    @property
    @abstractmethod
    def sender_address(self) -> str:
        """Address of the signer submitting transactions."""

    @property
    @abstractmethod
    def contract_address(self) -> str:
        """Address of the fundraiser contract."""

    @abstractmethod
    def get_campaign_count(self) -> int:
        """Number of campaigns created on the contract."""

    @abstractmethod
    def get_campaign_by_index(self, index: int) -> ChainCampaign:
        """Read one campaign by its sequential id."""

    @abstractmethod
    def get_gas_price(self) -> Optional[int]:
        """Current network gas price in wei."""

    @abstractmethod
    def get_nonce(self, block_identifier: str) -> int:
        """Sender's transaction count at ``pending`` or ``latest``."""

    @abstractmethod
    def submit_transaction(self, request: CampaignCreationRequest, nonce: int, gas_price: int) -> str:
        """
        Sign and broadcast createCampaign.

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            AlreadyKnownError: With ``tx_hash`` set to the locally computed hash
            NonceConflictError, NodeUnreachableError, FatalChainError
        """

    @abstractmethod
    def get_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        """Receipt for a mined transaction, or None if not mined."""

    @abstractmethod
    def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        """Transaction as known to the node, or None if the node has never seen it."""

    def wait_for_receipt(self, tx_hash: str, timeout: float, poll_interval: float) -> Mapping[str, Any]:
        """
        Block until the transaction is mined or the timeout elapses.

        Read failures while waiting are treated as "not mined yet": a broadcast
        transaction may still land however the node answers in the meantime.

        Raises:
            ConfirmationTimeoutError: No receipt within ``timeout`` seconds
        """

        def fetch() -> Optional[Mapping[str, Any]]:
            try:
                return self.get_receipt(tx_hash)
            except CampaignEngineError as e:
                logging.debug(f"Receipt poll for {tx_hash} failed, will retry: {e}")
                return None

        try:
            return poll_until(fetch, poll_interval, timeout, clock=self.clock, sleep=self.sleep)
        except PollTimeout as e:
            raise ConfirmationTimeoutError(
                f"No receipt for {tx_hash} after {e.elapsed:.0f}s", tx_hash=tx_hash
            ) from e

    def get_transaction_status(self, tx_hash: str) -> TxStatus:
        """Whether a previously broadcast transaction is mined, pending, or unknown to the node."""
        if self.get_receipt(tx_hash) is not None:
            return TxStatus.MINED
        if self.get_transaction(tx_hash) is not None:
            return TxStatus.PENDING
        return TxStatus.UNKNOWN

    def parse_event(
        self,
        receipt: Mapping[str, Any],
        decoders: Sequence[CampaignCreatedDecoder] = DEFAULT_DECODERS,
    ) -> Optional[CampaignCreatedEvent]:
        """Decode the CampaignCreated event emitted by this contract, if any shape matches."""
        return decode_campaign_created(receipt.get("logs") or [], decoders, contract_address=self.contract_address)


class Web3ChainClient(IChainClient):
    """
    web3.py implementation of the chain client.

    Signs locally with the relayer account so the transaction hash is known before
    broadcast.
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        contract: Contract,
        profile: ContractProfile,
        chain_id: int,
    ):
        """
        Initialize chain client.

        Args:
            w3: Connected Web3 instance
            account: Relayer account used to sign
            contract: Fundraiser contract bound to ``profile.abi``
            profile: Contract generation codecs
            chain_id: Chain id used when signing
        """
        self.w3 = w3
        self.account = account
        self.contract = contract
        self.profile = profile
        self.chain_id = chain_id

    @property
    def sender_address(self) -> str:
        return self.account.address

    @property
    def contract_address(self) -> str:
        return self.contract.address

    def _rpc(self, description: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NodeUnreachableError(f"{description}: node unreachable: {e}") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in UNREACHABLE_HTTP_CODES:
                raise NodeUnreachableError(f"{description}: node returned HTTP {status}") from e
            raise FatalChainError(f"{description}: HTTP error {status}: {e}") from e
        except ContractLogicError as e:
            raise TransactionRevertedError(f"{description}: reverted: {e}") from e
        except TransactionNotFound:
            raise
        except (Web3Exception, ValueError) as e:
            raise classify_rpc_error(e, description) from e

    def get_campaign_count(self) -> int:
        return int(self._rpc("totalCampaigns", self.contract.functions.totalCampaigns().call))

    def get_campaign_by_index(self, index: int) -> ChainCampaign:
        raw = self._rpc(f"getCampaign({index})", self.contract.functions.getCampaign(index).call)
        try:
            return self.profile.parse_campaign(index, raw)
        except (IndexError, TypeError, ValueError) as e:
            raise FatalChainError(f"getCampaign({index}) returned an unexpected shape: {e}") from e

    def get_gas_price(self) -> Optional[int]:
        return self._rpc("gas_price", lambda: self.w3.eth.gas_price)

    def get_nonce(self, block_identifier: str) -> int:
        return self._rpc(
            f"get_transaction_count({block_identifier})",
            self.w3.eth.get_transaction_count,
            self.sender_address,
            block_identifier,
        )

    def submit_transaction(self, request: CampaignCreationRequest, nonce: int, gas_price: int) -> str:
        args = self.profile.build_create_args(request)
        fn = self.contract.functions.createCampaign(*args)
        tx = self._rpc(
            "build createCampaign",
            fn.build_transaction,
            {
                "from": self.sender_address,
                "nonce": nonce,
                "gasPrice": gas_price,
                "chainId": self.chain_id,
            },
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = Web3.to_hex(signed.hash)
        logging.debug(f"Broadcasting createCampaign {tx_hash} (nonce={nonce}, gasPrice={gas_price})")
        try:
            self._rpc("send createCampaign", self.w3.eth.send_raw_transaction, signed.raw_transaction)
        except AlreadyKnownError as e:
            e.tx_hash = tx_hash
            raise
        return tx_hash

    def get_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            return self._rpc(f"get_transaction_receipt({tx_hash})", self.w3.eth.get_transaction_receipt, tx_hash)
        except TransactionNotFound:
            return None

    def get_transaction(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            return self._rpc(f"get_transaction({tx_hash})", self.w3.eth.get_transaction, tx_hash)
        except TransactionNotFound:
            return None
