"""
Transaction submission and retry state machine.

One TransactionSubmitter.submit call drives a single logical creation request
through BUILDING -> SUBMITTED -> {CONFIRMED, TIMED_OUT, FAILED}, with ALREADY_KNOWN
for the mempool race. What happens after each error is looked up in RETRY_POLICY
rather than decided inline.

Once a transaction is broadcast it can only fail by being mined with status 0;
any other error seen while waiting on it surfaces as a timeout.
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TypeVar

from bittensor.utils.btlogging import logging

from campaign_engine.adapters.chain_client import IChainClient
from campaign_engine.domain.campaign import CampaignCreationRequest, ChainCampaign
from campaign_engine.engine_config import EngineConfig
from campaign_engine.errors import (
    CampaignEngineError,
    ErrorKind,
    RetriesExhaustedError,
    TransactionRevertedError,
)
from campaign_engine.nonce_manager import SenderNonceManager
from campaign_engine.polling import PollTimeout, poll_until
from campaign_engine.pricing import GasPriceLadder
from campaign_engine.prober import IdempotencyProber


class SubmissionState(Enum):
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    ALREADY_KNOWN = "already_known"
    FAILED = "failed"


class Action(Enum):
    RETRY = "retry"  # Back off, re-price, try the next attempt
    AWAIT_PROBE = "await_probe"  # Do not resend; wait and poll the prober
    SURFACE_TIMEOUT = "surface_timeout"  # Do not resend; report "check back"
    RAISE = "raise"  # Fatal, propagate


RETRY_POLICY: Dict[Tuple[SubmissionState, ErrorKind], Tuple[SubmissionState, Action]] = {
    (SubmissionState.BUILDING, ErrorKind.NODE_UNREACHABLE): (SubmissionState.BUILDING, Action.RETRY),
    (SubmissionState.BUILDING, ErrorKind.NONCE_CONFLICT): (SubmissionState.BUILDING, Action.RETRY),
    (SubmissionState.BUILDING, ErrorKind.ALREADY_KNOWN): (SubmissionState.ALREADY_KNOWN, Action.AWAIT_PROBE),
}
RETRY_POLICY.update(
    {(SubmissionState.SUBMITTED, kind): (SubmissionState.TIMED_OUT, Action.SURFACE_TIMEOUT) for kind in ErrorKind}
)

DEFAULT_TRANSITION = (SubmissionState.FAILED, Action.RAISE)

T = TypeVar("T")


def next_transition(state: SubmissionState, kind: ErrorKind) -> Tuple[SubmissionState, Action]:
    """Look up the transition for an error raised in ``state``; unmapped pairs are fatal."""
    return RETRY_POLICY.get((state, kind), DEFAULT_TRANSITION)


class SubmissionOutcome:
    """Where the state machine stopped and what it learned on the way."""

    def __init__(
        self,
        state: SubmissionState,
        tx_hash: Optional[str] = None,
        receipt: Optional[Mapping[str, Any]] = None,
        campaign: Optional[ChainCampaign] = None,
        attempts: int = 0,
        gas_prices: Optional[List[int]] = None,
        last_error: Optional[CampaignEngineError] = None,
    ):
        """
        Args:
            state: Terminal state (CONFIRMED or TIMED_OUT; FAILED raises instead)
            tx_hash: Last broadcast transaction hash, if any
            receipt: Receipt of the confirmed transaction, if one was mined
            campaign: Campaign found by the prober (retry short-circuit or already-known path)
            attempts: Number of attempts started
            gas_prices: Gas price used for each attempt, in order
            last_error: Last error seen, if any
        """
        self.state = state
        self.tx_hash = tx_hash
        self.receipt = receipt
        self.campaign = campaign
        self.attempts = attempts
        self.gas_prices = gas_prices or []
        self.last_error = last_error

    def __repr__(self) -> str:
        return (
            f"SubmissionOutcome(state={self.state.value}, tx_hash={self.tx_hash}, "
            f"campaign={self.campaign}, attempts={self.attempts})"
        )


class TransactionSubmitter:
    """Submits one creation request with bounded, table-driven retries."""

    def __init__(
        self,
        chain_client: IChainClient,
        prober: IdempotencyProber,
        nonce_manager: SenderNonceManager,
        config: EngineConfig,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.chain_client = chain_client
        self.prober = prober
        self.nonce_manager = nonce_manager
        self.config = config
        self.sleep = sleep or chain_client.sleep

    def submit(
        self,
        request: CampaignCreationRequest,
        on_broadcast: Optional[Callable[[str], None]] = None,
    ) -> SubmissionOutcome:
        """
        Drive the request to a terminal state.

        The caller must already hold the sender's lock. ``on_broadcast`` is invoked
        with the transaction hash as soon as it is known and before any waiting,
        so the hash can be persisted even if this process dies mid-wait.

        Args:
            request: Creation request
            on_broadcast: Callback receiving each broadcast transaction hash

        Returns:
            SubmissionOutcome in state CONFIRMED or TIMED_OUT

        Raises:
            FatalChainError: On a fatal error (with ``tx_hash`` set when one was broadcast)
            RetriesExhaustedError: When every attempt failed with a retryable error
        """
        ladder = GasPriceLadder(self.config.gas_bump_percent)
        tx_hash: Optional[str] = None
        last_error: Optional[CampaignEngineError] = None

        for attempt in range(self.config.max_attempts):
            state = SubmissionState.BUILDING
            logging.info(f"[blue]Submitting {request} (attempt {attempt + 1}/{self.config.max_attempts})[/blue]")
            try:
                if attempt > 0:
                    landed = self.prober.find_by_content_id(request.content_id)
                    if landed is not None:
                        logging.success(
                            f"Campaign {landed.campaign_id} already landed from an earlier attempt, not resending"
                        )
                        return SubmissionOutcome(
                            SubmissionState.CONFIRMED,
                            tx_hash=tx_hash,
                            campaign=landed,
                            attempts=attempt,
                            gas_prices=ladder.history,
                            last_error=last_error,
                        )

                nonce = self.nonce_manager.next_nonce(attempt, self.chain_client.get_nonce)
                gas_price = ladder.price_for(attempt, self.chain_client.get_gas_price())
                tx_hash = self.chain_client.submit_transaction(request, nonce, gas_price)
                state = SubmissionState.SUBMITTED
                logging.info(f"Broadcast {tx_hash} (nonce={nonce}, gasPrice={gas_price})")
                self._notify(on_broadcast, tx_hash)

                receipt = self.chain_client.wait_for_receipt(
                    tx_hash, self.config.confirmation_timeout, self.config.poll_interval
                )
                state = SubmissionState.CONFIRMED
                if receipt.get("status") == 0:
                    raise TransactionRevertedError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)

                logging.success(f"Transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
                return SubmissionOutcome(
                    SubmissionState.CONFIRMED,
                    tx_hash=tx_hash,
                    receipt=receipt,
                    attempts=attempt + 1,
                    gas_prices=ladder.history,
                )
            except CampaignEngineError as e:
                last_error = e
                next_state, action = next_transition(state, e.kind)
                logging.warning(
                    f"Attempt {attempt + 1} failed in {state.value} with {e.kind.value}: {e.message} "
                    f"-> {next_state.value}/{action.value}"
                )

                if action == Action.RAISE:
                    if e.tx_hash is None:
                        e.tx_hash = tx_hash
                    raise

                if action == Action.SURFACE_TIMEOUT:
                    return SubmissionOutcome(
                        next_state,
                        tx_hash=e.tx_hash or tx_hash,
                        attempts=attempt + 1,
                        gas_prices=ladder.history,
                        last_error=e,
                    )

                if action == Action.AWAIT_PROBE:
                    if e.tx_hash:
                        tx_hash = e.tx_hash
                        self._notify(on_broadcast, tx_hash)
                    return self._await_probe(request, tx_hash, attempt + 1, ladder.history, e)

                if attempt + 1 < self.config.max_attempts:
                    delay = self.config.backoff_seconds * (attempt + 1)
                    logging.info(f"Retrying in {delay:.1f}s")
                    self.sleep(delay)

        raise RetriesExhaustedError(
            f"Gave up on {request.content_id[:50]} after {self.config.max_attempts} attempts: {last_error}",
            attempts=self.config.max_attempts,
            last_error=last_error,
            tx_hash=tx_hash,
        )

    def read_with_retries(self, description: str, fn: Callable[[], T]) -> T:
        """
        Run a chain read under the same attempt bound and backoff as a submission.

        Errors the table retries while building are retried; anything else propagates.

        Raises:
            RetriesExhaustedError: When every attempt failed with a retryable error
        """
        last_error: Optional[CampaignEngineError] = None
        for attempt in range(self.config.max_attempts):
            try:
                return fn()
            except CampaignEngineError as e:
                _, action = next_transition(SubmissionState.BUILDING, e.kind)
                if action != Action.RETRY:
                    raise
                last_error = e
                logging.warning(f"{description} failed (attempt {attempt + 1}/{self.config.max_attempts}): {e.message}")
                if attempt + 1 < self.config.max_attempts:
                    self.sleep(self.config.backoff_seconds * (attempt + 1))

        raise RetriesExhaustedError(
            f"{description} failed after {self.config.max_attempts} attempts: {last_error}",
            attempts=self.config.max_attempts,
            last_error=last_error,
        )

    def _await_probe(
        self,
        request: CampaignCreationRequest,
        tx_hash: Optional[str],
        attempts: int,
        gas_prices: List[int],
        error: CampaignEngineError,
    ) -> SubmissionOutcome:
        """The node already has the transaction: wait, then poll the prober instead of resending."""
        logging.info(f"Transaction already known to the node, waiting {self.config.already_known_delay}s before probing")
        self.sleep(self.config.already_known_delay)

        def probe() -> Optional[ChainCampaign]:
            try:
                return self.prober.find_by_content_id(request.content_id)
            except CampaignEngineError as e:
                logging.debug(f"Probe failed, will retry: {e}")
                return None

        try:
            campaign = poll_until(
                probe,
                self.config.poll_interval,
                self.config.confirmation_timeout,
                clock=self.chain_client.clock,
                sleep=self.sleep,
            )
        except PollTimeout:
            logging.warning(f"Already-known transaction {tx_hash} not visible on-chain yet")
            return SubmissionOutcome(
                SubmissionState.TIMED_OUT,
                tx_hash=tx_hash,
                attempts=attempts,
                gas_prices=gas_prices,
                last_error=error,
            )

        return SubmissionOutcome(
            SubmissionState.CONFIRMED,
            tx_hash=tx_hash,
            campaign=campaign,
            attempts=attempts,
            gas_prices=gas_prices,
            last_error=error,
        )

    @staticmethod
    def _notify(on_broadcast: Optional[Callable[[str], None]], tx_hash: str) -> None:
        if on_broadcast is not None:
            on_broadcast(tx_hash)
