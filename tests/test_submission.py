"""
Test cases for the submission state machine and its retry table.
"""
import unittest
from decimal import Decimal
from unittest.mock import Mock

from campaign_engine.domain.campaign import CampaignCreationRequest
from campaign_engine.engine_config import EngineConfig
from campaign_engine.errors import (
    AlreadyKnownError,
    ErrorKind,
    FatalChainError,
    NodeUnreachableError,
    NonceConflictError,
    RetriesExhaustedError,
    TransactionRevertedError,
)
from campaign_engine.nonce_manager import SenderNonceManager
from campaign_engine.prober import IdempotencyProber
from campaign_engine.submission import (
    Action,
    SubmissionState,
    TransactionSubmitter,
    next_transition,
)
from tests.fakes import GWEI, REVERT, SENDER, STALL, FakeChainClient


def make_request(content_id="ipfs://abc"):
    return CampaignCreationRequest(
        mirror_id="m1",
        content_id=content_id,
        beneficiary=SENDER,
        category="general",
        goal_usd=Decimal("100"),
        goal_wei=2000 * 10 ** 18,
        max_editions=100,
        price_usd=Decimal("1"),
        price_wei=20 * 10 ** 18,
        fee_rate_bps=100,
        chain="blockdag",
    )


class TestRetryTable(unittest.TestCase):
    def test_retryable_errors_while_building(self):
        self.assertEqual(
            next_transition(SubmissionState.BUILDING, ErrorKind.NONCE_CONFLICT),
            (SubmissionState.BUILDING, Action.RETRY),
        )
        self.assertEqual(
            next_transition(SubmissionState.BUILDING, ErrorKind.NODE_UNREACHABLE),
            (SubmissionState.BUILDING, Action.RETRY),
        )

    def test_already_known_awaits_probe(self):
        self.assertEqual(
            next_transition(SubmissionState.BUILDING, ErrorKind.ALREADY_KNOWN),
            (SubmissionState.ALREADY_KNOWN, Action.AWAIT_PROBE),
        )

    def test_timeout_after_submit_is_surfaced(self):
        self.assertEqual(
            next_transition(SubmissionState.SUBMITTED, ErrorKind.CONFIRMATION_TIMEOUT),
            (SubmissionState.TIMED_OUT, Action.SURFACE_TIMEOUT),
        )

    def test_unmapped_pairs_are_fatal(self):
        self.assertEqual(
            next_transition(SubmissionState.BUILDING, ErrorKind.FATAL),
            (SubmissionState.FAILED, Action.RAISE),
        )
        self.assertEqual(
            next_transition(SubmissionState.CONFIRMED, ErrorKind.FATAL),
            (SubmissionState.FAILED, Action.RAISE),
        )

    def test_every_error_after_broadcast_surfaces_timeout(self):
        for kind in ErrorKind:
            self.assertEqual(
                next_transition(SubmissionState.SUBMITTED, kind),
                (SubmissionState.TIMED_OUT, Action.SURFACE_TIMEOUT),
            )


class TestTransactionSubmitter(unittest.TestCase):
    def setUp(self):
        self.chain = FakeChainClient()
        self.config = EngineConfig(max_attempts=3, confirmation_timeout=30, poll_interval=2, already_known_delay=5)
        self.submitter = TransactionSubmitter(
            self.chain, IdempotencyProber(self.chain), SenderNonceManager(), self.config
        )
        self.broadcasts = []

    def submit(self, request=None):
        return self.submitter.submit(request or make_request(), on_broadcast=self.broadcasts.append)

    def test_confirmed_on_first_attempt(self):
        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.CONFIRMED)
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(outcome.receipt["status"], 1)
        self.assertEqual(self.broadcasts, [outcome.tx_hash])
        self.assertEqual(self.chain.nonce_reads, ["pending"])
        self.assertEqual(outcome.gas_prices, [10 * GWEI])

    def test_gas_strictly_increases_even_when_network_price_drops(self):
        self.chain.gas_price_script = [100 * GWEI, 50 * GWEI, 10 * GWEI]
        self.chain.submit_script = [NonceConflictError("nonce too low"), NonceConflictError("replacement transaction underpriced")]

        outcome = self.submit()

        prices = [s.gas_price for s in self.chain.submissions]
        self.assertEqual(len(prices), 3)
        self.assertEqual(prices[0], 100 * GWEI)
        for earlier, later in zip(prices, prices[1:]):
            self.assertGreater(later, earlier)
        self.assertEqual(outcome.gas_prices, prices)

    def test_retry_uses_latest_nonce_and_linear_backoff(self):
        self.chain.submit_script = [NodeUnreachableError("send: node unreachable"), NonceConflictError("nonce too low")]

        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.CONFIRMED)
        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(self.chain.nonce_reads, ["pending", "latest", "latest"])
        self.assertEqual(self.chain.fake_clock.sleeps[:2], [1.0, 2.0])

    def test_zero_network_price_uses_fallback(self):
        self.chain.gas_price = 0

        self.submit()

        self.assertEqual(self.chain.submissions[0].gas_price, GWEI)

    def test_retries_exhausted(self):
        self.chain.submit_script = [NonceConflictError("nonce too low") for _ in range(3)]

        with self.assertRaises(RetriesExhaustedError) as ctx:
            self.submit()

        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsInstance(ctx.exception.last_error, NonceConflictError)
        self.assertEqual(len(self.chain.submissions), 3)

    def test_fatal_error_is_not_retried(self):
        self.chain.submit_script = [FatalChainError("insufficient funds for gas")]

        with self.assertRaises(FatalChainError):
            self.submit()

        self.assertEqual(len(self.chain.submissions), 1)

    def test_reverted_receipt_raises_with_tx_hash(self):
        self.chain.default_behaviour = REVERT

        with self.assertRaises(TransactionRevertedError) as ctx:
            self.submit()

        self.assertEqual(ctx.exception.tx_hash, self.chain.submissions[0].tx_hash)
        self.assertEqual(len(self.chain.submissions), 1)

    def test_timeout_is_not_resent(self):
        self.chain.default_behaviour = STALL

        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.TIMED_OUT)
        self.assertEqual(outcome.tx_hash, self.chain.submissions[0].tx_hash)
        self.assertEqual(len(self.chain.submissions), 1)
        self.assertEqual(self.broadcasts, [outcome.tx_hash])
        self.assertGreaterEqual(self.chain.fake_clock.now, 30)

    def test_retry_stops_when_earlier_attempt_landed(self):
        def land_then_fail(chain, request):
            chain.add_campaign(request.content_id)
            return NodeUnreachableError("send: read timed out")

        self.chain.submit_script = [land_then_fail]

        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.CONFIRMED)
        self.assertEqual(outcome.campaign.campaign_id, 0)
        self.assertIsNone(outcome.receipt)
        self.assertEqual(len(self.chain.submissions), 1)

    def test_already_known_polls_prober_instead_of_resending(self):
        def known_and_landing(chain, request):
            chain.add_campaign(request.content_id)
            return AlreadyKnownError("already known")

        self.chain.submit_script = [known_and_landing]

        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.CONFIRMED)
        self.assertEqual(outcome.campaign.content_id, "ipfs://abc")
        self.assertEqual(outcome.tx_hash, self.chain.submissions[0].tx_hash)
        self.assertEqual(self.broadcasts, [outcome.tx_hash])
        self.assertEqual(self.chain.fake_clock.sleeps[0], 5)
        self.assertEqual(len(self.chain.submissions), 1)

    def test_already_known_that_never_lands_times_out(self):
        self.chain.submit_script = [AlreadyKnownError("already known")]

        outcome = self.submit()

        self.assertEqual(outcome.state, SubmissionState.TIMED_OUT)
        self.assertEqual(len(self.chain.submissions), 1)
        self.assertIsInstance(outcome.last_error, AlreadyKnownError)

    def test_error_while_waiting_keeps_broadcast_hash(self):
        chain = Mock(wraps=self.chain)
        chain.clock = self.chain.clock
        chain.sleep = self.chain.sleep
        chain.wait_for_receipt.side_effect = FatalChainError("get_transaction_receipt: HTTP error 500")
        submitter = TransactionSubmitter(chain, IdempotencyProber(self.chain), SenderNonceManager(), self.config)

        outcome = submitter.submit(make_request(), on_broadcast=self.broadcasts.append)

        self.assertEqual(outcome.state, SubmissionState.TIMED_OUT)
        self.assertEqual(outcome.tx_hash, self.chain.submissions[0].tx_hash)
        self.assertEqual(self.broadcasts, [outcome.tx_hash])
        self.assertEqual(len(self.chain.submissions), 1)

    def test_read_with_retries_rides_out_unreachable_node(self):
        read = Mock(side_effect=[NodeUnreachableError("down"), NodeUnreachableError("down"), 7])

        self.assertEqual(self.submitter.read_with_retries("count", read), 7)
        self.assertEqual(read.call_count, 3)
        self.assertEqual(self.chain.fake_clock.sleeps, [1.0, 2.0])

    def test_read_with_retries_gives_up(self):
        read = Mock(side_effect=NodeUnreachableError("down"))

        with self.assertRaises(RetriesExhaustedError) as ctx:
            self.submitter.read_with_retries("count", read)

        self.assertEqual(ctx.exception.attempts, 3)
        self.assertIsInstance(ctx.exception.last_error, NodeUnreachableError)

    def test_read_with_retries_does_not_retry_fatal_errors(self):
        read = Mock(side_effect=FatalChainError("bad request"))

        with self.assertRaises(FatalChainError):
            self.submitter.read_with_retries("count", read)

        self.assertEqual(read.call_count, 1)

    def test_broadcast_callback_runs_before_waiting(self):
        order = []
        chain = Mock(wraps=self.chain)
        chain.clock = self.chain.clock
        chain.sleep = self.chain.sleep
        chain.wait_for_receipt.side_effect = lambda *args: order.append("wait") or self.chain.wait_for_receipt(*args)
        submitter = TransactionSubmitter(chain, IdempotencyProber(self.chain), SenderNonceManager(), self.config)

        submitter.submit(make_request(), on_broadcast=lambda tx_hash: order.append("broadcast"))

        self.assertEqual(order, ["broadcast", "wait"])


if __name__ == "__main__":
    unittest.main()
