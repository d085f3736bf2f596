"""
Test cases for Web3ChainClient with a mocked Web3 and contract.
"""
import unittest
from decimal import Decimal
from unittest.mock import Mock

import requests
from web3.exceptions import ContractLogicError, TransactionNotFound

from campaign_engine.adapters.chain_client import TxStatus, Web3ChainClient, classify_rpc_error
from campaign_engine.contract_profiles import V5_PROFILE
from campaign_engine.domain.campaign import CampaignCreationRequest
from campaign_engine.errors import (
    AlreadyKnownError,
    ConfirmationTimeoutError,
    FatalChainError,
    NodeUnreachableError,
    NonceConflictError,
    TransactionRevertedError,
)
from tests.fakes import CONTRACT, SENDER, FakeClock

TX_HASH = "0x" + "11" * 32


def make_request():
    return CampaignCreationRequest(
        mirror_id="m1",
        content_id="ipfs://abc",
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


class TestClassifyRpcError(unittest.TestCase):
    def test_already_known(self):
        error = classify_rpc_error(ValueError({"code": -32000, "message": "already known"}), "send")
        self.assertIsInstance(error, AlreadyKnownError)

    def test_nonce_conflicts(self):
        for message in ("nonce too low", "replacement transaction underpriced", "transaction underpriced"):
            with self.subTest(message=message):
                error = classify_rpc_error(ValueError({"code": -32000, "message": message}), "send")
                self.assertIsInstance(error, NonceConflictError)

    def test_revert(self):
        error = classify_rpc_error(ValueError("execution reverted: campaign exists"), "send")
        self.assertIsInstance(error, TransactionRevertedError)

    def test_unknown_is_fatal_not_revert(self):
        error = classify_rpc_error(ValueError({"message": "insufficient funds for gas * price + value"}), "send")
        self.assertIsInstance(error, FatalChainError)
        self.assertNotIsInstance(error, TransactionRevertedError)
        self.assertIn("insufficient funds", error.message)


class TestWeb3ChainClient(unittest.TestCase):
    def setUp(self):
        self.w3 = Mock()
        self.account = Mock()
        self.account.address = SENDER
        self.contract = Mock()
        self.contract.address = CONTRACT
        self.client = Web3ChainClient(self.w3, self.account, self.contract, V5_PROFILE, chain_id=1043)
        self.clock = FakeClock()
        self.client.clock = self.clock.time
        self.client.sleep = self.clock.sleep

    def test_campaign_count(self):
        self.contract.functions.totalCampaigns.return_value.call.return_value = 4

        self.assertEqual(self.client.get_campaign_count(), 4)

    def test_connection_error_is_node_unreachable(self):
        self.contract.functions.totalCampaigns.return_value.call.side_effect = requests.exceptions.ConnectionError("refused")

        with self.assertRaises(NodeUnreachableError):
            self.client.get_campaign_count()

    def test_gateway_errors_are_node_unreachable(self):
        response = Mock(status_code=503)
        self.contract.functions.totalCampaigns.return_value.call.side_effect = requests.exceptions.HTTPError(
            response=response
        )

        with self.assertRaises(NodeUnreachableError):
            self.client.get_campaign_count()

    def test_other_http_errors_are_fatal(self):
        response = Mock(status_code=401)
        self.contract.functions.totalCampaigns.return_value.call.side_effect = requests.exceptions.HTTPError(
            response=response
        )

        with self.assertRaises(FatalChainError):
            self.client.get_campaign_count()

    def test_get_campaign_parses_legacy_tuple(self):
        self.contract.functions.getCampaign.return_value.call.return_value = (
            "general", "ipfs://abc", 10 ** 18, 5, 4, 2, 100, 10 ** 16, True, False,
        )

        campaign = self.client.get_campaign_by_index(3)

        self.contract.functions.getCampaign.assert_called_with(3)
        self.assertEqual(campaign.campaign_id, 3)
        self.assertEqual(campaign.content_id, "ipfs://abc")
        self.assertEqual(campaign.editions_minted, 2)
        self.assertTrue(campaign.active)

    def test_get_campaign_unexpected_shape(self):
        self.contract.functions.getCampaign.return_value.call.return_value = ("general",)

        with self.assertRaises(FatalChainError):
            self.client.get_campaign_by_index(0)

    def test_get_campaign_revert(self):
        self.contract.functions.getCampaign.return_value.call.side_effect = ContractLogicError("execution reverted")

        with self.assertRaises(TransactionRevertedError):
            self.client.get_campaign_by_index(99)

    def test_nonce_and_gas(self):
        self.w3.eth.get_transaction_count.return_value = 9
        self.w3.eth.gas_price = 7

        self.assertEqual(self.client.get_nonce("pending"), 9)
        self.assertEqual(self.client.get_gas_price(), 7)
        self.w3.eth.get_transaction_count.assert_called_with(SENDER, "pending")

    def test_submit_signs_locally_and_broadcasts(self):
        self.account.sign_transaction.return_value = Mock(hash=bytes.fromhex("11" * 32), raw_transaction=b"raw")

        tx_hash = self.client.submit_transaction(make_request(), nonce=5, gas_price=12)

        self.assertEqual(tx_hash, TX_HASH)
        self.contract.functions.createCampaign.assert_called_once_with(
            "general", "ipfs://abc", 2000 * 10 ** 18, 100, 20 * 10 ** 18, 100, SENDER
        )
        build = self.contract.functions.createCampaign.return_value.build_transaction
        build.assert_called_once_with({"from": SENDER, "nonce": 5, "gasPrice": 12, "chainId": 1043})
        self.w3.eth.send_raw_transaction.assert_called_once_with(b"raw")

    def test_already_known_carries_local_hash(self):
        self.account.sign_transaction.return_value = Mock(hash=bytes.fromhex("11" * 32), raw_transaction=b"raw")
        self.w3.eth.send_raw_transaction.side_effect = ValueError({"code": -32000, "message": "already known"})

        with self.assertRaises(AlreadyKnownError) as ctx:
            self.client.submit_transaction(make_request(), nonce=5, gas_price=12)

        self.assertEqual(ctx.exception.tx_hash, TX_HASH)

    def test_nonce_too_low_on_send(self):
        self.account.sign_transaction.return_value = Mock(hash=bytes.fromhex("11" * 32), raw_transaction=b"raw")
        self.w3.eth.send_raw_transaction.side_effect = ValueError({"code": -32000, "message": "nonce too low"})

        with self.assertRaises(NonceConflictError):
            self.client.submit_transaction(make_request(), nonce=5, gas_price=12)

    def test_missing_receipt_is_none(self):
        self.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")

        self.assertIsNone(self.client.get_receipt(TX_HASH))

    def test_wait_for_receipt_times_out(self):
        self.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")

        with self.assertRaises(ConfirmationTimeoutError) as ctx:
            self.client.wait_for_receipt(TX_HASH, timeout=10, poll_interval=2)

        self.assertEqual(ctx.exception.tx_hash, TX_HASH)
        self.assertEqual(self.clock.now, 10)

    def test_wait_for_receipt_rides_out_unreachable_node(self):
        receipt = {"status": 1, "logs": []}
        self.w3.eth.get_transaction_receipt.side_effect = [
            requests.exceptions.ReadTimeout("timed out"),
            TransactionNotFound("not found"),
            receipt,
        ]

        self.assertEqual(self.client.wait_for_receipt(TX_HASH, timeout=10, poll_interval=2), receipt)
        self.assertEqual(self.clock.sleeps, [2, 2])

    def test_wait_for_receipt_rides_out_server_errors(self):
        receipt = {"status": 1, "logs": []}
        error_response = Mock(status_code=500)
        self.w3.eth.get_transaction_receipt.side_effect = [
            requests.exceptions.HTTPError("500 Server Error", response=error_response),
            ValueError({"code": -32603, "message": "internal error"}),
            receipt,
        ]

        self.assertEqual(self.client.wait_for_receipt(TX_HASH, timeout=10, poll_interval=2), receipt)
        self.assertEqual(self.clock.sleeps, [2, 2])

    def test_transaction_status(self):
        self.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        self.w3.eth.get_transaction.return_value = {"hash": TX_HASH}
        self.assertEqual(self.client.get_transaction_status(TX_HASH), TxStatus.PENDING)

        self.w3.eth.get_transaction.side_effect = TransactionNotFound("not found")
        self.assertEqual(self.client.get_transaction_status(TX_HASH), TxStatus.UNKNOWN)

        self.w3.eth.get_transaction_receipt.side_effect = None
        self.w3.eth.get_transaction_receipt.return_value = {"status": 1}
        self.assertEqual(self.client.get_transaction_status(TX_HASH), TxStatus.MINED)


if __name__ == "__main__":
    unittest.main()
