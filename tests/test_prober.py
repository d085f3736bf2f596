"""
Test cases for IdempotencyProber.
"""
import unittest
from unittest.mock import Mock

from campaign_engine.errors import NodeUnreachableError
from campaign_engine.prober import IdempotencyProber
from tests.fakes import FakeChainClient


class TestFindByContentId(unittest.TestCase):
    def setUp(self):
        self.chain = FakeChainClient()
        self.chain.seed_campaigns(5)
        self.prober = IdempotencyProber(self.chain)

    def test_no_match(self):
        self.assertIsNone(self.prober.find_by_content_id("ipfs://missing"))

    def test_exact_match_only(self):
        self.chain.add_campaign("ipfs://abc")

        self.assertIsNone(self.prober.find_by_content_id("ipfs://ab"))
        self.assertIsNone(self.prober.find_by_content_id("IPFS://ABC"))
        self.assertEqual(self.prober.find_by_content_id("ipfs://abc").campaign_id, 5)

    def test_scans_newest_first_and_stops_at_first_match(self):
        chain = Mock()
        chain.get_campaign_count.return_value = 10
        chain.get_campaign_by_index.side_effect = lambda i: Mock(campaign_id=i, matches=lambda c: i in (2, 8))

        campaign = IdempotencyProber(chain).find_by_content_id("ipfs://abc")

        self.assertEqual(campaign.campaign_id, 8)
        self.assertEqual([call.args[0] for call in chain.get_campaign_by_index.call_args_list], [9, 8])

    def test_unreadable_index_is_skipped(self):
        target = self.chain.add_campaign("ipfs://abc")
        self.chain.add_campaign("ipfs://newer")
        self.chain.unreadable.add(6)

        campaign = self.prober.find_by_content_id("ipfs://abc")

        self.assertEqual(campaign, target)

    def test_count_failure_propagates(self):
        self.chain.count_failures = 1

        with self.assertRaises(NodeUnreachableError):
            self.prober.find_by_content_id("ipfs://abc")

    def test_read_campaign_returns_none_on_failure(self):
        self.chain.unreadable.add(1)

        self.assertIsNone(self.prober.read_campaign(1))
        self.assertIsNone(self.prober.read_campaign(99))
        self.assertEqual(self.prober.read_campaign(2).content_id, "ipfs://seed-2")


class TestIndexByContentId(unittest.TestCase):
    def test_indexes_every_readable_campaign(self):
        chain = FakeChainClient()
        chain.seed_campaigns(3)
        chain.add_campaign("ipfs://abc")
        chain.unreadable.add(1)

        index = IdempotencyProber(chain).index_by_content_id()

        self.assertEqual(set(index), {"ipfs://seed-0", "ipfs://seed-2", "ipfs://abc"})
        self.assertEqual(index["ipfs://abc"].campaign_id, 3)

    def test_duplicate_content_id_resolves_to_newest(self):
        chain = FakeChainClient()
        chain.add_campaign("ipfs://dup")
        chain.add_campaign("ipfs://dup")

        index = IdempotencyProber(chain).index_by_content_id()

        self.assertEqual(index["ipfs://dup"].campaign_id, 1)
        self.assertEqual(IdempotencyProber(chain).find_by_content_id("ipfs://dup").campaign_id, 1)


if __name__ == "__main__":
    unittest.main()
