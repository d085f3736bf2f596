"""
Test cases for LedgerReconciler: verify and minted-mirror audit.
"""
import unittest

from campaign_engine.domain.mirror import MirrorStatus
from campaign_engine.domain.results import AuditStatus
from campaign_engine.errors import MirrorNotFoundError
from campaign_engine.prober import IdempotencyProber
from campaign_engine.reconciler import LedgerReconciler
from tests.fakes import CONTRACT, FakeChainClient, InMemoryMirrorStore, make_row

STUCK_TX = "0xabc"


class ReconcilerTestCase(unittest.TestCase):
    def setUp(self):
        self.chain = FakeChainClient()
        self.store = InMemoryMirrorStore()
        self.reconciler = LedgerReconciler(self.store, IdempotencyProber(self.chain), self.chain)


class TestReconcile(ReconcilerTestCase):
    def test_stuck_transaction_resolves_to_chain_campaign(self):
        self.chain.seed_campaigns(12)
        self.chain.add_campaign("ipfs://stuck")
        self.store.add(make_row("m1", "ipfs://stuck", status="pending_onchain", tx_hash=STUCK_TX))

        result = self.reconciler.reconcile("m1")

        self.assertTrue(result.verified)
        self.assertTrue(result.changed)
        self.assertEqual(result.chain_campaign_id, 12)
        self.assertEqual(result.previous_status, MirrorStatus.PENDING_ONCHAIN)
        row = self.store.row("m1")
        self.assertEqual(row["status"], "minted")
        self.assertEqual(row["campaign_id"], 12)
        self.assertEqual(row["tx_hash"], STUCK_TX)
        self.assertEqual(row["contract_address"], CONTRACT)
        self.assertTrue(row["visible_on_marketplace"])

    def test_not_found_stays_pending(self):
        self.chain.seed_campaigns(3)
        self.store.add(make_row("m1", "ipfs://stuck", status="pending_onchain", tx_hash=STUCK_TX))

        result = self.reconciler.reconcile("m1")

        self.assertFalse(result.verified)
        self.assertFalse(result.changed)
        self.assertEqual(result.status, MirrorStatus.PENDING_ONCHAIN)
        self.assertEqual(self.store.updates, [])

    def test_reconcile_is_idempotent(self):
        self.chain.add_campaign("ipfs://abc")
        self.store.add(make_row("m1", "ipfs://abc", status="pending_onchain", tx_hash=STUCK_TX))

        first = self.reconciler.reconcile("m1")
        second = self.reconciler.reconcile("m1")

        self.assertTrue(first.changed)
        self.assertFalse(second.changed)
        self.assertTrue(second.verified)
        self.assertEqual(len(self.store.updates), 1)

    def test_campaign_owned_by_another_mirror_is_not_claimed(self):
        self.chain.add_campaign("ipfs://xyz")
        self.store.add(make_row("m1", "ipfs://xyz", status="minted", campaign_id=0))
        self.store.add(make_row("m2", "ipfs://xyz"))

        result = self.reconciler.reconcile("m2")

        self.assertFalse(result.changed)
        self.assertEqual(result.status, MirrorStatus.APPROVED)
        self.assertIn("m1", result.message)
        self.assertEqual(self.store.row("m2")["status"], "approved")
        self.assertEqual(self.store.updates, [])

    def test_minted_quick_path_skips_scan(self):
        self.chain.seed_campaigns(5)
        self.chain.add_campaign("ipfs://abc")
        self.store.add(make_row("m1", "ipfs://abc", status="minted", campaign_id=5))
        # A full scan would fail on the count read
        self.chain.count_failures = 1

        result = self.reconciler.reconcile("m1")

        self.assertTrue(result.verified)
        self.assertFalse(result.changed)
        self.assertEqual(self.chain.count_failures, 1)

    def test_minted_with_wrong_id_is_corrected(self):
        self.chain.seed_campaigns(5)
        self.chain.add_campaign("ipfs://abc")
        self.store.add(make_row("m1", "ipfs://abc", status="minted", campaign_id=2))

        result = self.reconciler.reconcile("m1")

        self.assertTrue(result.changed)
        self.assertEqual(result.chain_campaign_id, 5)
        self.assertEqual(result.previous_campaign_id, 2)
        self.assertEqual(self.store.row("m1")["campaign_id"], 5)

    def test_minted_orphan_is_reported_not_downgraded(self):
        self.chain.seed_campaigns(2)
        self.store.add(make_row("m1", "ipfs://gone", status="minted", campaign_id=1))

        result = self.reconciler.reconcile("m1")

        self.assertFalse(result.verified)
        self.assertFalse(result.changed)
        self.assertIn("Orphan", result.message)
        self.assertEqual(self.store.row("m1")["status"], "minted")
        self.assertEqual(self.store.updates, [])

    def test_reverted_tx_without_campaign_marks_failed(self):
        self.chain.receipts[STUCK_TX] = {"status": 0, "logs": [], "blockNumber": 9}
        self.store.add(make_row("m1", "ipfs://abc", status="pending_onchain", tx_hash=STUCK_TX))

        result = self.reconciler.reconcile("m1")

        self.assertEqual(result.status, MirrorStatus.FAILED)
        self.assertTrue(result.changed)
        self.assertEqual(self.store.row("m1")["status"], "failed")
        self.assertEqual(self.store.row("m1")["tx_hash"], STUCK_TX)

    def test_placeholder_tx_hash_is_not_looked_up(self):
        self.store.add(make_row("m1", "ipfs://abc", status="pending_onchain", tx_hash="(pending in mempool)"))

        result = self.reconciler.reconcile("m1")

        self.assertEqual(result.status, MirrorStatus.PENDING_ONCHAIN)
        self.assertFalse(result.changed)

    def test_mirror_without_content_id(self):
        self.store.add(make_row("m1", None, status="approved"))

        result = self.reconciler.reconcile("m1")

        self.assertFalse(result.changed)
        self.assertEqual(result.status, MirrorStatus.APPROVED)

    def test_missing_mirror(self):
        with self.assertRaises(MirrorNotFoundError):
            self.reconciler.reconcile("nope")

    def test_result_dict(self):
        self.chain.add_campaign("ipfs://abc")
        self.store.add(make_row("m1", "ipfs://abc", status="pending_onchain"))

        data = self.reconciler.reconcile("m1").to_dict()

        self.assertEqual(
            data,
            {
                "ok": True,
                "verified": True,
                "status": "minted",
                "campaignId": 0,
                "changed": True,
                "previousStatus": "pending_onchain",
                "previousCampaignId": None,
                "message": "Verified on-chain as campaign 0",
            },
        )


class TestAuditMinted(ReconcilerTestCase):
    def test_reports_each_minted_mirror(self):
        self.chain.add_campaign("ipfs://valid")
        self.chain.add_campaign("ipfs://stale")
        self.store.add(make_row("valid", "ipfs://valid", status="minted", campaign_id=0))
        self.store.add(make_row("stale", "ipfs://stale", status="minted", campaign_id=7))
        self.store.add(make_row("orphan", "ipfs://orphan", status="minted", campaign_id=3))
        self.store.add(make_row("broken", None, status="minted", campaign_id=4))
        self.store.add(make_row("pending", "ipfs://valid", status="pending_onchain"))

        entries = {entry.mirror_id: entry for entry in self.reconciler.audit_minted()}

        self.assertEqual(set(entries), {"valid", "stale", "orphan", "broken"})
        self.assertEqual(entries["valid"].status, AuditStatus.ALREADY_VALID)
        self.assertEqual(entries["stale"].status, AuditStatus.FIXED)
        self.assertEqual(entries["stale"].campaign_id, 1)
        self.assertEqual(entries["orphan"].status, AuditStatus.ORPHAN)
        self.assertEqual(entries["broken"].status, AuditStatus.ERROR)
        self.assertEqual(self.store.row("stale")["campaign_id"], 1)
        self.assertEqual(self.store.row("orphan")["status"], "minted")

    def test_store_failure_is_reported_per_row(self):
        self.chain.add_campaign("ipfs://stale")
        self.store.add(make_row("stale", "ipfs://stale", status="minted", campaign_id=7))
        self.store.fail_updates = True

        entries = self.reconciler.audit_minted()

        self.assertEqual(entries[0].status, AuditStatus.ERROR)

    def test_no_minted_mirrors(self):
        self.assertEqual(self.reconciler.audit_minted(), [])


if __name__ == "__main__":
    unittest.main()
