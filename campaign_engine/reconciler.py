"""
Ledger reconciler.

Chain state is authoritative; the off-chain mirror is corrected to match it. Every
method here is safe to call any number of times and writes only when the mirror
disagrees with the chain.
"""
from typing import Any, Dict, List, Optional

from bittensor.utils.btlogging import logging

from campaign_engine.adapters.chain_client import IChainClient
from campaign_engine.adapters.mirror_store import IMirrorStore
from campaign_engine.domain.mirror import MirrorStatus, SubmissionMirror
from campaign_engine.domain.results import AuditEntry, AuditStatus, ReconcileResult
from campaign_engine.errors import CampaignEngineError, MirrorStoreError
from campaign_engine.prober import IdempotencyProber


class LedgerReconciler:
    """Writes chain truth into the submission mirror."""

    def __init__(self, store: IMirrorStore, prober: IdempotencyProber, chain_client: IChainClient):
        self.store = store
        self.prober = prober
        self.chain_client = chain_client

    def record_broadcast(self, mirror_id: str, tx_hash: str) -> None:
        """Persist a broadcast transaction hash before any waiting."""
        self.store.update(
            mirror_id,
            {
                "status": MirrorStatus.PENDING_ONCHAIN.value,
                "tx_hash": tx_hash,
                "contract_address": self.chain_client.contract_address,
            },
        )
        logging.info(f"Mirror {mirror_id} -> pending_onchain ({tx_hash})")

    def mark_minted(self, mirror_id: str, campaign_id: int, tx_hash: Optional[str] = None) -> None:
        fields: Dict[str, Any] = {
            "status": MirrorStatus.MINTED.value,
            "campaign_id": campaign_id,
            "contract_address": self.chain_client.contract_address,
            "visible_on_marketplace": True,
        }
        if tx_hash:
            fields["tx_hash"] = tx_hash
        self.store.update(mirror_id, fields)
        logging.success(f"Mirror {mirror_id} -> minted (campaign {campaign_id})")

    def mark_failed(self, mirror_id: str, reason: str, tx_hash: Optional[str] = None) -> None:
        fields: Dict[str, Any] = {"status": MirrorStatus.FAILED.value}
        if tx_hash:
            fields["tx_hash"] = tx_hash
        self.store.update(mirror_id, fields)
        logging.error(f"Mirror {mirror_id} -> failed: {reason}")

    def owner_of(self, campaign_id: int, mirror_id: str) -> Optional[str]:
        """Id of another minted mirror already holding ``campaign_id``, if any."""
        for other in self.store.list_by_status(MirrorStatus.MINTED):
            if other.mirror_id != mirror_id and other.campaign_id == campaign_id:
                return other.mirror_id
        return None

    def reconcile(self, mirror_id: str) -> ReconcileResult:
        """
        Re-derive a mirror's state from the chain and correct it if needed.

        Runs regardless of the mirror's current status. A minted mirror whose stored
        id still resolves to its content id is verified without a scan.

        Args:
            mirror_id: Mirror row id

        Returns:
            ReconcileResult describing the (possibly unchanged) state

        Raises:
            MirrorNotFoundError: If the mirror does not exist
            MirrorStoreError: If the mirror cannot be read or written
            CampaignEngineError: If the chain cannot be scanned
        """
        mirror = self.store.get(mirror_id)
        if not mirror.content_id:
            return self._unchanged(mirror, "Mirror has no metadata_uri to verify against")

        if mirror.is_minted:
            stored = self.prober.read_campaign(mirror.campaign_id)
            if stored is not None and stored.matches(mirror.content_id):
                logging.info(f"Mirror {mirror_id} already verified as campaign {mirror.campaign_id}")
                return self._unchanged(mirror, "Already verified")

        campaign = self.prober.find_by_content_id(mirror.content_id)
        if campaign is not None:
            if mirror.status == MirrorStatus.MINTED and mirror.campaign_id == campaign.campaign_id:
                return self._unchanged(mirror, "Already verified")
            owner = self.owner_of(campaign.campaign_id, mirror_id)
            if owner is not None:
                logging.warning(f"Campaign {campaign.campaign_id} already belongs to mirror {owner}, not claiming it")
                return self._unchanged(mirror, f"Campaign {campaign.campaign_id} already belongs to mirror {owner}")
            if mirror.campaign_id is not None and mirror.campaign_id != campaign.campaign_id:
                logging.warning(
                    f"Mirror {mirror_id} had campaign_id {mirror.campaign_id}, chain says {campaign.campaign_id}"
                )
            self.mark_minted(mirror_id, campaign.campaign_id)
            return ReconcileResult(
                mirror_id=mirror_id,
                status=MirrorStatus.MINTED,
                chain_campaign_id=campaign.campaign_id,
                changed=True,
                message=f"Verified on-chain as campaign {campaign.campaign_id}",
                previous_status=mirror.status,
                previous_campaign_id=mirror.campaign_id,
            )

        if mirror.status == MirrorStatus.MINTED:
            logging.error(f"Orphan: mirror {mirror_id} is minted but no campaign carries {mirror.content_id[:50]}")
            return ReconcileResult(
                mirror_id=mirror_id,
                status=mirror.status,
                chain_campaign_id=None,
                changed=False,
                message="Orphan: marked minted but no matching campaign on-chain",
                previous_status=mirror.status,
                previous_campaign_id=mirror.campaign_id,
            )

        if mirror.has_tx_hash and self._reverted(mirror.tx_hash):
            self.mark_failed(mirror_id, f"transaction {mirror.tx_hash} reverted", tx_hash=mirror.tx_hash)
            return ReconcileResult(
                mirror_id=mirror_id,
                status=MirrorStatus.FAILED,
                chain_campaign_id=None,
                changed=True,
                message=f"Transaction {mirror.tx_hash} reverted",
                previous_status=mirror.status,
                previous_campaign_id=mirror.campaign_id,
            )

        return self._unchanged(mirror, "Not found on-chain yet")

    def audit_minted(self) -> List[AuditEntry]:
        """
        Check every minted mirror against a single chain index.

        Returns:
            One AuditEntry per minted mirror
        """
        mirrors = self.store.list_by_status(MirrorStatus.MINTED)
        if not mirrors:
            logging.info("No minted mirrors to audit")
            return []
        index = self.prober.index_by_content_id()

        entries: List[AuditEntry] = []
        for mirror in mirrors:
            entries.append(self._audit_one(mirror, index))

        counts: Dict[str, int] = {}
        for entry in entries:
            counts[entry.status.value] = counts.get(entry.status.value, 0) + 1
        logging.info(f"Audit of {len(entries)} minted mirrors: {counts}")
        return entries

    def _audit_one(self, mirror: SubmissionMirror, index: Dict[str, Any]) -> AuditEntry:
        if not mirror.content_id:
            return AuditEntry(mirror.mirror_id, AuditStatus.ERROR, "No metadata_uri")

        campaign = index.get(mirror.content_id)
        if campaign is None:
            logging.warning(f"Orphan mirror {mirror.mirror_id}: {mirror.content_id[:50]} not on-chain")
            return AuditEntry(mirror.mirror_id, AuditStatus.ORPHAN, "No campaign on-chain with this metadata_uri")

        if mirror.campaign_id == campaign.campaign_id:
            return AuditEntry(mirror.mirror_id, AuditStatus.ALREADY_VALID, "Campaign id matches", campaign.campaign_id)

        try:
            self.store.update(mirror.mirror_id, {"campaign_id": campaign.campaign_id})
        except MirrorStoreError as e:
            logging.error(f"Could not fix mirror {mirror.mirror_id}: {e}")
            return AuditEntry(mirror.mirror_id, AuditStatus.ERROR, str(e), campaign.campaign_id)
        logging.info(f"Fixed mirror {mirror.mirror_id}: campaign_id {mirror.campaign_id} -> {campaign.campaign_id}")
        return AuditEntry(
            mirror.mirror_id,
            AuditStatus.FIXED,
            f"campaign_id {mirror.campaign_id} -> {campaign.campaign_id}",
            campaign.campaign_id,
        )

    def _reverted(self, tx_hash: str) -> bool:
        try:
            receipt = self.chain_client.get_receipt(tx_hash)
        except CampaignEngineError as e:
            logging.warning(f"Could not read receipt for {tx_hash}: {e}")
            return False
        return receipt is not None and receipt.get("status") == 0

    @staticmethod
    def _unchanged(mirror: SubmissionMirror, message: str) -> ReconcileResult:
        return ReconcileResult(
            mirror_id=mirror.mirror_id,
            status=mirror.status,
            chain_campaign_id=mirror.campaign_id,
            changed=False,
            message=message,
            previous_status=mirror.status,
            previous_campaign_id=mirror.campaign_id,
        )
