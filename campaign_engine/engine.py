"""
Campaign creation engine.

Entry points for the calling CRUD layer: ``create`` submits a mirror's campaign
exactly once, ``verify`` re-derives a mirror from chain state, ``audit_minted``
checks every minted mirror in one pass.
"""
from typing import List, Optional, Sequence

from bittensor.utils.btlogging import logging

from campaign_engine.adapters.chain_client import IChainClient, TxStatus
from campaign_engine.adapters.mirror_store import IMirrorStore
from campaign_engine.confirmation import IdentifierRecovery
from campaign_engine.domain.campaign import CampaignCreationRequest
from campaign_engine.domain.mirror import MirrorStatus, SubmissionMirror
from campaign_engine.domain.results import AuditEntry, CreationOutcome, CreationResult, ReconcileResult
from campaign_engine.engine_config import EngineConfig
from campaign_engine.errors import (
    CampaignEngineError,
    FatalChainError,
    IdentifierUnresolvedError,
    InvalidRequestError,
    MirrorStoreError,
    RetriesExhaustedError,
)
from campaign_engine.event_decoders import DEFAULT_DECODERS, CampaignCreatedDecoder
from campaign_engine.nonce_manager import SenderNonceManager
from campaign_engine.prober import IdempotencyProber
from campaign_engine.reconciler import LedgerReconciler
from campaign_engine.request_builder import CampaignRequestBuilder
from campaign_engine.submission import SubmissionOutcome, SubmissionState, TransactionSubmitter

CHECK_BACK_MESSAGE = "Transaction submitted but not confirmed yet. Use verify to check back."
UNRESOLVED_MESSAGE = "Confirmed on-chain but identifier unknown. Use verify to resolve."


class CampaignCreationEngine:
    """
    Orchestrates prober, submission, identifier recovery and reconciliation.

    ``create`` holds the sender's lock from the mirror reload through confirmation, so
    a duplicate request queued behind the first reloads the mirror and sees its result.
    """

    def __init__(
        self,
        store: IMirrorStore,
        chain_client: IChainClient,
        request_builder: CampaignRequestBuilder,
        config: Optional[EngineConfig] = None,
        nonce_manager: Optional[SenderNonceManager] = None,
        decoders: Sequence[CampaignCreatedDecoder] = DEFAULT_DECODERS,
    ):
        """
        Initialize the engine.

        Args:
            store: Submission mirror store
            chain_client: Chain client bound to the relayer signer and the fundraiser contract
            request_builder: Builds creation requests from mirror rows
            config: Retry and timeout policy
            nonce_manager: Per-sender lock owner; share one instance across engines using the same signer
            decoders: Ordered CampaignCreated decoders
        """
        self.store = store
        self.chain_client = chain_client
        self.request_builder = request_builder
        self.config = config or EngineConfig()
        self.nonce_manager = nonce_manager or SenderNonceManager()

        self.prober = IdempotencyProber(chain_client)
        self.reconciler = LedgerReconciler(store, self.prober, chain_client)
        self.recovery = IdentifierRecovery(
            chain_client, self.prober, decoders, verify_resolved=self.config.verify_resolved_campaign
        )
        self.submitter = TransactionSubmitter(chain_client, self.prober, self.nonce_manager, self.config)

    def create(self, mirror_id: str) -> CreationResult:
        """
        Create the on-chain campaign for a mirror, at most once.

        Args:
            mirror_id: Mirror row id

        Returns:
            CreationResult for the HTTP layer

        Raises:
            MirrorNotFoundError: If the mirror does not exist
            FatalChainError: On reverts or invalid input (the mirror is marked failed)
            RetriesExhaustedError: If every attempt failed with a retryable error
            TimeoutError: If the sender's lock could not be acquired
        """
        with self.nonce_manager.serialized(self.chain_client.sender_address):
            mirror = self.store.get(mirror_id)
            logging.info(f"[blue]Create requested for {mirror}[/blue]")

            if mirror.is_minted:
                logging.info(f"Mirror {mirror_id} already minted as campaign {mirror.campaign_id}")
                return self._already_created(mirror, mirror.campaign_id)

            request = self._build_request(mirror)

            if mirror.has_tx_hash:
                resumed = self._resume_pending(mirror, request)
                if resumed is not None:
                    return resumed

            existing = self.submitter.read_with_retries(
                f"Scan for {request.content_id[:50]}",
                lambda: self.prober.find_by_content_id(request.content_id),
            )
            if existing is not None:
                logging.info(f"Campaign {existing.campaign_id} already exists for {request.content_id[:50]}")
                owner = self.reconciler.owner_of(existing.campaign_id, mirror_id)
                if owner is not None:
                    logging.warning(
                        f"Campaign {existing.campaign_id} already belongs to mirror {owner}, "
                        f"leaving mirror {mirror_id} {mirror.status.value}"
                    )
                    return self._already_created(mirror, existing.campaign_id, status=mirror.status)
                self.reconciler.mark_minted(mirror_id, existing.campaign_id)
                return self._already_created(mirror, existing.campaign_id)

            return self._submit(mirror, request)

    def verify(self, mirror_id: str) -> ReconcileResult:
        """Re-derive a mirror from chain state; safe to call any number of times."""
        return self.reconciler.reconcile(mirror_id)

    def audit_minted(self) -> List[AuditEntry]:
        """Check every minted mirror against the chain and fix stale campaign ids."""
        return self.reconciler.audit_minted()

    def _build_request(self, mirror: SubmissionMirror) -> CampaignCreationRequest:
        try:
            return self.request_builder.build(mirror)
        except InvalidRequestError as e:
            self.reconciler.mark_failed(mirror.mirror_id, e.message)
            raise

    def _resume_pending(self, mirror: SubmissionMirror, request: CampaignCreationRequest) -> Optional[CreationResult]:
        """
        Decide what to do about a transaction stored by an earlier call.

        Runs for any stored hash whatever the mirror's status, so a row written as
        failed while its transaction was still in flight is never resubmitted blind.

        Returns:
            A result if the stored transaction settles this call, or None if a new
            submission is allowed
        """
        tx_hash = mirror.tx_hash
        try:
            status = self.submitter.read_with_retries(
                f"Status of {tx_hash}", lambda: self.chain_client.get_transaction_status(tx_hash)
            )
            receipt = None
            if status == TxStatus.MINED:
                receipt = self.submitter.read_with_retries(
                    f"Receipt of {tx_hash}", lambda: self.chain_client.get_receipt(tx_hash)
                )
        except CampaignEngineError as e:
            logging.warning(f"Could not check stored transaction {tx_hash}: {e}")
            return self._still_pending(mirror)

        if status == TxStatus.PENDING:
            logging.info(f"Stored transaction {tx_hash} is still pending, not resubmitting")
            return self._still_pending(mirror)

        if status == TxStatus.UNKNOWN:
            logging.warning(f"Stored transaction {tx_hash} is unknown to the node (dropped), resubmission allowed")
            return None

        if receipt is None or receipt.get("status") == 0:
            logging.warning(f"Stored transaction {tx_hash} did not create a campaign, resubmission allowed")
            return None

        try:
            campaign_id = self.recovery.recover(receipt, request)
        except IdentifierUnresolvedError as e:
            return self._unresolved(e, 0)
        self.reconciler.mark_minted(mirror.mirror_id, campaign_id, tx_hash)
        return CreationResult(
            ok=True,
            outcome=CreationOutcome.MINTED,
            status=MirrorStatus.MINTED,
            message=f"Campaign {campaign_id} recovered from stored transaction",
            chain_campaign_id=campaign_id,
            tx_hash=tx_hash,
        )

    def _still_pending(self, mirror: SubmissionMirror) -> CreationResult:
        if mirror.status != MirrorStatus.PENDING_ONCHAIN:
            logging.warning(f"Mirror {mirror.mirror_id} is {mirror.status.value} but {mirror.tx_hash} may still land")
            try:
                self.reconciler.record_broadcast(mirror.mirror_id, mirror.tx_hash)
            except MirrorStoreError as e:
                logging.error(f"Could not restore pending_onchain for mirror {mirror.mirror_id}: {e}")
        return self._check_back(mirror.tx_hash, CreationOutcome.PENDING, 0)

    def _submit(self, mirror: SubmissionMirror, request: CampaignCreationRequest) -> CreationResult:
        mirror_id = mirror.mirror_id

        def on_broadcast(tx_hash: str) -> None:
            try:
                self.reconciler.record_broadcast(mirror_id, tx_hash)
            except MirrorStoreError as e:
                logging.error(f"Could not persist {tx_hash} for mirror {mirror_id}, continuing: {e}")

        try:
            outcome = self.submitter.submit(request, on_broadcast)
        except RetriesExhaustedError as e:
            logging.error(f"Mirror {mirror_id}: {e.message}")
            raise
        except FatalChainError as e:
            self.reconciler.mark_failed(mirror_id, e.message, tx_hash=e.tx_hash)
            raise

        if outcome.state == SubmissionState.TIMED_OUT:
            logging.warning(f"Mirror {mirror_id}: {outcome.tx_hash} not confirmed within the wait bound")
            return self._check_back(outcome.tx_hash, CreationOutcome.TIMED_OUT, outcome.attempts)

        return self._finish(mirror_id, request, outcome)

    def _finish(self, mirror_id: str, request: CampaignCreationRequest, outcome: SubmissionOutcome) -> CreationResult:
        if outcome.campaign is not None:
            campaign_id = outcome.campaign.campaign_id
        else:
            try:
                campaign_id = self.recovery.recover(outcome.receipt, request)
            except IdentifierUnresolvedError as e:
                return self._unresolved(e, outcome.attempts)

        self.reconciler.mark_minted(mirror_id, campaign_id, outcome.tx_hash)
        return CreationResult(
            ok=True,
            outcome=CreationOutcome.MINTED,
            status=MirrorStatus.MINTED,
            message=f"Campaign {campaign_id} created",
            chain_campaign_id=campaign_id,
            tx_hash=outcome.tx_hash,
            attempts=outcome.attempts,
        )

    @staticmethod
    def _already_created(
        mirror: SubmissionMirror, campaign_id: int, status: MirrorStatus = MirrorStatus.MINTED
    ) -> CreationResult:
        return CreationResult(
            ok=True,
            outcome=CreationOutcome.ALREADY_CREATED,
            status=status,
            message=f"Campaign already created as {campaign_id}",
            chain_campaign_id=campaign_id,
            tx_hash=mirror.tx_hash if mirror.has_tx_hash else None,
        )

    @staticmethod
    def _check_back(tx_hash: Optional[str], outcome: CreationOutcome, attempts: int) -> CreationResult:
        return CreationResult(
            ok=True,
            outcome=outcome,
            status=MirrorStatus.PENDING_ONCHAIN,
            message=CHECK_BACK_MESSAGE,
            tx_hash=tx_hash,
            attempts=attempts,
        )

    @staticmethod
    def _unresolved(error: IdentifierUnresolvedError, attempts: int) -> CreationResult:
        logging.error(f"{UNRESOLVED_MESSAGE} tx={error.tx_hash} block={error.block_number}")
        return CreationResult(
            ok=False,
            outcome=CreationOutcome.IDENTIFIER_UNRESOLVED,
            status=MirrorStatus.PENDING_ONCHAIN,
            message=UNRESOLVED_MESSAGE,
            tx_hash=error.tx_hash,
            attempts=attempts,
        )
