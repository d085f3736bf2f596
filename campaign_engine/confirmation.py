"""
Identifier recovery for confirmed creation transactions.
"""
from typing import Any, Mapping, Optional, Sequence

from bittensor.utils.btlogging import logging

from campaign_engine.adapters.chain_client import IChainClient
from campaign_engine.domain.campaign import CampaignCreationRequest
from campaign_engine.errors import CampaignEngineError, IdentifierUnresolvedError, TransactionRevertedError
from campaign_engine.event_decoders import DEFAULT_DECODERS, CampaignCreatedDecoder
from campaign_engine.prober import IdempotencyProber


class IdentifierRecovery:
    """
    Recovers the campaign id from a mined receipt.

    Tries the event decoders first (every known shape, first match wins), then falls
    back to a prober scan by content identifier. The id is never guessed from the
    campaign count.
    """

    def __init__(
        self,
        chain_client: IChainClient,
        prober: IdempotencyProber,
        decoders: Sequence[CampaignCreatedDecoder] = DEFAULT_DECODERS,
        verify_resolved: bool = True,
    ):
        """
        Initialize identifier recovery.

        Args:
            chain_client: Chain client used to parse events and re-read campaigns
            prober: Prober used as the fallback
            decoders: Ordered CampaignCreated decoders
            verify_resolved: Re-read the resolved campaign and compare content ids
        """
        self.chain_client = chain_client
        self.prober = prober
        self.decoders = decoders
        self.verify_resolved = verify_resolved

    def recover(self, receipt: Mapping[str, Any], request: CampaignCreationRequest) -> int:
        """
        Determine the campaign id created by ``receipt``.

        Args:
            receipt: Mined transaction receipt
            request: Request the transaction was built from

        Returns:
            On-chain campaign id

        Raises:
            TransactionRevertedError: If the receipt shows a revert
            IdentifierUnresolvedError: If neither the event nor the prober yields an id
        """
        tx_hash = _hex(receipt.get("transactionHash"))
        block_number = receipt.get("blockNumber")
        if receipt.get("status") == 0:
            raise TransactionRevertedError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)

        campaign_id = self._from_event(receipt)
        if campaign_id is None:
            campaign_id = self._from_prober(request)

        if campaign_id is None:
            logging.error(
                f"Transaction {tx_hash} confirmed in block {block_number} but the campaign id for "
                f"{request.content_id[:50]} could not be determined"
            )
            raise IdentifierUnresolvedError(
                f"Confirmed on-chain but identifier unknown (tx {tx_hash}, block {block_number})",
                tx_hash=tx_hash,
                block_number=block_number,
            )

        if self.verify_resolved:
            self._verify(campaign_id, request.content_id)
        return campaign_id

    def _from_event(self, receipt: Mapping[str, Any]) -> Optional[int]:
        event = self.chain_client.parse_event(receipt, self.decoders)
        if event is None:
            logging.warning("No CampaignCreated event matched any known shape, falling back to scan")
            return None
        logging.info(f"Campaign id {event.campaign_id} from {event.shape} event")
        return event.campaign_id

    def _from_prober(self, request: CampaignCreationRequest) -> Optional[int]:
        # A chain error here means "not resolved", not a failed creation
        try:
            campaign = self.prober.find_by_content_id(request.content_id)
        except CampaignEngineError as e:
            logging.error(f"Fallback scan for {request.content_id[:50]} failed: {e}")
            return None
        return campaign.campaign_id if campaign is not None else None

    def _verify(self, campaign_id: int, content_id: str) -> None:
        campaign = self.prober.read_campaign(campaign_id)
        if campaign is None:
            return
        if not campaign.matches(content_id):
            logging.warning(
                f"Campaign {campaign_id} has content id {campaign.content_id[:50]}, "
                f"expected {content_id[:50]}"
            )


def _hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return str(value)
