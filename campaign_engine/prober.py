"""
Idempotency prober.

Finds the on-chain campaign for a content identifier, if one exists. The content
identifier (metadata URI) is the idempotency key: at most one campaign may carry it.
"""
from typing import Dict, Optional

from bittensor.utils.btlogging import logging

from campaign_engine.adapters.chain_client import IChainClient
from campaign_engine.domain.campaign import ChainCampaign
from campaign_engine.errors import CampaignEngineError


class IdempotencyProber:
    """Scans on-chain campaigns for a content identifier."""

    def __init__(self, chain_client: IChainClient):
        self.chain_client = chain_client

    def find_by_content_id(self, content_id: str) -> Optional[ChainCampaign]:
        """
        Find the campaign whose content identifier equals ``content_id``.

        Scans from the most recent campaign to the oldest and stops at the first exact
        match. A read failure on a single index is logged and skipped: a missing record
        is treated as "not found yet" rather than failing the scan.

        Args:
            content_id: Metadata URI to look for

        Returns:
            Matching ChainCampaign, or None

        Raises:
            CampaignEngineError: If the campaign count itself cannot be read
        """
        total = self.chain_client.get_campaign_count()
        logging.debug(f"Probing {total} campaigns for content id {content_id[:50]}")

        skipped = 0
        for index in range(total - 1, -1, -1):
            try:
                campaign = self.chain_client.get_campaign_by_index(index)
            except CampaignEngineError as e:
                skipped += 1
                logging.warning(f"Skipping campaign {index} during probe: {e}")
                continue
            if campaign.matches(content_id):
                logging.info(f"Found campaign {index} matching content id {content_id[:50]}")
                return campaign

        if skipped:
            logging.warning(f"Probe for {content_id[:50]} found no match; {skipped}/{total} campaigns unreadable")
        return None

    def read_campaign(self, campaign_id: int) -> Optional[ChainCampaign]:
        """Read one campaign by id, returning None when the read fails."""
        try:
            return self.chain_client.get_campaign_by_index(campaign_id)
        except CampaignEngineError as e:
            logging.warning(f"Could not read campaign {campaign_id}: {e}")
            return None

    def index_by_content_id(self) -> Dict[str, ChainCampaign]:
        """
        Read every campaign once and index it by content identifier.

        Scans oldest to newest so that, if the policy was ever violated, the most
        recent campaign wins, matching ``find_by_content_id``.

        Returns:
            Mapping of content identifier to ChainCampaign
        """
        total = self.chain_client.get_campaign_count()
        index: Dict[str, ChainCampaign] = {}
        for campaign_id in range(total):
            try:
                campaign = self.chain_client.get_campaign_by_index(campaign_id)
            except CampaignEngineError as e:
                logging.warning(f"Skipping campaign {campaign_id} while indexing: {e}")
                continue
            if campaign.content_id:
                index[campaign.content_id] = campaign
        logging.info(f"Indexed {len(index)} of {total} on-chain campaigns")
        return index
