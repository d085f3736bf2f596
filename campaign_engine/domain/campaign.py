"""
Campaign domain models.

CampaignCreationRequest is what the engine submits; ChainCampaign is what the
chain holds. The engine never invents a ChainCampaign, it only reads one.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class CampaignCreationRequest:
    """One immutable creation attempt for a submission."""

    mirror_id: str  # Off-chain row this request was built from
    content_id: str  # Metadata URI, the idempotency key
    beneficiary: str  # Submitter address receiving proceeds
    category: str
    goal_usd: Decimal
    goal_wei: int
    max_editions: int
    price_usd: Decimal
    price_wei: int
    fee_rate_bps: int
    chain: str  # Target chain selector, e.g. "blockdag"
    nonprofit: Optional[str] = None
    immediate_payout: bool = False

    @property
    def goal_usd_cents(self) -> int:
        return int(self.goal_usd * 100)

    @property
    def price_usd_cents(self) -> int:
        return int(self.price_usd * 100)

    def __str__(self) -> str:
        return (
            f"CampaignCreationRequest(mirror={self.mirror_id}, content_id={self.content_id[:50]}, "
            f"goal=${self.goal_usd}, editions={self.max_editions}, chain={self.chain})"
        )


@dataclass(frozen=True)
class ChainCampaign:
    """Authoritative campaign record as stored on-chain."""

    campaign_id: int  # Sequential id assigned by the contract
    content_id: str
    category: str
    goal: int  # Native smallest unit
    price_per_edition: int
    max_editions: int
    editions_minted: int
    gross_raised: int
    net_raised: int
    active: bool
    closed: bool

    def matches(self, content_id: str) -> bool:
        """Exact content identifier equality."""
        return self.content_id == content_id

    def __str__(self) -> str:
        return f"ChainCampaign(id={self.campaign_id}, content_id={self.content_id[:50]})"
