"""
Result objects returned to the calling CRUD layer.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from campaign_engine.domain.mirror import MirrorStatus


class CreationOutcome(Enum):
    MINTED = "minted"  # Confirmed and identified in this call
    ALREADY_CREATED = "already_created"  # Prober or mirror already had the campaign
    TIMED_OUT = "timed_out"  # Submitted, confirmation not observed yet
    PENDING = "pending"  # A stored transaction is still in the mempool
    IDENTIFIER_UNRESOLVED = "identifier_unresolved"  # Confirmed, campaign id unknown


@dataclass
class CreationResult:
    """Outcome of one ``create`` call."""

    ok: bool
    outcome: CreationOutcome
    status: MirrorStatus
    message: str
    chain_campaign_id: Optional[int] = None
    tx_hash: Optional[str] = None
    attempts: int = 0

    @property
    def already_created(self) -> bool:
        return self.outcome == CreationOutcome.ALREADY_CREATED

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the HTTP layer."""
        data: Dict[str, Any] = {
            "ok": self.ok,
            "status": self.status.value,
            "outcome": self.outcome.value,
            "message": self.message,
        }
        if self.chain_campaign_id is not None:
            data["chainCampaignId"] = self.chain_campaign_id
            data["campaignId"] = self.chain_campaign_id
        if self.tx_hash is not None:
            data["txHash"] = self.tx_hash
        if self.already_created:
            data["alreadyCreated"] = True
        return data


@dataclass
class ReconcileResult:
    """Outcome of reconciling one mirror against chain state."""

    mirror_id: str
    status: MirrorStatus
    chain_campaign_id: Optional[int]
    changed: bool
    message: str
    previous_status: Optional[MirrorStatus] = None
    previous_campaign_id: Optional[int] = None

    @property
    def verified(self) -> bool:
        return self.status == MirrorStatus.MINTED and self.chain_campaign_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.verified,
            "verified": self.verified,
            "status": self.status.value,
            "campaignId": self.chain_campaign_id,
            "changed": self.changed,
            "previousStatus": self.previous_status.value if self.previous_status else None,
            "previousCampaignId": self.previous_campaign_id,
            "message": self.message,
        }


class AuditStatus(Enum):
    FIXED = "fixed"
    ORPHAN = "orphan"
    ALREADY_VALID = "already_valid"
    ERROR = "error"


@dataclass
class AuditEntry:
    """One row of the minted-mirror audit report."""

    mirror_id: str
    status: AuditStatus
    details: str
    campaign_id: Optional[int] = None
