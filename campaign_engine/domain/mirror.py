"""
Submission mirror domain model.

The mirror is the off-chain row tracking a campaign's lifecycle. Rows are keyed by an
opaque id and carry the submission fields the creation request is built from.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class MirrorStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PENDING_ONCHAIN = "pending_onchain"
    MINTED = "minted"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MirrorStatus":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown mirror status: {value!r}") from None


@dataclass
class SubmissionMirror:
    """Snapshot of one off-chain submission row."""

    mirror_id: str
    status: MirrorStatus
    content_id: Optional[str] = None  # metadata_uri column
    campaign_id: Optional[int] = None
    tx_hash: Optional[str] = None
    contract_address: Optional[str] = None
    visible_on_marketplace: bool = False
    chain: Optional[str] = None
    # Submission fields used to build the creation request
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_minted(self) -> bool:
        return self.status == MirrorStatus.MINTED and self.campaign_id is not None

    @property
    def has_tx_hash(self) -> bool:
        # Older rows stored placeholders such as "(pending in mempool)"
        return bool(self.tx_hash) and self.tx_hash.startswith("0x")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubmissionMirror":
        """
        Build a mirror from a raw store row.

        Args:
            row: Column name -> value mapping as returned by the store

        Returns:
            SubmissionMirror snapshot
        """
        campaign_id = row.get("campaign_id")
        return cls(
            mirror_id=str(row["id"]),
            status=MirrorStatus.parse(row.get("status")),
            content_id=row.get("metadata_uri"),
            campaign_id=int(campaign_id) if campaign_id is not None else None,
            tx_hash=row.get("tx_hash"),
            contract_address=row.get("contract_address"),
            visible_on_marketplace=bool(row.get("visible_on_marketplace", False)),
            chain=row.get("chain"),
            fields=dict(row),
        )

    def __str__(self) -> str:
        return f"SubmissionMirror(id={self.mirror_id}, status={self.status.value}, campaign_id={self.campaign_id})"
