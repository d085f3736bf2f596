"""
Builds the immutable creation request from a submission mirror row.
"""
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Callable, Optional

from bittensor.utils.btlogging import logging
from web3 import Web3

from campaign_engine.constants import (
    DEFAULT_CATEGORY,
    DEFAULT_CHAIN,
    DEFAULT_FEE_RATE_BPS,
    DEFAULT_GOAL_USD,
    DEFAULT_IMMEDIATE_PAYOUT,
    DEFAULT_PRICE_USD,
    MIN_DEFAULT_EDITIONS,
    NATIVE_DECIMALS,
)
from campaign_engine.domain.campaign import CampaignCreationRequest
from campaign_engine.domain.mirror import SubmissionMirror
from campaign_engine.errors import InvalidRequestError
from campaign_engine.resolvers import resolve_chain


def _decimal(value: Any, field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequestError(f"{field} is not a number: {value!r}") from None


def usd_to_wei(amount_usd: Decimal, native_usd_rate: float) -> int:
    """
    Convert a USD amount to the native smallest unit at a fixed rate.

    Args:
        amount_usd: Amount in USD
        native_usd_rate: USD value of one native coin

    Returns:
        Amount in wei, rounded down
    """
    native = amount_usd / Decimal(str(native_usd_rate))
    return int((native * (Decimal(10) ** NATIVE_DECIMALS)).to_integral_value(rounding=ROUND_FLOOR))


class CampaignRequestBuilder:
    """Turns a mirror row into a CampaignCreationRequest."""

    def __init__(
        self,
        rate_resolver: Callable[[str], float],
        fallback_beneficiary: Optional[str] = None,
        default_chain: str = DEFAULT_CHAIN,
    ):
        """
        Initialize request builder.

        Args:
            rate_resolver: Callable mapping a chain selector to USD per native coin
            fallback_beneficiary: Address used when the submission has no creator wallet
                (normally the relayer address, funds go to the platform first)
            default_chain: Chain used when the row does not name one
        """
        self.rate_resolver = rate_resolver
        self.fallback_beneficiary = fallback_beneficiary
        self.default_chain = default_chain

    def build(self, mirror: SubmissionMirror) -> CampaignCreationRequest:
        """
        Build the creation request for a mirror.

        Goal defaults to $100; editions default to the goal in whole dollars with a
        floor of 100; price defaults to goal / editions.

        Raises:
            InvalidRequestError: If required fields are missing or invalid
        """
        row = mirror.fields
        content_id = (mirror.content_id or "").strip()
        if not content_id:
            raise InvalidRequestError(f"Mirror {mirror.mirror_id}: metadata_uri is required")

        beneficiary = row.get("creator_wallet") or self.fallback_beneficiary
        if not beneficiary:
            raise InvalidRequestError(
                f"Mirror {mirror.mirror_id}: creator_wallet is required when no relayer address is configured"
            )
        if not Web3.is_address(beneficiary):
            raise InvalidRequestError(f"Mirror {mirror.mirror_id}: beneficiary {beneficiary!r} is not an address")
        beneficiary = Web3.to_checksum_address(beneficiary)

        nonprofit = row.get("nonprofit_wallet")
        if nonprofit:
            if not Web3.is_address(nonprofit):
                raise InvalidRequestError(f"Mirror {mirror.mirror_id}: nonprofit {nonprofit!r} is not an address")
            nonprofit = Web3.to_checksum_address(nonprofit)

        goal_usd = _decimal(row.get("goal"), "goal") or Decimal(DEFAULT_GOAL_USD)
        editions = int(_decimal(row.get("num_copies"), "num_copies") or _decimal(row.get("nft_editions"), "nft_editions") or 0)
        if editions == 0 and goal_usd > 0:
            editions = max(MIN_DEFAULT_EDITIONS, int(goal_usd))

        explicit_price = _decimal(row.get("price_per_copy"), "price_per_copy") or _decimal(row.get("nft_price"), "nft_price")
        if explicit_price:
            price_usd = explicit_price
        elif goal_usd > 0 and editions > 0:
            price_usd = goal_usd / editions
        else:
            price_usd = Decimal(str(DEFAULT_PRICE_USD))

        if goal_usd <= 0 or editions <= 0 or price_usd <= 0:
            raise InvalidRequestError(
                f"Mirror {mirror.mirror_id}: goal, editions and price must be positive "
                f"(goal={goal_usd}, editions={editions}, price={price_usd})"
            )

        chain = resolve_chain(mirror.chain, self.default_chain)
        try:
            rate = self.rate_resolver(chain)
        except ValueError as e:
            raise InvalidRequestError(f"Mirror {mirror.mirror_id}: {e}") from e

        fee_rate = int(_decimal(row.get("fee_rate_bps"), "fee_rate_bps") or DEFAULT_FEE_RATE_BPS)

        request = CampaignCreationRequest(
            mirror_id=mirror.mirror_id,
            content_id=content_id,
            beneficiary=beneficiary,
            category=row.get("category") or DEFAULT_CATEGORY,
            goal_usd=goal_usd,
            goal_wei=usd_to_wei(goal_usd, rate),
            max_editions=editions,
            price_usd=price_usd,
            price_wei=usd_to_wei(price_usd, rate),
            fee_rate_bps=fee_rate,
            chain=chain,
            nonprofit=nonprofit,
            immediate_payout=bool(row.get("immediate_payout", DEFAULT_IMMEDIATE_PAYOUT)),
        )
        logging.info(
            f"Built request for mirror {mirror.mirror_id}: goal=${goal_usd} ({request.goal_wei} wei), "
            f"editions={editions}, price=${price_usd} ({request.price_wei} wei), chain={chain}"
        )
        return request
