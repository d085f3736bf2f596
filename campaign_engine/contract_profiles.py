"""
Contract generations the engine can create campaigns on.

The fundraiser contract changed its createCampaign signature and getCampaign layout
between generations. Each profile bundles the ABI fragments the engine uses with the
argument builder and the tuple parser for that generation.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence, Tuple

from campaign_engine.domain.campaign import CampaignCreationRequest, ChainCampaign


def _param(type_: str, name: str, components: List[Dict[str, Any]] = None) -> Dict[str, Any]:
    param = {"type": type_, "name": name}
    if components is not None:
        param["components"] = components
    return param


def _function(name: str, inputs: List[Dict[str, Any]], outputs: List[Dict[str, Any]], mutability: str) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


TOTAL_CAMPAIGNS_ABI = _function("totalCampaigns", [], [_param("uint256", "")], "view")

# V5-V7 getCampaign returns a flat 10-tuple
LEGACY_GET_CAMPAIGN_ABI = _function(
    "getCampaign",
    [_param("uint256", "campaignId")],
    [
        _param("string", "category"),
        _param("string", "baseURI"),
        _param("uint256", "goal"),
        _param("uint256", "grossRaised"),
        _param("uint256", "netRaised"),
        _param("uint256", "editionsMinted"),
        _param("uint256", "maxEditions"),
        _param("uint256", "pricePerEdition"),
        _param("bool", "active"),
        _param("bool", "closed"),
    ],
    "view",
)

V8_CAMPAIGN_STRUCT = [
    _param("uint256", "id"),
    _param("string", "category"),
    _param("string", "baseURI"),
    _param("uint256", "goalNative"),
    _param("uint256", "goalUsd"),
    _param("uint256", "grossRaised"),
    _param("uint256", "netRaised"),
    _param("uint256", "tipsReceived"),
    _param("uint256", "editionsMinted"),
    _param("uint256", "maxEditions"),
    _param("uint256", "priceNative"),
    _param("uint256", "priceUsd"),
    _param("address", "nonprofit"),
    _param("address", "submitter"),
    _param("bool", "active"),
    _param("bool", "paused"),
    _param("bool", "closed"),
    _param("bool", "refunded"),
    _param("bool", "immediatePayoutEnabled"),
]

V8_GET_CAMPAIGN_ABI = _function(
    "getCampaign",
    [_param("uint256", "campaignId")],
    [_param("tuple", "", V8_CAMPAIGN_STRUCT)],
    "view",
)

V5_CREATE_ABI = _function(
    "createCampaign",
    [
        _param("string", "category"),
        _param("string", "baseURI"),
        _param("uint256", "goal"),
        _param("uint256", "maxEditions"),
        _param("uint256", "pricePerEdition"),
        _param("uint256", "feeRate"),
        _param("address", "submitter"),
    ],
    [_param("uint256", "")],
    "nonpayable",
)

V7_CREATE_ABI = _function(
    "createCampaign",
    [
        _param("string", "category"),
        _param("string", "baseURI"),
        _param("uint256", "goal"),
        _param("uint256", "maxEditions"),
        _param("uint256", "pricePerEdition"),
        _param("address", "nonprofit"),
        _param("address", "submitter"),
        _param("bool", "immediatePayoutEnabled"),
    ],
    [_param("uint256", "")],
    "nonpayable",
)

V8_CREATE_ABI = _function(
    "createCampaign",
    [
        _param("string", "category"),
        _param("string", "baseURI"),
        _param("uint256", "goalNative"),
        _param("uint256", "goalUsd"),
        _param("uint256", "maxEditions"),
        _param("uint256", "priceNative"),
        _param("uint256", "priceUsd"),
        _param("address", "nonprofit"),
        _param("address", "submitter"),
        _param("bool", "immediatePayoutEnabled"),
    ],
    [_param("uint256", "")],
    "nonpayable",
)


def _v5_create_args(request: CampaignCreationRequest) -> Tuple:
    return (
        request.category,
        request.content_id,
        request.goal_wei,
        request.max_editions,
        request.price_wei,
        request.fee_rate_bps,
        request.beneficiary,
    )


def _v7_create_args(request: CampaignCreationRequest) -> Tuple:
    return (
        request.category,
        request.content_id,
        request.goal_wei,
        request.max_editions,
        request.price_wei,
        request.nonprofit or request.beneficiary,
        request.beneficiary,
        request.immediate_payout,
    )


def _v8_create_args(request: CampaignCreationRequest) -> Tuple:
    return (
        request.category,
        request.content_id,
        request.goal_wei,
        request.goal_usd_cents,
        request.max_editions,
        request.price_wei,
        request.price_usd_cents,
        request.nonprofit or request.beneficiary,
        request.beneficiary,
        request.immediate_payout,
    )


def _parse_legacy_campaign(campaign_id: int, raw: Sequence[Any]) -> ChainCampaign:
    return ChainCampaign(
        campaign_id=campaign_id,
        category=raw[0],
        content_id=raw[1],
        goal=int(raw[2]),
        gross_raised=int(raw[3]),
        net_raised=int(raw[4]),
        editions_minted=int(raw[5]),
        max_editions=int(raw[6]),
        price_per_edition=int(raw[7]),
        active=bool(raw[8]),
        closed=bool(raw[9]),
    )


def _parse_v8_campaign(campaign_id: int, raw: Sequence[Any]) -> ChainCampaign:
    return ChainCampaign(
        campaign_id=campaign_id,
        category=raw[1],
        content_id=raw[2],
        goal=int(raw[3]),
        gross_raised=int(raw[5]),
        net_raised=int(raw[6]),
        editions_minted=int(raw[8]),
        max_editions=int(raw[9]),
        price_per_edition=int(raw[10]),
        active=bool(raw[14]),
        closed=bool(raw[16]),
    )


@dataclass(frozen=True)
class ContractProfile:
    """ABI fragments and codecs for one contract generation."""

    version: str
    create_abi: Dict[str, Any]
    get_campaign_abi: Dict[str, Any]
    build_create_args: Callable[[CampaignCreationRequest], Tuple]
    parse_campaign: Callable[[int, Sequence[Any]], ChainCampaign]

    @property
    def abi(self) -> List[Dict[str, Any]]:
        return [self.create_abi, TOTAL_CAMPAIGNS_ABI, self.get_campaign_abi]


V5_PROFILE = ContractProfile("v5", V5_CREATE_ABI, LEGACY_GET_CAMPAIGN_ABI, _v5_create_args, _parse_legacy_campaign)
V7_PROFILE = ContractProfile("v7", V7_CREATE_ABI, LEGACY_GET_CAMPAIGN_ABI, _v7_create_args, _parse_legacy_campaign)
V8_PROFILE = ContractProfile("v8", V8_CREATE_ABI, V8_GET_CAMPAIGN_ABI, _v8_create_args, _parse_v8_campaign)

# V6 kept the V5 createCampaign signature
CONTRACT_PROFILES = {
    "v5": V5_PROFILE,
    "v6": V5_PROFILE,
    "v7": V7_PROFILE,
    "v8": V8_PROFILE,
}


def get_profile(version: str) -> ContractProfile:
    """
    Look up the profile for a contract version string.

    Raises:
        ValueError: If the version is not a known generation
    """
    profile = CONTRACT_PROFILES.get(version.lower())
    if profile is None:
        raise ValueError(f"Unknown contract version {version!r}; expected one of {sorted(CONTRACT_PROFILES)}")
    return profile
