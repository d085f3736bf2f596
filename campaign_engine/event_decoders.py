"""
Decoders for the CampaignCreated event.

Each contract generation emitted a different CampaignCreated shape, so one receipt log
may only decode under one of them. The shapes form a closed set tried in a fixed
priority order (newest first); the first successful decode wins and is returned as a
typed CampaignCreatedEvent.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from bittensor.utils.btlogging import logging


@dataclass(frozen=True)
class CampaignCreatedEvent:
    """A decoded CampaignCreated log."""

    campaign_id: int
    shape: str  # Name of the decoder that matched
    submitter: Optional[str] = None
    content_id: Optional[str] = None  # Only shapes that emit baseURI carry it
    log_index: Optional[int] = None


@dataclass(frozen=True)
class EventParam:
    abi_type: str
    name: str
    indexed: bool = False


def _to_bytes(value: Any) -> bytes:
    return bytes(HexBytes(value))


def _decode_topic(abi_type: str, topic: bytes) -> Any:
    if abi_type == "address":
        return to_checksum_address(topic[-20:])
    if abi_type == "bool":
        return topic[-1] != 0
    if abi_type.startswith("uint"):
        return int.from_bytes(topic, "big")
    # Dynamic indexed values are hashed; keep the raw topic
    return topic


class CampaignCreatedDecoder:
    """Decoder for one CampaignCreated shape."""

    def __init__(self, name: str, params: Sequence[EventParam]):
        self.name = name
        self.params = tuple(params)
        self.signature = "CampaignCreated({})".format(",".join(p.abi_type for p in self.params))
        self.topic0 = keccak(text=self.signature)
        self._indexed = tuple(p for p in self.params if p.indexed)
        self._data = tuple(p for p in self.params if not p.indexed)

    def decode(self, log: Mapping[str, Any], contract_address: Optional[str] = None) -> Optional[CampaignCreatedEvent]:
        """
        Decode one log entry.

        Args:
            log: Receipt log with ``topics`` and ``data`` (and usually ``address``)
            contract_address: If given, logs emitted by other contracts are ignored

        Returns:
            CampaignCreatedEvent, or None if the log is not this shape
        """
        if contract_address and log.get("address"):
            if str(log["address"]).lower() != contract_address.lower():
                return None

        topics = [_to_bytes(t) for t in log.get("topics") or []]
        if not topics or topics[0] != self.topic0:
            return None
        if len(topics) - 1 != len(self._indexed):
            return None

        values: Dict[str, Any] = {}
        for param, topic in zip(self._indexed, topics[1:]):
            values[param.name] = _decode_topic(param.abi_type, topic)

        try:
            decoded = abi_decode([p.abi_type for p in self._data], _to_bytes(log.get("data") or b""))
        except (DecodingError, ValueError, OverflowError) as e:
            logging.debug(f"{self.name}: topic matched but data did not decode: {e}")
            return None
        for param, value in zip(self._data, decoded):
            values[param.name] = value

        return CampaignCreatedEvent(
            campaign_id=int(values["campaignId"]),
            shape=self.name,
            submitter=values.get("submitter"),
            content_id=values.get("baseURI"),
            log_index=log.get("logIndex"),
        )

    def __repr__(self) -> str:
        return f"CampaignCreatedDecoder({self.name}: {self.signature})"


V8_DECODER = CampaignCreatedDecoder(
    "v8",
    [
        EventParam("uint256", "campaignId", indexed=True),
        EventParam("address", "nonprofit", indexed=True),
        EventParam("address", "submitter", indexed=True),
        EventParam("string", "category"),
        EventParam("uint256", "goalNative"),
        EventParam("uint256", "goalUsd"),
        EventParam("uint256", "maxEditions"),
        EventParam("uint256", "priceNative"),
        EventParam("uint256", "priceUsd"),
        EventParam("bool", "immediatePayoutEnabled"),
    ],
)

V7_DECODER = CampaignCreatedDecoder(
    "v7",
    [
        EventParam("uint256", "campaignId", indexed=True),
        EventParam("address", "nonprofit", indexed=True),
        EventParam("address", "submitter", indexed=True),
        EventParam("string", "category"),
        EventParam("uint256", "goal"),
        EventParam("uint256", "maxEditions"),
        EventParam("uint256", "pricePerEdition"),
        EventParam("bool", "immediatePayoutEnabled"),
    ],
)

V6_DECODER = CampaignCreatedDecoder(
    "v6",
    [
        EventParam("uint256", "campaignId", indexed=True),
        EventParam("address", "submitter", indexed=True),
        EventParam("string", "category"),
        EventParam("string", "baseURI"),
        EventParam("uint256", "goal"),
        EventParam("uint256", "maxEditions"),
        EventParam("uint256", "pricePerEdition"),
    ],
)

V5_DECODER = CampaignCreatedDecoder(
    "v5",
    [
        EventParam("uint256", "campaignId", indexed=True),
        EventParam("string", "category"),
        EventParam("string", "baseURI"),
        EventParam("uint256", "goal"),
        EventParam("uint256", "maxEditions"),
        EventParam("uint256", "pricePerEdition"),
    ],
)

# Priority order: newest generation first
DEFAULT_DECODERS: Tuple[CampaignCreatedDecoder, ...] = (V8_DECODER, V7_DECODER, V6_DECODER, V5_DECODER)


def decode_campaign_created(
    logs: Iterable[Mapping[str, Any]],
    decoders: Sequence[CampaignCreatedDecoder] = DEFAULT_DECODERS,
    contract_address: Optional[str] = None,
) -> Optional[CampaignCreatedEvent]:
    """
    Try every decoder, in priority order, against every log.

    Args:
        logs: Receipt logs
        decoders: Decoders in priority order
        contract_address: Only accept logs emitted by this contract

    Returns:
        The first successful decode, or None if no shape matched any log
    """
    logs = list(logs)
    for decoder in decoders:
        for log in logs:
            event = decoder.decode(log, contract_address=contract_address)
            if event is not None:
                logging.debug(f"Decoded CampaignCreated with {decoder.name} shape: campaign_id={event.campaign_id}")
                return event
    return None
