"""
Error taxonomy for the campaign engine.

Every chain-facing error carries an ErrorKind so the submission state machine can
look up its retry policy without inspecting messages.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    NODE_UNREACHABLE = "node_unreachable"
    ALREADY_KNOWN = "already_known"
    NONCE_CONFLICT = "nonce_conflict"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    IDENTIFIER_UNRESOLVED = "identifier_unresolved"
    FATAL = "fatal"


class CampaignEngineError(Exception):
    """Base class for all engine errors."""

    kind = ErrorKind.FATAL

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tx_hash = tx_hash


class NodeUnreachableError(CampaignEngineError):
    """The RPC node could not be reached or did not answer in time. Retryable."""

    kind = ErrorKind.NODE_UNREACHABLE


class AlreadyKnownError(CampaignEngineError):
    """The node already holds this transaction in its pool."""

    kind = ErrorKind.ALREADY_KNOWN


class NonceConflictError(CampaignEngineError):
    """Nonce too low, replacement underpriced or similar. Retryable with re-pricing."""

    kind = ErrorKind.NONCE_CONFLICT


class ConfirmationTimeoutError(CampaignEngineError):
    """No receipt within the wait bound. The transaction may still land."""

    kind = ErrorKind.CONFIRMATION_TIMEOUT


class IdentifierUnresolvedError(CampaignEngineError):
    """Transaction confirmed but the campaign id could not be determined."""

    kind = ErrorKind.IDENTIFIER_UNRESOLVED

    def __init__(self, message: str, tx_hash: Optional[str] = None, block_number: Optional[int] = None):
        super().__init__(message, tx_hash=tx_hash)
        self.block_number = block_number


class FatalChainError(CampaignEngineError):
    """Anything not worth retrying: reverts, invalid input, unknown RPC errors."""

    kind = ErrorKind.FATAL


class TransactionRevertedError(FatalChainError):
    """The transaction (or its gas estimation) reverted."""


class InvalidRequestError(FatalChainError):
    """The submission row cannot be turned into a valid creation request."""


class RetriesExhaustedError(FatalChainError):
    """All submission attempts failed with retryable errors."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: Optional[CampaignEngineError] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message, tx_hash=tx_hash)
        self.attempts = attempts
        self.last_error = last_error


class MirrorStoreError(Exception):
    """The off-chain mirror store could not be read or written."""


class MirrorNotFoundError(MirrorStoreError):
    """No mirror row exists for the given id."""
