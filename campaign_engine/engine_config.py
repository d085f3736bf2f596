"""
Engine configuration.

Following KISS principle - keep configuration simple and centralized.
"""
import os

from campaign_engine.constants import (
    DEFAULT_ALREADY_KNOWN_DELAY,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_GAS_BUMP_PERCENT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
)


class EngineConfig:
    """Simple configuration container for the creation engine's retry policy."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        gas_bump_percent: int = DEFAULT_GAS_BUMP_PERCENT,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        already_known_delay: float = DEFAULT_ALREADY_KNOWN_DELAY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        verify_resolved_campaign: bool = True,
    ):
        """
        Initialize engine configuration.

        Args:
            max_attempts: Upper bound on submission attempts per request
            confirmation_timeout: Seconds to wait for a receipt before giving up
            gas_bump_percent: Percentage added to the base gas price per attempt
            backoff_seconds: Linear backoff unit between retryable failures
            already_known_delay: Pause before probing after an "already known" reply
            poll_interval: Seconds between receipt and probe polls
            verify_resolved_campaign: Re-read the resolved campaign and compare content ids
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if gas_bump_percent <= 0:
            raise ValueError(f"gas_bump_percent must be positive, got {gas_bump_percent}")
        self.max_attempts = max_attempts
        self.confirmation_timeout = confirmation_timeout
        self.gas_bump_percent = gas_bump_percent
        self.backoff_seconds = backoff_seconds
        self.already_known_delay = already_known_delay
        self.poll_interval = poll_interval
        self.verify_resolved_campaign = verify_resolved_campaign

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build configuration from ENGINE_* environment variables, falling back to defaults."""
        return cls(
            max_attempts=int(os.getenv("ENGINE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
            confirmation_timeout=float(os.getenv("ENGINE_CONFIRMATION_TIMEOUT", DEFAULT_CONFIRMATION_TIMEOUT)),
            gas_bump_percent=int(os.getenv("ENGINE_GAS_BUMP_PERCENT", DEFAULT_GAS_BUMP_PERCENT)),
            backoff_seconds=float(os.getenv("ENGINE_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS)),
            already_known_delay=float(os.getenv("ENGINE_ALREADY_KNOWN_DELAY", DEFAULT_ALREADY_KNOWN_DELAY)),
            poll_interval=float(os.getenv("ENGINE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)),
            verify_resolved_campaign=os.getenv("ENGINE_VERIFY_RESOLVED", "true").lower() != "false",
        )
