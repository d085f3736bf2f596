"""
Constants used throughout the campaign engine.

All project constants are centralized here for easy maintenance and configuration.
"""

# Chain selectors and their numeric chain ids
CHAIN_BLOCKDAG = "blockdag"
CHAIN_SEPOLIA = "sepolia"
CHAIN_ETHEREUM = "ethereum"

CHAIN_IDS = {
    CHAIN_BLOCKDAG: 1043,
    CHAIN_SEPOLIA: 11155111,
    CHAIN_ETHEREUM: 1,
}

DEFAULT_CHAIN = CHAIN_BLOCKDAG

# Contract generation deployed on each chain unless overridden by env
DEFAULT_CONTRACT_VERSIONS = {
    CHAIN_BLOCKDAG: "v6",
    CHAIN_SEPOLIA: "v8",
    CHAIN_ETHEREUM: "v8",
}

# Native/USD rates (USD value of one native coin). Static configuration, not oracle data.
DEFAULT_NATIVE_USD_RATES = {
    CHAIN_BLOCKDAG: 0.05,
    CHAIN_SEPOLIA: 3100.0,
    CHAIN_ETHEREUM: 3100.0,
}

NATIVE_DECIMALS = 18

# Retry policy defaults
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_CONFIRMATION_TIMEOUT = 120.0  # seconds
DEFAULT_GAS_BUMP_PERCENT = 20  # added per attempt on top of 100%
DEFAULT_BACKOFF_SECONDS = 1.0  # multiplied by attempt index
DEFAULT_ALREADY_KNOWN_DELAY = 5.0  # seconds before probing after "already known"
DEFAULT_POLL_INTERVAL = 2.0  # seconds between receipt / probe polls
DEFAULT_RPC_TIMEOUT = 30  # seconds per JSON-RPC request

FALLBACK_GAS_PRICE_WEI = 1_000_000_000  # 1 gwei

# Campaign request defaults
DEFAULT_CATEGORY = "general"
DEFAULT_GOAL_USD = 100
MIN_DEFAULT_EDITIONS = 100
DEFAULT_PRICE_USD = 0.01
DEFAULT_FEE_RATE_BPS = 100  # 1% nonprofit fee
DEFAULT_IMMEDIATE_PAYOUT = False

# Off-chain mirror store
DEFAULT_MIRROR_TABLE = "submissions"
DEFAULT_STORE_TIMEOUT = 10  # seconds

# Environment variable names
ENV_SUPABASE_URL = "SUPABASE_URL"
ENV_SUPABASE_KEY = "SUPABASE_SERVICE_ROLE_KEY"
ENV_RELAYER_KEY = "RELAYER_PRIVATE_KEY"
ENV_TARGET_CHAIN = "TARGET_CHAIN"
