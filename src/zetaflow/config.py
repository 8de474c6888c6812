#!/usr/bin/env python3
"""Configuration management for the ZetaFlow resolver.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from environment variables with defaults pointing
at the public ZetaChain endpoints.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

from .utils.retry_executor import RetryPolicy

# Get logger for this module
logger = logging.getLogger(__name__)

MAINNET = "mainnet"
TESTNET = "testnet"
SUPPORTED_NETWORKS: tuple[str, ...] = (MAINNET, TESTNET)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Endpoints for one ZetaChain network.

    Attributes:
        name: Network name ('mainnet' or 'testnet')
        chain_id: EVM chain ID
        display_name: Human readable network name
        rpc_url: EVM JSON-RPC endpoint
        registry_url: Base URL of the cross-chain registry REST API
        explorer_url: Block explorer base URL
    """

    name: str
    chain_id: int
    display_name: str
    rpc_url: str
    registry_url: str
    explorer_url: str = ""

    def __post_init__(self) -> None:
        """Validate network configuration."""
        if self.name not in SUPPORTED_NETWORKS:
            raise ValueError(
                f"Unsupported network: {self.name}. "
                f"Supported networks: {', '.join(SUPPORTED_NETWORKS)}"
            )

        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")

        for label, url in (("RPC", self.rpc_url), ("registry", self.registry_url)):
            if not url:
                raise ValueError(f"{self.name} {label} URL is required")
            parsed = urlparse(url)
            if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
                raise ValueError(
                    f"Invalid {label} URL scheme: {parsed.scheme}. "
                    "Expected http, https, ws, or wss"
                )

        # Strip trailing slash so paths can be appended directly
        if self.registry_url.endswith("/"):
            object.__setattr__(self, 'registry_url', self.registry_url.rstrip("/"))

    @classmethod
    def mainnet(cls) -> "NetworkConfig":
        return cls(
            name=MAINNET,
            chain_id=7000,
            display_name="ZetaChain Mainnet",
            rpc_url=os.environ.get(
                "MAINNET_RPC_URL", "https://zetachain-evm.blockpi.network/v1/rpc/public"
            ),
            registry_url=os.environ.get(
                "MAINNET_REGISTRY_URL", "https://zetachain.blockpi.network/lcd/v1/public"
            ),
            explorer_url="https://explorer.zetachain.com",
        )

    @classmethod
    def testnet(cls) -> "NetworkConfig":
        return cls(
            name=TESTNET,
            chain_id=7001,
            display_name="ZetaChain Athens Testnet",
            rpc_url=os.environ.get(
                "TESTNET_RPC_URL", "https://zetachain-athens-evm.blockpi.network/v1/rpc/public"
            ),
            registry_url=os.environ.get(
                "TESTNET_REGISTRY_URL", "https://zetachain-athens.blockpi.network/lcd/v1/public"
            ),
            explorer_url="https://athens.explorer.zetachain.com",
        )


@dataclass(frozen=True, slots=True)
class CacheConfig:
    """TTL per cache class, in seconds, and the entry bound."""
    search_ttl: float = 60.0
    chain_lookup_ttl: float = 30.0
    registry_lookup_ttl: float = 30.0
    token_metadata_ttl: float = 300.0
    max_entries: int = 1000

    def __post_init__(self) -> None:
        """Validate cache configuration."""
        for name in ("search_ttl", "chain_lookup_ttl", "registry_lookup_ttl", "token_metadata_ttl"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.max_entries <= 0:
            raise ValueError(f"Cache max entries must be positive, got {self.max_entries}")
        if self.max_entries > 100_000:
            raise ValueError(f"Cache max entries too high (max 100000), got {self.max_entries}")


@dataclass(frozen=True, slots=True)
class SearchConfig:
    """Limits for searches and the history store."""
    default_limit: int = 50
    address_scan_blocks: int = 100  # recent blocks scanned for address history
    address_scan_batch_size: int = 10
    history_max_items: int = 100

    def __post_init__(self) -> None:
        """Validate search configuration."""
        if self.default_limit <= 0:
            raise ValueError(f"Default limit must be positive, got {self.default_limit}")
        if self.address_scan_blocks <= 0:
            raise ValueError(f"Address scan blocks must be positive, got {self.address_scan_blocks}")
        if self.address_scan_blocks > 1000:
            raise ValueError(f"Address scan blocks too high (max 1000), got {self.address_scan_blocks}")
        if self.address_scan_batch_size <= 0:
            raise ValueError(
                f"Address scan batch size must be positive, got {self.address_scan_batch_size}"
            )
        if self.history_max_items <= 0:
            raise ValueError(f"History max items must be positive, got {self.history_max_items}")


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Main configuration for the resolver.

    Attributes:
        network: Initially selected network
        networks: Endpoint configuration per network name
        chain_retry: Retry policy for chain-native RPC calls
        registry_retry: Retry policy for cross-chain registry calls
        token_retry: Retry policy for token metadata calls
        cache: Cache TTLs and bound
        search: Search and history limits
    """

    network: str = TESTNET
    networks: dict[str, NetworkConfig] = field(
        default_factory=lambda: {MAINNET: NetworkConfig.mainnet(), TESTNET: NetworkConfig.testnet()}
    )
    chain_retry: RetryPolicy = field(default_factory=RetryPolicy)
    registry_retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_retries=1, base_delay=0.3, max_delay=5.0)
    )
    token_retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_retries=1, base_delay=0.3, max_delay=2.0, timeout=5.0)
    )
    cache: CacheConfig = field(default_factory=CacheConfig)
    search: SearchConfig = field(default_factory=SearchConfig)

    ENV_VARIABLES: ClassVar[tuple[tuple[str, str], ...]] = (
        ("NETWORK", "Initial network, mainnet or testnet (default: testnet)"),
        ("MAINNET_RPC_URL", "EVM RPC endpoint for mainnet"),
        ("TESTNET_RPC_URL", "EVM RPC endpoint for testnet"),
        ("MAINNET_REGISTRY_URL", "Cross-chain registry API for mainnet"),
        ("TESTNET_REGISTRY_URL", "Cross-chain registry API for testnet"),
        ("MAX_RETRIES", "Retry attempts for chain-native calls (default: 3)"),
        ("REQUEST_TIMEOUT", "Per-request timeout in seconds (default: 10)"),
        ("SEARCH_CACHE_TTL", "Search result cache TTL in seconds (default: 60)"),
        ("TOKEN_METADATA_TTL", "Token metadata cache TTL in seconds (default: 300)"),
        ("CACHE_MAX_ENTRIES", "Maximum cache entries (default: 1000)"),
    )

    def __post_init__(self) -> None:
        """Validate resolver configuration."""
        if self.network not in SUPPORTED_NETWORKS:
            raise ValueError(
                f"Unsupported network: {self.network} (NETWORK). "
                f"Supported networks: {', '.join(SUPPORTED_NETWORKS)}"
            )
        missing = [name for name in SUPPORTED_NETWORKS if name not in self.networks]
        if missing:
            raise ValueError(f"Missing endpoint configuration for: {', '.join(missing)}")

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """Load configuration from environment variables.

        Returns:
            ResolverConfig instance with loaded values

        Raises:
            ValueError: If an environment variable holds an invalid value
        """
        network = os.environ.get("NETWORK", TESTNET).strip().lower()

        networks = {MAINNET: NetworkConfig.mainnet(), TESTNET: NetworkConfig.testnet()}

        max_retries = _env_int("MAX_RETRIES", 3)
        request_timeout = _env_float("REQUEST_TIMEOUT", 10.0)
        if max_retries < 0 or max_retries > 10:
            raise ValueError(f"MAX_RETRIES must be between 0 and 10, got {max_retries}")
        if request_timeout <= 0 or request_timeout > 120:
            raise ValueError(f"REQUEST_TIMEOUT must be between 0 and 120 seconds, got {request_timeout}")

        chain_retry = RetryPolicy(max_retries=max_retries, timeout=request_timeout)
        registry_retry = RetryPolicy(
            max_retries=min(max_retries, 1), base_delay=0.3, max_delay=5.0, timeout=request_timeout
        )
        token_retry = RetryPolicy(
            max_retries=min(max_retries, 1), base_delay=0.3, max_delay=2.0,
            timeout=min(request_timeout, 5.0),
        )

        cache = CacheConfig(
            search_ttl=_env_float("SEARCH_CACHE_TTL", 60.0),
            token_metadata_ttl=_env_float("TOKEN_METADATA_TTL", 300.0),
            max_entries=_env_int("CACHE_MAX_ENTRIES", 1000),
        )

        return cls(
            network=network,
            networks=networks,
            chain_retry=chain_retry,
            registry_retry=registry_retry,
            token_retry=token_retry,
            cache=cache,
            search=SearchConfig(),
        )

    def network_config(self, network: str | None = None) -> NetworkConfig:
        """Return endpoint configuration for a network (default: the selected one)."""
        name = network or self.network
        try:
            return self.networks[name]
        except KeyError:
            raise ValueError(
                f"Unsupported network: {name}. Supported networks: {', '.join(SUPPORTED_NETWORKS)}"
            ) from None

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("ZetaFlow Resolver Configuration")
        logger.info("=" * 60)

        logger.info(f"Selected Network: {self.network}")
        for name in SUPPORTED_NETWORKS:
            net = self.networks[name]
            logger.info(f"{net.display_name} (chain {net.chain_id}):")
            logger.info(f"  RPC URL: {net.rpc_url}")
            logger.info(f"  Registry URL: {net.registry_url}")

        logger.info("Retry Policies:")
        for label, policy in (
            ("Chain", self.chain_retry),
            ("Registry", self.registry_retry),
            ("Token", self.token_retry),
        ):
            logger.info(
                f"  {label}: {policy.max_retries} retries, "
                f"{policy.base_delay}s-{policy.max_delay}s backoff, timeout {policy.timeout}s"
            )

        logger.info("Cache Settings:")
        logger.info(f"  Search TTL: {self.cache.search_ttl} seconds")
        logger.info(f"  Token Metadata TTL: {self.cache.token_metadata_ttl} seconds")
        logger.info(f"  Max Entries: {self.cache.max_entries}")

        logger.info("=" * 60)
