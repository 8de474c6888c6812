#!/usr/bin/env python3
"""Search orchestration for the ZetaFlow resolver.

The orchestrator is the facade consumers talk to. A single search moves
through explicit phases:

    validating -> cache-check -> fetching-primary -> [fetching-fallback]
    -> normalizing -> done | failed

Transaction ids are looked up on the chain first; only a "not found" answer
triggers the single fallback to the cross-chain registry. Every failure is
surfaced as a ``SearchError`` carrying a stable type tag.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from functools import partial
from typing import Any, TypeVar

from .clients import ChainClient, RawChainTransaction, RegistryClient
from .config import MAINNET, TESTNET, NetworkConfig, ResolverConfig
from .errors import NormalizationError, SearchError, SearchErrorType, SourceError, classify_exception
from .history import HistoryItem, SearchHistory
from .input_classifier import classify
from .models import (
    HealthStatus,
    QueryKind,
    SearchMetadata,
    SearchResult,
    SearchResultType,
    TokenMetadata,
    Transaction,
    ValidationResult,
)
from .transaction_normalizer import TransactionNormalizer, read_field, to_int
from .utils.result_cache import CacheKey, ResultCache
from .utils.retry_executor import RetryExecutor, RetryPolicy

# Get logger for this module
logger = logging.getLogger(__name__)

T = TypeVar("T")

EMPTY_QUERY_MESSAGE = "Search query cannot be empty"

ClientFactory = Callable[[NetworkConfig, ResolverConfig], tuple[Any, Any]]


class SearchPhase(str, Enum):
    """Phases of a single search."""
    VALIDATING = "validating"
    CACHE_CHECK = "cache-check"
    FETCHING_PRIMARY = "fetching-primary"
    FETCHING_FALLBACK = "fetching-fallback"
    NORMALIZING = "normalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class NetworkSources:
    """Source clients and normalizer bound to one network."""
    network: NetworkConfig
    chain: Any
    registry: Any
    normalizer: TransactionNormalizer


@dataclass(slots=True)
class LookupState:
    """Progress of one search.

    ``fallback_attempted`` guarantees the cross-chain fallback runs at most
    once per search.
    """
    query: str
    network: str
    use_cache: bool = True
    kind: QueryKind = QueryKind.INVALID
    phase: SearchPhase = SearchPhase.VALIDATING
    operation: str | None = None
    fallback_attempted: bool = False
    service_issues: list[str] = field(default_factory=list)

    def advance(self, phase: SearchPhase) -> None:
        logger.debug(f"Search {self.query!r} on {self.network}: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def context(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "network": self.network,
            "kind": self.kind.value,
            "phase": self.phase.value,
            "operation": self.operation,
            "fallback_attempted": self.fallback_attempted,
        }


def default_client_factory(network: NetworkConfig, config: ResolverConfig) -> tuple[ChainClient, RegistryClient]:
    """Build the real RPC and registry clients for a network."""
    chain = ChainClient(network.rpc_url, network.name)
    registry = RegistryClient(
        network.registry_url,
        network.name,
        timeout=config.registry_retry.timeout or 10.0,
    )
    return chain, registry


class SearchOrchestrator:
    """Resolves queries into normalized search results for one network."""

    def __init__(
        self,
        config: ResolverConfig,
        network: str | None = None,
        *,
        client_factory: ClientFactory = default_client_factory,
        cache: ResultCache | None = None,
        history: SearchHistory | None = None,
        retry_executor: RetryExecutor | None = None,
        clock: Callable[[], float] = time.time,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config: Resolver configuration
            network: Network to search (defaults to ``config.network``)
            client_factory: Builds (chain client, registry client) for a network
            cache: Result cache (a fresh one is created when omitted)
            history: Search history store, possibly shared between networks
            retry_executor: Executor used for every source call
            clock: Wall clock for record timestamps
            timer: Monotonic timer for elapsed-time metadata
        """
        self.config = config
        self._client_factory = client_factory
        self._clock = clock
        self._timer = timer

        self.cache = cache if cache is not None else ResultCache(max_entries=config.cache.max_entries)
        self.history = history if history is not None else SearchHistory(max_items=config.search.history_max_items)
        self.retry = retry_executor if retry_executor is not None else RetryExecutor(config.chain_retry)

        # Bumped on network switch so searches started earlier never write to the cache
        self._generation = 0
        self._in_flight: dict[CacheKey, asyncio.Future] = {}

        self.network: str = network or config.network
        self._sources = self._build_sources(config.network_config(self.network))

    def _build_sources(self, network: NetworkConfig) -> NetworkSources:
        chain, registry = self._client_factory(network, self.config)
        return NetworkSources(
            network=network,
            chain=chain,
            registry=registry,
            normalizer=TransactionNormalizer(network.name, network.chain_id, clock=self._clock),
        )

    def validate_search_input(self, query: str) -> ValidationResult:
        """Classify a query without any network access."""
        classification = classify(query)
        if classification.valid:
            return ValidationResult(is_valid=True, kind=classification.kind)
        return ValidationResult(
            is_valid=False,
            kind=QueryKind.INVALID,
            error=classification.error or EMPTY_QUERY_MESSAGE,
        )

    async def search(self, query: str, use_cache: bool = True, limit: int | None = None) -> SearchResult:
        """
        Resolve a transaction id or address on the current network.

        Args:
            query: Raw query string
            use_cache: Whether a fresh cached result may be returned
            limit: Maximum number of address transactions returned

        Returns:
            Immutable search result

        Raises:
            SearchError: On invalid input, when nothing was found, or when a
                source failed after retries
        """
        started = self._timer()
        state = LookupState(query=(query or "").strip(), network=self.network, use_cache=use_cache)

        classification = classify(query)
        if not classification.valid:
            context = state.context()
            state.advance(SearchPhase.FAILED)
            raise SearchError(
                SearchErrorType.INVALID_INPUT,
                classification.error or EMPTY_QUERY_MESSAGE,
                context=context,
            )
        state.kind = classification.kind

        limit = limit if limit is not None else self.config.search.default_limit
        if limit <= 0:
            context = state.context()
            state.advance(SearchPhase.FAILED)
            raise SearchError(
                SearchErrorType.INVALID_INPUT,
                f"Limit must be positive, got {limit}",
                context=context,
            )

        identifier = classification.normalized
        key_args: tuple[Any, ...] = (state.kind.value, identifier.lower())
        if state.kind is QueryKind.ADDRESS:
            key_args += (limit,)
        key = CacheKey.build("search", self.network, *key_args)

        if use_cache:
            state.advance(SearchPhase.CACHE_CHECK)
            if (cached := self.cache.get(key)) is not None:
                logger.debug(f"Cache hit for search {identifier} on {self.network}")
                # Equivalent queries share an entry; report the query as this caller typed it
                return replace(cached, metadata=replace(cached.metadata, query=state.query))

        if (pending := self._in_flight.get(key)) is not None:
            logger.debug(f"Joining in-flight search for {identifier} on {self.network}")
            shared = await asyncio.shield(pending)
            return replace(shared, metadata=replace(shared.metadata, query=state.query))

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await self._run(state, identifier, key, limit, started)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so a future nobody joined does not log the error
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)

    async def _run(
        self,
        state: LookupState,
        identifier: str,
        key: CacheKey,
        limit: int,
        started: float,
    ) -> SearchResult:
        sources = self._sources
        generation = self._generation

        try:
            match state.kind:
                case QueryKind.TRANSACTION_ID:
                    result_type, transactions = await self._resolve_transaction(state, identifier, sources)
                case QueryKind.ADDRESS:
                    result_type, transactions = await self._resolve_address(state, identifier, limit, sources)
                case _:
                    raise SearchError(
                        SearchErrorType.INVALID_INPUT,
                        f"Unsupported query kind: {state.kind.value}",
                        context=state.context(),
                    )
        except SearchError:
            state.advance(SearchPhase.FAILED)
            raise
        except SourceError as e:
            logger.warning(f"Search for {identifier} on {state.network} failed: {e}")
            raise self._to_search_error(e, state) from e
        except Exception as e:
            logger.error(f"Unexpected error searching {identifier} on {state.network}: {e}", exc_info=True)
            raise self._to_search_error(e, state) from e

        elapsed_ms = (self._timer() - started) * 1000
        result = SearchResult(
            type=result_type,
            transactions=transactions,
            metadata=SearchMetadata(
                query=state.query,
                kind=state.kind,
                total_results=len(transactions),
                elapsed_ms=elapsed_ms,
                network=state.network,
            ),
        )

        if generation == self._generation:
            self.cache.set(key, result, ttl=self.config.cache.search_ttl, ttl_class="search")
        self.history.add_search(
            state.query, state.kind, state.network, len(transactions), successful=len(transactions) > 0
        )

        state.advance(SearchPhase.DONE)
        logger.info(
            f"Search {identifier} on {state.network} returned {len(transactions)} result(s) "
            f"({result_type.value}) in {elapsed_ms:.0f}ms"
        )
        return result

    async def _cached(
        self,
        state: LookupState,
        key: CacheKey,
        compute: Callable[[], Awaitable[T]],
        ttl: float,
        ttl_class: str,
    ) -> T:
        if state.use_cache:
            return await self.cache.get_or_compute(key, compute, ttl=ttl, ttl_class=ttl_class)
        return await compute()

    async def _call(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        operation_name: str,
    ) -> T:
        return await self.retry.execute(operation, policy=policy, operation_name=operation_name)

    async def _resolve_transaction(
        self,
        state: LookupState,
        tx_hash: str,
        sources: NetworkSources,
    ) -> tuple[SearchResultType, tuple[Transaction, ...]]:
        state.advance(SearchPhase.FETCHING_PRIMARY)
        state.operation = "chain.get_transaction"

        try:
            raw_tx, raw_receipt = await self._cached(
                state,
                CacheKey.build("chain.transaction", sources.network.name, tx_hash.lower()),
                partial(self._call, partial(self._fetch_chain_native, tx_hash, sources),
                        self.config.chain_retry, "chain.get_transaction"),
                ttl=self.config.cache.chain_lookup_ttl,
                ttl_class="chain",
            )
        except SourceError as e:
            if not e.is_not_found:
                raise
            logger.debug(f"{tx_hash} not found on chain ({sources.network.name}), trying cross-chain registry")
            return await self._resolve_cross_chain(state, tx_hash, sources)

        state.advance(SearchPhase.NORMALIZING)
        timestamp = await self._block_timestamp(raw_tx, sources)
        transaction = await sources.normalizer.normalize_chain_native(
            raw_tx,
            raw_receipt,
            timestamp=timestamp,
            token_lookup=partial(self._lookup_token, sources),
        )
        return SearchResultType.TRANSACTION, (transaction,)

    @staticmethod
    async def _fetch_chain_native(tx_hash: str, sources: NetworkSources) -> tuple[Any, Any]:
        raw_tx, raw_receipt = await asyncio.gather(
            sources.chain.get_transaction(tx_hash),
            sources.chain.get_transaction_receipt(tx_hash),
        )
        if raw_tx is None:
            raise SourceError(
                SearchErrorType.NOT_FOUND,
                f"Transaction {tx_hash} not found on {sources.network.name}",
            )
        return raw_tx, raw_receipt

    async def _resolve_cross_chain(
        self,
        state: LookupState,
        tx_hash: str,
        sources: NetworkSources,
    ) -> tuple[SearchResultType, tuple[Transaction, ...]]:
        if state.fallback_attempted:
            raise SearchError(
                SearchErrorType.NOT_FOUND,
                self._not_found_message(tx_hash, state),
                context=state.context(),
            )

        state.advance(SearchPhase.FETCHING_FALLBACK)
        state.fallback_attempted = True
        state.operation = "registry.get_by_hash"

        try:
            raw = await self._cached(
                state,
                CacheKey.build("registry.cctx", sources.network.name, tx_hash.lower()),
                partial(self._call, partial(sources.registry.get_by_hash, tx_hash),
                        self.config.registry_retry, "registry.get_by_hash"),
                ttl=self.config.cache.registry_lookup_ttl,
                ttl_class="registry",
            )
        except SourceError as e:
            logger.warning(f"Cross-chain registry lookup failed for {tx_hash}: {e}")
            state.service_issues.append(f"cross-chain registry: {e}")
            raw = None

        if raw is None:
            raise SearchError(
                SearchErrorType.NOT_FOUND,
                self._not_found_message(tx_hash, state),
                context=state.context(),
            )

        state.advance(SearchPhase.NORMALIZING)
        transaction = sources.normalizer.normalize_cross_chain(raw)
        return SearchResultType.CROSS_CHAIN_TRANSACTION, (transaction,)

    async def _resolve_address(
        self,
        state: LookupState,
        address: str,
        limit: int,
        sources: NetworkSources,
    ) -> tuple[SearchResultType, tuple[Transaction, ...]]:
        state.advance(SearchPhase.FETCHING_PRIMARY)
        state.operation = "chain.get_address_transactions"

        raw_items: list[RawChainTransaction] = await self._call(
            partial(
                sources.chain.get_address_transactions,
                address,
                limit=limit,
                scan_blocks=self.config.search.address_scan_blocks,
                batch_size=self.config.search.address_scan_batch_size,
            ),
            self.config.chain_retry,
            "chain.get_address_transactions",
        )

        state.advance(SearchPhase.NORMALIZING)
        token_lookup = partial(self._lookup_token, sources)
        normalized = await asyncio.gather(
            *(self._normalize_address_item(item, sources, token_lookup) for item in raw_items)
        )

        unique: dict[tuple[str, str], Transaction] = {}
        for transaction in normalized:
            if transaction is not None and transaction.unique_key not in unique:
                unique[transaction.unique_key] = transaction

        ordered = sorted(unique.values(), key=lambda t: (t.timestamp, t.block_number), reverse=True)
        return SearchResultType.ADDRESS_TRANSACTIONS, tuple(ordered[:limit])

    @staticmethod
    async def _normalize_address_item(
        item: RawChainTransaction,
        sources: NetworkSources,
        token_lookup: Callable[[str], Awaitable[TokenMetadata | None]],
    ) -> Transaction | None:
        try:
            return await sources.normalizer.normalize_chain_native(
                item.transaction, item.receipt, timestamp=item.timestamp, token_lookup=token_lookup
            )
        except NormalizationError as e:
            logger.warning(f"Skipping malformed address transaction: {e}")
            return None

    async def _block_timestamp(self, raw_tx: Any, sources: NetworkSources) -> int | None:
        """Best-effort block timestamp; None lets the normalizer use the current time."""
        block_number = read_field(raw_tx, "blockNumber")
        if block_number is None:
            return None
        try:
            return await self._call(
                partial(sources.chain.get_block_timestamp, to_int(block_number)),
                self.config.token_retry,
                "chain.get_block_timestamp",
            )
        except SourceError as e:
            logger.warning(f"Could not fetch block timestamp for block {block_number}: {e}")
            return None

    async def _lookup_token(self, sources: NetworkSources, token_address: str) -> TokenMetadata | None:
        """On-chain token metadata through the cache and the token retry policy."""
        return await self.cache.get_or_compute(
            CacheKey.build("token.metadata", sources.network.name, token_address.lower()),
            partial(self._call, partial(sources.chain.get_token_metadata, token_address),
                    self.config.token_retry, "chain.get_token_metadata"),
            ttl=self.config.cache.token_metadata_ttl,
            ttl_class="token-metadata",
        )

    @staticmethod
    def _other_network(network: str) -> str:
        return MAINNET if network == TESTNET else TESTNET

    def _not_found_message(self, tx_hash: str, state: LookupState) -> str:
        lines = [
            f"Transaction {tx_hash} was not found on the {state.network} network.",
            f"- Try switching to the {self._other_network(state.network)} network.",
            "- Recently submitted transactions may not be indexed yet; wait a moment and search again.",
            "- The services may be temporarily unavailable; retry later.",
        ]
        if state.service_issues:
            lines.append(f"Service issues: {'; '.join(state.service_issues)}")
        return "\n".join(lines)

    def _to_search_error(self, error: Exception, state: LookupState) -> SearchError:
        """Map a source failure onto the error taxonomy."""
        error_type = classify_exception(error)
        if isinstance(error, SourceError) and error.operation:
            state.operation = error.operation
        context = state.context()
        state.advance(SearchPhase.FAILED)

        match error_type:
            case SearchErrorType.TIMEOUT:
                message = f"Request timed out while searching the {state.network} network. Please retry."
            case SearchErrorType.RATE_LIMITED:
                message = f"Too many requests to {state.network} services. Please wait a moment and retry."
            case SearchErrorType.NETWORK_ERROR:
                message = f"Unable to reach {state.network} network services: {error}"
            case SearchErrorType.NOT_FOUND:
                message = self._not_found_message(state.query, state)
            case SearchErrorType.INVALID_INPUT:
                message = str(error)
            case _:
                message = f"Search failed: {error}"

        return SearchError(error_type, message, context=context)

    def get_search_history(self, limit: int | None = None) -> list[HistoryItem]:
        """Past searches on the current network, newest first."""
        return self.history.get_history(limit=limit, network=self.network)

    def get_search_suggestions(self, partial_query: str, limit: int = 5) -> list[HistoryItem]:
        return self.history.get_suggestions(partial_query, limit=limit, network=self.network)

    def clear_cache(self) -> int:
        return self.cache.clear()

    def clear_history(self) -> int:
        return self.history.clear_network(self.network)

    async def _probe(self, check: Callable[[], Awaitable[bool]], name: str) -> bool:
        try:
            return await asyncio.wait_for(check(), timeout=self.config.chain_retry.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{name} health check timed out on {self.network}")
            return False

    async def get_health_status(self) -> HealthStatus:
        """Probe both sources of the current network concurrently."""
        sources = self._sources
        rpc_ok, registry_ok = await asyncio.gather(
            self._probe(sources.chain.is_healthy, "RPC"),
            self._probe(sources.registry.is_healthy, "Registry"),
        )
        return HealthStatus(
            network=self.network,
            reachable=rpc_ok or registry_ok,
            rpc_reachable=rpc_ok,
            registry_reachable=registry_ok,
            details={
                "rpc_url": sources.network.rpc_url,
                "registry_url": sources.network.registry_url,
                "rpc": "ok" if rpc_ok else "unreachable",
                "registry": "ok" if registry_ok else "unreachable",
            },
        )

    def switch_network(self, network: str) -> None:
        """
        Point the orchestrator at another network.

        The cache is cleared before this returns, so no lookup issued
        afterwards can see results from the previous network.

        Raises:
            SearchError: If the network is not supported
        """
        if network == self.network:
            return
        if network not in self.config.networks:
            raise SearchError(
                SearchErrorType.INVALID_INPUT,
                f"Unsupported network: {network}. Supported networks: {', '.join(self.config.networks)}",
                context={"network": network},
            )

        removed = self.cache.clear()
        self._generation += 1
        self._sources = self._build_sources(self.config.network_config(network))
        previous, self.network = self.network, network
        logger.info(f"Switched network {previous} -> {network} ({removed} cache entries cleared)")


class OrchestratorRegistry:
    """Explicit per-network factory for orchestrators.

    Instances share one search history; each owns its cache.
    """

    def __init__(
        self,
        config: ResolverConfig | None = None,
        client_factory: ClientFactory = default_client_factory,
        history: SearchHistory | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory
        self._history = history
        self._instances: dict[str, SearchOrchestrator] = {}

    @property
    def config(self) -> ResolverConfig:
        if self._config is None:
            self._config = ResolverConfig.from_env()
        return self._config

    @property
    def history(self) -> SearchHistory:
        if self._history is None:
            self._history = SearchHistory(max_items=self.config.search.history_max_items)
        return self._history

    def get_instance(self, network: str | None = None) -> SearchOrchestrator:
        """Return the orchestrator for ``network``, creating it on first use."""
        name = network or self.config.network
        if name not in self._instances:
            if name not in self.config.networks:
                raise SearchError(
                    SearchErrorType.INVALID_INPUT,
                    f"Unsupported network: {name}",
                    context={"network": name},
                )
            logger.debug(f"Creating orchestrator for {name}")
            self._instances[name] = SearchOrchestrator(
                self.config,
                name,
                client_factory=self._client_factory,
                history=self.history,
            )
        return self._instances[name]

    def reset(self) -> None:
        """Drop every instance (used for test isolation)."""
        self._instances.clear()
