#!/usr/bin/env python3
"""Data models for the ZetaFlow resolver.

This module provides immutable data classes for the canonical transaction
record and the search results built from it. Every source-specific payload
is translated into these types by the transaction normalizer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class QueryKind(str, Enum):
    """Kind of identifier a raw query resolves to."""
    TRANSACTION_ID = "transaction-id"
    ADDRESS = "address"
    INVALID = "invalid"


class TransactionStatus(str, Enum):
    """Unified status, independent of source-specific vocabulary."""
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class TransactionKind(str, Enum):
    CHAIN_NATIVE = "chain-native"
    CROSS_CHAIN = "cross-chain"


class SearchResultType(str, Enum):
    TRANSACTION = "TRANSACTION"
    CROSS_CHAIN_TRANSACTION = "CROSS_CHAIN_TRANSACTION"
    ADDRESS_TRANSACTIONS = "ADDRESS_TRANSACTIONS"


class TokenProvenance(str, Enum):
    """Where a token's symbol, name and decimals came from."""
    KNOWN_REGISTRY = "known-registry"
    ON_CHAIN = "on-chain"
    HEURISTIC = "heuristic"
    PLACEHOLDER = "placeholder"


@dataclass(frozen=True, slots=True)
class TokenMetadata:
    symbol: str
    name: str
    decimals: int


@dataclass(frozen=True, slots=True)
class TokenTransfer:
    """A decoded ERC-20 Transfer log.

    Attributes:
        token_address: Contract that emitted the Transfer event
        sender: Address the tokens left
        recipient: Address the tokens arrived at
        raw_amount: Amount in the token's smallest unit
        amount: Decimal-adjusted amount as a plain decimal string
        symbol: Resolved token symbol
        name: Resolved token name
        decimals: Resolved token decimals
        provenance: How the metadata was resolved
        log_index: Index of the log within the receipt
    """
    token_address: str
    sender: str
    recipient: str
    raw_amount: int
    amount: str
    symbol: str
    name: str
    decimals: int
    provenance: TokenProvenance
    log_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "sender": self.sender,
            "recipient": self.recipient,
            "raw_amount": str(self.raw_amount),
            "amount": self.amount,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "provenance": self.provenance.value,
            "log_index": self.log_index,
        }


@dataclass(frozen=True, slots=True)
class SwapInfo:
    """Swap detected on a chain-native transaction.

    The input leg is the first transfer into the swap contract, the output
    leg the first transfer out of it.
    """
    detected: bool
    method: str
    dex_name: str
    input_token: str | None = None
    input_token_address: str | None = None
    input_amount: str | None = None
    output_token: str | None = None
    output_token_address: str | None = None
    output_amount: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "method": self.method,
            "dex_name": self.dex_name,
            "input_token": self.input_token,
            "input_token_address": self.input_token_address,
            "input_amount": self.input_amount,
            "output_token": self.output_token,
            "output_token_address": self.output_token_address,
            "output_amount": self.output_amount,
        }


@dataclass(frozen=True, slots=True)
class CrossChainDetail:
    """Registry-side details of a cross-chain transfer."""
    source_chain_id: int | None
    destination_chain_id: int | None
    bridge_contract: str
    outbound_hash: str | None
    inbound_hash: str | None
    registry_status: str
    status_message: str = ""
    error_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_chain_id": self.source_chain_id,
            "destination_chain_id": self.destination_chain_id,
            "bridge_contract": self.bridge_contract,
            "outbound_hash": self.outbound_hash,
            "inbound_hash": self.inbound_hash,
            "registry_status": self.registry_status,
            "status_message": self.status_message,
            "error_message": self.error_message,
        }


@dataclass(frozen=True, slots=True)
class ChainNativeDetail:
    """EVM-specific fields kept alongside the canonical record."""
    nonce: int
    transaction_index: int
    gas_limit: int
    effective_gas_price: str
    is_contract_interaction: bool
    input_data: str
    block_hash: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nonce": self.nonce,
            "transaction_index": self.transaction_index,
            "gas_limit": self.gas_limit,
            "effective_gas_price": self.effective_gas_price,
            "is_contract_interaction": self.is_contract_interaction,
            "input_data": self.input_data,
            "block_hash": self.block_hash,
        }


@dataclass(frozen=True, slots=True)
class Transaction:
    """Canonical transaction record.

    Amounts (value, gas used, gas price) are decimal strings in the
    smallest unit. ``hash`` together with ``network`` is the stable
    cache and history key.
    """
    hash: str
    block_number: int
    timestamp: int
    sender: str
    recipient: str
    value: str
    gas_used: str
    gas_price: str
    status: TransactionStatus
    network: str
    kind: TransactionKind
    chain_id: int = 0
    token_transfers: tuple[TokenTransfer, ...] = ()
    swap_info: SwapInfo | None = None
    cross_chain: CrossChainDetail | None = None
    chain_native: ChainNativeDetail | None = None

    @property
    def unique_key(self) -> tuple[str, str]:
        """Network-scoped key used for caching and deduplication."""
        return (self.network, self.hash.lower())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "hash": self.hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "sender": self.sender,
            "recipient": self.recipient,
            "value": self.value,
            "gas_used": self.gas_used,
            "gas_price": self.gas_price,
            "status": self.status.value,
            "network": self.network,
            "kind": self.kind.value,
            "chain_id": self.chain_id,
            "token_transfers": [t.to_dict() for t in self.token_transfers],
            "swap_info": self.swap_info.to_dict() if self.swap_info else None,
            "cross_chain": self.cross_chain.to_dict() if self.cross_chain else None,
            "chain_native": self.chain_native.to_dict() if self.chain_native else None,
        }


@dataclass(frozen=True, slots=True)
class SearchMetadata:
    query: str
    kind: QueryKind
    total_results: int
    elapsed_ms: float
    network: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "kind": self.kind.value,
            "total_results": self.total_results,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "network": self.network,
        }


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Outcome of a single search. Never mutated once returned."""
    type: SearchResultType
    transactions: tuple[Transaction, ...]
    metadata: SearchMetadata

    def __str__(self) -> str:
        return (
            f"SearchResult(type={self.type.value}, "
            f"results={len(self.transactions)}, "
            f"network={self.metadata.network})"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    is_valid: bool
    kind: QueryKind
    error: str | None = None


@dataclass(frozen=True, slots=True)
class HealthStatus:
    """Reachability of the sources behind one network."""
    network: str
    reachable: bool
    rpc_reachable: bool = False
    registry_reachable: bool = False
    details: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "network": self.network,
            "reachable": self.reachable,
            "rpc_reachable": self.rpc_reachable,
            "registry_reachable": self.registry_reachable,
            "details": dict(self.details),
        }
