#!/usr/bin/env python3
"""Normalization of raw source payloads into canonical transactions.

This module is the single place where source-specific vocabulary is
translated into the canonical ``Transaction`` schema. It handles two kinds
of payload:

- chain-native EVM transactions (plus an optional receipt), either as
  JSON-RPC dictionaries with hex quantities or as web3 ``AttributeDict``
  objects with ints and ``HexBytes``
- cross-chain registry records (CCTX) as returned by the registry REST API

Malformed derived data (a bad log, an unreachable token contract) is absorbed
per item; only a missing identifier is treated as an error.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Any

from web3 import Web3

from .errors import NormalizationError
from .models import (
    ChainNativeDetail,
    CrossChainDetail,
    SwapInfo,
    TokenMetadata,
    TokenProvenance,
    TokenTransfer,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from .token_registry import (
    DEX_CONTRACTS,
    SWAP_METHOD_SIGNATURES,
    TRANSFER_EVENT_TOPIC,
    identify_by_heuristic,
    lookup_known_token,
    placeholder_metadata,
)

# Get logger for this module
logger = logging.getLogger(__name__)

TokenLookup = Callable[[str], Awaitable[TokenMetadata | None]]

_REGISTRY_STATUS_NAMES: dict[str, TransactionStatus] = {
    "outboundmined": TransactionStatus.SUCCESS,
    "success": TransactionStatus.SUCCESS,
    "pendinginbound": TransactionStatus.PENDING,
    "pendingoutbound": TransactionStatus.PENDING,
    "pendingrevert": TransactionStatus.PENDING,
    "pending": TransactionStatus.PENDING,
    "aborted": TransactionStatus.FAILED,
    "reverted": TransactionStatus.FAILED,
    "failed": TransactionStatus.FAILED,
}

_REGISTRY_STATUS_CODES: dict[int, TransactionStatus] = {
    1: TransactionStatus.PENDING,
    2: TransactionStatus.PENDING,
    3: TransactionStatus.SUCCESS,
    4: TransactionStatus.FAILED,
    5: TransactionStatus.FAILED,
}


def map_cross_chain_status(status: Any) -> TransactionStatus:
    """Map a registry status name or code onto the unified status.

    Anything unrecognized maps to pending, never to failed.
    """
    match status:
        case bool():
            return TransactionStatus.PENDING
        case int():
            return _REGISTRY_STATUS_CODES.get(status, TransactionStatus.PENDING)
        case str() if status.strip().isdigit():
            return _REGISTRY_STATUS_CODES.get(int(status.strip()), TransactionStatus.PENDING)
        case str():
            key = status.strip().lower().replace("-", "").replace("_", "")
            return _REGISTRY_STATUS_NAMES.get(key, TransactionStatus.PENDING)
        case _:
            return TransactionStatus.PENDING


def format_token_amount(raw_amount: int, decimals: int) -> str:
    """Scale a raw token amount by its decimals into a plain decimal string."""
    with localcontext() as ctx:
        ctx.prec = 96
        scaled = Decimal(raw_amount).scaleb(-decimals).normalize()
        return format(scaled, "f")


def read_field(raw: Any, name: str, default: Any = None) -> Any:
    """Read a field from either a mapping or an attribute-style object."""
    if raw is None:
        return default
    if isinstance(raw, Mapping):
        return raw.get(name, default)
    return getattr(raw, name, default)


def to_int(value: Any, default: int = 0) -> int:
    """Parse hex quantities, decimal strings, bytes and ints."""
    try:
        match value:
            case None:
                return default
            case bool():
                return int(value)
            case int():
                return value
            case bytes():
                return int.from_bytes(value, byteorder="big") if value else default
            case str() if value.lower().startswith("0x"):
                return int(value, 16) if len(value) > 2 else default
            case str() if value.strip():
                return int(value.strip())
            case _:
                return default
    except ValueError:
        return default


def to_hex(value: Any) -> str | None:
    """Render bytes, ints and hex strings as 0x-prefixed hex."""
    match value:
        case None:
            return None
        case bytes():
            return "0x" + bytes(value).hex()
        case str() if value.startswith("0x"):
            return value
        case str():
            return "0x" + value
        case int():
            return hex(value)
        case _:
            return str(value)


def _mapping(value: Any) -> Mapping:
    # Malformed nested registry objects read as empty
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True, slots=True)
class DecodedTransfer:
    """A Transfer log decoded from a receipt, before metadata resolution."""
    token_address: str
    sender: str
    recipient: str
    raw_amount: int
    log_index: int


class TransactionNormalizer:
    """Converts raw chain-native and cross-chain payloads to ``Transaction``."""

    def __init__(
        self,
        network: str,
        chain_id: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the normalizer for one network.

        Args:
            network: Network name stamped on every record
            chain_id: Chain ID used when the payload does not carry one
            clock: Wall clock used when no timestamp is available
        """
        self.network = network
        self.chain_id = chain_id
        self._clock = clock

    async def normalize_chain_native(
        self,
        raw_tx: Any,
        raw_receipt: Any = None,
        timestamp: int | None = None,
        token_lookup: TokenLookup | None = None,
    ) -> Transaction:
        """
        Normalize a chain-native transaction and its optional receipt.

        Args:
            raw_tx: Raw transaction payload
            raw_receipt: Raw receipt payload, None while the transaction is pending
            timestamp: Block timestamp, when known
            token_lookup: Async on-chain token metadata lookup

        Returns:
            Canonical transaction record

        Raises:
            NormalizationError: If the payload carries no transaction hash
        """
        tx_hash = to_hex(read_field(raw_tx, "hash"))
        if not tx_hash:
            raise NormalizationError("Chain-native transaction payload has no hash")

        input_data = to_hex(read_field(raw_tx, "input")) or "0x"
        recipient = read_field(raw_tx, "to") or read_field(raw_receipt, "contractAddress") or ""
        gas_price = to_int(read_field(raw_tx, "gasPrice"))

        decoded = self.parse_token_transfers(read_field(raw_receipt, "logs") or [])
        transfers = await asyncio.gather(
            *(self._resolve_transfer(transfer, token_lookup) for transfer in decoded)
        )
        swap_info = self.detect_swap(recipient, input_data, transfers)

        if raw_receipt is not None:
            gas_used = to_int(read_field(raw_receipt, "gasUsed"))
        else:
            gas_used = to_int(read_field(raw_tx, "gas"))

        chain_native = ChainNativeDetail(
            nonce=to_int(read_field(raw_tx, "nonce")),
            transaction_index=to_int(read_field(raw_tx, "transactionIndex")),
            gas_limit=to_int(read_field(raw_tx, "gas")),
            effective_gas_price=str(to_int(read_field(raw_receipt, "effectiveGasPrice"), gas_price)),
            is_contract_interaction=len(input_data) > 2,
            input_data=input_data,
            block_hash=to_hex(read_field(raw_tx, "blockHash")),
        )

        return Transaction(
            hash=tx_hash,
            block_number=to_int(read_field(raw_tx, "blockNumber")),
            timestamp=timestamp if timestamp is not None else int(self._clock()),
            sender=read_field(raw_tx, "from") or "",
            recipient=recipient,
            value=str(to_int(read_field(raw_tx, "value"))),
            gas_used=str(gas_used),
            gas_price=str(gas_price),
            status=self.chain_native_status(raw_receipt),
            network=self.network,
            kind=TransactionKind.CHAIN_NATIVE,
            chain_id=to_int(read_field(raw_tx, "chainId"), self.chain_id) or self.chain_id,
            token_transfers=tuple(transfers),
            swap_info=swap_info,
            chain_native=chain_native,
        )

    @staticmethod
    def chain_native_status(raw_receipt: Any) -> TransactionStatus:
        """No receipt yet means pending; otherwise the receipt status decides."""
        if raw_receipt is None:
            return TransactionStatus.PENDING

        status = read_field(raw_receipt, "status")
        if status is None:
            return TransactionStatus.PENDING
        return TransactionStatus.SUCCESS if to_int(status) == 1 else TransactionStatus.FAILED

    def parse_token_transfers(self, logs: Any) -> list[DecodedTransfer]:
        """
        Decode ERC-20 Transfer events from receipt logs.

        Indexed sender and recipient are read from the padded topics, the
        amount from the log data. Malformed logs are skipped.
        """
        transfers: list[DecodedTransfer] = []

        for log in logs:
            try:
                topics = [to_hex(topic) for topic in (read_field(log, "topics") or [])]
                if len(topics) < 3 or (topics[0] or "").lower() != TRANSFER_EVENT_TOPIC:
                    continue

                data = to_hex(read_field(log, "data")) or "0x"
                transfers.append(DecodedTransfer(
                    token_address=Web3.to_checksum_address(read_field(log, "address")),
                    sender=Web3.to_checksum_address("0x" + topics[1][-40:]),
                    recipient=Web3.to_checksum_address("0x" + topics[2][-40:]),
                    raw_amount=int(data, 16) if len(data) > 2 else 0,
                    log_index=to_int(read_field(log, "logIndex")),
                ))
            except Exception as e:
                logger.warning(f"Skipping malformed transfer log: {e}")

        return transfers

    async def resolve_token_metadata(
        self,
        token_address: str,
        token_lookup: TokenLookup | None = None,
    ) -> tuple[TokenMetadata, TokenProvenance]:
        """
        Resolve token metadata through the known table, the chain, then heuristics.

        Falls back to a placeholder derived from the address with 18 decimals.
        """
        if known := lookup_known_token(token_address):
            return known, TokenProvenance.KNOWN_REGISTRY

        if token_lookup is not None:
            try:
                on_chain = await token_lookup(token_address)
            except Exception as e:
                logger.warning(f"On-chain metadata lookup failed for {token_address}: {e}")
                on_chain = None
            if on_chain and on_chain.symbol:
                return on_chain, TokenProvenance.ON_CHAIN

        if guessed := identify_by_heuristic(token_address):
            return guessed, TokenProvenance.HEURISTIC

        return placeholder_metadata(token_address), TokenProvenance.PLACEHOLDER

    async def _resolve_transfer(
        self,
        transfer: DecodedTransfer,
        token_lookup: TokenLookup | None,
    ) -> TokenTransfer:
        metadata, provenance = await self.resolve_token_metadata(transfer.token_address, token_lookup)
        return TokenTransfer(
            token_address=transfer.token_address,
            sender=transfer.sender,
            recipient=transfer.recipient,
            raw_amount=transfer.raw_amount,
            amount=format_token_amount(transfer.raw_amount, metadata.decimals),
            symbol=metadata.symbol,
            name=metadata.name,
            decimals=metadata.decimals,
            provenance=provenance,
            log_index=transfer.log_index,
        )

    @staticmethod
    def detect_swap(
        to: str | None,
        input_data: str | None,
        transfers: list[TokenTransfer] | tuple[TokenTransfer, ...],
    ) -> SwapInfo | None:
        """
        Detect a swap by method signature or DEX contract.

        The input leg is the first transfer into the called contract and the
        output leg the first transfer out of it.
        """
        if not to:
            return None

        contract = to.lower()
        method = None
        if input_data and len(input_data) >= 10:
            method = SWAP_METHOD_SIGNATURES.get(input_data[:10].lower())
        dex_name = DEX_CONTRACTS.get(contract)

        if not (method or dex_name) or len(transfers) < 2:
            return None

        inbound = next((t for t in transfers if t.recipient.lower() == contract), None)
        outbound = next((t for t in transfers if t.sender.lower() == contract), None)

        return SwapInfo(
            detected=True,
            method=method or "swap",
            dex_name=dex_name or "Unknown DEX",
            input_token=inbound.symbol if inbound else None,
            input_token_address=inbound.token_address if inbound else None,
            input_amount=inbound.amount if inbound else None,
            output_token=outbound.symbol if outbound else None,
            output_token_address=outbound.token_address if outbound else None,
            output_amount=outbound.amount if outbound else None,
        )

    def normalize_cross_chain(self, raw: Any) -> Transaction:
        """
        Normalize a cross-chain registry record.

        Accepts the registry envelope (``{"CrossChainTx": {...}}``) or the
        bare record.

        Raises:
            NormalizationError: If the record has no identifier
        """
        if not isinstance(raw, Mapping):
            raise NormalizationError(f"Cross-chain payload must be a mapping, got {type(raw).__name__}")

        cctx = raw.get("CrossChainTx") or raw.get("cctx") or raw
        if not isinstance(cctx, Mapping):
            raise NormalizationError(f"Cross-chain record must be a mapping, got {type(cctx).__name__}")
        identifier = cctx.get("index")
        if not identifier:
            raise NormalizationError("Cross-chain record has no index")

        inbound = _mapping(cctx.get("inbound_params") or cctx.get("inbound_tx_params"))
        outbound_list = cctx.get("outbound_params") or cctx.get("outbound_tx_params")
        outbound = _mapping(outbound_list[0]) if isinstance(outbound_list, (list, tuple)) and outbound_list else {}
        cctx_status = _mapping(cctx.get("cctx_status"))

        registry_status = cctx_status.get("status")
        status = map_cross_chain_status(registry_status)
        source_chain_id = to_int(inbound.get("sender_chain_id"), 0) or None
        destination_chain_id = to_int(
            outbound.get("receiver_chainId", outbound.get("receiver_chain_id")), 0
        ) or None

        detail = CrossChainDetail(
            source_chain_id=source_chain_id,
            destination_chain_id=destination_chain_id,
            bridge_contract=inbound.get("asset") or inbound.get("coin_type") or "unknown",
            outbound_hash=outbound.get("hash") or outbound.get("outbound_tx_hash") or None,
            inbound_hash=inbound.get("observed_hash") or None,
            registry_status=str(registry_status) if registry_status is not None else "",
            status_message=cctx_status.get("status_message") or "",
            error_message=cctx_status.get("error_message") or "",
        )

        timestamp = to_int(cctx_status.get("created_timestamp"), 0) or int(self._clock())

        return Transaction(
            hash=to_hex(identifier),
            block_number=to_int(inbound.get("observed_external_height")),
            timestamp=timestamp,
            sender=inbound.get("sender") or cctx.get("creator") or "unknown",
            recipient=outbound.get("receiver") or "unknown",
            value=str(to_int(inbound.get("amount"))),
            gas_used=str(to_int(outbound.get("gas_used") or inbound.get("gas_limit"))),
            gas_price=str(to_int(outbound.get("gas_price") or inbound.get("gas_price"))),
            status=status,
            network=self.network,
            kind=TransactionKind.CROSS_CHAIN,
            chain_id=source_chain_id or 0,
            cross_chain=detail,
        )
