"""
Chain-native source client for ZetaChain's EVM JSON-RPC.

Wraps web3's async provider and exposes the lookups the search orchestrator
needs. "Not found" is reported as ``None``; every other failure is raised as
a ``SourceError`` tagged with the error taxonomy.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    BlockNotFound,
    ContractLogicError,
    TransactionNotFound,
)

from ..errors import SearchErrorType, SourceError, classify_exception, status_of
from ..input_classifier import TX_HASH_PATTERN
from ..models import TokenMetadata
from ..token_registry import ERC20_METADATA_ABI

logger = logging.getLogger(__name__)


def _hash_hex(value: Any) -> str:
    return value if isinstance(value, str) else Web3.to_hex(value)


@dataclass(frozen=True, slots=True)
class RawChainTransaction:
    """A raw transaction paired with its receipt and block timestamp."""
    transaction: Any
    receipt: Any
    timestamp: int | None


class ChainClient:
    """
    Client for chain-native transaction lookups.

    A single ``AsyncWeb3`` instance is shared by all calls. Timeouts are
    applied by the caller's retry policy, not by the provider.
    """

    def __init__(self, rpc_url: str, network: str, w3: AsyncWeb3 | None = None) -> None:
        """
        Initialize the client.

        Args:
            rpc_url: EVM JSON-RPC endpoint
            network: Network name, used in logs
            w3: Preconfigured AsyncWeb3 instance (injectable for tests)
        """
        if not rpc_url and w3 is None:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.network = network
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    @staticmethod
    def _source_error(error: Exception, operation: str) -> SourceError:
        if isinstance(error, SourceError):
            return error
        return SourceError(
            classify_exception(error),
            str(error) or type(error).__name__,
            status_code=status_of(error),
            operation=operation,
        )

    @staticmethod
    def _require_hash(tx_hash: str) -> None:
        if not tx_hash or not TX_HASH_PATTERN.match(tx_hash):
            raise SourceError(
                SearchErrorType.INVALID_INPUT,
                f"Invalid transaction hash: {tx_hash}",
            )

    @staticmethod
    def _require_address(address: str) -> str:
        if not address or not Web3.is_address(address):
            raise SourceError(SearchErrorType.INVALID_INPUT, f"Invalid address: {address}")
        return Web3.to_checksum_address(address)

    async def get_transaction(self, tx_hash: str) -> Any | None:
        """Fetch a transaction by hash, or None when the node does not know it."""
        self._require_hash(tx_hash)
        try:
            return await self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            logger.debug(f"Transaction {tx_hash} not found on {self.network}")
            return None
        except Exception as e:
            raise self._source_error(e, "get_transaction") from e

    async def get_transaction_receipt(self, tx_hash: str) -> Any | None:
        """Fetch a receipt by hash, or None while the transaction is pending or unknown."""
        self._require_hash(tx_hash)
        try:
            return await self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise self._source_error(e, "get_transaction_receipt") from e

    async def get_current_block_number(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except Exception as e:
            raise self._source_error(e, "get_current_block_number") from e

    async def get_balance(self, address: str) -> str:
        """Return the account balance in wei as a decimal string."""
        checksummed = self._require_address(address)
        try:
            balance = await self.w3.eth.get_balance(checksummed)
        except Exception as e:
            raise self._source_error(e, "get_balance") from e
        return str(balance)

    async def get_block_timestamp(self, block_number: int) -> int | None:
        """Return a block's timestamp in seconds, or None for an unknown block."""
        try:
            block = await self.w3.eth.get_block(block_number)
        except BlockNotFound:
            return None
        except Exception as e:
            raise self._source_error(e, "get_block_timestamp") from e
        return int(block["timestamp"])

    async def get_token_metadata(self, token_address: str) -> TokenMetadata | None:
        """
        Read ERC-20 symbol, name and decimals concurrently.

        Returns:
            Token metadata, or None when the contract does not implement them
        """
        checksummed = self._require_address(token_address)
        contract = self.w3.eth.contract(address=checksummed, abi=ERC20_METADATA_ABI)

        try:
            symbol, name, decimals = await asyncio.gather(
                contract.functions.symbol().call(),
                contract.functions.name().call(),
                contract.functions.decimals().call(),
            )
        except (ContractLogicError, BadFunctionCallOutput) as e:
            logger.debug(f"Token {checksummed} does not expose ERC-20 metadata: {e}")
            return None
        except Exception as e:
            raise self._source_error(e, "get_token_metadata") from e

        if not symbol:
            return None
        return TokenMetadata(symbol=symbol, name=name or symbol, decimals=int(decimals))

    async def _get_full_block(self, block_number: int) -> Any | None:
        """Fetch a block with its transactions; a block that fails is skipped."""
        try:
            return await self.w3.eth.get_block(block_number, full_transactions=True)
        except BlockNotFound:
            return None
        except Exception as e:
            error = self._source_error(e, "get_block")
            logger.warning(f"Skipping block {block_number} on {self.network}: {error}")
            return None

    async def _get_receipt_or_none(self, tx_hash: str) -> Any | None:
        try:
            return await self.get_transaction_receipt(tx_hash)
        except SourceError as e:
            logger.warning(f"Receipt lookup failed for {tx_hash}: {e}")
            return None

    async def get_address_transactions(
        self,
        address: str,
        limit: int = 50,
        scan_blocks: int = 100,
        batch_size: int = 10,
    ) -> list[RawChainTransaction]:
        """
        Collect recent transactions sent from or to an address.

        Scans the latest ``scan_blocks`` blocks backwards, ``batch_size``
        blocks at a time, and pairs every match with its receipt and block
        timestamp.

        Args:
            address: Account address
            limit: Maximum number of transactions returned
            scan_blocks: Number of recent blocks to scan
            batch_size: Blocks fetched concurrently per batch

        Returns:
            Matching transactions, newest first
        """
        self._require_address(address)
        target = address.lower()
        latest = await self.get_current_block_number()
        oldest = max(latest - scan_blocks + 1, 0)

        matches: list[tuple[Any, int]] = []
        batch_start = latest
        while batch_start >= oldest and len(matches) < limit:
            batch_end = max(batch_start - batch_size + 1, oldest)
            numbers = range(batch_start, batch_end - 1, -1)
            blocks = await asyncio.gather(*(self._get_full_block(n) for n in numbers))

            for block in blocks:
                if block is None:
                    continue
                timestamp = int(block["timestamp"])
                for tx in block["transactions"]:
                    # Hash-only entries carry no sender or recipient
                    if isinstance(tx, (bytes, str)):
                        continue
                    sender = (tx.get("from") or "").lower()
                    recipient = (tx.get("to") or "").lower()
                    if target in (sender, recipient):
                        matches.append((tx, timestamp))

            batch_start = batch_end - 1

        matches = matches[:limit]
        logger.debug(
            f"Found {len(matches)} transaction(s) for {address} in blocks {oldest}-{latest} on {self.network}"
        )

        receipts = await asyncio.gather(
            *(self._get_receipt_or_none(_hash_hex(tx["hash"])) for tx, _ in matches)
        )
        return [
            RawChainTransaction(transaction=tx, receipt=receipt, timestamp=timestamp)
            for (tx, timestamp), receipt in zip(matches, receipts)
        ]

    async def is_healthy(self) -> bool:
        """Return True when the RPC endpoint answers a block number request."""
        try:
            await self.get_current_block_number()
            return True
        except SourceError as e:
            logger.warning(f"RPC health check failed for {self.network}: {e}")
            return False
