#!/usr/bin/env python3
"""Unit tests for the TransactionNormalizer module."""

from unittest.mock import AsyncMock

import pytest
from web3.datastructures import AttributeDict

from zetaflow.errors import NormalizationError
from zetaflow.models import (
    TokenMetadata,
    TokenProvenance,
    TransactionKind,
    TransactionStatus,
)
from zetaflow.token_registry import TRANSFER_EVENT_TOPIC
from zetaflow.transaction_normalizer import (
    TransactionNormalizer,
    format_token_amount,
    map_cross_chain_status,
)

DEX_ROUTER = "0x2ca7d64a7efe2d62a725e2b35cf7230d6677ffee"
USER = "0x1234567890abcdef1234567890abcdef12345678"
USDC_ETH = "0x5f0b1a82749cb4e2278ec87f8bf6b618dc71a8bf"
ETH_ETH = "0xd97b1de3619ed2c6beb3860147e30ca8a7dc9891"
UNKNOWN_TOKEN = "0x9999999999999999999999999999999999999999"
TX_HASH = "0x" + "ab" * 32


def _topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def _transfer_log(token: str, sender: str, recipient: str, amount: int, index: int = 0) -> dict:
    return {
        "address": token,
        "topics": [TRANSFER_EVENT_TOPIC, _topic(sender), _topic(recipient)],
        "data": hex(amount),
        "logIndex": hex(index),
    }


@pytest.fixture
def normalizer():
    """Create a normalizer for testnet with a fixed clock."""
    return TransactionNormalizer("testnet", 7001, clock=lambda: 1_700_000_000)


@pytest.fixture
def raw_tx():
    """JSON-RPC style transaction with hex quantities."""
    return {
        "hash": TX_HASH,
        "blockNumber": "0x10",
        "blockHash": "0x" + "cd" * 32,
        "from": USER,
        "to": DEX_ROUTER,
        "value": "0xde0b6b3a7640000",
        "gas": "0x5208",
        "gasPrice": "0x3b9aca00",
        "nonce": "0x7",
        "transactionIndex": "0x1",
        "input": "0x38ed1739" + "00" * 32,
        "chainId": "0x1b59",
    }


@pytest.fixture
def swap_receipt():
    """Receipt with one transfer into and one transfer out of the DEX router."""
    return {
        "status": "0x1",
        "gasUsed": "0x4e20",
        "effectiveGasPrice": "0x3b9aca00",
        "logs": [
            _transfer_log(USDC_ETH, USER, DEX_ROUTER, 1_500_000, 0),
            _transfer_log(ETH_ETH, DEX_ROUTER, USER, 2 * 10**18, 1),
        ],
    }


class TestChainNative:
    """Tests for the chain-native normalization path."""

    @pytest.mark.asyncio
    async def test_basic_fields(self, normalizer, raw_tx, swap_receipt):
        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt, timestamp=1_699_999_000)

        assert tx.hash == TX_HASH
        assert tx.block_number == 16
        assert tx.timestamp == 1_699_999_000
        assert tx.value == str(10**18)
        assert tx.gas_used == "20000"
        assert tx.gas_price == "1000000000"
        assert tx.network == "testnet"
        assert tx.kind == TransactionKind.CHAIN_NATIVE
        assert tx.chain_id == 7001
        assert tx.chain_native.nonce == 7
        assert tx.chain_native.is_contract_interaction

    @pytest.mark.asyncio
    async def test_status_from_receipt(self, normalizer, raw_tx):
        success = await normalizer.normalize_chain_native(raw_tx, {"status": 1, "logs": []})
        failed = await normalizer.normalize_chain_native(raw_tx, {"status": "0x0", "logs": []})
        pending = await normalizer.normalize_chain_native(raw_tx, None)

        assert success.status == TransactionStatus.SUCCESS
        assert failed.status == TransactionStatus.FAILED
        assert pending.status == TransactionStatus.PENDING
        # Without a receipt the clock supplies the timestamp
        assert pending.timestamp == 1_700_000_000

    @pytest.mark.asyncio
    async def test_decodes_known_token_transfers(self, normalizer, raw_tx, swap_receipt):
        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        assert len(tx.token_transfers) == 2
        usdc, eth = tx.token_transfers
        assert usdc.symbol == "USDC.ETH"
        assert usdc.decimals == 6
        assert usdc.amount == "1.5"
        assert usdc.raw_amount == 1_500_000
        assert usdc.provenance == TokenProvenance.KNOWN_REGISTRY
        assert usdc.sender.lower() == USER
        assert usdc.recipient.lower() == DEX_ROUTER
        assert eth.amount == "2"
        assert eth.log_index == 1

    @pytest.mark.asyncio
    async def test_swap_detected_on_dex_contract(self, normalizer, raw_tx, swap_receipt):
        """Both legs are paired relative to the DEX contract."""
        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        swap = tx.swap_info
        assert swap is not None
        assert swap.detected
        assert swap.method == "swapExactTokensForTokens"
        assert swap.dex_name == "ZetaSwap"
        assert swap.input_token == "USDC.ETH"
        assert swap.input_amount == "1.5"
        assert swap.output_token == "ETH.ETH"
        assert swap.output_amount == "2"

    @pytest.mark.asyncio
    async def test_swap_detected_by_dex_address_alone(self, normalizer, raw_tx, swap_receipt):
        raw_tx["input"] = "0x"

        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        assert tx.swap_info.detected
        assert tx.swap_info.method == "swap"
        assert tx.swap_info.input_token == "USDC.ETH"
        assert tx.swap_info.output_token == "ETH.ETH"

    @pytest.mark.asyncio
    async def test_no_swap_with_single_transfer(self, normalizer, raw_tx, swap_receipt):
        swap_receipt["logs"] = swap_receipt["logs"][:1]

        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        assert tx.swap_info is None

    @pytest.mark.asyncio
    async def test_no_swap_for_unknown_contract(self, normalizer, raw_tx, swap_receipt):
        raw_tx["to"] = UNKNOWN_TOKEN
        raw_tx["input"] = "0xa9059cbb" + "00" * 64

        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        assert tx.swap_info is None

    @pytest.mark.asyncio
    async def test_malformed_log_is_skipped(self, normalizer, raw_tx, swap_receipt):
        swap_receipt["logs"].insert(0, {
            "address": USDC_ETH,
            "topics": [TRANSFER_EVENT_TOPIC, _topic(USER), _topic(DEX_ROUTER)],
            "data": "0xnothex",
        })
        swap_receipt["logs"].append({"address": USDC_ETH, "topics": [TRANSFER_EVENT_TOPIC]})

        tx = await normalizer.normalize_chain_native(raw_tx, swap_receipt)

        assert len(tx.token_transfers) == 2
        assert tx.status == TransactionStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_non_transfer_logs_ignored(self, normalizer, raw_tx):
        receipt = {"status": 1, "logs": [{"address": USDC_ETH, "topics": ["0x" + "00" * 32], "data": "0x"}]}

        tx = await normalizer.normalize_chain_native(raw_tx, receipt)

        assert tx.token_transfers == ()

    @pytest.mark.asyncio
    async def test_on_chain_lookup_for_unknown_token(self, normalizer, raw_tx):
        lookup = AsyncMock(return_value=TokenMetadata("FOO", "Foo Token", 8))
        receipt = {"status": 1, "logs": [_transfer_log(UNKNOWN_TOKEN, USER, DEX_ROUTER, 250_000_000)]}

        tx = await normalizer.normalize_chain_native(raw_tx, receipt, token_lookup=lookup)

        transfer = tx.token_transfers[0]
        assert transfer.symbol == "FOO"
        assert transfer.amount == "2.5"
        assert transfer.provenance == TokenProvenance.ON_CHAIN
        lookup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_lookup_falls_back_to_placeholder(self, normalizer, raw_tx):
        lookup = AsyncMock(side_effect=ConnectionError("rpc down"))
        receipt = {"status": 1, "logs": [_transfer_log(UNKNOWN_TOKEN, USER, DEX_ROUTER, 10**18)]}

        tx = await normalizer.normalize_chain_native(raw_tx, receipt, token_lookup=lookup)

        transfer = tx.token_transfers[0]
        assert transfer.symbol == "Token-0x9999"
        assert transfer.decimals == 18
        assert transfer.amount == "1"
        assert transfer.provenance == TokenProvenance.PLACEHOLDER

    @pytest.mark.asyncio
    async def test_known_tokens_skip_lookup(self, normalizer, raw_tx, swap_receipt):
        lookup = AsyncMock()

        await normalizer.normalize_chain_native(raw_tx, swap_receipt, token_lookup=lookup)

        lookup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_heuristic_match(self, normalizer):
        metadata, provenance = await normalizer.resolve_token_metadata("0xweth-wrapper")

        assert metadata.symbol == "WETH"
        assert provenance == TokenProvenance.HEURISTIC

    @pytest.mark.asyncio
    async def test_web3_attribute_dict_payload(self, normalizer):
        """web3 returns ints and bytes instead of hex strings."""
        raw = AttributeDict({
            "hash": bytes.fromhex("ab" * 32),
            "blockNumber": 16,
            "from": USER,
            "to": None,
            "value": 5,
            "gas": 21000,
            "gasPrice": 7,
            "input": b"",
        })
        receipt = AttributeDict({
            "status": 1,
            "gasUsed": 21000,
            "contractAddress": "0x" + "42" * 20,
            "logs": [],
        })

        tx = await normalizer.normalize_chain_native(raw, receipt)

        assert tx.hash == TX_HASH
        assert tx.block_number == 16
        assert tx.recipient == "0x" + "42" * 20
        assert tx.value == "5"
        assert tx.status == TransactionStatus.SUCCESS
        assert not tx.chain_native.is_contract_interaction

    @pytest.mark.asyncio
    async def test_missing_hash_raises(self, normalizer, raw_tx):
        del raw_tx["hash"]

        with pytest.raises(NormalizationError):
            await normalizer.normalize_chain_native(raw_tx, None)


@pytest.fixture
def raw_cctx():
    """Cross-chain registry payload."""
    return {
        "CrossChainTx": {
            "creator": "zeta1creator",
            "index": "0x" + "11" * 32,
            "cctx_status": {
                "status": "OutboundMined",
                "status_message": "Remote omnichain contract call completed",
                "created_timestamp": "1699990000",
            },
            "inbound_params": {
                "sender": USER,
                "sender_chain_id": "11155111",
                "amount": "1000000",
                "asset": USDC_ETH,
                "observed_hash": "0x" + "22" * 32,
                "observed_external_height": "4500000",
            },
            "outbound_params": [
                {
                    "receiver": "0x" + "33" * 20,
                    "receiver_chainId": "7001",
                    "hash": "0x" + "44" * 32,
                    "gas_used": "21000",
                    "gas_price": "100",
                }
            ],
        }
    }


class TestCrossChain:
    """Tests for the cross-chain normalization path."""

    def test_fields(self, normalizer, raw_cctx):
        tx = normalizer.normalize_cross_chain(raw_cctx)

        assert tx.hash == "0x" + "11" * 32
        assert tx.kind == TransactionKind.CROSS_CHAIN
        assert tx.status == TransactionStatus.SUCCESS
        assert tx.sender == USER
        assert tx.recipient == "0x" + "33" * 20
        assert tx.value == "1000000"
        assert tx.timestamp == 1699990000
        assert tx.block_number == 4500000
        assert tx.cross_chain.source_chain_id == 11155111
        assert tx.cross_chain.destination_chain_id == 7001
        assert tx.cross_chain.outbound_hash == "0x" + "44" * 32
        assert tx.cross_chain.inbound_hash == "0x" + "22" * 32
        assert tx.cross_chain.bridge_contract == USDC_ETH
        assert tx.cross_chain.status_message.startswith("Remote")

    def test_bare_record_and_legacy_field_names(self, normalizer):
        raw = {
            "index": "0x" + "55" * 32,
            "cctx_status": {"status": "PendingOutbound"},
            "inbound_tx_params": {"sender": USER, "amount": "1"},
            "outbound_tx_params": [{"receiver": USER}],
        }

        tx = normalizer.normalize_cross_chain(raw)

        assert tx.status == TransactionStatus.PENDING
        assert tx.recipient == USER
        assert tx.timestamp == 1_700_000_000

    def test_missing_optional_parts_do_not_raise(self, normalizer):
        tx = normalizer.normalize_cross_chain({"index": "0x" + "66" * 32})

        assert tx.status == TransactionStatus.PENDING
        assert tx.sender == "unknown"
        assert tx.cross_chain.outbound_hash is None

    @pytest.mark.parametrize("field, garbage", [
        ("inbound_params", "garbage"),
        ("inbound_params", ["sender"]),
        ("outbound_params", "garbage"),
        ("outbound_params", {"receiver": USER}),
        ("outbound_params", ["garbage"]),
        ("cctx_status", ["OutboundMined"]),
        ("cctx_status", "OutboundMined"),
    ])
    def test_malformed_nested_objects_read_as_empty(self, normalizer, raw_cctx, field, garbage):
        raw_cctx["CrossChainTx"][field] = garbage

        tx = normalizer.normalize_cross_chain(raw_cctx)

        assert tx.hash == "0x" + "11" * 32
        assert tx.kind == TransactionKind.CROSS_CHAIN
        if field == "cctx_status":
            assert tx.status == TransactionStatus.PENDING
        if field == "outbound_params":
            assert tx.recipient == "unknown"
        if field == "inbound_params":
            assert tx.sender == "zeta1creator"

    def test_non_mapping_record_in_envelope_raises(self, normalizer):
        with pytest.raises(NormalizationError):
            normalizer.normalize_cross_chain({"CrossChainTx": "garbage"})

    def test_missing_index_raises(self, normalizer, raw_cctx):
        del raw_cctx["CrossChainTx"]["index"]

        with pytest.raises(NormalizationError):
            normalizer.normalize_cross_chain(raw_cctx)

    def test_non_mapping_payload_raises(self, normalizer):
        with pytest.raises(NormalizationError):
            normalizer.normalize_cross_chain(["not", "a", "record"])


class TestStatusMapping:
    """Registry status mapping is deterministic and never fails on unknowns."""

    @pytest.mark.parametrize("status", ["OutboundMined", "outbound-mined", 3, "3"])
    def test_success(self, status):
        assert map_cross_chain_status(status) == TransactionStatus.SUCCESS

    @pytest.mark.parametrize("status", ["Aborted", 4, "Reverted", 5, "failed"])
    def test_failed(self, status):
        assert map_cross_chain_status(status) == TransactionStatus.FAILED

    @pytest.mark.parametrize("status", ["PendingInbound", "pending-outbound", 1, 2])
    def test_pending(self, status):
        assert map_cross_chain_status(status) == TransactionStatus.PENDING

    @pytest.mark.parametrize("status", ["SomethingNew", "", None, 99, True, {"x": 1}])
    def test_unrecognized_maps_to_pending(self, status):
        assert map_cross_chain_status(status) == TransactionStatus.PENDING


@pytest.mark.parametrize("raw_amount, decimals, expected", [
    (1_500_000, 6, "1.5"),
    (10**18, 18, "1"),
    (0, 18, "0"),
    (1, 18, "0.000000000000000001"),
    (1000, 0, "1000"),
    (2**256 - 1, 18, "115792089237316195423570985008687907853269984665640564039457.584007913129639935"),
])
def test_format_token_amount(raw_amount, decimals, expected):
    assert format_token_amount(raw_amount, decimals) == expected
