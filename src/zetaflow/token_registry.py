"""
Reference tables for token, DEX and swap detection on ZetaChain.

All address keys are lowercase.
"""

from .models import TokenMetadata

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

DEFAULT_DECIMALS = 18

KNOWN_TOKENS: dict[str, TokenMetadata] = {
    # ZetaChain mainnet (7000)
    "0x5f0b1a82749cb4e2278ec87f8bf6b618dc71a8bf": TokenMetadata("USDC.ETH", "USD Coin (Ethereum)", 6),
    "0x7c8dda80bbbe1254a7aacf3219ebe1481c6e01d7": TokenMetadata("USDT.ETH", "Tether USD (Ethereum)", 6),
    "0x48f80608b672dc30dc7e3dbbd0343c5f02c738eb": TokenMetadata("BNB.BSC", "BNB (BSC)", 18),
    "0xd97b1de3619ed2c6beb3860147e30ca8a7dc9891": TokenMetadata("ETH.ETH", "ETH (Ethereum)", 18),
    "0x91d4f0d54090df2d81e834c3c8ce71c6c3461d93": TokenMetadata("WBTC.ETH", "Wrapped Bitcoin", 8),
    "0x05ba149a7bd6dc1f937fa9046a9e05c05f3b18b0": TokenMetadata("USDC.BSC", "USD Coin (BSC)", 18),
    "0x7c125c1ccf65c5c35dba7a5cb8b8c0b5b1b4c7a0": TokenMetadata("USDT.BSC", "Tether USD (BSC)", 18),
    # ZetaChain Athens-3 testnet (7001)
    "0x0cbe0df132a6c6b4a2974fa1b7fb953cf0cc798a": TokenMetadata("USDC.ETH", "USD Coin (Ethereum)", 6),
}

DEX_CONTRACTS: dict[str, str] = {
    "0x2ca7d64a7efe2d62a725e2b35cf7230d6677ffee": "ZetaSwap",
    "0x91d4f0d54090df2d81e834c3c8ce71c6c3461d93": "ZetaSwap Pool",
}

SWAP_METHOD_SIGNATURES: dict[str, str] = {
    "0x38ed1739": "swapExactTokensForTokens",
    "0x8803dbee": "swapTokensForExactTokens",
    "0x7ff36ab5": "swapExactETHForTokens",
    "0x18cbafe5": "swapTokensForExactETH",
    "0x791ac947": "swapExactTokensForETH",
    "0x4a25d94a": "swapTokensForExactTokens",
    "0x022c0d9f": "swap",
}

# Checked in order against the lowercase contract address
HEURISTIC_TOKEN_PATTERNS: tuple[tuple[tuple[str, ...], TokenMetadata], ...] = (
    (("weth",), TokenMetadata("WETH", "Wrapped Ether", 18)),
    (("wzeta", "zeta"), TokenMetadata("WZETA", "Wrapped ZETA", 18)),
    (("usdc",), TokenMetadata("USDC", "USD Coin", 6)),
    (("usdt",), TokenMetadata("USDT", "Tether USD", 6)),
)

# Minimal ERC-20 ABI for on-chain metadata lookups
ERC20_METADATA_ABI: list[dict] = [
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def lookup_known_token(address: str) -> TokenMetadata | None:
    return KNOWN_TOKENS.get(address.lower())


def identify_by_heuristic(address: str) -> TokenMetadata | None:
    """Guess well-known tokens from substrings of the contract address."""
    lowered = address.lower()
    for needles, metadata in HEURISTIC_TOKEN_PATTERNS:
        if any(needle in lowered for needle in needles):
            return metadata
    return None


def placeholder_metadata(address: str) -> TokenMetadata:
    """Metadata used when no other source could identify the token."""
    return TokenMetadata(f"Token-{address[:6]}", "Unknown Token", DEFAULT_DECIMALS)
