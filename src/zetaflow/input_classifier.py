"""Classification of raw search queries into transaction ids and addresses."""

import re
from dataclasses import dataclass

from .models import QueryKind

TX_HASH_PATTERN = re.compile(r"^(0x)?[a-fA-F0-9]{64}$")
ADDRESS_PATTERN = re.compile(r"^(0x)?[a-fA-F0-9]{40}$")
HEX_PATTERN = re.compile(r"^(0x)?[a-fA-F0-9]+$")

TOO_SHORT = "Input too short. Enter a valid transaction hash (64 chars) or address (40 chars)."
TOO_LONG = "Input too long. Transaction hashes are 64 characters, addresses are 40 characters."
INVALID_CHARACTERS = "Invalid characters. Only hexadecimal characters (0-9, a-f) are allowed."
INVALID_FORMAT = "Invalid format. Enter a valid transaction hash or wallet address."


@dataclass(frozen=True, slots=True)
class Classification:
    """Result of classifying a raw query.

    Attributes:
        valid: Whether the query is a usable identifier
        kind: Detected identifier kind
        normalized: Trimmed query, always carrying a 0x prefix when valid
        error: Diagnostic for invalid, non-empty input
    """
    valid: bool
    kind: QueryKind
    normalized: str
    error: str | None = None


def normalize_identifier(raw: str) -> str:
    """Trim and force a 0x prefix."""
    trimmed = raw.strip()
    return trimmed if trimmed.startswith("0x") else f"0x{trimmed}"


def classify(raw: str) -> Classification:
    """Classify a raw query string.

    Empty input is invalid without a diagnostic: nothing was typed yet.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return Classification(valid=False, kind=QueryKind.INVALID, normalized="")

    if TX_HASH_PATTERN.match(trimmed):
        return Classification(True, QueryKind.TRANSACTION_ID, normalize_identifier(trimmed))

    if ADDRESS_PATTERN.match(trimmed):
        return Classification(True, QueryKind.ADDRESS, normalize_identifier(trimmed))

    if len(trimmed) < 40:
        error = TOO_SHORT
    elif len(trimmed) > 66:
        error = TOO_LONG
    elif not HEX_PATTERN.match(trimmed):
        error = INVALID_CHARACTERS
    else:
        error = INVALID_FORMAT

    return Classification(valid=False, kind=QueryKind.INVALID, normalized=trimmed, error=error)
