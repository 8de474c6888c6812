"""
ZetaFlow resolver package.

Resolves ZetaChain transaction hashes and addresses into normalized
transaction records, falling back from the EVM chain to the cross-chain
registry.
"""

from .config import ResolverConfig
from .errors import SearchError, SearchErrorType
from .models import QueryKind, SearchResult, SearchResultType, Transaction, TransactionStatus
from .search_orchestrator import OrchestratorRegistry, SearchOrchestrator

__all__ = [
    "ResolverConfig",
    "SearchOrchestrator",
    "OrchestratorRegistry",
    "SearchError",
    "SearchErrorType",
    "SearchResult",
    "SearchResultType",
    "Transaction",
    "TransactionStatus",
    "QueryKind",
]
__version__ = "0.1.0"
