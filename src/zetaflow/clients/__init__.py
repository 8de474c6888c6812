"""Source clients for chain-native and cross-chain lookups."""

from .chain_client import ChainClient, RawChainTransaction
from .registry_client import RegistryClient

__all__ = ["ChainClient", "RawChainTransaction", "RegistryClient"]
