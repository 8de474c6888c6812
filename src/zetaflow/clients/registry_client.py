"""
Cross-chain registry client.

Looks up cross-chain transaction records (CCTX) through the ZetaChain
REST API. A missing record is reported as ``None``, distinct from transport
failures, which raise ``SourceError``.
"""

import json
import logging
from typing import Any

import httpx

from ..errors import SearchErrorType, SourceError, error_type_for_status

logger = logging.getLogger(__name__)

# gRPC status code NOT_FOUND, as echoed by the REST gateway
_GRPC_NOT_FOUND = 5


class RegistryClient:
    """Client for the cross-chain registry REST API."""

    CCTX_PATH: str = "/zeta-chain/crosschain/cctx/{tx_hash}"
    NODE_INFO_PATH: str = "/cosmos/base/tendermint/v1beta1/node_info"

    def __init__(
        self,
        registry_url: str,
        network: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        """
        Initialize the registry client.

        Args:
            registry_url: Base URL of the registry API
            network: Network name, used in logs
            transport: Optional httpx transport (e.g. MockTransport in tests)
            timeout: HTTP timeout in seconds
        """
        if not registry_url:
            raise ValueError("Registry URL is required")

        self.registry_url: str = registry_url.rstrip("/")
        self.network = network
        self.transport = transport
        self.timeout = timeout

    async def _get(self, path: str) -> httpx.Response:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            url: str = self.registry_url + path
            logger.debug(f"GET {url}")
            return await client.get(url, headers={"Accept": "application/json"})

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    @staticmethod
    def _is_not_found_body(body: Any) -> bool:
        match body:
            case {"code": int(code)} if code == _GRPC_NOT_FOUND:
                return True
            case {"message": str(message)}:
                return "not found" in message.lower()
            case _:
                return False

    async def get_by_hash(self, tx_hash: str) -> dict[str, Any] | None:
        """
        Fetch the cross-chain record indexed by ``tx_hash``.

        Returns:
            The raw registry payload, or None when the registry has no record

        Raises:
            SourceError: On HTTP errors other than "not found", timeouts and
                transport failures
        """
        operation = "registry.get_by_hash"
        try:
            response = await self._get(self.CCTX_PATH.format(tx_hash=tx_hash))
        except httpx.TimeoutException as e:
            raise SourceError(
                SearchErrorType.TIMEOUT, f"Registry request timed out: {e}", operation=operation
            ) from e
        except httpx.TransportError as e:
            raise SourceError(
                SearchErrorType.NETWORK_ERROR, f"Registry unreachable: {e}", operation=operation
            ) from e

        body = self._body(response)
        status = response.status_code

        if response.is_success:
            match body:
                case {"CrossChainTx": dict()} | {"index": str()}:
                    return body
                case _ if self._is_not_found_body(body):
                    return None
                case _:
                    raise SourceError(
                        SearchErrorType.UNKNOWN,
                        f"Unexpected registry payload for {tx_hash}",
                        status_code=status,
                        operation=operation,
                    )

        if status == 404 or self._is_not_found_body(body):
            logger.debug(f"No cross-chain record for {tx_hash} on {self.network}")
            return None

        message = body.get("message") if isinstance(body, dict) else None
        raise SourceError(
            error_type_for_status(status),
            f"Registry returned HTTP {status}" + (f": {message}" if message else ""),
            status_code=status,
            operation=operation,
        )

    async def is_healthy(self) -> bool:
        """Return True when the registry answers its node-info endpoint."""
        try:
            response = await self._get(self.NODE_INFO_PATH)
        except httpx.HTTPError as e:
            logger.warning(f"Registry health check failed for {self.network}: {e}")
            return False
        return response.is_success
