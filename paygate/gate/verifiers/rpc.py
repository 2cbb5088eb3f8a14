# paygate/gate/verifiers/rpc.py
"""
Minimal JSON-RPC 2.0 client used by the chain verifiers.

Every failure mode (HTTP error, upstream rate limit, timeout, JSON-RPC error
object, malformed body) is raised as RpcUnavailableError so callers can fail
closed.
"""
import itertools
import logging
from typing import Any, List, Optional

import httpx

from paygate.gate.errors import RpcUnavailableError

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


class JsonRpcClient:
    """JSON-RPC client for a single endpoint."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = str(url)
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def call(self, method: str, params: List[Any]) -> Any:
        """
        Call an RPC method and return its "result" field (may be None).

        Raises:
            RpcUnavailableError: If the call fails for any reason
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(_request_ids),
            "method": method,
            "params": params,
        }

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            ) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"RPC {method} returned HTTP {e.response.status_code} from {self.url}")
            raise RpcUnavailableError(f"RPC HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC {method} failed against {self.url}: {e!r}")
            raise RpcUnavailableError(f"RPC request failed: {type(e).__name__}") from e
        except ValueError as e:
            logger.error(f"RPC {method} returned invalid JSON: {e}")
            raise RpcUnavailableError("Invalid RPC response: not JSON") from e

        if not isinstance(body, dict):
            raise RpcUnavailableError("Invalid RPC response: not an object")

        if body.get("error") is not None:
            logger.error(f"RPC {method} error: {body['error']}")
            raise RpcUnavailableError(f"RPC error: {body['error']}")

        if "result" not in body:
            raise RpcUnavailableError("Invalid RPC response: missing 'result' field")

        return body["result"]
