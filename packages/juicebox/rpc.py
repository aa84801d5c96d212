"""JSON-RPC client for read-only contract calls.

Raw ``eth_call`` over HTTP POST with a bounded retry policy for transport
errors and throttling. No web3.py dependency; calldata and return data are
ABI-encoded by the caller.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional, Union

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """JSON-RPC over HTTP with automatic, bounded retries.

    Retries are handled entirely by urllib3 (connection errors and the
    ``retry_statuses`` codes), so every call finishes after at most
    ``max_retries + 1`` attempts.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        retry_statuses: tuple = (429, 500, 502, 503, 504),
    ):
        """
        Args:
            rpc_url: JSON-RPC endpoint URL
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts per call
            backoff_factor: Multiplier for exponential backoff between retries
            retry_statuses: HTTP status codes that trigger a retry
        """
        self.rpc_url = rpc_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.retry_statuses = retry_statuses
        self._ids = itertools.count(1)

        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=list(self.retry_statuses),
            allowed_methods=["POST"],
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def call(self, method: str, params: list) -> Optional[Any]:
        """Execute one JSON-RPC request.

        Returns:
            The ``result`` member, or None on an RPC error, transport
            failure, or malformed response. Failures are logged.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = self.session.post(
                self.rpc_url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout:
            logger.warning("Timeout calling RPC method %s", method)
            return None
        except requests.exceptions.RequestException as e:
            logger.warning("Error calling RPC method %s: %s", method, e)
            return None
        except ValueError as e:
            logger.warning("RPC method %s returned invalid JSON: %s", method, e)
            return None

        if not isinstance(result, dict):
            logger.warning("RPC method %s returned non-object response", method)
            return None

        if "error" in result:
            logger.warning("RPC error calling %s: %s", method, result["error"])
            return None

        return result.get("result")

    def eth_call(self, to: str, data: str, block: Union[int, str] = "latest") -> Optional[str]:
        """Execute ``eth_call`` against a contract.

        Args:
            to: Contract address (0x-prefixed)
            data: Hex-encoded calldata (0x prefix required)
            block: Block number or tag the call is evaluated at

        Returns:
            Hex result string (0x prefix), or None when the call reverted or
            could not be made.
        """
        block_tag = hex(block) if isinstance(block, int) else block
        result = self.call("eth_call", [{"to": to, "data": data}, block_tag])
        if result is None:
            return None
        if not isinstance(result, str):
            logger.warning("eth_call to %s returned non-string result %r", to, result)
            return None
        return result
