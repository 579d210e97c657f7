"""JSON-RPC transport and revert classification for contract-deployments library."""

import itertools
from typing import Any, Dict, List, Optional

import requests
from eth_abi import decode
from eth_abi.exceptions import DecodingError

from .exceptions import (
    AlreadyInitializedError,
    AuthorizationError,
    OrchestrationError,
    SubmissionError,
    TransactionRejectedError,
    TransactionRevertedError,
)

# Error(string)
ERROR_STRING_SELECTOR = "0x08c379a0"

# OpenZeppelin v5 custom errors
INVALID_INITIALIZATION_SELECTOR = "0xf92ee8a9"  # InvalidInitialization()
OWNABLE_UNAUTHORIZED_SELECTOR = "0x118cdaa7"  # OwnableUnauthorizedAccount(address)
ACCESS_CONTROL_UNAUTHORIZED_SELECTOR = "0xe2517d3f"  # AccessControlUnauthorizedAccount(address,bytes32)

ALREADY_INITIALIZED_MARKERS = ("already initialized",)
AUTHORIZATION_MARKERS = (
    "caller is not the owner",
    "caller is not owner",
    "missing role",
    "unauthorized",
    "not authorized",
    "only owner",
    "onlyowner",
)
TRANSIENT_MARKERS = (
    "rate limit",
    "too many requests",
    "timeout",
    "timed out",
    "header not found",
    "try again",
)

# HTTP statuses worth retrying
TRANSIENT_HTTP_STATUSES = {408, 429, 500, 502, 503, 504}


class RpcError(OrchestrationError):
    """A JSON-RPC error response."""

    def __init__(self, method: str, code: Optional[int], message: str, data: Any = None):
        self.method = method
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC error from {method}: {message} (code {code})")


class JsonRpcClient:
    """Minimal Ethereum JSON-RPC client over HTTP."""

    def __init__(self, url: str, timeout: float = 30):
        self.url = url
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._session = requests.Session()

    def call(self, method: str, params: List[Any]) -> Any:
        """
        Make a JSON-RPC call.

        Args:
            method: RPC method name
            params: Positional parameters

        Returns:
            The "result" member of the response

        Raises:
            SubmissionError: On network errors or retryable HTTP statuses
            RpcError: If the node returns a JSON-RPC error
        """
        try:
            response = self._session.post(
                self.url,
                json={"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SubmissionError(f"Network error during {method}: {e}") from e

        if response.status_code in TRANSIENT_HTTP_STATUSES:
            raise SubmissionError(f"{method} failed with HTTP status {response.status_code}")
        if response.status_code != 200:
            raise TransactionRejectedError(
                f"{method} failed with HTTP status {response.status_code}"
            )

        try:
            result = response.json()
        except ValueError as e:
            raise SubmissionError(f"Malformed JSON-RPC response to {method}") from e

        if "error" in result:
            error = result["error"] or {}
            raise RpcError(method, error.get("code"), error.get("message", ""), error.get("data"))

        return result.get("result")

    def chain_id(self) -> int:
        return int(self.call("eth_chainId", []), 16)

    def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(self.call("eth_getTransactionCount", [address, block]), 16)

    def gas_price(self) -> int:
        return int(self.call("eth_gasPrice", []), 16)

    def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        return int(self.call("eth_estimateGas", [transaction]), 16)

    def send_raw_transaction(self, raw: bytes) -> str:
        return self.call("eth_sendRawTransaction", ["0x" + raw.hex()])

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.call("eth_getTransactionReceipt", [tx_hash])

    def get_code(self, address: str, block: str = "latest") -> str:
        return self.call("eth_getCode", [address, block])


def decode_revert_reason(data: Any) -> Optional[str]:
    """
    Extract a human-readable reason from revert data.

    Args:
        data: "data" member of a JSON-RPC error (hex string or nested dict)

    Returns:
        Error(string) message, a known custom error name, or None
    """
    if isinstance(data, dict):
        data = data.get("data")
    if not isinstance(data, str) or not data.startswith("0x") or len(data) < 10:
        return None

    selector = data[:10].lower()
    if selector == ERROR_STRING_SELECTOR:
        try:
            (reason,) = decode(["string"], bytes.fromhex(data[10:]))
        except (DecodingError, ValueError):
            return None
        return reason
    if selector == INVALID_INITIALIZATION_SELECTOR:
        return "InvalidInitialization()"
    if selector == OWNABLE_UNAUTHORIZED_SELECTOR:
        return "OwnableUnauthorizedAccount"
    if selector == ACCESS_CONTROL_UNAUTHORIZED_SELECTOR:
        return "AccessControlUnauthorizedAccount"
    return None


def is_revert(error: RpcError) -> bool:
    message = error.message.lower()
    return error.code == 3 or "revert" in message or "vm exception" in message


def classify_rpc_error(error: RpcError, context: str) -> OrchestrationError:
    """
    Map a JSON-RPC error to the orchestration error taxonomy.

    Args:
        error: Error returned by the node
        context: What was being attempted, for the message

    Returns:
        Exception instance to raise
    """
    reason = decode_revert_reason(error.data)
    text = f"{error.message} {reason or ''}".lower()

    if reason == "InvalidInitialization()" or any(m in text for m in ALREADY_INITIALIZED_MARKERS):
        return AlreadyInitializedError(f"{context}: {reason or error.message}")

    if reason in ("OwnableUnauthorizedAccount", "AccessControlUnauthorizedAccount") or any(
        m in text for m in AUTHORIZATION_MARKERS
    ):
        return AuthorizationError(f"{context}: {reason or error.message}")

    if is_revert(error):
        return TransactionRevertedError(f"{context} reverted: {reason or error.message}", reason)

    if "insufficient funds" in text:
        return TransactionRejectedError(f"{context}: {error.message}")

    if any(m in text for m in TRANSIENT_MARKERS):
        return SubmissionError(f"{context}: {error.message}")

    return TransactionRejectedError(f"{context}: {error.message}")
