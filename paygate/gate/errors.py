# paygate/gate/errors.py
"""
Error taxonomy for the payment gate.

DenialReason values are the stable, machine-readable reason codes returned
to clients. The exception classes are raised inside the gate and mapped to
HTTP responses by the middleware and endpoints.
"""
from enum import Enum
from typing import Optional


class DenialReason(Enum):
    """Reason codes returned to clients when a request is not admitted."""
    PAYMENT_REQUIRED = "payment_required"
    UNKNOWN_NETWORK = "unknown_network"
    TX_NOT_FOUND = "tx_not_found"
    PENDING = "pending"
    TX_FAILED = "tx_failed"
    AMOUNT_MISMATCH = "amount_mismatch"
    RECIPIENT_MISMATCH = "recipient_mismatch"
    ALREADY_USED = "already_used"
    RPC_UNAVAILABLE = "rpc_unavailable"
    FETCH_TIMEOUT = "fetch_timeout"
    SSRF_BLOCKED = "ssrf_blocked"
    RATE_LIMITED = "rate_limited"


# Human hints sent alongside the reason code
DENIAL_HINTS = {
    DenialReason.PAYMENT_REQUIRED: "Send the payment transaction id in the Payment-Signature header.",
    DenialReason.UNKNOWN_NETWORK: "Set X-Payment-Network to 'solana' or 'base'.",
    DenialReason.TX_NOT_FOUND: "Check the transaction id and network, then retry.",
    DenialReason.PENDING: "The transaction is not confirmed yet. Wait a few seconds and retry with the same id.",
    DenialReason.TX_FAILED: "The transaction failed on-chain. Send a new payment.",
    DenialReason.AMOUNT_MISMATCH: "Ensure the transaction sends the correct USDC amount to the recipient wallet.",
    DenialReason.RECIPIENT_MISMATCH: "Ensure the transaction sends USDC to the recipient wallet.",
    DenialReason.ALREADY_USED: "Each payment authorizes one request. Send a new payment.",
    DenialReason.RPC_UNAVAILABLE: "Payment could not be verified right now. Retry shortly with the same id.",
    DenialReason.FETCH_TIMEOUT: "The target URL did not respond in time.",
    DenialReason.SSRF_BLOCKED: "Private and internal URLs cannot be fetched.",
    DenialReason.RATE_LIMITED: "Too many requests. Wait for Retry-After seconds.",
}


def hint_for(reason: DenialReason) -> str:
    return DENIAL_HINTS.get(reason, "")


class GateError(Exception):
    """Base exception for payment gate errors."""
    pass


class GateConfigurationError(GateError):
    """Raised when the service is misconfigured (e.g. no recipient wallet)."""
    pass


class UnknownNetworkError(GateError):
    """Raised when a payment claim names or implies an unsupported network."""

    def __init__(self, message: str, network: Optional[str] = None):
        super().__init__(message)
        self.network = network


class RpcUnavailableError(GateError):
    """Raised when a chain RPC call fails or returns an unusable response."""
    pass


class FetchError(GateError):
    """Base exception for outbound fetch failures."""
    reason: Optional[DenialReason] = None

    def __init__(self, message: str, url: Optional[str] = None, attempts: int = 0):
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class SsrfBlockedError(FetchError):
    """Raised when a fetch target (or redirect target) is not allowed."""
    reason = DenialReason.SSRF_BLOCKED


class FetchTimeoutError(FetchError):
    """Raised when every attempt timed out."""
    reason = DenialReason.FETCH_TIMEOUT


class FetchNetworkError(FetchError):
    """Raised when the target could not be reached after all retries."""
    pass


class UpstreamStatusError(FetchError):
    """Raised when the target kept answering 5xx after all retries."""

    def __init__(self, message: str, url: Optional[str] = None, attempts: int = 0, status_code: int = 0):
        super().__init__(message, url=url, attempts=attempts)
        self.status_code = status_code
