# paygate/gate/middleware.py
"""
FastAPI middleware for on-chain payment admission.

For requests to protected endpoints this middleware:
1. Rate limits by client IP (429 with Retry-After)
2. Returns 402 with payment instructions when no payment is offered
3. Verifies the offered transaction on-chain and rejects replays (402)
4. Passes granted requests through, exposing the decision as
   request.state.payment and adding settlement headers to 2xx responses
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from paygate.core.config import settings
from paygate.gate.errors import DenialReason, GateConfigurationError
from paygate.gate.orchestrator import PaymentGate, get_payment_gate
from paygate.gate.ratelimit import get_rate_limit_headers
from paygate.gate.responses import (
    X_PAYMENT_SETTLED_HEADER,
    X_PAYMENT_TXHASH_HEADER,
    denial_response,
    misconfigured_response,
    payment_required_response,
)

logger = logging.getLogger(__name__)

# Protected endpoints configuration
PROTECTED_ENDPOINTS: List[Tuple[str, str]] = [
    ("GET", "/api/run"),
]


def is_protected_endpoint(
    method: str,
    path: str,
    endpoints: Optional[List[Tuple[str, str]]] = None,
) -> bool:
    """Check if the request matches a protected endpoint."""
    for protected_method, protected_path in endpoints or PROTECTED_ENDPOINTS:
        if method == protected_method and path.rstrip("/").startswith(protected_path.rstrip("/")):
            return True
    return False


def get_client_ip(request: Request, trust_proxy_headers: Optional[bool] = None) -> str:
    """
    Extract client IP from request.

    Forwarding headers are client-controlled, so they are only read when
    trust_proxy_headers (default: settings.TRUST_PROXY_HEADERS) is set.
    """
    if trust_proxy_headers is None:
        trust_proxy_headers = settings.TRUST_PROXY_HEADERS

    if trust_proxy_headers:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # Take the first IP in the chain
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    # Fall back to direct connection
    if request.client:
        return request.client.host

    return "unknown"


class PaymentGateMiddleware(BaseHTTPMiddleware):
    """
    Payment admission middleware for FastAPI.

    Unprotected endpoints pass through unchanged.
    """

    def __init__(
        self,
        app,
        gate: Optional[PaymentGate] = None,
        protected_endpoints: Optional[List[Tuple[str, str]]] = None,
        description: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(app)
        self._gate = gate
        self.protected_endpoints = protected_endpoints or PROTECTED_ENDPOINTS
        self.description = description or settings.SERVICE_DESCRIPTION
        self.schema = schema

    @property
    def gate(self) -> PaymentGate:
        """Lazy initialization of the payment gate."""
        if self._gate is None:
            self._gate = get_payment_gate()
        return self._gate

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        if not is_protected_endpoint(request.method, request.url.path, self.protected_endpoints):
            return await call_next(request)

        client_ip = get_client_ip(request)
        logger.info(f"Processing paid request from {client_ip}: {request.method} {request.url.path}")

        try:
            decision = await self.gate.evaluate(client_ip, request.headers)
        except GateConfigurationError as e:
            logger.error(f"Payment gate misconfigured: {e}")
            return misconfigured_response(str(e))

        if not decision.granted:
            if decision.reason is DenialReason.PAYMENT_REQUIRED:
                logger.info(f"No payment offered by {client_ip}, returning 402 for ${self.gate.price_usd}")
                return payment_required_response(
                    self.gate,
                    endpoint=request.url.path,
                    description=self.description,
                    schema=self.schema,
                )
            return denial_response(decision)

        request.state.payment = decision
        response = await call_next(request)

        for header, value in get_rate_limit_headers(decision.rate).items():
            response.headers[header] = value

        if 200 <= response.status_code < 300:
            response.headers[X_PAYMENT_SETTLED_HEADER] = "true"
            response.headers[X_PAYMENT_TXHASH_HEADER] = decision.claim.transaction_id

        return response
