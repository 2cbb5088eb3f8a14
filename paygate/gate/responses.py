# paygate/gate/responses.py
"""HTTP responses for gate denials."""
import logging
from typing import Any, Dict, Optional

from starlette.responses import JSONResponse

from paygate.gate.claims import PAYMENT_NETWORK_HEADER, PAYMENT_SIGNATURE_HEADERS, Network
from paygate.gate.errors import DenialReason
from paygate.gate.orchestrator import GateDecision, PaymentGate
from paygate.gate.ratelimit import get_rate_limit_headers
from paygate.gate.verifiers.base import BASE_USDC_CONTRACT
from paygate.gate.verifiers.solana import SOLANA_USDC_MINT

logger = logging.getLogger(__name__)

X_PAYMENT_SETTLED_HEADER = "X-Payment-Settled"
X_PAYMENT_TXHASH_HEADER = "X-Payment-TxHash"

ASSET_ADDRESSES = {
    Network.SOLANA: SOLANA_USDC_MINT,
    Network.BASE: BASE_USDC_CONTRACT,
}


def build_payment_instructions(
    gate: PaymentGate,
    endpoint: str,
    description: str,
    schema: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the 402 body that tells a client what to pay and where.

    Only networks with a configured recipient wallet are listed.
    """
    networks = []
    for network in gate.networks:
        wallet = gate.wallet_for(network)
        if not wallet:
            continue
        networks.append({
            "network": network.value,
            "recipient": wallet,
            "asset": "USDC",
            "assetAddress": ASSET_ADDRESSES.get(network),
        })

    return {
        "status": 402,
        "message": "Payment required",
        "price": {"amount": float(gate.price_usd), "currency": "USDC"},
        "wallet": networks[0]["recipient"] if networks else None,
        "networks": networks,
        "endpoint": endpoint,
        "description": description,
        "schema": schema or {},
        "headers": {
            "payment": PAYMENT_SIGNATURE_HEADERS[0],
            "network": PAYMENT_NETWORK_HEADER,
        },
    }


def payment_required_response(
    gate: PaymentGate,
    endpoint: str,
    description: str,
    schema: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=402,
        content=build_payment_instructions(gate, endpoint, description, schema),
    )


def denial_response(decision: GateDecision) -> JSONResponse:
    """
    Map a denied GateDecision to its HTTP response.

    PAYMENT_REQUIRED is handled by payment_required_response.
    """
    if decision.reason is DenialReason.RATE_LIMITED:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate limit exceeded",
                "reason": decision.reason.value,
                "hint": decision.hint,
                "retryAfter": decision.retry_after_seconds,
            },
            headers=get_rate_limit_headers(decision.rate),
        )

    content = {
        "error": "Payment verification failed",
        "reason": decision.reason.value,
        "hint": decision.hint,
    }
    if decision.detail:
        content["detail"] = decision.detail
    return JSONResponse(status_code=402, content=content)


def misconfigured_response(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})
