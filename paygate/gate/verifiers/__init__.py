# paygate/gate/verifiers/__init__.py
"""On-chain payment verifiers, one per supported Network."""
from typing import Dict

from paygate.core.config import settings
from paygate.gate.claims import Network
from paygate.gate.verifiers.base import BaseVerifier
from paygate.gate.verifiers.common import ChainVerifier, VerificationResult
from paygate.gate.verifiers.solana import SolanaVerifier


def build_verifiers() -> Dict[Network, ChainVerifier]:
    """Build the verifier map from settings."""
    return {
        Network.SOLANA: SolanaVerifier.from_url(
            str(settings.SOLANA_RPC_URL),
            timeout_seconds=settings.RPC_TIMEOUT_SECONDS,
            tolerance=settings.PAYMENT_AMOUNT_TOLERANCE,
        ),
        Network.BASE: BaseVerifier.from_url(
            str(settings.BASE_RPC_URL),
            timeout_seconds=settings.RPC_TIMEOUT_SECONDS,
            tolerance=settings.PAYMENT_AMOUNT_TOLERANCE,
        ),
    }


__all__ = [
    "BaseVerifier",
    "ChainVerifier",
    "SolanaVerifier",
    "VerificationResult",
    "build_verifiers",
]
