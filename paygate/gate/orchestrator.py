# paygate/gate/orchestrator.py
"""
Payment admission for a single request.

Runs, in order:
1. Rate limiter (no I/O)
2. Payment claim extraction from headers
3. On-chain verification by the claim's network verifier
4. Replay guard (only after an accepted verification)

and returns a GateDecision: granted, or denied with a reason code.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from paygate.core.config import settings
from paygate.gate.claims import Network, PaymentClaim, extract_payment_claim
from paygate.gate.errors import DenialReason, GateConfigurationError, UnknownNetworkError, hint_for
from paygate.gate.ratelimit import RateDecision, RateLimiter
from paygate.gate.replay import ReplayGuard, ReplayStatus
from paygate.gate.verifiers import build_verifiers
from paygate.gate.verifiers.common import ChainVerifier, Number, VerificationResult

logger = logging.getLogger(__name__)


class GateState(Enum):
    """States a request passes through; GRANTED and DENIED are terminal."""
    START = "start"
    RATE_CHECKED = "rate_checked"
    CLAIM_EXTRACTED = "claim_extracted"
    CHAIN_VERIFIED = "chain_verified"
    REPLAY_CHECKED = "replay_checked"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class GateDecision:
    """Final admission decision for one request."""
    granted: bool
    reason: Optional[DenialReason] = None
    claim: Optional[PaymentClaim] = None
    verification: Optional[VerificationResult] = None
    rate: Optional[RateDecision] = None
    last_state: GateState = GateState.START
    detail: Optional[str] = None

    @property
    def state(self) -> GateState:
        return GateState.GRANTED if self.granted else GateState.DENIED

    @property
    def retry_after_seconds(self) -> int:
        return self.rate.retry_after_seconds if self.rate else 0

    @property
    def hint(self) -> str:
        return hint_for(self.reason) if self.reason else ""


class PaymentGate:
    """
    Sequences the admission checks for paid endpoints.

    Stores (rate windows, consumed proofs) live in the injected RateLimiter
    and ReplayGuard; nothing else persists between requests.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        verifiers: Dict[Network, ChainVerifier],
        replay_guard: ReplayGuard,
        price_usd: Optional[Number] = None,
        wallets: Optional[Dict[Network, str]] = None,
        verify_timeout_seconds: Optional[float] = None,
    ):
        """
        Initialize the gate.

        Args:
            rate_limiter: Per-client rate limiter
            verifiers: Chain verifier per supported network
            replay_guard: Consumed-proof guard
            price_usd: Required price. If None, uses config.
            wallets: Recipient wallet per network. If None, uses config.
            verify_timeout_seconds: Deadline for one verification. If None, uses config.
        """
        self.rate_limiter = rate_limiter
        self.verifiers = verifiers
        self.replay_guard = replay_guard
        self._price_usd = price_usd
        self._wallets = wallets
        self._verify_timeout_seconds = verify_timeout_seconds

    @property
    def price_usd(self) -> Number:
        if self._price_usd is not None:
            return self._price_usd
        return settings.PRICE_USDC

    @property
    def verify_timeout_seconds(self) -> float:
        if self._verify_timeout_seconds is not None:
            return self._verify_timeout_seconds
        return settings.VERIFY_TIMEOUT_SECONDS

    @property
    def networks(self):
        return list(self.verifiers)

    def wallet_for(self, network: Network) -> Optional[str]:
        if self._wallets is not None:
            return self._wallets.get(network)
        return settings.wallet_for(network.value)

    def recipient_for(self, network: Network) -> str:
        """
        Recipient wallet for a network.

        Raises:
            GateConfigurationError: If no wallet is configured for the network
        """
        wallet = self.wallet_for(network)
        if not wallet:
            raise GateConfigurationError(f"No recipient wallet configured for {network.value}")
        return wallet

    async def evaluate(self, client_id: str, headers: Mapping[str, str]) -> GateDecision:
        """
        Decide whether a request is admitted.

        Args:
            client_id: Client identity (source IP)
            headers: Request headers

        Returns:
            GateDecision

        Raises:
            GateConfigurationError: If no recipient wallet is configured
        """
        # Start -> RateChecked
        rate = self.rate_limiter.admit(client_id)
        if not rate.allowed:
            return GateDecision(
                granted=False,
                reason=DenialReason.RATE_LIMITED,
                rate=rate,
                last_state=GateState.START,
            )

        if not any(self.wallet_for(network) for network in self.verifiers):
            raise GateConfigurationError("Service misconfigured: WALLET_ADDRESS not set")

        # RateChecked -> ClaimExtracted
        try:
            claim = extract_payment_claim(headers)
        except UnknownNetworkError as e:
            logger.warning(f"Payment claim from {client_id} rejected: {e}")
            return GateDecision(
                granted=False,
                reason=DenialReason.UNKNOWN_NETWORK,
                rate=rate,
                last_state=GateState.RATE_CHECKED,
                detail=str(e),
            )

        if claim is None:
            return GateDecision(
                granted=False,
                reason=DenialReason.PAYMENT_REQUIRED,
                rate=rate,
                last_state=GateState.RATE_CHECKED,
            )

        verifier = self.verifiers.get(claim.network)
        if verifier is None:
            return GateDecision(
                granted=False,
                reason=DenialReason.UNKNOWN_NETWORK,
                claim=claim,
                rate=rate,
                last_state=GateState.CLAIM_EXTRACTED,
                detail=f"No verifier for {claim.network.value}",
            )

        recipient = self.recipient_for(claim.network)

        # ClaimExtracted -> ChainVerified
        try:
            verification = await asyncio.wait_for(
                verifier.verify(claim, recipient, self.price_usd),
                timeout=self.verify_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Verification of {claim.network.value} tx {claim.transaction_id} timed out")
            verification = VerificationResult.reject(
                DenialReason.RPC_UNAVAILABLE, detail="Verification timed out"
            )
        except Exception as e:
            # Fail closed: an unverifiable claim is denied, never admitted
            logger.exception(
                f"Unexpected error verifying {claim.network.value} tx {claim.transaction_id}: {e}"
            )
            verification = VerificationResult.reject(
                DenialReason.RPC_UNAVAILABLE, detail="Verification failed"
            )

        if not verification.accepted:
            logger.warning(
                f"Payment rejected for {client_id}: {claim.network.value} tx "
                f"{claim.transaction_id} ({verification.reason.value}: {verification.detail})"
            )
            return GateDecision(
                granted=False,
                reason=verification.reason,
                claim=claim,
                verification=verification,
                rate=rate,
                last_state=GateState.CLAIM_EXTRACTED,
                detail=verification.detail,
            )

        # ChainVerified -> ReplayChecked
        if self.replay_guard.consume(claim.network, claim.transaction_id) is ReplayStatus.ALREADY_USED:
            return GateDecision(
                granted=False,
                reason=DenialReason.ALREADY_USED,
                claim=claim,
                verification=verification,
                rate=rate,
                last_state=GateState.CHAIN_VERIFIED,
            )

        logger.info(
            f"Payment accepted for {client_id}: {verification.amount_usd} USDC on "
            f"{claim.network.value} tx {claim.transaction_id}"
        )
        return GateDecision(
            granted=True,
            claim=claim,
            verification=verification,
            rate=rate,
            last_state=GateState.REPLAY_CHECKED,
        )


# Global payment gate instance
_payment_gate: Optional[PaymentGate] = None


def get_payment_gate() -> PaymentGate:
    """
    Get the application's payment gate, wired from settings on first use.

    Returns:
        The singleton PaymentGate instance
    """
    global _payment_gate

    if _payment_gate is None:
        _payment_gate = PaymentGate(
            rate_limiter=RateLimiter(),
            verifiers=build_verifiers(),
            replay_guard=ReplayGuard(),
        )

    return _payment_gate


def reset_payment_gate() -> None:
    """Reset the global payment gate and its stores (useful for testing)."""
    global _payment_gate
    _payment_gate = None
