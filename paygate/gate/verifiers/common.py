# paygate/gate/verifiers/common.py
"""Shared types and amount checks for chain verifiers."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol, Union

from paygate.gate.claims import PaymentClaim
from paygate.gate.errors import DenialReason

# USDC uses 6 decimals on both supported networks
USDC_DECIMALS = 6

DEFAULT_TOLERANCE = Decimal("0.02")

Number = Union[Decimal, float, int, str]


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one payment claim on-chain."""
    accepted: bool
    reason: Optional[DenialReason] = None
    payer: Optional[str] = None
    recipient: Optional[str] = None
    amount_usd: Decimal = Decimal("0")
    detail: Optional[str] = None

    @classmethod
    def accept(cls, payer: Optional[str], recipient: str, amount_usd: Decimal) -> "VerificationResult":
        return cls(accepted=True, payer=payer, recipient=recipient, amount_usd=amount_usd)

    @classmethod
    def reject(
        cls,
        reason: DenialReason,
        detail: Optional[str] = None,
        payer: Optional[str] = None,
        recipient: Optional[str] = None,
        amount_usd: Decimal = Decimal("0"),
    ) -> "VerificationResult":
        return cls(
            accepted=False,
            reason=reason,
            payer=payer,
            recipient=recipient,
            amount_usd=amount_usd,
            detail=detail,
        )


class ChainVerifier(Protocol):
    """One verifier per Network; the gate dispatches on claim.network."""

    async def verify(
        self,
        claim: PaymentClaim,
        required_recipient: str,
        required_price_usd: Number,
    ) -> VerificationResult:
        ...


def to_decimal(value: Number) -> Decimal:
    """Convert a price to Decimal without picking up float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def minimum_acceptable(price_usd: Number, tolerance: Number = DEFAULT_TOLERANCE) -> Decimal:
    """Smallest amount accepted for a price: price * (1 - tolerance)."""
    return to_decimal(price_usd) * (Decimal("1") - to_decimal(tolerance))


def amount_is_sufficient(amount_usd: Decimal, price_usd: Number, tolerance: Number = DEFAULT_TOLERANCE) -> bool:
    return amount_usd >= minimum_acceptable(price_usd, tolerance)


def raw_to_usd(raw_amount: int, decimals: int = USDC_DECIMALS) -> Decimal:
    """Convert an integer token amount to a USD value for a 1:1 stablecoin."""
    return Decimal(raw_amount).scaleb(-decimals)
