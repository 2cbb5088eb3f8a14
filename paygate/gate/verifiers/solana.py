# paygate/gate/verifiers/solana.py
"""
Solana USDC payment verification.

Looks the transaction up by signature at "confirmed" commitment and computes
the net USDC balance change of token accounts owned by the recipient, using
the transaction's pre/post token balances.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

import httpx

from paygate.gate.claims import PaymentClaim
from paygate.gate.errors import DenialReason, RpcUnavailableError
from paygate.gate.verifiers.common import (
    DEFAULT_TOLERANCE,
    Number,
    VerificationResult,
    amount_is_sufficient,
    raw_to_usd,
)
from paygate.gate.verifiers.rpc import JsonRpcClient

logger = logging.getLogger(__name__)

SOLANA_USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
COMMITMENT = "confirmed"


def _balances_by_owner(entries: Optional[List[Dict[str, Any]]], mint: str) -> Dict[str, int]:
    """Sum raw token amounts of one mint per owner."""
    totals: Dict[str, int] = defaultdict(int)
    for entry in entries or []:
        if entry.get("mint") != mint or not entry.get("owner"):
            continue
        amount = (entry.get("uiTokenAmount") or {}).get("amount")
        if amount is None:
            raise ValueError(f"token balance for {entry.get('owner')} has no amount")
        totals[entry["owner"]] += int(amount)
    return totals


def _fee_payer(tx: Dict[str, Any]) -> Optional[str]:
    keys = ((tx.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
    if not keys:
        return None
    first = keys[0]
    if isinstance(first, dict):
        return first.get("pubkey")
    return first


class SolanaVerifier:
    """Verifies USDC transfers on Solana."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        mint: str = SOLANA_USDC_MINT,
        tolerance: Number = DEFAULT_TOLERANCE,
    ):
        self.rpc = rpc
        self.mint = mint
        self.tolerance = tolerance

    @classmethod
    def from_url(
        cls,
        url: str,
        timeout_seconds: float = 10.0,
        tolerance: Number = DEFAULT_TOLERANCE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SolanaVerifier":
        return cls(JsonRpcClient(url, timeout_seconds, transport=transport), tolerance=tolerance)

    async def verify(
        self,
        claim: PaymentClaim,
        required_recipient: str,
        required_price_usd: Number,
    ) -> VerificationResult:
        """
        Verify that a Solana transaction pays required_price_usd in USDC to required_recipient.

        Returns:
            VerificationResult. Not found maps to PENDING, any RPC or parsing
            failure maps to RPC_UNAVAILABLE.
        """
        signature = claim.transaction_id

        try:
            tx = await self.rpc.call(
                "getTransaction",
                [
                    signature,
                    {
                        "encoding": "jsonParsed",
                        "commitment": COMMITMENT,
                        "maxSupportedTransactionVersion": 0,
                    },
                ],
            )
        except RpcUnavailableError as e:
            return VerificationResult.reject(DenialReason.RPC_UNAVAILABLE, detail=str(e))

        if tx is None:
            logger.info(f"Solana tx {signature} not found at {COMMITMENT} commitment")
            return VerificationResult.reject(
                DenialReason.PENDING, detail="Transaction not found or not confirmed yet"
            )

        try:
            meta = tx.get("meta")
            if meta is None:
                raise ValueError("transaction has no meta")

            if meta.get("err") is not None:
                return VerificationResult.reject(
                    DenialReason.TX_FAILED, detail=f"Transaction failed: {meta['err']}"
                )

            pre = _balances_by_owner(meta.get("preTokenBalances"), self.mint)
            post = _balances_by_owner(meta.get("postTokenBalances"), self.mint)

            changes = {owner: post.get(owner, 0) - pre.get(owner, 0) for owner in set(pre) | set(post)}
            senders = sorted((delta, owner) for owner, delta in changes.items() if delta < 0)
            payer = senders[0][1] if senders else _fee_payer(tx)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Malformed Solana transaction {signature}: {e}")
            return VerificationResult.reject(DenialReason.RPC_UNAVAILABLE, detail="Malformed transaction data")

        if required_recipient not in changes:
            return VerificationResult.reject(
                DenialReason.RECIPIENT_MISMATCH,
                detail="No USDC transfer to the recipient wallet",
                payer=payer,
            )

        amount_usd = raw_to_usd(changes[required_recipient])

        if not amount_is_sufficient(amount_usd, required_price_usd, self.tolerance):
            return VerificationResult.reject(
                DenialReason.AMOUNT_MISMATCH,
                detail=f"Received {amount_usd} USDC, expected {required_price_usd}",
                payer=payer,
                recipient=required_recipient,
                amount_usd=amount_usd,
            )

        logger.info(f"Solana payment verified: {signature} {amount_usd} USDC from {payer}")
        return VerificationResult.accept(payer=payer, recipient=required_recipient, amount_usd=amount_usd)
