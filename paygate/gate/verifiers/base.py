# paygate/gate/verifiers/base.py
"""
Base (EVM) USDC payment verification.

Fetches the transaction receipt and body by hash, decodes ERC-20 Transfer
events emitted by the USDC contract and sums the value sent to the recipient.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from paygate.gate.claims import PaymentClaim
from paygate.gate.errors import DenialReason, RpcUnavailableError
from paygate.gate.verifiers.common import (
    DEFAULT_TOLERANCE,
    USDC_DECIMALS,
    Number,
    VerificationResult,
    amount_is_sufficient,
    raw_to_usd,
)
from paygate.gate.verifiers.rpc import JsonRpcClient

logger = logging.getLogger(__name__)

BASE_USDC_CONTRACT = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def topic_to_address(topic: str) -> str:
    """Extract a lowercase 20-byte address from a 32-byte indexed topic."""
    if not isinstance(topic, str) or len(topic) != 66:
        raise ValueError(f"invalid address topic: {topic!r}")
    return "0x" + topic[-40:].lower()


def decode_transfer_logs(logs: List[Dict[str, Any]], token: str) -> List[Dict[str, Any]]:
    """
    Decode ERC-20 Transfer events emitted by a token contract.

    Returns:
        List of {"from", "to", "value"} with lowercase addresses and int values
    """
    token = token.lower()
    transfers = []
    for log in logs or []:
        if str(log.get("address", "")).lower() != token:
            continue
        topics = log.get("topics") or []
        if len(topics) < 3 or str(topics[0]).lower() != TRANSFER_TOPIC:
            continue
        transfers.append({
            "from": topic_to_address(topics[1]),
            "to": topic_to_address(topics[2]),
            "value": int(log.get("data") or "0x0", 16),
        })
    return transfers


class BaseVerifier:
    """Verifies USDC transfers on Base."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        token_contract: str = BASE_USDC_CONTRACT,
        token_decimals: int = USDC_DECIMALS,
        tolerance: Number = DEFAULT_TOLERANCE,
    ):
        self.rpc = rpc
        self.token_contract = token_contract
        self.token_decimals = token_decimals
        self.tolerance = tolerance

    @classmethod
    def from_url(
        cls,
        url: str,
        timeout_seconds: float = 10.0,
        tolerance: Number = DEFAULT_TOLERANCE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BaseVerifier":
        return cls(JsonRpcClient(url, timeout_seconds, transport=transport), tolerance=tolerance)

    async def verify(
        self,
        claim: PaymentClaim,
        required_recipient: str,
        required_price_usd: Number,
    ) -> VerificationResult:
        """
        Verify that a Base transaction pays required_price_usd in USDC to required_recipient.

        Returns:
            VerificationResult. Unknown hash maps to TX_NOT_FOUND, a known but
            unmined transaction to PENDING, any RPC or parsing failure to
            RPC_UNAVAILABLE.
        """
        tx_hash = claim.transaction_id

        try:
            receipt, tx = await asyncio.gather(
                self.rpc.call("eth_getTransactionReceipt", [tx_hash]),
                self.rpc.call("eth_getTransactionByHash", [tx_hash]),
            )
        except RpcUnavailableError as e:
            return VerificationResult.reject(DenialReason.RPC_UNAVAILABLE, detail=str(e))

        if receipt is None:
            if tx is None:
                return VerificationResult.reject(DenialReason.TX_NOT_FOUND, detail="Transaction not found")
            logger.info(f"Base tx {tx_hash} has no receipt yet")
            return VerificationResult.reject(DenialReason.PENDING, detail="Transaction not mined yet")

        try:
            payer = (tx or {}).get("from") or receipt.get("from")
            payer = payer.lower() if payer else None

            if receipt.get("status") != "0x1":
                return VerificationResult.reject(
                    DenialReason.TX_FAILED,
                    detail=f"Transaction reverted (status {receipt.get('status')})",
                    payer=payer,
                )

            transfers = decode_transfer_logs(receipt.get("logs"), self.token_contract)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Malformed Base receipt for {tx_hash}: {e}")
            return VerificationResult.reject(DenialReason.RPC_UNAVAILABLE, detail="Malformed transaction data")

        recipient = required_recipient.lower()
        to_recipient = [t for t in transfers if t["to"] == recipient]
        if not to_recipient:
            return VerificationResult.reject(
                DenialReason.RECIPIENT_MISMATCH,
                detail="No USDC transfer to the recipient wallet",
                payer=payer,
            )

        amount_usd = raw_to_usd(sum(t["value"] for t in to_recipient), self.token_decimals)

        if not amount_is_sufficient(amount_usd, required_price_usd, self.tolerance):
            return VerificationResult.reject(
                DenialReason.AMOUNT_MISMATCH,
                detail=f"Received {amount_usd} USDC, expected {required_price_usd}",
                payer=payer,
                recipient=required_recipient,
                amount_usd=amount_usd,
            )

        logger.info(f"Base payment verified: {tx_hash} {amount_usd} USDC from {payer}")
        return VerificationResult.accept(payer=payer, recipient=required_recipient, amount_usd=amount_usd)
