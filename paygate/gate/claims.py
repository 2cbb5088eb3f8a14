# paygate/gate/claims.py
"""
Payment claim extraction.

Parses request headers into an unverified PaymentClaim. Whether the claimed
transaction actually pays for the request is decided by the chain verifiers.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from paygate.gate.errors import UnknownNetworkError

logger = logging.getLogger(__name__)

# Transaction id headers, in order of precedence
PAYMENT_SIGNATURE_HEADERS = ("Payment-Signature", "X-Payment-Signature", "X-Payment-TxHash")
PAYMENT_NETWORK_HEADER = "X-Payment-Network"

EVM_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
# Solana signatures are 64 bytes, base58-encoded to 87 or 88 characters
SOLANA_SIGNATURE_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{87,88}$")


class Network(Enum):
    """Supported payment networks."""
    SOLANA = "solana"
    BASE = "base"


NETWORK_ALIASES = {
    "solana": Network.SOLANA,
    "sol": Network.SOLANA,
    "solana-mainnet": Network.SOLANA,
    "base": Network.BASE,
    "base-mainnet": Network.BASE,
    "evm": Network.BASE,
}


@dataclass(frozen=True)
class PaymentClaim:
    """An unverified assertion that a transaction pays for this request."""
    transaction_id: str
    network: Network

    @property
    def replay_key(self):
        return (self.network.value, self.transaction_id)


def infer_network(transaction_id: str) -> Optional[Network]:
    """
    Guess the network from the shape of a transaction id.

    Returns:
        Network.BASE for 0x-prefixed 64-hex hashes, Network.SOLANA for
        87-88 character base58 signatures, None otherwise.
    """
    if EVM_TX_HASH_RE.match(transaction_id):
        return Network.BASE
    if SOLANA_SIGNATURE_RE.match(transaction_id):
        return Network.SOLANA
    return None


def parse_network(name: str) -> Network:
    """
    Parse a network name from the X-Payment-Network header.

    Raises:
        UnknownNetworkError: If the name is not a supported network
    """
    network = NETWORK_ALIASES.get(name.strip().lower())
    if network is None:
        raise UnknownNetworkError(f"Unsupported payment network: {name}", network=name)
    return network


def _get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    if value is None:
        return None
    value = value.strip()
    return value or None


def extract_payment_claim(headers: Mapping[str, str]) -> Optional[PaymentClaim]:
    """
    Extract a payment claim from request headers.

    Args:
        headers: Request headers (case-insensitive mapping or plain dict)

    Returns:
        PaymentClaim, or None if no transaction id header is present

    Raises:
        UnknownNetworkError: If the network header is unsupported, or it is
            absent and the id matches no known network shape
    """
    transaction_id = None
    for name in PAYMENT_SIGNATURE_HEADERS:
        transaction_id = _get_header(headers, name)
        if transaction_id:
            break

    if not transaction_id:
        return None

    network_name = _get_header(headers, PAYMENT_NETWORK_HEADER)
    if network_name:
        network = parse_network(network_name)
        inferred = infer_network(transaction_id)
        if inferred is not None and inferred != network:
            # Left to the verifier to reject
            logger.info(f"Payment id shape looks like {inferred.value} but network header says {network.value}")
    else:
        network = infer_network(transaction_id)
        if network is None:
            raise UnknownNetworkError("Cannot infer payment network from transaction id")

    if network == Network.BASE:
        # Hex hashes are case-insensitive; normalize so case variants share a replay key
        transaction_id = transaction_id.lower()

    return PaymentClaim(transaction_id=transaction_id, network=network)
