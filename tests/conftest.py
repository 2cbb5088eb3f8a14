# tests/conftest.py
"""Shared fixtures and JSON-RPC fakes for payment gate tests."""
import json
from typing import Any, Dict

import httpx
import pytest

from paygate.gate.verifiers.base import BASE_USDC_CONTRACT, TRANSFER_TOPIC
from paygate.gate.verifiers.solana import SOLANA_USDC_MINT

SOLANA_RECIPIENT = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
SOLANA_PAYER = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"
SOLANA_SIGNATURE = (
    "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
)

BASE_RECIPIENT = "0x" + "ab" * 20
BASE_PAYER = "0x" + "cd" * 20
BASE_TX_HASH = "0x" + "1f" * 32


def rpc_transport(results: Dict[str, Any], calls: list = None) -> httpx.MockTransport:
    """
    Fake JSON-RPC endpoint.

    results maps method name to the "result" value, or to an httpx.Response
    returned verbatim, or to an exception raised by the transport.
    """

    def handler(request: httpx.Request):
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        result = results[body["method"]]
        if isinstance(result, Exception):
            raise result
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return httpx.MockTransport(handler)


def solana_transaction(
    amount_raw: int,
    recipient: str = SOLANA_RECIPIENT,
    payer: str = SOLANA_PAYER,
    mint: str = SOLANA_USDC_MINT,
    err=None,
) -> Dict[str, Any]:
    """getTransaction (jsonParsed) result for a USDC transfer."""
    payer_before = 10_000_000
    return {
        "slot": 250000000,
        "meta": {
            "err": err,
            "preTokenBalances": [
                {"accountIndex": 1, "mint": mint, "owner": payer,
                 "uiTokenAmount": {"amount": str(payer_before), "decimals": 6}},
                {"accountIndex": 2, "mint": mint, "owner": recipient,
                 "uiTokenAmount": {"amount": "0", "decimals": 6}},
            ],
            "postTokenBalances": [
                {"accountIndex": 1, "mint": mint, "owner": payer,
                 "uiTokenAmount": {"amount": str(payer_before - amount_raw), "decimals": 6}},
                {"accountIndex": 2, "mint": mint, "owner": recipient,
                 "uiTokenAmount": {"amount": str(amount_raw), "decimals": 6}},
            ],
        },
        "transaction": {
            "message": {
                "accountKeys": [{"pubkey": payer, "signer": True, "writable": True}],
            },
        },
    }


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def base_receipt(
    amount_raw: int,
    recipient: str = BASE_RECIPIENT,
    payer: str = BASE_PAYER,
    token: str = BASE_USDC_CONTRACT,
    status: str = "0x1",
) -> Dict[str, Any]:
    """eth_getTransactionReceipt result for a USDC transfer."""
    return {
        "transactionHash": BASE_TX_HASH,
        "from": payer,
        "to": token,
        "status": status,
        "logs": [
            {
                "address": token,
                "topics": [TRANSFER_TOPIC, address_topic(payer), address_topic(recipient)],
                "data": "0x" + format(amount_raw, "064x"),
            }
        ],
    }


def base_transaction(payer: str = BASE_PAYER) -> Dict[str, Any]:
    """eth_getTransactionByHash result."""
    return {"hash": BASE_TX_HASH, "from": payer, "to": BASE_USDC_CONTRACT}


@pytest.fixture
def solana_signature() -> str:
    return SOLANA_SIGNATURE


@pytest.fixture
def base_tx_hash() -> str:
    return BASE_TX_HASH
