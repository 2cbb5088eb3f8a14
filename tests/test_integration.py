# tests/test_integration.py
"""
Integration tests for the paid fetch endpoint.

These tests run the full flow: middleware, rate limiting, claim extraction,
on-chain verification against faked RPC endpoints, replay protection and the
SSRF-guarded fetch. No real network access is needed.
"""
import httpx
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from paygate.api.endpoints import run
from paygate.gate.claims import Network
from paygate.gate.errors import DenialReason
from paygate.gate.fetch import FetchClient, FetchPolicy, get_fetch_client
from paygate.gate.middleware import PaymentGateMiddleware
from paygate.gate.orchestrator import PaymentGate
from paygate.gate.ratelimit import RateLimiter
from paygate.gate.replay import ReplayGuard
from paygate.gate.verifiers.base import BaseVerifier
from paygate.gate.verifiers.common import VerificationResult
from paygate.gate.verifiers.solana import SolanaVerifier

from conftest import (
    BASE_RECIPIENT,
    BASE_TX_HASH,
    SOLANA_RECIPIENT,
    SOLANA_SIGNATURE,
    base_receipt,
    base_transaction,
    rpc_transport,
    solana_transaction,
)

PRICE = 0.005
PRICE_RAW = 5000  # 0.005 USDC


def target_site(request: httpx.Request) -> httpx.Response:
    """Fake public website."""
    if request.url.path == "/big":
        return httpx.Response(200, text="x" * 60000)
    if request.url.path == "/down":
        return httpx.Response(503, text="unavailable")
    if request.url.path == "/to-metadata":
        return httpx.Response(302, headers={"Location": "http://169.254.169.254/latest/meta-data"})
    return httpx.Response(200, text="<html>Hello</html>")


def create_test_app(solana_amount=PRICE_RAW, base_amount=PRICE_RAW, solana_tx=None, limit=60) -> FastAPI:
    """Create an app wired like paygate.main but with faked RPC and targets."""
    solana_results = {"getTransaction": solana_tx if solana_tx is not None else solana_transaction(solana_amount)}
    base_results = {
        "eth_getTransactionReceipt": base_receipt(base_amount),
        "eth_getTransactionByHash": base_transaction(),
    }
    gate = PaymentGate(
        rate_limiter=RateLimiter(requests_per_window=limit, window_seconds=60),
        verifiers={
            Network.SOLANA: SolanaVerifier.from_url("https://solana.rpc.test", transport=rpc_transport(solana_results)),
            Network.BASE: BaseVerifier.from_url("https://base.rpc.test", transport=rpc_transport(base_results)),
        },
        replay_guard=ReplayGuard(),
        price_usd=PRICE,
        wallets={Network.SOLANA: SOLANA_RECIPIENT, Network.BASE: BASE_RECIPIENT},
    )

    app = FastAPI()
    app.include_router(run.router, prefix="/api")
    app.add_middleware(
        PaymentGateMiddleware,
        gate=gate,
        description="Fetch any webpage",
        schema=run.OUTPUT_SCHEMA,
    )

    fetch_client = FetchClient(
        policy=FetchPolicy(max_retries=1, backoff_ms=0),
        transport=httpx.MockTransport(target_site),
    )
    app.dependency_overrides[get_fetch_client] = lambda: fetch_client
    return app


class TestEndToEnd:
    """Payment scenarios through the full stack."""

    def test_valid_payment_granted(self):
        client = TestClient(create_test_app())

        response = client.get(
            "/api/run",
            params={"url": "https://example.com/"},
            headers={"Payment-Signature": SOLANA_SIGNATURE},
        )

        assert response.status_code == 200
        assert response.headers["X-Payment-Settled"] == "true"
        assert response.headers["X-Payment-TxHash"] == SOLANA_SIGNATURE
        data = response.json()
        assert data["url"] == "https://example.com/"
        assert data["status"] == 200
        assert data["text"] == "<html>Hello</html>"
        assert data["proxy"]["type"] == "mobile"
        assert data["payment"] == {
            "txHash": SOLANA_SIGNATURE,
            "network": "solana",
            "amount": 0.005,
            "settled": True,
        }

    def test_replayed_payment_denied(self):
        client = TestClient(create_test_app())
        headers = {"Payment-Signature": SOLANA_SIGNATURE}

        first = client.get("/api/run", params={"url": "https://example.com/"}, headers=headers)
        second = client.get("/api/run", params={"url": "https://example.com/"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 402
        assert second.json()["reason"] == "already_used"

    def test_replay_with_different_case_denied(self):
        """An uppercased Base hash is the same proof."""
        client = TestClient(create_test_app())

        first = client.get(
            "/api/run", params={"url": "https://example.com/"},
            headers={"Payment-Signature": BASE_TX_HASH},
        )
        second = client.get(
            "/api/run", params={"url": "https://example.com/"},
            headers={"Payment-Signature": "0x" + BASE_TX_HASH[2:].upper()},
        )

        assert first.status_code == 200
        assert second.json()["reason"] == "already_used"

    def test_half_payment_denied(self):
        client = TestClient(create_test_app(solana_amount=PRICE_RAW // 2))

        response = client.get(
            "/api/run",
            params={"url": "https://example.com/"},
            headers={"Payment-Signature": SOLANA_SIGNATURE},
        )

        assert response.status_code == 402
        data = response.json()
        assert data["error"] == "Payment verification failed"
        assert data["reason"] == "amount_mismatch"
        assert "hint" in data

    def test_absent_claim_returns_instructions(self):
        client = TestClient(create_test_app())

        response = client.get("/api/run", params={"url": "https://example.com/"})

        assert response.status_code == 402
        data = response.json()
        for key in ("price", "wallet", "networks", "endpoint", "description", "schema"):
            assert key in data
        assert data["endpoint"] == "/api/run"
        assert data["schema"] == run.OUTPUT_SCHEMA

    def test_base_payment_granted(self):
        client = TestClient(create_test_app())

        response = client.get(
            "/api/run",
            params={"url": "https://example.com/"},
            headers={"X-Payment-Signature": BASE_TX_HASH, "X-Payment-Network": "base"},
        )

        assert response.status_code == 200
        assert response.json()["payment"]["network"] == "base"

    def test_pending_transaction_can_be_retried(self):
        """A not-yet-confirmed proof is not burned."""
        app = create_test_app()
        client = TestClient(app)
        headers = {"Payment-Signature": SOLANA_SIGNATURE}

        with patch.object(SolanaVerifier, "verify") as mock_verify:
            mock_verify.return_value = VerificationResult.reject(DenialReason.PENDING)
            pending = client.get("/api/run", params={"url": "https://example.com/"}, headers=headers)

        confirmed = client.get("/api/run", params={"url": "https://example.com/"}, headers=headers)

        assert pending.status_code == 402
        assert pending.json()["reason"] == "pending"
        assert confirmed.status_code == 200

    def test_rpc_outage_fails_closed(self):
        client = TestClient(create_test_app(solana_tx=httpx.Response(502)))

        response = client.get(
            "/api/run",
            params={"url": "https://example.com/"},
            headers={"Payment-Signature": SOLANA_SIGNATURE},
        )

        assert response.status_code == 402
        assert response.json()["reason"] == "rpc_unavailable"

    def test_rate_limit(self):
        client = TestClient(create_test_app(limit=2))

        for _ in range(2):
            client.get("/api/run")
        response = client.get("/api/run")

        assert response.status_code == 429
        assert "Retry-After" in response.headers


class TestRunEndpoint:
    """Paid fetch endpoint input handling and upstream errors."""

    def _get(self, client, url=None, tx=SOLANA_SIGNATURE):
        params = {"url": url} if url is not None else {}
        return client.get("/api/run", params=params, headers={"Payment-Signature": tx})

    def test_missing_url(self):
        response = self._get(TestClient(create_test_app()))

        assert response.status_code == 400
        assert "Missing required parameter" in response.json()["error"]

    def test_non_http_scheme(self):
        response = self._get(TestClient(create_test_app()), url="ftp://example.com/file")

        assert response.status_code == 400
        assert response.json()["error"] == "Only http:// and https:// URLs are allowed"

    def test_ssrf_blocked(self):
        response = self._get(TestClient(create_test_app()), url="http://169.254.169.254/latest/meta-data")

        assert response.status_code == 400
        assert response.json() == {"error": "Private/internal URLs are not allowed"}

    def test_redirect_to_internal_blocked(self):
        response = self._get(TestClient(create_test_app()), url="https://example.com/to-metadata")

        assert response.status_code == 400
        assert response.json() == {"error": "Private/internal URLs are not allowed"}

    def test_upstream_failure_returns_502(self):
        response = self._get(TestClient(create_test_app()), url="https://example.com/down")

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "Service execution failed"
        assert "hint" in data
        assert "X-Payment-Settled" not in response.headers

    @patch("paygate.api.endpoints.run.settings")
    def test_body_truncated(self, mock_settings):
        mock_settings.FETCH_MAX_BODY_CHARS = 50000
        mock_settings.PROXY_COUNTRY = "DE"

        response = self._get(TestClient(create_test_app()), url="https://example.com/big")

        data = response.json()
        assert len(data["text"]) == 50000
        assert data["contentLength"] == 60000
        assert data["proxy"] == {"country": "DE", "type": "mobile"}
