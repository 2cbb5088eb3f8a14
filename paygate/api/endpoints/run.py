# paygate/api/endpoints/run.py
from typing import Optional
from urllib.parse import urlsplit
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from starlette.responses import JSONResponse

from paygate.core.config import settings
from paygate.gate.errors import FetchError, SsrfBlockedError
from paygate.gate.fetch import FetchClient, get_fetch_client
from paygate.gate.orchestrator import GateDecision
from paygate.gate.ssrf import ALLOWED_SCHEMES
from paygate.api.models.run import PaymentInfo, ProxyInfo, RunResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# Describes what the endpoint accepts and returns; sent in 402 responses
OUTPUT_SCHEMA = {
    "input": {
        "url": "string - URL to fetch (required)",
    },
    "output": {
        "url": "string - the URL that was fetched",
        "status": "number - HTTP status code from the target",
        "text": "string - page text content (max 50KB)",
        "contentLength": "number - downloaded content length before truncation",
        "proxy": '{ country: string, type: "mobile" }',
        "payment": "{ txHash: string, network: string, amount: number, settled: boolean }",
    },
}

MOBILE_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 14; Pixel 8 Pro) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Mobile Safari/537.36"
)


def get_payment(request: Request) -> GateDecision:
    """Granted payment decision attached by PaymentGateMiddleware."""
    payment = getattr(request.state, "payment", None)
    if payment is None or not payment.granted:
        logger.error("Paid endpoint reached without a granted payment; is the gate middleware installed?")
        raise HTTPException(status_code=500, detail="Payment gate not configured")
    return payment


@router.get("/run", response_model=RunResponse)
async def run(
    url: Optional[str] = Query(None, description="URL to fetch"),
    payment: GateDecision = Depends(get_payment),
    fetch_client: FetchClient = Depends(get_fetch_client),
):
    """
    Fetch a webpage through the mobile proxy and return its text content.

    Returns:
        RunResponse with the target's status, text and the consumed payment

    Raises:
        400 for a missing, malformed or private/internal URL,
        502 if the target stays unreachable after retries
    """
    if not url:
        return JSONResponse(status_code=400, content={"error": "Missing required parameter: ?url=<target_url>"})

    try:
        parts = urlsplit(url)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid URL format"})

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return JSONResponse(status_code=400, content={"error": "Only http:// and https:// URLs are allowed"})
    if not parts.netloc:
        return JSONResponse(status_code=400, content={"error": "Invalid URL format"})

    try:
        response = await fetch_client.fetch(url, headers={"User-Agent": MOBILE_USER_AGENT})
    except SsrfBlockedError as e:
        logger.warning(f"Blocked fetch of {e.url}")
        return JSONResponse(status_code=400, content={"error": "Private/internal URLs are not allowed"})
    except FetchError as e:
        logger.error(f"Fetch of {url} failed after {e.attempts} attempts: {e}")
        content = {
            "error": "Service execution failed",
            "message": str(e),
            "hint": "The target URL may be unreachable or the proxy may be temporarily unavailable.",
        }
        if e.reason is not None:
            content["reason"] = e.reason.value
        return JSONResponse(status_code=502, content=content)

    text = response.text
    max_len = settings.FETCH_MAX_BODY_CHARS
    claim = payment.claim
    amount = payment.verification.amount_usd if payment.verification else None

    logger.info(f"Fetched {url} with HTTP {response.status_code} ({len(text)} chars) for tx {claim.transaction_id}")
    return RunResponse(
        url=url,
        status=response.status_code,
        text=text[:max_len],
        contentLength=len(text),
        proxy=ProxyInfo(country=settings.PROXY_COUNTRY),
        payment=PaymentInfo(
            txHash=claim.transaction_id,
            network=claim.network.value,
            amount=float(amount) if amount is not None else None,
        ),
    )
