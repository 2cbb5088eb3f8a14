from typing import Optional
from pydantic import BaseModel, Field


class ProxyInfo(BaseModel):
    """
    Upstream proxy the target was fetched through.
    """
    country: str
    type: str = "mobile"


class PaymentInfo(BaseModel):
    """
    Payment consumed by the request.
    """
    txHash: str
    network: str
    amount: Optional[float] = Field(None, description="Verified amount in USDC.")
    settled: bool = True


class RunResponse(BaseModel):
    """
    Response model for the paid fetch endpoint.
    """
    url: str = Field(..., description="The URL that was fetched.")
    status: int = Field(..., description="HTTP status code from the target.")
    text: str = Field(..., description="Page text content, truncated to the configured cap.")
    contentLength: int = Field(..., description="Downloaded content length in characters, before truncation.")
    proxy: ProxyInfo
    payment: PaymentInfo
