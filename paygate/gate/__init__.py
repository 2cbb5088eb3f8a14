# paygate/gate/__init__.py
"""
On-chain payment admission gate.

This package decides, per request to a paid endpoint, whether the client
presented a valid, unused USDC payment on Solana or Base.

Key components:
- ratelimit: Fixed window per-IP rate limiting
- claims: Payment claim extraction from request headers
- verifiers: On-chain verification per network (Solana, Base)
- replay: At-most-once consumption of payment proofs
- orchestrator: The admission sequence and its decision
- middleware: FastAPI middleware applying the gate to protected endpoints
- ssrf, fetch: SSRF-guarded outbound fetching for paid handlers

Configuration is loaded from environment variables via paygate.core.config.
"""

__version__ = "0.1.0"
