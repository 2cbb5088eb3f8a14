# paygate/main.py
from fastapi import FastAPI
from paygate.core.config import settings
from paygate.api.endpoints import run
from paygate.gate.middleware import PaymentGateMiddleware
import logging

# Configure basic logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_PREFIX}/openapi.json"
)

# Paid routes live under /api; the middleware gates the ones listed in PROTECTED_ENDPOINTS
app.include_router(run.router, prefix=settings.API_PREFIX, tags=["service"])
app.add_middleware(
    PaymentGateMiddleware,
    description=settings.SERVICE_DESCRIPTION,
    schema=run.OUTPUT_SCHEMA,
)

@app.get("/", summary="Health Check", tags=["default"])
def read_root():
    """ Basic health check endpoint. """
    logger.info("Root endpoint '/' accessed.")
    return {"status": "ok", "message": f"Welcome to {settings.PROJECT_NAME}"}

@app.get("/health", summary="Health Check", tags=["default"])
def health():
    return {"status": "healthy", "service": settings.SERVICE_NAME}


def run():
    """Serve the app with uvicorn (console script: paygate)."""
    import uvicorn
    uvicorn.run(
        "paygate.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
