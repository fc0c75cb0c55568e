import logging
import math

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import health, swap
from .config import settings
from .core.errors import RateLimitExceeded, SwapError, sanitize_error_message
from .logging_config import setup_logging
from .middleware import RateLimitMiddleware, RequestLoggingMiddleware

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Swap Copilot API",
    description="Quote aggregation and swap execution orchestration on Base",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Middleware runs in reverse order of registration: logging wraps rate limiting.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(swap.router, tags=["Swap"])


@app.exception_handler(SwapError)
async def swap_error_handler(request: Request, exc: SwapError) -> JSONResponse:
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    headers = {}
    if isinstance(exc, RateLimitExceeded):
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    return JSONResponse({"error": exc.safe_message}, status_code=exc.status_code, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    return JSONResponse(
        {"error": "Invalid parameters", "fields": fields},
        status_code=400,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse({"error": sanitize_error_message(exc)}, status_code=500)


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Swap Copilot API",
        "version": __version__,
        "chainId": settings.chain_id,
        "docs": "/docs",
        "health": "/healthz",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "swap_copilot.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
