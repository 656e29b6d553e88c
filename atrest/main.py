"""atrest - at-rest encryption service."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from atrest.api.assets import router as assets_router
from atrest.errors import AtRestError, AuthenticationError
from atrest.logging_hardening import setup_logging_redaction
from atrest.routers import health

logger = logging.getLogger(__name__)

# Initialize logging redaction filters early
setup_logging_redaction()

app = FastAPI(title="atrest", version="0.1.0")


@app.exception_handler(AuthenticationError)
async def decryption_failed_handler(request: Request, exc: AuthenticationError):
    # Render inline so the browser shows the error instead of saving it as the file
    logger.error(f"Decryption failed for {request.url.path}: {exc}")
    return PlainTextResponse(
        "The requested file could not be decrypted.",
        status_code=500,
        headers={"Content-Disposition": "inline", "Cache-Control": "private, no-cache, no-store"},
    )


@app.exception_handler(AtRestError)
async def atrest_error_handler(request: Request, exc: AtRestError):
    logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return PlainTextResponse(
        "The request could not be completed.",
        status_code=500,
        headers={"Content-Disposition": "inline"},
    )


# Mount routers
app.include_router(assets_router.router, tags=["Assets"])
app.include_router(health.router, tags=["Health"])
