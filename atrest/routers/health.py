from fastapi import APIRouter, Depends, HTTPException
import logging

from atrest.dependencies import get_asset_store, get_key_resolver

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health/live")
async def liveness():
    """Liveness probe: Service is running."""
    return {"status": "ok", "checks": {"api": "ok"}}


@router.get("/health/ready")
def readiness(resolver=Depends(get_key_resolver)):
    """Readiness probe: default key loaded and storage writable."""
    health = {"status": "ok", "checks": {}}

    # 1. Default key
    health["checks"]["default_key"] = "ok" if resolver.has_default else "missing"
    if not resolver.has_default:
        health["status"] = "failed"

    # 2. Storage
    try:
        store = get_asset_store()
        store.root.stat()
        health["checks"]["storage"] = "ok"
    except Exception as e:
        logger.error(f"Health check failed (storage): {e}")
        health["checks"]["storage"] = "failed"
        health["status"] = "failed"

    if health["status"] == "failed":
        raise HTTPException(status_code=503, detail=health)

    return health
