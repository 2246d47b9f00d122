"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter

from epubsplit.responses import success_response

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Liveness check endpoint.

    Returns 200 with the current server time if the process is running.
    """
    now = datetime.now(UTC).replace(microsecond=0)
    return success_response({"status": "ok", "time": now.isoformat()})
