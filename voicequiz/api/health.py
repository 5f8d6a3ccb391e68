"""
Health check and metrics endpoints
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from voicequiz.core.logging import get_logger
from voicequiz.core.resilience import get_circuit_breaker_status
from voicequiz.schemas.relay import HealthResponse

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Returns 200 while the relay process is up."""
    logger.debug("health_check_requested")
    return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())


@router.get("/health/breakers")
async def breaker_status():
    return get_circuit_breaker_status()


@router.get("/metrics")
async def metrics():
    """Prometheus exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
