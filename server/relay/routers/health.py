"""
Health check and relay status endpoints.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from relay import __version__
from relay.dependencies import get_relay
from relay.models.schemas import RelayStatusResponse
from relay.services.relay import ImageRelay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "Parkingo Relay",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/relay", response_model=RelayStatusResponse)
async def relay_status(request: Request, relay: ImageRelay = Depends(get_relay)):
    """Device and subscriber counts plus ingestion counters."""
    mqtt_subscriber = request.app.state.mqtt_subscriber
    return RelayStatusResponse(
        **relay.status(),
        mqtt_connected=mqtt_subscriber is not None and mqtt_subscriber.connected,
        ingest=request.app.state.ingestion.stats
    )
