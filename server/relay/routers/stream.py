"""
WebSocket endpoints streaming live device frames.
"""

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, status

from relay.config import settings
from relay.dependencies import websocket_viewer_allowed
from relay.services.session import DeviceStreamSession

logger = logging.getLogger(__name__)

router = APIRouter()


async def _run_session(websocket: WebSocket, device_id: Optional[str]):
    session = DeviceStreamSession(
        websocket,
        websocket.app.state.relay,
        device_id=device_id,
        keepalive_interval=settings.ws_keepalive_interval,
        refresh_interval=settings.ws_refresh_interval
    )
    await session.run()


@router.websocket("/device")
async def device_stream(websocket: WebSocket, esp_hmac: Optional[str] = None):
    """Stream frames of one device."""
    if not esp_hmac:
        logger.warning("Stream request without esp_hmac parameter")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing esp_hmac query parameter")
        return

    if not websocket_viewer_allowed(websocket):
        logger.warning(f"Rejected stream request for {esp_hmac}: invalid viewer token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid viewer token")
        return

    logger.info(f"Opening stream for {esp_hmac}")
    await _run_session(websocket, esp_hmac)


@router.websocket("/devices/all")
async def all_devices_stream(websocket: WebSocket):
    """Stream frames of every device."""
    if not websocket_viewer_allowed(websocket):
        logger.warning("Rejected all-devices stream request: invalid viewer token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid viewer token")
        return

    logger.info("Opening stream for all devices")
    await _run_session(websocket, None)
