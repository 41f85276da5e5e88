"""
Device snapshot endpoints and HTTP frame ingestion.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from relay.dependencies import get_ingestion, get_relay, verify_api_key, verify_viewer
from relay.errors import MalformedMessage, Unauthorized
from relay.models.schemas import DeviceListResponse, ImageRecord, IngestResponse
from relay.services.ingestion import IngestionAdapter
from relay.services.relay import ImageRelay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=DeviceListResponse, dependencies=[Depends(verify_viewer)])
async def list_devices(relay: ImageRelay = Depends(get_relay)):
    """Latest frame of every device that has sent one."""
    devices = relay.snapshot()
    logger.info(f"Returning {len(devices)} devices")
    return DeviceListResponse(count=len(devices), devices=devices)


@router.get("/{esp_hmac}", response_model=ImageRecord, dependencies=[Depends(verify_viewer)])
async def get_device_image(esp_hmac: str, relay: ImageRelay = Depends(get_relay)):
    """Latest frame of one device."""
    record = relay.snapshot(esp_hmac)
    if record is None:
        logger.warning(f"No image data for {esp_hmac}")
        raise HTTPException(status_code=404, detail="No image data available for this device")
    return record


@router.post("/frames", response_model=IngestResponse)
async def ingest_frame(
    request: Request,
    ingestion: IngestionAdapter = Depends(get_ingestion),
    api_key: str = Depends(verify_api_key)
):
    """
    Receive a frame over HTTP.

    Accepts the same JSON document scanners publish over MQTT and feeds
    it through the same ingestion path. Storing and broadcasting run in
    the thread pool, off the event loop.
    """
    raw = await request.body()

    try:
        record, is_duplicate = await run_in_threadpool(ingestion.process, raw)
    except Unauthorized as e:
        raise HTTPException(status_code=401, detail=str(e))
    except MalformedMessage as e:
        raise HTTPException(status_code=422, detail=str(e))

    return IngestResponse(
        status="success",
        esp_hmac=record.esp_hmac,
        timestamp=record.timestamp,
        duplicate=is_duplicate
    )
