"""
FastAPI application for the Parkingo device-image relay.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay import __version__
from relay.config import settings
from relay.routers import devices, stream, health
from relay.services.image_store import Fingerprinter, ImageStore
from relay.services.ingestion import IngestionAdapter
from relay.services.mqtt_subscriber import MQTTSubscriber
from relay.services.relay import ImageRelay

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def log_status(app: FastAPI, interval: float):
    """Periodically log device, subscriber and broker status."""
    while True:
        await asyncio.sleep(interval)
        status = app.state.relay.status()
        mqtt_subscriber = app.state.mqtt_subscriber
        mqtt_connected = mqtt_subscriber is not None and mqtt_subscriber.connected
        logger.info(
            f"STATUS: MQTT connected: {mqtt_connected}, devices: {status['devices']}, "
            f"device subscribers: {status['specific_subscribers']}, "
            f"all-devices subscribers: {status['all_subscribers']}"
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting Parkingo Relay...")

    store = ImageStore(
        fingerprinter=Fingerprinter(
            mode=settings.fingerprint_mode,
            prefix_length=settings.fingerprint_prefix_length
        )
    )
    app.state.relay = ImageRelay(store=store, channel_capacity=settings.ws_channel_capacity)
    app.state.ingestion = IngestionAdapter(app.state.relay, api_key=settings.mqtt_api_key)

    # Initialize MQTT subscriber
    app.state.mqtt_subscriber = None
    if settings.mqtt_enabled:
        app.state.mqtt_subscriber = MQTTSubscriber(
            on_frame=app.state.ingestion.on_message,
            host=settings.mqtt_host,
            port=settings.mqtt_port,
            topic=settings.mqtt_topic,
            client_prefix=settings.mqtt_client_prefix,
            username=settings.mqtt_username or None,
            password=settings.mqtt_password or None,
            keepalive=settings.mqtt_keepalive
        )
        app.state.mqtt_subscriber.connect()
    else:
        logger.info("MQTT ingestion disabled, accepting frames over HTTP only")

    status_task = None
    if settings.status_log_interval > 0:
        status_task = asyncio.create_task(log_status(app, settings.status_log_interval))

    logger.info("Parkingo Relay started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Parkingo Relay...")
    if status_task is not None:
        status_task.cancel()
        await asyncio.gather(status_task, return_exceptions=True)
    if app.state.mqtt_subscriber is not None:
        app.state.mqtt_subscriber.disconnect()


app = FastAPI(
    title="Parkingo Relay API",
    description="Live scanner image relay from MQTT to WebSocket viewers",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(devices.router, prefix="/api/v1/devices", tags=["devices"])
app.include_router(health.router, prefix="/api/v1/health", tags=["health"])
app.include_router(stream.router, prefix="/ws", tags=["stream"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Parkingo Relay",
        "version": __version__,
        "status": "running"
    }
