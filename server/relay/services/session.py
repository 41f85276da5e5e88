"""
Per-connection session for live device streams.
Registers the viewer, sends the snapshot, then streams until either side closes.
"""

import asyncio
import enum
import json
import logging
import time
from typing import Optional

from fastapi import WebSocket

from relay.models.schemas import (
    ConnectionStatusMessage,
    ImageRecord,
    KeepAliveMessage,
    encode_message,
    encode_record,
    encode_records
)
from relay.services.image_store import now_millis
from relay.services.registry import CLOSED, Subscriber
from relay.services.relay import ImageRelay

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    REGISTERED = "registered"
    STREAMING = "streaming"
    CLOSED = "closed"


class DeviceStreamSession:
    """Streams frames of one device, or of all devices, to a WebSocket."""

    def __init__(
        self,
        websocket: WebSocket,
        relay: ImageRelay,
        device_id: Optional[str] = None,
        keepalive_interval: float = 30.0,
        refresh_interval: float = 15.0
    ):
        self.websocket = websocket
        self.relay = relay
        self.device_id = device_id
        self.keepalive_interval = keepalive_interval
        self.refresh_interval = refresh_interval

        self.state = SessionState.CONNECTING
        self.subscriber: Optional[Subscriber] = None
        self.messages_sent = 0
        self._connected_at = time.monotonic()

    @property
    def scope(self) -> str:
        return self.device_id if self.device_id is not None else "all_devices"

    async def run(self):
        """Drive the session from handshake to teardown."""
        try:
            await self.websocket.accept()
            await self._send_connection_status()
            self.register()
            self.state = SessionState.STREAMING
            logger.info(f"Streaming {self.scope} to subscriber {self.subscriber.id}")
            await self._stream()
        except Exception as e:
            logger.error(f"Stream session for {self.scope} failed: {e}")
        finally:
            await self.close()

    def register(self):
        """Register with the relay, then queue the current snapshot.

        Registering first means no frame stored afterwards can be missed;
        a frame racing with the snapshot may arrive twice.
        """
        loop = asyncio.get_running_loop()
        self.subscriber = self.relay.subscribe(self.device_id, loop=loop)
        self.state = SessionState.REGISTERED

        snapshot = self._snapshot_message()
        if snapshot is not None:
            self.subscriber.offer(snapshot)

    def _snapshot_message(self, timestamp: Optional[int] = None) -> Optional[str]:
        """Current snapshot for this scope, optionally re-stamped with ``timestamp``."""
        if self.device_id is not None:
            record = self.relay.snapshot(self.device_id)
            if record is None:
                return None
            return encode_record(_restamp(record, timestamp))

        records = self.relay.snapshot()
        if not records:
            return None
        return encode_records([_restamp(r, timestamp) for r in records])

    async def _stream(self):
        outbound = asyncio.create_task(self._outbound_duty())
        inbound = asyncio.create_task(self._inbound_duty())
        done, pending = await asyncio.wait(
            {outbound, inbound},
            return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.info(f"Stream for {self.scope} ended: {task.exception()}")

    async def _outbound_duty(self):
        """Drain the channel to the socket; send keep-alive and refresh when due."""
        loop = asyncio.get_running_loop()
        next_keepalive = loop.time() + self.keepalive_interval
        next_refresh = loop.time() + self.refresh_interval

        # One pending get() survives ticker timeouts, so a message dequeued
        # while a tick is being sent is never lost.
        pending_get = None
        try:
            while True:
                if pending_get is None:
                    pending_get = asyncio.ensure_future(self.subscriber.outbound.get())
                timeout = max(0.0, min(next_keepalive, next_refresh) - loop.time())
                done, _ = await asyncio.wait({pending_get}, timeout=timeout)

                if not done:
                    now = loop.time()
                    if now >= next_keepalive:
                        await self._send(self._keep_alive_message())
                        next_keepalive = now + self.keepalive_interval
                    if now >= next_refresh:
                        refresh = self._snapshot_message(timestamp=now_millis())
                        if refresh is not None:
                            await self._send(refresh)
                        next_refresh = now + self.refresh_interval
                    continue

                message = pending_get.result()
                pending_get = None
                if message is CLOSED:
                    logger.info(f"Channel closed for {self.scope}, stopping sender")
                    return
                await self._send(message)
        finally:
            if pending_get is not None:
                pending_get.cancel()

    async def _inbound_duty(self):
        """Read until the client goes away; answer application pings."""
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"Client for {self.scope} disconnected (code {message.get('code')})")
                return

            text = message.get("text")
            if text and _is_ping(text):
                await self._send(json.dumps({"type": "pong", "timestamp": now_millis()}))

    async def _send(self, message: str):
        await self.websocket.send_text(message)
        self.messages_sent += 1

    async def _send_connection_status(self):
        status = ConnectionStatusMessage(
            timestamp=now_millis(),
            message=f"WebSocket connection established for {self.scope.replace('_', ' ')}"
        )
        if self.device_id is not None:
            status.esp_hmac = self.device_id
        else:
            status.mode = "all_devices"
        await self._send(encode_message(status))

    def _keep_alive_message(self) -> str:
        message = KeepAliveMessage(timestamp=now_millis())
        if self.device_id is not None:
            message.esp_hmac = self.device_id
        else:
            message.mode = "all_devices"
        return encode_message(message)

    async def close(self):
        """Unregister, close the channel and release the socket. Idempotent."""
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        if self.subscriber is not None:
            self.relay.unsubscribe(self.subscriber)

        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"Socket for {self.scope} already closed: {e}")

        logger.info(
            f"Session for {self.scope} closed after {time.monotonic() - self._connected_at:.1f}s, "
            f"{self.messages_sent} messages sent"
        )


def _restamp(record: ImageRecord, timestamp: Optional[int]) -> ImageRecord:
    if timestamp is None:
        return record
    return record.model_copy(update={'timestamp': timestamp})


def _is_ping(text: str) -> bool:
    try:
        data = json.loads(text)
    except ValueError:
        return text.strip().lower() == "ping"
    return isinstance(data, dict) and data.get("type") == "ping"
