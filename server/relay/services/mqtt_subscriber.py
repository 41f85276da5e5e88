"""
MQTT subscriber feeding scanner frames into the ingestion adapter.
"""

import logging
import time
from typing import Callable, Optional

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)


class MQTTSubscriber:
    """MQTT client wrapper for the frame topic.

    Reconnects are handled by paho's network loop; the topic is
    re-subscribed on every successful connect.
    """

    def __init__(
        self,
        on_frame: Callable[[bytes], None],
        host: str = "localhost",
        port: int = 1883,
        topic: str = "parkingo/scanner/image",
        client_prefix: str = "parkingo-relay",
        username: Optional[str] = None,
        password: Optional[str] = None,
        keepalive: int = 60
    ):
        self.on_frame = on_frame
        self.host = host
        self.port = port
        self.topic = topic
        self.keepalive = keepalive

        # Timestamped id avoids clashing with a previous instance still known to the broker
        self.client_id = f"{client_prefix}-{int(time.time())}"
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            clean_session=False
        )
        self.connected = False

        # Set up callbacks
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self.client.reconnect_delay_set(min_delay=1, max_delay=60)

        # Set credentials if provided
        if username and password:
            self.client.username_pw_set(username, password)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Handle connection event."""
        if reason_code.is_failure:
            logger.error(f"MQTT connection failed: {reason_code}")
            return

        self.connected = True
        logger.info(f"Connected to MQTT broker at {self.host}:{self.port} as {self.client_id}")
        client.subscribe(self.topic, qos=1)
        logger.info(f"Subscribed to MQTT topic: {self.topic}")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        """Handle disconnection event."""
        self.connected = False
        logger.warning(f"Disconnected from MQTT broker ({reason_code}), will auto-reconnect")

    def _on_message(self, client, userdata, msg):
        """Forward a frame to the ingestion adapter."""
        logger.debug(f"Received message on {msg.topic} ({len(msg.payload)} bytes)")
        try:
            self.on_frame(msg.payload)
        except Exception as e:
            logger.error(f"Error processing message on {msg.topic}: {e}")

    def connect(self) -> bool:
        """Start connecting to the broker in the background."""
        try:
            self.client.connect_async(self.host, self.port, keepalive=self.keepalive)
            self.client.loop_start()
            logger.info(f"Connecting to MQTT broker at {self.host}:{self.port}")
            return True
        except Exception as e:
            logger.error(f"Failed to start MQTT client: {e}")
            return False

    def disconnect(self):
        """Disconnect from broker."""
        self.client.disconnect()
        self.client.loop_stop()
        self.connected = False
        logger.info("MQTT subscriber disconnected")
