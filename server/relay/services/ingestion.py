"""
Ingestion adapter for scanner frames.
Validates raw bus messages and hands them to the relay.
"""

import json
import logging
import threading
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from relay.errors import IngestError, MalformedMessage, Unauthorized
from relay.models.schemas import ImageRecord, IngestMessage
from relay.services.relay import ImageRelay

logger = logging.getLogger(__name__)


class IngestionAdapter:
    """Turns raw frame messages into relay ingests."""

    def __init__(self, relay: ImageRelay, api_key: Optional[str] = None):
        self.relay = relay
        self.api_key = api_key or ""
        self._stats = {
            'accepted': 0,
            'duplicates': 0,
            'rejected': 0
        }
        self._stats_lock = threading.Lock()

    @property
    def stats(self) -> dict:
        """Copy of the ingest counters."""
        with self._stats_lock:
            return dict(self._stats)

    def _count(self, *keys: str):
        with self._stats_lock:
            for key in keys:
                self._stats[key] += 1

    def parse(self, raw: Union[bytes, str]) -> IngestMessage:
        """Parse and check a raw frame message."""
        try:
            data = json.loads(raw)
        except (ValueError, TypeError) as e:
            raise MalformedMessage(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedMessage(f"Expected a JSON object, got {type(data).__name__}")

        try:
            message = IngestMessage.model_validate(data)
        except ValidationError as e:
            raise MalformedMessage(f"Invalid frame fields: {e.error_count()} error(s)") from e

        if self.api_key and message.api_key != self.api_key:
            raise Unauthorized("Invalid API key")

        if not message.mac_address:
            raise MalformedMessage("Empty MAC address")

        if not message.image:
            raise MalformedMessage(f"Empty image from {message.mac_address}")

        return message

    def process(self, raw: Union[bytes, str]) -> Tuple[ImageRecord, bool]:
        """Validate a frame, store it and broadcast it. Raises IngestError."""
        try:
            message = self.parse(raw)
        except IngestError:
            self._count('rejected')
            raise

        logger.debug(f"Frame from {message.mac_address}, image length {len(message.image)}")

        record, is_duplicate = self.relay.ingest(message.mac_address, message.image)

        if is_duplicate:
            self._count('accepted', 'duplicates')
        else:
            self._count('accepted')
        return record, is_duplicate

    def on_message(self, raw: Union[bytes, str]):
        """Bus callback: process a frame, logging and dropping rejects."""
        try:
            self.process(raw)
        except Unauthorized:
            logger.warning("Dropped frame with invalid API key")
        except IngestError as e:
            logger.warning(f"Dropped malformed frame: {e}")
