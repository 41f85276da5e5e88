"""
Latest-frame store for scanner devices.
Keeps one record per device and suppresses duplicate frames.
"""

import hashlib
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from relay.models.schemas import ImageRecord
from relay.services.locking import ReadWriteLock

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "data:image/jpeg;base64,"
MEDIA_PREFIXES = ("data:image/", "data:video/")


def now_millis() -> int:
    return int(time.time() * 1000)


def normalize_payload(payload: str) -> str:
    """Prepend the data-URI media prefix unless the device already sent one."""
    if payload and not payload.startswith(MEDIA_PREFIXES):
        return IMAGE_PREFIX + payload
    return payload


class Fingerprinter:
    """Duplicate filter over the encoded payload.

    ``sha256`` hashes the whole payload. ``prefix`` compares only the first
    ``prefix_length`` characters, which is cheaper but treats two different
    frames sharing that prefix as duplicates. Since every normalized frame
    starts with the same data-URI header, the prefix must be long enough to
    reach into the image bytes.
    """

    MODES = ("sha256", "prefix")

    def __init__(self, mode: str = "sha256", prefix_length: int = 100):
        if mode not in self.MODES:
            raise ValueError(f"Unknown fingerprint mode: {mode}")
        if prefix_length <= 0:
            raise ValueError("prefix_length must be positive")
        self.mode = mode
        self.prefix_length = prefix_length

    def __call__(self, payload: str) -> str:
        if self.mode == "prefix":
            return payload[:self.prefix_length]
        return hashlib.sha256(payload.encode()).hexdigest()


class ImageStore:
    """Thread-safe map of device id to its latest ImageRecord."""

    def __init__(
        self,
        fingerprinter: Optional[Fingerprinter] = None,
        clock: Callable[[], int] = now_millis
    ):
        self.fingerprinter = fingerprinter or Fingerprinter()
        self._clock = clock
        self._records: Dict[str, ImageRecord] = {}
        self._fingerprints: Dict[str, str] = {}
        self._lock = ReadWriteLock()

    def put(
        self,
        device_id: str,
        payload: str,
        captured_at: Optional[int] = None
    ) -> Tuple[ImageRecord, bool]:
        """Store a frame and report whether it duplicates the stored one."""
        image_data = normalize_payload(payload)
        fingerprint = self.fingerprinter(image_data)
        timestamp = captured_at if captured_at is not None else self._clock()

        with self._lock.write_locked():
            previous = self._records.get(device_id)
            if previous is not None:
                # Per-device timestamps never go backwards or repeat
                timestamp = max(timestamp, previous.timestamp + 1)

                if self._fingerprints.get(device_id) == fingerprint:
                    previous.timestamp = timestamp
                    logger.debug(f"Duplicate frame from {device_id}, timestamp refreshed to {timestamp}")
                    return previous, True

            record = ImageRecord(
                esp_hmac=device_id,
                image_data=image_data,
                timestamp=timestamp
            )
            self._records[device_id] = record
            self._fingerprints[device_id] = fingerprint
            device_count = len(self._records)

        logger.info(f"Stored new frame for {device_id} at {timestamp} ({device_count} devices in memory)")
        return record, False

    def get(self, device_id: str) -> Optional[ImageRecord]:
        """Latest record for a device, or None before its first frame."""
        with self._lock.read_locked():
            return self._records.get(device_id)

    def get_all(self) -> List[ImageRecord]:
        """Latest record of every device, in no particular order."""
        with self._lock.read_locked():
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._records)
