"""
Relay facade tying the image store, registry and broadcaster together.
"""

import asyncio
import logging
import threading
from typing import Dict, List, Optional, Tuple, Union

from relay.models.schemas import ImageRecord
from relay.services.broadcaster import Broadcaster
from relay.services.image_store import ImageStore
from relay.services.registry import Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)


class ImageRelay:
    """Single-process relay from device frames to live viewers.

    Constructed once per application and shared with the ingestion
    adapter and every stream session.
    """

    def __init__(
        self,
        store: Optional[ImageStore] = None,
        registry: Optional[SubscriberRegistry] = None,
        channel_capacity: int = 20
    ):
        self.store = store or ImageStore()
        self.registry = registry or SubscriberRegistry()
        self.broadcaster = Broadcaster(self.registry)
        self.channel_capacity = channel_capacity

        self._device_locks: Dict[str, threading.Lock] = {}
        self._device_locks_guard = threading.Lock()

    def _device_lock(self, device_id: str) -> threading.Lock:
        with self._device_locks_guard:
            lock = self._device_locks.get(device_id)
            if lock is None:
                lock = self._device_locks[device_id] = threading.Lock()
            return lock

    def ingest(
        self,
        device_id: str,
        image: str,
        captured_at: Optional[int] = None
    ) -> Tuple[ImageRecord, bool]:
        """Store a frame and broadcast it, duplicate or not.

        Store and broadcast run under the device's ordering lock, so
        viewers see frames of one device in the order they were stored.
        """
        with self._device_lock(device_id):
            record, is_duplicate = self.store.put(device_id, image, captured_at)
            self.broadcaster.deliver(record)
        return record, is_duplicate

    def subscribe(
        self,
        device_id: Optional[str] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> Subscriber:
        """Create and register a subscriber; the caller sends the snapshot."""
        subscriber = Subscriber(
            device_id=device_id,
            capacity=self.channel_capacity,
            loop=loop
        )
        self.registry.register(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        """Unregister and close a subscriber. Safe to call repeatedly."""
        self.registry.unregister(subscriber)
        subscriber.close()

    def snapshot(self, device_id: Optional[str] = None) -> Union[ImageRecord, None, List[ImageRecord]]:
        """Latest record of one device, or all records when device_id is None."""
        if device_id is None:
            return self.store.get_all()
        return self.store.get(device_id)

    def status(self) -> dict:
        counts = self.registry.counts()
        return {
            'devices': len(self.store),
            'specific_subscribers': counts['specific'],
            'all_subscribers': counts['all'],
            'devices_watched': counts['devices_watched']
        }
