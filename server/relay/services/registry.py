"""
Subscriber registry for live device streams.
Tracks per-device viewers and all-devices viewers separately.
"""

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from relay.services.locking import ReadWriteLock

logger = logging.getLogger(__name__)

# Enqueued by Subscriber.close() so the drain loop knows the channel is done
CLOSED = None


class Offer(str, enum.Enum):
    """Result of Subscriber.offer()."""
    DELIVERED = "delivered"
    HANDED_OFF = "handed_off"  # scheduled on the subscriber's loop, may still drop there
    DROPPED = "dropped"


@dataclass(eq=False)
class Subscriber:
    """One viewer connection and its bounded outbound channel."""
    device_id: Optional[str] = None  # None watches every device
    capacity: int = 20
    loop: Optional[asyncio.AbstractEventLoop] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    closed: bool = False
    dropped: int = 0
    outbound: asyncio.Queue = field(init=False, repr=False)

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.outbound = asyncio.Queue(maxsize=self.capacity)

    @property
    def watches_all(self) -> bool:
        return self.device_id is None

    @property
    def scope(self) -> str:
        return "all_devices" if self.watches_all else self.device_id

    def _on_owner_thread(self) -> bool:
        if self.loop is None:
            return True
        try:
            return asyncio.get_running_loop() is self.loop
        except RuntimeError:
            return False

    def offer(self, message: str) -> "Offer":
        """Queue a message without blocking.

        Loop-bound subscribers always go through the loop's callback queue,
        even from the loop's own thread, so messages land in offer order
        whichever thread made the call. Drops found once the callback runs
        are counted in ``dropped``.
        """
        if self.closed:
            return Offer.DROPPED
        if self.loop is None:
            return Offer.DELIVERED if self._put(message) else Offer.DROPPED
        try:
            self.loop.call_soon_threadsafe(self._put, message)
        except RuntimeError:
            # Owning loop already shut down
            return Offer.DROPPED
        return Offer.HANDED_OFF

    def _put(self, message: str) -> bool:
        if self.closed:
            return False
        try:
            self.outbound.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self._drop()
            return False

    def _drop(self):
        self.dropped += 1
        logger.warning(f"Channel full for subscriber {self.id} ({self.scope}), message dropped")

    def close(self):
        """Close the channel: drop pending messages and wake the drain loop."""
        if self.closed:
            return
        self.closed = True
        if self._on_owner_thread():
            self._seal()
        else:
            try:
                self.loop.call_soon_threadsafe(self._seal)
            except RuntimeError:
                # Owning loop already shut down; nothing left to wake
                pass

    def _seal(self):
        while not self.outbound.empty():
            self.outbound.get_nowait()
        self.outbound.put_nowait(CLOSED)


class SubscriberRegistry:
    """Per-device and all-devices subscriber lists behind one read/write lock."""

    def __init__(self):
        self._specific: Dict[str, List[Subscriber]] = {}
        self._all: List[Subscriber] = []
        self._lock = ReadWriteLock()

    def register_specific(self, device_id: str, subscriber: Subscriber):
        """Add a subscriber watching one device."""
        if not device_id:
            raise ValueError("device_id is required for a device subscription")
        if subscriber.device_id != device_id:
            raise ValueError(f"Subscriber scope {subscriber.scope} does not match {device_id}")

        with self._lock.write_locked():
            self._specific.setdefault(device_id, []).append(subscriber)
            count = len(self._specific[device_id])

        logger.info(f"Subscriber {subscriber.id} registered for {device_id} ({count} watching)")

    def register_all(self, subscriber: Subscriber):
        """Add a subscriber watching every device."""
        if not subscriber.watches_all:
            raise ValueError(f"Subscriber scope {subscriber.scope} is not all_devices")

        with self._lock.write_locked():
            self._all.append(subscriber)
            count = len(self._all)

        logger.info(f"Subscriber {subscriber.id} registered for all devices ({count} watching)")

    def register(self, subscriber: Subscriber):
        """Register a subscriber in the list matching its scope."""
        if subscriber.watches_all:
            self.register_all(subscriber)
        else:
            self.register_specific(subscriber.device_id, subscriber)

    def unregister(self, subscriber: Subscriber):
        """Remove a subscriber; unknown or already removed subscribers are ignored."""
        with self._lock.write_locked():
            if subscriber.watches_all:
                removed = _remove_identity(self._all, subscriber)
            else:
                clients = self._specific.get(subscriber.device_id)
                removed = clients is not None and _remove_identity(clients, subscriber)
                if clients is not None and not clients:
                    del self._specific[subscriber.device_id]

        if removed:
            logger.info(f"Subscriber {subscriber.id} unregistered from {subscriber.scope}")

    def snapshot_specific(self, device_id: str) -> List[Subscriber]:
        """Copy of the subscribers watching one device."""
        with self._lock.read_locked():
            return list(self._specific.get(device_id, ()))

    def snapshot_all(self) -> List[Subscriber]:
        """Copy of the all-devices subscribers."""
        with self._lock.read_locked():
            return list(self._all)

    def counts(self) -> dict:
        with self._lock.read_locked():
            return {
                'specific': sum(len(clients) for clients in self._specific.values()),
                'all': len(self._all),
                'devices_watched': len(self._specific)
            }


def _remove_identity(clients: List[Subscriber], subscriber: Subscriber) -> bool:
    for i, client in enumerate(clients):
        if client is subscriber:
            del clients[i]
            return True
    return False
