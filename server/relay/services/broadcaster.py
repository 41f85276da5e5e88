"""
Broadcast engine for live device frames.
Fans a record out to device viewers and all-devices viewers without blocking.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from relay.models.schemas import ImageRecord, encode_record, encode_records
from relay.services.registry import Offer, Subscriber, SubscriberRegistry

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """Outcome of one broadcast.

    ``delivered`` messages are already queued. ``handed_off`` messages were
    scheduled on a subscriber's event loop; any of those that find a full
    channel there show up in that subscriber's ``dropped`` counter instead.
    """
    esp_hmac: str
    delivered: int = 0
    handed_off: int = 0
    dropped: int = 0


class Broadcaster:
    """Delivers records to registered subscribers."""

    def __init__(self, registry: SubscriberRegistry):
        self.registry = registry

    def deliver(self, record: ImageRecord) -> DeliveryReport:
        """Send a record to its device viewers and to all-devices viewers.

        Each payload is serialized once per broadcast. All-devices viewers
        always get a JSON array, here with the single updated record.
        Full or closed channels are skipped.
        """
        report = DeliveryReport(esp_hmac=record.esp_hmac)

        specific = self.registry.snapshot_specific(record.esp_hmac)
        everyone = self.registry.snapshot_all()

        if not specific and not everyone:
            logger.debug(f"No subscribers for {record.esp_hmac}, nothing to broadcast")
            return report

        if specific:
            self._send(specific, encode_record(record), report)
        if everyone:
            self._send(everyone, encode_records([record]), report)

        logger.info(
            f"Broadcast {record.esp_hmac}@{record.timestamp}: "
            f"{report.delivered} delivered, {report.handed_off} handed off, {report.dropped} dropped "
            f"({len(specific)} device, {len(everyone)} all-devices subscribers)"
        )
        return report

    def _send(self, subscribers: Iterable[Subscriber], message: str, report: DeliveryReport):
        for subscriber in subscribers:
            result = subscriber.offer(message)
            if result is Offer.DELIVERED:
                report.delivered += 1
            elif result is Offer.HANDED_OFF:
                report.handed_off += 1
            else:
                report.dropped += 1
