"""
Relay services: image store, registry, broadcaster, ingestion and stream sessions.
"""

from .image_store import ImageStore, Fingerprinter
from .registry import Subscriber, SubscriberRegistry
from .broadcaster import Broadcaster, DeliveryReport
from .relay import ImageRelay
from .ingestion import IngestionAdapter
from .mqtt_subscriber import MQTTSubscriber
from .session import DeviceStreamSession, SessionState

__all__ = [
    'ImageStore',
    'Fingerprinter',
    'Subscriber',
    'SubscriberRegistry',
    'Broadcaster',
    'DeliveryReport',
    'ImageRelay',
    'IngestionAdapter',
    'MQTTSubscriber',
    'DeviceStreamSession',
    'SessionState'
]
