"""
Schemas for the device-image relay.
"""

from .schemas import (
    IngestMessage,
    IngestResponse,
    ImageRecord,
    KeepAliveMessage,
    ConnectionStatusMessage,
    DeviceListResponse,
    RelayStatusResponse,
    encode_record,
    encode_records,
    encode_message
)

__all__ = [
    'IngestMessage',
    'IngestResponse',
    'ImageRecord',
    'KeepAliveMessage',
    'ConnectionStatusMessage',
    'DeviceListResponse',
    'RelayStatusResponse',
    'encode_record',
    'encode_records',
    'encode_message'
]
