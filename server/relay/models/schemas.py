"""
Pydantic schemas for frames, stream messages and query responses.
"""

from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# Ingestion schemas (received from scanner devices)

class IngestMessage(BaseModel):
    """Frame published by a scanner device over MQTT."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field("", alias="X-API-KEY")
    mac_address: str = Field("", alias="X-MAC-ADDRESS")
    image: str = ""


class IngestResponse(BaseModel):
    """Response for HTTP frame submission."""
    status: str
    esp_hmac: str
    timestamp: int
    duplicate: bool


# Stream schemas (sent to WebSocket viewers)

class ImageRecord(BaseModel):
    """Latest frame of one device."""
    esp_hmac: str
    image_data: str
    timestamp: int


ImageRecordList = TypeAdapter(List[ImageRecord])


class KeepAliveMessage(BaseModel):
    """Periodic keep-alive sent on idle streams."""
    type: str = "keep_alive"
    timestamp: int
    esp_hmac: Optional[str] = None
    mode: Optional[str] = None


class ConnectionStatusMessage(BaseModel):
    """First message of every stream, sent right after the handshake."""
    type: str = "connection_status"
    connected: bool = True
    timestamp: int
    message: str
    esp_hmac: Optional[str] = None
    mode: Optional[str] = None


# Query response schemas

class DeviceListResponse(BaseModel):
    """Schema for the device list response."""
    status: str = "success"
    count: int
    devices: List[ImageRecord]


class RelayStatusResponse(BaseModel):
    """Schema for relay status response."""
    devices: int
    specific_subscribers: int
    all_subscribers: int
    devices_watched: int
    mqtt_connected: bool
    ingest: dict


def encode_record(record: ImageRecord) -> str:
    """Serialize a single record for a device stream."""
    return record.model_dump_json()


def encode_records(records: List[ImageRecord]) -> str:
    """Serialize a record collection for the all-devices stream."""
    return ImageRecordList.dump_json(records).decode()


def encode_message(message: BaseModel) -> str:
    """Serialize a control message, leaving out unset optional fields."""
    return message.model_dump_json(exclude_none=True)
