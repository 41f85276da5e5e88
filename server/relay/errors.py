"""
Exceptions raised by the relay services.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class IngestError(RelayError):
    """A frame was rejected on the ingestion path."""


class MalformedMessage(IngestError):
    """Frame payload could not be parsed or is missing required fields."""


class Unauthorized(IngestError):
    """Frame carried an API key that does not match the configured secret."""
