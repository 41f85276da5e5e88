"""
API routers for the device-image relay.
"""

from . import devices
from . import stream
from . import health

__all__ = ['devices', 'stream', 'health']
