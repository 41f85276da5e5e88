"""
Parkingo live device-image relay.
"""

__version__ = "1.0.0"
