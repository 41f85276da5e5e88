"""
Shared test configuration.
"""

import os

# Keep the app from dialing a broker or logging status while under test
os.environ.setdefault("MQTT_ENABLED", "false")
os.environ.setdefault("STATUS_LOG_INTERVAL", "0")
