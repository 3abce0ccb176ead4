"""relayq monitoring API."""
