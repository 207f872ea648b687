"""
Local configuration for the live-update bridge and the development server.

Update the values as needed for your environment. Runtime overrides saved
through the settings store (namespace ``live_updates``) take precedence over the
bridge defaults below.
"""

# Page origin the bridge derives its channel endpoint from.
LIVE_UPDATES_ORIGIN = "http://localhost:5000"
LIVE_UPDATES_PATH = "/ws"

# Reconnect policy: fixed interval, bounded attempt count.
LIVE_UPDATES_AUTO_RECONNECT = True
LIVE_UPDATES_RECONNECT_INTERVAL_MS = 3000
LIVE_UPDATES_MAX_RECONNECT_ATTEMPTS = 10

# Handshake / keepalive tuning for the websockets client.
LIVE_UPDATES_OPEN_TIMEOUT_SECONDS = 10
LIVE_UPDATES_PING_INTERVAL_SECONDS = 20
LIVE_UPDATES_CLOSE_TIMEOUT_SECONDS = 5

# Development broadcast server.
WEBAPP_HOST = "0.0.0.0"
WEBAPP_PORT = 5000
