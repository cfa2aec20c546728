"""Constants for pyaccessorysync."""

# Automation rule: below the threshold every window closes, otherwise it opens.
TEMPERATURE_THRESHOLD = 20.0
POSITION_CLOSED = 0
POSITION_OPEN = 100

# Default timeouts (seconds) for one-shot reads and characteristic writes
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_WRITE_TIMEOUT = 10.0

# Remote bridge defaults
DEFAULT_REQUEST_TIMEOUT = 15
DEFAULT_RECONNECT_DELAY = 30
PUSH_WS_PATH = "/ws"

# Bridge API endpoints
HOMES_ENDPOINT = "/api/homes"
ACCESSORIES_ENDPOINT = "/api/homes/{home_id}/accessories"
CHARACTERISTIC_ENDPOINT = "/api/accessories/{accessory_id}/characteristics/{kind}"
NOTIFICATIONS_ENDPOINT = CHARACTERISTIC_ENDPOINT + "/notifications"

# Push message types
MESSAGE_TYPE_CHARACTERISTIC = "characteristic"
MESSAGE_TYPE_HOMES = "homes"

# Environment variables read by config.py
ENV_BRIDGE_URL = "ACCESSORYSYNC_BRIDGE_URL"
ENV_PUSH_URL = "ACCESSORYSYNC_PUSH_URL"
ENV_TOKEN = "ACCESSORYSYNC_TOKEN"  # noqa: S105
ENV_REQUEST_TIMEOUT = "ACCESSORYSYNC_REQUEST_TIMEOUT"
ENV_RECONNECT_DELAY = "ACCESSORYSYNC_RECONNECT_DELAY"
ENV_READ_TIMEOUT = "ACCESSORYSYNC_READ_TIMEOUT"
ENV_WRITE_TIMEOUT = "ACCESSORYSYNC_WRITE_TIMEOUT"
ENV_DEDUPLICATE_WRITES = "ACCESSORYSYNC_DEDUPLICATE_WRITES"


LIBRARY_VERSION = "0.1.0"


def build_user_agent(version: str = LIBRARY_VERSION) -> str:
    """Build the User-Agent string sent to the bridge."""
    return f"pyaccessorysync/{version}"
