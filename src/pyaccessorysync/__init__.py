"""Mirror smart-home accessory state and automate windows from temperature."""

from .automation import AutomationRuleEvaluator, evaluate
from .config import BridgeConfig, ManagerConfig
from .const import LIBRARY_VERSION
from .exceptions import (
    ApiError,
    AuthError,
    ConfigError,
    GatewayUnavailable,
    NotificationSubscriptionFailed,
    PyAccessorySyncException,
    ReadFailed,
    WriteFailed,
)
from .gateway import AccessoryGateway, GatewayListener
from .manager import AccessoryManager
from .models import (
    Accessory,
    CharacteristicKind,
    CharacteristicReading,
    Home,
    HubState,
    ReadingSource,
    ServiceKind,
)
from .remote import RemoteAccessoryGateway
from .store import AccessoryStateStore, StoreSnapshot
from .websocket import WebsocketClient

__version__ = LIBRARY_VERSION

__all__ = [
    "Accessory",
    "AccessoryGateway",
    "AccessoryManager",
    "AccessoryStateStore",
    "ApiError",
    "AuthError",
    "AutomationRuleEvaluator",
    "BridgeConfig",
    "CharacteristicKind",
    "CharacteristicReading",
    "ConfigError",
    "GatewayListener",
    "GatewayUnavailable",
    "Home",
    "HubState",
    "ManagerConfig",
    "NotificationSubscriptionFailed",
    "PyAccessorySyncException",
    "ReadFailed",
    "ReadingSource",
    "RemoteAccessoryGateway",
    "ServiceKind",
    "StoreSnapshot",
    "WebsocketClient",
    "WriteFailed",
    "evaluate",
    "__version__",
]
