"""Boundary interface to the home-automation framework."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
import logging
from typing import Any, Protocol

from .models import Accessory, CharacteristicKind, Home

_LOGGER = logging.getLogger(__name__)


class GatewayListener(Protocol):
    """Receiver of pushes from a gateway.

    Both methods may be called at any time, from any thread.
    """

    def homes_updated(self, homes: list[Home]) -> None: ...

    def value_updated(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        timestamp: datetime | None = None,
    ) -> None: ...


class AccessoryGateway(ABC):
    """Access to homes, accessories and characteristics of a framework.

    Implementations own all device communication. Failures are reported by
    raising the exceptions from `pyaccessorysync.exceptions`:
    `GatewayUnavailable`, `NotificationSubscriptionFailed`, `ReadFailed`
    and `WriteFailed`.
    """

    def __init__(self) -> None:
        """Initialize the gateway without a listener."""
        self._listener: GatewayListener | None = None

    def set_listener(self, listener: GatewayListener | None) -> None:
        self._listener = listener

    async def start(self) -> None:
        """Open any session the gateway needs."""

    async def stop(self) -> None:
        """Release resources held by the gateway."""

    @abstractmethod
    async def list_homes(self) -> list[Home]:
        """Return the homes known to the framework."""

    @abstractmethod
    async def accessories_for(self, home_id: str) -> list[Accessory]:
        """Return the accessories of a home."""

    @abstractmethod
    async def subscribe(self, accessory_id: str, kind: CharacteristicKind) -> None:
        """Enable push notifications for a characteristic."""

    @abstractmethod
    async def read_once(self, accessory_id: str, kind: CharacteristicKind) -> Any:
        """Read the current value of a characteristic."""

    @abstractmethod
    async def write(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
    ) -> None:
        """Write a characteristic value. Returns once the framework acknowledged it."""

    def _notify_homes(self, homes: list[Home]) -> None:
        if self._listener is None:
            _LOGGER.debug("No listener registered, dropping home list update")
            return
        self._listener.homes_updated(homes)

    def _notify_value(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        timestamp: datetime | None = None,
    ) -> None:
        if self._listener is None:
            _LOGGER.debug("No listener registered, dropping %s update", kind)
            return
        self._listener.value_updated(accessory_id, kind, value, timestamp)
