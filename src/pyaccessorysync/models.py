"""Data models for pyaccessorysync."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import Any

_LOGGER = logging.getLogger(__name__)


class _StrEnum(str, Enum):
    """Enum whose members format as their wire value."""

    def __str__(self) -> str:
        return str(self.value)


class HubState(_StrEnum):
    """Connectivity status of a home's automation hub."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    NOT_AVAILABLE = "not_available"


class ServiceKind(_StrEnum):
    """Services an accessory can expose."""

    TEMPERATURE_SENSOR = "temperature_sensor"
    WINDOW = "window"
    WINDOW_COVERING = "window_covering"


class CharacteristicKind(_StrEnum):
    """Characteristics tracked by the store."""

    CURRENT_TEMPERATURE = "current_temperature"
    CURRENT_POSITION = "current_position"
    TARGET_POSITION = "target_position"


class ReadingSource(_StrEnum):
    """Where a reading came from. Used for diagnostics only."""

    INITIAL_READ = "initial_read"
    NOTIFICATION = "notification"
    WRITE_ACK = "write_ack"


WINDOW_SERVICES = frozenset({ServiceKind.WINDOW, ServiceKind.WINDOW_COVERING})
POSITION_CHARACTERISTICS = frozenset(
    {CharacteristicKind.CURRENT_POSITION, CharacteristicKind.TARGET_POSITION},
)


def _parse_enum(enum_cls: type[_StrEnum], raw: Any) -> _StrEnum | None:
    try:
        return enum_cls(raw)
    except ValueError:
        _LOGGER.debug("Ignoring unknown %s value: %s", enum_cls.__name__, raw)
        return None


@dataclass(frozen=True)
class Home:
    """Represents a home."""

    id: str
    name: str
    hub_state: HubState = HubState.NOT_AVAILABLE
    raw_data: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Home | None:
        """Build a Home from a bridge payload, or None if it has no id."""
        home_id = data.get("id")
        if not home_id:
            _LOGGER.warning("Skipping home with missing ID: %s", data.get("name"))
            return None
        hub_state = _parse_enum(HubState, data.get("hub_state"))
        return cls(
            id=str(home_id),
            name=data.get("name", "Unknown Home"),
            hub_state=hub_state or HubState.NOT_AVAILABLE,
            raw_data=data,
        )


@dataclass(frozen=True)
class Accessory:
    """Represents an accessory and the services it exposes."""

    id: str
    name: str
    home_id: str
    services: frozenset[ServiceKind] = frozenset()
    characteristics: frozenset[CharacteristicKind] = frozenset()
    raw_data: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, home_id: str, data: dict[str, Any]) -> Accessory | None:
        """Build an Accessory from a bridge payload, or None if it has no id.

        The payload lists services, each with the characteristics it exposes.
        Unknown service or characteristic names are ignored.
        """
        accessory_id = data.get("id")
        if not accessory_id:
            _LOGGER.warning("Skipping accessory with missing ID in home %s", home_id)
            return None

        services: set[ServiceKind] = set()
        characteristics: set[CharacteristicKind] = set()
        for service_data in data.get("services", []):
            service = _parse_enum(ServiceKind, service_data.get("type"))
            if service is None:
                continue
            services.add(service)
            for raw_kind in service_data.get("characteristics", []):
                kind = _parse_enum(CharacteristicKind, raw_kind)
                if kind is not None:
                    characteristics.add(kind)

        return cls(
            id=str(accessory_id),
            name=data.get("name", "Unknown Accessory"),
            home_id=home_id,
            services=frozenset(services),
            characteristics=frozenset(characteristics),
            raw_data=data,
        )

    def supports(self, kind: CharacteristicKind) -> bool:
        """Return True if the accessory exposes the characteristic."""
        return kind in self.characteristics

    @property
    def is_temperature_sensor(self) -> bool:
        """Return True if the accessory has a temperature sensor service with a reading."""
        return ServiceKind.TEMPERATURE_SENSOR in self.services and self.supports(
            CharacteristicKind.CURRENT_TEMPERATURE,
        )

    @property
    def is_window(self) -> bool:
        """Return True if the accessory has a window service with a target position."""
        return bool(WINDOW_SERVICES & self.services) and self.supports(
            CharacteristicKind.TARGET_POSITION,
        )

    @property
    def tracked_characteristics(self) -> list[CharacteristicKind]:
        """Characteristics the manager subscribes to and reads on selection."""
        tracked = []
        if self.is_temperature_sensor:
            tracked.append(CharacteristicKind.CURRENT_TEMPERATURE)
        if WINDOW_SERVICES & self.services:
            tracked.extend(sorted(POSITION_CHARACTERISTICS & self.characteristics))
        return tracked


@dataclass(frozen=True)
class CharacteristicReading:
    """Last value received for one characteristic of one accessory."""

    accessory_id: str
    kind: CharacteristicKind
    value: Any
    timestamp: datetime
    source: ReadingSource
