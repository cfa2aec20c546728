"""In-process mirror of homes, accessories and characteristic readings."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from types import MappingProxyType
from typing import Any

from .models import (
    Accessory,
    CharacteristicKind,
    CharacteristicReading,
    Home,
    HubState,
    ReadingSource,
)

_LOGGER = logging.getLogger(__name__)

ReadingKey = tuple[str, CharacteristicKind]
StoreListener = Callable[["StoreSnapshot"], None]


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time copy of the store, safe to hand to any reader."""

    homes: tuple[Home, ...]
    selected_home_id: str | None
    accessories: tuple[Accessory, ...]
    readings: MappingProxyType[ReadingKey, CharacteristicReading]
    pending_targets: MappingProxyType[str, int]
    generation: int

    @property
    def selected_home(self) -> Home | None:
        return next((h for h in self.homes if h.id == self.selected_home_id), None)

    @property
    def hub_state(self) -> HubState:
        home = self.selected_home
        return home.hub_state if home else HubState.NOT_AVAILABLE

    def reading(self, accessory_id: str, kind: CharacteristicKind) -> Any:
        reading = self.readings.get((accessory_id, kind))
        return reading.value if reading else None


class AccessoryStateStore:
    """Latest known state of the selected home and its accessories.

    The store has exactly one writer (the AccessoryManager's event consumer).
    Readers either call the query methods or take a `snapshot()`. Every
    mutation notifies subscribers with a fresh snapshot.

    Readings follow a "latest delivered wins" rule: `update_reading` always
    overwrites, and timestamps are never used to reorder values.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._lock = threading.RLock()
        self._homes: list[Home] = []
        self._selected_home_id: str | None = None
        self._accessories: list[Accessory] = []
        self._readings: dict[ReadingKey, CharacteristicReading] = {}
        self._pending_targets: dict[str, int] = {}
        self._generation = 0
        self._listeners: list[StoreListener] = []

    # --- Homes ---

    @property
    def homes(self) -> list[Home]:
        with self._lock:
            return list(self._homes)

    @property
    def selected_home_id(self) -> str | None:
        return self._selected_home_id

    @property
    def selected_home(self) -> Home | None:
        with self._lock:
            return self._find_home(self._selected_home_id)

    @property
    def hub_state(self) -> HubState:
        """Hub state of the selected home, informational only."""
        home = self.selected_home
        return home.hub_state if home else HubState.NOT_AVAILABLE

    @property
    def generation(self) -> int:
        """Counter bumped on every home selection.

        Work issued for one generation is discarded once the generation moves on.
        """
        return self._generation

    def set_homes(self, homes: Iterable[Home]) -> bool:
        """Replace the home list.

        Selects the first home when nothing is selected. The order is whatever
        the gateway returned, so "first" carries no meaning beyond that.

        Returns:
            bool: True if the selected home changed.

        """
        with self._lock:
            self._homes = list(homes)
            previous = self._selected_home_id
            if previous is not None and self._find_home(previous) is None:
                _LOGGER.info("Selected home %s is no longer available", previous)
                self._clear_selection()
            if self._selected_home_id is None and self._homes:
                self._select(self._homes[0])
            changed = self._selected_home_id != previous
        _LOGGER.debug("Home list replaced with %d homes", len(self._homes))
        self._notify()
        return changed

    def select_home(self, home_id: str) -> bool:
        """Select a home by id.

        Unknown ids are ignored: selection and accessory list stay untouched.
        Selecting a known home clears the accessory list until the new one is
        installed with `set_accessories`.

        Returns:
            bool: True if the home was selected.

        """
        with self._lock:
            home = self._find_home(home_id)
            if home is None:
                _LOGGER.debug("Ignoring selection of unknown home %s", home_id)
                return False
            self._select(home)
        self._notify()
        return True

    def set_accessories(self, home_id: str, accessories: Iterable[Accessory]) -> bool:
        """Install the accessory list of the selected home.

        Lists for a home that is no longer selected are ignored.
        """
        with self._lock:
            if home_id != self._selected_home_id:
                _LOGGER.debug("Discarding accessories of unselected home %s", home_id)
                return False
            self._accessories = list(accessories)
        self._notify()
        return True

    @property
    def accessories(self) -> list[Accessory]:
        with self._lock:
            return list(self._accessories)

    def accessory(self, accessory_id: str) -> Accessory | None:
        with self._lock:
            return next((a for a in self._accessories if a.id == accessory_id), None)

    def window_accessory_ids(self) -> list[str]:
        """Ids of the selected home's accessories with a writable window position."""
        with self._lock:
            return [a.id for a in self._accessories if a.is_window]

    def temperature_sensor_ids(self) -> list[str]:
        with self._lock:
            return [a.id for a in self._accessories if a.is_temperature_sensor]

    # --- Readings ---

    def update_reading(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        source: ReadingSource,
        timestamp: datetime | None = None,
    ) -> None:
        """Overwrite the stored reading for (accessory_id, kind).

        Never fails. Unknown accessory ids simply create an entry.
        """
        reading = CharacteristicReading(
            accessory_id=accessory_id,
            kind=kind,
            value=value,
            timestamp=timestamp or datetime.now(timezone.utc),
            source=source,
        )
        with self._lock:
            self._readings[(accessory_id, kind)] = reading
        _LOGGER.debug("%s %s = %s (%s)", accessory_id, kind, value, source)
        self._notify()

    def reading(self, accessory_id: str, kind: CharacteristicKind) -> Any:
        """Return the latest value, or None if it was never observed."""
        reading = self.get_reading(accessory_id, kind)
        return reading.value if reading else None

    def get_reading(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
    ) -> CharacteristicReading | None:
        with self._lock:
            return self._readings.get((accessory_id, kind))

    @property
    def temperature(self) -> float | None:
        """Latest temperature reported by a sensor of the selected home."""
        with self._lock:
            readings = [
                self._readings.get((accessory_id, CharacteristicKind.CURRENT_TEMPERATURE))
                for accessory_id in self.temperature_sensor_ids()
            ]
        readings = [r for r in readings if r is not None]
        if not readings:
            return None
        return max(readings, key=lambda r: r.timestamp).value

    @property
    def window_positions(self) -> dict[str, int]:
        """Current position of each window of the selected home."""
        positions = {}
        with self._lock:
            for accessory_id in self.window_accessory_ids():
                value = self.reading(accessory_id, CharacteristicKind.CURRENT_POSITION)
                if value is not None:
                    positions[accessory_id] = value
        return positions

    # --- Provisional targets ---

    def mark_pending_target(self, accessory_id: str, position: int) -> None:
        """Record a target position that was sent but not acknowledged yet."""
        with self._lock:
            self._pending_targets[accessory_id] = position
        self._notify()

    def clear_pending_target(self, accessory_id: str, position: int | None = None) -> None:
        """Drop the pending target, only if it still equals `position` when given."""
        with self._lock:
            pending = self._pending_targets.get(accessory_id)
            if pending is None or (position is not None and pending != position):
                return
            del self._pending_targets[accessory_id]
        self._notify()

    def pending_target(self, accessory_id: str) -> int | None:
        with self._lock:
            return self._pending_targets.get(accessory_id)

    def last_target(self, accessory_id: str) -> int | None:
        """Pending target if one is in flight, else the acknowledged TargetPosition."""
        with self._lock:
            pending = self._pending_targets.get(accessory_id)
            if pending is not None:
                return pending
            return self.reading(accessory_id, CharacteristicKind.TARGET_POSITION)

    # --- Observation ---

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(
                homes=tuple(self._homes),
                selected_home_id=self._selected_home_id,
                accessories=tuple(self._accessories),
                readings=MappingProxyType(dict(self._readings)),
                pending_targets=MappingProxyType(dict(self._pending_targets)),
                generation=self._generation,
            )

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call `listener` with a snapshot after every mutation.

        Returns:
            Callable[[], None]: Function removing the listener.

        """
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # --- Internals ---

    def _find_home(self, home_id: str | None) -> Home | None:
        return next((h for h in self._homes if h.id == home_id), None)

    def _select(self, home: Home) -> None:
        self._selected_home_id = home.id
        self._accessories = []
        self._pending_targets.clear()
        self._generation += 1
        _LOGGER.info("Selected home %s (%s)", home.name, home.id)

    def _clear_selection(self) -> None:
        self._selected_home_id = None
        self._accessories = []
        self._pending_targets.clear()
        self._generation += 1

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            return
        snapshot = self.snapshot()
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                _LOGGER.exception("Error in store listener %s", listener)
