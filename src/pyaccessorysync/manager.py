"""Coordinator between an accessory gateway, the state store and the automation rule."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any

from .automation import AutomationRuleEvaluator
from .config import ManagerConfig
from .const import POSITION_CLOSED, POSITION_OPEN
from .exceptions import (
    GatewayUnavailable,
    NotificationSubscriptionFailed,
    PyAccessorySyncException,
    ReadFailed,
    WriteFailed,
)
from .gateway import AccessoryGateway
from .models import Accessory, CharacteristicKind, Home, HubState, ReadingSource
from .store import AccessoryStateStore

_LOGGER = logging.getLogger(__name__)

WriteFailureListener = Callable[[WriteFailed], None]

_HUB_STATE_MESSAGES = {
    HubState.CONNECTED: "Home hub is connected.",
    HubState.DISCONNECTED: "Home hub is disconnected.",
    HubState.NOT_AVAILABLE: "No home hub available.",
}


# --- Events consumed by the single writer ---


@dataclass
class _HomesUpdated:
    homes: list[Home]


@dataclass
class _HomeSelected:
    home_id: str
    result: asyncio.Future


@dataclass
class _AccessoriesLoaded:
    home_id: str
    generation: int
    accessories: list[Accessory]


@dataclass
class _ReadingReceived:
    accessory_id: str
    kind: CharacteristicKind
    value: Any
    source: ReadingSource
    generation: int | None = None
    timestamp: datetime | None = None


@dataclass
class _WriteRequested:
    accessory_id: str
    kind: CharacteristicKind
    value: Any
    result: asyncio.Future | None = None


@dataclass
class _WriteCompleted:
    accessory_id: str
    kind: CharacteristicKind
    value: Any
    generation: int
    result: asyncio.Future | None
    error: WriteFailed | None = None


def _resolve(result: asyncio.Future | None, error: Exception | None = None) -> None:
    if result is None or result.done():
        return
    if error is None:
        result.set_result(None)
    else:
        result.set_exception(error)


class AccessoryManager:
    """Mirrors the selected home of a gateway and runs the window automation.

    Every gateway callback, user command and I/O completion becomes an event on
    one asyncio queue. A single consumer task applies the events to the
    `AccessoryStateStore`, so the store never sees concurrent writers no matter
    which thread the gateway calls back on.

    Reads and writes are tagged with the store generation they were issued
    for. Completions that land after another home was selected are discarded.

    Attributes:
        gateway (AccessoryGateway): Access to the home-automation framework.
        store (AccessoryStateStore): Published state, for snapshots and
            subscriptions.
        config (ManagerConfig): Timeouts and write de-duplication.
        evaluator (AutomationRuleEvaluator): The temperature/window rule.

    """

    def __init__(
        self,
        gateway: AccessoryGateway,
        config: ManagerConfig | None = None,
        store: AccessoryStateStore | None = None,
        evaluator: AutomationRuleEvaluator | None = None,
    ) -> None:
        """Initialize the manager.

        Raises:
            TypeError: If `gateway` is not an `AccessoryGateway`.

        """
        if not isinstance(gateway, AccessoryGateway):
            err_msg = "gateway must be an instance of AccessoryGateway"
            raise TypeError(err_msg)
        self.gateway = gateway
        self.config = config or ManagerConfig()
        self.store = store or AccessoryStateStore()
        self.evaluator = evaluator or AutomationRuleEvaluator(
            deduplicate=self.config.deduplicate_writes,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue | None = None
        self._consumer_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._outstanding: dict[asyncio.Future, Exception] = {}
        self._write_failure_listeners: list[WriteFailureListener] = []
        self._handlers: dict[type, Callable[[Any], None]] = {
            _HomesUpdated: self._handle_homes_updated,
            _HomeSelected: self._handle_home_selected,
            _AccessoriesLoaded: self._handle_accessories_loaded,
            _ReadingReceived: self._handle_reading,
            _WriteRequested: self._handle_write_requested,
            _WriteCompleted: self._handle_write_completed,
        }

    async def __aenter__(self) -> AccessoryManager:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the event consumer and load the home list from the gateway.

        An unavailable gateway leaves the manager running with no homes.
        """
        if self.is_running:
            _LOGGER.warning("AccessoryManager is already running.")
            return

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._consumer_task = asyncio.create_task(self._consume())
        self.gateway.set_listener(self)

        try:
            await self.gateway.start()
            homes = await self.gateway.list_homes()
        except GatewayUnavailable as err:
            _LOGGER.warning("Accessory gateway unavailable, no homes loaded: %s", err)
            homes = []
        except Exception:
            _LOGGER.exception("Failed to start the accessory gateway")
            await self.stop()
            raise

        _LOGGER.info("AccessoryManager started with %d homes.", len(homes))
        self.homes_updated(homes)

    async def stop(self) -> None:
        """Cancel in-flight work, stop the consumer and release the gateway.

        Callers still awaiting `select_home` or `set_window_position` are failed.
        """
        self.gateway.set_listener(None)
        pending = list(self._tasks)
        if self._consumer_task is not None:
            pending.append(self._consumer_task)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self._consumer_task = None
        self._events = None
        for result, error in list(self._outstanding.items()):
            _resolve(result, error)
        self._outstanding.clear()
        await self.gateway.stop()
        _LOGGER.info("AccessoryManager stopped.")

    async def wait_idle(self) -> None:
        """Wait until no events are queued and no read or write is in flight."""
        while self._events is not None:
            await self._events.join()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            # Let callbacks scheduled with call_soon_threadsafe land.
            await asyncio.sleep(0)
            if self._events is None or (self._events.empty() and not self._tasks):
                return

    # --- Gateway listener (any thread) ---

    def homes_updated(self, homes: list[Home]) -> None:
        self._post(_HomesUpdated(list(homes)))

    def value_updated(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        timestamp: datetime | None = None,
    ) -> None:
        self._post(
            _ReadingReceived(
                accessory_id=accessory_id,
                kind=kind,
                value=value,
                source=ReadingSource.NOTIFICATION,
                timestamp=timestamp,
            ),
        )

    # --- Commands ---

    async def select_home(self, home_id: str) -> bool:
        """Select a home and load its accessories.

        Returns:
            bool: False if the home is unknown, in which case nothing changes.

        """
        result = self._track_result(
            PyAccessorySyncException(
                f"AccessoryManager stopped before home {home_id} was selected.",
            ),
        )
        self._post(_HomeSelected(home_id, result))
        return await result

    async def set_window_position(self, accessory_id: str, position: int) -> None:
        """Write the target position of a window, as a slider would.

        The stored TargetPosition only changes once the gateway acknowledged
        the write.

        Raises:
            ValueError: If `position` is outside 0..100.
            WriteFailed: If the gateway rejected the write, it timed out, or the
                manager was stopped before the write completed.

        """
        if not POSITION_CLOSED <= position <= POSITION_OPEN:
            err_msg = (
                f"Window position must be between {POSITION_CLOSED} and "
                f"{POSITION_OPEN}, got {position}"
            )
            raise ValueError(err_msg)
        result = self._track_result(
            WriteFailed(
                accessory_id,
                CharacteristicKind.TARGET_POSITION,
                position,
                "manager stopped",
            ),
        )
        self._post(
            _WriteRequested(
                accessory_id,
                CharacteristicKind.TARGET_POSITION,
                int(position),
                result,
            ),
        )
        await result

    def add_write_failure_listener(
        self,
        listener: WriteFailureListener,
    ) -> Callable[[], None]:
        """Register a callback for failed writes. Returns a function removing it."""
        self._write_failure_listeners.append(listener)

        def _remove() -> None:
            if listener in self._write_failure_listeners:
                self._write_failure_listeners.remove(listener)

        return _remove

    # --- Event plumbing ---

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._events is None:
            err_msg = "AccessoryManager is not started."
            raise PyAccessorySyncException(err_msg)
        return self._loop

    def _track_result(self, on_stop: Exception) -> asyncio.Future:
        """Create a result future that `stop` fails with `on_stop` if still pending."""
        result = self._require_loop().create_future()
        self._outstanding[result] = on_stop
        result.add_done_callback(lambda fut: self._outstanding.pop(fut, None))
        return result

    def _post(self, event: object) -> None:
        if self._loop is None or self._events is None:
            _LOGGER.warning(
                "AccessoryManager not running, dropping %s",
                type(event).__name__,
            )
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None
        if running_loop is self._loop:
            self._events.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    async def _consume(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self._handlers[type(event)](event)
            except Exception:
                _LOGGER.exception("Error handling %s", type(event).__name__)
            finally:
                self._events.task_done()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _LOGGER.error(
                "Background task failed",
                exc_info=task.exception(),
            )

    # --- Handlers (consumer task only) ---

    def _handle_homes_updated(self, event: _HomesUpdated) -> None:
        if self.store.set_homes(event.homes):
            self._load_selected_home()

    def _handle_home_selected(self, event: _HomeSelected) -> None:
        selected = self.store.select_home(event.home_id)
        if selected:
            self._load_selected_home()
        else:
            _LOGGER.warning("Cannot select unknown home %s", event.home_id)
        if not event.result.done():
            event.result.set_result(selected)

    def _load_selected_home(self) -> None:
        home = self.store.selected_home
        if home is None:
            _LOGGER.info("No home selected.")
            return
        _LOGGER.info(_HUB_STATE_MESSAGES[home.hub_state])
        self._spawn(self._load_accessories(home.id, self.store.generation))

    def _handle_accessories_loaded(self, event: _AccessoriesLoaded) -> None:
        if event.generation != self.store.generation:
            _LOGGER.debug("Discarding accessories of stale home %s", event.home_id)
            return
        self.store.set_accessories(event.home_id, event.accessories)
        _LOGGER.info(
            "Home %s has %d accessories.",
            event.home_id,
            len(event.accessories),
        )
        if not self.store.temperature_sensor_ids():
            _LOGGER.info("No temperature sensor accessory found.")
        for accessory in event.accessories:
            for kind in accessory.tracked_characteristics:
                self._spawn(self._track(accessory.id, kind, event.generation))

    def _handle_reading(self, event: _ReadingReceived) -> None:
        if event.generation is not None and event.generation != self.store.generation:
            _LOGGER.debug(
                "Discarding stale %s reading of %s",
                event.kind,
                event.accessory_id,
            )
            return
        self.store.update_reading(
            event.accessory_id,
            event.kind,
            event.value,
            event.source,
            event.timestamp,
        )
        if (
            event.kind is CharacteristicKind.CURRENT_TEMPERATURE
            and event.accessory_id in self.store.temperature_sensor_ids()
        ):
            self._apply_automation(event.value)

    def _apply_automation(self, value: Any) -> None:
        try:
            temperature = float(value)
        except (TypeError, ValueError):
            _LOGGER.warning("Ignoring non-numeric temperature: %s", value)
            return
        _LOGGER.info("Current temperature: %.1f°C", temperature)
        commands = self.evaluator.evaluate(
            temperature,
            self.store.window_accessory_ids(),
            self.store.last_target,
        )
        for accessory_id, target in commands:
            self._start_write(accessory_id, CharacteristicKind.TARGET_POSITION, target)

    def _handle_write_requested(self, event: _WriteRequested) -> None:
        self._start_write(event.accessory_id, event.kind, event.value, event.result)

    def _start_write(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        result: asyncio.Future | None = None,
    ) -> None:
        if kind is CharacteristicKind.TARGET_POSITION:
            self.store.mark_pending_target(accessory_id, value)
        self._spawn(
            self._write(accessory_id, kind, value, self.store.generation, result),
        )

    def _handle_write_completed(self, event: _WriteCompleted) -> None:
        stale = event.generation != self.store.generation
        _resolve(event.result, event.error)

        if event.error is not None:
            _LOGGER.warning("%s", event.error)
            if stale:
                return
            if event.kind is CharacteristicKind.TARGET_POSITION:
                self.store.clear_pending_target(event.accessory_id, event.value)
            for listener in list(self._write_failure_listeners):
                try:
                    listener(event.error)
                except Exception:
                    _LOGGER.exception("Error in write failure listener")
            return

        _LOGGER.info(
            "Accessory %s %s set to %s",
            event.accessory_id,
            event.kind,
            event.value,
        )
        if stale:
            _LOGGER.debug("Write ack for %s arrived after a home switch", event.accessory_id)
            return
        self.store.update_reading(
            event.accessory_id,
            event.kind,
            event.value,
            ReadingSource.WRITE_ACK,
        )
        if event.kind is CharacteristicKind.TARGET_POSITION:
            self.store.clear_pending_target(event.accessory_id, event.value)

    # --- Gateway I/O (background tasks) ---

    async def _load_accessories(self, home_id: str, generation: int) -> None:
        try:
            accessories = await asyncio.wait_for(
                self.gateway.accessories_for(home_id),
                timeout=self.config.read_timeout,
            )
        except asyncio.TimeoutError:
            _LOGGER.warning("Timed out loading accessories of home %s", home_id)
            return
        except PyAccessorySyncException:
            _LOGGER.exception("Failed to load accessories of home %s", home_id)
            return
        self._post(_AccessoriesLoaded(home_id, generation, list(accessories)))

    async def _track(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        generation: int,
    ) -> None:
        """Subscribe to a characteristic, then read its current value once."""
        try:
            await self.gateway.subscribe(accessory_id, kind)
            _LOGGER.debug("Enabled notifications for %s of %s", kind, accessory_id)
        except NotificationSubscriptionFailed as err:
            _LOGGER.warning("%s; value will only be read once", err)
        except PyAccessorySyncException as err:
            _LOGGER.warning(
                "Error enabling notifications for %s of %s: %s",
                kind,
                accessory_id,
                err,
            )

        try:
            value = await asyncio.wait_for(
                self.gateway.read_once(accessory_id, kind),
                timeout=self.config.read_timeout,
            )
        except asyncio.TimeoutError:
            _LOGGER.warning("Timed out reading %s of %s", kind, accessory_id)
            return
        except ReadFailed as err:
            _LOGGER.warning("%s", err)
            return
        except PyAccessorySyncException as err:
            _LOGGER.warning("Error reading %s of %s: %s", kind, accessory_id, err)
            return
        self._post(
            _ReadingReceived(
                accessory_id=accessory_id,
                kind=kind,
                value=value,
                source=ReadingSource.INITIAL_READ,
                generation=generation,
            ),
        )

    async def _write(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
        generation: int,
        result: asyncio.Future | None,
    ) -> None:
        error = None
        try:
            await asyncio.wait_for(
                self.gateway.write(accessory_id, kind, value),
                timeout=self.config.write_timeout,
            )
        except asyncio.TimeoutError:
            error = WriteFailed(
                accessory_id,
                kind,
                value,
                f"timed out after {self.config.write_timeout}s",
            )
        except WriteFailed as err:
            error = err
        except PyAccessorySyncException as err:
            error = WriteFailed(accessory_id, kind, value, str(err))
        except Exception as err:
            _LOGGER.exception("Unexpected error writing %s of %s", kind, accessory_id)
            error = WriteFailed(accessory_id, kind, value, str(err) or type(err).__name__)
        self._post(
            _WriteCompleted(accessory_id, kind, value, generation, result, error),
        )
