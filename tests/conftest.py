"""Pytest configuration and shared fixtures for pyaccessorysync tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from pyaccessorysync import (
    Accessory,
    AccessoryGateway,
    CharacteristicKind,
    GatewayUnavailable,
    Home,
    HubState,
    NotificationSubscriptionFailed,
    ReadFailed,
    ServiceKind,
    WriteFailed,
)

TEMPERATURE = CharacteristicKind.CURRENT_TEMPERATURE
CURRENT_POSITION = CharacteristicKind.CURRENT_POSITION
TARGET_POSITION = CharacteristicKind.TARGET_POSITION

Key = tuple[str, CharacteristicKind]


class FakeGateway(AccessoryGateway):
    """In-memory gateway with switches for every failure mode."""

    def __init__(
        self,
        homes: list[Home] | None = None,
        accessories: dict[str, list[Accessory]] | None = None,
        values: dict[Key, Any] | None = None,
    ) -> None:
        super().__init__()
        self.homes = homes or []
        self.accessories = accessories or {}
        self.values = values or {}
        self.unavailable = False
        self.fail_subscribe: set[Key] = set()
        self.fail_reads: set[Key] = set()
        self.read_gates: dict[Key, asyncio.Event] = {}
        self.write_error: str | None = None
        self.write_gate: asyncio.Event | None = None
        self.subscriptions: list[Key] = []
        self.read_calls: list[Key] = []
        self.accessory_calls: list[str] = []
        self.writes: list[tuple[str, CharacteristicKind, Any]] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def list_homes(self) -> list[Home]:
        if self.unavailable:
            raise GatewayUnavailable("no session")
        return list(self.homes)

    async def accessories_for(self, home_id: str) -> list[Accessory]:
        self.accessory_calls.append(home_id)
        return list(self.accessories.get(home_id, []))

    async def subscribe(self, accessory_id: str, kind: CharacteristicKind) -> None:
        if (accessory_id, kind) in self.fail_subscribe:
            raise NotificationSubscriptionFailed(accessory_id, kind, "denied")
        self.subscriptions.append((accessory_id, kind))

    async def read_once(self, accessory_id: str, kind: CharacteristicKind) -> Any:
        key = (accessory_id, kind)
        self.read_calls.append(key)
        if key in self.read_gates:
            await self.read_gates[key].wait()
        if key in self.fail_reads or key not in self.values:
            raise ReadFailed(accessory_id, kind, "unreachable")
        return self.values[key]

    async def write(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
    ) -> None:
        self.writes.append((accessory_id, kind, value))
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.write_error is not None:
            raise WriteFailed(accessory_id, kind, value, self.write_error)

    def push_value(self, accessory_id: str, kind: CharacteristicKind, value: Any) -> None:
        self._notify_value(accessory_id, kind, value)

    def push_homes(self, homes: list[Home]) -> None:
        self._notify_homes(homes)


async def wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until `condition` holds."""

    async def _poll() -> None:
        while not condition():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def home_a() -> Home:
    return Home(id="home-a", name="Apartment", hub_state=HubState.CONNECTED)


@pytest.fixture
def home_b() -> Home:
    return Home(id="home-b", name="Cabin", hub_state=HubState.DISCONNECTED)


@pytest.fixture
def thermometer() -> Accessory:
    return Accessory(
        id="thermo",
        name="Thermometer",
        home_id="home-a",
        services=frozenset({ServiceKind.TEMPERATURE_SENSOR}),
        characteristics=frozenset({TEMPERATURE}),
    )


@pytest.fixture
def window() -> Accessory:
    return Accessory(
        id="window",
        name="Living Room Window",
        home_id="home-a",
        services=frozenset({ServiceKind.WINDOW}),
        characteristics=frozenset({CURRENT_POSITION, TARGET_POSITION}),
    )


@pytest.fixture
def cabin_window() -> Accessory:
    return Accessory(
        id="window-b",
        name="Cabin Window",
        home_id="home-b",
        services=frozenset({ServiceKind.WINDOW_COVERING}),
        characteristics=frozenset({CURRENT_POSITION, TARGET_POSITION}),
    )


@pytest.fixture
def gateway(home_a, home_b, thermometer, window, cabin_window) -> FakeGateway:
    """Gateway with a warm apartment (22°C, window open) and a cabin."""
    return FakeGateway(
        homes=[home_a, home_b],
        accessories={
            "home-a": [thermometer, window],
            "home-b": [cabin_window],
        },
        values={
            ("thermo", TEMPERATURE): 22.0,
            ("window", CURRENT_POSITION): 100,
            ("window", TARGET_POSITION): 100,
            ("window-b", CURRENT_POSITION): 0,
            ("window-b", TARGET_POSITION): 0,
        },
    )
