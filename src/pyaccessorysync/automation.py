"""Temperature driven window automation."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import logging

from .const import POSITION_CLOSED, POSITION_OPEN, TEMPERATURE_THRESHOLD

_LOGGER = logging.getLogger(__name__)

WindowCommand = tuple[str, int]


def target_position(temperature_celsius: float) -> int:
    """Return the window position for a temperature.

    Closed strictly below the threshold, open at or above it.
    """
    if temperature_celsius < TEMPERATURE_THRESHOLD:
        return POSITION_CLOSED
    return POSITION_OPEN


def evaluate(
    temperature_celsius: float,
    window_accessory_ids: Iterable[str],
) -> list[WindowCommand]:
    """Return one (accessory_id, target_position) command per window."""
    target = target_position(temperature_celsius)
    return [(accessory_id, target) for accessory_id in window_accessory_ids]


def without_redundant(
    commands: Iterable[WindowCommand],
    last_target: Callable[[str], int | None],
) -> list[WindowCommand]:
    """Drop commands whose target equals the last known target of the window."""
    kept = []
    for accessory_id, target in commands:
        if last_target(accessory_id) == target:
            _LOGGER.debug(
                "Window %s already targeted at %s, skipping write",
                accessory_id,
                target,
            )
            continue
        kept.append((accessory_id, target))
    return kept


class AutomationRuleEvaluator:
    """Maps temperature observations to window target positions.

    The rule has no hysteresis and no per-window override. With
    `deduplicate` set, windows already targeted at the computed position are
    left out so oscillating temperatures do not produce repeated writes.
    """

    def __init__(self, deduplicate: bool = True) -> None:
        """Initialize the evaluator."""
        self.deduplicate = deduplicate

    def evaluate(
        self,
        temperature_celsius: float,
        window_accessory_ids: Iterable[str],
        last_target: Callable[[str], int | None] | None = None,
    ) -> list[WindowCommand]:
        """Return the commands to issue for a temperature observation.

        Args:
            temperature_celsius (float): Observed temperature.
            window_accessory_ids (Iterable[str]): Window-capable accessories
                of the selected home.
            last_target (Callable | None): Lookup of the last known target
                position per accessory. Only used when deduplicating.

        Returns:
            list[WindowCommand]: (accessory_id, target_position) pairs.

        """
        commands = evaluate(temperature_celsius, window_accessory_ids)
        if self.deduplicate and last_target is not None:
            commands = without_redundant(commands, last_target)
        _LOGGER.debug(
            "Temperature %.1f°C -> %d window command(s)",
            temperature_celsius,
            len(commands),
        )
        return commands
