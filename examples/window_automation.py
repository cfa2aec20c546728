#!/usr/bin/env python3

"""Example script: mirror a bridge's homes and automate its windows."""

import asyncio
import logging
import os
import sys

from pyaccessorysync import (
    AccessoryManager,
    BridgeConfig,
    ConfigError,
    ManagerConfig,
    RemoteAccessoryGateway,
    StoreSnapshot,
    WriteFailed,
)

# --- Configuration ---
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)

# Optional home to select instead of the first one returned by the bridge
TARGET_HOME_ID = os.getenv("ACCESSORYSYNC_HOME_ID")
# How long to keep mirroring before exiting (seconds)
RUN_SECONDS = float(os.getenv("ACCESSORYSYNC_RUN_SECONDS", "60"))


def print_snapshot(snapshot: StoreSnapshot) -> None:
    home = snapshot.selected_home
    logging.info(
        "Home: %s | hub: %s | accessories: %d | pending writes: %d",
        home.name if home else "-",
        snapshot.hub_state,
        len(snapshot.accessories),
        len(snapshot.pending_targets),
    )


def report_failure(error: WriteFailed) -> None:
    logging.error("Window write failed: %s", error)


async def main() -> None:
    """Run the example against the bridge configured in the environment."""
    try:
        bridge_config = BridgeConfig.from_env()
        manager_config = ManagerConfig.from_env()
    except ConfigError as e:
        logging.error("Configuration error: %s", e)
        sys.exit(1)

    gateway = RemoteAccessoryGateway(bridge_config)
    async with AccessoryManager(gateway, manager_config) as manager:
        manager.store.subscribe(print_snapshot)
        manager.add_write_failure_listener(report_failure)
        await manager.wait_idle()

        homes = manager.store.homes
        logging.info("Found %d homes:", len(homes))
        for i, home in enumerate(homes, start=1):
            logging.info("  %d. Name: '%s', ID: %s", i, home.name, home.id)

        if TARGET_HOME_ID and not await manager.select_home(TARGET_HOME_ID):
            logging.error("Home ID %s not found.", TARGET_HOME_ID)
            return
        await manager.wait_idle()

        temperature = manager.store.temperature
        if temperature is None:
            logging.info("No temperature data")
        else:
            logging.info("Temperature: %.1f °C", temperature)
        for accessory in manager.store.accessories:
            logging.info(
                "  - %s: position=%s target=%s",
                accessory.name,
                manager.store.window_positions.get(accessory.id),
                manager.store.last_target(accessory.id),
            )

        await asyncio.sleep(RUN_SECONDS)


if __name__ == "__main__":
    asyncio.run(main())
