"""WebSocket client for receiving characteristic push notifications."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from contextlib import suppress
import json
import logging
import ssl
from typing import Any

import websockets
from websockets.protocol import State

from .exceptions import PyAccessorySyncException

_LOGGER = logging.getLogger(__name__)


class WebsocketClient:
    """Handles the WebSocket connection to the bridge push channel.

    This client connects to the push URL, subscribes with the bridge access
    token, and invokes a user-provided asynchronous callback for each
    received message. `run_forever` reconnects after a fixed delay whenever
    the connection drops.

    Attributes:
        _url (str): WebSocket URL of the push channel.
        _token (str): Bridge access token sent in the subscription message.
        _message_callback (Callable): Async function called with received messages.
        _websocket (Optional[websockets.ClientConnection]): The active connection.
        _listener_task (Optional[asyncio.Task]): The task running the listener loop.
        _is_running (bool): Flag indicating if the client is actively running/connecting.
        _connection_lock (asyncio.Lock): Lock serializing connect/disconnect.

    """

    def __init__(
        self,
        url: str,
        token: str,
        message_callback: Callable[[dict[str, Any]], Awaitable[None]],
        subscribe_timeout: float = 10,
    ) -> None:
        """Initialize the WebSocket client.

        Args:
            url (str): ws:// or wss:// URL of the bridge push channel.
            token (str): Bridge access token.
            message_callback (Callable[[dict[str, Any]], Awaitable[None]]):
                An asynchronous function that will be called with each decoded
                JSON message received from the WebSocket.
            subscribe_timeout (float): Seconds to wait for the subscription
                confirmation.

        Raises:
            TypeError: If `message_callback` is not an async function.

        """
        if not inspect.iscoroutinefunction(message_callback):
            err_msg = "message_callback must be an async function"
            raise TypeError(err_msg)

        self._url = url
        self._token = token
        self._message_callback = message_callback
        self._subscribe_timeout = subscribe_timeout
        self._websocket: websockets.ClientConnection | None = None
        self._listener_task: asyncio.Task | None = None
        self._is_running = False
        self._connection_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def _subscribe(self) -> None:
        """Send the subscription message and wait for the 'ok' status.

        Raises:
            PyAccessorySyncException: If the WebSocket is not connected, if a
                                      timeout occurs waiting for the response,
                                      or if the bridge returns a non-ok status.
            websockets.exceptions.ConnectionClosed: If the connection closes
                                                    during subscription.

        """
        if not self._websocket:
            err_msg = "WebSocket connection not established."
            raise PyAccessorySyncException(err_msg)

        try:
            subscribe_message = {
                "action": "subscribe",
                "access_token": self._token,
            }
            _LOGGER.info("Sending WebSocket subscription message...")
            await self._websocket.send(json.dumps(subscribe_message))

            response_raw = await asyncio.wait_for(
                self._websocket.recv(),
                timeout=self._subscribe_timeout,
            )
            response = json.loads(response_raw)
            _LOGGER.debug("Subscription response: %s", response)
            if response.get("status") == "ok":
                _LOGGER.info("WebSocket subscription successful.")
            else:
                err_msg = f"WebSocket subscription failed: {response}"
                raise PyAccessorySyncException(err_msg)  # noqa: TRY301
        except websockets.exceptions.ConnectionClosed:
            _LOGGER.warning("WebSocket connection closed during subscription.")
            raise
        except asyncio.TimeoutError:
            _LOGGER.exception("Timeout waiting for WebSocket subscription response.")
            err_msg = "Timeout waiting for WebSocket subscription response."
            raise PyAccessorySyncException(err_msg) from None
        except PyAccessorySyncException:
            raise
        except Exception as e:
            _LOGGER.exception("Error during WebSocket subscription")
            err_msg = f"Error during WebSocket subscription: {e}"
            raise PyAccessorySyncException(err_msg) from e

    async def _listen(self) -> None:
        """Pass every received JSON message to the callback until the connection closes.

        Raises:
            websockets.exceptions.ConnectionClosedError: If the connection closes
                                                         with an error.
            asyncio.CancelledError: If the listening task is cancelled.

        """
        if not self._websocket or self._websocket.state == State.CLOSED:
            _LOGGER.error("Cannot listen, WebSocket is not connected or is closed.")
            return

        _LOGGER.info("Starting WebSocket listener loop...")
        try:
            async for message_raw in self._websocket:
                try:
                    message = json.loads(message_raw)
                    _LOGGER.debug("Received WebSocket message: %s", message)
                    await self._message_callback(message)
                except json.JSONDecodeError:
                    _LOGGER.warning(
                        "Received non-JSON WebSocket message: %s",
                        message_raw,
                    )
                except Exception:
                    _LOGGER.exception(
                        "Error processing WebSocket message in callback",
                    )
        except websockets.exceptions.ConnectionClosedOK as e:
            _LOGGER.info(
                "WebSocket connection closed normally (code=%s, reason='%s').",
                e.code,
                e.reason or "No reason given",
            )
        except websockets.exceptions.ConnectionClosedError as e:
            _LOGGER.warning(
                "WebSocket connection closed with error (code=%s, reason='%s').",
                e.code,
                e.reason or "No reason given",
            )
            raise
        except asyncio.CancelledError:
            _LOGGER.info("WebSocket listener task cancelled.")
            raise
        finally:
            _LOGGER.info("WebSocket listener loop finished.")

    async def connect(self) -> None:
        """Establish the WebSocket connection, subscribe, and start listening.

        Raises:
            PyAccessorySyncException: If connection or subscription fails.

        """
        async with self._connection_lock:
            if self._is_running:
                _LOGGER.warning("WebSocket client is already running or connecting.")
                return

            self._is_running = True
            _LOGGER.info("Connecting to WebSocket: %s", self._url)
            try:
                ssl_context = (
                    ssl.create_default_context()
                    if self._url.startswith("wss://")
                    else None
                )
                self._websocket = await websockets.connect(
                    self._url,
                    ssl=ssl_context,
                    open_timeout=20,
                    close_timeout=10,
                    ping_interval=20,
                    ping_timeout=20,
                )
                _LOGGER.info("WebSocket connection established.")

                await self._subscribe()

                self._listener_task = asyncio.create_task(self._listen())
                _LOGGER.info("WebSocket listener task started.")

            except Exception as e:
                _LOGGER.exception("Failed to connect or subscribe to WebSocket")
                self._is_running = False
                if self._websocket and self._websocket.state != State.CLOSED:
                    with suppress(websockets.exceptions.WebSocketException):
                        await self._websocket.close()
                self._websocket = None
                self._listener_task = None
                err_msg = f"WebSocket connection/subscription failed: {e}"
                raise PyAccessorySyncException(err_msg) from e

    async def disconnect(self) -> None:
        """Cancel the listener task and close the WebSocket connection."""
        async with self._connection_lock:
            if not self._is_running and not self._websocket:
                _LOGGER.debug("WebSocket client already disconnected.")
                return

            _LOGGER.info("Disconnecting WebSocket client...")
            self._is_running = False

            if self._listener_task and not self._listener_task.done():
                self._listener_task.cancel()
                try:
                    await self._listener_task
                except asyncio.CancelledError:
                    _LOGGER.debug("Listener task successfully cancelled.")
                except Exception:
                    _LOGGER.exception("Error waiting for listener task cancellation")
            self._listener_task = None

            ws = self._websocket
            self._websocket = None

            if ws and ws.state != State.CLOSED:
                try:
                    await ws.close()
                    _LOGGER.info("WebSocket connection closed.")
                except websockets.exceptions.WebSocketException as e:
                    _LOGGER.warning("Error closing WebSocket connection: %s", e)

    async def run_forever(self, reconnect_delay: float = 30) -> None:
        """Connect and keep the connection alive until `disconnect` is called.

        Whenever the listener ends or connecting fails, waits
        `reconnect_delay` seconds and connects again. Cancel the task running
        this method, or call `disconnect`, to stop it.

        Args:
            reconnect_delay (float): Seconds to wait before reconnecting.

        """
        _LOGGER.info("Starting WebSocket client run_forever loop...")
        while True:
            try:
                await self.connect()
                listener = self._listener_task
                if listener:
                    # Cancelling this task must not be mistaken for a dropped listener.
                    await asyncio.wait({listener})
                    if listener.cancelled():
                        if not self._is_running:
                            _LOGGER.info("run_forever: Listener cancelled by disconnect.")
                            break
                        _LOGGER.warning(
                            "Listener task cancelled externally, attempting reconnect.",
                        )
                    elif listener.exception() is not None:
                        _LOGGER.error(
                            "run_forever: Listener task failed",
                            exc_info=listener.exception(),
                        )

                if not self._is_running:
                    _LOGGER.info("run_forever: Disconnect called. Exiting loop.")
                    break
                _LOGGER.warning("WebSocket listener stopped. Attempting reconnect.")

            except PyAccessorySyncException:
                _LOGGER.exception(
                    "WebSocket connection/subscription error. Retrying in %s seconds...",
                    reconnect_delay,
                )

            await self.disconnect()
            _LOGGER.info(
                "Waiting %s seconds before reconnect attempt...",
                reconnect_delay,
            )
            await asyncio.sleep(reconnect_delay)
