"""Accessory gateway for frameworks exposing a JSON bridge API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from .config import BridgeConfig
from .const import (
    ACCESSORIES_ENDPOINT,
    CHARACTERISTIC_ENDPOINT,
    HOMES_ENDPOINT,
    MESSAGE_TYPE_CHARACTERISTIC,
    MESSAGE_TYPE_HOMES,
    NOTIFICATIONS_ENDPOINT,
    build_user_agent,
)
from .exceptions import (
    ApiError,
    AuthError,
    GatewayUnavailable,
    NotificationSubscriptionFailed,
    ReadFailed,
    WriteFailed,
)
from .gateway import AccessoryGateway
from .models import Accessory, CharacteristicKind, Home
from .websocket import WebsocketClient

_LOGGER = logging.getLogger(__name__)


def parse_homes(body: dict[str, Any]) -> list[Home]:
    """Build Home objects from a /api/homes body, keeping the bridge order."""
    homes = []
    for home_data in body.get("homes", []):
        home = Home.from_dict(home_data)
        if home is not None:
            homes.append(home)
    return homes


def parse_accessories(home_id: str, body: dict[str, Any]) -> list[Accessory]:
    accessories = []
    for accessory_data in body.get("accessories", []):
        accessory = Accessory.from_dict(home_id, accessory_data)
        if accessory is not None:
            accessories.append(accessory)
    return accessories


class RemoteAccessoryGateway(AccessoryGateway):
    """Gateway talking to a home-automation bridge over HTTP and WebSocket.

    Requests use a bearer token. Push notifications arrive on a WebSocket
    kept alive by a background `WebsocketClient.run_forever` task and are
    forwarded to the registered listener.
    """

    def __init__(
        self,
        config: BridgeConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            config (BridgeConfig): Bridge URLs, token and timeouts.
            session (aiohttp.ClientSession | None): Session to reuse. When
                omitted the gateway creates and closes its own.

        """
        super().__init__()
        self.config = config
        self._session = session
        self._managed_session = session is None
        self._websocket = WebsocketClient(
            config.push_url,
            config.token,
            self._handle_push_message,
        )
        self._push_task: asyncio.Task | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            _LOGGER.debug("Creating new aiohttp ClientSession for the bridge.")
            self._session = aiohttp.ClientSession()
            self._managed_session = True
        return self._session

    async def close_session(self) -> None:
        """Close the aiohttp session if it is managed by this instance."""
        if self._session and not self._session.closed and self._managed_session:
            await self._session.close()
            self._session = None
            _LOGGER.debug("Managed aiohttp session closed.")

    async def start(self) -> None:
        """Start listening for push notifications."""
        if self._push_task is None or self._push_task.done():
            self._push_task = asyncio.create_task(
                self._websocket.run_forever(self.config.reconnect_delay),
            )

    async def stop(self) -> None:
        """Stop the push listener and close the managed session."""
        await self._websocket.disconnect()
        if self._push_task is not None:
            self._push_task.cancel()
            try:
                await self._push_task
            except asyncio.CancelledError:
                _LOGGER.debug("Push task cancelled.")
            self._push_task = None
        await self.close_session()

    async def _async_request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the bridge.

        Raises:
            AuthError: If the bridge rejects the token.
            ApiError: For any other HTTP error, timeout or connection error.

        """
        url = self.config.base_url + endpoint
        headers = {
            "Authorization": f"Bearer {self.config.token}",
            "User-Agent": build_user_agent(),
        }
        session = await self._get_session()

        _LOGGER.debug("Making %s request to %s", method, url)
        _LOGGER.debug("JSON Data: %s", json_data)

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                json=json_data,
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout),
            ) as response:
                _LOGGER.debug("Response status code: %s", response.status)

                if response.status in (401, 403):
                    error_text = await response.text()
                    err_msg = f"Bridge rejected the access token: {error_text}"
                    raise AuthError(err_msg)

                if response.status >= 400:
                    error_text = await response.text()
                    _LOGGER.error(
                        "API Error Response (%s): %s",
                        response.status,
                        error_text,
                    )
                    try:
                        error = (await response.json()).get("error")
                        if isinstance(error, dict):
                            error = error.get("message")
                        error_message = error or error_text
                    except (aiohttp.ContentTypeError, ValueError, AttributeError):
                        error_message = error_text
                    raise ApiError(response.status, error_message)

                if response.status == 204:
                    return {}

                # Any 2xx is a success, whatever the body.
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    _LOGGER.debug("Non-JSON success response from %s", url)
                    return {}
                return body if isinstance(body, dict) else {}

        except asyncio.TimeoutError:
            _LOGGER.error("Request timed out: %s %s", method, url)
            raise ApiError(408, "Request timed out") from None
        except aiohttp.ClientError as req_err:
            _LOGGER.error("Request error during API request: %s", req_err)
            raise ApiError(0, f"Request error: {req_err}") from req_err

    async def list_homes(self) -> list[Home]:
        """Return the homes known to the bridge.

        Raises:
            GatewayUnavailable: If the bridge cannot be reached or refuses access.

        """
        try:
            body = await self._async_request("GET", HOMES_ENDPOINT)
        except (AuthError, ApiError) as err:
            raise GatewayUnavailable(str(err)) from err
        homes = parse_homes(body)
        _LOGGER.info("Topology updated. Found %d homes.", len(homes))
        return homes

    async def accessories_for(self, home_id: str) -> list[Accessory]:
        try:
            body = await self._async_request(
                "GET",
                ACCESSORIES_ENDPOINT.format(home_id=home_id),
            )
        except (AuthError, ApiError) as err:
            raise GatewayUnavailable(str(err)) from err
        return parse_accessories(home_id, body)

    async def subscribe(self, accessory_id: str, kind: CharacteristicKind) -> None:
        endpoint = NOTIFICATIONS_ENDPOINT.format(accessory_id=accessory_id, kind=kind)
        try:
            await self._async_request("POST", endpoint, {"enabled": True})
        except (AuthError, ApiError) as err:
            raise NotificationSubscriptionFailed(accessory_id, kind, str(err)) from err

    async def read_once(self, accessory_id: str, kind: CharacteristicKind) -> Any:
        endpoint = CHARACTERISTIC_ENDPOINT.format(accessory_id=accessory_id, kind=kind)
        try:
            body = await self._async_request("GET", endpoint)
        except (AuthError, ApiError) as err:
            raise ReadFailed(accessory_id, kind, str(err)) from err
        if "value" not in body:
            raise ReadFailed(accessory_id, kind, "response has no value")
        return body["value"]

    async def write(
        self,
        accessory_id: str,
        kind: CharacteristicKind,
        value: Any,
    ) -> None:
        endpoint = CHARACTERISTIC_ENDPOINT.format(accessory_id=accessory_id, kind=kind)
        try:
            await self._async_request("PUT", endpoint, {"value": value})
        except (AuthError, ApiError) as err:
            raise WriteFailed(accessory_id, kind, value, str(err)) from err

    async def _handle_push_message(self, message: dict[str, Any]) -> None:
        """Forward a push message to the listener."""
        message_type = message.get("type")
        if message_type == MESSAGE_TYPE_CHARACTERISTIC:
            accessory_id = message.get("accessory_id")
            try:
                kind = CharacteristicKind(message.get("characteristic"))
            except ValueError:
                _LOGGER.debug("Ignoring untracked characteristic push: %s", message)
                return
            if not accessory_id or "value" not in message:
                _LOGGER.warning("Malformed characteristic push: %s", message)
                return
            self._notify_value(str(accessory_id), kind, message["value"])
        elif message_type == MESSAGE_TYPE_HOMES:
            self._notify_homes(parse_homes(message))
        else:
            _LOGGER.debug("Ignoring push message of type %s", message_type)
