"""Tests for RemoteAccessoryGateway."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from conftest import CURRENT_POSITION, TARGET_POSITION, TEMPERATURE
from pyaccessorysync import (
    ApiError,
    AuthError,
    BridgeConfig,
    GatewayUnavailable,
    HubState,
    NotificationSubscriptionFailed,
    ReadFailed,
    RemoteAccessoryGateway,
    WriteFailed,
)


@pytest.fixture
def bridge_config() -> BridgeConfig:
    return BridgeConfig(base_url="http://bridge.local", token="secret-token")


def _response(status: int = 200, body=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=body if body is not None else {})
    response.text = AsyncMock(return_value=text)
    return response


def _session(response: MagicMock) -> MagicMock:
    session = MagicMock()
    session.closed = False
    session.request.return_value.__aenter__.return_value = response
    return session


@pytest.fixture
def gateway(bridge_config) -> RemoteAccessoryGateway:
    """Gateway whose HTTP layer is replaced by an AsyncMock."""
    gateway = RemoteAccessoryGateway(bridge_config, session=MagicMock())
    gateway._async_request = AsyncMock(return_value={})
    return gateway


class TestRequests:
    """The authenticated request helper."""

    @pytest.mark.asyncio
    async def test_success_returns_json(self, bridge_config):
        session = _session(_response(body={"homes": []}))
        gateway = RemoteAccessoryGateway(bridge_config, session=session)

        assert await gateway._async_request("GET", "/api/homes") == {"homes": []}

        args, kwargs = session.request.call_args
        assert args == ("GET", "http://bridge.local/api/homes")
        assert kwargs["headers"]["Authorization"] == "Bearer secret-token"
        assert kwargs["headers"]["User-Agent"].startswith("pyaccessorysync/")

    @pytest.mark.asyncio
    async def test_no_content(self, bridge_config):
        gateway = RemoteAccessoryGateway(
            bridge_config,
            session=_session(_response(status=204)),
        )
        assert await gateway._async_request("PUT", "/x", {"value": 1}) == {}

    @pytest.mark.asyncio
    async def test_plain_text_success_is_not_an_error(self, bridge_config):
        response = _response(status=200, text="OK")
        response.json.side_effect = ValueError("Expecting value")
        gateway = RemoteAccessoryGateway(bridge_config, session=_session(response))

        await gateway.write("w1", TARGET_POSITION, 40)
        await gateway.subscribe("w1", CURRENT_POSITION)

        response.json.assert_awaited_with(content_type=None)

    @pytest.mark.asyncio
    async def test_empty_success_body(self, bridge_config):
        response = _response(status=200)
        response.json.return_value = None
        gateway = RemoteAccessoryGateway(bridge_config, session=_session(response))

        assert await gateway._async_request("PUT", "/x", {"value": 1}) == {}

    @pytest.mark.asyncio
    async def test_rejected_token(self, bridge_config):
        gateway = RemoteAccessoryGateway(
            bridge_config,
            session=_session(_response(status=401, text="expired")),
        )
        with pytest.raises(AuthError, match="expired"):
            await gateway._async_request("GET", "/api/homes")

    @pytest.mark.asyncio
    async def test_error_message_from_body(self, bridge_config):
        response = _response(
            status=500,
            body={"error": {"message": "accessory not responding"}},
            text="oops",
        )
        gateway = RemoteAccessoryGateway(bridge_config, session=_session(response))

        with pytest.raises(ApiError) as excinfo:
            await gateway._async_request("GET", "/api/homes")
        assert excinfo.value.status_code == 500
        assert excinfo.value.error_message == "accessory not responding"

    @pytest.mark.asyncio
    async def test_non_json_error(self, bridge_config):
        response = _response(status=502, text="Bad Gateway")
        response.json.side_effect = ValueError("not json")
        gateway = RemoteAccessoryGateway(bridge_config, session=_session(response))

        with pytest.raises(ApiError) as excinfo:
            await gateway._async_request("GET", "/api/homes")
        assert excinfo.value.error_message == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_connection_error(self, bridge_config):
        session = MagicMock()
        session.closed = False
        session.request.side_effect = aiohttp.ClientConnectionError("refused")
        gateway = RemoteAccessoryGateway(bridge_config, session=session)

        with pytest.raises(ApiError) as excinfo:
            await gateway._async_request("GET", "/api/homes")
        assert excinfo.value.status_code == 0

    @pytest.mark.asyncio
    async def test_external_session_is_not_closed(self, bridge_config):
        session = MagicMock()
        session.closed = False
        session.close = AsyncMock()
        gateway = RemoteAccessoryGateway(bridge_config, session=session)

        await gateway.close_session()
        session.close.assert_not_awaited()


class TestOperations:
    """Gateway operations and their error mapping."""

    @pytest.mark.asyncio
    async def test_list_homes_keeps_bridge_order(self, gateway):
        gateway._async_request.return_value = {
            "homes": [
                {"id": "h2", "name": "Cabin", "hub_state": "disconnected"},
                {"name": "no id"},
                {"id": "h1", "name": "Flat", "hub_state": "connected"},
            ],
        }
        homes = await gateway.list_homes()

        assert [h.id for h in homes] == ["h2", "h1"]
        assert homes[1].hub_state is HubState.CONNECTED
        gateway._async_request.assert_awaited_once_with("GET", "/api/homes")

    @pytest.mark.asyncio
    async def test_list_homes_unreachable(self, gateway):
        gateway._async_request.side_effect = ApiError(0, "Request error")
        with pytest.raises(GatewayUnavailable):
            await gateway.list_homes()

    @pytest.mark.asyncio
    async def test_accessories_for(self, gateway):
        gateway._async_request.return_value = {
            "accessories": [
                {
                    "id": "w1",
                    "name": "Window",
                    "services": [
                        {
                            "type": "window",
                            "characteristics": ["current_position", "target_position"],
                        },
                    ],
                },
            ],
        }
        accessories = await gateway.accessories_for("h1")

        assert accessories[0].is_window
        assert accessories[0].home_id == "h1"
        gateway._async_request.assert_awaited_once_with(
            "GET",
            "/api/homes/h1/accessories",
        )

    @pytest.mark.asyncio
    async def test_read_once(self, gateway):
        gateway._async_request.return_value = {"value": 21.5}
        assert await gateway.read_once("t1", TEMPERATURE) == 21.5
        gateway._async_request.assert_awaited_once_with(
            "GET",
            "/api/accessories/t1/characteristics/current_temperature",
        )

    @pytest.mark.asyncio
    async def test_read_without_value(self, gateway):
        with pytest.raises(ReadFailed):
            await gateway.read_once("t1", TEMPERATURE)

    @pytest.mark.asyncio
    async def test_read_error(self, gateway):
        gateway._async_request.side_effect = ApiError(404, "unknown accessory")
        with pytest.raises(ReadFailed, match="unknown accessory"):
            await gateway.read_once("t1", TEMPERATURE)

    @pytest.mark.asyncio
    async def test_write(self, gateway):
        await gateway.write("w1", TARGET_POSITION, 40)
        gateway._async_request.assert_awaited_once_with(
            "PUT",
            "/api/accessories/w1/characteristics/target_position",
            {"value": 40},
        )

    @pytest.mark.asyncio
    async def test_write_error(self, gateway):
        gateway._async_request.side_effect = ApiError(408, "Request timed out")
        with pytest.raises(WriteFailed) as excinfo:
            await gateway.write("w1", TARGET_POSITION, 40)
        assert excinfo.value.value == 40
        assert excinfo.value.accessory_id == "w1"

    @pytest.mark.asyncio
    async def test_subscribe(self, gateway):
        await gateway.subscribe("w1", CURRENT_POSITION)
        gateway._async_request.assert_awaited_once_with(
            "POST",
            "/api/accessories/w1/characteristics/current_position/notifications",
            {"enabled": True},
        )

    @pytest.mark.asyncio
    async def test_subscribe_error(self, gateway):
        gateway._async_request.side_effect = AuthError("denied")
        with pytest.raises(NotificationSubscriptionFailed):
            await gateway.subscribe("w1", CURRENT_POSITION)


class TestPushMessages:
    """Push messages forwarded to the listener."""

    @pytest.mark.asyncio
    async def test_characteristic_message(self, gateway):
        listener = MagicMock()
        gateway.set_listener(listener)

        await gateway._handle_push_message(
            {
                "type": "characteristic",
                "accessory_id": "w1",
                "characteristic": "current_position",
                "value": 35,
            },
        )
        listener.value_updated.assert_called_once_with("w1", CURRENT_POSITION, 35, None)

    @pytest.mark.asyncio
    async def test_homes_message(self, gateway):
        listener = MagicMock()
        gateway.set_listener(listener)

        await gateway._handle_push_message(
            {"type": "homes", "homes": [{"id": "h1", "name": "Flat"}]},
        )
        (homes,), _ = listener.homes_updated.call_args
        assert [h.id for h in homes] == ["h1"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            {"type": "characteristic", "accessory_id": "w1", "characteristic": "hue", "value": 1},
            {"type": "characteristic", "characteristic": "current_position", "value": 1},
            {"type": "characteristic", "accessory_id": "w1", "characteristic": "current_position"},
            {"type": "heartbeat"},
        ],
    )
    async def test_ignored_messages(self, gateway, message):
        listener = MagicMock()
        gateway.set_listener(listener)

        await gateway._handle_push_message(message)

        listener.value_updated.assert_not_called()
        listener.homes_updated.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_listener(self, gateway):
        await gateway._handle_push_message(
            {
                "type": "characteristic",
                "accessory_id": "w1",
                "characteristic": "current_position",
                "value": 35,
            },
        )
