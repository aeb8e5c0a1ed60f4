"""
Tests for the realtime gateway: room handlers, bus relay, subscriber loop.

The Socket.IO server is an AsyncMock; the assertions are on what would
have been emitted and to which room.
"""

import asyncio
import json
from contextlib import suppress
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.exceptions
from fastapi.testclient import TestClient

from shared.infrastructure.events.channels import SUBSCRIBE_PATTERNS
from shared.infrastructure.events.publisher import MAX_EVENT_SIZE
from ws_gateway.cart_gateway import CartGateway
from ws_gateway.membership import TableMembership
from ws_gateway.redis_subscriber import decode_message, run_subscriber
from ws_gateway.relay import EventRelay
from ws_gateway.retry import ReconnectPolicy
from tests.conftest import make_settings


@pytest.fixture
def sio():
    server = MagicMock()
    server.emit = AsyncMock()
    server.enter_room = AsyncMock()
    server.leave_room = AsyncMock()
    return server


@pytest.fixture
def membership():
    return TableMembership()


@pytest.fixture
def gateway(sio, membership):
    return CartGateway(sio, membership, now_ms=lambda: 1_700_000_000_000)


def emitted(sio, event):
    return [c for c in sio.emit.await_args_list if c.args[0] == event]


class TestTableMembership:
    def test_join_counts_per_table(self, membership):
        assert membership.join("s1", "4") == 1
        assert membership.join("s2", "4", user_id="u2") == 2
        assert membership.join("s3", "7") == 1
        assert membership.count("4") == 2
        assert membership.stats() == {"tables": 2, "clients": 3}

    def test_joining_another_table_moves_the_socket(self, membership):
        membership.join("s1", "4")
        membership.join("s1", "7")
        assert membership.count("4") == 0
        assert membership.count("7") == 1
        assert "4" not in membership.by_table

    def test_leave_without_table_uses_current_one(self, membership):
        membership.join("s1", "4")
        membership.join("s2", "4")
        assert membership.leave("s1") == ("4", 1)
        assert membership.table_of("s1") is None

    def test_leave_unknown_socket(self, membership):
        assert membership.leave("ghost") == (None, 0)


class TestCartGateway:
    def test_register_binds_client_events(self, gateway, sio):
        gateway.register()
        events = {c.args[0] for c in sio.on.call_args_list}
        assert events == {"connect", "disconnect", "joinCart", "leaveCart", "ping"}

    @pytest.mark.asyncio
    async def test_join_cart_enters_room_and_notifies(self, gateway, sio, membership):
        membership.join("other", "4")

        ack = await gateway.join_cart("s1", {"tableId": "4", "userId": "u1"})

        sio.enter_room.assert_awaited_once_with("s1", "table:4")
        assert ack["ok"] is True
        assert ack["clientsInTable"] == 2

        subscribed = emitted(sio, "cartSubscribed")[0]
        assert subscribed.args[1] == {
            "tableId": "4",
            "message": "Subscribed to cart for table 4",
            "clientsInTable": 2,
        }
        assert subscribed.kwargs["to"] == "s1"

        joined = emitted(sio, "userJoined")[0]
        assert joined.args[1] == {"userId": "u1", "clientCount": 2}
        assert joined.kwargs["to"] == "table:4"
        assert joined.kwargs["skip_sid"] == "s1"

    @pytest.mark.asyncio
    async def test_numeric_table_id_is_normalized(self, gateway, sio):
        await gateway.join_cart("s1", {"tableId": 4})
        sio.enter_room.assert_awaited_once_with("s1", "table:4")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"tableId": ""}, None, "4"])
    async def test_join_without_table_id_is_an_error(self, gateway, sio, payload):
        ack = await gateway.join_cart("s1", payload)

        assert ack["ok"] is False
        sio.enter_room.assert_not_awaited()
        error = emitted(sio, "error")[0]
        assert error.args[1] == {"message": "tableId is required"}
        assert error.kwargs["to"] == "s1"

    @pytest.mark.asyncio
    async def test_join_another_table_leaves_the_first(self, gateway, sio, membership):
        await gateway.join_cart("s1", {"tableId": "4"})
        await gateway.join_cart("s1", {"tableId": "7"})

        sio.leave_room.assert_awaited_once_with("s1", "table:4")
        assert membership.count("4") == 0
        assert membership.count("7") == 1

    @pytest.mark.asyncio
    async def test_leave_cart(self, gateway, sio, membership):
        await gateway.join_cart("s1", {"tableId": "4"})
        await gateway.join_cart("s2", {"tableId": "4"})

        ack = await gateway.leave_cart("s1", {"tableId": "4"})

        sio.leave_room.assert_awaited_once_with("s1", "table:4")
        assert ack == {"ok": True, "tableId": "4", "clientCount": 1}
        left = emitted(sio, "userLeft")[0]
        assert left.args[1] == {"clientCount": 1}
        assert left.kwargs["to"] == "table:4"

    @pytest.mark.asyncio
    async def test_disconnect_cleans_membership(self, gateway, sio, membership):
        await gateway.join_cart("s1", {"tableId": "4"})

        await gateway.on_disconnect("s1")

        assert membership.count("4") == 0
        assert emitted(sio, "userLeft")[0].args[1] == {"clientCount": 0}

    @pytest.mark.asyncio
    async def test_disconnect_of_unjoined_socket_is_silent(self, gateway, sio):
        await gateway.on_disconnect("s1", "client disconnect")
        sio.emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ping_acks_with_server_time(self, gateway):
        assert await gateway.ping("s1") == {"pong": 1_700_000_000_000}


class TestEventRelay:
    @pytest.fixture
    def relay(self, sio):
        return EventRelay(sio, clock=lambda: "2026-01-01T00:00:00+00:00")

    @pytest.mark.asyncio
    async def test_cart_snapshot_goes_to_table_room(self, relay, sio):
        cart = {"id": 1, "tableId": "4", "items": [], "totalItems": 0}

        result = await relay.dispatch("cart:4", {"tableId": "4", "cart": cart})

        assert result.relayed
        assert result.room == "table:4"
        sio.emit.assert_awaited_once_with(
            "cartUpdated",
            {"cart": cart, "timestamp": "2026-01-01T00:00:00+00:00"},
            to="table:4",
        )

    @pytest.mark.asyncio
    async def test_cart_table_falls_back_to_channel(self, relay, sio):
        await relay.dispatch("cart:12", {"cart": {}})
        assert sio.emit.await_args.kwargs["to"] == "table:12"

    @pytest.mark.asyncio
    async def test_non_object_cart_payload_is_skipped(self, relay, sio):
        result = await relay.dispatch("cart:4", ["not", "an", "object"])
        assert result.skipped_reason == "invalid_payload"
        sio.emit.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "channel, event",
        [
            ("orders:99", "orderUpdated"),
            ("products", "productUpdated"),
            ("settings", "settingsUpdated"),
            ("banners", "bannersUpdated"),
        ],
    )
    async def test_verbatim_relays_broadcast_to_everyone(self, relay, sio, channel, event):
        payload = {"id": "x", "status": "READY"}

        result = await relay.dispatch(channel, payload)

        assert result.event == event
        sio.emit.assert_awaited_once_with(event, payload)

    @pytest.mark.asyncio
    async def test_unknown_channel_is_skipped(self, relay, sio):
        result = await relay.dispatch("something:else", {})
        assert not result.relayed
        sio.emit.assert_not_awaited()


class TestDecodeMessage:
    def test_pmessage_json(self):
        msg = {"type": "pmessage", "pattern": "cart:*", "channel": "cart:4", "data": '{"a": 1}'}
        assert decode_message(msg) == ("cart:4", {"a": 1})

    def test_bytes_are_decoded(self):
        msg = {"type": "message", "channel": b"products", "data": b'{"id": 3}'}
        assert decode_message(msg) == ("products", {"id": 3})

    def test_subscribe_confirmations_are_ignored(self):
        assert decode_message({"type": "psubscribe", "channel": "cart:*", "data": 1}) is None

    def test_non_json_is_dropped(self):
        assert decode_message({"type": "pmessage", "channel": "cart:4", "data": "{oops"}) is None

    def test_oversized_is_dropped(self):
        data = json.dumps({"blob": "x" * (MAX_EVENT_SIZE + 1)})
        assert decode_message({"type": "pmessage", "channel": "cart:4", "data": data}) is None


def _mock_redis(pubsub):
    client = MagicMock()
    client.pubsub.return_value = pubsub
    return client


def _mock_pubsub(messages):
    pubsub = MagicMock()
    pubsub.psubscribe = AsyncMock()
    pubsub.punsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()
    pubsub.get_message = AsyncMock(side_effect=messages)
    return pubsub


class TestRunSubscriber:
    @pytest.mark.asyncio
    async def test_relays_published_messages(self, fake_redis):
        received: asyncio.Queue = asyncio.Queue()

        async def on_message(channel, payload):
            await received.put((channel, payload))

        task = asyncio.create_task(run_subscriber(fake_redis, SUBSCRIBE_PATTERNS, on_message))
        try:
            for _ in range(200):
                if await fake_redis.publish("cart:4", json.dumps({"tableId": "4", "cart": {}})):
                    break
                await asyncio.sleep(0.01)

            channel, payload = await asyncio.wait_for(received.get(), timeout=3.0)
            assert channel == "cart:4"
            assert payload == {"tableId": "4", "cart": {}}

            await fake_redis.publish("products", json.dumps({"id": 1}))
            channel, payload = await asyncio.wait_for(received.get(), timeout=3.0)
            assert channel == "products"
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_the_loop(self):
        message = {"type": "pmessage", "channel": "cart:4", "data": '{"tableId": "4"}'}
        pubsub = _mock_pubsub([message, None, message, asyncio.CancelledError()])
        on_message = AsyncMock(side_effect=[RuntimeError("boom"), None])

        with pytest.raises(asyncio.CancelledError):
            await run_subscriber(_mock_redis(pubsub), ["cart:*"], on_message)

        assert on_message.await_count == 2
        pubsub.punsubscribe.assert_awaited_once_with("cart:*")

    @pytest.mark.asyncio
    async def test_gives_up_after_max_reconnects(self):
        pubsub = _mock_pubsub(redis.exceptions.ConnectionError("connection lost"))
        client = _mock_redis(pubsub)
        policy = ReconnectPolicy(base_delay=0.001, max_delay=0.002, max_attempts=2)

        with pytest.raises(RuntimeError):
            await run_subscriber(client, ["cart:*"], AsyncMock(), policy=policy)

        # Initial subscription plus one per reconnect
        assert client.pubsub.call_count == 3

    @pytest.mark.asyncio
    async def test_recovers_after_transient_error(self):
        message = {"type": "pmessage", "channel": "products", "data": "{}"}
        pubsub = _mock_pubsub([
            redis.exceptions.ConnectionError("blip"),
            message,
            asyncio.CancelledError(),
        ])
        client = _mock_redis(pubsub)
        on_message = AsyncMock()
        policy = ReconnectPolicy(base_delay=0.001, max_delay=0.002, max_attempts=1)

        with pytest.raises(asyncio.CancelledError):
            await run_subscriber(client, ["products"], on_message, policy=policy)

        on_message.assert_awaited_once_with("products", {})
        assert client.pubsub.call_count == 2


class TestReconnectPolicy:
    def test_delay_grows_and_is_capped(self):
        policy = ReconnectPolicy(base_delay=1.0, max_delay=8.0, jitter=0.0)
        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_jitter_stays_in_range(self):
        policy = ReconnectPolicy(base_delay=1.0, max_delay=30.0, jitter=0.25)
        for _ in range(50):
            assert 1.5 <= policy.delay_for(2) <= 2.5

    def test_jitter_source_is_injectable(self):
        policy = ReconnectPolicy(base_delay=1.0, jitter=0.5)
        assert policy.delay_for(3, uniform=lambda low, high: high) == 6.0

    def test_exhausted_after_max_attempts(self):
        policy = ReconnectPolicy(max_attempts=3)
        assert not policy.exhausted(3)
        assert policy.exhausted(4)

    def test_built_from_settings(self):
        policy = ReconnectPolicy.from_settings(
            make_settings(redis_max_reconnect_attempts=7, redis_max_reconnect_delay=12)
        )
        assert policy.max_attempts == 7
        assert policy.max_delay == 12.0

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            ReconnectPolicy(base_delay=0)
        with pytest.raises(ValueError):
            ReconnectPolicy(base_delay=5, max_delay=1)


class TestGatewayApp:
    def test_debug_room_reports_local_membership(self):
        from ws_gateway import main

        main.membership.join("debug-sid", "42")
        try:
            client = TestClient(main.api)
            response = client.get("/ws/debug/room/42")
            assert response.status_code == 200
            assert response.json() == {"tableId": "42", "clients": 1}

            assert client.get("/ws/debug/room/43").json() == {"tableId": "43", "clients": 0}
            assert client.get("/ws/health").json()["status"] == "healthy"
        finally:
            main.membership.leave("debug-sid")
