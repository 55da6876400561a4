import asyncio
import json

import pytest
import websockets

from peercall.errors import SignalingError
from peercall.signaling import Answer, Offer, WebSocketSignalingChannel


def _greeting(peer_id="p1"):
    return json.dumps({"type": "peer_id", "data": {"peer_id": peer_id}})


def _url(server):
    port = server.sockets[0].getsockname()[1]
    return f"ws://127.0.0.1:{port}"


@pytest.mark.anyio
async def test_connect_send_and_receive_through_relay():
    received = []

    async def relay(ws):
        await ws.send(_greeting())
        async for raw in ws:
            received.append(json.loads(raw))
            await ws.send("not json")
            await ws.send(json.dumps({"type": "answer", "data": {"roomId": "r", "userId": "p2", "sdp": "a"}}))

    async with websockets.serve(relay, "127.0.0.1", 0) as server:
        channel = WebSocketSignalingChannel(_url(server), connect_timeout=2)
        states = []
        inbox = asyncio.Queue()
        channel.subscribe_connection(states.append)
        channel.subscribe(inbox.put_nowait)

        await channel.connect()
        await channel.send("r", Offer(sdp="v=0"))
        message = await asyncio.wait_for(inbox.get(), 2)
        await channel.close()

    assert channel.connection_id == "p1"
    assert received == [{"type": "offer", "data": {"roomId": "r", "sdp": "v=0"}}]
    assert message == Answer(room_id="r", user_id="p2", sdp="a")
    assert states == [True, False]


@pytest.mark.anyio
async def test_unexpected_greeting_raises():
    async def relay(ws):
        await ws.send(json.dumps({"type": "hello"}))
        await ws.wait_closed()

    async with websockets.serve(relay, "127.0.0.1", 0) as server:
        channel = WebSocketSignalingChannel(_url(server), connect_timeout=2)
        with pytest.raises(SignalingError):
            await channel.connect()

    assert channel.connected is False


@pytest.mark.anyio
async def test_missing_greeting_times_out():
    async def relay(ws):
        await ws.wait_closed()

    async with websockets.serve(relay, "127.0.0.1", 0) as server:
        channel = WebSocketSignalingChannel(_url(server), connect_timeout=0.1)
        with pytest.raises(SignalingError, match="timeout"):
            await channel.connect()


@pytest.mark.anyio
async def test_relay_closing_reports_disconnect():
    async def relay(ws):
        await ws.send(_greeting())

    async with websockets.serve(relay, "127.0.0.1", 0) as server:
        channel = WebSocketSignalingChannel(_url(server), connect_timeout=2)
        disconnected = asyncio.Event()
        channel.subscribe_connection(lambda connected: None if connected else disconnected.set())

        await channel.connect()
        await asyncio.wait_for(disconnected.wait(), 2)

    assert channel.connected is False
    with pytest.raises(SignalingError):
        await channel.send("r", Offer(sdp="v=0"))
    await channel.close()
