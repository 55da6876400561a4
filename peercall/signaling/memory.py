"""프로세스 내 루프백 릴레이.

외부 릴레이 서버와 같은 규칙으로 동작하는 메모리 기반 구현입니다.
테스트와 두 피어 시나리오 검증에 사용됩니다.

Relay Rules:
    - join-room: 룸에 추가 후 기존 멤버에게만 user-joined 전송
    - leave-room / close(): 룸에서 제거 후 남은 멤버에게 user-left 전송
    - 그 외 메시지: 같은 룸의 다른 멤버에게 userId를 붙여 전달
    - 룸이 비면 삭제

Examples:
    >>> relay = InMemoryRelay()
    >>> alice = relay.create_channel("alice")
    >>> bob = relay.create_channel("bob")
    >>> await alice.connect(); await bob.connect()
"""

import asyncio
import copy
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from ..errors import SignalingError
from .channel import SignalingChannel
from .messages import SignalingEvent

logger = logging.getLogger(__name__)


class InMemorySignalingChannel(SignalingChannel):
    """InMemoryRelay에 연결되는 채널. 수신은 전용 reader 태스크가 순서대로 처리합니다."""

    def __init__(self, relay: "InMemoryRelay", connection_id: Optional[str] = None):
        super().__init__()
        self.relay = relay
        self._requested_id = connection_id
        self._inbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._reader_task: Optional[asyncio.Task] = None
        self.sent: List[Dict[str, Any]] = []

    async def connect(self) -> None:
        if self.connected:
            return
        self.connection_id = self._requested_id or str(uuid.uuid4())
        self._reader_task = asyncio.create_task(self._read_loop())
        await self._notify_connection(True)

    async def close(self) -> None:
        if not self.connected:
            return
        await self.relay.disconnect(self)
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        await self._notify_connection(False)

    async def _transmit(self, envelope: Dict[str, Any]) -> None:
        self.sent.append(envelope)
        await self.relay.route(self, envelope)

    def deliver(self, envelope: Dict[str, Any]) -> None:
        self._inbox.put_nowait(envelope)

    async def drain(self) -> None:
        """수신함에 쌓인 메시지가 모두 처리될 때까지 대기합니다."""
        await self._inbox.join()

    async def _read_loop(self) -> None:
        while True:
            envelope = await self._inbox.get()
            try:
                await self._dispatch_envelope(envelope)
            except Exception as e:
                logger.error(f"[Relay] 메시지 처리 오류: {type(e).__name__}: {e}", exc_info=True)
            finally:
                self._inbox.task_done()


class InMemoryRelay:
    """룸 멤버십과 메시지 전달을 담당하는 메모리 릴레이.

    Attributes:
        rooms (Dict[str, Dict[str, InMemorySignalingChannel]]): 룸 ID → (연결 ID → 채널)
    """

    def __init__(self):
        self.rooms: Dict[str, Dict[str, InMemorySignalingChannel]] = {}
        self.channels: List[InMemorySignalingChannel] = []

    def create_channel(self, connection_id: Optional[str] = None) -> InMemorySignalingChannel:
        channel = InMemorySignalingChannel(self, connection_id)
        self.channels.append(channel)
        return channel

    async def route(self, sender: InMemorySignalingChannel, envelope: Dict[str, Any]) -> None:
        event = envelope["type"]
        data = envelope.get("data") or {}
        room_id = data.get("roomId")
        if not room_id:
            raise SignalingError(f"message without roomId: {event}")

        if event == SignalingEvent.JOIN_ROOM.value:
            members = self.rooms.setdefault(room_id, {})
            for member in members.values():
                member.deliver(_envelope(SignalingEvent.USER_JOINED, room_id, sender.connection_id))
            members[sender.connection_id] = sender
            logger.info(f"[Relay] {sender.connection_id} 룸 '{room_id}' 입장 ({len(members)}명)")
            return

        if event == SignalingEvent.LEAVE_ROOM.value:
            self._leave(room_id, sender)
            return

        for peer_id, member in self.rooms.get(room_id, {}).items():
            if peer_id == sender.connection_id:
                continue
            forwarded = copy.deepcopy(envelope)
            forwarded["data"]["userId"] = sender.connection_id
            member.deliver(forwarded)

    async def disconnect(self, channel: InMemorySignalingChannel) -> None:
        for room_id in [r for r, members in self.rooms.items() if channel.connection_id in members]:
            self._leave(room_id, channel)

    def room_members(self, room_id: str) -> Tuple[str, ...]:
        return tuple(self.rooms.get(room_id, {}))

    async def drain(self) -> None:
        for channel in self.channels:
            if channel.connected:
                await channel.drain()

    def _leave(self, room_id: str, channel: InMemorySignalingChannel) -> None:
        members = self.rooms.get(room_id)
        if not members or channel.connection_id not in members:
            return
        del members[channel.connection_id]
        for member in members.values():
            member.deliver(_envelope(SignalingEvent.USER_LEFT, room_id, channel.connection_id))
        logger.info(f"[Relay] {channel.connection_id} 룸 '{room_id}' 퇴장 ({len(members)}명)")
        if not members:
            del self.rooms[room_id]
            logger.info(f"[Relay] 룸 '{room_id}' 삭제 (비어있음)")


def _envelope(event: SignalingEvent, room_id: str, user_id: str) -> Dict[str, Any]:
    return {"type": event.value, "data": {"roomId": room_id, "userId": user_id}}
