"""WebSocket 시그널링 채널.

`websockets` 클라이언트로 외부 릴레이에 연결합니다. 릴레이는 연결 직후
`{"type": "peer_id", "data": {"peer_id": ...}}`로 연결 ID를 알려주며,
이후 모든 메시지는 `{"type": <event>, "data": {...}}` JSON 텍스트 프레임입니다.

Note:
    - 이 채널은 재연결을 시도하지 않습니다. 끊김은 connection 핸들러로만 알립니다.
    - 알 수 없는 type의 메시지(릴레이의 다른 기능)는 무시됩니다.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..errors import SignalingError
from .channel import SignalingChannel
from .config import signaling_config

logger = logging.getLogger(__name__)


class WebSocketSignalingChannel(SignalingChannel):
    """JSON-over-WebSocket 릴레이 채널.

    Attributes:
        url (str): 릴레이 WebSocket 주소
        connect_timeout (float): 연결 및 peer_id 수신 대기 시간 (초)

    Examples:
        >>> channel = WebSocketSignalingChannel("wss://relay.example.com/ws")
        >>> await channel.connect()
        >>> print(channel.connection_id)
        3f2c...
    """

    def __init__(self, url: Optional[str] = None, connect_timeout: Optional[float] = None):
        super().__init__()
        self.url = url or signaling_config.SIGNALING_URL
        self.connect_timeout = connect_timeout or signaling_config.CONNECT_TIMEOUT
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._closing = False

    async def connect(self) -> None:
        """릴레이에 연결하고 peer_id 인사 메시지를 기다립니다.

        Raises:
            SignalingError: 연결 거부, 타임아웃, 잘못된 인사 메시지
        """
        if self.connected:
            return

        logger.info(f"[Signaling] 릴레이 연결 시도: {self.url}")
        self._closing = False
        try:
            self._ws = await asyncio.wait_for(websockets.connect(self.url), self.connect_timeout)
            raw = await asyncio.wait_for(self._ws.recv(), self.connect_timeout)
        except asyncio.TimeoutError:
            await self._abort()
            raise SignalingError("Connection timeout") from None
        except (OSError, WebSocketException) as e:
            await self._abort()
            raise SignalingError(f"Failed to connect to server: {e}") from e

        try:
            greeting = json.loads(raw)
            if greeting.get("type") != "peer_id":
                raise ValueError(f"unexpected greeting type {greeting.get('type')!r}")
            self.connection_id = greeting["data"]["peer_id"]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            await self._abort()
            raise SignalingError(f"invalid greeting from relay: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop())
        await self._notify_connection(True)

    async def close(self) -> None:
        self._closing = True
        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self.connected:
            await self._notify_connection(False)

    async def _transmit(self, envelope: Dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(envelope, separators=(",", ":")))
        except ConnectionClosed as e:
            raise SignalingError(f"signaling connection closed: {e}") from e

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    envelope = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"[Signaling] JSON 파싱 실패, 메시지 무시: {raw[:80]!r}")
                    continue
                try:
                    await self._dispatch_envelope(envelope)
                except Exception as e:
                    logger.error(f"[Signaling] 메시지 처리 오류: {type(e).__name__}: {e}", exc_info=True)
        except ConnectionClosed as e:
            logger.warning(f"[Signaling] 릴레이 연결 종료: {e}")
        finally:
            if not self._closing and self.connected:
                await self._notify_connection(False)

    async def _abort(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
