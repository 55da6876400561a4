"""시그널링 채널 어댑터 기반 모듈.

외부 릴레이 위에서 룸 단위 메시지를 송수신하는 타입 인터페이스입니다.
협상 로직은 포함하지 않으며, 재시도/백오프도 수행하지 않습니다.
(재연결 정책은 하위 채널이 소유하고, 이 계층은 연결/끊김 이벤트만 전달)

Classes:
    Subscription: 핸들러 등록 해제를 위한 구독 객체
    SignalingChannel: 채널 구현의 추상 기반 클래스

Delivery:
    - 연결 단위 FIFO (수신 순서대로 핸들러 호출)
    - 채널 재연결을 가로지르는 전역 순서는 보장하지 않음
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..errors import SignalingError
from .messages import NegotiationMessage, parse_message

logger = logging.getLogger(__name__)

MessageHandler = Callable[[NegotiationMessage], Union[Awaitable[None], None]]
ConnectionHandler = Callable[[bool], Union[Awaitable[None], None]]


class Subscription:
    """등록된 핸들러 하나를 나타내는 구독 객체.

    `unsubscribe()`는 여러 번 호출해도 안전합니다.
    """

    def __init__(self, registry: List[Callable], handler: Callable):
        self._registry = registry
        self._handler = handler
        self._active = True
        registry.append(handler)

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._handler in self._registry:
            self._registry.remove(self._handler)


class SignalingChannel(ABC):
    """시그널링 채널 추상 클래스.

    Attributes:
        connection_id (Optional[str]): 릴레이가 부여한 연결 식별자.
            역할(offer 측) 결정에 사용됩니다.
        connected (bool): 현재 연결 여부
    """

    def __init__(self):
        self.connection_id: Optional[str] = None
        self.connected = False
        self._message_handlers: List[MessageHandler] = []
        self._connection_handlers: List[ConnectionHandler] = []

    @abstractmethod
    async def connect(self) -> None:
        """릴레이에 연결하고 connection_id를 받습니다."""

    @abstractmethod
    async def close(self) -> None:
        """연결을 종료합니다."""

    @abstractmethod
    async def _transmit(self, envelope: Dict[str, Any]) -> None:
        """엔벨로프 하나를 릴레이로 전송합니다."""

    async def send(self, room_id: str, message: NegotiationMessage) -> None:
        """룸 범위 메시지를 전송합니다.

        Args:
            room_id: 대상 룸 ID
            message: 전송할 메시지

        Raises:
            SignalingError: 채널이 연결되지 않았거나 전송 실패
        """
        if not self.connected:
            raise SignalingError(f"signaling channel is not connected (event={message.wire_event.value})")
        envelope = message.to_wire(room_id)
        logger.debug(f"[Signaling] 송신: {envelope['type']} (room={room_id})")
        await self._transmit(envelope)

    def subscribe(self, handler: MessageHandler) -> Subscription:
        return Subscription(self._message_handlers, handler)

    def subscribe_connection(self, handler: ConnectionHandler) -> Subscription:
        return Subscription(self._connection_handlers, handler)

    async def _dispatch_envelope(self, envelope: Dict[str, Any]) -> None:
        """수신 엔벨로프를 파싱해 구독자에게 전달합니다. 잘못된 메시지는 건너뜁니다."""
        event = envelope.get("type") if isinstance(envelope, dict) else None
        if not event:
            logger.warning(f"[Signaling] type 없는 메시지 무시: {envelope!r}")
            return

        try:
            message = parse_message(event, envelope.get("data"))
        except SignalingError as e:
            logger.debug(f"[Signaling] 메시지 무시: {e}")
            return

        logger.debug(f"[Signaling] 수신: {event}")
        for handler in list(self._message_handlers):
            result = handler(message)
            if inspect.isawaitable(result):
                await result

    async def _notify_connection(self, connected: bool) -> None:
        self.connected = connected
        logger.info(f"[Signaling] 채널 {'연결됨' if connected else '연결 끊김'} (id={self.connection_id})")
        for handler in list(self._connection_handlers):
            result = handler(connected)
            if inspect.isawaitable(result):
                await result
