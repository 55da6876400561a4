"""시그널링 모듈.

외부 릴레이를 통한 룸 단위 메시지 송수신 어댑터를 제공합니다.

Classes:
    SignalingChannel: 채널 추상 클래스
    Subscription: 핸들러 구독 객체
    WebSocketSignalingChannel: websockets 기반 릴레이 채널
    InMemoryRelay: 프로세스 내 루프백 릴레이 (테스트용)
"""

from .channel import SignalingChannel, Subscription
from .memory import InMemoryRelay, InMemorySignalingChannel
from .messages import (
    Answer,
    CandidatePayload,
    IceCandidateMessage,
    JoinRoom,
    LeaveRoom,
    MediaStateChange,
    NegotiationMessage,
    Offer,
    RoomAction,
    RoomEvent,
    ScreenShareChange,
    SignalingEvent,
    parse_message,
)
from .ws_channel import WebSocketSignalingChannel

__all__ = [
    # Channels
    "SignalingChannel",
    "Subscription",
    "WebSocketSignalingChannel",
    "InMemoryRelay",
    "InMemorySignalingChannel",
    # Messages
    "NegotiationMessage",
    "SignalingEvent",
    "RoomAction",
    "JoinRoom",
    "LeaveRoom",
    "RoomEvent",
    "Offer",
    "Answer",
    "CandidatePayload",
    "IceCandidateMessage",
    "MediaStateChange",
    "ScreenShareChange",
    "parse_message",
]
