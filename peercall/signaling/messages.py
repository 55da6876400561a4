"""시그널링 메시지 스키마.

릴레이 서버와 주고받는 룸 단위 메시지를 pydantic 모델로 정의합니다.
와이어 포맷은 `{"type": <event>, "data": {...}}` JSON 엔벨로프이며,
`data`에는 항상 `roomId`가 포함됩니다.

Events:
    join-room / leave-room: 통화 시작/종료 시 송신
    user-joined / user-left: 룸 멤버 변경 수신
    offer / answer: SDP 교환 (양방향)
    ice-candidate: trickle ICE 후보 (양방향)
    media-state-change: 오디오/비디오 on/off 알림 (양방향)
    screen-share-change: 화면 공유 시작/종료 알림 (양방향)
"""

from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Set, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import SignalingError


class SignalingEvent(str, Enum):
    JOIN_ROOM = "join-room"
    LEAVE_ROOM = "leave-room"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"
    MEDIA_STATE_CHANGE = "media-state-change"
    SCREEN_SHARE_CHANGE = "screen-share-change"


class RoomAction(str, Enum):
    JOINED = "joined"
    LEFT = "left"


class NegotiationMessage(BaseModel):
    """모든 시그널링 메시지의 기반 모델.

    Attributes:
        room_id: 메시지가 속한 룸 (송신 시 채널이 채움)
        user_id: 릴레이가 붙여주는 송신자 연결 ID (수신 메시지에만 존재)
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event: ClassVar[SignalingEvent]
    wire_exclude: ClassVar[Set[str]] = set()

    room_id: Optional[str] = Field(default=None, alias="roomId")
    user_id: Optional[str] = Field(default=None, alias="userId")

    @property
    def wire_event(self) -> SignalingEvent:
        return self.event

    def to_wire(self, room_id: Optional[str] = None) -> Dict[str, Any]:
        """와이어 엔벨로프로 변환합니다."""
        message = self if room_id is None else self.model_copy(update={"room_id": room_id})
        return {
            "type": message.wire_event.value,
            "data": message.model_dump(
                by_alias=True,
                exclude_none=True,
                exclude=self.wire_exclude,
                mode="json",
            ),
        }


class JoinRoom(NegotiationMessage):
    event = SignalingEvent.JOIN_ROOM


class LeaveRoom(NegotiationMessage):
    event = SignalingEvent.LEAVE_ROOM


class RoomEvent(NegotiationMessage):
    """룸 멤버 입장/퇴장 알림. `user_id`는 입장/퇴장한 피어입니다."""

    wire_exclude = {"action"}

    action: RoomAction

    @property
    def wire_event(self) -> SignalingEvent:
        if self.action is RoomAction.JOINED:
            return SignalingEvent.USER_JOINED
        return SignalingEvent.USER_LEFT


class Offer(NegotiationMessage):
    """SDP offer. `role`은 보낸 쪽의 통화 역할로, 동시 offer(glare) 판정에 쓰입니다."""

    event = SignalingEvent.OFFER

    sdp: str
    role: Optional[str] = None


class Answer(NegotiationMessage):
    event = SignalingEvent.ANSWER

    sdp: str


class CandidatePayload(BaseModel):
    """브라우저 RTCIceCandidateInit 형태의 후보."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    candidate: str
    sdp_mid: Optional[str] = Field(default=None, alias="sdpMid")
    sdp_mline_index: Optional[int] = Field(default=None, alias="sdpMLineIndex")


class IceCandidateMessage(NegotiationMessage):
    event = SignalingEvent.ICE_CANDIDATE

    candidate: CandidatePayload


class MediaStateChange(NegotiationMessage):
    event = SignalingEvent.MEDIA_STATE_CHANGE

    audio: bool
    video: bool


class ScreenShareChange(NegotiationMessage):
    event = SignalingEvent.SCREEN_SHARE_CHANGE

    is_sharing: bool = Field(alias="isSharing")


_MESSAGE_TYPES: Dict[SignalingEvent, Type[NegotiationMessage]] = {
    SignalingEvent.JOIN_ROOM: JoinRoom,
    SignalingEvent.LEAVE_ROOM: LeaveRoom,
    SignalingEvent.OFFER: Offer,
    SignalingEvent.ANSWER: Answer,
    SignalingEvent.ICE_CANDIDATE: IceCandidateMessage,
    SignalingEvent.MEDIA_STATE_CHANGE: MediaStateChange,
    SignalingEvent.SCREEN_SHARE_CHANGE: ScreenShareChange,
}


def parse_message(event: str, payload: Optional[Dict[str, Any]]) -> NegotiationMessage:
    """와이어 이벤트 이름과 payload로 메시지 모델을 생성합니다.

    Args:
        event: 이벤트 이름 (예: "offer")
        payload: 엔벨로프의 data 부분

    Returns:
        NegotiationMessage: 해당 이벤트의 메시지 모델

    Raises:
        SignalingError: 알 수 없는 이벤트이거나 payload 검증 실패
    """
    try:
        signaling_event = SignalingEvent(event)
    except ValueError:
        raise SignalingError(f"unknown signaling event: {event!r}") from None

    payload = dict(payload or {})
    try:
        if signaling_event is SignalingEvent.USER_JOINED:
            return RoomEvent(action=RoomAction.JOINED, **payload)
        if signaling_event is SignalingEvent.USER_LEFT:
            return RoomEvent(action=RoomAction.LEFT, **payload)
        return _MESSAGE_TYPES[signaling_event].model_validate(payload)
    except (ValidationError, TypeError) as e:
        raise SignalingError(f"invalid {event} payload: {e}") from e


__all__ = [
    "SignalingEvent",
    "RoomAction",
    "NegotiationMessage",
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
