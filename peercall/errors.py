"""통화 엔진 예외 정의.

컴포넌트 경계에서 발생하는 오류를 하나의 계층으로 묶습니다.
SessionController는 이 예외들을 잡아 사용자에게 보여줄 단일 메시지로
변환하고(`user_message`), 관찰자의 `on_error(kind, message)`로 전달합니다.

Classes:
    PeerCallError: 모든 엔진 예외의 기반 클래스
    MediaError: 카메라/마이크 획득 실패 (통화 시작에 치명적, 재시도 없음)
    SignalingError: 시그널링 채널 사용 불가
    NegotiationError: SDP 생성/적용 실패 (세션은 failed 상태로 남음)
    IceError: ICE candidate 적용 실패 (로그 후 건너뜀)
    ScreenShareError: 화면 공유 캡처 실패 (복구 가능, 카메라로 되돌림)
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """`on_error` 콜백으로 전달되는 오류 분류."""

    MEDIA = "media"
    SIGNALING = "signaling"
    NEGOTIATION = "negotiation"
    ICE = "ice"
    SCREEN_SHARE = "screen_share"


class MediaErrorKind(str, Enum):
    """미디어 장치 획득 실패 원인."""

    PERMISSION_DENIED = "PermissionDenied"
    DEVICE_UNAVAILABLE = "DeviceUnavailable"
    UNKNOWN = "Unknown"


class PeerCallError(Exception):
    """엔진 예외 기반 클래스.

    Attributes:
        kind (ErrorKind): 오류 분류
        user_message (str): 사용자에게 표시할 메시지
    """

    kind: ErrorKind = ErrorKind.NEGOTIATION
    default_user_message: str = "Something went wrong"

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class MediaError(PeerCallError):
    """카메라/마이크를 열 수 없음."""

    kind = ErrorKind.MEDIA
    default_user_message = "Cannot access camera/microphone"

    def __init__(
        self,
        message: str,
        media_kind: MediaErrorKind = MediaErrorKind.UNKNOWN,
        user_message: Optional[str] = None,
    ):
        super().__init__(
            message,
            user_message or f"{self.default_user_message}: {message}",
        )
        self.media_kind = media_kind


class SignalingError(PeerCallError):
    kind = ErrorKind.SIGNALING
    default_user_message = "Connection to signaling server lost"


class NegotiationError(PeerCallError):
    kind = ErrorKind.NEGOTIATION
    default_user_message = "Failed to connect"


class IceError(PeerCallError):
    kind = ErrorKind.ICE
    default_user_message = "Failed to add ICE candidate"


class ScreenShareError(PeerCallError):
    kind = ErrorKind.SCREEN_SHARE
    default_user_message = "Could not start screen sharing."


__all__ = [
    "ErrorKind",
    "MediaErrorKind",
    "PeerCallError",
    "MediaError",
    "SignalingError",
    "NegotiationError",
    "IceError",
    "ScreenShareError",
]
