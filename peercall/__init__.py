"""peercall package.

두 참가자 간 WebRTC 화상 통화의 협상/재협상 엔진입니다.

Modules:
    webrtc: 미디어, 전송 세션, 협상, 통계, 세션 컨트롤러
    signaling: 룸 단위 시그널링 채널 어댑터
    shared: UI에 노출되는 DTO
    errors: 예외 계층
"""

from .errors import (
    ErrorKind,
    MediaError,
    MediaErrorKind,
    NegotiationError,
    PeerCallError,
    ScreenShareError,
    SignalingError,
)
from .shared import NetworkQuality, QualitySample, RemoteMediaState
from .webrtc import ConnectionState, SessionController, SessionObserver

__version__ = "0.1.0"

__all__ = [
    "SessionController",
    "SessionObserver",
    "ConnectionState",
    "NetworkQuality",
    "QualitySample",
    "RemoteMediaState",
    "ErrorKind",
    "MediaErrorKind",
    "PeerCallError",
    "MediaError",
    "SignalingError",
    "NegotiationError",
    "ScreenShareError",
]
