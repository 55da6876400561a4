"""WebRTC 모듈.

로컬 미디어 관리, 피어 연결(전송 세션), 협상 조정, 통계 샘플링,
통화 세션 컨트롤러를 제공합니다.

Classes:
    SessionController: 통화 하나를 관리하는 최상위 컨트롤러
    SessionObserver: UI 협력자 인터페이스
    MediaSourceManager: 카메라/마이크/화면 캡처 관리
    TransportSession: RTCPeerConnection 래퍼
    NegotiationCoordinator: offer/answer 교환 조정
    TelemetrySampler: 연결 품질 샘플러
    SwitchableTrack: on/off 가능한 송신 트랙
    FrameMeterTrack: 해상도/프레임레이트를 측정하는 수신 비디오 트랙

Config:
    ice_config: ICE 서버 설정
    device_config: 캡처 장치 설정
    connection_config: WebRTC 연결 설정
"""

from .tracks import FrameMeterTrack, SwitchableTrack
from .media import LocalTracks, MediaConstraints, MediaSourceManager
from .transport import CandidateType, TransportSession, classify_candidate
from .state import ConnectionState, Effect, SessionState, transition
from .negotiation import CallRole, NegotiationCoordinator, decide_role
from .telemetry import TelemetrySampler, extract_sample, quality_for_rtt
from .session import RemoteStream, Session, SessionController, SessionObserver
from .config import (
    ice_config,
    device_config,
    connection_config,
    ICEServerConfig,
    MediaDeviceConfig,
    ConnectionConfig,
)

__all__ = [
    # Classes
    "SwitchableTrack",
    "FrameMeterTrack",
    "LocalTracks",
    "MediaConstraints",
    "MediaSourceManager",
    "CandidateType",
    "TransportSession",
    "classify_candidate",
    "ConnectionState",
    "Effect",
    "SessionState",
    "transition",
    "CallRole",
    "NegotiationCoordinator",
    "decide_role",
    "TelemetrySampler",
    "extract_sample",
    "quality_for_rtt",
    "RemoteStream",
    "Session",
    "SessionController",
    "SessionObserver",
    # Config
    "ice_config",
    "device_config",
    "connection_config",
    "ICEServerConfig",
    "MediaDeviceConfig",
    "ConnectionConfig",
]
