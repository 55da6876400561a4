"""WebRTC 모듈 설정.

TURN/STUN 서버, 캡처 장치, 협상 타이밍 등 WebRTC 관련 상수와 환경변수 기반 설정.
"""

import os
import logging
import platform
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from aiortc import RTCConfiguration, RTCIceServer

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# ICE Server 설정
# ============================================================

def _env_list(name: str) -> Tuple[str, ...]:
    """쉼표로 구분된 환경변수 값을 튜플로 변환합니다."""
    raw = os.getenv(name) or ""
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정.

    STUN_SERVER_URL / TURN_SERVER_URL은 쉼표로 여러 개를 지정할 수 있으며,
    TURN 자격증명은 모든 TURN URL에 공통으로 적용됩니다.
    """

    STUN_URLS: Tuple[str, ...] = field(default_factory=lambda: _env_list("STUN_SERVER_URL"))
    TURN_URLS: Tuple[str, ...] = field(default_factory=lambda: _env_list("TURN_SERVER_URL"))
    TURN_USERNAME: Optional[str] = field(default_factory=lambda: os.getenv("TURN_USERNAME"))
    TURN_CREDENTIAL: Optional[str] = field(default_factory=lambda: os.getenv("TURN_CREDENTIAL"))

    # 기본 공개 STUN 서버 (fallback)
    DEFAULT_STUN_SERVERS: Tuple[str, ...] = (
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return bool(self.TURN_URLS and self.TURN_USERNAME and self.TURN_CREDENTIAL)

    def ice_servers(self) -> List[RTCIceServer]:
        """설정된 STUN/TURN 서버 목록을 RTCIceServer로 변환합니다.

        순서: 전용 STUN → 전용 TURN(자격증명 포함) → 공개 STUN.
        자격증명 없는 TURN URL은 aiortc가 거부하므로 제외합니다.
        """
        servers = []
        if self.STUN_URLS:
            servers.append(RTCIceServer(urls=list(self.STUN_URLS)))
        if self.has_turn_server:
            servers.append(RTCIceServer(
                urls=list(self.TURN_URLS),
                username=self.TURN_USERNAME,
                credential=self.TURN_CREDENTIAL
            ))
        elif self.TURN_URLS:
            logger.warning("[WebRTC Config] TURN 자격증명 누락 - TURN 서버 제외")
        servers.append(RTCIceServer(urls=list(self.DEFAULT_STUN_SERVERS)))
        return servers

    def to_rtc_configuration(self) -> RTCConfiguration:
        return RTCConfiguration(iceServers=self.ice_servers())


# ============================================================
# 캡처 장치 설정
# ============================================================

# platform.system() -> {용도: (장치, ffmpeg 입력 포맷)}
_PLATFORM_DEVICES = {
    "Linux": {
        "camera": ("/dev/video0", "v4l2"),
        "microphone": ("default", "pulse"),
        "screen": (os.getenv("DISPLAY", ":0.0"), "x11grab"),
    },
    "Darwin": {
        "camera": ("default:none", "avfoundation"),
        "microphone": ("none:default", "avfoundation"),
        "screen": ("1:none", "avfoundation"),
    },
    "Windows": {
        "camera": ("video=Integrated Camera", "dshow"),
        "microphone": ("audio=Microphone", "dshow"),
        "screen": ("desktop", "gdigrab"),
    },
}


def _platform_device(purpose: str) -> Tuple[Optional[str], Optional[str]]:
    return _PLATFORM_DEVICES.get(platform.system(), {}).get(purpose, (None, None))


@dataclass(frozen=True)
class MediaDeviceConfig:
    """카메라/마이크/화면 캡처 장치 설정. 환경변수가 플랫폼 기본값보다 우선합니다."""

    CAMERA_DEVICE: Optional[str] = field(
        default_factory=lambda: os.getenv("CAMERA_DEVICE", _platform_device("camera")[0])
    )
    CAMERA_FORMAT: Optional[str] = field(
        default_factory=lambda: os.getenv("CAMERA_FORMAT", _platform_device("camera")[1])
    )
    MICROPHONE_DEVICE: Optional[str] = field(
        default_factory=lambda: os.getenv("MICROPHONE_DEVICE", _platform_device("microphone")[0])
    )
    MICROPHONE_FORMAT: Optional[str] = field(
        default_factory=lambda: os.getenv("MICROPHONE_FORMAT", _platform_device("microphone")[1])
    )
    SCREEN_DEVICE: Optional[str] = field(
        default_factory=lambda: os.getenv("SCREEN_DEVICE", _platform_device("screen")[0])
    )
    SCREEN_FORMAT: Optional[str] = field(
        default_factory=lambda: os.getenv("SCREEN_FORMAT", _platform_device("screen")[1])
    )

    @property
    def supports_screen_capture(self) -> bool:
        return bool(self.SCREEN_DEVICE and self.SCREEN_FORMAT)


# ============================================================
# WebRTC 연결 설정
# ============================================================

@dataclass(frozen=True)
class ConnectionConfig:
    """WebRTC 연결 관련 설정."""

    # 상대 입장 감지 후 offer 생성까지 대기 (초)
    OFFER_DELAY: float = float(os.getenv("OFFER_DELAY", "1.0"))

    # 통계 샘플링 주기 (초)
    STATS_INTERVAL: float = 2.0

    # 상대방 정보 표시 유지 시간 (초)
    REMOTE_IDENTITY_SECONDS: float = 4.0

    # 디버그 로그 보관 개수
    DEBUG_LOG_CAPACITY: int = 21


# ============================================================
# 싱글톤 인스턴스
# ============================================================

ice_config = ICEServerConfig()
device_config = MediaDeviceConfig()
connection_config = ConnectionConfig()


# ============================================================
# 설정 로드 확인 로그
# ============================================================

logger.debug(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.info(
    f"[WebRTC Config] ICE 서버: STUN {len(ice_config.STUN_URLS)}개, "
    f"TURN {len(ice_config.TURN_URLS) if ice_config.has_turn_server else 0}개 + 공개 STUN"
)
logger.info(f"[WebRTC Config] 화면 캡처 지원: {device_config.supports_screen_capture} ({platform.system()})")
