"""시그널링 모듈 설정.

릴레이 서버 주소와 연결 타임아웃 등 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


@dataclass(frozen=True)
class SignalingConfig:
    """시그널링 릴레이 연결 설정."""

    # 릴레이 WebSocket 주소
    SIGNALING_URL: str = field(
        default_factory=lambda: os.getenv("SIGNALING_URL", "ws://localhost:8000/ws")
    )

    # 연결 및 peer_id 수신 대기 시간 (초)
    CONNECT_TIMEOUT: float = field(
        default_factory=lambda: float(os.getenv("SIGNALING_CONNECT_TIMEOUT", "10"))
    )


signaling_config = SignalingConfig()

logger.debug(f"[Signaling Config] URL: {signaling_config.SIGNALING_URL}, timeout={signaling_config.CONNECT_TIMEOUT}s")
