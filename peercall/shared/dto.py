"""Lightweight shared DTOs exposed to the UI layer."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class NetworkQuality(str, Enum):
    """RTT 기반 4단계 네트워크 품질."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class QualitySample(BaseModel):
    """2초마다 갱신되는 연결 품질 샘플. 저장되지 않고 매번 교체됩니다."""

    model_config = ConfigDict(frozen=True)

    rtt_ms: Optional[float] = Field(default=None, description="왕복 지연 시간 (ms)")
    quality: Optional[NetworkQuality] = Field(default=None, description="RTT 품질 등급")
    frame_width: Optional[int] = Field(default=None, description="수신 비디오 너비")
    frame_height: Optional[int] = Field(default=None, description="수신 비디오 높이")
    frames_per_second: Optional[float] = Field(default=None, description="수신 프레임레이트")
    timestamp: datetime = Field(default_factory=datetime.now)


class RemoteMediaState(BaseModel):
    """상대방이 알려온 미디어 상태."""

    audio_enabled: bool = True
    video_enabled: bool = True
    is_screen_sharing: bool = False
