"""연결 품질 샘플링 모듈.

connected 상태에서만 2초마다 getStats()를 호출해 RTT와 수신 비디오
해상도/프레임레이트를 추출하고, RTT로 4단계 품질 등급을 계산합니다.

Quality Buckets:
    RTT < 150ms → Excellent
    RTT < 300ms → Good
    RTT < 500ms → Fair
    그 외       → Poor
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..shared import NetworkQuality, QualitySample
from .config import connection_config

logger = logging.getLogger(__name__)


def quality_for_rtt(rtt_ms: float) -> NetworkQuality:
    if rtt_ms < 150:
        return NetworkQuality.EXCELLENT
    if rtt_ms < 300:
        return NetworkQuality.GOOD
    if rtt_ms < 500:
        return NetworkQuality.FAIR
    return NetworkQuality.POOR


def _field(entry: Any, name: str) -> Any:
    # Browser reports are dicts, aiortc reports are dataclasses
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def extract_sample(report: Any) -> QualitySample:
    """통계 리포트에서 품질 샘플을 추출합니다.

    RTT는 succeeded 상태 candidate-pair의 currentRoundTripTime을 우선 사용하고,
    없으면 remote-inbound-rtp의 roundTripTime을 사용합니다 (둘 다 초 단위).
    """
    entries = report.values() if hasattr(report, "values") else report

    rtt_seconds = None
    fallback_rtt = None
    video = {}
    for entry in entries:
        entry_type = _field(entry, "type")
        if entry_type == "candidate-pair" and _field(entry, "state") == "succeeded":
            if _field(entry, "currentRoundTripTime") is not None:
                rtt_seconds = _field(entry, "currentRoundTripTime")
        elif entry_type == "remote-inbound-rtp" and _field(entry, "roundTripTime") is not None:
            fallback_rtt = _field(entry, "roundTripTime")
        elif entry_type == "inbound-rtp" and _field(entry, "kind") == "video":
            video = {
                "frame_width": _field(entry, "frameWidth"),
                "frame_height": _field(entry, "frameHeight"),
                "frames_per_second": _field(entry, "framesPerSecond"),
            }

    if rtt_seconds is None:
        rtt_seconds = fallback_rtt

    if rtt_seconds is None:
        return QualitySample(**video)

    rtt_ms = float(rtt_seconds) * 1000
    return QualitySample(rtt_ms=rtt_ms, quality=quality_for_rtt(rtt_ms), **video)


def fill_video_fields(sample: QualitySample, frame_info: Optional[Dict[str, Any]]) -> QualitySample:
    """수신 프레임 측정값으로 비어 있는 해상도/프레임레이트 필드를 채웁니다."""
    if not frame_info:
        return sample
    update = {
        name: value
        for name, value in frame_info.items()
        if name in ("frame_width", "frame_height", "frames_per_second") and getattr(sample, name) is None
    }
    return sample.model_copy(update=update) if update else sample


class TelemetrySampler:
    """주기적으로 통계를 조회해 QualitySample을 전달하는 샘플러.

    Attributes:
        interval (float): 샘플링 주기 (초)
        running (bool): 샘플링 중 여부

    Note:
        - start()/stop()은 멱등적
        - 통계 조회 실패는 해당 틱만 건너뜀 (주기는 유지)
        - stop() 반환 이후에는 콜백이 호출되지 않음
        - 통계에 비디오 필드가 없으면(aiortc) frame_info 콜백의 측정값으로 채움
    """

    def __init__(
        self,
        stats_provider: Callable[[], Awaitable[Any]],
        on_sample: Callable[[QualitySample], None],
        interval: Optional[float] = None,
        frame_info: Optional[Callable[[], Optional[Dict[str, Any]]]] = None,
    ):
        self._stats_provider = stats_provider
        self._on_sample = on_sample
        self._frame_info = frame_info
        self.interval = interval if interval is not None else connection_config.STATS_INTERVAL
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            return
        logger.info(f"[Telemetry] 통계 샘플링 시작 ({self.interval}s 주기)")
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        logger.info("[Telemetry] 통계 샘플링 중지")

    async def _run(self) -> None:
        task = asyncio.current_task()
        while True:
            await asyncio.sleep(self.interval)
            try:
                report = await self._stats_provider()
                sample = extract_sample(report)
                if sample.frame_width is None and self._frame_info is not None:
                    sample = fill_video_fields(sample, self._frame_info())
            except Exception as e:
                logger.warning(f"[Telemetry] 통계 조회 실패, 이번 틱 건너뜀: {type(e).__name__}: {e}")
                continue

            # stop() may have been called while getStats() was pending
            if self._task is not task:
                return
            self._on_sample(sample)
