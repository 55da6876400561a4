"""송신/수신 트랙 래퍼 모듈.

카메라/마이크/화면 캡처 트랙을 감싸 on/off 토글을 제공합니다.
브라우저의 `track.enabled`와 같이, 꺼진 비디오는 검은 프레임을,
꺼진 오디오는 무음을 보내 미디어 라인을 유지합니다 (재협상 불필요).

수신 쪽 비디오 트랙은 FrameMeterTrack으로 감싸 해상도/프레임레이트를 측정합니다.
"""

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional

from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError
from av import AudioFrame, VideoFrame

logger = logging.getLogger(__name__)


class SwitchableTrack(MediaStreamTrack):
    """enabled 플래그로 송신 여부를 전환하는 트랙.

    Attributes:
        source (MediaStreamTrack): 원본 캡처 트랙
        enabled (bool): False이면 검은 화면/무음 프레임 전송
        label (str): 로그용 이름 ("camera", "microphone", "screen")

    Note:
        - enabled 설정은 멱등적이며 여러 번 호출해도 안전함
        - stop() 시 원본 트랙도 함께 종료되어 장치가 해제됨
        - 원본 트랙이 스스로 끝나면(캡처 종료) 이 트랙도 "ended"를 발생시킴

    Examples:
        >>> camera = SwitchableTrack(player.video, label="camera")
        >>> camera.enabled = False  # 검은 프레임 전송
        >>> camera.enabled = False  # 변화 없음
    """

    def __init__(self, source: MediaStreamTrack, label: str = ""):
        super().__init__()
        self.kind = source.kind
        self.source = source
        self.label = label or source.kind
        self.enabled = True
        source.on("ended", self._on_source_ended)

    async def recv(self):
        try:
            frame = await self.source.recv()
        except MediaStreamError:
            logger.info(f"[Media] {self.label} 원본 트랙 종료")
            self.stop()
            raise

        if self.enabled:
            return frame
        if self.kind == "video":
            return _blank_video(frame)
        return _silent_audio(frame)

    def stop(self):
        super().stop()
        self.source.stop()

    def _on_source_ended(self):
        if self.readyState != "ended":
            logger.info(f"[Media] {self.label} 캡처 종료 감지")
            self.stop()


def _blank_video(frame: VideoFrame) -> VideoFrame:
    blank = VideoFrame(width=frame.width, height=frame.height, format="yuv420p")
    for index, plane in enumerate(blank.planes):
        # Y=0, U=V=128 -> black
        value = 0 if index == 0 else 128
        plane.update(bytes([value]) * plane.buffer_size)
    blank.pts = frame.pts
    blank.time_base = frame.time_base
    return blank


def _silent_audio(frame: AudioFrame) -> AudioFrame:
    silence = AudioFrame(format=frame.format.name, layout=frame.layout.name, samples=frame.samples)
    for plane in silence.planes:
        plane.update(bytes(plane.buffer_size))
    silence.sample_rate = frame.sample_rate
    silence.pts = frame.pts
    silence.time_base = frame.time_base
    return silence


class FrameMeterTrack(MediaStreamTrack):
    """수신 비디오 트랙을 감싸 해상도와 프레임레이트를 측정하는 트랙.

    aiortc의 inbound-rtp 통계에는 frameWidth/frameHeight/framesPerSecond가
    없으므로, UI가 소비하는 프레임에서 직접 값을 구합니다.

    Attributes:
        source (MediaStreamTrack): 원격 비디오 트랙
        width (Optional[int]): 마지막 프레임 너비
        height (Optional[int]): 마지막 프레임 높이
    """

    kind = "video"

    def __init__(self, source: MediaStreamTrack, window: int = 30, clock: Callable[[], float] = time.monotonic):
        super().__init__()
        self.source = source
        self.width: Optional[int] = None
        self.height: Optional[int] = None
        self._clock = clock
        self._arrivals: Deque[float] = deque(maxlen=window)
        source.on("ended", self._on_source_ended)

    async def recv(self):
        frame = await self.source.recv()
        self.width = frame.width
        self.height = frame.height
        self._arrivals.append(self._clock())
        return frame

    @property
    def frames_per_second(self) -> Optional[float]:
        if len(self._arrivals) < 2:
            return None
        span = self._arrivals[-1] - self._arrivals[0]
        if span <= 0:
            return None
        return (len(self._arrivals) - 1) / span

    def snapshot(self) -> Dict[str, Any]:
        """QualitySample의 비디오 필드 형태로 측정값을 반환합니다."""
        return {
            "frame_width": self.width,
            "frame_height": self.height,
            "frames_per_second": self.frames_per_second,
        }

    def _on_source_ended(self):
        if self.readyState != "ended":
            self.stop()
