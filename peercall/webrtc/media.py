"""로컬 미디어 소스 관리 모듈.

카메라+마이크와 화면 캡처 장치를 열고 닫으며, 현재 송신 중인
오디오/비디오 트랙을 보관합니다. 비디오 트랙은 카메라와 화면 사이에서
교체될 수 있습니다.

주요 기능:
    - acquire(): 카메라+마이크 획득 (실패 시 MediaError, 통화 시작 중단)
    - acquire_screen(): 화면 캡처 획득 (실패 시 ScreenShareError, 카메라 영향 없음)
    - switch_video_source(): 송신 비디오 트랙 교체
    - release() / release_all(): 트랙 및 장치 해제

Architecture:
    - 장치 열기는 player_factory(기본: aiortc MediaPlayer)를 통해 수행
    - MediaPlayer 생성은 블로킹이므로 스레드에서 실행 (이벤트 루프 보호)
    - PyAV 예외(av.error.*)는 내장 OSError 계열을 상속하므로 내장 타입으로 분류
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from aiortc.contrib.media import MediaPlayer

from ..errors import MediaError, MediaErrorKind, ScreenShareError
from .config import MediaDeviceConfig, device_config
from .tracks import SwitchableTrack

logger = logging.getLogger(__name__)

PlayerFactory = Callable[..., Any]


@dataclass(frozen=True)
class MediaConstraints:
    """카메라/마이크 획득 조건.

    비디오는 1280x720을 목표로 하되 1920x1080을 넘지 않으며,
    오디오는 에코 제거/노이즈 억제/자동 게인을 요청합니다.
    """

    ideal_width: int = 1280
    ideal_height: int = 720
    max_width: int = 1920
    max_height: int = 1080
    frame_rate: int = 30
    facing_mode: str = "user"
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    sample_rate: int = 44100

    @property
    def video_size(self) -> str:
        width = min(self.ideal_width, self.max_width)
        height = min(self.ideal_height, self.max_height)
        return f"{width}x{height}"

    def video_options(self) -> Dict[str, str]:
        return {"video_size": self.video_size, "framerate": str(self.frame_rate)}

    def audio_options(self) -> Dict[str, str]:
        # AEC/NS/AGC are applied by the capture backend (e.g. PulseAudio echo-cancel source)
        return {"sample_rate": str(self.sample_rate)}


@dataclass
class LocalTracks:
    """현재 송신 중인 로컬 트랙 묶음."""

    audio: Optional[SwitchableTrack] = None
    video: Optional[SwitchableTrack] = None

    def all(self) -> List[SwitchableTrack]:
        return [track for track in (self.audio, self.video) if track is not None]


class MediaSourceManager:
    """로컬 캡처 장치와 송신 트랙을 관리하는 클래스.

    Attributes:
        constraints (MediaConstraints): 기본 획득 조건
        devices (MediaDeviceConfig): 장치 경로/포맷 설정
        camera_track (Optional[SwitchableTrack]): 카메라 트랙 (화면 공유 중에도 유지)
        audio_track (Optional[SwitchableTrack]): 마이크 트랙
        video_track (Optional[SwitchableTrack]): 현재 송신 중인 비디오 트랙 (카메라 또는 화면)

    Examples:
        >>> media = MediaSourceManager()
        >>> tracks = await media.acquire()
        >>> screen = await media.acquire_screen()
        >>> previous = media.switch_video_source(screen)
        >>> previous is media.camera_track
        True
    """

    def __init__(
        self,
        constraints: Optional[MediaConstraints] = None,
        devices: Optional[MediaDeviceConfig] = None,
        player_factory: PlayerFactory = MediaPlayer,
    ):
        self.constraints = constraints or MediaConstraints()
        self.devices = devices or device_config
        self._player_factory = player_factory

        self.camera_track: Optional[SwitchableTrack] = None
        self.audio_track: Optional[SwitchableTrack] = None
        self.video_track: Optional[SwitchableTrack] = None

        # 아직 해제되지 않은 모든 트랙 (카메라, 마이크, 화면)
        self._owned: List[SwitchableTrack] = []

    @property
    def local_tracks(self) -> LocalTracks:
        return LocalTracks(audio=self.audio_track, video=self.video_track)

    async def acquire(self, constraints: Optional[MediaConstraints] = None) -> LocalTracks:
        """카메라와 마이크를 열어 송신 트랙을 만듭니다.

        Args:
            constraints: 획득 조건 (None이면 기본값)

        Returns:
            LocalTracks: 오디오/비디오 트랙

        Raises:
            MediaError: 권한 거부, 장치 없음, 기타 실패. 자동 재시도하지 않음.
        """
        constraints = constraints or self.constraints
        logger.info(f"[Media] 카메라/마이크 권한 요청... (video={constraints.video_size})")

        video_player = None
        try:
            video_player = await self._open(
                self.devices.CAMERA_DEVICE, self.devices.CAMERA_FORMAT, constraints.video_options()
            )
            if getattr(video_player, "video", None) is None:
                raise FileNotFoundError(f"no video stream on {self.devices.CAMERA_DEVICE}")

            audio_player = await self._open(
                self.devices.MICROPHONE_DEVICE, self.devices.MICROPHONE_FORMAT, constraints.audio_options()
            )
            if getattr(audio_player, "audio", None) is None:
                raise FileNotFoundError(f"no audio stream on {self.devices.MICROPHONE_DEVICE}")
        except Exception as e:
            if video_player is not None and getattr(video_player, "video", None) is not None:
                video_player.video.stop()
            error = _to_media_error(e)
            logger.error(f"[Media] 미디어 접근 오류: {error} ({error.media_kind.value})")
            raise error from e

        self.camera_track = SwitchableTrack(video_player.video, label="camera")
        self.audio_track = SwitchableTrack(audio_player.audio, label="microphone")
        self.video_track = self.camera_track
        self._owned.extend([self.audio_track, self.camera_track])

        logger.info("[Media] 로컬 미디어 스트림 초기화 완료")
        return self.local_tracks

    async def acquire_screen(self) -> SwitchableTrack:
        """화면 캡처 트랙을 엽니다. 실패해도 카메라 트랙에는 영향이 없습니다.

        Raises:
            ScreenShareError: 미지원 플랫폼, 권한 거부, 캡처 취소
        """
        if not self.devices.supports_screen_capture:
            message = "Screen sharing is not supported on this platform."
            logger.error(f"[Media] {message}")
            raise ScreenShareError(message, user_message=message)

        logger.info("[Media] 화면 공유 시작...")
        try:
            player = await self._open(
                self.devices.SCREEN_DEVICE, self.devices.SCREEN_FORMAT, {"framerate": str(self.constraints.frame_rate)}
            )
        except Exception as e:
            logger.error(f"[Media] 화면 공유 실패: {e}")
            raise ScreenShareError(f"Screen sharing failed: {e}") from e

        if getattr(player, "video", None) is None:
            raise ScreenShareError("Screen sharing failed: no video stream")

        track = SwitchableTrack(player.video, label="screen")
        self._owned.append(track)
        return track

    def switch_video_source(self, new_track: Optional[SwitchableTrack]) -> Optional[SwitchableTrack]:
        """송신 비디오 트랙을 교체하고 이전 트랙을 반환합니다. 이전 트랙은 해제하지 않습니다."""
        previous = self.video_track
        self.video_track = new_track
        logger.info(
            f"[Media] 비디오 소스 전환: {getattr(previous, 'label', None)} -> {getattr(new_track, 'label', None)}"
        )
        return previous

    def release(self, track: Optional[SwitchableTrack]) -> None:
        """트랙을 종료하고 장치를 해제합니다. 이미 해제된 트랙은 무시됩니다."""
        if track is None:
            return
        track.stop()
        if track in self._owned:
            self._owned.remove(track)
            logger.info(f"[Media] {track.label} 트랙 해제")
        if track is self.camera_track:
            self.camera_track = None
        if track is self.audio_track:
            self.audio_track = None
        if track is self.video_track:
            self.video_track = self.camera_track

    def release_all(self) -> None:
        for track in list(self._owned):
            self.release(track)
        self.video_track = None

    async def _open(self, device: Optional[str], fmt: Optional[str], options: Dict[str, str]):
        if not device:
            raise FileNotFoundError("capture device is not configured")
        return await asyncio.to_thread(self._player_factory, device, format=fmt, options=options)


def _to_media_error(exc: Exception) -> MediaError:
    if isinstance(exc, MediaError):
        return exc
    if isinstance(exc, PermissionError):
        kind = MediaErrorKind.PERMISSION_DENIED
    elif isinstance(exc, OSError):
        kind = MediaErrorKind.DEVICE_UNAVAILABLE
    else:
        kind = MediaErrorKind.UNKNOWN
    return MediaError(str(exc) or type(exc).__name__, media_kind=kind)
