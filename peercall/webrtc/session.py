"""통화 세션 컨트롤러 모듈.

미디어 소스, 시그널링 채널, 전송 세션, 협상 조정기, 통계 샘플러를 묶어
하나의 통화를 관리합니다. 외부 UI가 직접 사용하는 유일한 컴포넌트입니다.

주요 기능:
    - start(): 시그널링 연결 → 카메라/마이크 획득 → 전송 세션 생성 → 룸 입장
    - toggle_audio() / toggle_video(): 로컬 트랙 on/off 및 상대방 알림
    - toggle_screen_share(): 송신 비디오를 화면 ↔ 카메라로 교체 (같은 미디어 라인)
    - end_call(): 진행 중인 작업 취소, 타이머 정리, 트랙/연결 해제, 룸 퇴장

Event Processing:
    시그널링 메시지, 전송 콜백, 타이머, 사용자 명령은 모두 이벤트 큐에 들어가고
    단일 워커 태스크가 하나씩 처리합니다. 따라서 세션 상태 변경은 서로
    인터리빙되지 않습니다. 명령은 처리 결과를 Future로 돌려받습니다.

Architecture:
    Signaling ──┐
    Transport ──┼──> asyncio.Queue ──> worker ──> transition() ──> effects
    Commands ───┘                         └──> NegotiationCoordinator
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from aiortc import RTCConfiguration, RTCPeerConnection

from ..debug_log import DebugLogHandler
from ..errors import ErrorKind, MediaError, NegotiationError, PeerCallError, SignalingError
from ..shared import QualitySample, RemoteMediaState
from ..signaling import (
    Answer,
    CandidatePayload,
    IceCandidateMessage,
    JoinRoom,
    LeaveRoom,
    MediaStateChange,
    NegotiationMessage,
    Offer,
    RoomAction,
    RoomEvent,
    ScreenShareChange,
    SignalingChannel,
    Subscription,
)
from .config import ConnectionConfig, connection_config, ice_config
from .media import LocalTracks, MediaSourceManager
from .negotiation import CallRole, NegotiationCoordinator
from .state import (
    CloseRequested,
    ConnectionState,
    Effect,
    IceStateChanged,
    NegotiationFailed,
    SessionState,
    StateEvent,
    TransportStateChanged,
    transition,
)
from .telemetry import TelemetrySampler
from .tracks import FrameMeterTrack
from .transport import CandidateType, TransportSession

logger = logging.getLogger(__name__)

CONNECTION_FAILED_MESSAGE = "Connection failed. Please try again."


class SessionObserver:
    """UI 협력자 인터페이스. 필요한 메서드만 오버라이드합니다."""

    def on_state_change(self, state: ConnectionState) -> None:
        pass

    def on_remote_stream(self, stream: Optional["RemoteStream"]) -> None:
        pass

    def on_quality_sample(self, sample: QualitySample) -> None:
        pass

    def on_error(self, kind: ErrorKind, message: str) -> None:
        pass

    def on_error_cleared(self) -> None:
        pass

    def on_remote_identity(self, visible: bool) -> None:
        pass

    def on_remote_media_state(self, state: RemoteMediaState) -> None:
        pass

    def on_local_stream(self, tracks: LocalTracks) -> None:
        pass


@dataclass
class RemoteStream:
    """상대방에게서 수신 중인 트랙 묶음 (렌더링은 UI 담당)."""

    peer_id: Optional[str] = None
    tracks: List[Any] = field(default_factory=list)

    def track(self, kind: str):
        for track in self.tracks:
            if track.kind == kind:
                return track
        return None


@dataclass
class Session:
    """통화 세션 상태. SessionController만 변경합니다."""

    room_id: str
    call_role: CallRole = CallRole.UNDETERMINED
    state: SessionState = field(default_factory=SessionState)
    local_tracks: LocalTracks = field(default_factory=LocalTracks)
    remote_stream: Optional[RemoteStream] = None
    remote_media: RemoteMediaState = field(default_factory=RemoteMediaState)
    is_screen_sharing: bool = False
    last_sample: Optional[QualitySample] = None
    last_error: Optional[str] = None

    @property
    def connection_state(self) -> ConnectionState:
        return self.state.connection


# ------------------------------------------------------------
# Queue events
# ------------------------------------------------------------


@dataclass(frozen=True)
class SignalingMessageReceived:
    message: NegotiationMessage


@dataclass(frozen=True)
class SignalingConnectionChanged:
    connected: bool


@dataclass(frozen=True)
class LocalCandidate:
    payload: CandidatePayload
    candidate_type: CandidateType


@dataclass(frozen=True)
class RemoteTrackReceived:
    track: Any


@dataclass(frozen=True)
class OfferDue:
    pass


@dataclass(frozen=True)
class SetMediaEnabled:
    kind: str
    # None toggles the current state
    enabled: Optional[bool] = None


@dataclass(frozen=True)
class ScreenShareStarted:
    track: Any


@dataclass(frozen=True)
class StopScreenShare:
    reason: str = "user"


class SessionController:
    """하나의 통화를 관리하는 최상위 컨트롤러.

    Attributes:
        room_id (str): 룸 ID
        session (Session): 현재 세션 상태 (읽기 전용으로 사용)
        media (MediaSourceManager): 로컬 미디어 관리자
        transport (Optional[TransportSession]): 전송 세션 (start() 이후 생성)
        coordinator (Optional[NegotiationCoordinator]): 협상 조정기
        debug_log (DebugLogHandler): 통화 중 로그를 보관하는 핸들러

    Examples:
        >>> controller = SessionController("room-1", WebSocketSignalingChannel(), observer=ui)
        >>> if await controller.start():
        ...     await controller.toggle_screen_share()
        ...     await controller.end_call()
    """

    def __init__(
        self,
        room_id: str,
        channel: SignalingChannel,
        media: Optional[MediaSourceManager] = None,
        observer: Optional[SessionObserver] = None,
        configuration: Optional[RTCConfiguration] = None,
        peer_connection_factory=RTCPeerConnection,
        config: ConnectionConfig = connection_config,
        debug_log: Optional[DebugLogHandler] = None,
    ):
        self.room_id = room_id
        self.channel = channel
        self.media = media or MediaSourceManager()
        self.observer = observer or SessionObserver()
        self.configuration = configuration or ice_config.to_rtc_configuration()
        self.config = config
        self.debug_log = debug_log or DebugLogHandler(capacity=config.DEBUG_LOG_CAPACITY)
        self._peer_connection_factory = peer_connection_factory

        self.session = Session(room_id=room_id)
        self.transport: Optional[TransportSession] = None
        self.coordinator: Optional[NegotiationCoordinator] = None
        self.sampler: Optional[TelemetrySampler] = None

        self._queue: "asyncio.Queue[Tuple[Any, Optional[asyncio.Future]]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Future] = None
        self._subscriptions: List[Subscription] = []
        self._identity_timer: Optional[asyncio.Task] = None
        self._end_task: Optional[asyncio.Task] = None
        self._screen_ended_handler = None
        self._started = False
        self._joined = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connection_state(self) -> ConnectionState:
        return self.session.state.connection

    @property
    def pending_candidates(self) -> List[CandidatePayload]:
        return self.transport.pending_candidates if self.transport else []

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self) -> bool:
        """통화를 시작합니다.

        Returns:
            bool: 룸 입장까지 성공하면 True. 미디어/시그널링 실패 시 False
                (오류는 observer.on_error로 보고되고 세션은 closed)
        """
        if self._started:
            return not self._closed
        self._started = True
        logging.getLogger("peercall").addHandler(self.debug_log)
        logger.info(f"[Session] 통화 시작: room={self.room_id}")

        try:
            if not self.channel.connected:
                await self.channel.connect()
            tracks = await self.media.acquire()
        except (SignalingError, MediaError) as e:
            self._report_error(e)
            await self.end_call()
            return False

        self.session.local_tracks = tracks
        self.observer.on_local_stream(tracks)

        self.transport = self._build_transport()
        for track in tracks.all():
            self.transport.add_track(track)
        self.coordinator = NegotiationCoordinator(
            self.room_id,
            self.channel,
            self.transport,
            offer_delay=self.config.OFFER_DELAY,
            on_offer_due=self._offer_timer_fired,
        )
        self.sampler = TelemetrySampler(
            self._get_stats,
            self._on_sample,
            interval=self.config.STATS_INTERVAL,
            frame_info=self._remote_frame_info,
        )

        self._subscriptions = [
            self.channel.subscribe(self._on_signaling_message),
            self.channel.subscribe_connection(self._on_signaling_connection),
        ]
        self._worker = asyncio.create_task(self._run())

        try:
            await self.channel.send(self.room_id, JoinRoom())
        except SignalingError as e:
            self._report_error(e)
            await self.end_call()
            return False

        self._joined = True
        logger.info(f"[Session] 룸 입장 요청 완료: {self.room_id} (id={self.channel.connection_id})")
        return True

    async def end_call(self) -> None:
        """통화를 종료하고 모든 자원을 해제합니다. 여러 번 호출해도 안전합니다."""
        if self._closed:
            return
        self._closed = True
        logger.info("[Session] 통화 종료 중...")

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass

        await self._apply(CloseRequested())

        self._cancel_identity_timer()
        if self.coordinator:
            self.coordinator.cancel()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

        self._detach_screen_listener()
        self.media.release_all()
        if self.transport:
            await self.transport.close()

        if self._joined:
            self._joined = False
            try:
                await self.channel.send(self.room_id, LeaveRoom())
            except SignalingError as e:
                logger.warning(f"[Session] 룸 퇴장 알림 실패: {e}")

        self._drop_pending_events()
        logger.info("[Session] 통화 종료 완료")
        logging.getLogger("peercall").removeHandler(self.debug_log)

    async def wait_idle(self) -> None:
        """큐에 쌓인 이벤트가 모두 처리될 때까지 대기합니다."""
        if self._worker is None:
            return
        await self._queue.join()

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------

    async def toggle_audio(self) -> bool:
        return bool(await self._submit(SetMediaEnabled("audio")))

    async def toggle_video(self) -> bool:
        return bool(await self._submit(SetMediaEnabled("video")))

    async def set_audio_enabled(self, enabled: bool) -> bool:
        return bool(await self._submit(SetMediaEnabled("audio", enabled)))

    async def set_video_enabled(self, enabled: bool) -> bool:
        return bool(await self._submit(SetMediaEnabled("video", enabled)))

    async def toggle_screen_share(self) -> bool:
        """화면 공유를 시작하거나 중지합니다.

        Returns:
            bool: 호출 후 화면 공유 중인지 여부. 캡처 실패 시 False
                (ScreenShareError는 보고만 하고 카메라 송신은 유지)
        """
        if self._closed or not self._started:
            return False
        if self.session.is_screen_sharing:
            await self._submit(StopScreenShare())
            return self.session.is_screen_sharing

        # 장치 열기는 큐 밖에서 수행 (다른 이벤트 처리를 막지 않음)
        try:
            track = await self.media.acquire_screen()
        except PeerCallError as e:
            self._report_error(e)
            return False

        result = await self._submit(ScreenShareStarted(track))
        if result is None:
            self.media.release(track)
            return False
        return bool(result)

    # ------------------------------------------------------------
    # Event queue
    # ------------------------------------------------------------

    def _enqueue(self, event) -> None:
        if self._closed or self._worker is None:
            logger.debug(f"[Session] 종료 후 이벤트 무시: {type(event).__name__}")
            return
        self._queue.put_nowait((event, None))

    async def _submit(self, event):
        if self._closed or self._worker is None:
            return None
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((event, future))
        return await future

    async def _run(self) -> None:
        while not self._closed:
            event, future = await self._queue.get()
            self._inflight = future
            result = None
            try:
                result = await self._handle(event)
            except PeerCallError as e:
                self._report_error(e)
                if isinstance(e, NegotiationError):
                    await self._apply(NegotiationFailed(str(e)))
            except Exception as e:
                logger.error(f"[Session] 이벤트 처리 오류 ({type(event).__name__}): {e}", exc_info=True)
            finally:
                self._queue.task_done()
                if self.coordinator:
                    self.session.call_role = self.coordinator.role
            self._inflight = None
            if future is not None and not future.done():
                future.set_result(result)

    def _drop_pending_events(self) -> None:
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            inflight.set_result(None)
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            self._queue.task_done()
            if future is not None and not future.done():
                future.set_result(None)

    async def _handle(self, event):
        if isinstance(event, SignalingMessageReceived):
            return await self._handle_message(event.message)
        if isinstance(event, (TransportStateChanged, IceStateChanged)):
            return await self._apply(event)
        if isinstance(event, LocalCandidate):
            await self.channel.send(self.room_id, IceCandidateMessage(candidate=event.payload))
            return None
        if isinstance(event, RemoteTrackReceived):
            return self._add_remote_track(event.track)
        if isinstance(event, OfferDue):
            return await self.coordinator.offer_due()
        if isinstance(event, SetMediaEnabled):
            return await self._set_media_enabled(event.kind, event.enabled)
        if isinstance(event, ScreenShareStarted):
            return await self._start_screen_share(event.track)
        if isinstance(event, StopScreenShare):
            return await self._stop_screen_share(event.reason)
        if isinstance(event, SignalingConnectionChanged):
            return await self._handle_signaling_connection(event.connected)
        logger.warning(f"[Session] 알 수 없는 이벤트: {event!r}")
        return None

    # ------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------

    async def _apply(self, event: StateEvent) -> SessionState:
        previous = self.session.state.connection
        result = transition(self.session.state, event)
        self.session.state = result.state

        if result.state.connection is not previous:
            logger.info(f"[Session] 연결 상태: {previous.value} -> {result.state.connection.value}")
            self.observer.on_state_change(result.state.connection)

        for effect in result.effects:
            await self._execute(effect)
        return result.state

    async def _execute(self, effect: Effect) -> None:
        if effect is Effect.CLEAR_ERROR:
            self.session.last_error = None
            self.observer.on_error_cleared()
        elif effect is Effect.SHOW_REMOTE_IDENTITY:
            self._show_remote_identity()
        elif effect is Effect.START_SAMPLER:
            if self.sampler:
                self.sampler.start()
        elif effect is Effect.STOP_SAMPLER:
            if self.sampler:
                self.sampler.stop()
        elif effect is Effect.RESTART_ICE:
            logger.warning("[ICE] ICE 연결 실패 - ICE restart 시도")
            await self.coordinator.request_renegotiation("ICE failed", ice_restart=True)
        elif effect is Effect.REPORT_FAILURE:
            logger.error("[WebRTC] WebRTC 연결 실패")
            self.session.last_error = CONNECTION_FAILED_MESSAGE
            self.observer.on_error(ErrorKind.NEGOTIATION, CONNECTION_FAILED_MESSAGE)
        elif effect is Effect.RELEASE_RESOURCES:
            if not self._closed and self._end_task is None:
                logger.info("[Session] 전송 계층 종료 감지 - 통화 정리")
                self._end_task = asyncio.create_task(self.end_call())

    # ------------------------------------------------------------
    # Signaling
    # ------------------------------------------------------------

    def _on_signaling_message(self, message: NegotiationMessage) -> None:
        self._enqueue(SignalingMessageReceived(message))

    def _on_signaling_connection(self, connected: bool) -> None:
        self._enqueue(SignalingConnectionChanged(connected))

    async def _handle_message(self, message: NegotiationMessage) -> None:
        if message.room_id and message.room_id != self.room_id:
            logger.debug(f"[Session] 다른 룸 메시지 무시: {message.room_id}")
            return

        if isinstance(message, RoomEvent):
            if message.action is RoomAction.JOINED:
                self.coordinator.handle_peer_joined(message.user_id)
            else:
                await self._handle_peer_left(message.user_id)
        elif isinstance(message, Offer):
            await self.coordinator.handle_offer(message)
        elif isinstance(message, Answer):
            await self.coordinator.handle_answer(message)
        elif isinstance(message, IceCandidateMessage):
            await self.coordinator.handle_candidate(message)
        elif isinstance(message, MediaStateChange):
            logger.info(f"[Session] 상대 미디어 상태 변경: audio={message.audio}, video={message.video}")
            self._update_remote_media(audio_enabled=message.audio, video_enabled=message.video)
        elif isinstance(message, ScreenShareChange):
            logger.info(f"[Session] 상대 화면 공유 {'시작' if message.is_sharing else '종료'}")
            self._update_remote_media(is_screen_sharing=message.is_sharing)

    async def _handle_signaling_connection(self, connected: bool) -> None:
        if not connected:
            self._report_error(SignalingError("signaling channel disconnected"))
            return
        # 채널이 스스로 재연결된 경우 룸에 다시 입장
        logger.info("[Signaling] 채널 재연결 - 룸 재입장")
        await self.channel.send(self.room_id, JoinRoom())

    async def _handle_peer_left(self, peer_id: Optional[str]) -> None:
        remote_id = self.coordinator.remote_peer_id
        if remote_id and peer_id and peer_id != remote_id:
            logger.debug(f"[Session] 알 수 없는 피어 퇴장 무시: {peer_id}")
            return
        self.coordinator.handle_peer_left(peer_id)
        self._cancel_identity_timer()
        self.observer.on_remote_identity(False)
        self.session.remote_stream = None
        self.session.remote_media = RemoteMediaState()
        self.observer.on_remote_stream(None)
        await self._reset_transport()

    def _update_remote_media(self, **changes) -> None:
        self.session.remote_media = self.session.remote_media.model_copy(update=changes)
        self.observer.on_remote_media_state(self.session.remote_media)
        self._show_remote_identity()

    async def _send_notice(self, message: NegotiationMessage) -> None:
        try:
            await self.channel.send(self.room_id, message)
        except SignalingError as e:
            self._report_error(e)

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    def _build_transport(self) -> TransportSession:
        transport = TransportSession(self.configuration, peer_connection_factory=self._peer_connection_factory)
        transport.on_ice_candidate_callback = self._on_local_candidate
        transport.on_connection_state_callback = self._on_transport_state
        transport.on_ice_state_callback = self._on_ice_state
        transport.on_track_callback = self._on_remote_track
        return transport

    async def _reset_transport(self) -> None:
        """상대 퇴장 후 다음 입장자를 위해 새 전송 세션을 준비합니다."""
        if self.sampler:
            self.sampler.stop()
        old = self.transport
        self.transport = self._build_transport()
        self.coordinator.transport = self.transport
        await old.close()
        for track in self.media.local_tracks.all():
            self.transport.add_track(track)

        previous = self.session.state.connection
        self.session.state = SessionState()
        if previous is not ConnectionState.NEW:
            self.observer.on_state_change(ConnectionState.NEW)
        logger.info("[Session] 전송 세션 초기화 완료 - 다음 참가자 대기")

    def _on_local_candidate(self, payload: CandidatePayload, candidate_type: CandidateType) -> None:
        self._enqueue(LocalCandidate(payload, candidate_type))

    def _on_transport_state(self, state: str) -> None:
        self._enqueue(TransportStateChanged(state))

    def _on_ice_state(self, state: str) -> None:
        self._enqueue(IceStateChanged(state))

    def _on_remote_track(self, track) -> None:
        self._enqueue(RemoteTrackReceived(track))

    def _add_remote_track(self, track) -> None:
        """원격 트랙을 스트림에 반영합니다. 같은 종류의 이전 트랙은 교체됩니다.

        비디오는 FrameMeterTrack으로 감싸 통계에 없는 해상도/프레임레이트를 측정합니다.
        """
        stream = self.session.remote_stream
        if stream is None:
            stream = RemoteStream(peer_id=self.coordinator.remote_peer_id)
            self.session.remote_stream = stream
        current = stream.track(track.kind)
        if current is track or getattr(current, "source", None) is track:
            return
        if track.kind == "video":
            track = FrameMeterTrack(track)
        # 피어 연결이 재생성되면 같은 종류의 새 트랙이 도착함
        stream.tracks = [t for t in stream.tracks if t.kind != track.kind] + [track]
        logger.info(f"[WebRTC] 원격 스트림 갱신: {[t.kind for t in stream.tracks]}")
        self.observer.on_remote_stream(stream)

    def _remote_frame_info(self):
        stream = self.session.remote_stream
        video = stream.track("video") if stream else None
        if isinstance(video, FrameMeterTrack):
            return video.snapshot()
        return None

    async def _offer_timer_fired(self) -> None:
        self._enqueue(OfferDue())

    async def _get_stats(self):
        return await self.transport.get_stats()

    def _on_sample(self, sample: QualitySample) -> None:
        if self._closed:
            return
        self.session.last_sample = sample
        self.observer.on_quality_sample(sample)

    # ------------------------------------------------------------
    # Local media
    # ------------------------------------------------------------

    async def _set_media_enabled(self, kind: str, enabled: Optional[bool]) -> bool:
        if kind == "video" and self.session.is_screen_sharing:
            logger.info("[Media] 화면 공유 중에는 비디오 토글 불가")
            return self._camera_enabled()

        track = self.media.audio_track if kind == "audio" else self.media.camera_track
        if track is None:
            logger.warning(f"[Media] {kind} 트랙 없음 - 토글 무시")
            return False

        target = (not track.enabled) if enabled is None else enabled
        if track.enabled == target and enabled is not None:
            return target

        track.enabled = target
        logger.info(f"[Media] {'오디오' if kind == 'audio' else '비디오'} {'켜짐' if target else '꺼짐'}")
        await self._send_notice(MediaStateChange(audio=self._audio_enabled(), video=self._camera_enabled()))
        return target

    def _audio_enabled(self) -> bool:
        return self.media.audio_track is not None and self.media.audio_track.enabled

    def _camera_enabled(self) -> bool:
        return self.media.camera_track is not None and self.media.camera_track.enabled

    async def _start_screen_share(self, track) -> bool:
        if self.session.is_screen_sharing:
            self.media.release(track)
            return True

        previous = self.media.switch_video_source(track)
        try:
            replaced = await self.transport.replace_video_track(track)
            if not replaced:
                self.transport.add_track(track)
                await self.coordinator.request_renegotiation("screen share without video sender")
        except Exception:
            self.media.switch_video_source(previous)
            self.media.release(track)
            raise

        self._screen_ended_handler = lambda: self._enqueue(StopScreenShare("ended"))
        track.on("ended", self._screen_ended_handler)

        self.session.is_screen_sharing = True
        self.session.local_tracks = self.media.local_tracks
        self.observer.on_local_stream(self.session.local_tracks)
        logger.info("[Media] 화면 공유 시작됨")
        await self._send_notice(ScreenShareChange(is_sharing=True))
        return True

    async def _stop_screen_share(self, reason: str) -> bool:
        if not self.session.is_screen_sharing:
            return False

        logger.info(f"[Media] 화면 공유 중지 ({reason})")
        self._detach_screen_listener()
        camera = self.media.camera_track
        screen = self.media.switch_video_source(camera)
        if camera is not None:
            await self.transport.replace_video_track(camera)
        self.media.release(screen)

        self.session.is_screen_sharing = False
        self.session.local_tracks = self.media.local_tracks
        self.observer.on_local_stream(self.session.local_tracks)
        await self._send_notice(ScreenShareChange(is_sharing=False))
        return False

    def _detach_screen_listener(self) -> None:
        handler, self._screen_ended_handler = self._screen_ended_handler, None
        track = self.media.video_track
        if handler is None or track is None or track is self.media.camera_track:
            return
        # an ended track has already dropped its listeners
        if track.readyState != "ended":
            track.remove_listener("ended", handler)

    # ------------------------------------------------------------
    # Notices / errors
    # ------------------------------------------------------------

    def _show_remote_identity(self) -> None:
        self._cancel_identity_timer()
        self.observer.on_remote_identity(True)
        self._identity_timer = asyncio.create_task(self._hide_remote_identity())

    async def _hide_remote_identity(self) -> None:
        await asyncio.sleep(self.config.REMOTE_IDENTITY_SECONDS)
        self._identity_timer = None
        self.observer.on_remote_identity(False)

    def _cancel_identity_timer(self) -> None:
        timer, self._identity_timer = self._identity_timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    def _report_error(self, error: PeerCallError) -> None:
        logger.error(f"[Session] {error.kind.value} 오류: {error}")
        self.session.last_error = error.user_message
        self.observer.on_error(error.kind, error.user_message)
