"""ICE/전송 세션 모듈.

통화당 하나의 RTCPeerConnection을 소유하고 SDP 적용, ICE candidate
생성/소비, 연결 상태 이벤트 전달, ICE restart를 담당합니다.

주요 기능:
    - 로컬 candidate 즉시 전달 (trickle ICE), host/srflx/relay 분류는 진단용 로그에만 사용
    - remote description 적용 전 도착한 candidate 버퍼링 (pending_candidates)
    - remote description 적용 직후 버퍼를 도착 순서대로 한 번만 적용
    - 적용 실패한 candidate는 로그 후 건너뜀 (세션 중단 없음)

WebRTC Flow:
    1. TransportSession 생성 (RTCPeerConnection + 이벤트 핸들러 등록)
    2. add_track(): 로컬 트랙 추가
    3. create_offer() 또는 apply_remote_description() + create_answer()
    4. add_remote_candidate(): 원격 candidate 적용 또는 버퍼링
    5. close(): 핸들러 해제 및 연결 종료 (트랙은 해제하지 않음)

Note:
    - 이 클래스는 상태 머신을 직접 바꾸지 않습니다. 상태 변화는 콜백으로만 알립니다.
    - aiortc는 restartIce()를 제공하지 않으므로, 이 경우 새 offer 생성으로 대체됩니다.
    - aiortc는 rollback도 지원하지 않으므로, glare에서 양보할 때 RTCPeerConnection을
      새로 만들고 송신 트랙을 다시 추가합니다.
"""

import inspect
import logging
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from aiortc import RTCConfiguration, RTCIceCandidate, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from ..errors import IceError, NegotiationError
from ..signaling.messages import CandidatePayload

logger = logging.getLogger(__name__)


class CandidateType(str, Enum):
    HOST = "host"
    SERVER_REFLEXIVE = "srflx"
    PEER_REFLEXIVE = "prflx"
    RELAY = "relay"
    UNKNOWN = "unknown"


def classify_candidate(candidate_sdp: str) -> CandidateType:
    """candidate 문자열의 `typ` 토큰으로 종류를 분류합니다 (진단용)."""
    tokens = candidate_sdp.split()
    try:
        return CandidateType(tokens[tokens.index("typ") + 1])
    except (ValueError, IndexError):
        return CandidateType.UNKNOWN


def candidate_to_payload(candidate: RTCIceCandidate) -> CandidatePayload:
    return CandidatePayload(
        candidate="candidate:" + candidate_to_sdp(candidate),
        sdp_mid=candidate.sdpMid,
        sdp_mline_index=candidate.sdpMLineIndex,
    )


def payload_to_candidate(payload: CandidatePayload) -> RTCIceCandidate:
    candidate_str = payload.candidate
    # Handle "candidate:" prefix if present
    if candidate_str.startswith("candidate:"):
        candidate_str = candidate_str[len("candidate:"):]
    candidate = candidate_from_sdp(candidate_str)
    candidate.sdpMid = payload.sdp_mid
    candidate.sdpMLineIndex = payload.sdp_mline_index
    return candidate


class TransportSession:
    """RTCPeerConnection 하나를 감싸는 전송 세션.

    Attributes:
        pc (RTCPeerConnection): 피어 연결 객체
        pending_candidates (List[CandidatePayload]): remote description 전에 도착한 원격 candidate
        has_remote_description (bool): remote description 적용 여부
        on_ice_candidate_callback: 로컬 candidate 생성 시 호출 (CandidatePayload, CandidateType)
        on_connection_state_callback: connectionState 변경 시 호출 (str)
        on_ice_state_callback: iceConnectionState 변경 시 호출 (str)
        on_track_callback: 원격 트랙 수신 시 호출 (MediaStreamTrack)

    Examples:
        >>> transport = TransportSession(ice_config.to_rtc_configuration())
        >>> transport.add_track(camera_track)
        >>> offer = await transport.create_offer()
        >>> await transport.apply_remote_description(answer_sdp, "answer")
    """

    def __init__(
        self,
        configuration: Optional[RTCConfiguration] = None,
        peer_connection_factory: Callable[..., Any] = RTCPeerConnection,
    ):
        self._configuration = configuration
        self._peer_connection_factory = peer_connection_factory
        self.pc = peer_connection_factory(configuration=configuration)
        self.pending_candidates: List[CandidatePayload] = []
        self.has_remote_description = False
        self.closed = False

        self.on_ice_candidate_callback = None
        self.on_connection_state_callback = None
        self.on_ice_state_callback = None
        self.on_track_callback = None

        self._listeners: List[Tuple[str, Callable]] = []
        self._register_handlers()
        logger.info("[WebRTC] RTCPeerConnection 생성 완료")

    def _register_handlers(self) -> None:
        pc = self.pc

        @pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            """ICE candidate 생성 시 호출되는 이벤트 핸들러."""
            if candidate is None:
                logger.info("[ICE] candidate 수집 완료")
                return

            if isinstance(candidate, RTCIceCandidate):
                payload = candidate_to_payload(candidate)
            else:
                payload = CandidatePayload.model_validate(candidate)
            cand_type = classify_candidate(payload.candidate)
            if cand_type is CandidateType.RELAY:
                logger.info("[ICE] TURN relay 후보 생성")
            else:
                logger.info(f"[ICE] 후보 생성: type={cand_type.value}")

            if self.on_ice_candidate_callback:
                await _call(self.on_ice_candidate_callback, payload, cand_type)

        @pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] 연결 상태 변경: {pc.connectionState}")
            if self.on_connection_state_callback:
                await _call(self.on_connection_state_callback, pc.connectionState)

        @pc.on("iceconnectionstatechange")
        async def on_ice_connection_state_change():
            """ICE 연결 상태 변경 시 호출되는 이벤트 핸들러.

            Note:
                - ICE 상태: new, checking, connected, completed, failed, disconnected, closed
                - failed 처리(ICE restart)는 상태 머신이 결정함
            """
            logger.info(f"[ICE] 연결 상태: {pc.iceConnectionState}")
            if self.on_ice_state_callback:
                await _call(self.on_ice_state_callback, pc.iceConnectionState)

        @pc.on("track")
        async def on_track(track):
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신")
            if self.on_track_callback:
                await _call(self.on_track_callback, track)

        self._listeners = [
            ("icecandidate", on_ice_candidate),
            ("connectionstatechange", on_connection_state_change),
            ("iceconnectionstatechange", on_ice_connection_state_change),
            ("track", on_track),
        ]

    # ------------------------------------------------------------
    # Tracks
    # ------------------------------------------------------------

    def add_track(self, track):
        logger.info(f"[WebRTC] {track.kind} 트랙 추가")
        return self.pc.addTrack(track)

    def video_sender(self):
        """비디오 트랙을 송신 중인 sender를 반환합니다. 없으면 None."""
        for sender in self.pc.getSenders():
            if sender.track is not None and sender.track.kind == "video":
                return sender
        return None

    async def replace_video_track(self, track) -> bool:
        """기존 비디오 sender의 트랙을 교체합니다 (같은 미디어 라인 유지).

        Returns:
            bool: 교체 성공 여부. 비디오 sender가 없으면 False (재협상 필요)
        """
        sender = self.video_sender()
        if sender is None:
            logger.info("[WebRTC] 비디오 sender 없음 - 트랙 교체 불가")
            return False
        # aiortc: sync, browser-style implementations: awaitable
        result = sender.replaceTrack(track)
        if inspect.isawaitable(result):
            await result
        logger.info(f"[WebRTC] 비디오 트랙 교체: {getattr(track, 'label', track.kind)}")
        return True

    # ------------------------------------------------------------
    # SDP
    # ------------------------------------------------------------

    @property
    def signaling_state(self) -> str:
        return self.pc.signalingState

    async def create_offer(self, ice_restart: bool = False) -> RTCSessionDescription:
        """오디오/비디오 수신을 요청하는 offer를 만들고 local description으로 설정합니다.

        Args:
            ice_restart: ICE restart 플래그

        Note:
            aiortc에는 restartIce()가 없고 createOffer()가 기존 ICE ufrag/pwd를
            그대로 재사용합니다. 따라서 aiortc에서 ice_restart=True는 새 ICE
            자격 증명을 만드는 진짜 ICE restart가 아니라 일반 재협상 offer입니다.
            restartIce()를 제공하는 구현에서만 ICE 에이전트가 재시작됩니다.

        Raises:
            NegotiationError: offer 생성/설정 실패
        """
        self._ensure_receive_transceivers()
        if ice_restart:
            restart_ice = getattr(self.pc, "restartIce", None)
            if callable(restart_ice):
                restart_ice()
                logger.info("[ICE] restartIce 요청")
            else:
                logger.info("[ICE] restartIce 미지원 - 새 offer로 재협상")

        try:
            offer = await self.pc.createOffer()
            await self.pc.setLocalDescription(offer)
        except Exception as e:
            logger.error(f"[WebRTC] offer 생성 실패: {e}")
            raise NegotiationError(f"Error creating offer: {e}") from e

        logger.info(f"[WebRTC] offer 생성 및 local description 설정 완료 (ice_restart={ice_restart})")
        return self.pc.localDescription

    async def create_answer(self) -> RTCSessionDescription:
        try:
            answer = await self.pc.createAnswer()
            await self.pc.setLocalDescription(answer)
        except Exception as e:
            logger.error(f"[WebRTC] answer 생성 실패: {e}")
            logger.error(f"[WebRTC] PC 상태: signaling={self.pc.signalingState}, connection={self.pc.connectionState}")
            raise NegotiationError(f"Error creating answer: {e}") from e

        logger.info("[WebRTC] answer 생성 및 local description 설정 완료")
        return self.pc.localDescription

    async def apply_remote_description(self, sdp: str, sdp_type: str) -> None:
        """remote description을 적용하고 버퍼된 candidate를 적용합니다.

        Raises:
            NegotiationError: remote description 설정 실패
        """
        try:
            await self.pc.setRemoteDescription(RTCSessionDescription(sdp=sdp, type=sdp_type))
        except Exception as e:
            logger.error(f"[WebRTC] remote description 설정 실패 ({sdp_type}): {e}")
            raise NegotiationError(f"Error setting remote description: {e}") from e

        self.has_remote_description = True
        logger.info(f"[WebRTC] remote description 설정 완료 ({sdp_type}), signaling={self.pc.signalingState}")
        await self._drain_pending_candidates()

    async def rollback(self) -> None:
        """보낸 offer를 철회합니다 (glare 시 양보하는 쪽).

        aiortc는 rollback description을 오류 없이 받지만 signalingState를
        have-local-offer로 그대로 둡니다. rollback 후에도 stable이 아니면
        피어 연결을 새로 만들어 원격 offer를 받을 수 있게 합니다.

        Raises:
            NegotiationError: 피어 연결 재생성 실패
        """
        try:
            await self.pc.setLocalDescription(RTCSessionDescription(sdp="", type="rollback"))
        except Exception as e:
            logger.warning(f"[WebRTC] rollback 실패: {e}")

        if self.pc.signalingState == "stable":
            logger.info("[WebRTC] local offer rollback 완료")
            return

        logger.info(f"[WebRTC] rollback 미적용 (signaling={self.pc.signalingState}) - 피어 연결 재생성")
        try:
            await self._rebuild_peer_connection()
        except Exception as e:
            raise NegotiationError(f"Error rolling back local offer: {e}") from e

    async def _rebuild_peer_connection(self) -> None:
        """같은 설정으로 RTCPeerConnection을 새로 만들고 현재 송신 트랙을 다시 추가합니다."""
        old = self.pc
        tracks = [sender.track for sender in old.getSenders() if sender.track is not None]
        for event, handler in self._listeners:
            old.remove_listener(event, handler)
        self._listeners = []

        self.pc = self._peer_connection_factory(configuration=self._configuration)
        self._register_handlers()
        self.has_remote_description = False
        await old.close()

        for track in tracks:
            self.pc.addTrack(track)
        logger.info(f"[WebRTC] 피어 연결 재생성 완료 (트랙 {len(tracks)}개 재추가)")

    def _ensure_receive_transceivers(self) -> None:
        kinds = {transceiver.kind for transceiver in self.pc.getTransceivers()}
        for kind in ("audio", "video"):
            if kind not in kinds:
                self.pc.addTransceiver(kind, direction="recvonly")
                logger.info(f"[WebRTC] {kind} 수신 transceiver 추가")

    # ------------------------------------------------------------
    # ICE candidates
    # ------------------------------------------------------------

    async def add_remote_candidate(self, payload: CandidatePayload) -> None:
        """원격 candidate를 적용합니다. remote description 전이면 버퍼에 보관합니다."""
        if not self.has_remote_description:
            self.pending_candidates.append(payload)
            logger.info(f"[ICE] remote description 전 candidate 버퍼링 ({len(self.pending_candidates)}개)")
            return
        try:
            await self._apply_candidate(payload)
        except IceError as e:
            logger.warning(f"[ICE] candidate 건너뜀: {e}")

    async def _drain_pending_candidates(self) -> None:
        pending, self.pending_candidates = self.pending_candidates, []
        if not pending:
            return
        logger.info(f"[ICE] 버퍼된 candidate {len(pending)}개 적용")
        skipped = 0
        for payload in pending:
            try:
                await self._apply_candidate(payload)
            except IceError as e:
                skipped += 1
                logger.warning(f"[ICE] 버퍼된 candidate 건너뜀: {e}")
        if skipped:
            logger.info(f"[ICE] 버퍼 적용 완료: {len(pending) - skipped}개 성공, {skipped}개 실패")

    async def _apply_candidate(self, payload: CandidatePayload) -> None:
        """candidate 하나를 피어 연결에 추가합니다.

        Raises:
            IceError: 파싱 또는 addIceCandidate 실패
        """
        try:
            candidate = payload_to_candidate(payload)
            await self.pc.addIceCandidate(candidate)
        except Exception as e:
            raise IceError(f"{e} (cand={payload.candidate})") from e
        logger.debug("[ICE] candidate 적용 완료")

    # ------------------------------------------------------------
    # Stats / teardown
    # ------------------------------------------------------------

    async def get_stats(self):
        return await self.pc.getStats()

    async def close(self) -> None:
        """이벤트 핸들러를 해제하고 연결을 닫습니다. 트랙은 호출자가 해제합니다."""
        if self.closed:
            return
        self.closed = True
        for event, handler in self._listeners:
            self.pc.remove_listener(event, handler)
        self._listeners = []
        await self.pc.close()
        logger.info("[WebRTC] 피어 연결 종료")


async def _call(callback: Callable, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
