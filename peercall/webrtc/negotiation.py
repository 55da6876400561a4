"""offer/answer 협상 조정 모듈.

누가 offer를 보낼지 결정하고, offer/answer/candidate 교환 순서를 관리하며,
동시에 들어오는 재협상 요청을 직렬화합니다.

Role Assignment:
    - 상대방 입장(user-joined)을 관찰한 쪽(먼저 들어와 있던 쪽)이 caller
    - caller는 OFFER_DELAY(약 1초) 후 offer 생성
    - 양쪽이 동시에 offer를 보낸 경우(glare) 역할로 결정: caller 쪽은 상대 offer를
      무시하고, answeree 쪽은 자기 offer를 철회 후 answer
    - 양쪽 역할이 같거나(빠른 재입장으로 둘 다 caller 등) 알 수 없을 때만
      decide_role()의 연결 ID 비교로 결정

Collision Policy:
    - 로컬 offer가 미해결(answer 미수신)인 동안의 재협상 요청은 큐에 보관
    - 미해결 교환이 끝나면 큐의 요청을 한 번 재시도 (ICE restart 플래그는 병합)

Note:
    이 클래스의 메서드는 SessionController의 이벤트 워커에서만 호출됩니다.
    (이벤트 간 인터리빙 없음)
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..signaling import Answer, IceCandidateMessage, Offer, SignalingChannel
from .config import connection_config
from .transport import TransportSession

logger = logging.getLogger(__name__)


class CallRole(str, Enum):
    CALLER = "caller"
    ANSWEREE = "answeree"
    UNDETERMINED = "undetermined"


def decide_role(local_id: Optional[str], remote_id: Optional[str]) -> CallRole:
    """연결 ID 비교로 offer 우선권을 결정합니다.

    사전순으로 작은 ID가 caller입니다. ID가 없거나 같으면 결정할 수 없습니다.

    Examples:
        >>> decide_role("a1", "b2")
        <CallRole.CALLER: 'caller'>
        >>> decide_role("b2", "a1")
        <CallRole.ANSWEREE: 'answeree'>
        >>> decide_role("a1", None)
        <CallRole.UNDETERMINED: 'undetermined'>
    """
    if not local_id or not remote_id or local_id == remote_id:
        return CallRole.UNDETERMINED
    return CallRole.CALLER if local_id < remote_id else CallRole.ANSWEREE


class NegotiationCoordinator:
    """offer/answer 교환을 조정하는 클래스.

    Attributes:
        room_id (str): 룸 ID
        role (CallRole): 현재 통화 역할
        remote_peer_id (Optional[str]): 상대방 연결 ID
        offer_outstanding (bool): 보낸 offer의 answer를 기다리는 중인지 여부
        renegotiation_queued (bool): 미해결 offer 때문에 대기 중인 재협상 요청 여부
        on_offer_due: offer 지연 타이머 만료 시 호출되는 콜백.
            컨트롤러가 이벤트 큐로 다시 넣어 offer_due()를 호출합니다.

    Examples:
        >>> coordinator = NegotiationCoordinator("room-1", channel, transport)
        >>> coordinator.handle_peer_joined("peer-456")   # caller가 되어 타이머 시작
        >>> await coordinator.offer_due()                # offer 전송
        >>> await coordinator.handle_answer(answer)      # 협상 완료
    """

    def __init__(
        self,
        room_id: str,
        channel: SignalingChannel,
        transport: TransportSession,
        offer_delay: Optional[float] = None,
        on_offer_due: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.room_id = room_id
        self.channel = channel
        self.transport = transport
        self.offer_delay = offer_delay if offer_delay is not None else connection_config.OFFER_DELAY
        self.on_offer_due = on_offer_due or self.offer_due

        self.role = CallRole.UNDETERMINED
        self.remote_peer_id: Optional[str] = None
        self.offer_outstanding = False
        self.renegotiation_queued = False
        self._queued_ice_restart = False
        self._offer_timer: Optional[asyncio.Task] = None

    @property
    def offer_pending(self) -> bool:
        return self._offer_timer is not None and not self._offer_timer.done()

    # ------------------------------------------------------------
    # Room membership
    # ------------------------------------------------------------

    def handle_peer_joined(self, peer_id: str) -> None:
        """상대 입장 알림 처리. 이 쪽이 caller가 되어 지연 offer를 예약합니다."""
        if not peer_id or peer_id == self.channel.connection_id:
            logger.debug(f"[Negotiation] 자기 자신의 입장 알림 무시: {peer_id}")
            return
        if self.offer_pending and peer_id == self.remote_peer_id:
            logger.info(f"[Negotiation] 중복 입장 알림 무시 (offer 대기 중): {peer_id}")
            return

        self.remote_peer_id = peer_id
        self.role = CallRole.CALLER
        logger.info(f"[Negotiation] 상대 입장: {peer_id} - caller로 {self.offer_delay}s 후 offer 생성")
        self._cancel_offer_timer()
        self._offer_timer = asyncio.create_task(self._offer_after_delay())

    def handle_peer_left(self, peer_id: Optional[str]) -> None:
        if peer_id and self.remote_peer_id and peer_id != self.remote_peer_id:
            logger.debug(f"[Negotiation] 알 수 없는 피어 퇴장 무시: {peer_id}")
            return
        logger.info(f"[Negotiation] 상대 퇴장: {peer_id}")
        self._cancel_offer_timer()
        self.remote_peer_id = None
        self.role = CallRole.UNDETERMINED
        self.offer_outstanding = False
        self.renegotiation_queued = False
        self._queued_ice_restart = False

    async def _offer_after_delay(self) -> None:
        await asyncio.sleep(self.offer_delay)
        await self.on_offer_due()

    async def offer_due(self) -> None:
        """지연 타이머 만료 후 초기 offer를 보냅니다."""
        self._offer_timer = None
        if self.role is not CallRole.CALLER:
            logger.info("[Negotiation] caller가 아니므로 초기 offer 생략")
            return
        if self.transport.has_remote_description:
            logger.info("[Negotiation] 이미 협상됨 - 초기 offer 생략")
            return
        logger.info("[Negotiation] caller로 통화 시작...")
        await self.send_offer()

    # ------------------------------------------------------------
    # Offer / answer
    # ------------------------------------------------------------

    async def request_renegotiation(self, reason: str, ice_restart: bool = False) -> None:
        logger.info(f"[Negotiation] 재협상 요청: {reason} (ice_restart={ice_restart})")
        await self.send_offer(ice_restart=ice_restart)

    async def send_offer(self, ice_restart: bool = False) -> None:
        """offer를 만들어 전송합니다. 미해결 offer가 있으면 큐에 보관합니다.

        Raises:
            NegotiationError: offer 생성 실패
            SignalingError: 전송 실패
        """
        if self.offer_outstanding:
            self.renegotiation_queued = True
            self._queued_ice_restart = self._queued_ice_restart or ice_restart
            logger.info("[Negotiation] 미해결 offer 존재 - 재협상 요청 대기열에 추가")
            return

        description = await self.transport.create_offer(ice_restart=ice_restart)
        self.offer_outstanding = True
        await self.channel.send(self.room_id, Offer(sdp=description.sdp, role=self.role.value))
        logger.info("[Negotiation] offer 전송 완료")

    async def handle_offer(self, message: Offer) -> None:
        """원격 offer 처리: remote description 적용 → candidate 적용 → answer 전송."""
        remote_id = message.user_id or self.remote_peer_id
        logger.info(f"[Negotiation] offer 수신: {remote_id}")

        if self.offer_outstanding:
            role = self.glare_role(remote_id, message.role)
            if role is CallRole.CALLER:
                logger.info(f"[Negotiation] glare: 로컬 offer 우선 ({self.role.value}) - 원격 offer 무시")
                self.role = CallRole.CALLER
                return
            logger.info(f"[Negotiation] glare: 원격 offer 우선 ({message.role}) - 로컬 offer 철회")
            await self.transport.rollback()
            self.offer_outstanding = False
            self.role = CallRole.ANSWEREE

        if self.offer_pending:
            logger.info("[Negotiation] 상대가 먼저 offer - 예약된 offer 취소")
            self._cancel_offer_timer()
        # 초기 협상에서 offer를 받은 쪽은 answeree (재협상 offer는 역할 유지)
        if not self.transport.has_remote_description or self.role is CallRole.UNDETERMINED:
            self.role = CallRole.ANSWEREE

        if remote_id:
            self.remote_peer_id = remote_id

        await self.transport.apply_remote_description(message.sdp, "offer")
        answer = await self.transport.create_answer()
        await self.channel.send(self.room_id, Answer(sdp=answer.sdp))
        logger.info("[Negotiation] answer 전송 완료")
        await self._flush_queued()

    def glare_role(self, remote_id: Optional[str], remote_role: Optional[str]) -> CallRole:
        """동시 offer 충돌 시 이 쪽의 역할을 결정합니다.

        caller 역할이 항상 이깁니다. 양쪽 역할이 같거나 이 쪽 역할을 알 수
        없을 때만 연결 ID를 비교하고, 그래도 결정할 수 없으면 양보합니다.

        Returns:
            CallRole: CALLER면 로컬 offer 유지, ANSWEREE면 로컬 offer 철회
        """
        local_role = self.role
        if local_role is not CallRole.UNDETERMINED and remote_role != local_role.value:
            return local_role
        if local_role is CallRole.UNDETERMINED and remote_role in (CallRole.CALLER.value, CallRole.ANSWEREE.value):
            return CallRole.ANSWEREE if remote_role == CallRole.CALLER.value else CallRole.CALLER

        role = decide_role(self.channel.connection_id, remote_id)
        return CallRole.ANSWEREE if role is CallRole.UNDETERMINED else role

    async def handle_answer(self, message: Answer) -> None:
        if not self.offer_outstanding:
            logger.warning("[Negotiation] 미해결 offer 없이 answer 수신 - 무시")
            return
        try:
            await self.transport.apply_remote_description(message.sdp, "answer")
        finally:
            self.offer_outstanding = False
        logger.info("[Negotiation] answer 적용 완료 - 협상 완료")
        await self._flush_queued()

    async def handle_candidate(self, message: IceCandidateMessage) -> None:
        await self.transport.add_remote_candidate(message.candidate)

    async def _flush_queued(self) -> None:
        if not self.renegotiation_queued:
            return
        ice_restart = self._queued_ice_restart
        self.renegotiation_queued = False
        self._queued_ice_restart = False
        logger.info("[Negotiation] 대기 중이던 재협상 실행")
        await self.send_offer(ice_restart=ice_restart)

    # ------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------

    def _cancel_offer_timer(self) -> None:
        timer, self._offer_timer = self._offer_timer, None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    def cancel(self) -> None:
        """예약된 offer 타이머를 취소합니다."""
        self._cancel_offer_timer()
