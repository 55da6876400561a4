"""세션 연결 상태 머신.

`transition(state, event) -> Transition(state, effects)` 순수 함수로
연결 상태 전이와 그에 따른 부수효과 목록을 계산합니다. 실제 부수효과
실행은 SessionController가 담당하므로 실제 전송 없이도 결정적으로
테스트할 수 있습니다.

States:
    new → connecting → connected → (disconnected ↔ connected) → failed | closed

Rules:
    - 상태 전이는 전송 계층의 connectionState가 결정 (closed만 컨트롤러가 강제)
    - connected 진입마다 에러 해제, 상대방 정보 표시, 통계 샘플링 시작
    - connected 이탈 시 통계 샘플링 중지
    - ICE failed는 실패 에피소드당 한 번만 ICE restart 발행
      (에피소드는 ICE가 다시 connected/completed가 되면 종료)
    - closed는 종단 상태: 이후 모든 이벤트는 무시
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Tuple, Union


class ConnectionState(str, Enum):
    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"


class Effect(str, Enum):
    CLEAR_ERROR = "clear_error"
    SHOW_REMOTE_IDENTITY = "show_remote_identity"
    START_SAMPLER = "start_sampler"
    STOP_SAMPLER = "stop_sampler"
    RESTART_ICE = "restart_ice"
    REPORT_FAILURE = "report_failure"
    RELEASE_RESOURCES = "release_resources"


@dataclass(frozen=True)
class SessionState:
    connection: ConnectionState = ConnectionState.NEW
    # True while an ICE failure episode already got its restart
    ice_restart_issued: bool = False


@dataclass(frozen=True)
class TransportStateChanged:
    """RTCPeerConnection.connectionState 변경."""

    state: str


@dataclass(frozen=True)
class IceStateChanged:
    """RTCPeerConnection.iceConnectionState 변경."""

    state: str


@dataclass(frozen=True)
class NegotiationFailed:
    """SDP 생성/적용 실패. 에러 보고는 컨트롤러가 직접 수행합니다."""

    reason: str = ""


@dataclass(frozen=True)
class CloseRequested:
    """통화 종료 요청 (컨트롤러가 강제하는 유일한 전이)."""


StateEvent = Union[TransportStateChanged, IceStateChanged, NegotiationFailed, CloseRequested]


@dataclass(frozen=True)
class Transition:
    state: SessionState
    effects: Tuple[Effect, ...] = ()


_TRANSPORT_STATES = {
    "connecting": ConnectionState.CONNECTING,
    "connected": ConnectionState.CONNECTED,
    "disconnected": ConnectionState.DISCONNECTED,
    "failed": ConnectionState.FAILED,
    "closed": ConnectionState.CLOSED,
}

_ICE_RECOVERED = ("connected", "completed")


def transition(state: SessionState, event: StateEvent) -> Transition:
    """현재 상태와 이벤트로 다음 상태와 부수효과를 계산합니다.

    Args:
        state: 현재 세션 상태
        event: 발생한 이벤트

    Returns:
        Transition: 다음 상태와 실행할 부수효과 (순서대로 실행)

    Examples:
        >>> result = transition(SessionState(), TransportStateChanged("connected"))
        >>> result.state.connection
        <ConnectionState.CONNECTED: 'connected'>
        >>> Effect.START_SAMPLER in result.effects
        True
    """
    if state.connection is ConnectionState.CLOSED:
        return Transition(state)

    if isinstance(event, CloseRequested):
        return Transition(
            replace(state, connection=ConnectionState.CLOSED),
            (Effect.STOP_SAMPLER, Effect.RELEASE_RESOURCES),
        )

    if isinstance(event, IceStateChanged):
        if event.state == "failed":
            if state.ice_restart_issued:
                return Transition(state)
            return Transition(replace(state, ice_restart_issued=True), (Effect.RESTART_ICE,))
        if event.state in _ICE_RECOVERED and state.ice_restart_issued:
            return Transition(replace(state, ice_restart_issued=False))
        return Transition(state)

    if isinstance(event, NegotiationFailed):
        return _enter(state, ConnectionState.FAILED, report=False)

    if isinstance(event, TransportStateChanged):
        target = _TRANSPORT_STATES.get(event.state)
        if target is None:
            return Transition(state)
        return _enter(state, target)

    return Transition(state)


def _enter(state: SessionState, target: ConnectionState, report: bool = True) -> Transition:
    if target is state.connection:
        return Transition(state)

    effects = []
    if state.connection is ConnectionState.CONNECTED:
        effects.append(Effect.STOP_SAMPLER)

    if target is ConnectionState.CONNECTED:
        effects.extend([Effect.CLEAR_ERROR, Effect.SHOW_REMOTE_IDENTITY, Effect.START_SAMPLER])
    elif target is ConnectionState.FAILED and report:
        effects.append(Effect.REPORT_FAILURE)
    elif target is ConnectionState.CLOSED:
        effects.append(Effect.RELEASE_RESOURCES)

    return Transition(replace(state, connection=target), tuple(effects))
