"""peercall 헤드리스 클라이언트.

룸에 입장해 상대방과 통화를 연결하고, 상태 변화/품질 샘플/오류를 로그로
출력합니다. Ctrl+C 또는 SIGTERM으로 통화를 종료합니다.

Usage:
    peercall join ROOM [--signaling-url URL] [--log-level LEVEL] [--log-file PATH]
"""

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from .errors import ErrorKind
from .logging_config import setup_logging
from .shared import QualitySample, RemoteMediaState
from .signaling import WebSocketSignalingChannel
from .webrtc import ConnectionState, SessionController, SessionObserver

logger = logging.getLogger(__name__)


class LoggingObserver(SessionObserver):
    """세션 이벤트를 로그로 출력하는 관찰자. 통화가 끝나면 `finished`가 설정됩니다."""

    def __init__(self):
        self.finished = asyncio.Event()

    def on_state_change(self, state: ConnectionState) -> None:
        logger.info(f"[App] 연결 상태: {state.value}")
        if state is ConnectionState.CLOSED:
            self.finished.set()

    def on_remote_stream(self, stream) -> None:
        if stream is None:
            logger.info("[App] 상대방이 나갔습니다")
        else:
            logger.info(f"[App] 원격 스트림: {[track.kind for track in stream.tracks]}")

    def on_quality_sample(self, sample: QualitySample) -> None:
        rtt = f"{sample.rtt_ms:.0f}ms" if sample.rtt_ms is not None else "-"
        quality = sample.quality.value if sample.quality else "-"
        resolution = f"{sample.frame_width}x{sample.frame_height}" if sample.frame_width else "-"
        logger.info(f"[App] 품질: {quality} (RTT {rtt}, {resolution})")

    def on_error(self, kind: ErrorKind, message: str) -> None:
        logger.error(f"[App] {kind.value}: {message}")

    def on_remote_media_state(self, state: RemoteMediaState) -> None:
        logger.info(
            f"[App] 상대 미디어: audio={state.audio_enabled}, video={state.video_enabled}, "
            f"screen={state.is_screen_sharing}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peercall", description="Two-party WebRTC call client")
    subparsers = parser.add_subparsers(dest="command", required=True)

    join = subparsers.add_parser("join", help="Join a room and wait for the other participant")
    join.add_argument("room", help="Room identifier")
    join.add_argument("--signaling-url", default=None, help="Signaling relay WebSocket URL")
    join.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    join.add_argument("--log-file", default=None, help="Optional rotating log file path")
    return parser


async def run_call(room_id: str, signaling_url: Optional[str] = None) -> int:
    channel = WebSocketSignalingChannel(url=signaling_url)
    observer = LoggingObserver()
    controller = SessionController(room_id, channel, observer=observer)
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("[App] 종료 신호 수신")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows ProactorEventLoop: falls back to KeyboardInterrupt
            pass

    if not await controller.start():
        await channel.close()
        return 1

    waiters = [
        asyncio.create_task(stop_event.wait()),
        asyncio.create_task(observer.finished.wait()),
    ]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()
        await controller.end_call()
        await channel.close()

    logger.info("[App] 통화 종료")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, log_file=args.log_file)

    try:
        return asyncio.run(run_call(args.room, signaling_url=args.signaling_url))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
