"""
===========================================
로깅 설정 모듈
===========================================

CLI(`peercall join`) 실행 시 루트 로거를 구성합니다.

- 콘솔: stderr로 출력
- 파일: LOG_FILE_PATH가 있으면 10MB 단위 로테이션
- 외부 라이브러리: aioice/aiortc의 연결 검사 로그는 기본적으로 억제,
  LOG_WEBRTC_TRACE=1이면 DEBUG 그대로 출력

통화 중 디버그 콘솔용 로그는 SessionController가 `peercall` 로거에
DebugLogHandler를 붙여 따로 수집하므로 여기서는 다루지 않습니다.

사용 예시:
    from peercall.logging_config import setup_logging

    setup_logging("DEBUG", "logs/peercall.log")
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-25s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# 로거 이름 -> 최소 레벨
NOISY_LOGGERS: Dict[str, int] = {
    "aioice": logging.WARNING,
    "aiortc": logging.WARNING,
    "websockets": logging.WARNING,
    "libav": logging.ERROR,
}

# setup_logging이 설치한 핸들러 표시
_MANAGED_ATTR = "_peercall_managed"


def resolve_level(level: Optional[str]) -> int:
    """레벨 이름을 logging 상수로 변환합니다. 알 수 없는 이름은 INFO."""
    if not level:
        return logging.INFO
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _managed(handler: logging.Handler, formatter: logging.Formatter, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _MANAGED_ATTR, True)
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None
) -> int:
    """
    루트 로거에 콘솔/파일 핸들러를 설치합니다.

    다시 호출하면 이전에 설치한 핸들러만 교체하고, 다른 코드가 붙인
    핸들러(pytest 캡처 등)는 그대로 둡니다.

    Args:
        level: 로그 레벨 이름 (기본: 환경변수 LOG_LEVEL 또는 INFO)
        log_file: 로그 파일 경로 (기본: 환경변수 LOG_FILE_PATH, 없으면 콘솔만)

    Returns:
        int: 적용된 로그 레벨
    """
    log_level = resolve_level(level or os.getenv("LOG_LEVEL"))
    log_file = log_file or os.getenv("LOG_FILE_PATH")
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in [h for h in root_logger.handlers if getattr(h, _MANAGED_ATTR, False)]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.addHandler(_managed(logging.StreamHandler(sys.stderr), formatter, log_level))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding='utf-8'
        )
        root_logger.addHandler(_managed(file_handler, formatter, log_level))

    trace_webrtc = os.getenv("LOG_WEBRTC_TRACE") == "1"
    for name, minimum in NOISY_LOGGERS.items():
        if trace_webrtc and name in ("aioice", "aiortc"):
            logging.getLogger(name).setLevel(logging.NOTSET)
        else:
            logging.getLogger(name).setLevel(max(minimum, log_level))

    logging.getLogger(__name__).info(
        f"[Logging] 로깅 설정 완료: level={logging.getLevelName(log_level)}, file={log_file or 'None'}"
    )
    return log_level
