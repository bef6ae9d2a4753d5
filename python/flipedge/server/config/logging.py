"""Logging configuration for the FlipEdge worker."""

import sys
import threading
from collections import deque
from typing import Deque, List, Optional

from loguru import logger

from flipedge.agents.trading_agent.models import LogEntry

from .settings import Settings, get_settings

SYSTEM_LOG_SOURCE = "SYSTEM"
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[agent_id]: <6} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class LogBuffer:
    """Loguru sink keeping the most recent entries in memory, newest first."""

    def __init__(self, maxlen: int = 50):
        self._entries: Deque[LogEntry] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def write(self, message) -> None:
        record = message.record
        entry = LogEntry(
            timestamp=record["time"],
            agent_id=str(record["extra"].get("agent_id", SYSTEM_LOG_SOURCE)),
            message=record["message"],
        )
        with self._lock:
            self._entries.appendleft(entry)

    def entries(self) -> List[LogEntry]:
        with self._lock:
            return list(self._entries)

    def resize(self, maxlen: int) -> None:
        with self._lock:
            # entries are newest first; keep the head
            self._entries = deque(list(self._entries)[:maxlen], maxlen=maxlen)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_log_buffer = LogBuffer()


def get_log_buffer() -> LogBuffer:
    return _log_buffer


def setup_logging(settings: Optional[Settings] = None) -> LogBuffer:
    """Replace loguru's default sink with console, rotating file and buffer sinks."""
    settings = settings or get_settings()

    logger.remove()
    logger.configure(extra={"agent_id": SYSTEM_LOG_SOURCE})
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        settings.LOGS_DIR / "flipedge.log",
        level=settings.LOG_LEVEL,
        rotation="10 MB",
        retention=5,
        enqueue=True,
    )

    _log_buffer.resize(settings.LOG_BUFFER_SIZE)
    logger.add(_log_buffer.write, level="INFO", format="{message}")
    return _log_buffer
