from __future__ import annotations

from collections import deque
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
import threading
from typing import Protocol


STYLE_DEFAULT = "_DEFAULT"
STYLE_EMPHASIS = "white"
STYLE_KEY = "key"
STYLE_ERROR = "error"
STYLE_SLOW = "slow"

PAIR_COLORS = ("magenta", "cyan", "yellow")

Segment = tuple[str, str]


def pair_color(index: int) -> str:
    return f"c{index % len(PAIR_COLORS)}"


class DiagnosticSink(Protocol):
    def emit(self, text: str, style: str = STYLE_DEFAULT) -> None:
        ...


def emit_line(sink: DiagnosticSink, *segments: Segment) -> None:
    for text, style in segments:
        sink.emit(text, style)
    sink.emit("\n")


def emit_error(sink: DiagnosticSink, start: str, text: str) -> None:
    emit_line(sink, (start, STYLE_DEFAULT), (text, STYLE_ERROR))


class LineSink:
    """Collects emitted fragments per thread and hands over whole lines.

    Fragments from one thread are never mixed with another thread's, so a
    line written with several ``emit`` calls stays intact even when the
    queue worker and several watchers write at the same time.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def emit(self, text: str, style: str = STYLE_DEFAULT) -> None:
        pending = self._pending()
        parts = text.split("\n")
        for position, part in enumerate(parts):
            if part:
                pending.append((part, style))
            if position < len(parts) - 1:
                segments = list(pending)
                pending.clear()
                self.write_line(segments)

    def write_line(self, segments: list[Segment]) -> None:
        raise NotImplementedError

    def _pending(self) -> list[Segment]:
        pending = getattr(self._local, "segments", None)
        if pending is None:
            pending = []
            self._local.segments = pending
        return pending


def _level_for(segments: list[Segment]) -> int:
    styles = {style for _, style in segments}
    if STYLE_ERROR in styles:
        return logging.ERROR
    if STYLE_SLOW in styles:
        return logging.WARNING
    return logging.INFO


class LoggingSink(LineSink):
    def __init__(self, logger: logging.Logger | None = None) -> None:
        super().__init__()
        self.logger = logger or logging.getLogger("filecopier")

    def write_line(self, segments: list[Segment]) -> None:
        text = "".join(part for part, _ in segments)
        self.logger.log(_level_for(segments), "%s", text, extra={"segments": segments})


class StyledMemoryHandler(logging.Handler):
    def __init__(self, max_lines: int = 500) -> None:
        super().__init__()
        self._lines: deque[list[Segment]] = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self._version = 0

    def emit(self, record: logging.LogRecord) -> None:
        segments = getattr(record, "segments", None)
        if segments is None:
            style = STYLE_ERROR if record.levelno >= logging.ERROR else STYLE_DEFAULT
            segments = [(record.getMessage(), style)]
        with self._lock:
            self._lines.append(list(segments))
            self._version += 1

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def read_lines(self) -> list[list[Segment]]:
        with self._lock:
            return [list(line) for line in self._lines]


class Ansi:
    RESET = "\x1b[0m"
    LIGHT_GRAY = "\x1b[37m"
    WHITE = "\x1b[97m"
    GREEN = "\x1b[32m"
    RED = "\x1b[31m"
    DARK_RED = "\x1b[38;5;88m"
    MAGENTA = "\x1b[35m"
    CYAN = "\x1b[36m"
    YELLOW = "\x1b[33m"


STYLE_COLORS = {
    STYLE_DEFAULT: Ansi.LIGHT_GRAY,
    STYLE_EMPHASIS: Ansi.WHITE,
    STYLE_KEY: Ansi.GREEN,
    STYLE_ERROR: Ansi.RED,
    STYLE_SLOW: Ansi.DARK_RED,
    "c0": Ansi.MAGENTA,
    "c1": Ansi.CYAN,
    "c2": Ansi.YELLOW,
}


def _supports_color(stream) -> bool:
    try:
        return hasattr(stream, "isatty") and stream.isatty()
    except Exception:
        return False


class ColorizingFormatter(logging.Formatter):
    def __init__(self, use_color: bool, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        segments = getattr(record, "segments", None)
        if not self.use_color or not segments:
            return base

        message = record.getMessage()
        colored = "".join(
            f"{STYLE_COLORS.get(style, '')}{text}{Ansi.RESET}" for text, style in segments
        )
        return base.replace(message, colored, 1)


def configure_logging(
    log_file: Path | None = None,
    console: bool = True,
    level: int = logging.INFO,
) -> logging.Logger:
    logger = logging.getLogger("filecopier")
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fmt = "%(asctime)s %(levelname)s %(message)s"

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(ColorizingFormatter(use_color=_supports_color(sys.stdout), fmt=fmt))
        logger.addHandler(console_handler)

    return logger
