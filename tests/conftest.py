from __future__ import annotations

import threading

import pytest

from filecopier.diagnostics import LineSink, Segment


class RecordingSink(LineSink):
    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self.lines: list[list[Segment]] = []

    def write_line(self, segments: list[Segment]) -> None:
        with self._lock:
            self.lines.append(segments)

    def texts(self) -> list[str]:
        with self._lock:
            return ["".join(part for part, _ in line) for line in self.lines]

    def styled(self, style: str) -> list[str]:
        with self._lock:
            return [
                "".join(part for part, _ in line)
                for line in self.lines
                if any(segment_style == style for _, segment_style in line)
            ]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
