from __future__ import annotations

import os
import threading

from filecopier.action_queue import ActionListener, ActionQueue
from filecopier.config import AppConfig, PairConfig
from filecopier.diagnostics import (
    STYLE_DEFAULT,
    STYLE_EMPHASIS,
    STYLE_ERROR,
    DiagnosticSink,
    emit_error,
    emit_line,
    pair_color,
)
from filecopier.ignore_engine import build_ignore_engine
from filecopier.mirror_engine import validate_mapping
from filecopier.models import MirrorPair, MirrorStats
from filecopier.watcher import WatchOptions, Watcher


APP_VERSION = "1.0"

EXIT_SUCCESS = 0
EXIT_RUNTIME_OR_CONFIG_ERROR = 1
EXIT_PARTIAL_FAILURES = 2
EXIT_INVALID_CONFIG = 3


def validate_pair(pair_cfg: PairConfig) -> tuple[str, str] | None:
    """Return ``(message, path)`` describing why a pair cannot be mirrored, or None."""
    source, target = pair_cfg.source, pair_cfg.target
    if not source.exists():
        return "Source folder not found: ", str(source)
    if not source.is_dir():
        return "Source is not a folder: ", str(source)
    if not target.exists():
        return "Target folder not found: ", str(target)
    if not target.is_dir():
        return "Target is not a folder: ", str(target)
    if not os.access(target, os.W_OK):
        return "Target is not writable: ", str(target)
    try:
        validate_mapping(source, target)
    except ValueError as exc:
        return "Invalid pair: ", str(exc)
    return None


class MirrorCoordinator:
    """Owns the shared action queue and one watcher per valid pair."""

    def __init__(
        self,
        config: AppConfig,
        sink: DiagnosticSink,
        listener: ActionListener | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.ignore = build_ignore_engine(config.skip_folders, config.additional_excludes)
        self.queue = ActionQueue(
            sink,
            ignore=self.ignore,
            slow_seconds=config.slow_action_seconds,
            listener=listener,
        )
        self.options = WatchOptions(
            scan_interval=config.scan_interval_seconds,
            compare_by=config.compare_by,
            mtime_tolerance=config.mtime_tolerance_seconds,
            use_notifications=config.use_notifications,
        )
        self._startup_lock = threading.Lock() if config.serialize_startup_scans else None
        self.watchers: list[Watcher] = []
        self.rejected: list[PairConfig] = []

        emit_line(sink, ("FileCopier ", STYLE_DEFAULT), (APP_VERSION, STYLE_EMPHASIS))
        self._build_watchers()

    @property
    def has_problems(self) -> bool:
        return bool(self.config.problems or self.rejected)

    def _build_watchers(self) -> None:
        for problem in self.config.problems:
            emit_line(self.sink, (problem, STYLE_ERROR))

        for pair_cfg in self.config.pairs:
            problem = validate_pair(pair_cfg)
            if problem is not None:
                emit_error(self.sink, *problem)
                self.rejected.append(pair_cfg)
                continue
            pair = MirrorPair(
                source=pair_cfg.source,
                target=pair_cfg.target,
                color=pair_color(pair_cfg.index),
                index=pair_cfg.index,
            )
            self.watchers.append(
                Watcher(
                    pair,
                    self.queue,
                    self.sink,
                    ignore=self.ignore,
                    options=self.options,
                    startup_lock=self._startup_lock,
                )
            )

    def get_watcher(self, index: int) -> Watcher:
        for watcher in self.watchers:
            if watcher.pair.index == index:
                return watcher
        raise ValueError(f"No running pair with index {index}")

    def start(self) -> None:
        self.queue.start()
        for watcher in self.watchers:
            watcher.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        for watcher in self.watchers:
            watcher.stop(timeout)
        self.queue.stop(timeout)

    def wipe(self, index: int) -> None:
        self.get_watcher(index).wipe()

    def run_once(self, timeout: float | None = None) -> MirrorStats:
        """Scan every pair once and wait for the queue to drain."""
        self.queue.start()
        for watcher in self.watchers:
            watcher.scan_once()
        self.queue.wait_idle(timeout)
        return self.queue.total_stats()

    def wipe_once(self, index: int, timeout: float | None = None) -> MirrorStats:
        watcher = self.get_watcher(index)
        self.queue.start()
        watcher.wipe()
        watcher.scan_once()
        self.queue.wait_idle(timeout)
        return self.queue.stats(index)
