from __future__ import annotations

from collections import deque
import logging
import threading
import time
from typing import Callable

from filecopier.diagnostics import (
    STYLE_DEFAULT,
    STYLE_EMPHASIS,
    STYLE_ERROR,
    STYLE_KEY,
    STYLE_SLOW,
    DiagnosticSink,
    emit_line,
)
from filecopier.ignore_engine import IgnoreEngine
from filecopier.mirror_engine import execute_action
from filecopier.models import Action, ActionKind, MirrorStats


DEFAULT_SLOW_SECONDS = 5.0

ActionListener = Callable[[Action, bool], None]

_VERBS = {
    ActionKind.CREATE_DIR: ("Created folder ", "Error creating folder "),
    ActionKind.COPY_FILE: ("Copied ", "Error copying "),
    ActionKind.DELETE_FILE: ("Deleted ", "Error deleting "),
    ActionKind.DELETE_DIR: ("Deleted folder ", "Error deleting folder "),
    ActionKind.WIPE_TREE: ("Wiped ", "Error wiping "),
}


class ActionQueue:
    """Executes filesystem actions from every watcher one at a time.

    Actions run strictly in the order they were accepted by ``submit``,
    whichever watcher sent them, and never two at once.

    Wipe supersession: each action carries the wipe epoch its pair had when
    the action was planned. Accepting a ``WIPE_TREE`` with epoch ``e`` drops
    every pending action of that pair whose epoch is below ``e``, and any
    such action submitted or dequeued later is skipped as superseded. So no
    action planned before a wipe can run after it.

    An action equal to one already pending or running (same pair, kind,
    target and epoch) is not accepted twice.
    """

    def __init__(
        self,
        sink: DiagnosticSink,
        ignore: IgnoreEngine | None = None,
        slow_seconds: float = DEFAULT_SLOW_SECONDS,
        listener: ActionListener | None = None,
    ) -> None:
        self.sink = sink
        self.ignore = ignore or IgnoreEngine()
        self.slow_seconds = slow_seconds
        self.listener = listener
        self.logger = logging.getLogger("filecopier.queue")

        self._condition = threading.Condition()
        self._pending: deque[Action] = deque()
        self._keys: set[tuple] = set()
        self._active: Action | None = None
        self._wipe_epochs: dict[int, int] = {}
        self._stats: dict[int, MirrorStats] = {}
        self._next_sequence = 1
        self._completed = 0
        self._stopping = False
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        with self._condition:
            if self._thread is not None:
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._worker_loop, name="filecopier-queue", daemon=True)
            self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the worker after the running action; pending actions are discarded."""
        with self._condition:
            thread = self._thread
            self._stopping = True
            self._condition.notify_all()
        if thread is not None:
            thread.join(timeout)
        with self._condition:
            self._thread = None

    def submit(self, action: Action) -> bool:
        dropped = 0
        with self._condition:
            index = action.pair.index
            if action.epoch < self._wipe_epochs.get(index, 0):
                self._stats_for(index).superseded += 1
                return False
            if action.kind == ActionKind.WIPE_TREE:
                self._wipe_epochs[index] = action.epoch
                dropped = self._drop_superseded(index, action.epoch)
            key = action.key()
            if key in self._keys:
                return False
            action.sequence = self._next_sequence
            self._next_sequence += 1
            self._keys.add(key)
            self._pending.append(action)
            self._condition.notify_all()

        if dropped:
            emit_line(
                self.sink,
                (f"{action.pair.index} ", action.pair.color),
                (f"Dropped {dropped} queued action(s) superseded by wipe", STYLE_DEFAULT),
            )
        return True

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: not self._pending and self._active is None, timeout)

    @property
    def completed(self) -> int:
        with self._condition:
            return self._completed

    @property
    def pending_count(self) -> int:
        with self._condition:
            return len(self._pending)

    def stats(self, index: int) -> MirrorStats:
        with self._condition:
            current = self._stats.get(index, MirrorStats())
            snapshot = MirrorStats()
            snapshot.absorb(current)
            return snapshot

    def total_stats(self) -> MirrorStats:
        total = MirrorStats()
        with self._condition:
            for stats in self._stats.values():
                total.absorb(stats)
        return total

    def _stats_for(self, index: int) -> MirrorStats:
        stats = self._stats.get(index)
        if stats is None:
            stats = MirrorStats()
            self._stats[index] = stats
        return stats

    def _drop_superseded(self, index: int, epoch: int) -> int:
        kept: deque[Action] = deque()
        dropped = 0
        for pending in self._pending:
            if pending.pair.index == index and pending.epoch < epoch:
                self._keys.discard(pending.key())
                dropped += 1
                continue
            kept.append(pending)
        self._pending = kept
        self._stats_for(index).superseded += dropped
        return dropped

    def _worker_loop(self) -> None:
        while True:
            with self._condition:
                while not self._pending and not self._stopping:
                    self._condition.wait()
                if self._stopping:
                    return
                action = self._pending.popleft()
                self._active = action
                stale = action.epoch < self._wipe_epochs.get(action.pair.index, 0)

            try:
                if stale:
                    with self._condition:
                        self._stats_for(action.pair.index).superseded += 1
                else:
                    ok = self._run(action)
                    self._notify_listener(action, ok)
            finally:
                with self._condition:
                    self._keys.discard(action.key())
                    self._active = None
                    self._completed += 1
                    self._condition.notify_all()

    def _run(self, action: Action) -> bool:
        done_verb, error_verb = _VERBS[action.kind]
        shown = str(action.target) if action.kind == ActionKind.WIPE_TREE else action.relative.as_posix()
        tag = (f"{action.pair.index} ", action.pair.color)

        started = time.monotonic()
        try:
            execute_action(action, self.ignore)
        except Exception as exc:
            with self._condition:
                self._stats_for(action.pair.index).failed += 1
            emit_line(self.sink, tag, (error_verb, STYLE_DEFAULT), (f"{action.target}: {exc}", STYLE_ERROR))
            return False
        elapsed = time.monotonic() - started

        with self._condition:
            stats = self._stats_for(action.pair.index)
            if action.kind == ActionKind.COPY_FILE:
                stats.copied += 1
            elif action.kind == ActionKind.CREATE_DIR:
                stats.created += 1
            elif action.kind in (ActionKind.DELETE_FILE, ActionKind.DELETE_DIR):
                stats.deleted += 1

        segments = [tag, (done_verb, STYLE_DEFAULT)]
        segments.append((shown, STYLE_KEY if action.kind == ActionKind.WIPE_TREE else STYLE_EMPHASIS))
        if elapsed >= self.slow_seconds:
            segments.append((f" (slow: {elapsed:.1f}s)", STYLE_SLOW))
        emit_line(self.sink, *segments)
        return True

    def _notify_listener(self, action: Action, ok: bool) -> None:
        if self.listener is None:
            return
        try:
            self.listener(action, ok)
        except Exception:
            self.logger.exception("Action listener failed for %s", action.target)
