from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import threading

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from filecopier.action_queue import ActionQueue
from filecopier.diagnostics import STYLE_DEFAULT, STYLE_ERROR, STYLE_KEY, DiagnosticSink, emit_line
from filecopier.ignore_engine import IgnoreEngine
from filecopier.mirror_engine import plan_actions, scan_tree, wipe_action
from filecopier.models import Action, MirrorPair, ScanResult


DEFAULT_SCAN_INTERVAL = 2.0
DEFAULT_SETTLE_SECONDS = 0.5

# Events caused by merely reading a file, including our own copies.
_READ_ONLY_EVENTS = {"opened", "closed_no_write"}


@dataclass(slots=True)
class WatchOptions:
    scan_interval: float = DEFAULT_SCAN_INTERVAL
    compare_by: str = "mtime+size"
    use_notifications: bool = True
    settle_seconds: float = DEFAULT_SETTLE_SECONDS
    mtime_tolerance: float = 0.0


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: "Watcher") -> None:
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _READ_ONLY_EVENTS:
            return
        if self.watcher.is_relevant(Path(os.fsdecode(event.src_path))):
            self.watcher.notify_change()


class Watcher:
    """Keeps the target folder of one pair a mirror of its source folder.

    Each cycle walks both trees, plans the difference and hands the actions
    to the shared queue without waiting for them. Cycles repeat every
    ``scan_interval`` seconds, or sooner when a change notification arrives.
    """

    def __init__(
        self,
        pair: MirrorPair,
        queue: ActionQueue,
        sink: DiagnosticSink,
        ignore: IgnoreEngine | None = None,
        options: WatchOptions | None = None,
        startup_lock: threading.Lock | None = None,
    ) -> None:
        self.pair = pair
        self.queue = queue
        self.sink = sink
        self.ignore = ignore or IgnoreEngine()
        self.options = options or WatchOptions()

        self._startup_lock = startup_lock
        self._lock = threading.Lock()
        self._epoch = 0
        self._wipe_pending = False
        self._wake_event = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._observer: Observer | None = None
        self._reported_reserved: set[Path] = set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name=f"filecopier-watch-{self.pair.index}", daemon=True
        )
        self._thread.start()
        if self.options.use_notifications:
            self._start_observer()

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout)
            self._observer = None
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def notify_change(self) -> None:
        self._wake_event.set()

    def is_relevant(self, path: Path) -> bool:
        try:
            relative = path.relative_to(self.pair.source)
        except ValueError:
            return False
        return not any(self.ignore.is_skipped_folder(part) for part in relative.parts)

    def wipe(self) -> None:
        """Clear the target and copy the whole source again.

        Only enqueues work: the wipe goes to the queue at once and the
        full re-copy is planned by the next cycle of this watcher.
        """
        emit_line(self.sink, self._tag(), ("Wipe and re-copy requested", STYLE_KEY))
        with self._lock:
            self._epoch += 1
            self._wipe_pending = True
            # Submitted under the lock so no cycle can plan with the new
            # epoch before the wipe itself is queued.
            self.queue.submit(wipe_action(self.pair, self._epoch))
        self._wake_event.set()

    def scan_once(self) -> list[Action]:
        with self._lock:
            epoch = self._epoch
            full_copy = self._wipe_pending
            self._wipe_pending = False

        source = scan_tree(
            self.pair.source,
            self.ignore,
            on_error=self._report_scan_error,
            follow_links=True,
            on_reserved=self._report_reserved_name,
        )
        if full_copy:
            target = ScanResult()
        else:
            target = scan_tree(self.pair.target, self.ignore, on_error=self._report_scan_error)

        actions = plan_actions(
            self.pair,
            source,
            target,
            compare_by=self.options.compare_by,
            epoch=epoch,
            mtime_tolerance=self.options.mtime_tolerance,
        )
        submitted = [action for action in actions if self.queue.submit(action)]
        if submitted:
            emit_line(self.sink, self._tag(), (f"Queued {len(submitted)} action(s)", STYLE_DEFAULT))
        return submitted

    def _run_loop(self) -> None:
        emit_line(
            self.sink,
            self._tag(),
            ("Watching ", STYLE_DEFAULT),
            (str(self.pair.source), STYLE_KEY),
            (" => ", STYLE_DEFAULT),
            (str(self.pair.target), STYLE_KEY),
        )
        first_cycle = True
        while not self._stop_event.is_set():
            try:
                if first_cycle and self._startup_lock is not None:
                    with self._startup_lock:
                        self.scan_once()
                else:
                    self.scan_once()
            except Exception as exc:
                emit_line(self.sink, self._tag(), ("Scan failed: ", STYLE_DEFAULT), (str(exc), STYLE_ERROR))
            first_cycle = False

            woke = self._wake_event.wait(self.options.scan_interval)
            if woke and not self._stop_event.is_set():
                # Let a burst of changes settle before walking the tree again.
                self._stop_event.wait(self.options.settle_seconds)
            self._wake_event.clear()

    def _start_observer(self) -> None:
        observer = Observer()
        try:
            observer.schedule(_ChangeHandler(self), str(self.pair.source), recursive=True)
            observer.start()
        except OSError as exc:
            emit_line(
                self.sink,
                self._tag(),
                (f"Change notifications unavailable, polling every {self.options.scan_interval:g}s: ", STYLE_DEFAULT),
                (str(exc), STYLE_ERROR),
            )
            return
        self._observer = observer

    def _report_scan_error(self, path: Path, exc: OSError) -> None:
        emit_line(
            self.sink,
            self._tag(),
            ("Unable to read ", STYLE_DEFAULT),
            (f"{path}: {exc.strerror or exc}", STYLE_ERROR),
        )

    def _report_reserved_name(self, path: Path) -> None:
        if path in self._reported_reserved:
            return
        self._reported_reserved.add(path)
        emit_line(
            self.sink,
            self._tag(),
            ("Not mirrored, name is reserved for copy temporaries: ", STYLE_DEFAULT),
            (str(path), STYLE_ERROR),
        )

    def _tag(self) -> tuple[str, str]:
        return (f"{self.pair.index} ", self.pair.color)
