from pathlib import Path
import threading
import time

from filecopier.action_queue import ActionQueue
from filecopier.diagnostics import STYLE_ERROR, STYLE_SLOW
from filecopier.mirror_engine import wipe_action
from filecopier.models import Action, ActionKind, MirrorPair


def _pair(tmp_path: Path, index: int = 1) -> MirrorPair:
    source = tmp_path / f"source{index}"
    target = tmp_path / f"target{index}"
    source.mkdir(exist_ok=True)
    target.mkdir(exist_ok=True)
    return MirrorPair(source=source, target=target, color=f"c{index % 3}", index=index)


def _action(pair: MirrorPair, kind: ActionKind, relative: str, epoch: int = 0) -> Action:
    return Action(
        kind=kind,
        pair=pair,
        target=pair.target / relative,
        source=pair.source / relative if kind == ActionKind.COPY_FILE else None,
        relative=Path(relative),
        epoch=epoch,
    )


def test_actions_from_concurrent_submitters_run_one_at_a_time_in_order(tmp_path: Path, sink, monkeypatch) -> None:
    lock = threading.Lock()
    running = 0
    overlaps = 0
    executed: list[int] = []

    def _fake_execute(action: Action, ignore) -> None:
        nonlocal running, overlaps
        with lock:
            running += 1
            if running > 1:
                overlaps += 1
        time.sleep(0.001)
        with lock:
            executed.append(action.sequence)
            running -= 1

    monkeypatch.setattr("filecopier.action_queue.execute_action", _fake_execute)

    queue = ActionQueue(sink)
    queue.start()
    pairs = [_pair(tmp_path, index) for index in range(1, 5)]
    barrier = threading.Barrier(len(pairs))

    def _submitter(pair: MirrorPair) -> None:
        barrier.wait()
        for number in range(25):
            assert queue.submit(_action(pair, ActionKind.DELETE_FILE, f"f{number}.txt"))

    threads = [threading.Thread(target=_submitter, args=(pair,)) for pair in pairs]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert queue.wait_idle(timeout=10)
    queue.stop(timeout=5)

    assert executed == list(range(1, 101))
    assert overlaps == 0
    assert queue.completed == 100


def test_failed_action_is_reported_and_worker_continues(tmp_path: Path, sink) -> None:
    pair = _pair(tmp_path)
    outcomes = []
    queue = ActionQueue(sink, listener=lambda action, ok: outcomes.append((action.relative.as_posix(), ok)))
    queue.start()

    queue.submit(_action(pair, ActionKind.COPY_FILE, "missing.txt"))
    queue.submit(_action(pair, ActionKind.CREATE_DIR, "made"))

    assert queue.wait_idle(timeout=5)
    queue.stop(timeout=5)

    assert outcomes == [("missing.txt", False), ("made", True)]
    assert (pair.target / "made").is_dir()
    errors = sink.styled(STYLE_ERROR)
    assert len(errors) == 1
    assert "Error copying" in errors[0]
    assert str(pair.target / "missing.txt") in errors[0]
    assert sink.lines[0][0] == ("1 ", "c1")
    stats = queue.stats(1)
    assert stats.failed == 1
    assert stats.created == 1


def test_slow_actions_use_slow_style_not_error(tmp_path: Path, sink) -> None:
    pair = _pair(tmp_path)
    (pair.source / "a.txt").write_text("a", encoding="utf-8")
    queue = ActionQueue(sink, slow_seconds=0.0)
    queue.start()

    queue.submit(_action(pair, ActionKind.COPY_FILE, "a.txt"))

    assert queue.wait_idle(timeout=5)
    queue.stop(timeout=5)
    assert len(sink.styled(STYLE_SLOW)) == 1
    assert sink.styled(STYLE_ERROR) == []
    assert (pair.target / "a.txt").read_text(encoding="utf-8") == "a"


def test_wipe_drops_earlier_actions_of_the_same_pair_only(tmp_path: Path, sink) -> None:
    wiped = _pair(tmp_path, 1)
    other = _pair(tmp_path, 2)
    (wiped.target / "keep-out.txt").write_text("stale", encoding="utf-8")
    queue = ActionQueue(sink)

    assert queue.submit(_action(wiped, ActionKind.CREATE_DIR, "resurrected"))
    assert queue.submit(_action(other, ActionKind.CREATE_DIR, "untouched"))
    assert queue.submit(_action(wiped, ActionKind.CREATE_DIR, "also-stale"))
    assert queue.submit(wipe_action(wiped, epoch=1))
    assert queue.pending_count == 2

    assert not queue.submit(_action(wiped, ActionKind.CREATE_DIR, "late", epoch=0))
    assert queue.submit(_action(wiped, ActionKind.CREATE_DIR, "fresh", epoch=1))

    queue.start()
    assert queue.wait_idle(timeout=5)
    queue.stop(timeout=5)

    assert sorted(p.name for p in wiped.target.iterdir()) == ["fresh"]
    assert (other.target / "untouched").is_dir()
    assert queue.stats(1).superseded == 3
    assert any("superseded by wipe" in text for text in sink.texts())


def test_identical_pending_action_is_not_queued_twice(tmp_path: Path, sink) -> None:
    pair = _pair(tmp_path)
    queue = ActionQueue(sink)

    assert queue.submit(_action(pair, ActionKind.CREATE_DIR, "sub"))
    assert not queue.submit(_action(pair, ActionKind.CREATE_DIR, "sub"))
    assert queue.pending_count == 1

    queue.start()
    assert queue.wait_idle(timeout=5)
    assert queue.submit(_action(pair, ActionKind.CREATE_DIR, "sub"))
    assert queue.wait_idle(timeout=5)
    queue.stop(timeout=5)
    assert queue.completed == 2


def test_idle_queue_waits_without_work(sink) -> None:
    queue = ActionQueue(sink)
    queue.start()

    assert queue.wait_idle(timeout=1)
    assert queue.completed == 0
    queue.stop(timeout=5)
