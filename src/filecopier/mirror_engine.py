from __future__ import annotations

import errno
from hashlib import sha256
import os
from pathlib import Path
import shutil
import tempfile
from typing import Callable

from filecopier.ignore_engine import TEMP_PREFIX, IgnoreEngine
from filecopier.models import Action, ActionKind, FileEntry, MirrorPair, ScanResult


COMPARE_MODES = ("mtime+size", "size", "hash")

ScanErrorCallback = Callable[[Path, OSError], None]
ReservedNameCallback = Callable[[Path], None]


def _hash_file(path: Path) -> str:
    digest = sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _should_copy(
    source_file: Path,
    destination_file: Path,
    source_entry: FileEntry,
    destination_entry: FileEntry | None,
    compare_by: str,
    mtime_tolerance: float = 0.0,
) -> bool:
    if destination_entry is None or destination_entry.is_dir:
        return True

    size_changed = source_entry.size != destination_entry.size

    if compare_by == "size":
        return size_changed

    if compare_by == "hash":
        if size_changed:
            return True
        try:
            return _hash_file(source_file) != _hash_file(destination_file)
        except OSError:
            # Let the copy itself report whatever is wrong with the file.
            return True

    # copy2 keeps the full-resolution mtime, so a mirrored file matches exactly.
    mtime_changed = abs(source_entry.mtime - destination_entry.mtime) > mtime_tolerance
    return mtime_changed or size_changed


def _safe_copy(source_file: Path, destination_file: Path) -> None:
    destination_file.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        delete=False, dir=str(destination_file.parent), prefix=TEMP_PREFIX
    ) as tmp:
        tmp_path = Path(tmp.name)
    try:
        shutil.copy2(source_file, tmp_path)
        tmp_path.replace(destination_file)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def validate_mapping(source_root: Path, destination_root: Path) -> None:
    source_resolved = source_root.resolve()
    destination_resolved = destination_root.resolve()

    if source_resolved == destination_resolved:
        raise ValueError(f"Invalid mapping: source and target are equal: {source_root}")

    if destination_resolved.is_relative_to(source_resolved):
        raise ValueError(f"Invalid mapping: target is inside source, which can recurse: {destination_root}")

    if source_resolved.is_relative_to(destination_resolved):
        raise ValueError(f"Invalid mapping: source is inside target, a wipe would delete it: {source_root}")


def _links_back(link: Path, current: Path, root: Path) -> bool:
    resolved = Path(os.path.realpath(link))
    relative = current.relative_to(root)
    for ancestor in (current, *(root / parent for parent in relative.parents)):
        ancestor_resolved = Path(os.path.realpath(ancestor))
        if ancestor_resolved == resolved or ancestor_resolved.is_relative_to(resolved):
            return True
    return False


def scan_tree(
    root: Path,
    ignore: IgnoreEngine,
    on_error: ScanErrorCallback | None = None,
    follow_links: bool = False,
    on_reserved: ReservedNameCallback | None = None,
) -> ScanResult:
    """Walk ``root`` depth-first and describe every file and folder in it.

    Folders in the skip set are not entered. A folder that cannot be listed
    or a file that cannot be stat'ed is reported through ``on_error`` and
    recorded in ``ScanResult.unreadable``; the rest of the tree is still
    walked.

    Symbolic links to files are always followed. With ``follow_links`` a
    link to a folder is entered like a real folder, unless it resolves to a
    folder already on the path walked to reach it, which is reported as an
    error. Without it the link itself is recorded as a leaf entry and never
    entered.

    Names reserved for copy temporaries are never scanned; ``on_reserved``
    is told about each one found.
    """
    result = ScanResult()

    def _report(path: Path, relative: Path, exc: OSError) -> None:
        result.unreadable.add(relative)
        if on_error is not None:
            on_error(path, exc)

    def _walk_error(exc: OSError) -> None:
        failed = Path(exc.filename) if exc.filename else root
        try:
            relative = failed.relative_to(root)
        except ValueError:
            relative = Path(".")
        _report(failed, relative, exc)

    def _leaf(path: Path, relative: Path, follow: bool = True) -> FileEntry | None:
        try:
            stat = os.stat(path) if follow else os.lstat(path)
        except OSError as exc:
            _report(path, relative, exc)
            return None
        return FileEntry(relative=relative, is_dir=False, size=stat.st_size, mtime=stat.st_mtime)

    for root_str, dirs, files in os.walk(root, topdown=True, onerror=_walk_error, followlinks=follow_links):
        current = Path(root_str)
        current_rel = current.relative_to(root)

        kept_dirs: list[str] = []
        for dir_name in sorted(dirs):
            rel_path = current_rel / dir_name
            if ignore.is_ignored(rel_path, is_dir=True):
                continue
            full_path = current / dir_name
            if full_path.is_symlink():
                if not follow_links:
                    entry = _leaf(full_path, rel_path, follow=False)
                    if entry is not None:
                        result.entries[rel_path] = entry
                    continue
                if _links_back(full_path, current, root):
                    _report(
                        full_path,
                        rel_path,
                        OSError(errno.ELOOP, "Symbolic link points back into its own tree", str(full_path)),
                    )
                    continue
            kept_dirs.append(dir_name)
            result.entries[rel_path] = FileEntry(relative=rel_path, is_dir=True)
        dirs[:] = kept_dirs

        for file_name in sorted(files):
            rel_path = current_rel / file_name
            if ignore.is_copy_temporary(rel_path):
                if on_reserved is not None:
                    on_reserved(current / file_name)
                continue
            if ignore.is_ignored(rel_path):
                continue
            entry = _leaf(current / file_name, rel_path)
            if entry is not None:
                result.entries[rel_path] = entry

    return result


def _under_unreadable(relative: Path, unreadable: set[Path]) -> bool:
    if not unreadable:
        return False
    if Path(".") in unreadable or relative in unreadable:
        return True
    return any(parent in unreadable for parent in relative.parents)


def _path_order(entry: FileEntry) -> tuple[str, ...]:
    return entry.relative.parts


def plan_actions(
    pair: MirrorPair,
    source: ScanResult,
    target: ScanResult,
    compare_by: str = "mtime+size",
    epoch: int = 0,
    mtime_tolerance: float = 0.0,
) -> list[Action]:
    """Return the actions that turn the scanned target into the scanned source.

    Deletions come first: files, then folders deepest-first. Creations and
    copies follow in path order, so a folder is always created before
    anything inside it.
    """
    file_deletions: list[FileEntry] = []
    dir_deletions: list[FileEntry] = []
    for rel_path, target_entry in target.entries.items():
        source_entry = source.entries.get(rel_path)
        if source_entry is not None and source_entry.is_dir == target_entry.is_dir:
            continue
        if source_entry is None and _under_unreadable(rel_path, source.unreadable):
            continue
        if target_entry.is_dir:
            dir_deletions.append(target_entry)
        else:
            file_deletions.append(target_entry)

    file_deletions.sort(key=_path_order)
    dir_deletions.sort(key=lambda entry: (-len(entry.relative.parts), entry.relative.parts))

    actions: list[Action] = []
    for entry in file_deletions:
        actions.append(_action(ActionKind.DELETE_FILE, pair, entry.relative, epoch))
    for entry in dir_deletions:
        actions.append(_action(ActionKind.DELETE_DIR, pair, entry.relative, epoch))

    for source_entry in sorted(source.entries.values(), key=_path_order):
        rel_path = source_entry.relative
        target_entry = target.entries.get(rel_path)
        if source_entry.is_dir:
            if target_entry is None or not target_entry.is_dir:
                actions.append(_action(ActionKind.CREATE_DIR, pair, rel_path, epoch))
            continue
        if _should_copy(
            pair.source / rel_path,
            pair.target / rel_path,
            source_entry,
            target_entry,
            compare_by,
            mtime_tolerance,
        ):
            actions.append(_action(ActionKind.COPY_FILE, pair, rel_path, epoch))

    return actions


def _action(kind: ActionKind, pair: MirrorPair, relative: Path, epoch: int) -> Action:
    source = pair.source / relative if kind == ActionKind.COPY_FILE else None
    return Action(
        kind=kind,
        pair=pair,
        target=pair.target / relative,
        source=source,
        relative=relative,
        epoch=epoch,
    )


def wipe_action(pair: MirrorPair, epoch: int) -> Action:
    return Action(kind=ActionKind.WIPE_TREE, pair=pair, target=pair.target, epoch=epoch)


def wipe_tree(target_root: Path, ignore: IgnoreEngine) -> int:
    removed = 0
    for child in sorted(target_root.iterdir()):
        if child.is_dir() and not child.is_symlink():
            if ignore.is_skipped_folder(child.name):
                continue
            shutil.rmtree(child)
        else:
            child.unlink(missing_ok=True)
        removed += 1
    return removed


def execute_action(action: Action, ignore: IgnoreEngine) -> None:
    """Carry out one action; raises ``OSError`` when the filesystem refuses."""
    if action.kind == ActionKind.CREATE_DIR:
        action.target.mkdir(parents=True, exist_ok=True)
    elif action.kind == ActionKind.COPY_FILE:
        if action.source is None:
            raise ValueError(f"Copy action without a source: {action.target}")
        _safe_copy(action.source, action.target)
    elif action.kind == ActionKind.DELETE_FILE:
        action.target.unlink(missing_ok=True)
    elif action.kind == ActionKind.DELETE_DIR:
        if action.target.is_dir() and not action.target.is_symlink():
            shutil.rmtree(action.target)
        else:
            action.target.unlink(missing_ok=True)
    elif action.kind == ActionKind.WIPE_TREE:
        wipe_tree(action.target, ignore)
    else:
        raise ValueError(f"Unknown action kind: {action.kind}")
