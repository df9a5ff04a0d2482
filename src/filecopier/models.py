from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ActionKind(str, Enum):
    CREATE_DIR = "mkdir"
    COPY_FILE = "copy"
    DELETE_FILE = "delete"
    DELETE_DIR = "rmdir"
    WIPE_TREE = "wipe"


@dataclass(frozen=True, slots=True)
class MirrorPair:
    source: Path
    target: Path
    color: str
    index: int


@dataclass(frozen=True, slots=True)
class FileEntry:
    relative: Path
    is_dir: bool
    size: int = 0
    mtime: float = 0.0


@dataclass(slots=True)
class ScanResult:
    entries: dict[Path, FileEntry] = field(default_factory=dict)
    unreadable: set[Path] = field(default_factory=set)


@dataclass(slots=True)
class Action:
    kind: ActionKind
    pair: MirrorPair
    target: Path
    source: Path | None = None
    relative: Path = Path(".")
    epoch: int = 0
    sequence: int = 0

    def key(self) -> tuple[int, ActionKind, Path, int]:
        return (self.pair.index, self.kind, self.target, self.epoch)


@dataclass(slots=True)
class MirrorStats:
    copied: int = 0
    created: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    superseded: int = 0

    def absorb(self, other: "MirrorStats") -> None:
        self.copied += other.copied
        self.created += other.created
        self.deleted += other.deleted
        self.skipped += other.skipped
        self.failed += other.failed
        self.superseded += other.superseded
