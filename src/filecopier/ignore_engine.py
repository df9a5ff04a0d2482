from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pathspec


DEFAULT_SKIP_FOLDERS = (".git",)

# Prefix of the temporary files written next to a destination during a copy.
TEMP_PREFIX = ".filecopier-"


class IgnoreEngine:
    def __init__(self, skip_folders: Iterable[str] = DEFAULT_SKIP_FOLDERS, patterns: Iterable[str] = ()) -> None:
        self.skip_folders = frozenset(name for name in skip_folders if name)
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", [p for p in patterns if p.strip()])

    def is_skipped_folder(self, name: str) -> bool:
        return name in self.skip_folders

    def is_copy_temporary(self, relative_path: Path) -> bool:
        return relative_path.name.startswith(TEMP_PREFIX)

    def is_ignored(self, relative_path: Path, is_dir: bool = False) -> bool:
        if is_dir and self.is_skipped_folder(relative_path.name):
            return True
        if self.is_copy_temporary(relative_path):
            return True
        unix_path = relative_path.as_posix()
        candidate = f"{unix_path}/" if is_dir and not unix_path.endswith("/") else unix_path
        return self._spec.match_file(candidate)


def build_ignore_engine(skip_folders: Iterable[str], additional_excludes: Iterable[str]) -> IgnoreEngine:
    return IgnoreEngine(skip_folders=skip_folders, patterns=additional_excludes)
