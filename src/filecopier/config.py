from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
from typing import Any

import json
import yaml

from filecopier.ignore_engine import DEFAULT_SKIP_FOLDERS
from filecopier.mirror_engine import COMPARE_MODES


DEFAULT_SCAN_INTERVAL_SECONDS = 2.0
DEFAULT_SLOW_ACTION_SECONDS = 5.0

# Legacy settings lines look like "c:\source => c:\target".
SETTINGS_LINE = re.compile(r"^(.*[^ ]) ?=> ?([^ ].*)$")


@dataclass(slots=True)
class PairConfig:
    source: Path
    target: Path
    index: int


@dataclass(slots=True)
class AppConfig:
    pairs: list[PairConfig]
    scan_interval_seconds: float = DEFAULT_SCAN_INTERVAL_SECONDS
    slow_action_seconds: float = DEFAULT_SLOW_ACTION_SECONDS
    compare_by: str = "mtime+size"
    mtime_tolerance_seconds: float = 0.0
    skip_folders: list[str] = field(default_factory=lambda: list(DEFAULT_SKIP_FOLDERS))
    additional_excludes: list[str] = field(default_factory=list)
    use_notifications: bool = True
    serialize_startup_scans: bool = False
    problems: list[str] = field(default_factory=list)


def default_config_path() -> Path:
    return Path.home() / ".filecopier"


def default_log_file() -> Path:
    return Path.home() / ".filecopier-logs" / "filecopier.log"


def _as_path(value: Any, field_name: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string path")
    return Path(value.strip()).expanduser()


def _as_bool(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field_name} must be a boolean")


def _as_seconds(value: Any, field_name: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{field_name} must be a positive number of seconds")
    return float(value)


def _as_tolerance(value: Any, field_name: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"{field_name} must be a non-negative number of seconds")
    return float(value)


def _as_list_of_strings(value: Any, field_name: str, default: list[str] | None = None) -> list[str]:
    if value is None:
        return list(default or [])
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ValueError(f"{field_name} must be a list of strings")
    return [item for item in value if item.strip()]


def _load_structured(config_path: Path, text: str) -> AppConfig:
    if config_path.suffix.lower() == ".json":
        loaded = json.loads(text)
    else:
        try:
            loaded = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ValueError("Config root must be an object")

    raw_pairs = loaded.get("pairs")
    if not isinstance(raw_pairs, list) or not raw_pairs:
        raise ValueError("Config must contain non-empty 'pairs' list")

    pairs: list[PairConfig] = []
    for position, raw_pair in enumerate(raw_pairs):
        if not isinstance(raw_pair, dict):
            raise ValueError(f"pairs[{position}] must be an object")
        pairs.append(
            PairConfig(
                source=_as_path(raw_pair.get("source"), f"pairs[{position}].source"),
                target=_as_path(raw_pair.get("target"), f"pairs[{position}].target"),
                index=position + 1,
            )
        )

    compare_by = loaded.get("compareBy", "mtime+size")
    if compare_by not in COMPARE_MODES:
        raise ValueError(f"compareBy must be one of: {', '.join(COMPARE_MODES)}")

    return AppConfig(
        pairs=pairs,
        scan_interval_seconds=_as_seconds(
            loaded.get("scanIntervalSeconds"), "scanIntervalSeconds", DEFAULT_SCAN_INTERVAL_SECONDS
        ),
        slow_action_seconds=_as_seconds(
            loaded.get("slowActionSeconds"), "slowActionSeconds", DEFAULT_SLOW_ACTION_SECONDS
        ),
        compare_by=compare_by,
        mtime_tolerance_seconds=_as_tolerance(loaded.get("mtimeToleranceSeconds"), "mtimeToleranceSeconds"),
        skip_folders=_as_list_of_strings(
            loaded.get("skipFolders"), "skipFolders", default=list(DEFAULT_SKIP_FOLDERS)
        ),
        additional_excludes=_as_list_of_strings(loaded.get("additionalExcludes"), "additionalExcludes"),
        use_notifications=_as_bool(loaded.get("useNotifications"), "useNotifications", default=True),
        serialize_startup_scans=_as_bool(
            loaded.get("serializeStartupScans"), "serializeStartupScans", default=False
        ),
    )


def _load_settings_lines(text: str) -> AppConfig:
    config = AppConfig(pairs=[])
    for index, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.startswith("#"):
            continue
        match = SETTINGS_LINE.match(line)
        if not match:
            config.problems.append(
                f"Settings line does not match pattern (c:\\source => c:\\target): {index}"
            )
            continue
        config.pairs.append(
            PairConfig(
                source=Path(match.group(1).strip()).expanduser(),
                target=Path(match.group(2).strip()).expanduser(),
                index=index,
            )
        )
    return config


def load_config(config_path: Path) -> AppConfig:
    """Read pairs and options from YAML/JSON, or from ``source => target`` lines.

    Structural problems raise ``ValueError``. In the line format a malformed
    line is only recorded in ``AppConfig.problems`` so the other pairs still
    load.
    """
    if not config_path.exists():
        raise ValueError(f"Config file does not exist: {config_path}")

    text = config_path.read_text(encoding="utf-8")
    if config_path.suffix.lower() in {".yml", ".yaml", ".json"}:
        return _load_structured(config_path, text)
    return _load_settings_lines(text)


def get_pairs(config: AppConfig, pair_index: int | None) -> list[PairConfig]:
    if pair_index is None:
        return config.pairs
    matched = [pair for pair in config.pairs if pair.index == pair_index]
    if not matched:
        raise ValueError(f"No pair with index {pair_index} found")
    return matched
