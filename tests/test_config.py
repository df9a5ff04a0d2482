from pathlib import Path

import pytest

from filecopier.config import get_pairs, load_config


def test_load_config_reads_yaml_pairs_and_options(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text(
        """
scanIntervalSeconds: 10
slowActionSeconds: 1.5
compareBy: hash
skipFolders: [.git, .svn]
additionalExcludes: ["*.tmp"]
useNotifications: false
serializeStartupScans: true
pairs:
  - source: C:/work/site
    target: D:/mirror/site
  - source: C:/work/docs
    target: D:/mirror/docs
""".strip(),
        encoding="utf-8",
    )

    loaded = load_config(config_file)

    assert [pair.index for pair in loaded.pairs] == [1, 2]
    assert loaded.pairs[0].source == Path("C:/work/site")
    assert loaded.pairs[1].target == Path("D:/mirror/docs")
    assert loaded.scan_interval_seconds == 10.0
    assert loaded.slow_action_seconds == 1.5
    assert loaded.compare_by == "hash"
    assert loaded.skip_folders == [".git", ".svn"]
    assert loaded.additional_excludes == ["*.tmp"]
    assert loaded.use_notifications is False
    assert loaded.serialize_startup_scans is True
    assert loaded.problems == []


def test_load_config_defaults_from_json(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.json"
    config_file.write_text('{"pairs": [{"source": "/a", "target": "/b"}]}', encoding="utf-8")

    loaded = load_config(config_file)

    assert loaded.compare_by == "mtime+size"
    assert loaded.skip_folders == [".git"]
    assert loaded.scan_interval_seconds == 2.0
    assert loaded.use_notifications is True


def test_settings_lines_use_line_numbers_and_record_bad_lines(tmp_path: Path) -> None:
    config_file = tmp_path / ".filecopier"
    config_file.write_text(
        "# pairs\n"
        "/src/one => /dst/one\n"
        "\n"
        "this line is wrong\n"
        "/src/two with space=>/dst/two\n",
        encoding="utf-8",
    )

    loaded = load_config(config_file)

    assert [(pair.index, pair.source, pair.target) for pair in loaded.pairs] == [
        (2, Path("/src/one"), Path("/dst/one")),
        (5, Path("/src/two with space"), Path("/dst/two")),
    ]
    assert loaded.problems == ["Settings line does not match pattern (c:\\source => c:\\target): 4"]


def test_load_config_rejects_unknown_compare_mode(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text("compareBy: ctime\npairs:\n  - source: /a\n    target: /b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="compareBy"):
        load_config(config_file)


def test_load_config_requires_pairs(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text("scanIntervalSeconds: 3\n", encoding="utf-8")

    with pytest.raises(ValueError, match="pairs"):
        load_config(config_file)


def test_load_config_rejects_non_positive_interval(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text("scanIntervalSeconds: 0\npairs:\n  - source: /a\n    target: /b\n", encoding="utf-8")

    with pytest.raises(ValueError, match="scanIntervalSeconds"):
        load_config(config_file)


def test_missing_config_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        load_config(tmp_path / "missing.yaml")


def test_get_pairs_filters_by_index(tmp_path: Path) -> None:
    config_file = tmp_path / ".filecopier"
    config_file.write_text("/a => /b\n/c => /d\n", encoding="utf-8")
    loaded = load_config(config_file)

    assert [pair.source for pair in get_pairs(loaded, 2)] == [Path("/c")]
    assert len(get_pairs(loaded, None)) == 2
    with pytest.raises(ValueError, match="No pair with index 7"):
        get_pairs(loaded, 7)


def test_mtime_tolerance_defaults_to_exact_and_rejects_negatives(tmp_path: Path) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text("pairs:\n  - source: /a\n    target: /b\n", encoding="utf-8")
    assert load_config(config_file).mtime_tolerance_seconds == 0.0

    config_file.write_text("mtimeToleranceSeconds: 2\npairs:\n  - source: /a\n    target: /b\n", encoding="utf-8")
    assert load_config(config_file).mtime_tolerance_seconds == 2.0

    config_file.write_text("mtimeToleranceSeconds: -1\npairs:\n  - source: /a\n    target: /b\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mtimeToleranceSeconds"):
        load_config(config_file)
