from pathlib import Path

from filecopier.cli import main
from filecopier.coordinator import EXIT_INVALID_CONFIG, EXIT_PARTIAL_FAILURES, EXIT_SUCCESS


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _settings(tmp_path: Path, *lines: str) -> Path:
    config_file = tmp_path / ".filecopier"
    config_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_file


def test_run_once_copies_and_reports_stats(tmp_path: Path, capsys) -> None:
    source = tmp_path / "src"
    target = tmp_path / "dst"
    _write(source / "a.txt", "0123456789")
    _write(source / "sub" / "b.txt", "b")
    target.mkdir()
    config_file = _settings(tmp_path, f"{source} => {target}")

    exit_code = main(["run", "--config", str(config_file), "--once", "--no-notify"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_SUCCESS
    assert "copied=2 created=1" in output
    assert (target / "sub" / "b.txt").read_text(encoding="utf-8") == "b"


def test_run_once_with_rejected_pair_is_partial(tmp_path: Path, capsys) -> None:
    source = tmp_path / "src"
    target = tmp_path / "dst"
    source.mkdir()
    target.mkdir()
    config_file = _settings(tmp_path, f"{source} => {target}", f"{tmp_path / 'missing'} => {target}")

    exit_code = main(["run", "--config", str(config_file), "--once", "--no-notify"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_PARTIAL_FAILURES
    assert "Source folder not found" in output


def test_wipe_command_recopies_one_pair(tmp_path: Path, capsys) -> None:
    source = tmp_path / "src"
    target = tmp_path / "dst"
    _write(source / "a.txt", "a")
    _write(target / "stale.txt", "stale")
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text(
        f"useNotifications: false\npairs:\n  - source: '{source.as_posix()}'\n    target: '{target.as_posix()}'\n",
        encoding="utf-8",
    )

    exit_code = main(["wipe", "--config", str(config_file), "--pair", "1"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_SUCCESS
    assert "[wipe 1] copied=1" in output
    assert sorted(p.name for p in target.iterdir()) == ["a.txt"]


def test_validate_config_prints_summary(tmp_path: Path, capsys) -> None:
    config_file = _settings(tmp_path, "/a => /b", "broken")

    exit_code = main(["validate-config", "--config", str(config_file)])

    captured = capsys.readouterr()
    assert exit_code == EXIT_PARTIAL_FAILURES
    assert "(1 pair(s))" in captured.out
    assert "compareBy=mtime+size" in captured.out
    assert "does not match pattern" in captured.err


def test_validate_config_invalid_file(tmp_path: Path, capsys) -> None:
    config_file = tmp_path / "filecopier.yaml"
    config_file.write_text("pairs: []\n", encoding="utf-8")

    exit_code = main(["validate-config", "--config", str(config_file)])

    assert exit_code == EXIT_INVALID_CONFIG
    assert "Invalid config" in capsys.readouterr().err


def test_list_shows_index_and_color(tmp_path: Path, capsys) -> None:
    config_file = _settings(tmp_path, "# mirrors", "/src/one => /dst/one", "/src/two => /dst/two")

    exit_code = main(["list", "--config", str(config_file), "--pair", "3"])

    output = capsys.readouterr().out
    assert exit_code == EXIT_SUCCESS
    assert "3 [c0]" in output
    assert "/src/two => /dst/two" in output
    assert "/src/one" not in output


def test_list_unknown_pair_is_partial(tmp_path: Path, capsys) -> None:
    config_file = _settings(tmp_path, "/src/one => /dst/one")

    exit_code = main(["list", "--config", str(config_file), "--pair", "4"])

    assert exit_code == EXIT_PARTIAL_FAILURES
    assert "No pair with index 4" in capsys.readouterr().err
