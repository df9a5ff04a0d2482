from __future__ import annotations

import argparse
import importlib
from pathlib import Path
import sys
import threading

from filecopier.config import AppConfig, default_config_path, default_log_file, get_pairs, load_config
from filecopier.coordinator import (
    EXIT_INVALID_CONFIG,
    EXIT_PARTIAL_FAILURES,
    EXIT_RUNTIME_OR_CONFIG_ERROR,
    EXIT_SUCCESS,
    MirrorCoordinator,
)
from filecopier.diagnostics import LoggingSink, configure_logging, pair_color
from filecopier.models import MirrorStats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="filecopier", description="Continuously mirror source folders to targets")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Watch and mirror every configured pair")
    run_parser.add_argument("--config", type=Path, default=default_config_path())
    run_parser.add_argument("--once", action="store_true", help="Scan once, wait for the copies, then exit")
    run_parser.add_argument("--log-file", type=Path, default=None)
    run_parser.add_argument("--no-notify", action="store_true", help="Poll only, without change notifications")

    validate_parser = subparsers.add_parser("validate-config", help="Validate config")
    validate_parser.add_argument("--config", type=Path, default=default_config_path())

    list_parser = subparsers.add_parser("list", help="List configured pairs")
    list_parser.add_argument("--config", type=Path, default=default_config_path())
    list_parser.add_argument("--pair", type=int, help="List only the pair with this index")

    wipe_parser = subparsers.add_parser("wipe", help="Wipe one target and copy its source again")
    wipe_parser.add_argument("--config", type=Path, default=default_config_path())
    wipe_parser.add_argument("--pair", type=int, required=True, help="Index of the pair to wipe")
    wipe_parser.add_argument("--log-file", type=Path, default=None)

    agent_parser = subparsers.add_parser("agent", help="Start the task tray agent with the log window")
    agent_parser.add_argument("--config", type=Path, default=default_config_path())
    agent_parser.add_argument("--log-file", type=Path, default=None)

    return parser


def _print_stats(label: str, stats: MirrorStats) -> None:
    print(
        f"[{label}] copied={stats.copied} created={stats.created} deleted={stats.deleted} "
        f"superseded={stats.superseded} failed={stats.failed}"
    )


def _load(config_path: Path) -> AppConfig | None:
    try:
        return load_config(config_path)
    except Exception as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return None


def cmd_validate(config_path: Path) -> int:
    config = _load(config_path)
    if config is None:
        return EXIT_INVALID_CONFIG

    print(f"Valid config: {config_path} ({len(config.pairs)} pair(s))")
    for problem in config.problems:
        print(f"  ! {problem}", file=sys.stderr)
    print(
        f"  scanIntervalSeconds={config.scan_interval_seconds:g} "
        f"slowActionSeconds={config.slow_action_seconds:g} "
        f"compareBy={config.compare_by} "
        f"skipFolders={','.join(config.skip_folders)}"
    )
    return EXIT_PARTIAL_FAILURES if config.problems else EXIT_SUCCESS


def cmd_list(config_path: Path, pair_index: int | None) -> int:
    config = _load(config_path)
    if config is None:
        return EXIT_INVALID_CONFIG
    try:
        pairs = get_pairs(config, pair_index)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_PARTIAL_FAILURES

    for pair_cfg in pairs:
        print(f"  {pair_cfg.index} [{pair_color(pair_cfg.index)}] {pair_cfg.source} => {pair_cfg.target}")
    return EXIT_SUCCESS


def cmd_run(config_path: Path, once: bool, log_file: Path | None, notify: bool) -> int:
    config = _load(config_path)
    if config is None:
        return EXIT_INVALID_CONFIG
    if not notify:
        config.use_notifications = False

    configure_logging(log_file=log_file, console=True)
    coordinator = MirrorCoordinator(config, LoggingSink())
    if not coordinator.watchers:
        print("No valid pairs to mirror", file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR

    if once:
        stats = coordinator.run_once()
        _print_stats("run", stats)
        coordinator.stop()
        failed = stats.failed or coordinator.has_problems
        return EXIT_PARTIAL_FAILURES if failed else EXIT_SUCCESS

    coordinator.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("Stopping...", file=sys.stderr)
    finally:
        coordinator.stop()
    return EXIT_SUCCESS


def cmd_wipe(config_path: Path, pair_index: int, log_file: Path | None) -> int:
    config = _load(config_path)
    if config is None:
        return EXIT_INVALID_CONFIG

    configure_logging(log_file=log_file, console=True)
    coordinator = MirrorCoordinator(config, LoggingSink())
    try:
        stats = coordinator.wipe_once(pair_index)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR
    finally:
        coordinator.stop()

    _print_stats(f"wipe {pair_index}", stats)
    return EXIT_PARTIAL_FAILURES if stats.failed else EXIT_SUCCESS


def cmd_agent(config_path: Path, log_file: Path | None) -> int:
    try:
        tray_agent = importlib.import_module("filecopier.tray_agent")
    except ModuleNotFoundError as exc:
        missing = exc.name or "unknown"
        print(
            (
                f"Failed to load tray agent dependency: {missing}. "
                "Reinstall dependencies in your active environment with: pip install -e ."
            ),
            file=sys.stderr,
        )
        return EXIT_RUNTIME_OR_CONFIG_ERROR
    except Exception as exc:
        print(f"Failed to load tray agent: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR

    argv = ["--config", str(config_path), "--log-file", str(log_file or default_log_file())]
    return int(tray_agent.main(argv))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "validate-config":
        return cmd_validate(args.config)
    if args.command == "list":
        return cmd_list(config_path=args.config, pair_index=args.pair)
    if args.command == "run":
        return cmd_run(
            config_path=args.config,
            once=args.once,
            log_file=args.log_file,
            notify=not args.no_notify,
        )
    if args.command == "wipe":
        return cmd_wipe(config_path=args.config, pair_index=args.pair, log_file=args.log_file)
    if args.command == "agent":
        return cmd_agent(config_path=args.config, log_file=args.log_file)

    parser.print_help()
    return EXIT_RUNTIME_OR_CONFIG_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
