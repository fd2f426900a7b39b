"""Application entry point — wires services and runs a command.

Usage:
    python main.py [--data-dir DIR] <command> ...

Examples:
    python main.py add-game "Portal" --install "C:\\Games\\Portal"
    python main.py add-location <game_id> "C:\\Users\\me\\Documents\\My Games\\Portal"
    python main.py backup <game_id>
    python main.py restore <snapshot_id>
    python main.py scan
    python main.py config retention_count=5 storage_root="D:\\Backups"
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from gamesaver.config import get_config
from gamesaver.context import AppContext
from gamesaver.core.errors import BackupError
from gamesaver.core.games import GameService
from gamesaver.core.progress import BackupProgress
from gamesaver.core.save_locations import SaveLocationService
from gamesaver.core.service import BackupService
from gamesaver.data.library import Library, PersistenceError
from gamesaver.logger import setup_logger
from gamesaver.models.snapshot import SnapshotReason
from gamesaver.utils import format_size


def create_context(data_dir: Path | None = None, verbose: bool = False) -> AppContext:
    """Wire all services and return an AppContext."""
    config = get_config(data_dir)

    # Logger
    setup_logger(config.data_dir / "logs", verbose=verbose)

    # Data
    config.storage_root.mkdir(parents=True, exist_ok=True)
    library = Library(config.state_path)
    library.load()

    # Core services
    locations = SaveLocationService(library)
    games = GameService(library, config, locations)
    backups = BackupService(library, config, games)

    return AppContext(
        config=config,
        library=library,
        games=games,
        locations=locations,
        backups=backups,
    )


def _print_progress(event: BackupProgress) -> None:
    print(f"  [{event.stage:<9}] {event.completed_files}/{event.total_files} files, {event.percent}%")


def _cmd_list(ctx: AppContext, args: argparse.Namespace) -> int:
    for game in ctx.games.list_games():
        print(f"{game.id}  {game.name}  [{game.status}]")
        for loc in ctx.locations.list_locations(game.id):
            flag = "on " if loc.enabled else "off"
            print(f"    {flag} {loc.type:<6} {loc.path}{'' if loc.exists else '  (missing)'}")
        for snap in ctx.library.snapshots(game.id):
            print(f"    {snap.id}  {snap.created_at}  {snap.reason:<11} {format_size(snap.size_bytes)}")
    return 0


def _cmd_add_game(ctx: AppContext, args: argparse.Namespace) -> int:
    game = ctx.games.add_game(args.name, exe_path=args.exe, install_path=args.install)
    print(game.id)
    return 0


def _cmd_add_location(ctx: AppContext, args: argparse.Namespace) -> int:
    location = ctx.locations.add_location(args.game_id, args.path)
    print(location.id)
    return 0


def _cmd_backup(ctx: AppContext, args: argparse.Namespace) -> int:
    unsubscribe = ctx.backups.on_backup_progress(_print_progress)
    try:
        snapshot = ctx.backups.backup_game(args.game_id, SnapshotReason(args.reason))
    finally:
        unsubscribe()
    if snapshot is None:
        print("Backup skipped, see event log.")
        return 1
    print(f"Snapshot {snapshot.id} ({format_size(snapshot.size_bytes)})")
    return 0


def _cmd_restore(ctx: AppContext, args: argparse.Namespace) -> int:
    result = ctx.backups.restore_snapshot(args.snapshot_id)
    print(f"Restored {result.restored} files, {result.failed} failed")
    for warning in result.warnings:
        print(f"  {warning}")
    return 0


def _cmd_verify(ctx: AppContext, args: argparse.Namespace) -> int:
    result = ctx.backups.verify_snapshot(args.snapshot_id)
    print("OK" if result.ok else f"{result.issues} issue(s)")
    for problem in result.problems:
        print(f"  {problem}")
    return 0 if result.ok else 1


def _cmd_delete(ctx: AppContext, args: argparse.Namespace) -> int:
    ctx.backups.delete_snapshot(args.snapshot_id)
    return 0


def _cmd_scan(ctx: AppContext, args: argparse.Namespace) -> int:
    result = ctx.backups.scan_snapshots_from_disk()
    print(
        f"added {result.added_snapshots}, removed {result.removed_snapshots} "
        f"({result.removed_snapshot_files} files), unknown games {result.skipped_unknown_games}, "
        f"invalid snapshots {result.skipped_invalid_snapshots}, "
        f"relocated {result.relocated_snapshots}"
    )
    return 0


def _parse_value(raw: str) -> Any:
    """JSON literal when it parses (numbers, booleans, objects), plain text otherwise."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _cmd_config(ctx: AppContext, args: argparse.Namespace) -> int:
    config = ctx.config
    updates = [s.partition("=") for s in args.settings if "=" in s]
    if updates:
        with config.batch_update():
            for key, _, raw in updates:
                config.set(key, _parse_value(raw))
    for setting in args.settings or config.keys():
        key = setting.partition("=")[0]
        print(f"{key} = {json.dumps(config.get(key), ensure_ascii=False)}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Save-game snapshot manager.")
    parser.add_argument("--data-dir", type=Path, default=None, help="Data directory")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List games, locations and snapshots").set_defaults(func=_cmd_list)

    p = sub.add_parser("add-game", help="Register a game")
    p.add_argument("name")
    p.add_argument("--exe", default="", help="Game executable")
    p.add_argument("--install", default="", help="Install directory")
    p.set_defaults(func=_cmd_add_game)

    p = sub.add_parser("add-location", help="Add a save file or folder to a game")
    p.add_argument("game_id")
    p.add_argument("path")
    p.set_defaults(func=_cmd_add_location)

    p = sub.add_parser("backup", help="Snapshot a game's save locations")
    p.add_argument("game_id")
    p.add_argument("--reason", default="manual", choices=[r.value for r in SnapshotReason])
    p.set_defaults(func=_cmd_backup)

    for name, func, help_text in (
        ("restore", _cmd_restore, "Restore a snapshot"),
        ("verify", _cmd_verify, "Verify a snapshot's checksums"),
        ("delete", _cmd_delete, "Delete a snapshot"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("snapshot_id")
        p.set_defaults(func=func)

    sub.add_parser("scan", help="Reconcile the library with the storage root").set_defaults(func=_cmd_scan)

    p = sub.add_parser("config", help="Show or change settings")
    p.add_argument("settings", nargs="*", metavar="KEY[=VALUE]", help="Dotted key to show, or key=value to set")
    p.set_defaults(func=_cmd_config)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    ctx = create_context(args.data_dir, verbose=args.verbose)
    try:
        return args.func(ctx, args)
    except (BackupError, PersistenceError, ValueError, OSError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
