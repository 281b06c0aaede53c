"""Application entry point — command-line access to the offline cache and sync."""

import argparse
import logging
import sys
from pathlib import Path

from elite_notepad.config import Config
from elite_notepad.database.models import AppData
from elite_notepad.database.repository import Repository
from elite_notepad.database.store import LocalStore, StoreError
from elite_notepad.io.backup import export_backup, load_backup
from elite_notepad.sync.connectivity import SocketConnectivity
from elite_notepad.sync.orchestrator import SyncOrchestrator, SyncScheduler
from elite_notepad.sync.remote import RemoteError, create_remote
from elite_notepad.utils.constants import APP_NAME, APP_VERSION
from elite_notepad.utils.expiry import (
    find_expiring_members,
    find_expiring_plus_members,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="elite-notepad",
        description=f"{APP_NAME}: offline team cache with remote sync.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {APP_VERSION}",
    )
    parser.add_argument(
        "--db", type=Path, default=None,
        help="Local database path (defaults to DATABASE_PATH)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Push queued changes, then pull")
    sync.add_argument("owner")
    sync.add_argument(
        "--watch", action="store_true",
        help="Keep syncing every SYNC_INTERVAL_SECONDS until interrupted",
    )

    status = sub.add_parser("status", help="Show local cache status")
    status.add_argument("owner")

    export = sub.add_parser("export", help="Write a JSON backup")
    export.add_argument("owner")
    export.add_argument("file", type=Path)

    imp = sub.add_parser("import", help="Import a JSON backup")
    imp.add_argument("owner")
    imp.add_argument("file", type=Path)

    expiring = sub.add_parser("expiring", help="List members expiring soon")
    expiring.add_argument("owner")
    return parser


def _run_sync(store: LocalStore, owner: str, watch: bool) -> int:
    try:
        remote = create_remote()
    except RemoteError as e:
        print(f"Cannot sync: {e}", file=sys.stderr)
        return 2

    orchestrator = SyncOrchestrator(store, remote, SocketConnectivity())
    try:
        if watch:
            scheduler = SyncScheduler(orchestrator, owner)
            scheduler.start()
            try:
                while scheduler.running:
                    scheduler.join(1.0)
            except KeyboardInterrupt:
                scheduler.stop()
            return 0

        result = orchestrator.full_sync(owner)
        if result is None:
            print("Sync did not complete (offline or remote unavailable).")
            return 1
        print(f"Synced: {len(result.teams)} teams, {len(result.members)} members.")
        return 0
    finally:
        orchestrator.shutdown()


def _run_status(repo: Repository) -> int:
    teams = repo.load_teams()
    print(f"Teams: {len(teams)}")
    print(f"Members: {sum(len(t.members) for t in teams)}")
    print(f"Pending changes: {repo.pending_changes()}")
    print(f"Last sync: {repo.last_sync() or 'Never'}")
    return 0


def _run_export(repo: Repository, path: Path) -> int:
    teams = repo.load_teams()
    state = AppData(teams=teams, active_team_id=teams[0].id if teams else "")
    try:
        path.write_text(export_backup(state), encoding="utf-8")
    except OSError as e:
        print(f"Export failed: {e}", file=sys.stderr)
        return 1
    print(f"Exported {len(teams)} teams to {path}")
    return 0


def _run_import(repo: Repository, path: Path) -> int:
    state = AppData(teams=repo.load_teams())
    existing = {t.id for t in state.teams}
    if not load_backup(state, path):
        print("Import failed: not a recognized backup file.", file=sys.stderr)
        return 1
    stored = repo.import_teams(t for t in state.teams if t.id not in existing)
    print(f"Imported {stored} teams.")
    return 0


def _run_expiring(repo: Repository) -> int:
    teams = repo.load_teams()
    for item in find_expiring_members(teams) + find_expiring_plus_members(teams):
        label = "[Plus] " if item.team.is_plus else ""
        when = "tomorrow" if item.days_until_expiry == 1 else "today"
        print(f"{label}{item.team.team_name} - {item.member.email} expires {when}")
    return 0


def main(argv=None) -> int:
    """Run the elite-notepad command line."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        store = LocalStore(args.db or Config.DATABASE_PATH).open()
    except StoreError as e:
        print(f"Cannot open local database: {e}", file=sys.stderr)
        return 2

    if args.command == "sync":
        return _run_sync(store, args.owner, args.watch)

    repo = Repository(store, args.owner)
    if args.command == "status":
        return _run_status(repo)
    if args.command == "export":
        return _run_export(repo, args.file)
    if args.command == "import":
        return _run_import(repo, args.file)
    return _run_expiring(repo)


if __name__ == "__main__":
    sys.exit(main())
