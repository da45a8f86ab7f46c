"""Command line access to the game version manager."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from services.versions import (
    AVAILABLE_BRANCHES,
    InstallProgress,
    VersionError,
    VersionManager,
    build_version_manager,
)
from shared.logging_config import LogVerbosity, ensure_app_logging, set_file_log_verbosity

_LOGGER = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--data-root",
        type=Path,
        default=None,
        help="Directory holding game versions, caches and tools.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Write debug messages to the log file.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    available = commands.add_parser("available", help="List versions offered by the server.")
    available.add_argument("branch", choices=AVAILABLE_BRANCHES)

    installed = commands.add_parser("installed", help="List locally installed versions.")
    installed.add_argument("--branch", choices=AVAILABLE_BRANCHES, default=None)

    commands.add_parser("rescan", help="Rebuild the installed-version index from disk.")

    install = commands.add_parser("install", help="Install or update a version.")
    install.add_argument("branch", choices=AVAILABLE_BRANCHES)
    install.add_argument("version_id")
    install.add_argument(
        "--force",
        action="store_true",
        help="Ignore the installed copy and perform a full install.",
    )

    remove = commands.add_parser("remove", help="Delete an installed version.")
    remove.add_argument("branch", choices=AVAILABLE_BRANCHES)
    remove.add_argument("version_id")

    migrate = commands.add_parser("migrate", help="Adopt a legacy single-directory install.")
    migrate.add_argument(
        "legacy_version",
        help="Version id of the legacy install (e.g. '7' or '7.pwr').",
    )
    return parser.parse_args(argv)


def _print_progress(progress: InstallProgress) -> None:
    if progress.percent is None:
        print(progress.message)
    else:
        print(f"[{progress.percent:3d}%] {progress.message}")


def _run(manager: VersionManager, args: argparse.Namespace) -> int:
    if args.command == "available":
        versions = manager.get_available_versions(args.branch)
        if not versions:
            print(f"No versions found for branch {args.branch}")
        for info in versions:
            flags = []
            if info.is_latest:
                flags.append("latest")
            if info.installed:
                flags.append("installed")
            suffix = f" ({', '.join(flags)})" if flags else ""
            print(f"{info.branch}/{info.id}  {info.label}{suffix}")
        return 0

    if args.command == "installed":
        for record in manager.get_installed_versions(args.branch):
            size = f"{record.size_bytes} bytes" if record.size_bytes is not None else "size unknown"
            print(f"{record.branch}/{record.id}  v{record.version}  {record.installed_at}  {size}")
        return 0

    if args.command == "rescan":
        records = manager.store.refresh_index()
        print(f"Indexed {len(records)} installed version(s)")
        return 0

    if args.command == "install":
        result = manager.install_version(
            args.branch, args.version_id, force=args.force, on_progress=_print_progress
        )
        if result.fallbacks_used:
            print("Incremental patching failed; a full install was performed instead")
        return 0

    if args.command == "remove":
        manager.remove_version(args.branch, args.version_id)
        print(f"Removed {args.branch}/{args.version_id}")
        return 0

    if args.command == "migrate":
        record = manager.migrate_legacy_install(args.legacy_version)
        if record is None:
            print("Nothing to migrate")
        else:
            print(f"Migrated legacy install to {record.branch}/{record.id}")
        return 0

    raise AssertionError(f"Unhandled command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    ensure_app_logging()
    if args.verbose:
        set_file_log_verbosity(LogVerbosity.VERBOSE)

    try:
        manager = build_version_manager(data_root=args.data_root)
        return _run(manager, args)
    except VersionError as exc:
        _LOGGER.error("Command %s failed: %s", args.command, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
