"""Check for, install or launch the Agent Grid companion application."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path


def ensure_project_root_on_sys_path() -> Path:
    """Ensure the project root is importable when the script runs standalone."""

    project_root = Path(__file__).resolve().parent.parent
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)
    return project_root


ensure_project_root_on_sys_path()

from app.config import get_companion_config
from services.companion import (
    CompanionError,
    build_install_orchestrator,
    describe_failure,
    describe_progress,
    installed_version,
    launch_bundle,
)
from shared.logging_config import ensure_app_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("check", help="Report whether a newer release is available.")
    install = subparsers.add_parser("install", help="Download and install the latest release.")
    install.add_argument(
        "--force",
        action="store_true",
        help="Reinstall even when the installed version is current.",
    )
    subparsers.add_parser("launch", help="Open the installed application.")
    return parser.parse_args(argv)


def _print_progress(downloaded: int, total: int) -> None:
    print(f"\rDownloading... {describe_progress(downloaded, total)}", end="", flush=True)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    ensure_app_logging()
    config = get_companion_config()

    if args.command == "launch":
        return 0 if launch_bundle(config.install_path) else 1

    orchestrator = build_install_orchestrator(config)
    if orchestrator is None:
        print(f"{config.app_name} can only be installed on macOS.", file=sys.stderr)
        return 1

    current = installed_version(config.install_path)
    try:
        latest = orchestrator.get_latest_release()
    except CompanionError as exc:
        print(describe_failure(exc, config.app_name), file=sys.stderr)
        return 1

    if latest.asset is None:
        print(f"{config.app_name} {latest.version} has no installable disk image for this machine.")
        return 0

    release = orchestrator.check_for_update(current, release=latest)
    if args.command == "check":
        if release is None:
            print(f"{config.app_name} is up to date ({current or 'not installed'}).")
        else:
            print(f"{config.app_name} {release.version} is available.")
        return 0

    if release is None and not args.force:
        print(f"{config.app_name} is up to date ({current or 'not installed'}).")
        return 0

    result = orchestrator.run(_print_progress, release=latest)
    print()
    if result.is_err():
        assert result.error is not None
        print(describe_failure(result.error, config.app_name), file=sys.stderr)
        return 1
    assert result.value is not None
    print(f"{config.app_name} {result.value.version} installed to {result.value.destination_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
