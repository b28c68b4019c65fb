"""railsdeploy command line.

Usage:
    railsdeploy deploy --server qa --version feature-x
    server=qa version=feature-x railsdeploy setup:all
    railsdeploy --list
    railsdeploy deploy --server prod --version v2 --dry-run
"""

import argparse
import logging
import sys
from pathlib import Path

from railsdeploy import __version__
from railsdeploy.config.loader import get_target_selectors
from railsdeploy.config.settings import get_settings
from railsdeploy.deployment import Deployment
from railsdeploy.errors import DeployError, RemoteCommandError
from railsdeploy.recipes import create_runner
from railsdeploy.remote import DryRunSession


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="railsdeploy",
        description="Run deployment tasks against a Rails application host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Set up a new version slot on the QA server and deploy it
    railsdeploy setup:all --server qa --version feature-x

    # Deploy again after pushing new commits
    railsdeploy deploy --server qa --version feature-x

    # Preview the commands without connecting
    railsdeploy deploy --server prod --version v2 --dry-run

The server and version can also come from the RAILSDEPLOY_SERVER /
RAILSDEPLOY_VERSION (or server / version) environment variables.
""",
    )
    parser.add_argument("task", nargs="?", help="Task to run (e.g. deploy, setup:all)")
    parser.add_argument("--server", help="Server class to deploy to (qa, prod)")
    parser.add_argument(
        "--version",
        dest="version_label",
        help="Version slot on the server (used in the remote path and host name)",
    )
    parser.add_argument("--config", type=Path, help="Path to railsdeploy.toml")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the commands instead of running them",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print every command and enable debug logging",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available tasks",
    )
    parser.add_argument(
        "-V", "--program-version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def list_tasks() -> None:
    """Print the registered tasks with their descriptions."""
    runner = create_runner()
    width = max(len(name) for name in runner.names())
    for name, description in runner.describe():
        print(f"  {name.ljust(width)}  {description}")


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.list:
        list_tasks()
        return 0

    if not args.task:
        parser.print_usage()
        print("Error: A task needs to be specified (see --list).")
        return 1

    env_server, env_version = get_target_selectors()
    server_class = args.server or env_server
    version_label = args.version_label or env_version

    try:
        settings = get_settings(args.config)

        deployment = Deployment(
            config=settings.config,
            secrets=settings.secrets,
            session_factory=DryRunSession if args.dry_run else None,
            verbose=args.verbose,
            validate_labels=True,
        )

        print(f"Running '{args.task}' on {server_class or '?'} ({version_label})...")
        print("=" * 50)
        result = deployment.run(args.task, server_class, version_label)
    except RemoteCommandError as e:
        print(f"Error: {e}")
        print(f"  {len(e.executed)} command(s) issued; remaining commands were not run.")
        return e.exit_status if 0 < e.exit_status < 256 else 1
    except DeployError as e:
        print(f"Error: {e}")
        return 1

    print("=" * 50)
    if args.dry_run:
        print(f"DRY RUN complete - {result.count} command(s), no changes made")
    else:
        print(f"Done: {result.count} command(s) ran on {deployment.target.ssh_destination}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
