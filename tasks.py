"""Invoke tasks for railsdeploy development and deployment."""

import shlex

from invoke import task
from invoke.context import Context


def _railsdeploy(task_name: str, server: str, version: str, dry_run: bool, verbose: bool) -> str:
    cmd = f"uv run railsdeploy {task_name} --server {shlex.quote(server)} --version {shlex.quote(version)}"
    if dry_run:
        cmd += " --dry-run"
    if verbose:
        cmd += " --verbose"
    return cmd


@task
def deploy(ctx: Context, server: str, version: str, dry_run: bool = False, verbose: bool = False) -> None:
    """Deploy the application to a version slot.

    Args:
        ctx: Invoke context
        server: Server class (qa, prod)
        version: Version slot on the server
        dry_run: Print the commands instead of running them
        verbose: Print every command
    """
    ctx.run(_railsdeploy("deploy", server, version, dry_run, verbose), pty=True)


@task(name="setup-all")
def setup_all(ctx: Context, server: str, version: str, dry_run: bool = False, verbose: bool = False) -> None:
    """Set up a new version slot (folders, database, Apache) and deploy it.

    Args:
        ctx: Invoke context
        server: Server class (qa, prod)
        version: Version slot on the server
        dry_run: Print the commands instead of running them
        verbose: Print every command
    """
    ctx.run(_railsdeploy("setup:all", server, version, dry_run, verbose), pty=True)


@task(name="list-tasks")
def list_tasks(ctx: Context) -> None:
    """List the deployment tasks."""
    ctx.run("uv run railsdeploy --list")


@task
def test(ctx: Context, verbose: bool = False, coverage: bool = False) -> None:
    """Run the test suite.

    Args:
        ctx: Invoke context
        verbose: Enable verbose output
        coverage: Run with coverage report
    """
    cmd = "uv run pytest"
    if verbose:
        cmd += " -v"
    if coverage:
        cmd += " --cov=railsdeploy --cov-report=term-missing"
    ctx.run(cmd, pty=True)


@task
def clean(ctx: Context) -> None:
    """Clean up temporary files."""
    for pattern in ["__pycache__", "*.pyc", "*.pyo", ".pytest_cache"]:
        ctx.run(f"find . -name '{pattern}' -exec rm -rf {{}} + 2>/dev/null || true", warn=True)

    for path in ["build", "dist", "*.egg-info", ".eggs"]:
        ctx.run(f"rm -rf {path} 2>/dev/null || true", warn=True)

    print("Cleanup complete")
