"""cleanup: delete branches merged through a pull request."""

from __future__ import annotations

import json
from pathlib import Path

import click
from rich.console import Console

from janitor_cli.targets import print_results, require_github
from janitor_core.cleanup import MergedBranchCleaner
from janitor_core.models import RepoRef

console = Console()

# Outcomes that mean "leave the branch alone", not "something broke".
_POLICY_REASONS = {
    "Branch is protected",
    "Branch no longer exists",
    "Cannot delete default branch",
    "Branch is not fully merged",
    "Branch has new commits since last check",
}


@click.command("cleanup")
@click.option("--repo", default=None, help="Repository (owner/name).")
@click.option("--branch", default=None, help="Branch to delete.")
@click.option("--sha", default=None, help="Expected head sha. Defaults to the branch's current sha.")
@click.option("--scan", is_flag=True, help="Clean up every PR-merged branch still present in --repo.")
@click.option(
    "--event-path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    envvar="GITHUB_EVENT_PATH",
    help="pull_request event payload (GitHub Actions sets GITHUB_EVENT_PATH).",
)
@click.option("--dry-run", is_flag=True, help="Report what would be deleted without deleting.")
@click.pass_context
def cleanup_cmd(
    ctx,
    repo: str | None,
    branch: str | None,
    sha: str | None,
    scan: bool,
    event_path: str | None,
    dry_run: bool,
):
    """Delete merged branches, re-checking safety right before each delete.

    \b
    Modes:
      --repo R --branch B [--sha S]   one branch
      --repo R --scan                 every PR-merged branch in R
      --event-path FILE               head branch of a merged pull_request event
    """
    config = ctx.obj["config"]
    github = require_github(ctx)
    cleaner = MergedBranchCleaner(github, config, dry_run=dry_run, dedup_store=ctx.obj["store"])

    if repo and (branch or scan):
        try:
            target = RepoRef.parse(repo)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--repo")
        if scan:
            results = cleaner.scan_and_cleanup(target)
        else:
            expected_sha = sha or github.get_branch_sha(target, branch)
            if not expected_sha:
                console.print(f"[yellow]Branch {branch} already deleted or not found.[/yellow]")
                return
            results = [cleaner.cleanup_merged_pr_branch(target, branch, expected_sha)]
    elif event_path:
        event = json.loads(Path(event_path).read_text())
        result = cleaner.cleanup_for_pull_request_event(event)
        if result is None:
            console.print("[dim]Event is not a merged same-repository pull request. Nothing to do.[/dim]")
            return
        results = [result]
    else:
        raise click.UsageError("Pass --repo with --branch or --scan, or --event-path.")

    print_results("Merged branch cleanup", results)

    if any(not r.success and r.error not in _POLICY_REASONS for r in results):
        ctx.exit(1)
