"""stale: warn about and close inactive pull requests."""

from __future__ import annotations

import click

from janitor_cli.targets import print_results, require_github, resolve_targets
from janitor_core.stale import handle_stale_prs


@click.command("stale")
@click.option("--repo", "repos", multiple=True, help="Repository (owner/name). Repeatable. Defaults to the whole org.")
@click.pass_context
def stale_cmd(ctx, repos: tuple[str, ...]):
    """Warn on pull requests inactive for warning_days; close them at close_days.

    PRs carrying an excluded label are never touched. Exits with status 1 if
    any PR could not be processed.
    """
    config = ctx.obj["config"]
    github = require_github(ctx)
    targets = resolve_targets(github, config, repos)

    results = handle_stale_prs(github, config, targets)
    print_results("Stale pull requests", results)

    if any(not r.success for r in results):
        ctx.exit(1)
