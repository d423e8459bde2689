"""respond: resolve a Slack approval button click."""

from __future__ import annotations

import click
from rich.console import Console

from janitor_cli.targets import require_github
from janitor_core.branches import BranchAnalyzer
from janitor_core.interactions import resolve_interaction

console = Console()


@click.command("respond")
@click.option("--payload", "value", required=True, help="The button value from the Slack interaction.")
@click.option("--approve/--reject", "approved", default=None, required=True, help="Delete the branch or keep it.")
@click.pass_context
def respond_cmd(ctx, value: str, approved: bool):
    """Apply a delete/keep decision carried by a Slack button payload.

    Works without the process that sent the request: the payload names the
    branch, and approval re-runs every safety check before deleting.
    """
    config = ctx.obj["config"]
    github = require_github(ctx)
    analyzer = BranchAnalyzer(github, config)

    result, message = resolve_interaction(value, approved, analyzer, github, ctx.obj["store"])
    style = "green" if result.success else "red"
    console.print(f"[{style}]{message}[/{style}]")

    if not result.success:
        ctx.exit(1)
