"""Shared helpers for commands: repository targeting and result reporting."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from janitor_core.models import ActionResult, RepoRef, summarize

console = Console()


def require_github(ctx: click.Context):
    """Return a GitHubClient for the resolved token, or raise a UsageError."""
    from janitor_core.gh.client import GitHubClient

    config = ctx.obj["config"]
    if not config.github_token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    return GitHubClient(config.github_token)


def resolve_targets(github, config, repos: tuple[str, ...]) -> list[RepoRef]:
    """Explicit --repo values win; otherwise every repo in the configured organization."""
    if repos:
        try:
            return [RepoRef.parse(r) for r in repos]
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--repo")
    if not config.organization:
        raise click.UsageError("Pass --repo owner/name or set bot.organization in the config file.")
    targets = github.list_org_repos(config.organization)
    console.print(f"[dim]Found {len(targets)} repositories in {config.organization}.[/dim]")
    return targets


def print_results(title: str, results: list[ActionResult]) -> None:
    if not results:
        console.print("[yellow]Nothing to do.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Repository")
    table.add_column("Target")
    table.add_column("Action", width=24)
    table.add_column("Result")

    for r in results:
        target = r.details.get("branch_name") or (f"#{r.details['pr_number']}" if "pr_number" in r.details else "")
        outcome = "[green]ok[/green]" if r.success else f"[red]{r.error}[/red]"
        table.add_row(r.details.get("repo", ""), target, r.action, outcome)

    console.print(table)
    totals = summarize(results)
    console.print(f"{totals['successful']} succeeded, {totals['failed']} failed.")
