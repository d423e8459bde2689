"""manual-merges: ask contributors before deleting manually merged branches."""

from __future__ import annotations

import click
from rich.console import Console

from janitor_cli.targets import print_results, require_github, resolve_targets
from janitor_core.config import load_remote_config
from janitor_core.deletion import handle_manual_merges
from janitor_core.slack.notifier import SlackNotifier

console = Console()


@click.command("manual-merges")
@click.option("--repo", "repos", multiple=True, help="Repository (owner/name). Repeatable. Defaults to the whole org.")
@click.pass_context
def manual_merges_cmd(ctx, repos: tuple[str, ...]):
    """Send Slack approval requests for branches merged without a pull request.

    The first target repository may ship its own config file (remote_config_path),
    typically to provide the GitHub → Slack user mapping.

    \b
    Environment variables:
      GITHUB_TOKEN      GitHub token (or use gh CLI)
      SLACK_BOT_TOKEN   Slack bot token with chat:write and im:write
      REDIS_URL         Required when store: redis
    """
    config = ctx.obj["config"]
    github = require_github(ctx)
    targets = resolve_targets(github, config, repos)
    if not targets:
        console.print("[yellow]No repositories to scan.[/yellow]")
        return

    config = load_remote_config(lambda path: github.get_file_content(targets[0], path), config)

    if not config.slack_bot_token:
        console.print("[yellow]SLACK_BOT_TOKEN not set - Slack notifications will fail.[/yellow]")

    notifier = SlackNotifier(config.slack_bot_token or "", config.user_mapping, bot_name=config.bot_name)
    results = handle_manual_merges(github, notifier, config, targets, dedup_store=ctx.obj["store"])
    print_results("Manual merge requests", results)

    if any(not r.success for r in results):
        ctx.exit(1)
