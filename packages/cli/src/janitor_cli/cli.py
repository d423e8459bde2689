"""CLI entry point for repo-janitor.

Commands:
  stale          warn about and close inactive pull requests
  cleanup        delete branches merged through a pull request
  manual-merges  ask contributors before deleting manually merged branches
  respond        resolve a Slack approval button click
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from janitor_cli.commands.cleanup import cleanup_cmd
from janitor_cli.commands.manual import manual_merges_cmd
from janitor_cli.commands.respond import respond_cmd
from janitor_cli.commands.stale import stale_cmd

console = Console()


def _build_store(config):
    """Instantiate the configured dedup store from .janitor.yml settings.

    Store selection hierarchy:
      store: redis  → RedisDedupStore  (requires REDIS_URL)
      store: sqlite → SQLiteDedupStore (uses store_path or .janitor.db)
      (default)     → NoOpDedupStore   (no dedup, every run re-notifies)
    """
    from janitor_store.noop import NoOpDedupStore

    if config.store == "redis":
        from janitor_store.redis_store import RedisDedupStore

        if not config.redis_url:
            console.print("[yellow]RedisDedupStore requires REDIS_URL. Falling back to no store.[/yellow]")
            return NoOpDedupStore()
        return RedisDedupStore(url=config.redis_url)

    if config.store == "sqlite":
        from janitor_store.sqlite import SQLiteDedupStore

        return SQLiteDedupStore(db_path=config.store_path)

    return NoOpDedupStore()


@click.group()
@click.version_option(
    version=importlib.metadata.version("repo-janitor"),
    prog_name="janitor",
)
@click.option(
    "--config",
    "config_path",
    default=".janitor.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="JANITOR_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Repository hygiene bot: stale PRs and merged branches."""
    from dataclasses import replace

    from janitor_cli.auth import resolve_github_token
    from janitor_core.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    ctx.ensure_object(dict)

    config = load_config(config_path)

    # Resolve token early so all subcommands share the same resolution.
    token = resolve_github_token()
    if token:
        config = replace(config, github_token=token)

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(stale_cmd)
main.add_command(cleanup_cmd)
main.add_command(manual_merges_cmd)
main.add_command(respond_cmd)
