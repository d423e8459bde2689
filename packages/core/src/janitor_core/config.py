from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Optional

import yaml

from janitor_core.utils.patterns import matches

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict = {
    "bot": {
        "name": "Repo Janitor",
        "organization": "",
        "avatar_url": "",
    },
    "stale_prs": {
        "warning_days": 7,
        "close_days": 14,
        "exclude_labels": ["pinned", "security", "do-not-close"],
    },
    "branches": {
        "protected_patterns": ["main", "master", "develop", "release/*"],
        "exclude_patterns": ["dependabot/*"],
    },
    "user_mapping": {},  # GitHub login -> Slack user ID
    "store": "noop",  # "redis" | "sqlite" | "noop"
    "store_path": ".janitor.db",
    "remote_config_path": ".github/janitor.yml",
}

_SECTIONS = ("bot", "stale_prs", "branches")


@dataclass(frozen=True)
class StalePrConfig:
    warning_days: int = 7
    close_days: int = 14
    exclude_labels: frozenset[str] = frozenset()


@dataclass(frozen=True)
class BotConfig:
    """Immutable per-run configuration.

    Built by layering the defaults, the local YAML file, CLI overrides and
    (optionally) a repository-supplied file. Each layer returns a new instance.
    """

    bot_name: str = "Repo Janitor"
    organization: str = ""
    avatar_url: str = ""
    protected_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    stale_prs: StalePrConfig = field(default_factory=StalePrConfig)
    user_mapping: dict[str, str] = field(default_factory=dict)
    store: str = "noop"
    store_path: str = ".janitor.db"
    remote_config_path: str = ".github/janitor.yml"
    github_token: str | None = None
    slack_bot_token: str | None = None
    redis_url: str | None = None


def _as_mapping(value, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("Ignoring config %s: expected a mapping, got %s", name, type(value).__name__)
        return {}
    return value


def _as_str(value, default: str, name: str) -> str:
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        logger.warning("Ignoring config %s: expected a string, got %s", name, type(value).__name__)
        return default
    return str(value)


def _as_days(value, default: int, name: str) -> int:
    """Positive whole days. Anything else keeps ``default``."""
    if value is None:
        return default
    if isinstance(value, bool):
        days = None
    else:
        try:
            days = int(value)
        except (TypeError, ValueError):
            days = None
    if days is None or days <= 0:
        logger.warning("Ignoring config %s: %r is not a positive number of days", name, value)
        return default
    return days


def _as_str_tuple(value, default: tuple, name: str) -> tuple:
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        logger.warning("Ignoring config %s: expected a list, got %s", name, type(value).__name__)
        return default
    return tuple(str(v) for v in value if v is not None and v != "")


def _as_user_mapping(value, name: str) -> dict[str, str]:
    return {str(k): str(v) for k, v in _as_mapping(value, name).items() if v}


def _merge_dict(base: dict, overrides) -> dict:
    """Merge a raw YAML mapping over ``base``, section by section."""
    merged = {key: (dict(value) if isinstance(value, dict) else value) for key, value in base.items()}
    for key, value in _as_mapping(overrides, "document").items():
        if key in _SECTIONS or key == "user_mapping":
            merged[key] = {**merged.get(key, {}), **_as_mapping(value, key)}
        else:
            merged[key] = value
    return merged


def _from_dict(data: dict) -> BotConfig:
    defaults = BotConfig()
    bot = _as_mapping(data.get("bot"), "bot")
    stale = _as_mapping(data.get("stale_prs"), "stale_prs")
    branches = _as_mapping(data.get("branches"), "branches")
    return BotConfig(
        bot_name=_as_str(bot.get("name"), DEFAULT_CONFIG["bot"]["name"], "bot.name"),
        organization=_as_str(bot.get("organization"), "", "bot.organization"),
        avatar_url=_as_str(bot.get("avatar_url"), "", "bot.avatar_url"),
        protected_patterns=_as_str_tuple(
            branches.get("protected_patterns"),
            tuple(DEFAULT_CONFIG["branches"]["protected_patterns"]),
            "branches.protected_patterns",
        ),
        exclude_patterns=_as_str_tuple(
            branches.get("exclude_patterns"),
            tuple(DEFAULT_CONFIG["branches"]["exclude_patterns"]),
            "branches.exclude_patterns",
        ),
        stale_prs=StalePrConfig(
            warning_days=_as_days(stale.get("warning_days"), defaults.stale_prs.warning_days, "stale_prs.warning_days"),
            close_days=_as_days(stale.get("close_days"), defaults.stale_prs.close_days, "stale_prs.close_days"),
            exclude_labels=frozenset(
                _as_str_tuple(
                    stale.get("exclude_labels"),
                    tuple(DEFAULT_CONFIG["stale_prs"]["exclude_labels"]),
                    "stale_prs.exclude_labels",
                )
            ),
        ),
        user_mapping=_as_user_mapping(data.get("user_mapping"), "user_mapping"),
        store=_as_str(data.get("store"), "noop", "store"),
        store_path=_as_str(data.get("store_path"), ".janitor.db", "store_path"),
        remote_config_path=_as_str(
            data.get("remote_config_path"), DEFAULT_CONFIG["remote_config_path"], "remote_config_path"
        ),
    )


def load_config(config_path: str = ".janitor.yml", cli_overrides: Optional[dict] = None) -> BotConfig:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .janitor.yml in the current directory
      3. CLI argument overrides (top-level keys; None values are ignored)

    A config file that cannot be parsed is logged and ignored.
    """
    data = _merge_dict(DEFAULT_CONFIG, {})

    path = Path(config_path)
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
            data = _merge_dict(data, file_config)
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Failed to load config from %s, using defaults: %s", config_path, e)

    if cli_overrides:
        data = _merge_dict(data, {k: v for k, v in cli_overrides.items() if v is not None})

    return replace(
        _from_dict(data),
        github_token=os.environ.get("GITHUB_TOKEN"),
        slack_bot_token=os.environ.get("SLACK_BOT_TOKEN"),
        redis_url=os.environ.get("REDIS_URL"),
    )


def merge_remote_config(config: BotConfig, remote_text: str | None) -> BotConfig:
    """Overlay a repository-supplied YAML document on ``config``.

    Remote fields win only when they are non-empty; the user mapping is a union
    with remote entries taking precedence. Invalid YAML leaves ``config`` as is.
    """
    if not remote_text:
        return config
    try:
        remote = yaml.safe_load(remote_text) or {}
    except yaml.YAMLError as e:
        logger.warning("Ignoring unparseable remote config: %s", e)
        return config
    if not isinstance(remote, dict):
        logger.warning("Ignoring remote config: expected a mapping, got %s", type(remote).__name__)
        return config

    bot = _as_mapping(remote.get("bot"), "bot")
    stale = _as_mapping(remote.get("stale_prs"), "stale_prs")
    branches = _as_mapping(remote.get("branches"), "branches")

    return replace(
        config,
        bot_name=_as_str(bot.get("name"), config.bot_name, "bot.name"),
        organization=_as_str(bot.get("organization"), config.organization, "bot.organization"),
        avatar_url=_as_str(bot.get("avatar_url"), config.avatar_url, "bot.avatar_url"),
        protected_patterns=_as_str_tuple(branches.get("protected_patterns"), (), "branches.protected_patterns")
        or config.protected_patterns,
        exclude_patterns=_as_str_tuple(branches.get("exclude_patterns"), (), "branches.exclude_patterns")
        or config.exclude_patterns,
        stale_prs=StalePrConfig(
            warning_days=_as_days(stale.get("warning_days"), config.stale_prs.warning_days, "stale_prs.warning_days"),
            close_days=_as_days(stale.get("close_days"), config.stale_prs.close_days, "stale_prs.close_days"),
            exclude_labels=frozenset(_as_str_tuple(stale.get("exclude_labels"), (), "stale_prs.exclude_labels"))
            or config.stale_prs.exclude_labels,
        ),
        user_mapping={**config.user_mapping, **_as_user_mapping(remote.get("user_mapping"), "user_mapping")},
    )


def load_remote_config(fetch: Callable[[str], str | None], config: BotConfig) -> BotConfig:
    """Fetch ``config.remote_config_path`` with ``fetch`` and merge it in.

    ``fetch`` is usually ``lambda path: github.get_file_content(repo, path)``.
    """
    try:
        text = fetch(config.remote_config_path)
    except Exception as e:
        logger.warning("Could not fetch remote config %s: %s", config.remote_config_path, e)
        return config
    if text is None:
        logger.debug("No remote config found at %s", config.remote_config_path)
        return config
    return merge_remote_config(config, text)


def is_protected_branch(branch_name: str, config: BotConfig) -> bool:
    return matches(branch_name, config.protected_patterns)


def is_excluded_branch(branch_name: str, config: BotConfig) -> bool:
    return matches(branch_name, config.exclude_patterns)


def has_excluded_label(labels, config: BotConfig) -> bool:
    return any(label in config.stale_prs.exclude_labels for label in labels)
