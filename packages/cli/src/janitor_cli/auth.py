"""GitHub credential lookup for local and CI runs.

Sources, first hit wins:
  1. GITHUB_TOKEN (Actions injects it), then GH_TOKEN (what `gh` itself honours)
  2. `gh auth token`, for a developer already logged in with the GitHub CLI
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
_GH_TIMEOUT_SECONDS = 5


def _token_from_gh_cli() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT_SECONDS,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh CLI token lookup unavailable: %s", type(e).__name__)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None when no source has one."""
    for name in _TOKEN_ENV_VARS:
        token = os.environ.get(name)
        if token:
            logger.debug("Using GitHub token from %s", name)
            return token

    token = _token_from_gh_cli()
    if token:
        logger.debug("Using GitHub token from the gh CLI session")
    return token
