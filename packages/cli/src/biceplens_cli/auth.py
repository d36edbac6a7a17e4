"""Pull-request host credential resolution.

Resolution order (stops at first success):
  1. The --pat option
  2. The host's environment variable: AZURE_DEVOPS_PAT (or SYSTEM_ACCESSTOKEN
     inside an Azure Pipelines job) for Azure DevOps, GITHUB_TOKEN for GitHub
  3. `gh auth token` for GitHub (GitHub CLI session after `gh auth login`)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_HOST_ENV_VARS = {
    "azure": ("AZURE_DEVOPS_PAT", "SYSTEM_ACCESSTOKEN"),
    "github": ("GITHUB_TOKEN",),
}


def _gh_cli_token() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode == 0:
        token = result.stdout.strip()
        if token:
            logger.debug("Resolved GitHub token via gh CLI session.")
            return token
    return None


def resolve_host_token(host: str, explicit: str | None = None) -> str | None:
    """Return a credential for ``host`` or None if no source provides one.

    Never raises: callers check for None and emit a UsageError.
    """
    if explicit:
        return explicit

    for env_var in _HOST_ENV_VARS.get(host, ()):
        token = os.environ.get(env_var)
        if token:
            logger.debug("Using %s for the %s host.", env_var, host)
            return token

    if host == "github":
        return _gh_cli_token()
    return None
