from __future__ import annotations

from biceplens_core.errors import ConfigurationError
from biceplens_core.hosts.base import BaseHost
from biceplens_core.models import HostKind, PullRequestContext


def get_host(context: PullRequestContext, timeout: float = 30.0) -> BaseHost:
    """Build the host client for ``context.host`` authenticated with ``context.credential``."""
    if not context.credential:
        raise ConfigurationError(f"No credential available for the {context.host.value} host.")
    if context.host is HostKind.AZURE:
        from biceplens_core.hosts.azure_devops import AzureDevOpsHost

        return AzureDevOpsHost(pat=context.credential, organization_url=context.organization, timeout=timeout)
    if context.host is HostKind.GITHUB:
        from biceplens_core.hosts.github import GitHubHost

        return GitHubHost(token=context.credential, timeout=timeout)
    raise ConfigurationError(f"Unknown host: {context.host!r}")
