"""GitHub pull-request host. Review threads are the pull request's issue comments."""

from __future__ import annotations

import logging

import requests
from github import Auth, Github, GithubException

from biceplens_core.errors import ErrorKind, HostApiError, classify_status
from biceplens_core.hosts.base import BaseHost
from biceplens_core.models import ChangedFile, CommentThread, PullRequestContext

logger = logging.getLogger(__name__)

_DELETED_STATUS = "removed"


def _host_error(action: str, exc: Exception) -> HostApiError:
    if isinstance(exc, GithubException):
        message = exc.data.get("message") if isinstance(exc.data, dict) else exc.data
        return HostApiError(classify_status(exc.status), f"{action}: {message or exc}", exc.status)
    if isinstance(exc, requests.Timeout):
        return HostApiError(ErrorKind.TIMEOUT, f"{action} timed out: {exc}")
    return HostApiError(ErrorKind.SERVER_ERROR, f"{action} failed: {exc}")


class GitHubHost(BaseHost):
    def __init__(self, token: str, timeout: float = 30.0, client: Github | None = None):
        if client is None:
            # Retries belong to call_with_retry.
            client = Github(auth=Auth.Token(token), timeout=int(timeout), retry=None)
        self.client = client
        self._pulls: dict[tuple[str, str, int], tuple] = {}

    def _pull(self, context: PullRequestContext):
        """Return (repo, pull) for the context, fetched once per host instance."""
        key = (context.organization, context.repository, context.pull_request_id)
        if key not in self._pulls:
            name = f"{context.organization}/{context.repository}"
            try:
                repo = self.client.get_repo(name)
                self._pulls[key] = (repo, repo.get_pull(context.pull_request_id))
            except (GithubException, requests.RequestException) as e:
                raise _host_error(f"load {context.ref}", e) from e
        return self._pulls[key]

    def list_threads(self, context: PullRequestContext) -> list[CommentThread]:
        _, pull = self._pull(context)
        try:
            # PaginatedList fetches every page while iterating.
            threads = [CommentThread(id=c.id, body=c.body or "", comment_id=c.id) for c in pull.get_issue_comments()]
        except (GithubException, requests.RequestException) as e:
            raise _host_error(f"list comments on {context.ref}", e) from e
        logger.debug("Listed %d comment(s) on %s", len(threads), context.ref)
        return threads

    def create_thread(self, context: PullRequestContext, body: str, file_path: str | None = None) -> int:
        _, pull = self._pull(context)
        try:
            return pull.create_issue_comment(body).id
        except (GithubException, requests.RequestException) as e:
            raise _host_error(f"comment on {context.ref}", e) from e

    def update_thread(self, context: PullRequestContext, thread: CommentThread, body: str) -> None:
        _, pull = self._pull(context)
        try:
            pull.get_issue_comment(thread.comment_id or thread.id).edit(body)
        except (GithubException, requests.RequestException) as e:
            raise _host_error(f"update comment {thread.id} on {context.ref}", e) from e

    def list_changed_files(self, context: PullRequestContext) -> list[ChangedFile]:
        _, pull = self._pull(context)
        try:
            return [
                ChangedFile(
                    path=f.filename,
                    change_type="delete" if f.status == _DELETED_STATUS else f.status,
                    object_id=f.sha,
                )
                for f in pull.get_files()
            ]
        except (GithubException, requests.RequestException) as e:
            raise _host_error(f"list files of {context.ref}", e) from e

    def get_file_content(self, context: PullRequestContext, changed_file: ChangedFile) -> str:
        repo, pull = self._pull(context)
        try:
            contents = repo.get_contents(changed_file.path, ref=pull.head.sha)
        except (GithubException, requests.RequestException) as e:
            raise _host_error(f"fetch {changed_file.path}", e) from e
        return contents.decoded_content.decode("utf-8", errors="replace")

    def close(self) -> None:
        self.client.close()
