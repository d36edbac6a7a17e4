"""Azure DevOps Repos pull-request host on the azure-devops SDK (API 7.1)."""

from __future__ import annotations

import logging
import re

import requests
from azure.devops.exceptions import (
    AzureDevOpsAuthenticationError,
    AzureDevOpsClientRequestError,
    AzureDevOpsServiceError,
)
from azure.devops.v7_1.git import GitClient
from azure.devops.v7_1.git.models import Comment, CommentThreadContext, GitPullRequestCommentThread
from msrest.authentication import BasicAuthentication
from msrest.exceptions import ClientException, ClientRequestError

from biceplens_core.errors import ConfigurationError, ErrorKind, HostApiError, classify_status
from biceplens_core.hosts.base import BaseHost
from biceplens_core.models import ChangedFile, CommentThread, PullRequestContext

logger = logging.getLogger(__name__)

_DEFAULT_HOST = "https://dev.azure.com"
_GUID_RE = re.compile(r"^[0-9a-fA-F]{8}-(?:[0-9a-fA-F]{4}-){3}[0-9a-fA-F]{12}$")
_STATUS_RE = re.compile(r"returned a (\d{3}) status code")
_ACTIVE = 1
_CHANGES_PAGE = 100
_MAX_PAGES = 100
_SDK_ERRORS = (ClientException, requests.RequestException)


def normalize_organization_url(organization: str) -> str:
    """Accept "contoso", "dev.azure.com/contoso" or a full https URL and return the organization URL."""
    org = organization.strip().rstrip("/")
    if org.startswith(("https://", "http://")):
        return org
    org = re.sub(r"^dev\.azure\.com/", "", org)
    return f"{_DEFAULT_HOST}/{org.strip('/')}"


def _host_error(action: str, exc: Exception) -> HostApiError:
    if isinstance(exc, AzureDevOpsAuthenticationError):
        return HostApiError(ErrorKind.AUTH_FAILED, f"{action}: {exc}", 401)
    if isinstance(exc, AzureDevOpsServiceError):
        type_key = exc.type_key or ""
        if "NotFound" in type_key:
            kind = ErrorKind.NOT_FOUND
        elif "Unauthorized" in type_key or "AccessCheck" in type_key:
            kind = ErrorKind.AUTH_FAILED
        else:
            kind = ErrorKind.BAD_REQUEST
        return HostApiError(kind, f"{action}: {exc.message}")
    if isinstance(exc, AzureDevOpsClientRequestError):
        match = _STATUS_RE.search(str(exc))
        status = int(match.group(1)) if match else None
        kind = classify_status(status) if status else ErrorKind.SERVER_ERROR
        return HostApiError(kind, f"{action}: {exc}", status)
    if isinstance(exc, (ClientRequestError, requests.RequestException)):
        inner = getattr(exc, "inner_exception", exc)
        if isinstance(inner, requests.Timeout):
            return HostApiError(ErrorKind.TIMEOUT, f"{action} timed out: {exc}")
        return HostApiError(ErrorKind.SERVER_ERROR, f"{action} could not connect: {exc}")
    return HostApiError(ErrorKind.SERVER_ERROR, f"{action} got an unexpected response: {exc}")


def _git_client(organization_url: str, pat: str, timeout: float) -> GitClient:
    client = GitClient(base_url=organization_url, creds=BasicAuthentication("", pat))
    client.config.connection.timeout = timeout
    # Retries belong to call_with_retry.
    client.config.retry_policy.retries = 0
    return client


def _field(obj, attr: str, key: str):
    """Read ``attr`` from an SDK model, or ``key`` when the SDK left the value as a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, attr, None)


class AzureDevOpsHost(BaseHost):
    def __init__(self, pat: str, organization_url: str, timeout: float = 30.0, client: GitClient | None = None):
        self.timeout = timeout
        self.organization_url = normalize_organization_url(organization_url)
        self.client = client if client is not None else _git_client(self.organization_url, pat, timeout)
        self._repository_ids: dict[tuple[str, str], str] = {}

    def _project(self, context: PullRequestContext) -> str:
        if not context.project:
            raise ConfigurationError("Azure DevOps pull requests need a project name.")
        return context.project

    def repository_id(self, context: PullRequestContext) -> str:
        """Resolve the repository name to its GUID (cached per host instance)."""
        if _GUID_RE.match(context.repository):
            return context.repository
        project = self._project(context)
        key = (project, context.repository)
        if key not in self._repository_ids:
            try:
                repository = self.client.get_repository(context.repository, project=project)
            except _SDK_ERRORS as e:
                raise _host_error(f"resolve repository {context.repository}", e) from e
            self._repository_ids[key] = getattr(repository, "id", None) or context.repository
            logger.debug("Resolved repository %s to %s", context.repository, self._repository_ids[key])
        return self._repository_ids[key]

    def list_threads(self, context: PullRequestContext) -> list[CommentThread]:
        project = self._project(context)
        repository_id = self.repository_id(context)
        try:
            raw_threads = self.client.get_threads(repository_id, context.pull_request_id, project=project)
        except _SDK_ERRORS as e:
            raise _host_error(f"list threads on {context.ref}", e) from e
        threads = [t for t in (_to_thread(raw) for raw in raw_threads or []) if t is not None]
        logger.debug("Listed %d thread(s) on %s", len(threads), context.ref)
        return threads

    def create_thread(self, context: PullRequestContext, body: str, file_path: str | None = None) -> int:
        project = self._project(context)
        thread = GitPullRequestCommentThread(
            comments=[Comment(parent_comment_id=0, content=body)],
            status=_ACTIVE,
        )
        if file_path:
            thread.thread_context = CommentThreadContext(
                file_path=file_path if file_path.startswith("/") else f"/{file_path}"
            )
        try:
            created = self.client.create_thread(
                thread, self.repository_id(context), context.pull_request_id, project=project
            )
        except _SDK_ERRORS as e:
            raise _host_error(f"create thread on {context.ref}", e) from e
        thread_id = getattr(created, "id", None)
        if thread_id is None:
            raise HostApiError(ErrorKind.SERVER_ERROR, f"create thread on {context.ref} returned no thread id")
        return int(thread_id)

    def update_thread(self, context: PullRequestContext, thread: CommentThread, body: str) -> None:
        project = self._project(context)
        try:
            self.client.update_comment(
                Comment(content=body),
                self.repository_id(context),
                context.pull_request_id,
                thread.id,
                thread.comment_id or 1,
                project=project,
            )
        except _SDK_ERRORS as e:
            raise _host_error(f"update thread {thread.id} on {context.ref}", e) from e

    def list_changed_files(self, context: PullRequestContext) -> list[ChangedFile]:
        """Files changed in the pull request's latest iteration."""
        project = self._project(context)
        repository_id = self.repository_id(context)
        try:
            iterations = self.client.get_pull_request_iterations(
                repository_id, context.pull_request_id, project=project
            )
        except _SDK_ERRORS as e:
            raise _host_error(f"list iterations of {context.ref}", e) from e
        if not iterations:
            logger.info("%s has no iterations; nothing changed.", context.ref)
            return []
        latest = max(int(it.id) for it in iterations)

        files: list[ChangedFile] = []
        skip = 0
        for _ in range(_MAX_PAGES):
            try:
                changes = self.client.get_pull_request_iteration_changes(
                    repository_id, context.pull_request_id, latest, project=project, top=_CHANGES_PAGE, skip=skip
                )
            except _SDK_ERRORS as e:
                raise _host_error(f"list changes of {context.ref}", e) from e
            for entry in changes.change_entries or []:
                item = _field(entry, "item", "item")
                path = _field(item, "path", "path")
                if not path or _field(item, "is_folder", "isFolder"):
                    continue
                if _field(item, "git_object_type", "gitObjectType") == "tree":
                    continue
                files.append(
                    ChangedFile(
                        path=path,
                        change_type=str(_field(entry, "change_type", "changeType") or "edit"),
                        object_id=_field(item, "object_id", "objectId"),
                    )
                )
            skip = changes.next_skip or 0
            if not skip:
                break
        else:
            raise HostApiError(
                ErrorKind.SERVER_ERROR, f"changes of {context.ref} did not finish after {_MAX_PAGES} pages"
            )
        logger.debug("Iteration %d of %s changed %d file(s)", latest, context.ref, len(files))
        return files

    def get_file_content(self, context: PullRequestContext, changed_file: ChangedFile) -> str:
        project = self._project(context)
        repository_id = self.repository_id(context)
        try:
            if changed_file.object_id:
                stream = self.client.get_blob_content(repository_id, changed_file.object_id, project=project)
            else:
                stream = self.client.get_item_content(
                    repository_id, changed_file.path, project=project, include_content=True
                )
            content = b"".join(stream)
        except _SDK_ERRORS as e:
            raise _host_error(f"fetch {changed_file.path}", e) from e
        return content.decode("utf-8", errors="replace")


def _to_thread(raw) -> CommentThread | None:
    if raw.is_deleted:
        return None
    comments = [c for c in raw.comments or [] if not c.is_deleted]
    if not comments:
        return None
    first = comments[0]
    return CommentThread(
        id=int(raw.id),
        body=first.content or "",
        comment_id=first.id,
        file_path=_field(raw.thread_context, "file_path", "filePath"),
    )
