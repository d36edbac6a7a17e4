from __future__ import annotations

from abc import ABC, abstractmethod

from biceplens_core.models import ChangedFile, CommentThread, PullRequestContext


class BaseHost(ABC):
    """Pull-request host API used by the annotation reconciler and PR mode.

    Implementations raise HostApiError with a classified ErrorKind for every
    failed call so the shared retry policy can decide whether to try again.
    """

    @abstractmethod
    def list_threads(self, context: PullRequestContext) -> list[CommentThread]:
        """Every comment thread on the pull request, following pagination to the end."""

    @abstractmethod
    def create_thread(self, context: PullRequestContext, body: str, file_path: str | None = None) -> int:
        """Open a new thread and return its id."""

    @abstractmethod
    def update_thread(self, context: PullRequestContext, thread: CommentThread, body: str) -> None:
        """Replace the body of the thread's first comment."""

    @abstractmethod
    def list_changed_files(self, context: PullRequestContext) -> list[ChangedFile]: ...

    @abstractmethod
    def get_file_content(self, context: PullRequestContext, changed_file: ChangedFile) -> str: ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()
