"""Tests for the GitHub host with a mocked PyGithub client."""

from unittest.mock import MagicMock

import pytest
from github import GithubException

from biceplens_core.errors import ErrorKind, HostApiError
from biceplens_core.hosts.github import GitHubHost
from biceplens_core.models import ChangedFile, CommentThread, HostKind, PullRequestContext

CONTEXT = PullRequestContext(
    host=HostKind.GITHUB,
    organization="contoso",
    repository="platform",
    pull_request_id=8,
    credential="ghp_token",
)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def pull(client):
    return client.get_repo.return_value.get_pull.return_value


@pytest.fixture
def host(client):
    return GitHubHost(token="ghp_token", client=client)


class TestGitHubHost:
    def test_pull_is_loaded_once(self, host, client):
        host.list_threads(CONTEXT)
        host.list_threads(CONTEXT)
        client.get_repo.assert_called_once_with("contoso/platform")
        client.get_repo.return_value.get_pull.assert_called_once_with(8)

    def test_list_threads_maps_issue_comments(self, host, pull):
        pull.get_issue_comments.return_value = [MagicMock(id=1, body="hello"), MagicMock(id=2, body=None)]
        assert host.list_threads(CONTEXT) == [
            CommentThread(id=1, body="hello", comment_id=1),
            CommentThread(id=2, body="", comment_id=2),
        ]

    def test_create_thread_returns_comment_id(self, host, pull):
        pull.create_issue_comment.return_value.id = 77
        assert host.create_thread(CONTEXT, "body", "main.bicep") == 77
        pull.create_issue_comment.assert_called_once_with("body")

    def test_update_thread_edits_comment(self, host, pull):
        host.update_thread(CONTEXT, CommentThread(id=5, body="old", comment_id=5), "new")
        pull.get_issue_comment.assert_called_once_with(5)
        pull.get_issue_comment.return_value.edit.assert_called_once_with("new")

    def test_removed_files_are_marked_deleted(self, host, pull):
        pull.get_files.return_value = [
            MagicMock(filename="main.bicep", status="modified", sha="a"),
            MagicMock(filename="old.bicep", status="removed", sha="b"),
        ]
        assert host.list_changed_files(CONTEXT) == [
            ChangedFile(path="main.bicep", change_type="modified", object_id="a"),
            ChangedFile(path="old.bicep", change_type="delete", object_id="b"),
        ]

    def test_file_content_at_head(self, host, client, pull):
        pull.head.sha = "headsha"
        repo = client.get_repo.return_value
        repo.get_contents.return_value.decoded_content = b"param x string\n"
        content = host.get_file_content(CONTEXT, ChangedFile(path="main.bicep", change_type="modified"))
        assert content == "param x string\n"
        repo.get_contents.assert_called_once_with("main.bicep", ref="headsha")

    @pytest.mark.parametrize(
        "status,kind",
        [
            (401, ErrorKind.AUTH_FAILED),
            (404, ErrorKind.NOT_FOUND),
            (422, ErrorKind.BAD_REQUEST),
            (502, ErrorKind.SERVER_ERROR),
        ],
    )
    def test_github_errors_are_classified(self, host, pull, status, kind):
        pull.create_issue_comment.side_effect = GithubException(status, {"message": "boom"})
        with pytest.raises(HostApiError) as exc:
            host.create_thread(CONTEXT, "body")
        assert exc.value.kind is kind
        assert "boom" in str(exc.value)

    def test_load_failure_is_a_host_error(self, host, client):
        client.get_repo.side_effect = GithubException(404, {"message": "Not Found"})
        with pytest.raises(HostApiError) as exc:
            host.list_threads(CONTEXT)
        assert exc.value.kind is ErrorKind.NOT_FOUND

    def test_close_closes_client(self, host, client):
        with host:
            pass
        client.close.assert_called_once()

    def test_client_leaves_retries_to_the_shared_policy(self, mocker):
        github = mocker.patch("biceplens_core.hosts.github.Github")
        GitHubHost(token="ghp_token", timeout=12.5)
        kwargs = github.call_args.kwargs
        assert kwargs["retry"] is None
        assert kwargs["timeout"] == 12
