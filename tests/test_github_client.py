from typing import Any

import pytest

from binbuilder.github_client import GitHubClient, GitHubError


class _Response:
    def __init__(self, status_code: int, payload: Any) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self) -> Any:
        return self._payload


def test_get_repo(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    def fake_request(method: str, url: str, **kwargs: Any) -> _Response:
        seen.update(method=method, url=url, headers=kwargs["headers"])
        return _Response(
            200,
            {
                "html_url": "https://github.com/ckoshka/everything",
                "clone_url": "https://github.com/ckoshka/everything.git",
                "default_branch": "master",
            },
        )

    monkeypatch.setattr("binbuilder.github_client.requests.request", fake_request)
    repo = GitHubClient("tok").get_repo("ckoshka", "everything")

    assert seen["method"] == "GET"
    assert seen["url"] == "https://api.github.com/repos/ckoshka/everything"
    assert seen["headers"]["Authorization"] == "Bearer tok"
    assert repo.clone_url == "https://github.com/ckoshka/everything.git"
    assert repo.default_branch == "master"


def test_anonymous_client_sends_no_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, **kwargs: Any) -> _Response:
        assert "Authorization" not in kwargs["headers"]
        return _Response(200, {"html_url": "h", "clone_url": "c"})

    monkeypatch.setattr("binbuilder.github_client.requests.request", fake_request)
    assert GitHubClient().get_repo("a", "b").default_branch == "main"


def test_missing_repo_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "binbuilder.github_client.requests.request",
        lambda method, url, **kwargs: _Response(404, {"message": "Not Found"}),
    )
    with pytest.raises(GitHubError, match="404"):
        GitHubClient().get_repo("a", "missing")
