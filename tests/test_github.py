from __future__ import annotations

import base64
from datetime import datetime, timezone
import http
from typing import List, Optional

from gidgethub import BadRequest
import pytest

from jobtrigger import config as app_config
from jobtrigger.github import (
    InvalidConfig,
    get_changed_files,
    get_config_from_repo,
    get_contexts,
    latest_check_runs,
    parse_config,
)
from jobtrigger.github.model import (
    CheckRun,
    CommitStatus,
    Content,
    PrFile,
    PullRequest,
)

SHA = "a" * 40


def _pull_request() -> PullRequest:
    repo = {"id": 11, "name": "repo", "full_name": "org/repo", "url": "/repos/org/repo"}
    return PullRequest.model_validate(
        {
            "url": "/repos/org/repo/pulls/42",
            "id": 5001,
            "number": 42,
            "state": "open",
            "base": {"ref": "main", "sha": "b" * 40, "repo": repo},
            "head": {"ref": "feature", "sha": SHA, "repo": repo},
        }
    )


def _check_run(
    id: int,
    name: str,
    conclusion: Optional[str],
    completed_at: Optional[datetime] = None,
) -> CheckRun:
    return CheckRun(
        id=id,
        name=name,
        head_sha=SHA,
        status="completed" if conclusion is not None else "in_progress",
        conclusion=conclusion,
        completed_at=completed_at,
    )


def _status(context: str, state: str) -> CommitStatus:
    now = datetime(2026, 2, 17, 10, 0, tzinfo=timezone.utc)
    return CommitStatus(
        id=1, state=state, created_at=now, updated_at=now, sha=SHA, context=context
    )


class _FakeAPI:
    def __init__(
        self,
        *,
        check_runs: List[CheckRun] = (),
        statuses: List[CommitStatus] = (),
        files: List[str] = (),
        config_yaml: Optional[str] = None,
    ):
        self._check_runs = list(check_runs)
        self._statuses = list(statuses)
        self._files = list(files)
        self._config_yaml = config_yaml
        self.content_calls = []

    async def get_check_runs_for_ref(self, _repo, ref: str):
        assert ref == SHA
        for cr in self._check_runs:
            yield cr

    async def get_status_for_ref(self, _repo, ref: str):
        assert ref == SHA
        for status in self._statuses:
            yield status

    async def get_pull_request_files(self, _pr):
        for f in self._files:
            yield PrFile(filename=f, status="modified")

    async def get_content(self, repo_url: str, path: str, ref: Optional[str] = None):
        self.content_calls.append((repo_url, path, ref))
        if self._config_yaml is None:
            raise BadRequest(http.HTTPStatus.NOT_FOUND)
        return Content(
            type="file",
            encoding="base64",
            size=len(self._config_yaml),
            name=path,
            path=path,
            content=base64.b64encode(self._config_yaml.encode()).decode(),
            sha="c" * 40,
            url=f"{repo_url}/contents/{path}",
            html_url=f"https://github.com/org/repo/blob/main/{path}",
        )


def test_latest_check_runs_prefers_newest_and_running():
    early = datetime(2026, 2, 17, 10, 0, tzinfo=timezone.utc)
    late = datetime(2026, 2, 17, 11, 0, tzinfo=timezone.utc)

    latest = latest_check_runs(
        [
            _check_run(1, "unit", "failure", early),
            _check_run(2, "unit", "success", late),
            _check_run(3, "lint", "success", late),
            _check_run(4, "lint", None),
        ]
    )

    assert latest["unit"].id == 2
    assert latest["lint"].id == 4


@pytest.mark.asyncio
async def test_get_contexts():
    api = _FakeAPI(
        check_runs=[
            _check_run(1, "unit", "failure"),
            _check_run(2, "lint", "success"),
            _check_run(3, "e2e", "timed_out"),
            _check_run(4, "docs", None),
        ],
        statuses=[
            _status("ci/legacy", "error"),
            _status("ci/other", "success"),
            _status("ci/pending", "pending"),
        ],
    )

    failed, all_contexts = await get_contexts(api, _pull_request())

    assert failed == {"unit", "e2e", "ci/legacy"}
    assert all_contexts == {
        "unit",
        "lint",
        "e2e",
        "docs",
        "ci/legacy",
        "ci/other",
        "ci/pending",
    }


@pytest.mark.asyncio
async def test_get_contexts_ignore_filter(monkeypatch):
    monkeypatch.setattr(app_config, "CONTEXT_IGNORE_FILTER", r"bot/")
    api = _FakeAPI(
        check_runs=[_check_run(1, "bot/summary", "failure")],
        statuses=[_status("ci/unit", "failure")],
    )

    failed, all_contexts = await get_contexts(api, _pull_request())

    assert failed == {"ci/unit"}
    assert all_contexts == {"ci/unit"}


@pytest.mark.asyncio
async def test_get_changed_files():
    api = _FakeAPI(files=["src/a.py", "docs/b.md"])
    assert await get_changed_files(api, _pull_request()) == ["src/a.py", "docs/b.md"]


@pytest.mark.asyncio
async def test_get_config_from_repo(monkeypatch):
    monkeypatch.setattr(app_config, "OVERRIDE_CONFIG", None)
    api = _FakeAPI(config_yaml="presubmits:\n  - name: unit\n    always_run: true\n")

    config = await get_config_from_repo(api, "/repos/org/repo", ref="b" * 40)

    assert [ps.name for ps in config.presubmits] == ["unit"]
    assert api.content_calls == [
        ("/repos/org/repo", app_config.CONFIG_FILE, "b" * 40)
    ]


@pytest.mark.asyncio
async def test_get_config_from_repo_missing(monkeypatch):
    monkeypatch.setattr(app_config, "OVERRIDE_CONFIG", None)
    assert await get_config_from_repo(_FakeAPI(), "/repos/org/repo") is None


@pytest.mark.asyncio
async def test_get_config_from_repo_override(monkeypatch, tmp_path):
    override = tmp_path / "override.yml"
    override.write_text("presubmits:\n  - name: local\n")
    monkeypatch.setattr(app_config, "OVERRIDE_CONFIG", str(override))

    api = _FakeAPI()
    config = await get_config_from_repo(api, "/repos/org/repo")

    assert [ps.name for ps in config.presubmits] == ["local"]
    assert api.content_calls == []


def test_parse_config():
    assert parse_config("").presubmits == []

    with pytest.raises(InvalidConfig) as excinfo:
        parse_config("presubmits:\n  - name: a\n  - name: a\n", source_url="x.yml")
    assert excinfo.value.source_url == "x.yml"
    assert "name: a" in excinfo.value.raw_config

    with pytest.raises(InvalidConfig):
        parse_config("presubmits: [")
