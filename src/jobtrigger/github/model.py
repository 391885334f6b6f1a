from datetime import datetime
from typing import Annotated, Literal, Optional
import base64

import pydantic


class Model(pydantic.BaseModel):
    pass


def _validate_commit_sha(sha: str) -> str:
    if len(sha) != 40:
        raise ValueError("Commit hash must have length 40")
    return sha


CommitSha = Annotated[str, pydantic.AfterValidator(_validate_commit_sha)]


class Content(Model):
    type: str
    encoding: Literal["base64"]
    size: int
    name: str
    path: str
    content: str
    sha: str
    url: str
    html_url: str
    download_url: Optional[str] = None

    def decoded_content(self) -> str:
        if self.encoding != "base64":
            raise ValueError(f"Unknown encoding {self.encoding}")
        return base64.b64decode(self.content).decode()


class Repository(Model):
    id: int
    name: str
    full_name: Optional[str] = None
    url: str
    html_url: Optional[str] = None
    private: Optional[bool] = None


class PrConnection(Model):
    ref: str
    sha: CommitSha
    repo: Repository


class PullRequest(Model):
    url: str
    id: int
    number: int
    state: Literal["open", "closed"]
    base: PrConnection
    head: PrConnection
    html_url: Optional[str] = None

    def __str__(self) -> str:
        name = self.base.repo.name
        if self.base.repo.full_name is not None:
            name = self.base.repo.full_name
        return f"PR({name}#{self.number}, {self.id})"


class App(Model):
    id: int
    slug: str


class CheckRun(Model):
    id: int
    name: str
    head_sha: CommitSha
    status: Literal["completed", "queued", "in_progress", "waiting", "pending"]
    conclusion: Optional[
        Literal[
            "action_required",
            "cancelled",
            "failure",
            "neutral",
            "success",
            "skipped",
            "stale",
            "timed_out",
        ]
    ] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    app: Optional[App] = None
    html_url: Optional[str] = None

    @property
    def is_failure(self) -> bool:
        return self.status == "completed" and self.conclusion in (
            "action_required",
            "cancelled",
            "failure",
            "timed_out",
        )


class CommitStatus(Model):
    url: Optional[str] = None
    id: int
    state: Literal["failure", "pending", "success", "error"]
    created_at: datetime
    updated_at: datetime
    sha: str
    context: str

    @property
    def is_failure(self) -> bool:
        return self.state in ("failure", "error")


class PrFile(Model):
    sha: Optional[str] = None
    filename: str
    status: Literal[
        "added", "removed", "modified", "renamed", "copied", "changed", "unchanged"
    ]
