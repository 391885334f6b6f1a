import logging
from typing import AsyncIterator, Optional

from gidgethub.abc import GitHubAPI

from jobtrigger.github.model import (
    CheckRun,
    CommitStatus,
    Content,
    PrFile,
    PullRequest,
    Repository,
)
from jobtrigger.metric import api_call_count

logger = logging.getLogger("jobtrigger")


class API:
    gh: GitHubAPI
    installation: int

    call_count: int

    def __init__(self, gh: GitHubAPI, installation: int):
        self.gh = gh
        self.installation = installation
        self.call_count = 0

    def _count(self) -> None:
        self.call_count += 1
        api_call_count.inc()

    async def get_pull(self, repo_url: str, number: int) -> PullRequest:
        self._count()
        url = f"{repo_url}/pulls/{number}"
        logger.debug("Get pull %s", url)
        return PullRequest.model_validate(await self.gh.getitem(url))

    async def get_content(
        self, repo_url: str, path: str, ref: Optional[str] = None
    ) -> Content:
        self._count()
        url = f"{repo_url}/contents/{path}"
        if ref is not None:
            url += f"?ref={ref}"
        logger.debug("Get file content: %s", url)
        return Content.model_validate(await self.gh.getitem(url))

    async def get_pull_request_files(self, pr: PullRequest) -> AsyncIterator[PrFile]:
        self._count()
        url = f"{pr.base.repo.url}/pulls/{pr.number}/files"
        logger.debug("Getting files for PR #%d %s", pr.number, url)
        async for item in self.gh.getiter(url):
            yield PrFile.model_validate(item)

    async def get_check_runs_for_ref(
        self, repo: Repository, ref: str
    ) -> AsyncIterator[CheckRun]:
        self._count()
        url = f"{repo.url}/commits/{ref}/check-runs"
        logger.debug("Get check runs for ref %s", url)
        async for item in self.gh.getiter(url, iterable_key="check_runs"):
            yield CheckRun.model_validate(item)

    async def get_status_for_ref(
        self, repo: Repository, ref: str
    ) -> AsyncIterator[CommitStatus]:
        self._count()
        url = f"{repo.url}/commits/{ref}/status"
        logger.debug("Get commit status for ref %s", url)
        data = await self.gh.getitem(url)
        for item in data["statuses"]:
            yield CommitStatus(sha=data["sha"], **item)
