import io
import logging
import re
from typing import Dict, List, Optional, Set, Tuple

import aiocache
from gidgethub import BadRequest
from gidgethub.abc import GitHubAPI
from gidgethub.apps import get_installation_access_token
import pydantic
import yaml

from jobtrigger import config as app_config
from jobtrigger.github.api import API
from jobtrigger.github.model import CheckRun, PullRequest
from jobtrigger.model import JobConfig

logger = logging.getLogger("jobtrigger")


class InvalidConfig(Exception):
    raw_config: str
    source_url: Optional[str]

    def __init__(self, *args, **kwargs):
        self.raw_config = kwargs.pop("raw_config")
        self.source_url = kwargs.pop("source_url")
        super().__init__(*args, **kwargs)


@aiocache.cached(ttl=app_config.ACCESS_TOKEN_TTL, key_builder=lambda fn, gh, id: id)
async def get_access_token(gh: GitHubAPI, installation_id: int) -> str:
    logger.debug("Getting NEW installation access token for %d", installation_id)
    access_token_response = await get_installation_access_token(
        gh,
        installation_id=installation_id,
        app_id=app_config.GITHUB_APP_ID,
        private_key=app_config.GITHUB_PRIVATE_KEY,
    )
    return access_token_response["token"]


def parse_config(raw: str, source_url: Optional[str] = None) -> JobConfig:
    try:
        data = yaml.safe_load(io.StringIO(raw))
    except yaml.YAMLError as e:
        raise InvalidConfig(str(e), raw_config=raw, source_url=source_url)
    try:
        return JobConfig() if data is None else JobConfig.model_validate(data)
    except pydantic.ValidationError as e:
        raise InvalidConfig(str(e), raw_config=raw, source_url=source_url)


async def get_config_from_repo(
    api: API, repo_url: str, ref: Optional[str] = None
) -> Optional[JobConfig]:
    if app_config.OVERRIDE_CONFIG is not None:
        with open(app_config.OVERRIDE_CONFIG) as fh:
            return parse_config(fh.read(), source_url=app_config.OVERRIDE_CONFIG)

    try:
        content = await api.get_content(repo_url, app_config.CONFIG_FILE, ref=ref)
    except BadRequest as e:
        if e.status_code == 404:
            return None
        raise e

    if content.type != "file":
        raise ValueError("Config file is not a file")

    return parse_config(content.decoded_content(), source_url=content.html_url)


def _ignored(context: str) -> bool:
    if app_config.CONTEXT_IGNORE_FILTER is None:
        return False
    if re.match(app_config.CONTEXT_IGNORE_FILTER, context):
        logger.debug(
            "Skipping context '%s' due to filter '%s'",
            context,
            app_config.CONTEXT_IGNORE_FILTER,
        )
        return True
    return False


def latest_check_runs(check_runs: List[CheckRun]) -> Dict[str, CheckRun]:
    latest: Dict[str, CheckRun] = {}
    for cr in check_runs:
        if ex_cr := latest.get(cr.name):
            if cr.completed_at is None or ex_cr.completed_at is None:
                latest[cr.name] = cr
            elif cr.completed_at > ex_cr.completed_at:
                latest[cr.name] = cr
        else:
            latest[cr.name] = cr
    return latest


async def get_contexts(api: API, pr: PullRequest) -> Tuple[Set[str], Set[str]]:
    """Collect failed and all reported contexts for the head of ``pr``."""
    failed_contexts: Set[str] = set()
    all_contexts: Set[str] = set()

    check_runs = [
        cr async for cr in api.get_check_runs_for_ref(pr.base.repo, pr.head.sha)
    ]
    for name, cr in latest_check_runs(check_runs).items():
        if _ignored(name):
            continue
        all_contexts.add(name)
        if cr.is_failure:
            failed_contexts.add(name)

    async for status in api.get_status_for_ref(pr.base.repo, ref=pr.head.sha):
        if _ignored(status.context):
            continue
        all_contexts.add(status.context)
        if status.is_failure:
            failed_contexts.add(status.context)

    logger.debug(
        "Contexts for %s: failed=%s all=%s",
        pr,
        sorted(failed_contexts),
        sorted(all_contexts),
    )
    return failed_contexts, all_contexts


async def get_changed_files(api: API, pr: PullRequest) -> List[str]:
    changed_files = [f.filename async for f in api.get_pull_request_files(pr)]
    logger.debug("%s changes %d files", pr, len(changed_files))
    return changed_files
