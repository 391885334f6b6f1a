import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, NoReturn, Set, Tuple

import aiohttp
import cachetools
import gidgethub
from gidgethub import aiohttp as gh_aiohttp
import typer

from jobtrigger import config
from jobtrigger.filter import (
    DependencyError,
    available_presubmits,
    filter_presubmits,
    memoize_changes,
    presubmit_filter,
)
from jobtrigger.github import (
    InvalidConfig,
    get_access_token,
    get_changed_files,
    get_config_from_repo,
    get_contexts,
    parse_config,
)
from jobtrigger.github.api import API
from jobtrigger.logger import configure_logging, get_logger
from jobtrigger.metric import push_metrics
from jobtrigger.model import JobConfig
from jobtrigger.report import help_requested, render_available, render_plan

logger = get_logger()

app = typer.Typer()
httpcache = cachetools.LRUCache(maxsize=500)


@app.callback()
def init():
    configure_logging()


def load_config(config_file: Path) -> JobConfig:
    try:
        return parse_config(config_file.read_text(), source_url=str(config_file))
    except InvalidConfig as e:
        typer.echo(f"Invalid config file {e.source_url}:\n{e}", err=True)
        raise typer.Exit(code=1)


def _fail(e: Exception) -> NoReturn:
    logger.error("Evaluation failed: %s", e)
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(code=1)


@app.command()
def evaluate(
    config_file: Path,
    body: str = typer.Option(..., help="Command text posted on the pull request"),
    branch: str = typer.Option("main", help="Base branch of the pull request"),
    changed: List[str] = typer.Option([], help="Changed file path"),
    failed: List[str] = typer.Option([], help="Context that reported a failure"),
    context: List[str] = typer.Option([], help="Context that reported any result"),
    honor_ok_to_test: bool = typer.Option(config.HONOR_OK_TO_TEST),
):
    """Decide which presubmits a command triggers, without talking to GitHub."""
    job_config = load_config(config_file)
    presubmits = job_config.presubmits

    def contexts() -> Tuple[Set[str], Set[str]]:
        return set(failed), set(context) | set(failed)

    def changes() -> List[str]:
        return list(changed)

    try:
        flt = presubmit_filter(honor_ok_to_test, contexts, body, logger)
        report = filter_presubmits(flt, changes, branch, presubmits, logger)
        typer.echo(render_plan(report))
        if help_requested(body, presubmits):
            result = available_presubmits(changes, "", "", branch, presubmits)
            typer.echo(render_available(result))
    except DependencyError as e:
        _fail(e)


@app.command()
def available(
    config_file: Path,
    branch: str = typer.Option("main", help="Base branch of the pull request"),
    changed: List[str] = typer.Option([], help="Changed file path"),
):
    """List the commands that can trigger presubmits on a branch."""
    job_config = load_config(config_file)

    def changes() -> List[str]:
        return list(changed)

    try:
        result = available_presubmits(
            changes, "", "", branch, job_config.presubmits, logger
        )
    except DependencyError as e:
        _fail(e)
    typer.echo(render_available(result))


@asynccontextmanager
async def installation_client(installation: int):
    async with aiohttp.ClientSession() as session:
        gh = gh_aiohttp.GitHubAPI(session, __name__)

        token = await get_access_token(gh, installation)

        gh = gh_aiohttp.GitHubAPI(
            session,
            __name__,
            oauth_token=token,
            cache=httpcache,
        )

        yield API(gh, installation)


@app.command()
def plan(
    repo: str,
    number: int,
    installation: int,
    body: str = typer.Option(..., help="Command text posted on the pull request"),
    honor_ok_to_test: bool = typer.Option(config.HONOR_OK_TO_TEST),
):
    """Decide which presubmits a command on a GitHub pull request triggers."""
    repo_url = f"/repos/{repo}"

    async def load():
        async with installation_client(installation) as api:
            pr = await api.get_pull(repo_url, number)
            job_config = await get_config_from_repo(api, repo_url, ref=pr.base.sha)
            return pr, job_config

    try:
        pr, job_config = asyncio.run(load())
    except InvalidConfig as e:
        typer.echo(f"Invalid config file {e.source_url}:\n{e}", err=True)
        raise typer.Exit(code=1)
    except (gidgethub.GitHubException, aiohttp.ClientError, ValueError) as e:
        _fail(e)

    if job_config is None:
        typer.echo(f"No {config.CONFIG_FILE} found in {repo}")
        raise typer.Exit()

    async def fetch_contexts():
        async with installation_client(installation) as api:
            return await get_contexts(api, pr)

    async def fetch_changes():
        async with installation_client(installation) as api:
            return await get_changed_files(api, pr)

    def contexts() -> Tuple[Set[str], Set[str]]:
        return asyncio.run(fetch_contexts())

    changes = memoize_changes(lambda: asyncio.run(fetch_changes()))

    branch = pr.base.ref
    presubmits = job_config.presubmits
    logger.info("Planning %s branch=%s presubmits=%d", pr, branch, len(presubmits))

    try:
        flt = presubmit_filter(honor_ok_to_test, contexts, body, logger)
        report = filter_presubmits(flt, changes, branch, presubmits, logger)
        typer.echo(render_plan(report))
        if help_requested(body, presubmits):
            org, _, name = repo.partition("/")
            result = available_presubmits(changes, org, name, branch, presubmits)
            typer.echo(render_available(result))
    except DependencyError as e:
        _fail(e)
    finally:
        push_metrics()