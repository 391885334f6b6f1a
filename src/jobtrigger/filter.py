"""Decide which presubmits a pull request command triggers.

A filter digests a presubmit and reports whether it matched, whether the job
is forced to run regardless of its branch and change rules, and what the
outcome should be when those rules are consulted but stay inconclusive.
Filters are composed in priority order: the first filter that matches a
presubmit decides for it.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

from jobtrigger.metric import (
    dependency_error_counter,
    filter_chain_counter,
    presubmit_filter_counter,
)
from jobtrigger.model import ChangedFilesProvider, Presubmit

AnyLogger = Union[logging.Logger, logging.LoggerAdapter]

TEST_ALL_RE = re.compile(r"(?m)^/test all,?($|\s.*)")
RETEST_RE = re.compile(r"(?m)^/retest\s*$")
RETEST_REQUIRED_RE = re.compile(r"(?m)^/retest-required\s*$")
OK_TO_TEST_RE = re.compile(r"(?m)^/ok-to-test\s*$")
TEST_WITH_ANY_NAME_RE = re.compile(r"(?m)^/test\s+(?P<job>\S+)")

Contexts = Tuple[Set[str], Set[str]]
ContextGetter = Callable[[], Contexts]


class DependencyError(Exception):
    """A collaborator (context resolver or eligibility check) failed."""

    job_name: Optional[str]

    def __init__(self, *args, job_name: Optional[str] = None):
        self.job_name = job_name
        super().__init__(*args)


@dataclass(frozen=True)
class FilterResult:
    matches: bool
    forced: bool
    default_behavior: bool


NO_MATCH = FilterResult(matches=False, forced=False, default_behavior=False)

Filter = Callable[[Presubmit], FilterResult]


@dataclass
class FilterReport:
    to_trigger: List[Presubmit] = field(default_factory=list)
    total_count: int = 0
    no_match_count: int = 0
    should_not_run_count: int = 0

    @property
    def to_trigger_count(self) -> int:
        return len(self.to_trigger)

    @property
    def names(self) -> List[str]:
        return [ps.name for ps in self.to_trigger]


@dataclass(frozen=True)
class AvailablePresubmits:
    run_with_test_all: Set[str]
    optional_commands: Set[str]
    required_commands: Set[str]


def command_filter(body: str) -> Filter:
    """Filter for explicit job commands like ``/test foo``."""

    def _filter(ps: Presubmit) -> FilterResult:
        if not ps.trigger_matches(body):
            return NO_MATCH
        return FilterResult(matches=True, forced=True, default_behavior=True)

    return _filter


def test_all_filter() -> Filter:
    """Filter for the automatic behavior of ``/test all``.

    Jobs whose own trigger matches ``/test all`` are handled by the command
    filter for the comment in question.
    """

    def _filter(ps: Presubmit) -> FilterResult:
        return FilterResult(
            matches=not ps.needs_explicit_trigger(),
            forced=False,
            default_behavior=False,
        )

    return _filter


def retest_filter(failed_contexts: Set[str], all_contexts: Set[str]) -> Filter:
    """Filter for ``/retest``: failed jobs, and automatic jobs that never reported."""

    def _filter(ps: Presubmit) -> FilterResult:
        failed = ps.context in failed_contexts
        missing = not ps.needs_explicit_trigger() and ps.context not in all_contexts
        return FilterResult(
            matches=failed or missing, forced=False, default_behavior=failed
        )

    return _filter


def retest_required_filter(
    failed_contexts: Set[str], all_contexts: Set[str]
) -> Filter:
    """Filter for ``/retest-required``, which never picks optional jobs."""
    retest = retest_filter(failed_contexts, all_contexts)

    def _filter(ps: Presubmit) -> FilterResult:
        if ps.optional:
            return NO_MATCH
        return retest(ps)

    return _filter


def aggregate_filter(filters: Sequence[Filter]) -> Filter:
    """Evaluate ``filters`` in order and return the first match."""
    filters = list(filters)

    def _filter(ps: Presubmit) -> FilterResult:
        for f in filters:
            result = f(ps)
            if result.matches:
                return result
        return NO_MATCH

    return _filter


def memoize_contexts(getter: ContextGetter) -> ContextGetter:
    """Call ``getter`` at most once; failures are not cached."""
    cache: List[Contexts] = []

    def _get() -> Contexts:
        if not cache:
            cache.append(getter())
        return cache[0]

    return _get


def memoize_changes(provider: ChangedFilesProvider) -> ChangedFilesProvider:
    cache: List[List[str]] = []

    def _get() -> List[str]:
        if not cache:
            cache.append(list(provider()))
        return cache[0]

    return _get


def filter_presubmits(
    filter: Filter,
    changes: ChangedFilesProvider,
    branch: str,
    presubmits: Sequence[Presubmit],
    logger: Optional[AnyLogger] = None,
) -> FilterReport:
    """Determine which presubmits should run by evaluating ``filter``.

    Raises :class:`DependencyError` naming the job if its eligibility check
    fails; nothing is returned for the presubmits evaluated so far.
    """
    logger = logger or logging.getLogger("jobtrigger")
    report = FilterReport(total_count=len(presubmits))

    for ps in presubmits:
        result = filter(ps)
        if not result.matches:
            report.no_match_count += 1
            continue
        try:
            should_run = ps.should_run(
                branch, changes, result.forced, result.default_behavior
            )
        except Exception as e:
            dependency_error_counter.labels(source="eligibility").inc()
            raise DependencyError(
                f"{ps.name}: should run: {e}", job_name=ps.name
            ) from e
        if not should_run:
            report.should_not_run_count += 1
            continue
        report.to_trigger.append(ps)

    presubmit_filter_counter.labels(outcome="triggered").inc(report.to_trigger_count)
    presubmit_filter_counter.labels(outcome="no_match").inc(report.no_match_count)
    presubmit_filter_counter.labels(outcome="should_not_run").inc(
        report.should_not_run_count
    )

    logger.debug(
        "Filtered complete. to-trigger=%s total-count=%d to-trigger-count=%d "
        "no-match-count=%d should-not-run-count=%d",
        report.names,
        report.total_count,
        report.to_trigger_count,
        report.no_match_count,
        report.should_not_run_count,
    )
    return report


def presubmit_filter(
    honor_ok_to_test: bool,
    context_getter: ContextGetter,
    body: str,
    logger: Optional[AnyLogger] = None,
) -> Filter:
    """Build the filter chain for a single command.

    Several filters can match one presubmit, so their order is their
    precedence: filters that override the ``False`` default come before the
    others, most specific first.
    """
    logger = logger or logging.getLogger("jobtrigger")
    contexts = memoize_contexts(context_getter)

    def _get_contexts() -> Contexts:
        try:
            return contexts()
        except DependencyError:
            dependency_error_counter.labels(source="contexts").inc()
            raise
        except Exception as e:
            dependency_error_counter.labels(source="contexts").inc()
            raise DependencyError(f"get contexts: {e}") from e

    filters: List[Filter] = [command_filter(body)]
    filter_chain_counter.labels(filter="command").inc()

    if RETEST_RE.search(body):
        logger.info("Using retest filter.")
        filters.append(retest_filter(*_get_contexts()))
        filter_chain_counter.labels(filter="retest").inc()

    if RETEST_REQUIRED_RE.search(body):
        logger.info("Using retest-required filter.")
        filters.append(retest_required_filter(*_get_contexts()))
        filter_chain_counter.labels(filter="retest_required").inc()

    if (honor_ok_to_test and OK_TO_TEST_RE.search(body)) or TEST_ALL_RE.search(body):
        logger.debug("Using test-all filter.")
        filters.append(test_all_filter())
        filter_chain_counter.labels(filter="test_all").inc()

    return aggregate_filter(filters)


def available_presubmits(
    changes: ChangedFilesProvider,
    org: str,
    repo: str,
    branch: str,
    presubmits: Sequence[Presubmit],
    logger: Optional[AnyLogger] = None,
) -> AvailablePresubmits:
    """Summarize what can be triggered on ``org/repo`` against ``branch``.

    Returns the names of jobs ``/test all`` runs, and the rerun commands of
    optional and required jobs that are eligible when requested explicitly.
    """
    logger = logger or logging.getLogger("jobtrigger")
    logger.debug(
        "Collecting available presubmits repo=%s/%s branch=%s", org, repo, branch
    )

    run_with_test_all = filter_presubmits(
        test_all_filter(), changes, branch, presubmits, logger
    )

    trigger_filters = [command_filter(ps.rerun_command) for ps in presubmits]
    run_with_trigger = filter_presubmits(
        aggregate_filter(trigger_filters), changes, branch, presubmits, logger
    )

    optional_commands: Set[str] = set()
    required_commands: Set[str] = set()
    for ps in run_with_trigger.to_trigger:
        if ps.optional:
            optional_commands.add(ps.rerun_command)
        else:
            required_commands.add(ps.rerun_command)

    return AvailablePresubmits(
        run_with_test_all={ps.name for ps in run_with_test_all.to_trigger},
        optional_commands=optional_commands,
        required_commands=required_commands,
    )
