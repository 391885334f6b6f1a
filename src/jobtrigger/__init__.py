from jobtrigger.filter import (
    AvailablePresubmits,
    DependencyError,
    FilterReport,
    FilterResult,
    aggregate_filter,
    available_presubmits,
    command_filter,
    filter_presubmits,
    presubmit_filter,
    retest_filter,
    retest_required_filter,
    test_all_filter,
)
from jobtrigger.model import JobConfig, Presubmit

__all__ = [
    "AvailablePresubmits",
    "DependencyError",
    "FilterReport",
    "FilterResult",
    "JobConfig",
    "Presubmit",
    "aggregate_filter",
    "available_presubmits",
    "command_filter",
    "filter_presubmits",
    "presubmit_filter",
    "retest_filter",
    "retest_required_filter",
    "test_all_filter",
]
