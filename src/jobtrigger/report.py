from typing import List, Sequence

from tabulate import tabulate

from jobtrigger.filter import (
    TEST_ALL_RE,
    TEST_WITH_ANY_NAME_RE,
    AvailablePresubmits,
    FilterReport,
)
from jobtrigger.model import Presubmit


def render_plan(report: FilterReport) -> str:
    if report.to_trigger_count == 0:
        text = "No presubmits to trigger.\n"
    else:
        rows = []
        for ps in report.to_trigger:
            rows.append((ps.name, ps.context, "no" if ps.optional else "yes"))
        text = "# Presubmits to trigger\n"
        text += tabulate(
            rows,
            headers=("Job", "Context", "Required?"),
            tablefmt="github",
        )
        text += "\n"

    text += (
        f"\n{report.to_trigger_count} of {report.total_count} triggered, "
        f"{report.no_match_count} not matched, "
        f"{report.should_not_run_count} not eligible\n"
    )
    return text


def _command_list(commands) -> List[str]:
    return [f"* `{c}`" for c in sorted(commands)]


def render_available(available: AvailablePresubmits) -> str:
    sections = []
    if available.required_commands:
        sections.append(
            "\n".join(
                ["The following commands are available to trigger required jobs:"]
                + _command_list(available.required_commands)
            )
        )
    if available.optional_commands:
        sections.append(
            "\n".join(
                ["The following commands are available to trigger optional jobs:"]
                + _command_list(available.optional_commands)
            )
        )
    if available.run_with_test_all:
        sections.append(
            "\n".join(
                [
                    "Use `/test all` to run the following jobs "
                    "that were automatically triggered:"
                ]
                + [f"* `{name}`" for name in sorted(available.run_with_test_all)]
            )
        )
    if not sections:
        return "No presubmits are available for this pull request.\n"
    return "\n\n".join(sections) + "\n"


def help_requested(body: str, presubmits: Sequence[Presubmit]) -> bool:
    """Whether ``body`` asks for ``/test ?`` or names a job nobody triggers on."""
    for line in body.splitlines():
        m = TEST_WITH_ANY_NAME_RE.match(line)
        if m is None:
            continue
        if m.group("job") == "?":
            return True
        if TEST_ALL_RE.match(line):
            continue
        if not any(ps.trigger_matches(line) for ps in presubmits):
            return True
    return False
