import functools
import re
from typing import Callable, List, Optional

import pydantic

ChangedFilesProvider = Callable[[], List[str]]


@functools.lru_cache(maxsize=None)
def compile_pattern(pattern: str) -> "re.Pattern[str]":
    return re.compile(pattern, re.MULTILINE)


def default_trigger_for(name: str) -> str:
    return rf"(?m)^/test( | .* ){re.escape(name)},?($|\s.*)"


def default_rerun_command_for(name: str) -> str:
    return f"/test {name}"


def _validate_regex(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    try:
        compile_pattern(value)
    except re.error as e:
        raise ValueError(f"invalid {field} regex {value!r}: {e}")
    return value


class Model(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(extra="forbid", frozen=True)


class Presubmit(Model):
    name: str
    context: str = ""
    always_run: bool = False
    run_if_changed: Optional[str] = None
    skip_if_only_changed: Optional[str] = None
    optional: bool = False
    trigger: str = ""
    rerun_command: str = ""

    branches: List[str] = pydantic.Field(default_factory=list)
    skip_branches: List[str] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("presubmit name must not be empty")
        return value

    @pydantic.field_validator("run_if_changed", "skip_if_only_changed")
    @classmethod
    def _change_regex(cls, value: Optional[str], info) -> Optional[str]:
        return _validate_regex(value, info.field_name)

    @pydantic.field_validator("branches", "skip_branches")
    @classmethod
    def _branch_regexes(cls, value: List[str], info) -> List[str]:
        for branch in value:
            _validate_regex(branch, info.field_name)
        return value

    @pydantic.model_validator(mode="before")
    @classmethod
    def _apply_defaults(cls, data):
        if not isinstance(data, dict) or "name" not in data:
            return data
        data = dict(data)
        name = data["name"]
        trigger = data.get("trigger") or ""
        rerun_command = data.get("rerun_command") or ""
        if bool(trigger) != bool(rerun_command):
            raise ValueError(
                f"{name}: trigger and rerun_command must be set together"
            )
        if not trigger:
            data["trigger"] = default_trigger_for(name)
            data["rerun_command"] = default_rerun_command_for(name)
        if not data.get("context"):
            data["context"] = name
        return data

    @pydantic.model_validator(mode="after")
    def _check_rules(self) -> "Presubmit":
        if self.run_if_changed is not None and self.skip_if_only_changed is not None:
            raise ValueError(
                f"{self.name}: run_if_changed and skip_if_only_changed "
                "are mutually exclusive"
            )
        if self.always_run and self.runs_against_changes():
            raise ValueError(
                f"{self.name}: always_run cannot be combined with a change rule"
            )
        _validate_regex(self.trigger, "trigger")
        if not self.trigger_matches(self.rerun_command):
            raise ValueError(
                f"{self.name}: rerun_command {self.rerun_command!r} "
                f"does not match trigger {self.trigger!r}"
            )
        return self

    def __str__(self) -> str:
        return f"Presubmit({self.name})"

    def trigger_matches(self, body: str) -> bool:
        return compile_pattern(self.trigger).search(body) is not None

    def runs_against_changes(self) -> bool:
        return self.run_if_changed is not None or self.skip_if_only_changed is not None

    def needs_explicit_trigger(self) -> bool:
        return not self.always_run and not self.runs_against_changes()

    def could_run(self, branch: str) -> bool:
        if any(branch_matches(branch, b) for b in self.skip_branches):
            return False
        if len(self.branches) == 0:
            return True
        return any(branch_matches(branch, b) for b in self.branches)

    def runs_against_changed_files(self, changed_files: List[str]) -> bool:
        if self.run_if_changed is not None:
            pattern = compile_pattern(self.run_if_changed)
            return any(pattern.search(f) for f in changed_files)
        if self.skip_if_only_changed is not None:
            pattern = compile_pattern(self.skip_if_only_changed)
            return not all(pattern.search(f) for f in changed_files)
        raise ValueError(f"{self.name} has no change rule")

    def should_run(
        self,
        branch: str,
        changes: ChangedFilesProvider,
        forced: bool,
        default: bool,
    ) -> bool:
        if not self.could_run(branch):
            return False
        if self.always_run:
            return True
        if forced:
            return True
        if self.runs_against_changes():
            return self.runs_against_changed_files(changes())
        return default


def branch_matches(branch: str, pattern: str) -> bool:
    return branch == pattern or compile_pattern(pattern).fullmatch(branch) is not None


class JobConfig(Model):
    presubmits: List[Presubmit] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("presubmits")
    @classmethod
    def _unique_names(cls, value: List[Presubmit]) -> List[Presubmit]:
        seen = set()
        for ps in value:
            if ps.name in seen:
                raise ValueError(f"duplicate presubmit name {ps.name!r}")
            seen.add(ps.name)
        return value

    def presubmits_for(self, branch: str) -> List[Presubmit]:
        return [ps for ps in self.presubmits if ps.could_run(branch)]
