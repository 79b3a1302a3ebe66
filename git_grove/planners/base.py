from typing import List, NamedTuple, Optional

from git_grove import git_config_keys
from git_grove.ancestry import BranchAncestry
from git_grove.exceptions import GroveException
from git_grove.git_operations import GitContext, LocalBranchShortName
from git_grove.run_state import RunOptions
from git_grove.steps import (CreateTrackingBranchStep, FetchStep,
                             RestoreOpenChangesStep, StashOpenChangesStep,
                             Step, StepContext, SyncBranchStep)
from git_grove.utils import bold


class Plan(NamedTuple):
    steps: List[Step]
    options: RunOptions


class StepPlanner:
    """Base of the planners, each of which turns a workflow command into a list of steps.

    Every decision is taken while planning, so the same repository state always yields the same plan,
    and nothing in the repository is changed before the plan gets executed."""

    command: str = ''

    def __init__(self, context: StepContext) -> None:
        self._context: StepContext = context

    @property
    def _git(self) -> GitContext:
        return self._context.git

    @property
    def _ancestry(self) -> BranchAncestry:
        return self._context.ancestry

    def _has_remote(self) -> bool:
        return self._git.has_origin_remote()

    def _should_push_new_branches(self) -> bool:
        return self._has_remote() and self._git.get_boolean_config_attr(git_config_keys.HACK_PUSH_FLAG, default_value=False)

    def _expect_valid_new_branch_name(self, branch: Optional[str]) -> LocalBranchShortName:
        if not branch:
            raise GroveException("No branch name provided")
        new_branch = LocalBranchShortName.of(branch)
        if self._git.does_local_branch_exist(new_branch):
            raise GroveException(f"A branch named {bold(new_branch)} already exists")
        if self._has_remote() and self._git.get_tracking_branch_or_none(new_branch):
            raise GroveException(f"A branch named {bold(new_branch)} already exists on the remote")
        return new_branch

    def _expect_existing_branch(self, branch: LocalBranchShortName) -> None:
        if not self._git.does_local_branch_exist(branch):
            raise GroveException(f"There is no branch named {bold(branch)}")

    def _expect_feature_branch(self, branch: LocalBranchShortName, action: str) -> None:
        if not self._ancestry.is_feature_branch(branch):
            raise GroveException(f"{bold(branch)} is not a feature branch, only feature branches can be {action}")

    def _fetch_steps(self) -> List[Step]:
        return [FetchStep()] if self._has_remote() else []

    def _sync_steps(self, branches: List[LocalBranchShortName]) -> List[Step]:
        """Syncs the given branches along with their ancestors, each branch once and every parent before its children."""
        steps: List[Step] = []
        seen: List[LocalBranchShortName] = []
        for branch in branches:
            for b in self._ancestry.ancestors_of(branch) + [branch]:
                if b in seen:
                    continue
                seen.append(b)
                steps.append(SyncBranchStep(b))
                if self._has_remote() and self._ancestry.is_feature_branch(b) and not self._git.get_tracking_branch_or_none(b):
                    steps.append(CreateTrackingBranchStep(b))
        return steps

    def _finish(self, steps: List[Step]) -> Plan:
        has_open_changes = self._git.has_open_changes()
        if has_open_changes:
            steps = [StashOpenChangesStep()] + steps + [RestoreOpenChangesStep()]
        return Plan(steps=steps, options=RunOptions(run_in_git_root=True, stash_open_changes=has_open_changes))
