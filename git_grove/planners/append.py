from typing import List, Optional

from git_grove.planners.base import Plan, StepPlanner
from git_grove.steps import (CreateAndCheckoutBranchStep,
                             CreateTrackingBranchStep, Step)


class AppendPlanner(StepPlanner):
    """Creates a new feature branch as a child of the current branch, once the current branch is synced."""

    command = 'append'

    def plan(self, *, branch: Optional[str]) -> Plan:
        new_branch = self._expect_valid_new_branch_name(branch)
        current_branch = self._git.get_current_branch()
        self._ancestry.ensure_known_ancestry([current_branch])

        steps: List[Step] = self._fetch_steps() + self._sync_steps([current_branch])
        steps.append(CreateAndCheckoutBranchStep(new_branch, current_branch))
        if self._should_push_new_branches():
            steps.append(CreateTrackingBranchStep(new_branch))
        return self._finish(steps)
