from typing import List, Optional

from git_grove.planners.base import Plan, StepPlanner
from git_grove.steps import (CreateAndCheckoutBranchStep,
                             CreateTrackingBranchStep, Step)


class HackPlanner(StepPlanner):
    """Creates a new feature branch off the freshly synced main branch."""

    command = 'hack'

    def plan(self, *, branch: Optional[str]) -> Plan:
        new_branch = self._expect_valid_new_branch_name(branch)
        main_branch = self._ancestry.main_branch()
        self._ancestry.ensure_known_ancestry([main_branch])

        steps: List[Step] = self._fetch_steps() + self._sync_steps([main_branch])
        steps.append(CreateAndCheckoutBranchStep(new_branch, main_branch))
        if self._should_push_new_branches():
            steps.append(CreateTrackingBranchStep(new_branch))
        return self._finish(steps)
