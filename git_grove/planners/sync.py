from typing import List

from git_grove.git_operations import LocalBranchShortName
from git_grove.planners.base import Plan, StepPlanner
from git_grove.steps import CheckoutBranchStep, Step


class SyncPlanner(StepPlanner):
    command = 'sync'

    def plan(self, *, all_branches: bool) -> Plan:
        initial_branch = self._git.get_current_branch()
        branches: List[LocalBranchShortName] = list(self._git.get_local_branches()) if all_branches else [initial_branch]
        self._ancestry.ensure_known_ancestry(branches)

        steps: List[Step] = self._fetch_steps() + self._sync_steps(branches)
        steps.append(CheckoutBranchStep(initial_branch))
        return self._finish(steps)
