from typing import List, Optional

from git_grove.exceptions import GroveException
from git_grove.git_operations import LocalBranchShortName
from git_grove.planners.base import Plan, StepPlanner
from git_grove.steps import (CheckoutBranchStep, DeleteLocalBranchStep,
                             DeleteRemoteBranchStep, SetParentBranchStep,
                             Step)
from git_grove.utils import bold


class KillPlanner(StepPlanner):
    """Removes a feature branch: its remote counterpart, its local branch and its place in the ancestry.
    The children of the removed branch are attached to its parent."""

    command = 'kill'

    def plan(self, *, branch: Optional[str]) -> Plan:
        current_branch = self._git.get_current_branch()
        branch_to_kill = LocalBranchShortName.of(branch) if branch else current_branch
        self._expect_existing_branch(branch_to_kill)
        self._expect_feature_branch(branch_to_kill, action="killed")
        if branch_to_kill == current_branch and self._git.has_open_changes():
            raise GroveException(
                f"You have uncommitted changes on {bold(branch_to_kill)}.\n"
                "Commit or discard them before killing the branch.")
        self._ancestry.ensure_known_ancestry([branch_to_kill])
        parent = self._ancestry.parent_of(branch_to_kill) or self._ancestry.main_branch()

        steps: List[Step] = []
        if branch_to_kill == current_branch:
            steps.append(CheckoutBranchStep(parent))
        if self._has_remote() and self._git.get_tracking_branch_or_none(branch_to_kill):
            steps.append(DeleteRemoteBranchStep(branch_to_kill))
        for child in self._ancestry.children_of(branch_to_kill):
            steps.append(SetParentBranchStep(child, parent))
        steps.append(DeleteLocalBranchStep(branch_to_kill, parent))
        return self._finish(steps)
