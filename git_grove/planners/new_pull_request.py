from typing import List

from git_grove.exceptions import GroveException
from git_grove.planners.base import Plan, StepPlanner
from git_grove.steps import CreateReviewRequestStep, Step
from git_grove.utils import bold


class NewPullRequestPlanner(StepPlanner):
    """Syncs the current branch along with its ancestors, then opens a review request of the current branch into its parent."""

    command = 'new-pull-request'

    def plan(self) -> Plan:
        current_branch = self._git.get_current_branch()
        self._expect_feature_branch(current_branch, action="proposed for review")
        if not self._has_remote():
            raise GroveException("A remote repository is required to open a pull request")
        review_target = self._context.review_target()
        self._ancestry.ensure_known_ancestry([current_branch])
        parent = self._ancestry.parent_of(current_branch)
        if not parent:
            raise GroveException(f"Parent branch of {bold(current_branch)} is not known")

        steps: List[Step] = self._fetch_steps() + self._sync_steps([current_branch])
        steps.append(CreateReviewRequestStep(review_target.repository, current_branch, parent))
        return self._finish(steps)
