from abc import ABCMeta, abstractmethod
from enum import Enum, auto
from typing import Dict, List, Optional, Type

from git_grove import git_config_keys
from git_grove.ancestry import BranchAncestry
from git_grove.code_hosting import (OrganizationAndRepository, ReviewTarget,
                                    detect_review_target)
from git_grove.exceptions import GroveException, UnexpectedGroveException
from git_grove.git_operations import (ORIGIN, AnyRevision, FullCommitHash,
                                      GitContext, LocalBranchShortName,
                                      RemoteBranchShortName)
from git_grove.store import KeyValueStore
from git_grove.utils import debug


class StepOutcome(Enum):
    SUCCESS = auto()
    NEEDS_RESOLUTION = auto()


class PullBranchStrategy(Enum):
    MERGE = auto()
    REBASE = auto()

    @classmethod
    def from_string(cls, value: str) -> "PullBranchStrategy":
        try:
            return cls[value.upper()]
        except KeyError:
            valid_values = ', '.join('`' + e.name.lower() + '`' for e in cls)
            raise GroveException(
                f"Invalid value for `{git_config_keys.PULL_BRANCH_STRATEGY}`: `{value}`. Valid values are {valid_values}")


class StepContext:
    """Everything a step needs to act on the repository."""

    def __init__(self, git: GitContext, store: KeyValueStore, ancestry: BranchAncestry) -> None:
        self.git: GitContext = git
        self.store: KeyValueStore = store
        self.ancestry: BranchAncestry = ancestry
        self.__review_target: Optional[ReviewTarget] = None

    def pull_branch_strategy(self) -> PullBranchStrategy:
        value = self.store.get(git_config_keys.PULL_BRANCH_STRATEGY)
        return PullBranchStrategy.from_string(value) if value else PullBranchStrategy.REBASE

    def review_target(self) -> ReviewTarget:
        if self.__review_target is None:
            self.__review_target = detect_review_target(self.git)
        return self.__review_target

    def commit_hash_of(self, revision: AnyRevision) -> FullCommitHash:
        commit_hash = self.git.get_commit_hash_by_revision(revision)
        if not commit_hash:
            raise GroveException(f"Cannot find revision <b>{revision}</b>")
        return commit_hash


class Step(metaclass=ABCMeta):
    """A primitive operation of a workflow.

    Steps are values: two steps of the same kind with the same arguments are equal.
    The text form `<kind> <arg1> <arg2> ...` is used only when storing the steps of a paused run."""

    kind: str = ''

    @abstractmethod
    def args(self) -> List[str]:
        pass

    @classmethod
    @abstractmethod
    def from_args(cls, args: List[str]) -> "Step":
        pass

    @abstractmethod
    def execute(self, context: StepContext) -> StepOutcome:
        pass

    def compute_undo(self, context: StepContext) -> Optional["Step"]:  # noqa: U100
        """Called before `execute`, on the state that the returned step is supposed to bring back."""
        return None

    def serialize(self) -> str:
        return ' '.join([self.kind] + self.args())

    @staticmethod
    def deserialize(line: str) -> "Step":
        parts = line.split()
        if not parts:
            raise UnexpectedGroveException("Cannot read an empty step")
        kind, args = parts[0], parts[1:]
        if kind not in step_class_by_kind:
            raise UnexpectedGroveException(f"Unknown step kind `{kind}` in `{line}`")
        return step_class_by_kind[kind].from_args(args)

    @classmethod
    def _check_arity(cls, args: List[str], required: int, optional: int = 0) -> None:
        if not required <= len(args) <= required + optional:
            raise UnexpectedGroveException(
                f"Step `{cls.kind}` expects {required}" + (f" to {required + optional}" if optional else "") +
                f" arguments, got {len(args)}: `{' '.join(args)}`")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Step) and self.kind == other.kind and self.args() == other.args()

    def __hash__(self) -> int:
        return hash((self.kind, tuple(self.args())))

    def __repr__(self) -> str:
        return self.serialize()


class FetchStep(Step):
    kind = 'fetch'

    def args(self) -> List[str]:
        return []

    @classmethod
    def from_args(cls, args: List[str]) -> "FetchStep":
        cls._check_arity(args, 0)
        return cls()

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.fetch_remote(ORIGIN)
        return StepOutcome.SUCCESS


class CheckoutBranchStep(Step):
    kind = 'checkout_branch'

    def __init__(self, branch: LocalBranchShortName) -> None:
        self.branch = branch

    def args(self) -> List[str]:
        return [self.branch]

    @classmethod
    def from_args(cls, args: List[str]) -> "CheckoutBranchStep":
        cls._check_arity(args, 1)
        return cls(LocalBranchShortName.of(args[0]))

    def execute(self, context: StepContext) -> StepOutcome:
        if context.git.get_currently_checked_out_branch_or_none() != self.branch:
            context.git.checkout(self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        current_branch = context.git.get_currently_checked_out_branch_or_none()
        return CheckoutBranchStep(current_branch) if current_branch else None


class SyncBranchStep(Step):
    """Brings the branch up to date.

    A feature branch gets its tracking branch and then its parent merged in,
    the main branch and the perennial branches get their tracking branch pulled in
    (with a rebase unless `grove.pull-branch-strategy` says `merge`).
    The result is pushed whenever it differs from the tracking branch.
    Executing the step again after the conflicts have been resolved is harmless:
    the merges that already happened are no-ops the second time."""

    kind = 'sync_branch'

    def __init__(self, branch: LocalBranchShortName) -> None:
        self.branch = branch

    def args(self) -> List[str]:
        return [self.branch]

    @classmethod
    def from_args(cls, args: List[str]) -> "SyncBranchStep":
        cls._check_arity(args, 1)
        return cls(LocalBranchShortName.of(args[0]))

    def execute(self, context: StepContext) -> StepOutcome:
        git = context.git
        if git.get_currently_checked_out_branch_or_none() != self.branch:
            git.checkout(self.branch)

        tracking_branch: Optional[RemoteBranchShortName] = git.get_tracking_branch_or_none(self.branch)
        if context.ancestry.is_feature_branch(self.branch):
            if tracking_branch and not git.merge(tracking_branch):
                return StepOutcome.NEEDS_RESOLUTION
            parent = context.ancestry.parent_of(self.branch)
            if not parent:
                raise GroveException(f"Parent branch of <b>{self.branch}</b> is not known")
            if not git.merge(parent):
                return StepOutcome.NEEDS_RESOLUTION
        elif tracking_branch:
            if context.pull_branch_strategy() == PullBranchStrategy.MERGE:
                pulled = git.merge(tracking_branch)
            else:
                pulled = git.rebase(tracking_branch)
            if not pulled:
                return StepOutcome.NEEDS_RESOLUTION

        if tracking_branch and git.get_commit_hash_by_revision(self.branch) != git.get_commit_hash_by_revision(tracking_branch):
            debug(f"{self.branch} differs from {tracking_branch}, pushing")
            git.push(ORIGIN, self.branch, set_upstream=False)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return ResetBranchStep(self.branch, context.commit_hash_of(self.branch))


class CreateAndCheckoutBranchStep(Step):
    kind = 'create_and_checkout_branch'

    def __init__(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        self.branch = branch
        self.parent = parent

    def args(self) -> List[str]:
        return [self.branch, self.parent]

    @classmethod
    def from_args(cls, args: List[str]) -> "CreateAndCheckoutBranchStep":
        cls._check_arity(args, 2)
        return cls(LocalBranchShortName.of(args[0]), LocalBranchShortName.of(args[1]))

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.create_branch(self.branch, self.parent.full_name(), switch_head=True)
        context.ancestry.set_parent(self.branch, self.parent)
        context.ancestry.refresh_ancestors(self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        fallback = context.git.get_currently_checked_out_branch_or_none() or self.parent
        return DeleteLocalBranchStep(self.branch, fallback)


class CreateBranchStep(Step):
    kind = 'create_branch'

    def __init__(self, branch: LocalBranchShortName, commit: FullCommitHash,
                 parent: Optional[LocalBranchShortName] = None) -> None:
        self.branch = branch
        self.commit = commit
        self.parent = parent

    def args(self) -> List[str]:
        return [self.branch, self.commit] + ([self.parent] if self.parent else [])

    @classmethod
    def from_args(cls, args: List[str]) -> "CreateBranchStep":
        cls._check_arity(args, 2, optional=1)
        parent = LocalBranchShortName.of(args[2]) if len(args) > 2 else None
        return cls(LocalBranchShortName.of(args[0]), FullCommitHash.of(args[1]), parent)

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.create_branch(self.branch, self.commit, switch_head=False)
        if self.parent:
            context.ancestry.set_parent(self.branch, self.parent)
            context.ancestry.refresh_ancestors(self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        fallback = context.git.get_currently_checked_out_branch_or_none() or context.ancestry.main_branch()
        return DeleteLocalBranchStep(self.branch, fallback)


class DeleteLocalBranchStep(Step):
    """Deletes the branch along with its ancestry record.
    When the branch is checked out, the fallback branch is checked out first."""

    kind = 'delete_local_branch'

    def __init__(self, branch: LocalBranchShortName, fallback: LocalBranchShortName) -> None:
        self.branch = branch
        self.fallback = fallback

    def args(self) -> List[str]:
        return [self.branch, self.fallback]

    @classmethod
    def from_args(cls, args: List[str]) -> "DeleteLocalBranchStep":
        cls._check_arity(args, 2)
        return cls(LocalBranchShortName.of(args[0]), LocalBranchShortName.of(args[1]))

    def execute(self, context: StepContext) -> StepOutcome:
        git = context.git
        if git.does_local_branch_exist(self.branch):
            if git.get_currently_checked_out_branch_or_none() == self.branch:
                git.checkout(self.fallback)
            git.delete_branch(self.branch, force=True)
        else:
            debug(f"branch {self.branch} does not exist, nothing to delete")
        context.ancestry.set_parent(self.branch, None)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return CreateBranchStep(self.branch, context.commit_hash_of(self.branch), context.ancestry.parent_of(self.branch))


class ResetBranchStep(Step):
    kind = 'reset_branch'

    def __init__(self, branch: LocalBranchShortName, commit: FullCommitHash) -> None:
        self.branch = branch
        self.commit = commit

    def args(self) -> List[str]:
        return [self.branch, self.commit]

    @classmethod
    def from_args(cls, args: List[str]) -> "ResetBranchStep":
        cls._check_arity(args, 2)
        return cls(LocalBranchShortName.of(args[0]), FullCommitHash.of(args[1]))

    def execute(self, context: StepContext) -> StepOutcome:
        if context.git.get_currently_checked_out_branch_or_none() == self.branch:
            context.git.reset_hard(self.commit)
        else:
            context.git.force_branch_to(self.branch, self.commit)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return ResetBranchStep(self.branch, context.commit_hash_of(self.branch))


class CreateTrackingBranchStep(Step):
    kind = 'create_tracking_branch'

    def __init__(self, branch: LocalBranchShortName) -> None:
        self.branch = branch

    def args(self) -> List[str]:
        return [self.branch]

    @classmethod
    def from_args(cls, args: List[str]) -> "CreateTrackingBranchStep":
        cls._check_arity(args, 1)
        return cls(LocalBranchShortName.of(args[0]))

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.push(ORIGIN, self.branch, set_upstream=True)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return DeleteRemoteBranchStep(self.branch)


class DeleteRemoteBranchStep(Step):
    kind = 'delete_remote_branch'

    def __init__(self, branch: LocalBranchShortName) -> None:
        self.branch = branch

    def args(self) -> List[str]:
        return [self.branch]

    @classmethod
    def from_args(cls, args: List[str]) -> "DeleteRemoteBranchStep":
        cls._check_arity(args, 1)
        return cls(LocalBranchShortName.of(args[0]))

    def execute(self, context: StepContext) -> StepOutcome:
        if not context.git.get_commit_hash_by_revision(RemoteBranchShortName.for_local_branch(ORIGIN, self.branch)):
            debug(f"{ORIGIN}/{self.branch} does not exist, nothing to delete")
            return StepOutcome.SUCCESS
        context.git.delete_remote_branch(ORIGIN, self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        commit = context.git.get_commit_hash_by_revision(RemoteBranchShortName.for_local_branch(ORIGIN, self.branch))
        return CreateRemoteBranchStep(self.branch, commit) if commit else None


class CreateRemoteBranchStep(Step):
    kind = 'create_remote_branch'

    def __init__(self, branch: LocalBranchShortName, commit: FullCommitHash) -> None:
        self.branch = branch
        self.commit = commit

    def args(self) -> List[str]:
        return [self.branch, self.commit]

    @classmethod
    def from_args(cls, args: List[str]) -> "CreateRemoteBranchStep":
        cls._check_arity(args, 2)
        return cls(LocalBranchShortName.of(args[0]), FullCommitHash.of(args[1]))

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.push_revision_to_remote_branch(ORIGIN, self.commit, self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return DeleteRemoteBranchStep(self.branch)


class SetParentBranchStep(Step):
    kind = 'set_parent_branch'

    def __init__(self, branch: LocalBranchShortName, parent: Optional[LocalBranchShortName]) -> None:
        self.branch = branch
        self.parent = parent

    def args(self) -> List[str]:
        return [self.branch] + ([self.parent] if self.parent else [])

    @classmethod
    def from_args(cls, args: List[str]) -> "SetParentBranchStep":
        cls._check_arity(args, 1, optional=1)
        return cls(LocalBranchShortName.of(args[0]), LocalBranchShortName.of(args[1]) if len(args) > 1 else None)

    def execute(self, context: StepContext) -> StepOutcome:
        context.ancestry.set_parent(self.branch, self.parent)
        if self.parent:
            context.ancestry.refresh_ancestors(self.branch)
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return SetParentBranchStep(self.branch, context.ancestry.parent_of(self.branch))


class CreateReviewRequestStep(Step):
    kind = 'create_review_request'

    def __init__(self, repository: OrganizationAndRepository, head: LocalBranchShortName, base: LocalBranchShortName) -> None:
        self.repository = repository
        self.head = head
        self.base = base

    def args(self) -> List[str]:
        return [str(self.repository), self.head, self.base]

    @classmethod
    def from_args(cls, args: List[str]) -> "CreateReviewRequestStep":
        cls._check_arity(args, 3)
        return cls(OrganizationAndRepository.of(args[0]), LocalBranchShortName.of(args[1]), LocalBranchShortName.of(args[2]))

    def execute(self, context: StepContext) -> StepOutcome:
        context.review_target().driver.create_review_request(self.repository, self.head, self.base)
        return StepOutcome.SUCCESS


class StashOpenChangesStep(Step):
    kind = 'stash_open_changes'

    def args(self) -> List[str]:
        return []

    @classmethod
    def from_args(cls, args: List[str]) -> "StashOpenChangesStep":
        cls._check_arity(args, 0)
        return cls()

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.stash_open_changes()
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return RestoreOpenChangesStep()


class RestoreOpenChangesStep(Step):
    kind = 'restore_open_changes'

    def args(self) -> List[str]:
        return []

    @classmethod
    def from_args(cls, args: List[str]) -> "RestoreOpenChangesStep":
        cls._check_arity(args, 0)
        return cls()

    def execute(self, context: StepContext) -> StepOutcome:
        context.git.restore_open_changes()
        return StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        return StashOpenChangesStep()


step_class_by_kind: Dict[str, Type[Step]] = {
    cls.kind: cls for cls in (
        FetchStep,
        CheckoutBranchStep,
        SyncBranchStep,
        CreateAndCheckoutBranchStep,
        CreateBranchStep,
        DeleteLocalBranchStep,
        ResetBranchStep,
        CreateTrackingBranchStep,
        DeleteRemoteBranchStep,
        CreateRemoteBranchStep,
        SetParentBranchStep,
        CreateReviewRequestStep,
        StashOpenChangesStep,
        RestoreOpenChangesStep,
    )
}
