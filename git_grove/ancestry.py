from typing import Callable, Iterable, List, NamedTuple, Optional, Set

from git_grove import git_config_keys
from git_grove.exceptions import GroveException
from git_grove.git_operations import LocalBranchShortName
from git_grove.store import KeyValueStore
from git_grove.utils import bold, debug, fmt


class ParentChoice(NamedTuple):
    parent: Optional[LocalBranchShortName]
    error: Optional[str]


def get_numbered_branches(main_branch: LocalBranchShortName,
                          local_branches: Iterable[LocalBranchShortName]) -> List[LocalBranchShortName]:
    return [main_branch] + [b for b in local_branches if b != main_branch]


def parse_parent_choice(
        answer: str,
        *,
        branch: LocalBranchShortName,
        numbered_branches: List[LocalBranchShortName],
        main_branch: LocalBranchShortName,
        has_ancestor: Callable[[LocalBranchShortName, LocalBranchShortName], bool]
) -> ParentChoice:
    """Decides what the given answer to the parent branch prompt means.

    Exactly one of the fields of the result is set: either the chosen parent,
    or the error to show to the user before asking again."""
    answer = answer.strip()
    if not answer:
        parent = main_branch
    elif answer.isdigit():
        index = int(answer) - 1
        if index not in range(len(numbered_branches)):
            return ParentChoice(None, "Invalid branch number")
        parent = numbered_branches[index]
    elif answer in numbered_branches:
        parent = LocalBranchShortName.of(answer)
    else:
        return ParentChoice(None, f"Branch '{answer}' doesn't exist")

    if parent == branch:
        return ParentChoice(None, f"'{branch}' cannot be the parent of itself")
    if has_ancestor(parent, branch):
        return ParentChoice(None, f"Nested branch loop detected: '{branch}' is an ancestor of '{parent}'")
    return ParentChoice(parent, None)


class BranchAncestry:
    """The forest of branches, each one remembering the branch it has been cut from.

    Every branch apart from the main branch and the perennial branches has a `parent` record once known,
    and an `ancestors` record that caches the chain of its parents, root first.
    Both records live in the injected store."""

    def __init__(self, store: KeyValueStore,
                 local_branches_provider: Callable[[], List[LocalBranchShortName]]) -> None:
        self.__store = store
        self.__local_branches_provider = local_branches_provider
        self.__parent_prompt_header_shown = False

    def main_branch(self) -> LocalBranchShortName:
        name = self.__store.get(git_config_keys.MAIN_BRANCH_NAME)
        if not name:
            raise GroveException(
                "The main branch is not configured.\n"
                "Use `git grove config main-branch <branch>` to set it.")
        return LocalBranchShortName.of(name)

    def perennial_branches(self) -> List[LocalBranchShortName]:
        names = self.__store.get(git_config_keys.PERENNIAL_BRANCH_NAMES) or ''
        return [LocalBranchShortName.of(name) for name in names.split()]

    def is_perennial(self, branch: LocalBranchShortName) -> bool:
        return branch in self.perennial_branches()

    def is_feature_branch(self, branch: LocalBranchShortName) -> bool:
        return branch != self.main_branch() and not self.is_perennial(branch)

    def parent_of(self, branch: LocalBranchShortName) -> Optional[LocalBranchShortName]:
        parent = self.__store.get(git_config_keys.branch_parent(branch))
        return LocalBranchShortName.of(parent) if parent else None

    def knows_all_ancestors(self, branch: LocalBranchShortName) -> bool:
        return bool(self.__store.get(git_config_keys.branch_ancestors(branch)))

    def ancestors_of(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        cached = self.__store.get(git_config_keys.branch_ancestors(branch))
        if cached:
            return [LocalBranchShortName.of(b) for b in cached.split()]
        return self.recompile_ancestors(branch)

    def recompile_ancestors(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        main_branch = self.main_branch()
        ancestors: List[LocalBranchShortName] = []
        current: Optional[LocalBranchShortName] = branch
        while current and current != main_branch:
            current = self.parent_of(current)
            if current:
                if current in ancestors or current == branch:
                    raise GroveException(f"Nested branch loop detected in the ancestry of <b>{branch}</b>")
                ancestors.insert(0, current)
        return ancestors

    def has_ancestor(self, branch: LocalBranchShortName, candidate_ancestor: LocalBranchShortName) -> bool:
        return candidate_ancestor in self.recompile_ancestors(branch)

    def store_ancestors(self, branch: LocalBranchShortName, ancestors: List[LocalBranchShortName]) -> None:
        if ancestors:
            self.__store.set(git_config_keys.branch_ancestors(branch), ' '.join(ancestors))
        else:
            self.delete_ancestors(branch)

    def refresh_ancestors(self, branch: LocalBranchShortName) -> None:
        """Caches the ancestors of the given branch, but only when the chain of parents reaches a root."""
        ancestors = self.recompile_ancestors(branch)
        if ancestors and (ancestors[0] == self.main_branch() or self.is_perennial(ancestors[0])):
            self.store_ancestors(branch, ancestors)
        else:
            self.delete_ancestors(branch)

    def delete_ancestors(self, branch: LocalBranchShortName) -> None:
        self.__store.unset(git_config_keys.branch_ancestors(branch))

    def __parent_records(self) -> List[LocalBranchShortName]:
        # Keys look like `grove-branch.<branch>.parent`; branch names can contain dots themselves.
        suffix = '.parent'
        branches = set()
        for key, value in self.__store.list_matching(git_config_keys.BRANCH_SECTION_PREFIX):
            if key.endswith(suffix) and value:
                branches.add(LocalBranchShortName.of(key[len(git_config_keys.BRANCH_SECTION_PREFIX):-len(suffix)]))
        return sorted(branches)

    def all_tracked_branches(self) -> List[LocalBranchShortName]:
        return self.__parent_records()

    def children_of(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        return [b for b in self.__parent_records() if self.parent_of(b) == branch]

    def descendants_of(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        result: List[LocalBranchShortName] = []
        for child in self.children_of(branch):
            result += [child] + self.descendants_of(child)
        return result

    def set_parent(self, branch: LocalBranchShortName, parent: Optional[LocalBranchShortName]) -> None:
        if parent == branch:
            raise GroveException(f"<b>{branch}</b> cannot be the parent of itself")
        if parent and self.has_ancestor(parent, branch):
            raise GroveException(f"Nested branch loop detected: <b>{branch}</b> is an ancestor of <b>{parent}</b>")
        # The ancestors cache of all descendants contains the link that is being changed.
        for b in [branch] + self.descendants_of(branch):
            self.delete_ancestors(b)
        if not parent:
            debug(f"forgetting the parent of {branch}")
            self.__store.unset(git_config_keys.branch_parent(branch))
            return
        debug(f"setting the parent of {branch} to {parent}")
        self.__store.set(git_config_keys.branch_parent(branch), parent)

    def update_child_pointers(self, old_branch: LocalBranchShortName, new_parent: Optional[LocalBranchShortName]) -> None:
        for child in self.children_of(old_branch):
            self.set_parent(child, new_parent)

    def ensure_known_ancestry(self, branches: Iterable[LocalBranchShortName]) -> None:
        main_branch = self.main_branch()
        perennial_branches = self.perennial_branches()
        asked = False
        for branch in branches:
            if branch == main_branch or branch in perennial_branches or self.knows_all_ancestors(branch):
                continue
            child = branch
            visited: Set[LocalBranchShortName] = set()
            while child != main_branch and child not in perennial_branches:
                if child in visited:
                    raise GroveException(f"Nested branch loop detected: <b>{child}</b> is an ancestor of itself")
                visited.add(child)
                parent = self.parent_of(child)
                if not parent:
                    parent = self.__ask_for_parent(child, main_branch)
                    asked = True
                    self.set_parent(child, parent)
                child = parent
            self.refresh_ancestors(branch)
        if asked:
            print()

    def __ask_for_parent(self, branch: LocalBranchShortName, main_branch: LocalBranchShortName) -> LocalBranchShortName:
        numbered_branches = get_numbered_branches(main_branch, self.__local_branches_provider())
        if not self.__parent_prompt_header_shown:
            self.__print_parent_prompt_header(main_branch, numbered_branches)
            self.__parent_prompt_header_shown = True

        while True:
            answer = input(fmt(
                f"Please specify the parent branch of <cyan><b>{branch}</b></cyan> "
                f"by name or number (default: {main_branch}): "))
            choice = parse_parent_choice(
                answer,
                branch=branch,
                numbered_branches=numbered_branches,
                main_branch=main_branch,
                has_ancestor=self.has_ancestor)
            if choice.parent:
                return choice.parent
            print(fmt("\n<red><b>Error</b></red>"))
            print(f"{choice.error}\n")

    @staticmethod
    def __print_parent_prompt_header(main_branch: LocalBranchShortName,
                                     numbered_branches: List[LocalBranchShortName]) -> None:
        print()
        print("Feature branches can be branched directly off")
        print(f"{main_branch} or from other feature branches.")
        print()
        print("The former allows to develop and ship features completely independent of each other.")
        print("The latter allows to build on top of currently unshipped features.")
        print()
        for number, b in enumerate(numbered_branches, start=1):
            print(f"{bold(str(number).rjust(3) + ':')} {b}")
        print()
