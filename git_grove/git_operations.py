import os
import re
from typing import Dict, List, Optional

from . import utils
from .exceptions import UnderlyingGitException, UnexpectedGroveException
from .utils import CommandResult, debug, fmt

ORIGIN = 'origin'


class AnyRevision(str):
    @staticmethod
    def of(value: str) -> "AnyRevision":
        if not value:
            raise UnexpectedGroveException(f'AnyRevision.of should not accept {value} as a param.')
        return AnyRevision(value)

    def full_name(self) -> "AnyRevision":
        return self


class AnyBranchName(AnyRevision):
    @staticmethod
    def of(value: str) -> "AnyBranchName":
        if not value:
            raise UnexpectedGroveException(f'AnyBranchName.of should not accept {value} as a param.')
        return AnyBranchName(value)

    def full_name(self) -> "AnyBranchName":
        return self


class LocalBranchShortName(AnyBranchName):
    @staticmethod
    def of(value: str) -> "LocalBranchShortName":
        if not value:
            raise UnexpectedGroveException(f'LocalBranchShortName.of should not accept {value} as a param.')
        if value.startswith('refs/heads/') or value.startswith('refs/remotes/'):
            raise UnexpectedGroveException(
                f'LocalBranchShortName cannot accept `refs/heads` or `refs/remotes`. Provided value: {value}.')
        return LocalBranchShortName(value)

    def full_name(self) -> "LocalBranchFullName":
        return LocalBranchFullName.from_short_name(self)


class LocalBranchFullName(AnyBranchName):
    @staticmethod
    def of(value: str) -> "LocalBranchFullName":
        if value and value.startswith('refs/heads/'):
            return LocalBranchFullName(value)
        else:
            raise UnexpectedGroveException(
                f'LocalBranchFullName needs to have `refs/heads` prefix before branch name. Provided value: {value}.')

    @staticmethod
    def from_short_name(value: LocalBranchShortName) -> "LocalBranchFullName":
        return LocalBranchFullName.of(f"refs/heads/{value}")

    def full_name(self) -> "LocalBranchFullName":
        return self

    def to_short_name(self) -> "LocalBranchShortName":
        return LocalBranchShortName.of(re.sub("^refs/heads/", "", self))


class RemoteBranchShortName(AnyBranchName):
    @staticmethod
    def of(value: str) -> "RemoteBranchShortName":
        if not value or value.startswith('refs/heads/') or value.startswith('refs/remotes/'):
            raise UnexpectedGroveException(
                f'RemoteBranchShortName cannot accept empty value, `refs/heads` or `refs/remotes`. Provided value: {value}.')
        return RemoteBranchShortName(value)

    @staticmethod
    def for_local_branch(remote: str, branch: LocalBranchShortName) -> "RemoteBranchShortName":
        return RemoteBranchShortName.of(f"{remote}/{branch}")

    def full_name(self) -> "RemoteBranchFullName":
        return RemoteBranchFullName.from_short_name(self)


class RemoteBranchFullName(AnyBranchName):
    @staticmethod
    def of(value: str) -> "RemoteBranchFullName":
        if value and value.startswith('refs/remotes/'):
            return RemoteBranchFullName(value)
        else:
            raise UnexpectedGroveException(
                f'RemoteBranchFullName needs to have `refs/remotes` prefix before branch name. Provided value: {value}.')

    @staticmethod
    def from_short_name(value: RemoteBranchShortName) -> "RemoteBranchFullName":
        return RemoteBranchFullName.of(f"refs/remotes/{value}")

    def full_name(self) -> "RemoteBranchFullName":
        return self

    def to_short_name(self) -> "RemoteBranchShortName":
        return RemoteBranchShortName.of(re.sub("^refs/remotes/", "", self))


class FullCommitHash(AnyRevision):
    @staticmethod
    def of(value: str) -> "FullCommitHash":
        if value and len(value) == 40:
            return FullCommitHash(value)
        else:
            raise UnexpectedGroveException(
                f'FullCommitHash requires length of 40. Provided value: "{value}".')

    def full_name(self) -> "FullCommitHash":
        return self


def normalize_config_key(key: str) -> str:
    # Section and variable names in git config are case-insensitive,
    # but the subsection (here: a branch name) is case-sensitive.
    # `git config --list` prints section and variable lowercased and the subsection verbatim.
    first_dot, last_dot = key.find('.'), key.rfind('.')
    if first_dot == -1:
        return key.lower()
    if first_dot == last_dot:
        return key.lower()
    return key[:first_dot].lower() + key[first_dot:last_dot] + key[last_dot:].lower()


class GitContext:

    def __init__(self) -> None:
        self.__root_dir: Optional[str] = None
        self.__worktree_git_dir: Optional[str] = None

        self.__commit_hash_by_revision_cached: Optional[Dict[AnyRevision, Optional[FullCommitHash]]] = None
        self.__config_cached: Optional[Dict[str, str]] = None
        self.__local_branches_cached: Optional[List[LocalBranchShortName]] = None
        self.__remote_branches_cached: Optional[List[RemoteBranchShortName]] = None
        self.__remotes_cached: Optional[List[str]] = None

    def flush_caches(self) -> None:
        self.__commit_hash_by_revision_cached = None
        self.__config_cached = None
        self.__local_branches_cached = None
        self.__remote_branches_cached = None
        self.__remotes_cached = None

    def _run_git(self, git_cmd: str, *args: str, flush_caches: bool, allow_non_zero: bool = False,
                 env: Optional[Dict[str, str]] = None) -> int:
        exit_code = utils.run_cmd("git", git_cmd, *args, env=env)
        if flush_caches:
            self.flush_caches()
        if not allow_non_zero and exit_code != 0:
            raise UnderlyingGitException(
                f"`{utils.get_cmd_shell_repr('git', git_cmd, *args, env=env)}` returned {exit_code}")
        return exit_code

    def _popen_git(self, git_cmd: str, *args: str, allow_non_zero: bool = False) -> CommandResult:
        exit_code, stdout, stderr = utils.popen_cmd("git", git_cmd, *args)
        if not allow_non_zero and exit_code != 0:
            exit_code_msg: str = fmt(f"`{utils.get_cmd_shell_repr('git', git_cmd, *args, env=None)}` returned {exit_code}\n")
            stdout_msg: str = f"\n{utils.bold('stdout')}:\n{utils.dim(stdout)}" if stdout else ""
            stderr_msg: str = f"\n{utils.bold('stderr')}:\n{utils.dim(stderr)}" if stderr else ""
            # Not applying the formatter to avoid transforming whatever characters might be in the output of the command.
            raise UnderlyingGitException(exit_code_msg + stdout_msg + stderr_msg, apply_fmt=False)
        return CommandResult(stdout, stderr, exit_code)

    def get_root_dir(self) -> str:
        if not self.__root_dir:
            try:
                self.__root_dir = self._popen_git("rev-parse", "--show-toplevel").stdout.strip()
            except UnderlyingGitException:
                raise UnderlyingGitException("Not a git repository")
        return self.__root_dir

    def get_worktree_git_dir(self) -> str:
        if not self.__worktree_git_dir:
            try:
                self.__worktree_git_dir = os.path.abspath(self._popen_git("rev-parse", "--git-dir").stdout.strip())
            except UnderlyingGitException:
                raise UnderlyingGitException("Not a git repository")
        return self.__worktree_git_dir

    def get_worktree_git_subpath(self, *fragments: str) -> str:
        return os.path.join(self.get_worktree_git_dir(), *fragments)

    # Config

    def __ensure_config_loaded(self) -> None:
        if self.__config_cached is None:
            self.__config_cached = {}
            git_config_stdout = self._popen_git("config", "--list", "--null").stdout
            for config_entry in filter(None, git_config_stdout.split("\0")):
                # Apparently, even on Windows, this command uses just \n (and not \r\n) to separate config key from value.
                key_and_value_lines = config_entry.split('\n', 1)
                if len(key_and_value_lines) == 2:
                    key, value_lines = key_and_value_lines
                    self.__config_cached[normalize_config_key(key)] = value_lines
                elif len(key_and_value_lines) == 1:
                    # A key without `=` in the config file is an implicit boolean `true`.
                    self.__config_cached[normalize_config_key(key_and_value_lines[0])] = 'true'

    def get_config_attr_or_none(self, key: str) -> Optional[str]:
        self.__ensure_config_loaded()
        assert self.__config_cached is not None
        return self.__config_cached.get(normalize_config_key(key))

    def get_boolean_config_attr(self, key: str, default_value: bool) -> bool:
        value = self.get_boolean_config_attr_or_none(key)
        return value if value is not None else default_value

    def get_boolean_config_attr_or_none(self, key: str) -> Optional[bool]:
        value = self.get_config_attr_or_none(key)
        if value is not None:
            return value.lower() in ('true', 'yes', 'on', '1')
        return None

    def get_config_attrs_with_prefix(self, prefix: str) -> Dict[str, str]:
        self.__ensure_config_loaded()
        assert self.__config_cached is not None
        normalized_prefix = prefix.lower() if '.' not in prefix else normalize_config_key(prefix + 'x')[:-1]
        return {k: v for k, v in self.__config_cached.items() if k.startswith(normalized_prefix)}

    def set_config_attr(self, key: str, value: str) -> None:
        self._run_git("config", "--", key, value, flush_caches=False)
        self.__ensure_config_loaded()
        assert self.__config_cached is not None
        self.__config_cached[normalize_config_key(key)] = value

    def unset_config_attr(self, key: str) -> None:
        if self.get_config_attr_or_none(key) is not None:
            self._run_git("config", "--unset", key, flush_caches=False)
            assert self.__config_cached is not None
            del self.__config_cached[normalize_config_key(key)]

    # Remotes

    def get_remotes(self) -> List[str]:
        if self.__remotes_cached is None:
            self.__remotes_cached = utils.get_non_empty_lines(self._popen_git("remote").stdout)
        return self.__remotes_cached

    def has_origin_remote(self) -> bool:
        return ORIGIN in self.get_remotes()

    def get_url_of_remote(self, remote: str) -> Optional[str]:
        url = self.get_config_attr_or_none(f"remote.{remote}.url")
        return url.strip() if url else None

    def fetch_remote(self, remote: str) -> None:
        self._run_git("fetch", "--prune", remote, flush_caches=True)

    def push(self, remote: str, branch: LocalBranchShortName, *, set_upstream: bool) -> None:
        opt_upstream = ["--set-upstream"] if set_upstream else []
        self._run_git("push", *opt_upstream, remote, branch, flush_caches=True)

    def push_revision_to_remote_branch(self, remote: str, revision: AnyRevision, branch: LocalBranchShortName) -> None:
        self._run_git("push", remote, f"{revision}:{branch.full_name()}", flush_caches=True)

    def delete_remote_branch(self, remote: str, branch: LocalBranchShortName) -> None:
        self._run_git("push", remote, f":{branch.full_name()}", flush_caches=True)

    # Branches

    def __load_branches(self) -> None:
        self.__local_branches_cached = []
        self.__remote_branches_cached = []

        for line in utils.get_non_empty_lines(self._popen_git("for-each-ref", "--format=%(refname)", "refs/heads").stdout):
            self.__local_branches_cached += [LocalBranchFullName.of(line).to_short_name()]
        for line in utils.get_non_empty_lines(self._popen_git("for-each-ref", "--format=%(refname)", "refs/remotes").stdout):
            # `refs/remotes/origin/HEAD` is a symbolic ref, not a branch
            if not line.endswith('/HEAD'):
                self.__remote_branches_cached += [RemoteBranchFullName.of(line).to_short_name()]

    def get_local_branches(self) -> List[LocalBranchShortName]:
        if self.__local_branches_cached is None:
            self.__load_branches()
        assert self.__local_branches_cached is not None
        return self.__local_branches_cached

    def get_remote_branches(self) -> List[RemoteBranchShortName]:
        if self.__remote_branches_cached is None:
            self.__load_branches()
        assert self.__remote_branches_cached is not None
        return self.__remote_branches_cached

    def does_local_branch_exist(self, branch: LocalBranchShortName) -> bool:
        return branch in self.get_local_branches()

    def get_tracking_branch_or_none(self, branch: LocalBranchShortName) -> Optional[RemoteBranchShortName]:
        remote_branch = RemoteBranchShortName.for_local_branch(ORIGIN, branch)
        return remote_branch if remote_branch in self.get_remote_branches() else None

    def __find_commit_hash_by_revision(self, revision: AnyRevision) -> Optional[FullCommitHash]:
        # Without ^{commit}, 'git rev-parse --verify' will not only accept references to other kinds of objects (like trees and blobs),
        # but just echo the argument (and exit successfully) even if the argument doesn't match anything in the object store.
        result = self._popen_git("rev-parse", "--verify", "--quiet", revision + "^{commit}", allow_non_zero=True)  # noqa: FS003
        return FullCommitHash.of(result.stdout.rstrip()) if result.exit_code == 0 else None

    def get_commit_hash_by_revision(self, revision: AnyRevision) -> Optional[FullCommitHash]:
        if self.__commit_hash_by_revision_cached is None:
            self.__commit_hash_by_revision_cached = {}
        if revision not in self.__commit_hash_by_revision_cached:
            self.__commit_hash_by_revision_cached[revision] = self.__find_commit_hash_by_revision(revision)
        return self.__commit_hash_by_revision_cached[revision]

    def get_currently_checked_out_branch_or_none(self) -> Optional[LocalBranchShortName]:
        result = self._popen_git("symbolic-ref", "--quiet", "HEAD", allow_non_zero=True)
        if result.exit_code != 0:
            return None
        return LocalBranchFullName.of(result.stdout.strip()).to_short_name()

    def get_currently_rebased_branch_or_none(self) -> Optional[LocalBranchShortName]:
        # While rebase is ongoing, the repository is in a detached HEAD state,
        # so the name of the rebased branch needs to be extracted from the rebase-specific internals.
        for rebase_dir in ("rebase-merge", "rebase-apply"):
            head_name_file = self.get_worktree_git_subpath(rebase_dir, "head-name")
            if os.path.isfile(head_name_file):
                with open(head_name_file) as f:
                    return LocalBranchFullName.of(f.read().strip()).to_short_name()
        return None

    def get_current_branch(self) -> LocalBranchShortName:
        result = self.get_currently_checked_out_branch_or_none() or self.get_currently_rebased_branch_or_none()
        if not result:
            raise UnderlyingGitException("Not currently on any branch")
        return result

    def checkout(self, branch: LocalBranchShortName) -> None:
        self._run_git("checkout", "--quiet", branch, "--", flush_caches=True)

    def create_branch(self, branch: LocalBranchShortName, out_of_revision: AnyRevision, *, switch_head: bool) -> None:
        if switch_head:
            self._run_git("checkout", "--quiet", "-b", branch, out_of_revision, flush_caches=True)
        else:
            self._run_git("branch", branch, out_of_revision, flush_caches=True)

    def delete_branch(self, branch: LocalBranchShortName, *, force: bool) -> None:
        self._run_git("branch", "-D" if force else "-d", branch, flush_caches=True)

    def reset_hard(self, to_revision: AnyRevision) -> None:
        self._run_git("reset", "--hard", "--quiet", to_revision, flush_caches=True)

    def force_branch_to(self, branch: LocalBranchShortName, revision: AnyRevision) -> None:
        # Only for branches that are not checked out; git refuses to move the current branch this way.
        self._run_git("branch", "--force", branch, revision, flush_caches=True)

    # Merges and rebases

    def is_merge_in_progress(self) -> bool:
        return os.path.isfile(self.get_worktree_git_subpath("MERGE_HEAD"))

    def is_rebase_in_progress(self) -> bool:
        return os.path.isdir(self.get_worktree_git_subpath("rebase-merge")) or \
            os.path.isdir(self.get_worktree_git_subpath("rebase-apply"))

    def has_conflicts(self) -> bool:
        return bool(self._popen_git("diff", "--name-only", "--diff-filter=U").stdout.strip())

    def has_open_changes(self) -> bool:
        return bool(self._popen_git("status", "--porcelain").stdout.strip())

    def __expect_conflict_after_failure(self, cmd_repr: str) -> bool:
        # A non-zero exit code of `git merge`/`git rebase` is only a conflict if git left the operation in progress;
        # anything else (e.g. local changes that would be overwritten) is an unexpected failure.
        if self.is_merge_in_progress() or self.is_rebase_in_progress():
            debug(f"{cmd_repr} stopped on conflicts")
            return False
        raise UnderlyingGitException(f"`{cmd_repr}` failed")

    def merge(self, branch: AnyBranchName) -> bool:
        """Returns False when the merge stopped on conflicts that need to be resolved manually."""
        exit_code = self._run_git("merge", "--no-edit", branch.full_name(), flush_caches=True, allow_non_zero=True)
        if exit_code == 0:
            return True
        return self.__expect_conflict_after_failure(f"git merge --no-edit {branch}")

    def rebase(self, onto: AnyBranchName) -> bool:
        """Returns False when the rebase stopped on conflicts that need to be resolved manually."""
        exit_code = self._run_git("rebase", onto.full_name(), flush_caches=True, allow_non_zero=True)
        if exit_code == 0:
            return True
        return self.__expect_conflict_after_failure(f"git rebase {onto}")

    def abort_merge(self) -> None:
        self._run_git("merge", "--abort", flush_caches=True)

    def abort_rebase(self) -> None:
        self._run_git("rebase", "--abort", flush_caches=True)

    def continue_rebase(self) -> None:
        # GIT_EDITOR=true so that git doesn't open an editor for the commit message of the resolved commit.
        env = dict(os.environ, GIT_EDITOR="true")
        self._run_git("rebase", "--continue", flush_caches=True, env=env)

    def commit_no_edit(self) -> None:
        self._run_git("commit", "--no-edit", flush_caches=True)

    # Stash

    def stash_open_changes(self) -> None:
        self._run_git("add", "--all", flush_caches=False)
        self._run_git("stash", "push", "--quiet", flush_caches=True)

    def restore_open_changes(self) -> None:
        self._run_git("stash", "pop", "--quiet", flush_caches=True)
