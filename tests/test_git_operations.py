import pytest

from git_grove.exceptions import UnderlyingGitException
from git_grove.git_operations import (FullCommitHash, GitContext,
                                      LocalBranchShortName,
                                      RemoteBranchShortName,
                                      normalize_config_key)

from .base_test import BaseTest
from .mockers import write_to_file
from .mockers_git_repository import (add_file_and_commit, check_out, commit,
                                     create_repo_with_main_branch,
                                     get_current_commit_hash,
                                     get_git_config_key_or_none, new_branch,
                                     push, set_git_config_key)


class TestGitOperations(BaseTest):

    def test_normalize_config_key(self) -> None:
        assert normalize_config_key("Grove.Main-Branch-Name") == "grove.main-branch-name"
        assert normalize_config_key("Grove-Branch.Feature/Payments.Parent") == "grove-branch.Feature/Payments.parent"
        assert normalize_config_key("grove-branch.release.1.0.ancestors") == "grove-branch.release.1.0.ancestors"
        assert normalize_config_key("CORE") == "core"

    def test_config_keys_with_branch_names_are_case_sensitive(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        git = GitContext()

        git.set_config_attr("grove-branch.Payments.parent", "main")
        git.set_config_attr("grove-branch.payments.parent", "develop")

        assert git.get_config_attr_or_none("grove-branch.Payments.parent") == "main"
        assert git.get_config_attr_or_none("GROVE-BRANCH.payments.PARENT") == "develop"
        assert git.get_config_attrs_with_prefix("grove-branch.") == {
            "grove-branch.Payments.parent": "main",
            "grove-branch.payments.parent": "develop",
        }
        # A fresh context reads the same values back from `git config`
        assert GitContext().get_config_attr_or_none("grove-branch.Payments.parent") == "main"

        git.unset_config_attr("grove-branch.Payments.parent")
        git.unset_config_attr("grove-branch.no-such-branch.parent")
        assert get_git_config_key_or_none("grove-branch.Payments.parent") is None
        assert get_git_config_key_or_none("grove-branch.payments.parent") == "develop"

    def test_boolean_config_attr(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        git = GitContext()

        assert git.get_boolean_config_attr("grove.hack-push-flag", default_value=False) is False
        set_git_config_key("grove.hack-push-flag", "true")
        assert GitContext().get_boolean_config_attr("grove.hack-push-flag", default_value=False) is True

    def test_branches_and_commits(self) -> None:
        create_repo_with_main_branch(with_remote=True)
        new_branch("payments")
        commit("payments commit")
        push()
        git = GitContext()

        assert git.get_local_branches() == ["main", "payments"]
        assert git.get_remote_branches() == ["origin/main", "origin/payments"]
        assert git.get_tracking_branch_or_none(LocalBranchShortName.of("payments")) == \
            RemoteBranchShortName.of("origin/payments")
        assert git.get_currently_checked_out_branch_or_none() == "payments"
        assert git.get_commit_hash_by_revision(LocalBranchShortName.of("payments")) == get_current_commit_hash()
        assert git.get_commit_hash_by_revision(FullCommitHash.of("0" * 40)) is None

        git.create_branch(LocalBranchShortName.of("billing"), FullCommitHash.of(get_current_commit_hash()), switch_head=False)
        assert git.does_local_branch_exist(LocalBranchShortName.of("billing"))
        assert git.get_currently_checked_out_branch_or_none() == "payments"

    def test_merge_conflict_and_abort(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        new_branch("payments")
        add_file_and_commit("conflict.txt", "payments version\n", "payments change")
        check_out("main")
        add_file_and_commit("conflict.txt", "main version\n", "main change")
        check_out("payments")
        git = GitContext()

        assert git.merge(LocalBranchShortName.of("main")) is False
        assert git.is_merge_in_progress()
        assert git.has_conflicts()

        git.abort_merge()
        assert not git.is_merge_in_progress()
        assert not git.has_open_changes()

    def test_failed_merge_without_conflicts(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        new_branch("payments")
        add_file_and_commit("shared.txt", "payments version\n", "payments change")
        check_out("main")
        add_file_and_commit("shared.txt", "main version\n", "main change")
        check_out("payments")
        # Uncommitted changes to a file touched by the merge make git refuse to start it
        write_to_file("shared.txt", "work in progress\n")
        git = GitContext()

        with pytest.raises(UnderlyingGitException):
            git.merge(LocalBranchShortName.of("main"))
        assert not git.is_merge_in_progress()

    def test_stash_open_changes(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        write_to_file("untracked.txt", "some content\n")
        git = GitContext()

        assert git.has_open_changes()
        git.stash_open_changes()
        assert not git.has_open_changes()
        git.restore_open_changes()
        assert git.has_open_changes()
