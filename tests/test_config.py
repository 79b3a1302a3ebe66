from .base_test import BaseTest
from .mockers import assert_failure, assert_success, launch_command
from .mockers_git_repository import (create_repo_with_main_branch,
                                     get_git_config_key_or_none, new_branch)


class TestConfig(BaseTest):

    def test_display_defaults(self) -> None:
        create_repo_with_main_branch(with_remote=False)

        assert_success(
            ["config"],
            """
            Main branch:
            main

            Perennial branches:
            [none]

            Push new branches:
            no

            Pull branch strategy:
            rebase
            """
        )

    def test_update_and_display(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        new_branch("release")
        new_branch("staging")

        launch_command("config", "perennial-branches", "release", "staging")
        launch_command("config", "hack-push-flag", "true")
        launch_command("config", "pull-branch-strategy", "Merge")

        assert get_git_config_key_or_none("grove.perennial-branch-names") == "release staging"
        assert get_git_config_key_or_none("grove.pull-branch-strategy") == "merge"
        assert_success(
            ["config"],
            """
            Main branch:
            main

            Perennial branches:
            release
            staging

            Push new branches:
            yes

            Pull branch strategy:
            merge
            """
        )
        assert_success(["config", "perennial-branches"], "release staging\n")

    def test_main_branch(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        new_branch("develop")

        launch_command("config", "main-branch", "develop")

        assert get_git_config_key_or_none("grove.main-branch-name") == "develop"
        assert_success(["config", "main-branch"], "develop\n")

    def test_invalid_values(self) -> None:
        create_repo_with_main_branch(with_remote=False)

        assert_failure(["config", "main-branch", "nope"], "There is no branch named nope")
        assert_failure(["config", "main-branch", "main", "other"], "Exactly one main branch is expected")
        assert_failure(["config", "perennial-branches", "main"], "main is already the main branch")
        assert_failure(["config", "hack-push-flag", "maybe"], "Invalid value for hack-push-flag. Valid values are true, false")
        assert_failure(
            ["config", "pull-branch-strategy", "squash"],
            "Invalid value for grove.pull-branch-strategy: squash. Valid values are merge, rebase")
        assert_failure(
            ["config", "colors"],
            "Invalid config key: colors. "
            "Valid keys are hack-push-flag, main-branch, perennial-branches, pull-branch-strategy")
        assert get_git_config_key_or_none("grove.main-branch-name") == "main"
