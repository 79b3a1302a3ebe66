import os

from git_grove import utils

from .base_test import BaseTest


class TestUtils(BaseTest):

    def test_debug_doesnt_overwrite_local_vars(self) -> None:
        foo = {"foo": 1}
        try:
            utils.debug_mode = True
            utils.debug("")
        finally:
            utils.debug_mode = False
        assert foo["foo"] == 1  # and not string "1"

    def test_fmt(self) -> None:
        ascii_only = utils.ascii_only
        try:
            utils.ascii_only = False
            utils.AnsiEscapeCodes.UNDERLINE = '\033[4m'
            utils.AnsiEscapeCodes.RED = '\033[91m'

            input_string = '<red> red <cyan>cyan <b>cyan_bold</b> `cyan_underlined` cyan</cyan> default' \
                           ' <dim> dimmed </dim> <green>green `green_underlined`</green> default</red>'
            expected_ansi_string = '\033[91m red \033[36mcyan \033[1mcyan_bold\033[22m \033[4mcyan_underlined\033[24m cyan' \
                                   '\033[0m default \033[2m dimmed \033[22m \033[32mgreen \033[4mgreen_underlined\033[24m\033[0m' \
                                   ' default\033[0m'

            assert utils.fmt(input_string) == expected_ansi_string
        finally:
            utils.ascii_only = ascii_only

    def test_fmt_in_ascii_only_mode(self) -> None:
        ascii_only = utils.ascii_only
        try:
            utils.ascii_only = True
            assert utils.fmt("Parent branch of <b>payments</b> set to `main`") == "Parent branch of payments set to main"
        finally:
            utils.ascii_only = ascii_only

    def test_get_cmd_shell_repr(self) -> None:
        env = dict(os.environ, GIT_EDITOR="true")
        assert utils.get_cmd_shell_repr("git", "commit", "-m", "some message", env=env) == \
            "GIT_EDITOR=true git commit -m some\\ message"

    def test_popen_cmd_redacts_tokens(self) -> None:
        result = utils.popen_cmd("echo", "https://ghp_abc123@github.com/grove/demo.git")
        assert result.exit_code == 0
        assert result.stdout == "https://<REDACTED>@github.com/grove/demo.git\n"

    def test_get_non_empty_lines(self) -> None:
        assert utils.get_non_empty_lines("main\n\npayments\n") == ["main", "payments"]
