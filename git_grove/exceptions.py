from enum import IntEnum

from git_grove import utils


class UnderlyingGitException(Exception):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        self.msg: str = utils.fmt(msg) if apply_fmt else msg

    def __str__(self) -> str:
        return str(self.msg)


class GroveException(Exception):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        self.msg: str = utils.fmt(msg) if apply_fmt else msg

    def __str__(self) -> str:
        return str(self.msg)


class UnexpectedGroveException(GroveException):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        super().__init__(
            f"{msg}\n\nThis is most likely a bug in git-grove, please report it with the steps that led to it",
            apply_fmt=apply_fmt)


class StepExecutionException(GroveException):
    """Raised when a step fails in a way the user can't fix by resolving conflicts.
    By the time it's raised, the remaining steps have already been saved, so `--continue` and `--abort` still work."""

    def __init__(self, command: str, step_repr: str, cause: Exception) -> None:
        super().__init__(
            f"Step <b>{step_repr}</b> failed:\n{cause}\n\n"
            f"To abort, run `git grove {command} --abort`.\n"
            f"To retry after fixing the problem, run `git grove {command} --continue`.")
        self.cause: Exception = cause


class ExitCode(IntEnum):
    SUCCESS = 0
    GROVE_EXCEPTION = 1
    ARGUMENT_ERROR = 2
    KEYBOARD_INTERRUPT = 3
    END_OF_FILE_SIGNAL = 4
