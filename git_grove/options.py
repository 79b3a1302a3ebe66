from typing import List, Optional

from .git_operations import LocalBranchShortName


class CommandLineOptions:

    def __init__(self) -> None:
        self.opt_abort: bool = False
        self.opt_all: bool = False
        self.opt_branch: Optional[LocalBranchShortName] = None
        self.opt_config_key: Optional[str] = None
        self.opt_config_values: List[str] = list()
        self.opt_continue: bool = False
        self.opt_parent: Optional[LocalBranchShortName] = None

    def is_resuming(self) -> bool:
        return self.opt_abort or self.opt_continue

    def __repr__(self) -> str:  # pragma: no cover; debug only
        attrs = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__module__}.{self.__class__.__qualname__}({attrs})"
