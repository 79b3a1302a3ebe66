from abc import ABCMeta, abstractmethod
from typing import Optional, Set, Tuple

from git_grove.git_operations import GitContext


class KeyValueStore(metaclass=ABCMeta):
    """Persistent string-to-string mapping that holds both the branch ancestry and the operation journal."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def unset(self, key: str) -> None:
        """No-op when the key is absent."""
        pass

    @abstractmethod
    def list_matching(self, prefix: str) -> Set[Tuple[str, str]]:
        pass


class GitConfigStore(KeyValueStore):
    def __init__(self, git: GitContext) -> None:
        self.__git = git

    def get(self, key: str) -> Optional[str]:
        return self.__git.get_config_attr_or_none(key)

    def set(self, key: str, value: str) -> None:
        self.__git.set_config_attr(key, value)

    def unset(self, key: str) -> None:
        self.__git.unset_config_attr(key)

    def list_matching(self, prefix: str) -> Set[Tuple[str, str]]:
        return set(self.__git.get_config_attrs_with_prefix(prefix).items())
