from typing import Dict, List, NamedTuple, Optional, Tuple

from git_grove import git_config_keys
from git_grove.exceptions import UnexpectedGroveException
from git_grove.steps import Step
from git_grove.store import KeyValueStore
from git_grove.utils import debug


class RunOptions(NamedTuple):
    run_in_git_root: bool = False
    stash_open_changes: bool = False

    def serialize(self) -> str:
        return ' '.join(f"{name.replace('_', '-')}={str(value).lower()}" for name, value in self._asdict().items())

    @classmethod
    def deserialize(cls, text: str) -> "RunOptions":
        values: Dict[str, bool] = {}
        for pair in text.split():
            name, sep, value = pair.partition('=')
            field = name.replace('-', '_')
            if not sep or field not in cls._fields or value not in ('true', 'false'):
                raise UnexpectedGroveException(f"Invalid run option `{pair}`")
            values[field] = value == 'true'
        return cls(**values)


class RunState(NamedTuple):
    """A paused run: what is left to do, and how to take back what has been done."""

    command: str
    remaining_steps: List[Step]
    undo_steps: List[Step]
    pending_undo_step: Optional[Step]
    options: RunOptions


REMAINING = 'remaining'
UNDO = 'undo'
PENDING = 'pending'


def serialize_steps(state: RunState) -> str:
    lines = [f"{REMAINING} {step.serialize()}" for step in state.remaining_steps]
    lines += [f"{UNDO} {step.serialize()}" for step in state.undo_steps]
    if state.pending_undo_step:
        lines.append(f"{PENDING} {state.pending_undo_step.serialize()}")
    return '\n'.join(lines)


def deserialize_steps(text: Optional[str]) -> Tuple[List[Step], List[Step], Optional[Step]]:
    steps: Dict[str, List[Step]] = {REMAINING: [], UNDO: [], PENDING: []}
    for line in (text or '').splitlines():
        if not line.strip():
            continue
        section, _, step = line.partition(' ')
        if section not in steps:
            raise UnexpectedGroveException(f"Invalid run state entry `{line}`")
        steps[section].append(Step.deserialize(step))
    if len(steps[PENDING]) > 1:
        raise UnexpectedGroveException("More than one pending undo step in the run state")
    return steps[REMAINING], steps[UNDO], next(iter(steps[PENDING]), None)


class RunStateStore:
    """Keeps at most one paused run in the store.

    All the steps live under a single key, so every save replaces them in one write.
    The command key marks the presence of the run: it is written after the other keys and removed before them,
    so that a run interrupted in the middle of its first save is never mistaken for a complete one."""

    def __init__(self, store: KeyValueStore) -> None:
        self.__store = store

    def exists(self) -> bool:
        return bool(self.__store.get(git_config_keys.RUN_STATE_COMMAND))

    def load(self) -> Optional[RunState]:
        command = self.__store.get(git_config_keys.RUN_STATE_COMMAND)
        if not command:
            return None
        remaining_steps, undo_steps, pending_undo_step = deserialize_steps(
            self.__store.get(git_config_keys.RUN_STATE_STEPS))
        return RunState(
            command=command,
            remaining_steps=remaining_steps,
            undo_steps=undo_steps,
            pending_undo_step=pending_undo_step,
            options=RunOptions.deserialize(self.__store.get(git_config_keys.RUN_STATE_OPTIONS) or ''))

    def save(self, state: RunState) -> None:
        debug(f"saving {len(state.remaining_steps)} remaining and {len(state.undo_steps)} undo step(s) of {state.command}")
        self.__store.set(git_config_keys.RUN_STATE_STEPS, serialize_steps(state))
        if not self.exists():
            self.__store.set(git_config_keys.RUN_STATE_OPTIONS, state.options.serialize())
            self.__store.set(git_config_keys.RUN_STATE_COMMAND, state.command)

    def clear(self) -> None:
        debug("clearing the run state")
        self.__store.unset(git_config_keys.RUN_STATE_COMMAND)
        self.__store.unset(git_config_keys.RUN_STATE_STEPS)
        self.__store.unset(git_config_keys.RUN_STATE_OPTIONS)
