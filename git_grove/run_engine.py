import os
from enum import Enum, auto
from typing import Iterable, List, Optional

from git_grove.exceptions import (GroveException, StepExecutionException,
                                  UnderlyingGitException)
from git_grove.run_state import RunOptions, RunState, RunStateStore
from git_grove.steps import Step, StepContext, StepOutcome
from git_grove.utils import debug, fmt, warn


class RunOutcome(Enum):
    DONE = auto()
    PAUSED = auto()
    FAILED = auto()


class StepRunner:
    """Executes the steps of a workflow one by one.

    After every step, the inverse of what the step has done is prepended to the undo steps.
    When a step stops on conflicts (or fails), the remaining steps and the undo steps are saved,
    so that a later `--continue` picks up at the step that stopped, and a later `--abort` runs the undo steps."""

    def __init__(self, context: StepContext, run_state_store: RunStateStore) -> None:
        self.__context = context
        self.__run_state_store = run_state_store

    def expect_no_pending_run(self) -> None:
        state = self.__run_state_store.load()
        if state:
            raise GroveException(
                f"`git grove {state.command}` is in progress.\n"
                f"Run `git grove {state.command} --continue` to finish it, "
                f"or `git grove {state.command} --abort` to undo it.")

    def run(self, command: str, steps: Iterable[Step], options: RunOptions) -> RunOutcome:
        self.expect_no_pending_run()
        self.__enter(options)
        return self.__execute(RunState(
            command=command, remaining_steps=list(steps), undo_steps=[], pending_undo_step=None, options=options))

    def continue_run(self, command: str) -> RunOutcome:
        state = self.__load_pending_run(command)
        self.__enter(state.options)
        git = self.__context.git
        if git.has_conflicts():
            raise GroveException("You must resolve the conflicts before continuing")
        if git.is_rebase_in_progress():
            git.continue_rebase()
        elif git.is_merge_in_progress():
            git.commit_no_edit()
        return self.__execute(state)

    def abort(self, command: str) -> RunOutcome:
        state = self.__load_pending_run(command)
        self.__enter(state.options)
        git = self.__context.git
        failed = False
        try:
            if git.is_rebase_in_progress():
                git.abort_rebase()
            elif git.is_merge_in_progress():
                git.abort_merge()
        except UnderlyingGitException as e:
            warn(f"could not abort the operation in progress:\n{e}", apply_fmt=False)
            failed = True

        undo_steps: List[Step] = ([state.pending_undo_step] if state.pending_undo_step else []) + state.undo_steps
        for step in undo_steps:
            debug(f"undoing with {step}")
            try:
                if step.execute(self.__context) != StepOutcome.SUCCESS:
                    warn(f"undo step `{step}` stopped on conflicts, skipping it")
                    failed = True
            except (GroveException, UnderlyingGitException) as e:
                warn(f"undo step `{step}` failed:\n{e}", apply_fmt=False)
                failed = True

        # Keeping the run state after a failed undo would block every other command,
        # and there's no guarantee that running the undo steps again would help.
        self.__run_state_store.clear()
        return RunOutcome.FAILED if failed else RunOutcome.DONE

    def __load_pending_run(self, command: str) -> RunState:
        state = self.__run_state_store.load()
        if not state:
            raise GroveException("Nothing to do: no operation in progress")
        if state.command != command:
            raise GroveException(
                f"The operation in progress is `git grove {state.command}`, not `git grove {command}`")
        return state

    def __enter(self, options: RunOptions) -> None:
        if options.run_in_git_root:
            root_dir = self.__context.git.get_root_dir()
            debug(f"changing directory to {root_dir}")
            os.chdir(root_dir)

    def __execute(self, state: RunState) -> RunOutcome:
        command, options = state.command, state.options
        remaining_steps: List[Step] = list(state.remaining_steps)
        undo_steps: List[Step] = list(state.undo_steps)
        # The undo of a step that has been resumed was captured before the step first ran;
        # computing it again now would capture the half-done state.
        resumed_undo_step: Optional[Step] = state.pending_undo_step
        is_resumed = resumed_undo_step is not None

        while remaining_steps:
            step = remaining_steps[0]
            undo_step: Optional[Step] = None
            try:
                undo_step = resumed_undo_step if is_resumed else step.compute_undo(self.__context)
                is_resumed = False
                debug(f"executing {step}")
                outcome = step.execute(self.__context)
            except (GroveException, UnderlyingGitException) as e:
                self.__run_state_store.save(RunState(command, remaining_steps, undo_steps, undo_step, options))
                raise StepExecutionException(command, repr(step), e)

            if outcome == StepOutcome.NEEDS_RESOLUTION:
                self.__run_state_store.save(RunState(command, remaining_steps, undo_steps, undo_step, options))
                print(fmt(
                    "\n"
                    f"To abort, run `git grove {command} --abort`.\n"
                    f"To continue after having resolved the conflicts, run `git grove {command} --continue`."))
                return RunOutcome.PAUSED

            if undo_step:
                undo_steps.insert(0, undo_step)
            remaining_steps.pop(0)
            if remaining_steps:
                self.__run_state_store.save(RunState(command, remaining_steps, undo_steps, None, options))

        self.__run_state_store.clear()
        return RunOutcome.DONE
