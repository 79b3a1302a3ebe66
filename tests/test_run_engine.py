from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from git_grove import git_config_keys
from git_grove.ancestry import BranchAncestry
from git_grove.exceptions import GroveException, StepExecutionException
from git_grove.git_operations import (FullCommitHash, GitContext,
                                      LocalBranchShortName)
from git_grove.run_engine import RunOutcome, StepRunner
from git_grove.run_state import RunOptions, RunStateStore
from git_grove.steps import (CreateAndCheckoutBranchStep, ResetBranchStep,
                             Step, StepContext, StepOutcome,
                             step_class_by_kind)
from git_grove.store import GitConfigStore

from .base_test import BaseTest
from .mockers import InMemoryStore
from .mockers_git_repository import (create_repo_with_main_branch,
                                     get_commit_hash, get_current_branch,
                                     get_local_branches)

executed: List[str] = []
undo_computed: List[str] = []
# Outcomes to yield on the consecutive executions of the step with the given name: `conflict`, `fail` or `ok` (the default)
scripted_outcomes: Dict[str, List[str]] = {}


class RecordingStep(Step):
    kind = 'record'

    def __init__(self, name: str) -> None:
        self.name = name

    def args(self) -> List[str]:
        return [self.name]

    @classmethod
    def from_args(cls, args: List[str]) -> "RecordingStep":
        cls._check_arity(args, 1)
        return cls(args[0])

    def execute(self, context: StepContext) -> StepOutcome:
        executed.append(self.name)
        outcomes = scripted_outcomes.get(self.name)
        outcome = outcomes.pop(0) if outcomes else 'ok'
        if outcome == 'fail':
            raise GroveException(f"{self.name} went wrong")
        return StepOutcome.NEEDS_RESOLUTION if outcome == 'conflict' else StepOutcome.SUCCESS

    def compute_undo(self, context: StepContext) -> Optional[Step]:
        if self.name.startswith('undo-'):
            return None
        undo_computed.append(self.name)
        return RecordingStep('undo-' + self.name)


def steps(*names: str) -> List[Step]:
    return [RecordingStep(name) for name in names]


class TestStepRunner(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        executed.clear()
        undo_computed.clear()
        scripted_outcomes.clear()
        self.git = MagicMock()
        self.git.has_conflicts.return_value = False
        self.git.is_rebase_in_progress.return_value = False
        self.git.is_merge_in_progress.return_value = False
        self.store = InMemoryStore()
        context = StepContext(self.git, self.store, BranchAncestry(self.store, lambda: []))
        self.run_state_store = RunStateStore(self.store)
        self.runner = StepRunner(context, self.run_state_store)

    @pytest.fixture(autouse=True)
    def register_recording_step(self, mocker: MockerFixture) -> None:
        mocker.patch.dict(step_class_by_kind, {RecordingStep.kind: RecordingStep})

    def pause_sync_on_second_step(self) -> None:
        scripted_outcomes['b'] = ['conflict']
        assert self.runner.run("sync", steps('a', 'b', 'c'), RunOptions()) == RunOutcome.PAUSED

    def test_run_to_completion(self) -> None:
        assert self.runner.run("sync", steps('a', 'b', 'c'), RunOptions()) == RunOutcome.DONE

        assert executed == ['a', 'b', 'c']
        assert not self.run_state_store.exists()
        assert self.store.entries == {}

    def test_pause_saves_remaining_and_undo_steps(self) -> None:
        self.pause_sync_on_second_step()

        state = self.run_state_store.load()
        assert state is not None
        assert state.command == "sync"
        assert state.remaining_steps == steps('b', 'c')
        assert state.undo_steps == steps('undo-a')
        assert state.pending_undo_step == RecordingStep('undo-b')
        assert executed == ['a', 'b']

    def test_continue_executes_the_remaining_steps_once(self) -> None:
        self.pause_sync_on_second_step()
        executed.clear()

        assert self.runner.continue_run("sync") == RunOutcome.DONE

        assert executed == ['b', 'c']
        # The undo of the resumed step comes from the journal, not from the half-done state
        assert undo_computed == ['a', 'b', 'c']
        assert not self.run_state_store.exists()

    def test_abort_runs_undo_steps_in_reverse_order(self) -> None:
        scripted_outcomes['c'] = ['conflict']
        self.runner.run("sync", steps('a', 'b', 'c'), RunOptions())
        executed.clear()

        assert self.runner.abort("sync") == RunOutcome.DONE

        assert executed == ['undo-c', 'undo-b', 'undo-a']
        assert not self.run_state_store.exists()

    def test_abort_goes_on_after_a_failed_undo_step(self) -> None:
        self.pause_sync_on_second_step()
        scripted_outcomes['undo-b'] = ['fail']
        executed.clear()

        assert self.runner.abort("sync") == RunOutcome.FAILED

        assert executed == ['undo-b', 'undo-a']
        assert not self.run_state_store.exists()

    def test_abort_stops_merge_in_progress(self) -> None:
        self.pause_sync_on_second_step()
        self.git.is_merge_in_progress.return_value = True

        self.runner.abort("sync")

        self.git.abort_merge.assert_called_once_with()
        self.git.abort_rebase.assert_not_called()

    def test_only_one_run_at_a_time(self) -> None:
        self.pause_sync_on_second_step()
        entries_before = dict(self.store.entries)
        executed.clear()

        with pytest.raises(GroveException) as e:
            self.runner.run("hack", steps('x'), RunOptions())

        assert "git grove sync is in progress" in str(e.value)
        assert executed == []
        assert self.store.entries == entries_before

    def test_failing_step_is_saved_for_later(self) -> None:
        scripted_outcomes['b'] = ['fail']

        with pytest.raises(StepExecutionException) as e:
            self.runner.run("kill", steps('a', 'b', 'c'), RunOptions())

        assert isinstance(e.value.cause, GroveException)
        assert "Step record b failed:\nb went wrong" in str(e.value)
        assert "git grove kill --abort" in str(e.value)
        state = self.run_state_store.load()
        assert state is not None
        assert state.remaining_steps == steps('b', 'c')
        assert state.undo_steps == steps('undo-a')
        assert state.pending_undo_step == RecordingStep('undo-b')

        # Once the problem is gone, the run can be finished
        executed.clear()
        assert self.runner.continue_run("kill") == RunOutcome.DONE
        assert executed == ['b', 'c']

    def test_continue_with_unresolved_conflicts(self) -> None:
        self.pause_sync_on_second_step()
        self.git.has_conflicts.return_value = True
        entries_before = dict(self.store.entries)
        executed.clear()

        with pytest.raises(GroveException) as e:
            self.runner.continue_run("sync")

        assert str(e.value) == "You must resolve the conflicts before continuing"
        assert executed == []
        assert self.store.entries == entries_before

    def test_continue_concludes_rebase_in_progress(self) -> None:
        self.pause_sync_on_second_step()
        self.git.is_rebase_in_progress.return_value = True

        self.runner.continue_run("sync")

        self.git.continue_rebase.assert_called_once_with()
        self.git.commit_no_edit.assert_not_called()

    def test_continue_concludes_merge_in_progress(self) -> None:
        self.pause_sync_on_second_step()
        self.git.is_merge_in_progress.return_value = True

        self.runner.continue_run("sync")

        self.git.commit_no_edit.assert_called_once_with()
        self.git.continue_rebase.assert_not_called()

    def test_continue_or_abort_another_command(self) -> None:
        self.pause_sync_on_second_step()

        with pytest.raises(GroveException) as e:
            self.runner.continue_run("hack")
        assert str(e.value) == "The operation in progress is git grove sync, not git grove hack"

        with pytest.raises(GroveException):
            self.runner.abort("kill")
        assert self.run_state_store.exists()

    def test_nothing_to_continue(self) -> None:
        for resume in (self.runner.continue_run, self.runner.abort):
            with pytest.raises(GroveException) as e:
                resume("sync")
            assert str(e.value) == "Nothing to do: no operation in progress"


class TestStepRunnerOnRepository(BaseTest):

    def test_abort_after_failed_step_brings_back_the_previous_state(self) -> None:
        create_repo_with_main_branch(with_remote=False)
        main_hash = get_commit_hash("main")
        git = GitContext()
        store = GitConfigStore(git)
        context = StepContext(git, store, BranchAncestry(store, git.get_local_branches))
        runner = StepRunner(context, RunStateStore(store))
        payments = LocalBranchShortName.of("payments")
        main = LocalBranchShortName.of("main")
        non_existent_commit = FullCommitHash.of("f" * 40)

        with pytest.raises(StepExecutionException):
            runner.run("hack", [CreateAndCheckoutBranchStep(payments, main),
                                ResetBranchStep(payments, non_existent_commit)], RunOptions())
        assert get_current_branch() == "payments"
        assert git.get_config_attr_or_none(git_config_keys.RUN_STATE_COMMAND) == "hack"

        assert runner.abort("hack") == RunOutcome.DONE

        assert get_local_branches() == ["main"]
        assert get_current_branch() == "main"
        assert get_commit_hash("main") == main_hash
        assert git.get_config_attr_or_none(git_config_keys.branch_parent("payments")) is None
        assert git.get_config_attr_or_none(git_config_keys.RUN_STATE_COMMAND) is None
