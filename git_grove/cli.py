#!/usr/bin/env python3

import argparse
import os
import sys
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import git_grove.options
from git_grove import __version__, git_config_keys, utils
from git_grove.ancestry import BranchAncestry
from git_grove.planners.append import AppendPlanner
from git_grove.planners.base import Plan
from git_grove.planners.hack import HackPlanner
from git_grove.planners.kill import KillPlanner
from git_grove.planners.new_pull_request import NewPullRequestPlanner
from git_grove.planners.sync import SyncPlanner
from git_grove.run_engine import RunOutcome, StepRunner
from git_grove.run_state import RunStateStore
from git_grove.steps import PullBranchStrategy, StepContext
from git_grove.store import GitConfigStore

from .exceptions import (ExitCode, GroveException, UnderlyingGitException,
                         UnexpectedGroveException)
from .git_operations import GitContext, LocalBranchShortName
from .utils import AnsiEscapeCodes, bold, colored, fmt, warn

short_docs: Dict[str, str] = {
    "append": "Create a new feature branch as a child of the current branch",
    "config": "Display or update the git-grove configuration",
    "hack": "Create a new feature branch off the main branch",
    "kill": "Remove a feature branch, both locally and from the remote",
    "new-pull-request": "Open a pull request of the current branch into its parent branch",
    "set-parent-branch": "Change the parent of a feature branch",
    "sync": "Update the current branch with its ancestors and its remote counterpart",
    "version": "Display the version and exit",
}

workflow_commands: List[str] = ["append", "hack", "kill", "new-pull-request", "sync"]

config_keys_by_name: Dict[str, str] = {
    "hack-push-flag": git_config_keys.HACK_PUSH_FLAG,
    "main-branch": git_config_keys.MAIN_BRANCH_NAME,
    "perennial-branches": git_config_keys.PERENNIAL_BRANCH_NAMES,
    "pull-branch-strategy": git_config_keys.PULL_BRANCH_STRATEGY,
}


def get_short_general_usage() -> str:
    return (fmt("<b>Usage: git grove [--debug] [-h] [-v|--verbose] [--version] "
                "<command> [command-specific options] [command-specific argument]</b>"))


def get_help_description() -> str:
    usage_str = get_short_general_usage() + "\n\n"
    usage_str += underline_header("Available commands") + "\n"
    for command, doc in short_docs.items():
        usage_str += f"    {bold(command.ljust(20))}{doc}\n"
    usage_str += "\n" + fmt(
        "Workflow commands (`" + "`, `".join(workflow_commands) + "`) accept `--abort` and `--continue`\n"
        "to undo or to finish a run that stopped on conflicts.")
    return usage_str


def underline_header(text: str) -> str:
    return fmt(f"<u>{text}</u>")


def version() -> None:
    print(f"git-grove version {__version__}")


class GroveHelpAction(argparse.Action):
    def __init__(
            self,
            option_strings: str,
            dest: str = argparse.SUPPRESS,
            default: Any = argparse.SUPPRESS,
            help: Optional[str] = None
    ) -> None:
        super(GroveHelpAction, self).__init__(
            option_strings=option_strings,
            dest=dest,
            default=default,
            nargs=0,
            help=help)

    def __call__(
            self,
            parser: argparse.ArgumentParser,
            namespace: argparse.Namespace,  # noqa: F841, U100
            values: Union[str, Sequence[Any], None],  # noqa: U100
            option_string: Optional[str] = None  # noqa: F841, U100
    ) -> None:
        # parser name (prog) is expected to be `git grove` or `git grove <command>`
        command_name = parser.prog.replace('git grove', '').strip()
        if command_name in short_docs:
            print(fmt(f"<b>{command_name}</b>: {short_docs[command_name]}"))
        else:
            print(get_help_description())
        parser.exit(status=ExitCode.SUCCESS)


def create_cli_parser() -> argparse.ArgumentParser:
    common_args_parser = argparse.ArgumentParser(
        prog='git grove',
        argument_default=argparse.SUPPRESS,
        add_help=False)
    common_args_parser.add_argument('--debug', action='store_true')
    common_args_parser.add_argument('-h', '--help', action=GroveHelpAction)
    common_args_parser.add_argument('--version', action='version', version=f'git-grove version {__version__}')
    common_args_parser.add_argument('-v', '--verbose', action='store_true')

    cli_parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog='git grove',
        argument_default=argparse.SUPPRESS,
        add_help=False,
        parents=[common_args_parser])

    subparsers = cli_parser.add_subparsers(dest='command')

    def create_subparser(command: str) -> argparse.ArgumentParser:
        return subparsers.add_parser(
            command,
            argument_default=argparse.SUPPRESS,
            usage=argparse.SUPPRESS,
            add_help=False,
            parents=[common_args_parser])

    def add_resume_args(parser: argparse.ArgumentParser) -> None:
        resume_args = parser.add_mutually_exclusive_group()
        resume_args.add_argument('--abort', action='store_true')
        resume_args.add_argument('--continue', dest='continue_', action='store_true')

    append_parser = create_subparser('append')
    append_parser.add_argument('branch', nargs='?')
    add_resume_args(append_parser)

    config_parser = create_subparser('config')
    config_parser.add_argument('config_key', nargs='?')
    config_parser.add_argument('config_values', nargs='*')

    hack_parser = create_subparser('hack')
    hack_parser.add_argument('branch', nargs='?')
    add_resume_args(hack_parser)

    kill_parser = create_subparser('kill')
    kill_parser.add_argument('branch', nargs='?')
    add_resume_args(kill_parser)

    new_pull_request_parser = create_subparser('new-pull-request')
    add_resume_args(new_pull_request_parser)

    set_parent_branch_parser = create_subparser('set-parent-branch')
    set_parent_branch_parser.add_argument('branch')
    set_parent_branch_parser.add_argument('parent')

    sync_parser = create_subparser('sync')
    sync_parser.add_argument('-a', '--all', action='store_true')
    add_resume_args(sync_parser)

    create_subparser('version')

    return cli_parser


def update_cli_options_using_parsed_args(
        cli_opts: git_grove.options.CommandLineOptions,
        parsed_args: argparse.Namespace) -> None:
    # Since argparse is not typed, everything that comes from argparse.Namespace will be taken as Any.
    for opt, arg in vars(parsed_args).items():
        # --debug and --verbose are handled outside this method
        if opt == "abort":
            cli_opts.opt_abort = True
        elif opt == "all":
            cli_opts.opt_all = True
        elif opt == "branch":
            cli_opts.opt_branch = LocalBranchShortName.of(arg.replace('refs/heads/', '')) if arg else None
        elif opt == "config_key":
            cli_opts.opt_config_key = arg
        elif opt == "config_values":
            cli_opts.opt_config_values = list(arg)
        elif opt == "continue_":
            cli_opts.opt_continue = True
        elif opt == "parent":
            cli_opts.opt_parent = LocalBranchShortName.of(arg.replace('refs/heads/', '')) if arg else None


def set_utils_global_variables(parsed_args: argparse.Namespace) -> None:
    args = vars(parsed_args)
    utils.debug_mode = "debug" in args
    utils.verbose_mode = "verbose" in args


def run_workflow(
        runner: StepRunner,
        command: str,
        cli_opts: git_grove.options.CommandLineOptions,
        make_plan: Callable[[], Plan]
) -> ExitCode:
    if cli_opts.opt_abort:
        outcome = runner.abort(command)
        if outcome == RunOutcome.FAILED:
            warn(f"not everything done by `git grove {command}` could be undone, see the warnings above")
    elif cli_opts.opt_continue:
        outcome = runner.continue_run(command)
    else:
        # Planning might ask questions about the ancestry, which is pointless when the run can't start anyway.
        runner.expect_no_pending_run()
        plan = make_plan()
        utils.debug(f"plan: {plan.steps}, options: {plan.options}")
        outcome = runner.run(command, plan.steps, plan.options)
    return ExitCode.SUCCESS if outcome == RunOutcome.DONE else ExitCode.GROVE_EXCEPTION


def set_parent_branch(git: GitContext, ancestry: BranchAncestry,
                      branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
    for b in (branch, parent):
        if not git.does_local_branch_exist(b):
            raise GroveException(f"There is no branch named {bold(b)}")
    if not ancestry.is_feature_branch(branch):
        raise GroveException(f"{bold(branch)} is not a feature branch, it cannot have a parent")
    ancestry.set_parent(branch, parent)
    ancestry.refresh_ancestors(branch)
    print(fmt(f"Parent branch of <b>{branch}</b> set to <b>{parent}</b>"))


def display_config(git: GitContext) -> None:
    main_branch = git.get_config_attr_or_none(git_config_keys.MAIN_BRANCH_NAME)
    perennial_branches = (git.get_config_attr_or_none(git_config_keys.PERENNIAL_BRANCH_NAMES) or '').split()
    hack_push_flag = git.get_boolean_config_attr(git_config_keys.HACK_PUSH_FLAG, default_value=False)
    pull_branch_strategy = git.get_config_attr_or_none(git_config_keys.PULL_BRANCH_STRATEGY) or 'rebase'

    print(bold("Main branch:"))
    print(main_branch or "[none]")
    print()
    print(bold("Perennial branches:"))
    print("\n".join(perennial_branches) if perennial_branches else "[none]")
    print()
    print(bold("Push new branches:"))
    print("yes" if hack_push_flag else "no")
    print()
    print(bold("Pull branch strategy:"))
    print(pull_branch_strategy)


def update_config(git: GitContext, name: str, values: List[str]) -> None:
    if name not in config_keys_by_name:
        valid_values = ", ".join(f"`{n}`" for n in config_keys_by_name)
        raise GroveException(f"Invalid config key: `{name}`. Valid keys are {valid_values}")
    key = config_keys_by_name[name]
    if not values:
        value = git.get_config_attr_or_none(key)
        print(value if value else "[none]")
        return

    if name == "main-branch":
        if len(values) != 1:
            raise GroveException("Exactly one main branch is expected")
        branch = LocalBranchShortName.of(values[0])
        if not git.does_local_branch_exist(branch):
            raise GroveException(f"There is no branch named {bold(branch)}")
        git.set_config_attr(key, branch)
    elif name == "perennial-branches":
        main_branch = git.get_config_attr_or_none(git_config_keys.MAIN_BRANCH_NAME)
        for value in values:
            if not git.does_local_branch_exist(LocalBranchShortName.of(value)):
                raise GroveException(f"There is no branch named {bold(value)}")
            if value == main_branch:
                raise GroveException(f"{bold(value)} is already the main branch")
        git.set_config_attr(key, ' '.join(values))
    elif name == "hack-push-flag":
        if len(values) != 1 or values[0] not in ('true', 'false'):
            raise GroveException("Invalid value for `hack-push-flag`. Valid values are `true`, `false`")
        git.set_config_attr(key, values[0])
    elif name == "pull-branch-strategy":
        if len(values) != 1:
            raise GroveException("Exactly one pull branch strategy is expected")
        PullBranchStrategy.from_string(values[0])
        git.set_config_attr(key, values[0].lower())
    else:  # pragma: no cover
        raise UnexpectedGroveException(f"Unknown config key: `{name}`")


def launch(orig_args: List[str]) -> ExitCode:
    initial_current_directory: Optional[str] = utils.get_current_directory_or_none()

    try:
        cli_opts = git_grove.options.CommandLineOptions()
        git = GitContext()

        cli_parser: argparse.ArgumentParser = create_cli_parser()
        parsed_cli: argparse.Namespace = cli_parser.parse_args(orig_args)

        # Let's set up options like debug/verbose before we first start reading `git config`.
        set_utils_global_variables(parsed_cli)
        update_cli_options_using_parsed_args(cli_opts, parsed_cli)

        cmd = parsed_cli.command
        if not cmd:
            print(get_help_description())
            return ExitCode.ARGUMENT_ERROR

        if cmd == "version":
            version()
            return ExitCode.SUCCESS

        store = GitConfigStore(git)
        ancestry = BranchAncestry(store, git.get_local_branches)

        if cmd == "config":
            if cli_opts.opt_config_key:
                update_config(git, cli_opts.opt_config_key, cli_opts.opt_config_values)
            else:
                display_config(git)
            return ExitCode.SUCCESS
        if cmd == "set-parent-branch":
            assert cli_opts.opt_branch is not None and cli_opts.opt_parent is not None
            set_parent_branch(git, ancestry, cli_opts.opt_branch, cli_opts.opt_parent)
            return ExitCode.SUCCESS

        if cmd not in workflow_commands:  # an unknown command is handled by argparse
            raise UnexpectedGroveException(f"Unknown command: `{cmd}`")
        if cli_opts.is_resuming() and (cli_opts.opt_branch or cli_opts.opt_all):
            print(fmt("Options `--abort` and `--continue` cannot be combined with other arguments"), file=sys.stderr)
            return ExitCode.ARGUMENT_ERROR

        context = StepContext(git, store, ancestry)
        runner = StepRunner(context, RunStateStore(store))
        if cmd == "append":
            append_planner = AppendPlanner(context)
            return run_workflow(runner, cmd, cli_opts, lambda: append_planner.plan(branch=cli_opts.opt_branch))
        elif cmd == "hack":
            hack_planner = HackPlanner(context)
            return run_workflow(runner, cmd, cli_opts, lambda: hack_planner.plan(branch=cli_opts.opt_branch))
        elif cmd == "kill":
            kill_planner = KillPlanner(context)
            return run_workflow(runner, cmd, cli_opts, lambda: kill_planner.plan(branch=cli_opts.opt_branch))
        elif cmd == "new-pull-request":
            new_pull_request_planner = NewPullRequestPlanner(context)
            return run_workflow(runner, cmd, cli_opts, new_pull_request_planner.plan)
        else:
            sync_planner = SyncPlanner(context)
            return run_workflow(runner, cmd, cli_opts, lambda: sync_planner.plan(all_branches=cli_opts.opt_all))
    finally:
        # Current directory might no longer exist due to e.g. a checkout of a branch that doesn't contain it.
        if initial_current_directory and not utils.does_directory_exist(initial_current_directory):
            nearest_existing_parent_directory = initial_current_directory
            while not utils.does_directory_exist(nearest_existing_parent_directory):
                nearest_existing_parent_directory = os.path.join(
                    nearest_existing_parent_directory, os.path.pardir)
            warn(f"current directory {initial_current_directory} no longer exists, "
                 f"the nearest existing parent directory is {os.path.abspath(nearest_existing_parent_directory)}")


def print_error(e: Exception) -> None:
    print(colored("Error", AnsiEscapeCodes.RED), file=sys.stderr)
    print(e, file=sys.stderr)


def main() -> None:
    try:
        sys.exit(launch(sys.argv[1:]))
    except EOFError:  # pragma: no cover
        sys.exit(ExitCode.END_OF_FILE_SIGNAL)
    except KeyboardInterrupt:  # pragma: no cover
        sys.exit(ExitCode.KEYBOARD_INTERRUPT)
    except (GroveException, UnderlyingGitException) as e:
        print_error(e)
        sys.exit(ExitCode.GROVE_EXCEPTION)


if __name__ == "__main__":
    main()
