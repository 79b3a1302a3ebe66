MAIN_BRANCH_NAME = 'grove.main-branch-name'
PERENNIAL_BRANCH_NAMES = 'grove.perennial-branch-names'
HACK_PUSH_FLAG = 'grove.hack-push-flag'
PULL_BRANCH_STRATEGY = 'grove.pull-branch-strategy'
CODE_HOSTING_DRIVER = 'grove.code-hosting-driver'
CODE_HOSTING_ORIGIN_HOSTNAME = 'grove.code-hosting-origin-hostname'

BRANCH_SECTION_PREFIX = 'grove-branch.'

RUN_STATE_COMMAND = 'grove-run-state.command'
RUN_STATE_STEPS = 'grove-run-state.steps'
RUN_STATE_OPTIONS = 'grove-run-state.options'


def branch_parent(branch: str) -> str:
    return f'{BRANCH_SECTION_PREFIX}{branch}.parent'


def branch_ancestors(branch: str) -> str:
    return f'{BRANCH_SECTION_PREFIX}{branch}.ancestors'
