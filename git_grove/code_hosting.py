import re
import urllib.parse
import webbrowser
from abc import ABCMeta, abstractmethod
from typing import Dict, List, NamedTuple, Optional, Type

from git_grove import git_config_keys
from git_grove.exceptions import GroveException
from git_grove.git_operations import ORIGIN, GitContext
from git_grove.utils import bold, debug, fmt


class OrganizationAndRepository(NamedTuple):
    organization: str
    repository: str

    def __str__(self) -> str:
        return f"{self.organization}/{self.repository}"

    @classmethod
    def from_url(cls, domain: str, url: str) -> Optional["OrganizationAndRepository"]:
        url = url if url.endswith('.git') else url + '.git'
        for pattern in remote_url_patterns(domain):
            match = re.match(pattern, url)
            if match:
                org = match.group(1)
                repo = match.group(2)
                return cls(organization=org, repository=repo if repo[-4:] != '.git' else repo[:-4])
        return None

    @classmethod
    def of(cls, value: str) -> "OrganizationAndRepository":
        org, _, repo = value.rpartition('/')
        if not org or not repo:
            raise GroveException(f"`{value}` is not a valid `<organization>/<repository>` pair")
        return cls(organization=org, repository=repo)


def remote_url_patterns(domain: str) -> List[str]:
    # The organization (GitLab calls it a "namespace") might contain multiple `/`-separated segments.
    domain_regex = re.escape(domain)
    org_repo_regex = "(.+)/([^/]+)"
    return [
        # (?:...) is a non-capturing group
        f"^https?://(?:.+@)?{domain_regex}/{org_repo_regex}$",
        # A very rare way to express SSH URL
        f"^ssh://.+@{domain_regex}(?::[0-9]+)?/{org_repo_regex}$",
        # The below is way more common for SSH; the user before `@` is typically called `git`, but doesn't need to be so
        f"^[^:/]+@{domain_regex}:{org_repo_regex}$",
    ]


def extract_hostname(url: str) -> Optional[str]:
    match = re.match(r"^(?:[a-z+]+://)?(?:[^@/]+@)?([^:/]+)", url)
    return match.group(1) if match else None


class CodeHostingDriver(metaclass=ABCMeta):
    """Opens review requests on a code hosting service.
    The drivers don't talk to any API: the new review request page is opened in the browser."""

    display_name: str = ''
    config_name: str = ''
    default_domain: str = ''
    review_request_name: str = ''

    def __init__(self, domain: str) -> None:
        self.domain: str = domain

    @abstractmethod
    def get_new_review_request_url(self, repository: OrganizationAndRepository, head: str, base: str) -> str:
        pass

    def create_review_request(self, repository: OrganizationAndRepository, head: str, base: str) -> None:
        url = self.get_new_review_request_url(repository, head, base)
        print(fmt(f"Opening a new {self.review_request_name} for <b>{head}</b> into <b>{base}</b> in the browser:"))
        print(url)
        debug(f"opening {url}")
        webbrowser.open(url)


class GitHubDriver(CodeHostingDriver):
    display_name = 'GitHub'
    config_name = 'github'
    default_domain = 'github.com'
    review_request_name = 'pull request'

    def get_new_review_request_url(self, repository: OrganizationAndRepository, head: str, base: str) -> str:
        return f"https://{self.domain}/{repository}/compare/{quote(base)}...{quote(head)}?expand=1"


class GitLabDriver(CodeHostingDriver):
    display_name = 'GitLab'
    config_name = 'gitlab'
    default_domain = 'gitlab.com'
    review_request_name = 'merge request'

    def get_new_review_request_url(self, repository: OrganizationAndRepository, head: str, base: str) -> str:
        query = urllib.parse.urlencode({
            'merge_request[source_branch]': head,
            'merge_request[target_branch]': base
        })
        return f"https://{self.domain}/{repository}/-/merge_requests/new?{query}"


class BitbucketDriver(CodeHostingDriver):
    display_name = 'Bitbucket'
    config_name = 'bitbucket'
    default_domain = 'bitbucket.org'
    review_request_name = 'pull request'

    def get_new_review_request_url(self, repository: OrganizationAndRepository, head: str, base: str) -> str:
        query = urllib.parse.urlencode({'source': head, 'dest': base})
        return f"https://{self.domain}/{repository}/pull-requests/new?{query}"


def quote(branch: str) -> str:
    return urllib.parse.quote(branch, safe='/')


driver_class_by_name: Dict[str, Type[CodeHostingDriver]] = {
    cls.config_name: cls for cls in (GitHubDriver, GitLabDriver, BitbucketDriver)
}


class ReviewTarget(NamedTuple):
    driver: CodeHostingDriver
    repository: OrganizationAndRepository


def detect_review_target(git: GitContext) -> ReviewTarget:
    """Finds out which code hosting service (and which repository on it) the `origin` remote points to.

    `grove.code-hosting-origin-hostname` overrides the domain of the service (e.g. when the remote URL uses an SSH host alias),
    `grove.code-hosting-driver` overrides the detection of the service based on the hostname."""
    url = git.get_url_of_remote(ORIGIN)
    if not url:
        raise GroveException(f"Remote `{ORIGIN}` is not defined, cannot determine the repository for the review request")

    url_hostname = extract_hostname(url)
    if not url_hostname:
        raise GroveException(f"Cannot determine the hostname of remote `{ORIGIN}` (URL: `{url}`)")
    hostname = git.get_config_attr_or_none(git_config_keys.CODE_HOSTING_ORIGIN_HOSTNAME) or url_hostname

    driver_name = git.get_config_attr_or_none(git_config_keys.CODE_HOSTING_DRIVER)
    if driver_name:
        if driver_name not in driver_class_by_name:
            valid_values = ', '.join(f'`{name}`' for name in driver_class_by_name)
            raise GroveException(
                f"Invalid value for `{git_config_keys.CODE_HOSTING_DRIVER}`: `{driver_name}`. Valid values are {valid_values}")
        driver_class = driver_class_by_name[driver_name]
    else:
        matching = [cls for cls in driver_class_by_name.values() if cls.default_domain == hostname or cls.config_name in hostname]
        if not matching:
            raise GroveException(
                f"Remote `{ORIGIN}` (URL: `{url}`) does not point to a supported code hosting service.\n"
                f"If it is a self-hosted instance, set `{git_config_keys.CODE_HOSTING_DRIVER}` "
                f"to one of: {', '.join(driver_class_by_name)}")
        driver_class = matching[0]

    repository = OrganizationAndRepository.from_url(url_hostname, url)
    if not repository:
        raise GroveException(f"Cannot determine the organization and repository from the URL of remote `{ORIGIN}`: `{url}`")
    debug(f"using {driver_class.display_name} driver for {bold(str(repository))} on {hostname}")
    return ReviewTarget(driver=driver_class(domain=hostname), repository=repository)
