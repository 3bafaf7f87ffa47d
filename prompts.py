"""Interactive prompts for quickgit."""

from typing import Callable, List, Optional, Tuple

from rich.console import Console
from rich.prompt import Confirm, Prompt

from error_handling import (
    validate_branch_name,
    validate_description,
    validate_email,
    validate_repo_name,
)
from repo_provisioner import (
    DEFAULT_DESCRIPTION,
    PLATFORM_NAMES,
    SUPPORTED_PLATFORMS,
    ProvisioningRequest,
)

TOKEN_URLS = {
    "github": "https://github.com/settings/tokens",
    "gitee": "https://gitee.com/profile/personal_access_tokens",
}

TOKEN_SCOPES = {
    "github": "repo",
    "gitee": "projects",
}


class ConsolePrompter:
    """Asks the user for request fields and decisions during a run."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    # Generic helpers
    def ask_text(self, message: str, default: Optional[str] = None,
                 validator: Optional[Callable[[str], bool]] = None,
                 error: str = "Invalid value", password: bool = False) -> str:
        while True:
            if default is None:
                value = Prompt.ask(message, console=self.console, password=password)
            else:
                value = Prompt.ask(message, console=self.console, default=default, password=password)
            value = (value or "").strip()
            if validator is None or validator(value):
                return value
            self.console.print(f"[red]{error}[/red]")

    def choose(self, message: str, choices: List[str], default: Optional[str] = None) -> str:
        if default is None:
            return Prompt.ask(message, console=self.console, choices=list(choices))
        return Prompt.ask(message, console=self.console, choices=list(choices), default=default)

    def confirm(self, message: str, default: bool = True) -> bool:
        return Confirm.ask(message, console=self.console, default=default)

    # Request collection
    def choose_platform(self, default: Optional[str] = None) -> str:
        if default not in SUPPORTED_PLATFORMS:
            default = SUPPORTED_PLATFORMS[0]
        return self.choose("Hosting platform", list(SUPPORTED_PLATFORMS), default=default)

    def choose_platforms(self) -> List[str]:
        def valid(answer: str) -> bool:
            picked = [p.strip().lower() for p in answer.split(",") if p.strip()]
            return bool(picked) and all(p in SUPPORTED_PLATFORMS for p in picked)

        answer = self.ask_text(
            f"Platforms, comma-separated ({', '.join(SUPPORTED_PLATFORMS)})",
            default=",".join(SUPPORTED_PLATFORMS),
            validator=valid,
            error="Pick at least one supported platform",
        )
        picked: List[str] = []
        for platform in (p.strip().lower() for p in answer.split(",")):
            if platform and platform not in picked:
                picked.append(platform)
        return picked

    def collect_request(self, *, is_multi_repo: bool, multi_type: str = "cross-platform",
                        repo_name: Optional[str] = None, platforms: Optional[List[str]] = None,
                        visibility: Optional[str] = None, description: Optional[str] = None,
                        main_branch: Optional[str] = None, develop_branch: Optional[str] = None,
                        default_branch: str = "master",
                        default_develop_branch: str = "develop",
                        default_platform: Optional[str] = None) -> ProvisioningRequest:
        """Fill every field not given on the command line."""
        if not repo_name:
            repo_name = self.ask_text("Repository name", validator=validate_repo_name,
                                      error="Use letters, digits, '.', '-' or '_' (max 100 characters)")

        if not platforms:
            if is_multi_repo and multi_type == "cross-platform":
                platforms = self.choose_platforms()
            else:
                platforms = [self.choose_platform(default_platform)]

        if visibility is None:
            visibility = self.choose("Visibility", ["public", "private"], default="public")

        if description is None:
            description = self.ask_text("Description", default=DEFAULT_DESCRIPTION,
                                        validator=validate_description,
                                        error="Description cannot exceed 255 characters")

        if not main_branch:
            main_branch = self.ask_text("Main branch name", default=default_branch,
                                        validator=validate_branch_name, error="Invalid branch name")

        if develop_branch:
            need_dev_branch = True
        else:
            need_dev_branch = self.confirm("Create a separate development branch?", default=False)
            if need_dev_branch:
                develop_branch = self.ask_text("Development branch name", default=default_develop_branch,
                                               validator=validate_branch_name, error="Invalid branch name")

        return ProvisioningRequest(
            repo_name=repo_name,
            platforms=platforms,
            is_multi_repo=is_multi_repo,
            multi_type=multi_type,
            visibility=visibility,
            description=description,
            main_branch=main_branch,
            need_dev_branch=need_dev_branch,
            develop_branch=develop_branch if need_dev_branch else None,
        )

    # Decision points
    def resolve_name_conflict(self, platform: str, repo_name: str) -> Optional[str]:
        """Return a replacement name, or None when the user cancels."""
        action = self.choose(
            f"{PLATFORM_NAMES.get(platform, platform)} repository \"{repo_name}\" already exists",
            ["rename", "cancel"],
            default="rename",
        )
        if action == "cancel":
            return None
        return self.ask_text("New repository name", default=f"{repo_name}-new", validator=validate_repo_name,
                             error="Use letters, digits, '.', '-' or '_' (max 100 characters)")

    def confirm_local_init(self) -> bool:
        return self.confirm("Initialize the local repository and link the remotes?", default=True)

    def choose_directory_action(self, directory: str) -> str:
        return self.choose(
            f"Directory {directory} already exists. Initialize in the current directory, use a new one, or cancel?",
            ["current", "new", "cancel"],
            default="current",
        )

    def ask_directory_name(self, default: str) -> str:
        return self.ask_text("New directory name", default=default, validator=bool,
                             error="Directory name cannot be empty")

    def ask_credentials(self, platform: str, default_username: str = "") -> Tuple[str, str]:
        name = PLATFORM_NAMES[platform]
        self.console.print(
            f"[cyan]Create a {name} access token with the '{TOKEN_SCOPES[platform]}' scope at "
            f"{TOKEN_URLS[platform]}[/cyan]"
        )
        username = self.ask_text(f"{name} email", default=default_username or None,
                                 validator=validate_email, error="Enter a valid email address")
        token = self.ask_text(f"{name} access token", validator=bool,
                              error="Token cannot be empty", password=True)
        return username, token
