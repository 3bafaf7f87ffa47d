#!/usr/bin/env python3
"""
quickgit - Remote Repository Provisioner

Creates a repository on one or more hosting platforms (GitHub, Gitee) and
wires the local working copy to them in a single guided run:

1. Create the remote repositories (one per requested platform)
2. Initialize the local repository with a .gitignore and a first commit
3. Attach the remotes: the first successful platform becomes `origin`,
   the rest are named after their platform
4. Optionally create a development branch and push it to every remote
5. Roll back local Git state if the run fails part way

Usage:
    quickgit init [--multi] [--platform github] [--name demo]
    quickgit config --list
    quickgit config --edit
    quickgit ignore --type python
    quickgit reset

Requirements:
    - git installed and available in PATH
    - A GitHub and/or Gitee personal access token
    - SSH access to the platforms for pushing
    - Python 3.9+
"""

import os
import sys
import logging
import argparse
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import requests
from github import Auth, BadCredentialsException, Github, GithubException
from tqdm import tqdm

from error_handling import (
    ApiFailureError,
    AuthFailureError,
    ErrorContext,
    ErrorHandler,
    FilesystemError,
    GitError,
    MalformedResponseError,
    NameConflictError,
    NetworkFailureError,
    ProvisioningError,
    UnsupportedPlatformError,
    UserCancelled,
    ValidationError,
    validate_description,
    validate_inputs,
    validate_repo_name,
    validate_token,
)
from gitignore_templates import DEFAULT_GITIGNORE, write_gitignore


SUPPORTED_PLATFORMS = ("github", "gitee")
PLATFORM_HOSTS = {
    "github": "github.com",
    "gitee": "gitee.com",
}
PLATFORM_NAMES = {
    "github": "GitHub",
    "gitee": "Gitee",
}
VISIBILITIES = ("public", "private")
MULTI_TYPES = ("cross-platform", "same-platform")

DEFAULT_GITEE_API_URL = "https://gitee.com/api/v5"
DEFAULT_DESCRIPTION = "Created by quickgit"
ORIGIN = "origin"

_NAME_TAKEN_MARKERS = (
    "already been taken",
    "already exists",
    "已存在",
)


@dataclass
class ProvisioningRequest:
    """What the user asked to provision."""
    repo_name: str
    platforms: List[str]
    is_multi_repo: bool = False
    multi_type: str = "cross-platform"  # cross-platform | same-platform
    visibility: str = "public"  # public | private
    description: str = DEFAULT_DESCRIPTION
    main_branch: str = "main"
    need_dev_branch: bool = False
    develop_branch: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.visibility == "private"

    @property
    def wants_dev_branch(self) -> bool:
        """A second branch is only created when it differs from the main branch."""
        return bool(self.need_dev_branch and self.develop_branch
                    and self.develop_branch != self.main_branch)

    def validate(self) -> None:
        """Raise ValidationError when the request cannot be provisioned."""
        context = ErrorContext(operation="validate_request", recoverable=False)
        if not self.repo_name or not self.repo_name.strip():
            raise ValidationError("Repository name must not be empty", context)
        if not validate_repo_name(self.repo_name):
            raise ValidationError(
                "Repository name may only contain letters, digits, '.', '-' and '_' (max 100 characters)", context
            )
        if not self.platforms:
            raise ValidationError("At least one platform is required", context)
        for platform in self.platforms:
            if platform not in SUPPORTED_PLATFORMS:
                raise UnsupportedPlatformError(platform, operation="validate_request")
        if len(set(self.platforms)) != len(self.platforms):
            raise ValidationError("Each platform may only be listed once", context)
        if not self.is_multi_repo and len(self.platforms) != 1:
            raise ValidationError("Single repository mode takes exactly one platform", context)
        if self.multi_type not in MULTI_TYPES:
            raise ValidationError(f"multi_type must be one of: {', '.join(MULTI_TYPES)}", context)
        if self.visibility not in VISIBILITIES:
            raise ValidationError(f"visibility must be one of: {', '.join(VISIBILITIES)}", context)
        if not validate_description(self.description):
            raise ValidationError("Description cannot exceed 255 characters", context)
        if not self.main_branch or not self.main_branch.strip():
            raise ValidationError("Main branch name must not be empty", context)
        if self.need_dev_branch and not self.develop_branch:
            raise ValidationError("A development branch name is required when one is requested", context)
        if not self.need_dev_branch and self.develop_branch:
            raise ValidationError("develop_branch given but need_dev_branch is false", context)


@dataclass
class PlatformCredential:
    """Borrowed per platform for one run; never persisted by the provisioner."""
    platform: str
    username: str
    token: str

    def __repr__(self) -> str:
        return f"PlatformCredential(platform={self.platform!r}, username={self.username!r}, token='***')"


@dataclass(frozen=True)
class RemoteRepoHandle:
    """Identity of a remote repository as reported by the platform."""
    platform: str
    owner: str
    name: str


@dataclass
class CleanupResult:
    """Outcome of failure recovery."""
    success: bool
    removed: List[str] = field(default_factory=list)
    error: Optional[str] = None


class ProvisioningState(Enum):
    COLLECTING = "collecting"
    CREATING_REMOTES = "creating_remotes"
    CONFIRM_LOCAL_INIT = "confirm_local_init"
    INITIALIZING_LOCAL = "initializing_local"
    WIRING_REMOTES = "wiring_remotes"
    BRANCH_PROPAGATION = "branch_propagation"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ProvisioningResult:
    """Pass/fail flag of a run plus what was observed along the way."""
    success: bool = False
    state: ProvisioningState = ProvisioningState.COLLECTING
    handles: Dict[str, RemoteRepoHandle] = field(default_factory=dict)
    remotes: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[str] = None
    cleanup: Optional[CleanupResult] = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class ProvisionerConfig:
    """Configuration for the provisioner."""
    working_dir: str = "."
    gitignore_content: str = DEFAULT_GITIGNORE
    max_name_attempts: int = 5
    github_base_url: Optional[str] = None
    gitee_api_url: str = DEFAULT_GITEE_API_URL
    request_timeout: Optional[float] = None  # None: wait as long as the platform takes
    show_progress: bool = True


def resolve_remote_url(platform: str, owner: str, repo_name: str) -> str:
    """Return the SSH clone URL for a repository on a supported platform."""
    host = PLATFORM_HOSTS.get(platform)
    if host is None:
        raise UnsupportedPlatformError(platform)
    return f"git@{host}:{owner}/{repo_name}.git"


def github_client(token: str, base_url: Optional[str] = None, timeout: Optional[float] = None) -> Github:
    """Build an authenticated PyGithub client."""
    kwargs = {"auth": Auth.Token(token)}
    if base_url:
        kwargs["base_url"] = base_url
    if timeout is not None:
        kwargs["timeout"] = timeout
    return Github(**kwargs)


def _response_message(resp) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or ""
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error_message") or data.get("error") or resp.text or "")
    return resp.text or ""


def _looks_like_name_taken(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in _NAME_TAKEN_MARKERS)


class RemoteRepoProvider:
    """Creates repositories on hosting platforms and normalizes their errors."""

    def __init__(self, config: ProvisionerConfig = None, logger: logging.Logger = None):
        self.config = config or ProvisionerConfig()
        self.logger = logger or logging.getLogger(__name__)

    @validate_inputs(
        repo_name=validate_repo_name,
        description=validate_description,
        credential=lambda cred: cred is not None and validate_token(cred.token),
    )
    def create_remote_repo(self, platform: str, repo_name: str, visibility: str, description: str,
                           credential: PlatformCredential,
                           on_name_conflict: Optional[Callable[[str, str], Optional[str]]] = None
                           ) -> RemoteRepoHandle:
        """Create a repository, asking for a new name while the platform reports a conflict.

        ``on_name_conflict(platform, name)`` returns a replacement name, or a falsy
        value to cancel, which raises UserCancelled. Conflicts beyond
        ``max_name_attempts`` re-raise the last NameConflictError.
        """
        if platform not in SUPPORTED_PLATFORMS:
            raise UnsupportedPlatformError(platform, operation="create_remote_repo")

        name = repo_name.strip()
        attempts = max(1, self.config.max_name_attempts)
        for attempt in range(1, attempts + 1):
            try:
                handle = self._create_repo_provider_agnostic(platform, name, visibility, description, credential)
            except NameConflictError as e:
                self.logger.warning(f"⚠️  {PLATFORM_NAMES[platform]} repository '{name}' already exists")
                e.context.retry_count = attempt
                e.context.max_retries = attempts
                if on_name_conflict is None or attempt == attempts:
                    raise
                new_name = on_name_conflict(platform, name)
                if not new_name or not new_name.strip():
                    context = ErrorContext(operation="create_remote_repo", platform=platform,
                                           metadata={"repo_name": name})
                    raise UserCancelled(f"User cancelled {platform} repository creation", context)
                name = new_name.strip()
                continue
            self.logger.info(f"✅ Created {PLATFORM_NAMES[platform]} repository: {handle.owner}/{handle.name}")
            return handle

    def _create_repo_provider_agnostic(self, platform: str, repo_name: str, visibility: str,
                                       description: str, credential: PlatformCredential) -> RemoteRepoHandle:
        if platform == "github":
            return self._create_repo_github(repo_name, visibility, description, credential)
        if platform == "gitee":
            return self._create_repo_gitee(repo_name, visibility, description, credential)
        raise UnsupportedPlatformError(platform, operation="create_remote_repo")

    # ----------------
    # Provider: GitHub
    # ----------------
    @staticmethod
    def _is_github_name_conflict(exc: GithubException) -> bool:
        if getattr(exc, "status", None) != 422:
            return False
        data = exc.data if isinstance(exc.data, dict) else {}
        for error in data.get("errors") or []:
            if isinstance(error, dict):
                # other name errors (too long, bad characters) are not conflicts
                taken = _looks_like_name_taken(error.get("message", ""))
                if taken or (error.get("field") == "name" and error.get("code") == "custom"):
                    return True
            elif _looks_like_name_taken(str(error)):
                return True
        return _looks_like_name_taken(str(data.get("message", "")))

    def _create_repo_github(self, repo_name: str, visibility: str, description: str,
                            credential: PlatformCredential) -> RemoteRepoHandle:
        """Create repo for the authenticated GitHub user."""
        context = ErrorContext(operation="create_remote_repo", platform="github",
                               metadata={"repo_name": repo_name})
        try:
            github = github_client(credential.token, self.config.github_base_url, self.config.request_timeout)
            repo = github.get_user().create_repo(
                name=repo_name,
                description=description or "",
                private=visibility == "private",
                auto_init=False
            )
        except BadCredentialsException as e:
            raise AuthFailureError(f"github rejected the access token: {e}", context, e, status=e.status)
        except GithubException as e:
            if self._is_github_name_conflict(e):
                raise NameConflictError(f"github repository name '{repo_name}' is already taken",
                                        context, e, status=e.status, repo_name=repo_name)
            if e.status in (401, 403):
                raise AuthFailureError(f"github denied repository creation ({e.status})", context, e, status=e.status)
            raise ApiFailureError(f"github repository creation failed ({e.status}): {e}", context, e, status=e.status)
        except requests.exceptions.RequestException as e:
            raise NetworkFailureError(f"github could not be reached: {e}", context, e)

        name = getattr(repo, "name", None)
        owner = getattr(getattr(repo, "owner", None), "login", None)
        if not name or not owner:
            raise MalformedResponseError("github repository creation returned no name/owner", context)
        return RemoteRepoHandle(platform="github", owner=owner, name=name)

    # ---------------
    # Provider: Gitee
    # ---------------
    def _create_repo_gitee(self, repo_name: str, visibility: str, description: str,
                           credential: PlatformCredential) -> RemoteRepoHandle:
        """Create repo for the authenticated Gitee user."""
        context = ErrorContext(operation="create_remote_repo", platform="gitee",
                               metadata={"repo_name": repo_name})
        base = self.config.gitee_api_url.rstrip('/')
        payload = {
            "access_token": credential.token,
            "name": repo_name,
            "path": repo_name,
            "private": visibility == "private",
            "description": description or "",
            "auto_init": False,
        }
        try:
            resp = requests.post(
                f"{base}/user/repos",
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self.config.request_timeout
            )
        except requests.exceptions.RequestException as e:
            raise NetworkFailureError(f"gitee could not be reached: {e}", context, e)

        if resp.status_code not in (200, 201):
            message = _response_message(resp)
            if _looks_like_name_taken(message):
                raise NameConflictError(f"gitee repository name '{repo_name}' is already taken",
                                        context, status=resp.status_code, repo_name=repo_name)
            if resp.status_code in (401, 403):
                raise AuthFailureError(f"gitee denied repository creation ({resp.status_code}): {message}",
                                       context, status=resp.status_code)
            raise ApiFailureError(f"gitee repository creation failed ({resp.status_code}): {message}",
                                  context, status=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError("gitee returned a non-JSON response", context, e)
        if not isinstance(data, dict) or not data.get("name"):
            raise MalformedResponseError("gitee repository creation returned no repository name", context)
        owner = (data.get("owner") or {}).get("login") or (data.get("namespace") or {}).get("path")
        if not owner:
            raise MalformedResponseError("gitee repository creation returned no owner", context)
        return RemoteRepoHandle(platform="gitee", owner=owner, name=data["name"])


class LocalGitRepo:
    """Thin wrapper over the git binary for one working directory."""

    def __init__(self, path: str, logger: logging.Logger = None):
        self.path = str(path)
        self.logger = logger or logging.getLogger(__name__)

    def run_git_command(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        """Run a git command in the working directory and return the result."""
        command = ['git'] + list(args)
        context = ErrorContext(operation=f"git {args[0]}", metadata={"cwd": self.path})
        try:
            return subprocess.run(
                command,
                cwd=self.path,
                capture_output=True,
                text=True,
                check=check
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            self.logger.debug(f"Git command failed: {' '.join(command)}")
            self.logger.debug(f"Error: {stderr}")
            raise GitError(f"git {args[0]} failed: {stderr or e}", context, e, command=command, stderr=stderr)
        except OSError as e:
            raise GitError(f"could not run git in {self.path}: {e}", context, e, command=command)

    def is_repository(self) -> bool:
        return os.path.isdir(os.path.join(self.path, '.git'))

    def init(self) -> None:
        self.run_git_command(['init'])

    def add(self, paths: List[str]) -> None:
        self.run_git_command(['add', '--'] + list(paths))

    def commit(self, message: str) -> None:
        self.run_git_command(['commit', '-m', message])

    def add_remote(self, name: str, url: str) -> None:
        self.run_git_command(['remote', 'add', name, url])

    def remove_remote(self, name: str) -> None:
        self.run_git_command(['remote', 'remove', name])

    def get_remotes(self) -> List[Dict[str, str]]:
        """Return configured remotes as [{'name': ..., 'url': ...}] in git's order."""
        output = self.run_git_command(['remote', '-v']).stdout
        remotes: List[Dict[str, str]] = []
        seen = set()
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 2 or parts[0] in seen:
                continue
            seen.add(parts[0])
            remotes.append({"name": parts[0], "url": parts[1]})
        return remotes

    def push(self, remote: str, branch: str, set_upstream: bool = False) -> None:
        args = ['push']
        if set_upstream:
            args.append('-u')
        self.run_git_command(args + [remote, branch])

    def checkout_new_branch(self, name: str) -> None:
        self.run_git_command(['checkout', '-b', name])

    def checkout(self, name: str) -> None:
        self.run_git_command(['checkout', name])

    def rename_current_branch(self, name: str) -> None:
        self.run_git_command(['branch', '-M', name])

    def current_branch(self) -> str:
        return self.run_git_command(['symbolic-ref', '--short', 'HEAD']).stdout.strip()


def cleanup_on_failure(working_dir: str, logger: logging.Logger = None) -> CleanupResult:
    """Remove the .git directory and .gitignore created by a failed run.

    Missing paths are ignored. Removal errors are logged and reported in the
    result, never raised.
    """
    logger = logger or logging.getLogger(__name__)
    removed: List[str] = []
    git_dir = os.path.join(working_dir, '.git')
    gitignore = os.path.join(working_dir, '.gitignore')
    try:
        if os.path.isdir(git_dir) and not os.path.islink(git_dir):
            shutil.rmtree(git_dir)
            removed.append(git_dir)
        elif os.path.lexists(git_dir):
            os.remove(git_dir)
            removed.append(git_dir)
        if os.path.lexists(gitignore):
            os.remove(gitignore)
            removed.append(gitignore)
    except OSError as e:
        logger.warning(f"⚠️  Failed to clean up local files: {e}")
        return CleanupResult(success=False, removed=removed, error=str(e))
    logger.info("🧹 Cleaned up local Git state")
    return CleanupResult(success=True, removed=removed)


CredentialResolverFn = Callable[[str], PlatformCredential]
NameConflictFn = Callable[[str, str], Optional[str]]


class RepoProvisioner:
    """Runs one provisioning request from remote creation to branch propagation."""

    def __init__(self, config: ProvisionerConfig,
                 credential_resolver: CredentialResolverFn,
                 on_name_conflict: Optional[NameConflictFn] = None,
                 confirm_local_init: Optional[Callable[[], bool]] = None,
                 provider: RemoteRepoProvider = None,
                 git: LocalGitRepo = None,
                 logger: logging.Logger = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.credential_resolver = credential_resolver
        self.on_name_conflict = on_name_conflict
        self.confirm_local_init = confirm_local_init or (lambda: True)
        self.provider = provider or RemoteRepoProvider(config, self.logger)
        self.git = git or LocalGitRepo(config.working_dir, self.logger)
        self.error_handler = ErrorHandler(self.logger)
        self.state = ProvisioningState.COLLECTING
        self.history: List[ProvisioningState] = [self.state]
        self._cleanup_done = False

    def _transition(self, state: ProvisioningState) -> None:
        self.logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def provision(self, request: ProvisioningRequest) -> ProvisioningResult:
        """Provision the request; the result is truthy on success."""
        result = ProvisioningResult()
        self.state = ProvisioningState.COLLECTING
        self.history = [self.state]
        self._cleanup_done = False
        try:
            request.validate()
            self._check_working_dir()
        except ProvisioningError as e:
            return self._fail(result, e, rollback=False)

        if request.is_multi_repo:
            return self._provision_multi(request, result)
        return self._provision_single(request, result)

    def _check_working_dir(self) -> None:
        context = ErrorContext(operation="check_working_dir", recoverable=False,
                               metadata={"working_dir": self.config.working_dir})
        if not os.path.isdir(self.config.working_dir):
            raise ValidationError(f"Working directory does not exist: {self.config.working_dir}", context)
        if os.path.lexists(os.path.join(self.config.working_dir, '.git')):
            raise ValidationError(f"{self.config.working_dir} is already a Git repository", context)

    # ----------------------
    # Single repository mode
    # ----------------------
    def _provision_single(self, request: ProvisioningRequest, result: ProvisioningResult) -> ProvisioningResult:
        platform = request.platforms[0]
        self._transition(ProvisioningState.CREATING_REMOTES)
        try:
            handle = self._create_remote(platform, request)
        except UserCancelled as e:
            self.logger.warning(f"⚠️  {e}")
            result.cancelled = True
            return self._fail(result, e, rollback=False)
        except ProvisioningError as e:
            return self._fail(result, e, rollback=False)
        result.handles[platform] = handle

        self._transition(ProvisioningState.INITIALIZING_LOCAL)
        try:
            self._initialize_local(request, stage=['.gitignore'], message="chore: add .gitignore")

            self._transition(ProvisioningState.WIRING_REMOTES)
            url = resolve_remote_url(platform, handle.owner, handle.name)
            self._attach_remote(ORIGIN, url)
            result.remotes[ORIGIN] = url
            self.git.push(ORIGIN, request.main_branch, set_upstream=True)
            self.logger.info(f"🚀 Pushed {request.main_branch} to {ORIGIN} ({PLATFORM_NAMES[platform]})")

            if request.wants_dev_branch:
                self._transition(ProvisioningState.BRANCH_PROPAGATION)
                self.git.checkout_new_branch(request.develop_branch)
                self.git.push(ORIGIN, request.develop_branch, set_upstream=True)
                self.logger.info(f"🌿 Pushed development branch {request.develop_branch}")
                self.git.checkout(request.main_branch)
        except ProvisioningError as e:
            self._log_ssh_hint(e, platform)
            return self._fail(result, e, rollback=True)

        return self._finish(result)

    # ---------------------
    # Multi repository mode
    # ---------------------
    def _provision_multi(self, request: ProvisioningRequest, result: ProvisioningResult) -> ProvisioningResult:
        self._transition(ProvisioningState.CREATING_REMOTES)
        for platform in request.platforms:
            try:
                result.handles[platform] = self._create_remote(platform, request)
            except UserCancelled:
                self.logger.warning(f"⚠️  Skipped {PLATFORM_NAMES[platform]} repository creation")
                result.skipped.append(platform)
            except ProvisioningError as e:
                self.error_handler.log_error(e)
                result.failed[platform] = str(e)

        if not result.handles:
            self.logger.warning("⚠️  No remote repository was created; the local repository will have no remotes")

        self._transition(ProvisioningState.CONFIRM_LOCAL_INIT)
        if not self.confirm_local_init():
            self.logger.info("Local repository initialization skipped; remote repositories were kept")
            return self._finish(result)

        self._transition(ProvisioningState.INITIALIZING_LOCAL)
        try:
            self._initialize_local(request, stage=['.'], message="Initial commit")

            self._transition(ProvisioningState.WIRING_REMOTES)
            wired = self._wire_remotes(request, result)

            if request.wants_dev_branch:
                self._transition(ProvisioningState.BRANCH_PROPAGATION)
                self._propagate_branch(request, wired, result)
        except ProvisioningError as e:
            return self._fail(result, e, rollback=True)

        return self._finish(result)

    def _wire_remotes(self, request: ProvisioningRequest, result: ProvisioningResult) -> List[str]:
        """Attach one remote per created repository in request order and push the main branch.

        The first platform with a handle becomes origin with upstream tracking;
        later ones are named after their platform. Push failures are recorded as
        warnings, attaching failures propagate.
        """
        wired: List[str] = []
        targets = [p for p in request.platforms if p in result.handles]
        for platform in tqdm(targets, desc="🔗 Linking remotes", unit="remote",
                             disable=not self.config.show_progress):
            handle = result.handles[platform]
            remote = ORIGIN if not wired else platform
            url = resolve_remote_url(platform, handle.owner, handle.name)
            self._attach_remote(remote, url)
            result.remotes[remote] = url
            wired.append(remote)

            set_upstream = remote == ORIGIN
            if self._push_best_effort(remote, request.main_branch, set_upstream, result):
                if set_upstream:
                    self.logger.info(f"✅ origin set to {PLATFORM_NAMES[platform]} and pushed")
                else:
                    self.logger.info(f"✅ Pushed to {platform}")
        return wired

    def _propagate_branch(self, request: ProvisioningRequest, wired: List[str], result: ProvisioningResult) -> None:
        self.git.checkout_new_branch(request.develop_branch)
        for remote in wired:
            self._push_best_effort(remote, request.develop_branch, remote == ORIGIN, result)
        self.git.checkout(request.main_branch)
        self.logger.info(f"🌿 Created and pushed development branch {request.develop_branch}")

    def _push_best_effort(self, remote: str, branch: str, set_upstream: bool, result: ProvisioningResult) -> bool:
        try:
            self.git.push(remote, branch, set_upstream=set_upstream)
            return True
        except GitError as e:
            message = f"Push of {branch} to {remote} failed: {e}"
            self.logger.warning(f"⚠️  {message}")
            result.warnings.append(message)
            return False

    # -------------
    # Shared steps
    # -------------
    def _create_remote(self, platform: str, request: ProvisioningRequest) -> RemoteRepoHandle:
        self.logger.info(f"Creating {PLATFORM_NAMES[platform]} repository: {request.repo_name}")
        credential = self.credential_resolver(platform)
        return self.provider.create_remote_repo(
            platform,
            request.repo_name,
            request.visibility,
            request.description,
            credential,
            on_name_conflict=self.on_name_conflict
        )

    def _initialize_local(self, request: ProvisioningRequest, stage: List[str], message: str) -> None:
        with tqdm(total=5, desc="📦 Initializing local repository", unit="step",
                  disable=not self.config.show_progress) as pbar:
            try:
                write_gitignore(self.config.working_dir, self.config.gitignore_content)
            except OSError as e:
                context = ErrorContext(operation="write_gitignore", metadata={"working_dir": self.config.working_dir})
                raise FilesystemError(f"Failed to create .gitignore: {e}", context, e)
            pbar.update(1)

            self.git.init()
            pbar.update(1)

            self.git.add(stage)
            pbar.update(1)

            self.git.commit(message)
            pbar.update(1)

            # Rename before the first push so the remote default branch matches
            if self.git.current_branch() != request.main_branch:
                self.git.rename_current_branch(request.main_branch)
            pbar.update(1)
        self.logger.info(f"✅ Local repository initialized on {request.main_branch}")

    def _attach_remote(self, name: str, url: str) -> None:
        existing = {r["name"]: r["url"] for r in self.git.get_remotes()}
        if name in existing:
            self.logger.info(f"Replacing remote {name}: {existing[name]} -> {url}")
            self.git.remove_remote(name)
        self.git.add_remote(name, url)
        self.logger.info(f"Added remote {name}: {url}")

    def _log_ssh_hint(self, error: ProvisioningError, platform: str) -> None:
        if isinstance(error, GitError) and "publickey" in error.stderr:
            self.logger.error(
                f"❌ SSH authentication failed. Make sure your SSH key is registered on {PLATFORM_NAMES[platform]}."
            )

    def _fail(self, result: ProvisioningResult, error: ProvisioningError, rollback: bool) -> ProvisioningResult:
        self._transition(ProvisioningState.FAILED)
        result.success = False
        result.state = self.state
        result.error = str(error)
        if not isinstance(error, UserCancelled):
            self.error_handler.log_error(error, fatal=True)
        if rollback and not self._cleanup_done:
            self._cleanup_done = True
            result.cleanup = cleanup_on_failure(self.config.working_dir, self.logger)
        return result

    def _finish(self, result: ProvisioningResult) -> ProvisioningResult:
        self._transition(ProvisioningState.DONE)
        result.success = True
        result.state = self.state

        self.logger.info("=" * 60)
        self.logger.info("🎉 REPOSITORY PROVISIONING COMPLETED")
        self.logger.info("=" * 60)
        for platform, handle in result.handles.items():
            self.logger.info(f"  - {PLATFORM_NAMES[platform]}: {handle.owner}/{handle.name}")
        for remote, url in result.remotes.items():
            self.logger.info(f"  {remote} -> {url}")
        for warning in result.warnings:
            self.logger.warning(f"  ⚠️  {warning}")
        return result


def check_local_conflicts(base_dir: str, repo_name: str, prompter) -> str:
    """Pick the directory to initialize in when one named after the repository exists.

    Returns base_dir unless the user asks for a new directory, which is created.
    """
    candidate = os.path.join(base_dir, repo_name)
    if not os.path.exists(candidate):
        return base_dir

    action = prompter.choose_directory_action(repo_name)
    if action == "cancel":
        raise UserCancelled("User cancelled", ErrorContext(operation="check_local_conflicts"))
    if action == "new":
        new_name = prompter.ask_directory_name(f"{repo_name}-new")
        target = os.path.join(base_dir, new_name)
        os.makedirs(target, exist_ok=True)
        return target
    return base_dir


# ---
# CLI
# ---
def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    return logging.getLogger("quickgit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="quickgit", description="Quick Git repository initializer")
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--config', help='Path to the settings file (default: ~/.quickgit-config.json)')
    sub = parser.add_subparsers(dest='command')

    init = sub.add_parser('init', help='Create remote repositories and initialize the local one')
    init.add_argument('-m', '--multi', action='store_true', help='Configure several remote repositories')
    init.add_argument('--same-platform', action='store_true', help='Multi mode: several repositories on one platform')
    init.add_argument('--platform', choices=SUPPORTED_PLATFORMS, help='Platform for single repository mode')
    init.add_argument('--platforms', help='Comma-separated platforms for multi mode')
    init.add_argument('--name', help='Repository name')
    init.add_argument('--private', action='store_true', help='Create private repositories')
    init.add_argument('--description', help='Repository description (max 255 characters)')
    init.add_argument('--main-branch', help='Main branch name')
    init.add_argument('--develop-branch', help='Create and push this development branch')
    init.add_argument('-y', '--yes', action='store_true', help='Initialize the local repository without asking')

    config = sub.add_parser('config', help='Show or change settings')
    group = config.add_mutually_exclusive_group()
    group.add_argument('-l', '--list', action='store_true', help='List all settings')
    group.add_argument('-g', '--get', metavar='KEY', help='Print one setting (dotted key)')
    group.add_argument('-s', '--set', metavar='KEY=VALUE', help='Change one setting')
    group.add_argument('-d', '--delete', metavar='KEY', help='Delete one setting')
    group.add_argument('--path', action='store_true', help='Print the settings file path')
    group.add_argument('-e', '--edit', action='store_true', help='Open the settings file in $EDITOR')

    ignore = sub.add_parser('ignore', help='Generate a .gitignore file')
    ignore.add_argument('--type', dest='project_type', help='node, python, java or web')
    ignore.add_argument('--force', action='store_true', help='Overwrite an existing .gitignore')

    sub.add_parser('reset', help='Reset settings to defaults')
    return parser


def _split_platforms(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [p.strip().lower() for p in value.split(',') if p.strip()]


def run_init(args, store, prompter, logger: logging.Logger) -> int:
    from settings import CredentialResolver

    settings_data = store.load_with_env()
    if args.multi:
        multi_type = "same-platform" if args.same_platform else "cross-platform"
        platforms = _split_platforms(args.platforms)
        if multi_type == "same-platform" and args.platform:
            platforms = [args.platform]
    else:
        multi_type = "cross-platform"
        platforms = [args.platform] if args.platform else None

    request = prompter.collect_request(
        is_multi_repo=args.multi,
        multi_type=multi_type,
        repo_name=args.name,
        platforms=platforms,
        visibility="private" if args.private else None,
        description=args.description,
        main_branch=args.main_branch,
        develop_branch=args.develop_branch,
        default_branch=settings_data.get("default_branch") or "master",
        default_develop_branch=settings_data.get("develop_branch") or "develop",
        default_platform=settings_data.get("default_platform") or None,
    )
    working_dir = check_local_conflicts(os.getcwd(), request.repo_name, prompter)

    config = ProvisionerConfig(working_dir=working_dir)
    provisioner = RepoProvisioner(
        config,
        credential_resolver=CredentialResolver(store, prompter, logger=logger, settings_data=settings_data),
        on_name_conflict=prompter.resolve_name_conflict,
        confirm_local_init=(lambda: True) if args.yes else prompter.confirm_local_init,
        logger=logger
    )
    result = provisioner.provision(request)
    if result.cancelled:
        print("\nOperation cancelled by user")
    return 0 if result else 1


def edit_settings(store) -> int:
    """Open the settings file in $EDITOR / $VISUAL (notepad on Windows, vim elsewhere)."""
    store.load()
    if sys.platform == "win32":
        editor = "notepad"
    else:
        editor = os.getenv("EDITOR") or os.getenv("VISUAL") or "vim"
    print(f"Opening {store.path} with {editor}...")
    try:
        completed = subprocess.run(shlex.split(editor) + [store.path])
    except FileNotFoundError:
        print(f"Error: editor not found: {editor}")
        return 1
    return 0 if completed.returncode == 0 else 1


def run_config(args, store) -> int:
    import json

    if args.edit:
        return edit_settings(store)
    if args.path:
        print(store.path)
        return 0
    if args.get:
        try:
            value = store.get(args.get)
        except KeyError:
            print("Setting not found")
            return 1
        print(json.dumps(value, indent=2) if isinstance(value, (dict, list)) else value)
        return 0
    if args.set:
        key, sep, value = args.set.partition('=')
        if not sep or not key.strip() or not value.strip():
            print("Use the format: config --set key=value")
            return 1
        store.set(key.strip(), value.strip())
        print("✅ Setting updated")
        return 0
    if args.delete:
        if store.delete(args.delete):
            print("✅ Setting deleted")
            return 0
        print("Setting not found")
        return 1
    print(json.dumps(store.redacted(store.load()), indent=2))
    return 0


def run_ignore(args, prompter) -> int:
    from gitignore_templates import GITIGNORE_TEMPLATES, render_template

    path = os.path.join(os.getcwd(), '.gitignore')
    if os.path.exists(path) and not args.force:
        if prompter.choose(".gitignore already exists", ["regenerate", "cancel"], default="cancel") == "cancel":
            return 0
    project_type = args.project_type or prompter.choose(
        "Project type", sorted(GITIGNORE_TEMPLATES), default="node"
    )
    if project_type not in GITIGNORE_TEMPLATES:
        print(f"Unknown project type: {project_type}")
        return 1
    write_gitignore(os.getcwd(), render_template(project_type))
    print("✅ .gitignore generated")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    from prompts import ConsolePrompter
    from settings import SettingsStore

    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logger = setup_logging(args.verbose, args.log_file)
    store = SettingsStore(path=args.config, logger=logger)
    prompter = ConsolePrompter()

    try:
        if args.command == 'init':
            return run_init(args, store, prompter, logger)
        if args.command == 'config':
            return run_config(args, store)
        if args.command == 'ignore':
            return run_ignore(args, prompter)
        if args.command == 'reset':
            store.reset()
            print("Settings reset to defaults")
            return 0
    except UserCancelled:
        print("\nOperation cancelled by user")
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1
    except ProvisioningError as e:
        print(f"Error: {e}")
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
