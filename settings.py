"""
User settings and platform credentials for quickgit.

Settings live in a JSON file in the home directory (``~/.quickgit-config.json``,
or the path in ``QUICKGIT_CONFIG``). Tokens may also come from the
environment or a ``.env`` file; those are applied on load and never written
back.
"""

import copy
import json
import logging
import os
from typing import Any, Callable, Dict, Optional

import requests
from dotenv import load_dotenv
from github import BadCredentialsException, GithubException

from error_handling import (
    ApiFailureError,
    AuthFailureError,
    ConfigurationError,
    ErrorContext,
    MalformedResponseError,
    NetworkFailureError,
    UnsupportedPlatformError,
    retry_on_failure,
)
from repo_provisioner import (
    DEFAULT_GITEE_API_URL,
    SUPPORTED_PLATFORMS,
    PlatformCredential,
    github_client,
)

CONFIG_ENV_VAR = "QUICKGIT_CONFIG"
DEFAULT_CONFIG_FILE = os.path.join(os.path.expanduser("~"), ".quickgit-config.json")

DEFAULT_PLATFORM_SETTINGS = {
    "username": "",
    "token": "",
    "default_visibility": "public",
    "default_license": "MIT",
}

DEFAULT_CONFIG: Dict[str, Any] = {
    "default_platform": "",
    "default_branch": "master",
    "develop_branch": "develop",
    "platforms": {platform: dict(DEFAULT_PLATFORM_SETTINGS) for platform in SUPPORTED_PLATFORMS},
    "ignore_templates": ["node"],
    "auto_init": True,
    "create_dev_branch": False,
    "push_immediately": True,
    "skip_ssh_check": False,
}

# env var -> dotted settings key
ENV_OVERRIDES = {
    "GITHUB_TOKEN": "platforms.github.token",
    "GITHUB_USERNAME": "platforms.github.username",
    "GITEE_TOKEN": "platforms.gitee.token",
    "GITEE_USERNAME": "platforms.gitee.username",
    "QUICKGIT_DEFAULT_BRANCH": "default_branch",
}


def _merge_defaults(defaults: Dict[str, Any], loaded: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def _set_dotted(config: Dict[str, Any], key: str, value: Any) -> None:
    keys = key.split(".")
    target = config
    for part in keys[:-1]:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[keys[-1]] = value


class SettingsStore:
    """Reads and writes the persisted settings file."""

    def __init__(self, path: Optional[str] = None, logger: logging.Logger = None):
        self.path = path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> Dict[str, Any]:
        """Return the settings with defaults filled in for keys the file lacks."""
        return _merge_defaults(DEFAULT_CONFIG, self.load_raw())

    def load_raw(self) -> Dict[str, Any]:
        """Return the file contents as stored, writing the defaults first if the file is missing."""
        if not os.path.exists(self.path):
            defaults = copy.deepcopy(DEFAULT_CONFIG)
            self.save(defaults)
            return defaults
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                loaded = json.load(fh)
        except (OSError, ValueError) as e:
            context = ErrorContext(operation="load_settings", metadata={"path": self.path})
            raise ConfigurationError(f"Could not read settings file {self.path}: {e}", context, e)
        if not isinstance(loaded, dict):
            raise ConfigurationError(f"Settings file {self.path} must contain a JSON object",
                                     ErrorContext(operation="load_settings"))
        return loaded

    def load_with_env(self) -> Dict[str, Any]:
        """Settings with .env / environment overrides applied (not persisted)."""
        load_dotenv()
        config = self.load()
        for env_var, key in ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                _set_dotted(config, key, value)
        return config

    def save(self, config: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as fh:
                json.dump(config, fh, indent=2)
        except OSError as e:
            context = ErrorContext(operation="save_settings", metadata={"path": self.path})
            raise ConfigurationError(f"Could not save settings to {self.path}: {e}", context, e)
        self.logger.debug(f"Settings saved to {self.path}")

    def reset(self) -> Dict[str, Any]:
        defaults = copy.deepcopy(DEFAULT_CONFIG)
        self.save(defaults)
        return defaults

    def get(self, key: str) -> Any:
        """Dotted-key lookup; raises KeyError when missing."""
        value: Any = self.load()
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                raise KeyError(key)
            value = value[part]
        return value

    def set(self, key: str, raw_value: str) -> Any:
        """Store a value parsed as JSON, falling back to the raw string."""
        try:
            value = json.loads(raw_value)
        except ValueError:
            value = raw_value
        config = self.load_raw()
        _set_dotted(config, key, value)
        self.save(config)
        return value

    def delete(self, key: str) -> bool:
        """Remove a key from the file; defaults still apply to it on the next load."""
        config = self.load_raw()
        keys = key.split(".")
        target: Any = config
        for part in keys[:-1]:
            target = target.get(part) if isinstance(target, dict) else None
        if not isinstance(target, dict) or keys[-1] not in target:
            return False
        del target[keys[-1]]
        self.save(config)
        return True

    def save_credentials(self, platform: str, username: str, token: str) -> None:
        config = self.load_raw()
        if not isinstance(config.get("platforms"), dict):
            config["platforms"] = {}
        platform_settings = config["platforms"].setdefault(platform, dict(DEFAULT_PLATFORM_SETTINGS))
        platform_settings["username"] = username
        platform_settings["token"] = token
        self.save(config)

    @staticmethod
    def redacted(config: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of the settings with tokens masked, for display."""
        shown = copy.deepcopy(config)
        for platform_settings in (shown.get("platforms") or {}).values():
            if isinstance(platform_settings, dict) and platform_settings.get("token"):
                platform_settings["token"] = "***"
        return shown


# -----------------
# Token validation
# -----------------
@retry_on_failure(max_retries=2, backoff_factor=1.0, exceptions=(NetworkFailureError,))
def _github_login(token: str, base_url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    context = ErrorContext(operation="validate_token", platform="github")
    try:
        return github_client(token, base_url, timeout).get_user().login
    except BadCredentialsException as e:
        raise AuthFailureError("github token validation failed (bad credentials)", context, e, status=e.status)
    except GithubException as e:
        if e.status in (401, 403):
            raise AuthFailureError(f"github token validation failed ({e.status})", context, e, status=e.status)
        raise ApiFailureError(f"github token validation failed ({e.status}): {e}", context, e, status=e.status)
    except requests.exceptions.RequestException as e:
        raise NetworkFailureError(f"github could not be reached: {e}", context, e)


@retry_on_failure(max_retries=2, backoff_factor=1.0, exceptions=(NetworkFailureError,))
def _gitee_login(token: str, api_url: str = DEFAULT_GITEE_API_URL, timeout: Optional[float] = None) -> str:
    context = ErrorContext(operation="validate_token", platform="gitee")
    try:
        resp = requests.get(f"{api_url.rstrip('/')}/user", params={"access_token": token}, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise NetworkFailureError(f"gitee could not be reached: {e}", context, e)
    if resp.status_code in (401, 403):
        raise AuthFailureError(f"gitee token validation failed (HTTP {resp.status_code})", context,
                               status=resp.status_code)
    if resp.status_code != 200:
        raise ApiFailureError(f"gitee token validation failed (HTTP {resp.status_code})", context,
                              status=resp.status_code)
    try:
        data = resp.json()
    except ValueError as e:
        raise MalformedResponseError("gitee returned a non-JSON user payload", context, e)
    if not isinstance(data, dict) or not data.get("id"):
        raise MalformedResponseError("gitee returned an invalid user payload", context)
    return data.get("login", "")


def check_token(platform: str, token: str) -> str:
    """Validate a token against the platform and return the account login."""
    if platform == "github":
        return _github_login(token)
    if platform == "gitee":
        return _gitee_login(token)
    raise UnsupportedPlatformError(platform, operation="validate_token")


class CredentialResolver:
    """Callable that returns a validated credential for a platform.

    Stored or environment credentials are tried first; otherwise, or after a
    rejected token, the prompter is asked. Accepted prompted credentials are
    saved to the settings file.
    """

    def __init__(self, store: SettingsStore, prompter=None, logger: logging.Logger = None,
                 max_retries: int = 3, token_checker: Callable[[str, str], str] = check_token,
                 settings_data: Optional[Dict[str, Any]] = None):
        self.store = store
        self.prompter = prompter
        self.logger = logger or logging.getLogger(__name__)
        self.max_retries = max_retries
        self.token_checker = token_checker
        self.settings_data = settings_data if settings_data is not None else store.load_with_env()

    def __call__(self, platform: str) -> PlatformCredential:
        if platform not in SUPPORTED_PLATFORMS:
            raise UnsupportedPlatformError(platform, operation="resolve_credential")

        platforms = self.settings_data.setdefault("platforms", {})
        current = platforms.setdefault(platform, dict(DEFAULT_PLATFORM_SETTINGS))
        username = current.get("username") or ""
        token = current.get("token") or ""
        context = ErrorContext(operation="resolve_credential", platform=platform)
        last_error: Optional[AuthFailureError] = None

        for attempt in range(1, self.max_retries + 1):
            prompted = False
            if not token or attempt > 1:
                if self.prompter is None:
                    raise ConfigurationError(
                        f"No {platform} token configured. Set {platform.upper()}_TOKEN or run 'quickgit init' "
                        "interactively.", context, last_error
                    )
                username, token = self.prompter.ask_credentials(platform, username)
                prompted = True

            try:
                login = self.token_checker(platform, token)
            except AuthFailureError as e:
                last_error = e
                self.logger.warning(f"⚠️  {platform} authentication failed: {e}")
                if self.prompter is None:
                    raise
                continue

            self.logger.info(f"✅ {platform} authentication succeeded ({login or username})")
            current["username"] = username
            current["token"] = token
            if prompted:
                self.store.save_credentials(platform, username, token)
            return PlatformCredential(platform=platform, username=username, token=token)

        raise AuthFailureError(f"{platform} authentication failed after {self.max_retries} attempts",
                               context, last_error)
