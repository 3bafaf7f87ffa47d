#!/usr/bin/env python3
"""
Error handling for quickgit

This module defines the error taxonomy used while provisioning repositories,
plus the helpers that log, count, retry and validate around it.

Features:
- Tagged remote-creation errors (name conflict, auth, network, malformed response)
- User cancellation as a distinct, non-fatal condition
- Local Git and filesystem errors that trigger failure recovery
- Retry with exponential backoff for transient network calls
- Input validation decorator and common validators
"""

import functools
import inspect
import logging
import re
import subprocess
import time
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for better handling."""
    NETWORK = "network"
    FILESYSTEM = "filesystem"
    GIT = "git"
    API = "api"
    AUTH = "auth"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    USER = "user"
    UNKNOWN = "unknown"


class RemoteErrorKind(Enum):
    """Stable tags for remote repository creation failures."""
    NAME_CONFLICT = "name_conflict"
    AUTH_FAILURE = "auth_failure"
    NETWORK_FAILURE = "network_failure"
    MALFORMED_RESPONSE = "malformed_response"
    API_FAILURE = "api_failure"


@dataclass
class ErrorContext:
    """Context information for error handling."""
    operation: str
    platform: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 0
    recoverable: bool = True
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    category: ErrorCategory = ErrorCategory.UNKNOWN
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class ProvisioningError(Exception):
    """Base exception for quickgit with operation context."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str, context: ErrorContext = None, cause: Exception = None):
        super().__init__(message)
        if context is None:
            context = ErrorContext(operation="unknown")
        context.category = self.category
        context.severity = self.severity
        self.context = context
        self.cause = cause
        self.timestamp = time.time()

    @property
    def platform(self) -> Optional[str]:
        return self.context.platform

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/reporting."""
        return {
            "message": str(self),
            "type": self.__class__.__name__,
            "timestamp": self.timestamp,
            "context": {
                "operation": self.context.operation,
                "platform": self.context.platform,
                "retry_count": self.context.retry_count,
                "max_retries": self.context.max_retries,
                "severity": self.context.severity.value,
                "category": self.context.category.value,
                "recoverable": self.context.recoverable,
                "metadata": self.context.metadata
            },
            "cause": str(self.cause) if self.cause else None,
            "traceback": traceback.format_exc()
        }


class UserCancelled(ProvisioningError):
    """The user declined to continue at a prompt. Not a failure."""

    category = ErrorCategory.USER
    severity = ErrorSeverity.LOW


class ValidationError(ProvisioningError):
    """Invalid request or input values."""

    category = ErrorCategory.VALIDATION


class ConfigurationError(ProvisioningError):
    """Settings are missing or unreadable."""

    category = ErrorCategory.CONFIGURATION


class UnsupportedPlatformError(ValidationError):
    """Platform outside the supported set."""

    def __init__(self, platform: str, operation: str = "resolve_platform"):
        context = ErrorContext(operation=operation, platform=platform, recoverable=False)
        super().__init__(f"Unsupported platform: {platform}", context)


class RemoteCreationError(ProvisioningError):
    """Remote repository creation failed on a platform."""

    category = ErrorCategory.API
    tag = RemoteErrorKind.API_FAILURE

    def __init__(self, message: str, context: ErrorContext = None, cause: Exception = None,
                 status: Optional[int] = None):
        super().__init__(message, context, cause)
        self.status = status


class ApiFailureError(RemoteCreationError):
    """Platform API answered with an unexpected error."""


class NameConflictError(RemoteCreationError):
    """Repository name is already taken on the platform."""

    tag = RemoteErrorKind.NAME_CONFLICT
    severity = ErrorSeverity.MEDIUM

    def __init__(self, message: str, context: ErrorContext = None, cause: Exception = None,
                 status: Optional[int] = None, repo_name: Optional[str] = None):
        super().__init__(message, context, cause, status)
        self.repo_name = repo_name


class AuthFailureError(RemoteCreationError):
    """Token rejected by the platform."""

    category = ErrorCategory.AUTH
    tag = RemoteErrorKind.AUTH_FAILURE


class NetworkFailureError(RemoteCreationError):
    """Platform could not be reached."""

    category = ErrorCategory.NETWORK
    tag = RemoteErrorKind.NETWORK_FAILURE


class MalformedResponseError(RemoteCreationError):
    """Platform answered with a payload we cannot use."""

    tag = RemoteErrorKind.MALFORMED_RESPONSE


class GitError(ProvisioningError):
    """Local git operation errors."""

    category = ErrorCategory.GIT

    def __init__(self, message: str, context: ErrorContext = None, cause: Exception = None,
                 command: Optional[list] = None, stderr: str = ""):
        super().__init__(message, context, cause)
        self.command = command or []
        self.stderr = stderr or ""


class FilesystemError(ProvisioningError):
    """Filesystem-related errors."""

    category = ErrorCategory.FILESYSTEM


class ErrorHandler:
    """Logging, statistics, retries and validation around provisioning errors."""

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)
        self.error_stats: Dict[str, Dict] = {}

    def retry_with_backoff(
        self,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        max_backoff: float = 60.0,
        exceptions: tuple = (Exception,)
    ):
        """Decorator for retry with exponential backoff."""

        def decorator(func: Callable) -> Callable:
            @functools.wraps(func)
            def wrapper(*args, **kwargs) -> Any:
                context = ErrorContext(
                    operation=func.__name__,
                    max_retries=max_retries
                )

                for attempt in range(max_retries + 1):
                    context.retry_count = attempt

                    try:
                        return func(*args, **kwargs)
                    except exceptions as e:
                        if attempt == max_retries:
                            enhanced_error = self.enhance_error(e, context)
                            self.log_error(enhanced_error)
                            raise enhanced_error

                        delay = min(backoff_factor * (2 ** attempt), max_backoff)

                        self.logger.warning(
                            f"Attempt {attempt + 1}/{max_retries + 1} failed for {func.__name__}: {e}. "
                            f"Retrying in {delay:.1f}s..."
                        )

                        time.sleep(delay)

            return wrapper
        return decorator

    def enhance_error(self, error: Exception, context: ErrorContext) -> ProvisioningError:
        """Wrap a foreign exception into the provisioning taxonomy."""
        if isinstance(error, ProvisioningError):
            return error

        if isinstance(error, (ConnectionError, TimeoutError)):
            return NetworkFailureError(str(error), context, error)
        if isinstance(error, subprocess.CalledProcessError):
            return GitError(str(error), context, error, command=list(error.cmd or []),
                            stderr=error.stderr or "")
        if isinstance(error, OSError):
            return FilesystemError(str(error), context, error)
        return ProvisioningError(str(error), context, error)

    def log_error(self, error: ProvisioningError, fatal: bool = False):
        """Log error with its context and update statistics."""
        log_level = {
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL
        }.get(error.context.severity, logging.ERROR)
        if fatal:
            log_level = max(log_level, logging.ERROR)

        where = error.context.operation
        if error.context.platform:
            where = f"{where}@{error.context.platform}"
        marker = "❌ " if fatal else ""

        self.logger.log(
            log_level,
            f"{marker}[{error.context.category.value.upper()}] {where} | {error}"
        )
        self.logger.debug(f"Error context: {error.to_dict()}")
        self._update_error_stats(error)

    def _update_error_stats(self, error: ProvisioningError):
        operation = error.context.operation
        category = error.context.category.value

        if operation not in self.error_stats:
            self.error_stats[operation] = {
                "total_errors": 0,
                "by_category": {},
                "last_error": None
            }

        stats = self.error_stats[operation]
        stats["total_errors"] += 1
        stats["last_error"] = time.time()
        stats["by_category"][category] = stats["by_category"].get(category, 0) + 1

    def validate_inputs(self, validators: Dict[str, Callable]):
        """Decorator for input validation."""

        def decorator(func: Callable) -> Callable:
            sig = inspect.signature(func)

            @functools.wraps(func)
            def wrapper(*args, **kwargs) -> Any:
                bound_args = sig.bind(*args, **kwargs)
                bound_args.apply_defaults()

                for param_name, validator in validators.items():
                    if param_name not in bound_args.arguments:
                        continue
                    value = bound_args.arguments[param_name]
                    if not validator(value):
                        context = ErrorContext(
                            operation=func.__name__,
                            platform=bound_args.arguments.get("platform"),
                            recoverable=False,
                            metadata={"parameter": param_name}
                        )
                        raise ValidationError(
                            f"Input validation failed for parameter '{param_name}'", context
                        )

                return func(*args, **kwargs)

            return wrapper
        return decorator


# Utility functions for common validation patterns
MAX_DESCRIPTION_LENGTH = 255

_EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def validate_repo_name(name: str) -> bool:
    """Validate repository name."""
    if not name or not isinstance(name, str):
        return False
    return bool(re.match(r'^[a-zA-Z0-9_.-]+$', name)) and len(name) <= 100


def validate_description(description: Optional[str]) -> bool:
    """Descriptions are optional but capped at 255 characters."""
    if description is None:
        return True
    return isinstance(description, str) and len(description) <= MAX_DESCRIPTION_LENGTH


def validate_email(email: str) -> bool:
    if not email or not isinstance(email, str):
        return False
    return bool(_EMAIL_RE.match(email))


def validate_branch_name(name: str) -> bool:
    """Loose check of git ref rules for a single branch name."""
    if not name or not isinstance(name, str):
        return False
    if name.startswith(("-", "/")) or name.endswith(("/", ".", ".lock")):
        return False
    if ".." in name or "@{" in name or "//" in name:
        return False
    return not re.search(r'[\s~^:?*\[\\]', name)


def validate_token(token: str) -> bool:
    return bool(token) and isinstance(token, str) and bool(token.strip())


# Global error handler instance
_global_error_handler = None


def get_error_handler(logger: logging.Logger = None) -> ErrorHandler:
    """Get global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler(logger)
    return _global_error_handler


# Convenience decorators using global handler
def retry_on_failure(max_retries: int = 3, backoff_factor: float = 1.0, exceptions: tuple = (Exception,)):
    """Convenience decorator for retry logic."""
    handler = get_error_handler()
    return handler.retry_with_backoff(max_retries, backoff_factor, exceptions=exceptions)


def validate_inputs(**validators):
    """Convenience decorator for input validation."""
    handler = get_error_handler()
    return handler.validate_inputs(validators)
