"""
Error taxonomy and centralized error handling for cargo-hoist.

Exceptions describe what went wrong while reading, resolving or writing
workspace manifests. Non-fatal problems (a malformed entry, an unresolvable
path, a failed prompt) are routed through the ErrorHandler so that they are
logged, counted and forwarded to registered callbacks while the run goes on.
"""

import logging
import re
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class HoistError(Exception):
    """Base class for every error raised by cargo-hoist."""


class MalformedManifestError(HoistError):
    """A dependency entry mixes source keys or carries values of the wrong type."""

    def __init__(
        self,
        message: str,
        member: Optional[str] = None,
        dependency: Optional[str] = None,
    ):
        self.member = member
        self.dependency = dependency
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if self.member and self.dependency:
            return f"{self.member}: dependency `{self.dependency}`: {message}"
        if self.member:
            return f"{self.member}: {message}"
        return message


class PathResolutionError(HoistError):
    """A local path dependency cannot be expressed relative to the workspace root."""


class DecisionProviderError(HoistError):
    """The decision provider could not produce a decision for a conflict."""


class PersistenceError(HoistError):
    """A manifest could not be written back to disk."""


class WorkspaceError(HoistError):
    """The workspace root or its member list is missing or invalid."""


class ConfigurationError(HoistError):
    """A configuration file or value is invalid."""


class ErrorLevel(Enum):
    """Error severity levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ErrorCategory(Enum):
    """Error categories for better classification."""

    PARSING = "PARSING"
    PATH_RESOLUTION = "PATH_RESOLUTION"
    DECISION = "DECISION"
    PERSISTENCE = "PERSISTENCE"
    WORKSPACE = "WORKSPACE"
    CONFIGURATION = "CONFIGURATION"


@dataclass
class ErrorContext:
    """Structured error context information."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None
    traceback_info: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging."""
        return {
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "module": self.module,
            "function": self.function,
            "details": self.details,
            "exception_type": type(self.exception).__name__ if self.exception else None,
            "exception_message": str(self.exception) if self.exception else None,
            "traceback": self.traceback_info,
            "suggestions": self.suggestions,
        }


# Git dependencies may embed tokens in their URLs.
_SENSITIVE_PATTERNS = [
    (re.compile(r"(\w+://[^@\s/]+:)[^@\s]+@"), r"\1[REDACTED]@"),
    (re.compile(r"(\w+://)[^@\s/:]{20,}@"), r"\1[REDACTED]@"),
    (
        re.compile(r'token["\s]*[:=]["\s]*([a-zA-Z0-9_\-+=/.]{8,})', re.IGNORECASE),
        'token="[REDACTED]"',
    ),
]


class SecureLogger:
    """Logger that strips credentials from git URLs before they are logged."""

    def __init__(self, name: str, level: int = logging.WARNING):
        """
        Initialize secure logger.

        Args:
            name: Logger name
            level: Logging level
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        self.logger.addHandler(handler)
        self.logger.propagate = False

    @staticmethod
    def sanitize_message(message: str) -> str:
        """Remove credentials from a message."""
        sanitized = message
        for pattern, replacement in _SENSITIVE_PATTERNS:
            sanitized = pattern.sub(replacement, sanitized)
        return sanitized

    def _sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        for key, value in data.items():
            if isinstance(value, dict):
                sanitized[key] = self._sanitize_dict(value)
            elif isinstance(value, str):
                sanitized[key] = self.sanitize_message(value)
            else:
                sanitized[key] = value
        return sanitized

    def log_error_context(self, context: ErrorContext):
        """
        Log error context with appropriate level.

        Args:
            context: Error context to log
        """
        log_data = {
            "category": context.category.value,
            "module": context.module,
            "function": context.function,
            "details": self._sanitize_dict(context.details),
        }

        if context.exception:
            log_data["exception"] = type(context.exception).__name__

        if context.suggestions:
            log_data["suggestions"] = context.suggestions

        log_message = f"{self.sanitize_message(context.message)} | {log_data}"
        self.logger.log(getattr(logging, context.level.value), log_message)


# Error callback type
ErrorCallback = Callable[[ErrorContext], None]


class ErrorHandler:
    """
    Centralized error handler for consistent error management.

    Provides logging, callbacks, and per-category statistics for problems
    that do not abort the run.
    """

    def __init__(
        self,
        logger_name: str = "cargo_hoist",
        log_level: int = logging.WARNING,
        enable_callbacks: bool = True,
    ):
        self.logger = SecureLogger(logger_name, log_level)
        self.enable_callbacks = enable_callbacks
        self.error_callbacks: Dict[ErrorCategory, List[ErrorCallback]] = {}
        self.global_callbacks: List[ErrorCallback] = []
        self.error_stats: Dict[str, int] = {}

    def register_callback(
        self, callback: ErrorCallback, category: Optional[ErrorCategory] = None
    ):
        """
        Register error callback.

        Args:
            callback: Function to call on errors
            category: Error category to filter, None for all errors
        """
        if not self.enable_callbacks:
            return

        if category is None:
            self.global_callbacks.append(callback)
        else:
            self.error_callbacks.setdefault(category, []).append(callback)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorContext:
        """
        Handle an error with structured logging and callbacks.

        Returns:
            ErrorContext: The created error context
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=traceback.format_exc() if exception else None,
            suggestions=suggestions or [],
        )

        stat_key = f"{category.value}_{level.value}"
        self.error_stats[stat_key] = self.error_stats.get(stat_key, 0) + 1

        self.logger.log_error_context(context)

        if self.enable_callbacks:
            for callback in self.error_callbacks.get(category, []):
                try:
                    callback(context)
                except Exception as cb_error:
                    # Don't let callback errors break the main flow
                    self.logger.logger.error(f"Error in callback: {cb_error}")

            for callback in self.global_callbacks:
                try:
                    callback(context)
                except Exception as cb_error:
                    self.logger.logger.error(f"Error in global callback: {cb_error}")

        return context

    def info(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle info level event."""
        return self.handle_error(
            ErrorLevel.INFO, category, message, module, function, **kwargs
        )

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle warning level error."""
        return self.handle_error(
            ErrorLevel.WARNING, category, message, module, function, **kwargs
        )

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle error level error."""
        return self.handle_error(
            ErrorLevel.ERROR, category, message, module, function, **kwargs
        )

    def get_error_stats(self) -> Dict[str, int]:
        """Get error statistics."""
        return self.error_stats.copy()


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        ErrorHandler: Global error handler
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING,
    enable_callbacks: bool = True,
    logger_name: str = "cargo_hoist",
) -> ErrorHandler:
    """
    Setup global error handling configuration.

    Returns:
        ErrorHandler: Configured error handler
    """
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level, enable_callbacks)
    return _global_error_handler


def log_manifest_error(
    message: str,
    function: str,
    member: Optional[str] = None,
    dependency: Optional[str] = None,
    table: Optional[str] = None,
    exception: Optional[Exception] = None,
) -> ErrorContext:
    """Report a malformed manifest entry that is being skipped."""
    details = {}
    if member is not None:
        details["member"] = member
    if dependency is not None:
        details["dependency"] = dependency
    if table is not None:
        details["table"] = table

    return get_error_handler().warning(
        ErrorCategory.PARSING,
        message,
        "parsers",
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Declare exactly one of version, git or path",
            "Use at most one of branch, tag or rev with git",
        ],
    )


def log_path_error(
    message: str,
    member: str,
    dependency: str,
    declared_path: Optional[str] = None,
    exception: Optional[Exception] = None,
) -> ErrorContext:
    """Report a path dependency that cannot be relativized to the workspace root."""
    details = {"member": member, "dependency": dependency}
    if declared_path is not None:
        details["path"] = declared_path

    return get_error_handler().warning(
        ErrorCategory.PATH_RESOLUTION,
        message,
        "parsers",
        "normalize",
        details=details,
        exception=exception,
        suggestions=["Keep local path dependencies on the same volume as the workspace"],
    )


def log_decision_error(
    message: str, dependency: str, exception: Optional[Exception] = None
) -> ErrorContext:
    """Report a decision provider failure; the group is skipped."""
    return get_error_handler().error(
        ErrorCategory.DECISION,
        message,
        "resolver",
        "resolve",
        details={"dependency": dependency},
        exception=exception,
        suggestions=["Re-run interactively or choose --strategy first|skip"],
    )
