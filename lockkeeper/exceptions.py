"""
Custom exception hierarchy for lockkeeper.

This module defines structured exception types used across lockkeeper.
All exceptions inherit from :class:`LockKeeperError` and support optional
structured metadata via the ``details`` attribute to improve diagnostics
and logging.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, MutableMapping, Optional, Sequence

if TYPE_CHECKING:
    from lockkeeper.models.graph import UnresolvedEdge


class LockKeeperError(Exception):
    """Base exception for all lockkeeper errors.

    All lockkeeper-specific exceptions should inherit from this class.
    It supports structured metadata via ``details`` for richer error
    reporting and debugging.

    Args:
        message: Human-readable error message.
        details: Optional structured metadata describing the error.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        # Internally normalize to a mutable dict
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        formatted = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({formatted})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Add a key to ``details`` only if ``value`` is not ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Truncate long text for safe logging or error reporting."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class ParseError(LockKeeperError):
    """Raised when a manifest, lockfile or registry snapshot cannot be parsed.

    Args:
        message: Error description.
        file_path: Path to the file being parsed.
        field: Offending field or key, if known.
        value: Raw offending value, truncated for safety.
    """

    __slots__ = ("file_path", "field", "value")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "file", file_path)
        _add_if(details, "field", field)
        if value is not None:
            details["value"] = _truncate(value)

        super().__init__(message, details)

        self.file_path = file_path
        self.field = field
        self.value = value


class ConfigError(LockKeeperError):
    """Raised when the lockkeeper configuration is invalid.

    Args:
        message: Error description.
        config_path: Path of the configuration file.
        option: Name of the offending option.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)

        super().__init__(message, details)

        self.config_path = config_path
        self.option = option


class NetworkError(LockKeeperError):
    """Raised when HTTP or network operations fail.

    Args:
        message: Error description.
        url: URL being accessed.
        status_code: HTTP status code, if available.
        response_body: Raw response body, truncated for safety.
    """

    __slots__ = ("url", "status_code", "response_body")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body


class RegistryError(NetworkError):
    """Raised for failures related to the npm registry.

    Args:
        message: Error description.
        package_name: Name of the package involved.
        **kwargs: Additional arguments forwarded to ``NetworkError``.
    """

    __slots__ = ("package_name",)

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.package_name = package_name
        if package_name is not None:
            self.details["package"] = package_name


class FileOperationError(LockKeeperError):
    """Raised when file system operations fail.

    Args:
        message: Error description.
        file_path: Path to the file involved.
        operation: Operation being performed (read/write/delete).
        original_error: Original exception that triggered this error.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class PackageNotFound(LockKeeperError):
    """Raised when no known version of a package satisfies a constraint.

    Args:
        name: Package name.
        constraint: Constraint that could not be satisfied.
        available: Versions the provider knows about.
    """

    __slots__ = ("name", "constraint", "available")

    def __init__(
        self,
        name: str,
        constraint: str,
        *,
        available: Optional[Sequence[str]] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {"package": name, "constraint": constraint}
        if available:
            details["available"] = _truncate(", ".join(available))

        super().__init__(f"No version of {name} satisfies {constraint}", details)

        self.name = name
        self.constraint = constraint
        self.available = list(available or [])


class UnsatisfiableConstraint(LockKeeperError):
    """Raised when a required edge has no satisfier anywhere in scope.

    Args:
        consumer: Location of the package declaring the edge.
        name: Required package name.
        constraint: Version constraint of the edge.
        manifest: Manifest (or lockfile entry) the edge was declared in.
        reason: Why no placement was possible.
    """

    __slots__ = ("consumer", "name", "constraint", "manifest")

    def __init__(
        self,
        consumer: str,
        name: str,
        constraint: str,
        *,
        manifest: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {
            "consumer": consumer or "(root)",
            "constraint": constraint,
        }
        _add_if(details, "manifest", manifest)
        _add_if(details, "reason", reason)

        super().__init__(f"Cannot satisfy {name}@{constraint}", details)

        self.consumer = consumer
        self.name = name
        self.constraint = constraint
        self.manifest = manifest


class BrokenLockfile(LockKeeperError):
    """Raised when a resolved tree would fail a clean install.

    Args:
        unresolved: Every edge without a valid satisfier.
    """

    __slots__ = ("unresolved",)

    def __init__(self, unresolved: Sequence["UnresolvedEdge"]) -> None:
        self.unresolved: List["UnresolvedEdge"] = list(unresolved)
        lines = "; ".join(edge.describe() for edge in self.unresolved)
        super().__init__(
            f"Lockfile is out of sync with its dependency graph: {lines}",
            {"unresolved": len(self.unresolved)},
        )


class UpdateError(LockKeeperError):
    """Raised when a requested update cannot be applied.

    Args:
        message: Error description.
        package_name: Package that was requested.
        workspace: Workspace member the update targeted.
    """

    __slots__ = ("package_name", "workspace")

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        workspace: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "package", package_name)
        _add_if(details, "workspace", workspace)

        super().__init__(message, details)

        self.package_name = package_name
        self.workspace = workspace
