"""Custom exception hierarchy for wg-tracker.

Exception Hierarchy:
    WgTrackerError (base)
    ├── ConfigurationError
    ├── RemoteError
    │   ├── NetworkError
    │   ├── ResponseError
    │   └── NotFoundError
    ├── SnapshotParseError
    └── PolicyError

Any of these raised by a task aborts only the current step. The driver
persists state before letting the error propagate to the CLI, which prints
a single line and exits non-zero.

Example Usage:
    >>> from wg_tracker.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""


class WgTrackerError(Exception):
    """Base exception for all wg-tracker errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(WgTrackerError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found or unreadable
        - Invalid YAML syntax
        - ``wg_repo`` not in ``owner/repo`` form
        - Repository policy file is malformed
    """

    pass


class RemoteError(WgTrackerError):
    """Base class for failures talking to GitHub or the bug tracker."""

    pass


class NetworkError(RemoteError):
    """The request never produced a response (DNS, TLS, timeout, reset)."""

    pass


class ResponseError(RemoteError):
    """The remote answered, but with an error or without usable data.

    Raised for HTTP error statuses, GraphQL ``errors`` arrays and
    responses lacking a ``data`` object.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class NotFoundError(RemoteError):
    """A repository, issue or other remote object does not exist."""

    pass


class SnapshotParseError(WgTrackerError):
    """The state snapshot is malformed or has an unknown version."""

    pass


class PolicyError(WgTrackerError):
    """Policy data needed by a task is missing or unparseable.

    Examples:
        - The decisions repository has no ``bug`` label
        - A component entry is not of the form ``Product :: Component``
    """

    pass
