"""Custom exceptions for the switchboard"""

from typing import Any, Optional


class SwitchboardError(Exception):
    """Base class for all switchboard errors"""


class NotFoundError(SwitchboardError):
    """Raised when a provider, prompt or MCP server id does not exist"""

    def __init__(self, kind: str, entity_id: str, app_type: Optional[str] = None):
        self.kind = kind
        self.entity_id = entity_id
        self.app_type = app_type
        suffix = f" for app '{app_type}'" if app_type else ""
        super().__init__(f"{kind} '{entity_id}' not found{suffix}")


class ValidationError(SwitchboardError):
    """Raised when an entity is rejected before any mutation happens"""


class PersistenceError(SwitchboardError):
    """Raised when a database transaction fails. The transaction was rolled back."""


class SwitchConflictError(SwitchboardError):
    """Raised when a compare-and-swap switch finds a different current provider"""

    def __init__(self, app_type: str, expected_id: str, actual_id: Optional[str]):
        self.app_type = app_type
        self.expected_id = expected_id
        self.actual_id = actual_id
        super().__init__(
            f"Current {app_type} provider is '{actual_id or ''}', expected '{expected_id}'"
        )


class ExternalApplyError(SwitchboardError):
    """Raised when projecting a provider onto external config files fails.

    When ``committed`` is True the database switch already succeeded and was
    NOT rolled back: the selection changed but the external tool has not
    picked it up yet.
    """

    def __init__(
        self,
        message: str,
        app_type: Optional[str] = None,
        path: Optional[str] = None,
        committed: bool = False,
        provider: Any = None,
    ):
        self.app_type = app_type
        self.path = path
        self.committed = committed
        self.provider = provider
        super().__init__(message)


class ProbeTimeout(SwitchboardError):
    """Raised internally when a probe does not get a response in time"""

    def __init__(self, timeout_secs: float, url: str):
        self.timeout_secs = timeout_secs
        self.url = url
        super().__init__(f"Probe timeout: no response from {url} within {timeout_secs}s")


class ProbeFailure(SwitchboardError):
    """Raised internally when a probe fails at the transport level"""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Probe to {url} failed: {reason}")
