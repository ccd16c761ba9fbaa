"""Exception hierarchy shared by the store, repository and task services."""
from __future__ import annotations


class LeadNavigatorError(Exception):
    """Base class for all errors raised by :mod:`lead_navigator`."""


class NotFoundError(LeadNavigatorError, LookupError):
    """Raised when a referenced preset, task or lead id does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class ValidationError(LeadNavigatorError, ValueError):
    """Raised when input to a creation or update call is malformed."""


class PersistenceError(LeadNavigatorError, RuntimeError):
    """Raised when the state document cannot be read from or written to disk."""


class AutomationError(LeadNavigatorError, RuntimeError):
    """Raised by a scraper when a browser run cannot produce results.

    The scheduler records the message on the task as its ``error_message``.
    """


class AuthenticationWallError(AutomationError):
    """Raised when LinkedIn redirects to a login, checkpoint or contract page."""


__all__ = [
    "AuthenticationWallError",
    "AutomationError",
    "LeadNavigatorError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
]
