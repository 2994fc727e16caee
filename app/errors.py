"""
ERRORS MODULE
=============

Exceptions raised by the services and mapped to HTTP status codes in app.main.

Malformed ruleset fields and unknown agent roles are not errors: the prompt
composer recovers from both locally. The document parser never raises.
"""

from typing import Optional


class WorkiwiError(Exception):
    """Base class for every error the services raise on purpose."""


class BackendUnavailableError(WorkiwiError):
    """The generation backend could not be reached or returned an error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class PersistenceError(WorkiwiError):
    """
    The document store rejected a write.

    draft is the already-parsed document that could not be stored, so the caller
    can show it or try again; parsing itself succeeded.
    """

    def __init__(self, message: str, draft=None):
        super().__init__(message)
        self.draft = draft


class ConversationBusyError(WorkiwiError):
    """A message was sent while the previous one in the same session is still waiting for a reply."""


class ProjectNotFoundError(WorkiwiError, LookupError):
    pass


class SessionNotFoundError(WorkiwiError, LookupError):
    pass


class TurnNotFoundError(WorkiwiError, LookupError):
    pass


class DocumentNotFoundError(WorkiwiError, LookupError):
    pass
