"""
dposgov/errors.py

Error taxonomy for governance actions.

Every error aborts the whole action: the contract rolls back any
partial write before the exception reaches the caller.
"""


class GovernanceError(Exception):
    """Base class for all governance action failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GovernanceError):
    """Malformed input or an action that would have no effect."""
    pass


class NotFoundError(GovernanceError):
    """Referenced voter, proxy or producer does not exist."""
    pass


class AuthorizationError(GovernanceError):
    """Action not authorized by the acting account."""
    pass


class InvariantViolation(GovernanceError):
    """
    Stored state contradicts itself (e.g. a proxy recorded on a voter
    no longer exists). Signals an engine bug, never a user error.
    """
    pass
