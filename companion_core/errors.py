from __future__ import annotations


class CompanionError(Exception):
    """Base class for errors raised by the conversation core."""


class ValidationError(CompanionError, ValueError):
    """Malformed input rejected before any state is touched."""


class CollaboratorError(CompanionError):
    """A persistence or generation collaborator failed; `cause` keeps the original exception."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message if cause is None else f"{message}: {cause}")
        self.cause = cause
