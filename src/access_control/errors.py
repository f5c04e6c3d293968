"""Errors raised by the access control services.

Each error carries a list of human-readable ``messages`` that the API layer
returns verbatim in the ``errors`` part of the response envelope. A DENY from
the authorization engine is not an error and never appears here.
"""

from typing import Iterable, Optional


class AccessControlError(Exception):
    """Base class for rejected group/rule/grant operations."""

    default_message = "The operation could not be completed."

    def __init__(self, messages: Optional[Iterable[str] | str] = None):
        if messages is None:
            messages = [self.default_message]
        elif isinstance(messages, str):
            messages = [messages]
        self.messages: list[str] = list(messages)
        super().__init__("; ".join(self.messages))


class ValidationError(AccessControlError):
    """Bad input shape: too-short name, missing required field."""

    default_message = "Invalid input."


class DuplicateError(ValidationError):
    """A uniqueness constraint would be violated."""

    default_message = "This item already exists."


class DuplicateRule(DuplicateError):
    """A rule for the same (module, action) pair already exists.

    ``existing`` is the rule the caller should present instead of creating one.
    """

    def __init__(self, existing, messages=None):
        self.existing = existing
        if messages is None:
            messages = [
                f"Rule for module '{existing.module.name}' and action "
                f"'{existing.action or '*'}' already exists."
            ]
        super().__init__(messages)


class DuplicateGrant(DuplicateError):
    default_message = "This group already holds the rule."


class DuplicateGroupName(DuplicateError):
    default_message = "A group with this name already exists."


class ConstraintError(AccessControlError):
    """Referential or business-rule violation (e.g. deleting a group in use)."""

    default_message = "The item cannot be deleted."


class NotFoundError(AccessControlError):
    default_message = "The requested item does not exist."


class ConfigurationError(AccessControlError):
    """The installation has no default group."""

    default_message = "No default group is configured."


__all__ = [
    "AccessControlError",
    "ValidationError",
    "DuplicateError",
    "DuplicateRule",
    "DuplicateGrant",
    "DuplicateGroupName",
    "ConstraintError",
    "NotFoundError",
    "ConfigurationError",
]
