# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Roundtable contributors

"""Exceptions raised by the round orchestration engine."""


class RoundError(Exception):
    """Base exception for round orchestration errors."""
    pass


class InvariantViolationError(RoundError):
    """A core engine invariant was broken.

    This is a programmer error and is always raised, never recorded.
    """
    pass


class RoundInProgressError(RoundError):
    """A submission was attempted while a round is still running."""
    pass


class DuplicateParticipantError(RoundError):
    """A participant with the same model already exists on the thread."""
    pass


class UnknownParticipantError(RoundError):
    """A roster operation referenced a participant that does not exist."""
    pass


class AnalysisParseError(RoundError):
    """An analysis or moderator payload failed validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class TransportError(RoundError):
    """A backend transport failed.

    Attributes:
        retryable: Whether the failure is transient
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
