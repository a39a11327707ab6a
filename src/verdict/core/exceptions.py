# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Custom exception hierarchy for Verdict.

Provides specific exception types for different error categories so the
monitor can tell a stale read from a broken claim from a flaky source.
"""

from __future__ import annotations

from typing import Any


class VerdictException(Exception):  # noqa: N818
    """Base exception for all Verdict errors.

    All Verdict-specific exceptions should inherit from this class.
    """

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class DatabaseException(VerdictException):
    """Exception for database-related errors.

    Raised when:
    - Database connection fails
    - Query execution fails
    - Schema initialization fails
    """

    pass


class ValidationException(VerdictException):
    """Exception for validation errors.

    Raised when:
    - An evidence stance or outcome cannot be parsed
    - Field values are out of range (quality, credibility, confidence)
    - Required fields are missing
    """

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigException(VerdictException):
    """Exception for configuration errors.

    Raised when:
    - Weight presets do not sum to 1.0
    - Strategy thresholds are out of order or out of range
    - Required settings are missing
    """

    def __init__(self, message: str, missing_vars: list[str] | None = None):
        details = {}
        if missing_vars:
            details["missing_vars"] = missing_vars
        super().__init__(message, details)
        self.missing_vars = missing_vars or []


class NotFoundError(VerdictException):
    """Exception for resource not found errors.

    Raised when:
    - Requested claim doesn't exist
    - Requested evidence item doesn't exist
    """

    def __init__(self, resource_type: str, resource_id: str):
        message = f"{resource_type} not found: {resource_id}"
        details = {
            "resource_type": resource_type,
            "resource_id": resource_id,
        }
        super().__init__(message, details)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConflictError(VerdictException):
    """Exception for conflict errors.

    Raised when:
    - An evidence item has already been reviewed
    - State conflict during update
    """

    def __init__(self, message: str, existing_id: str | None = None):
        details = {}
        if existing_id:
            details["existing_id"] = existing_id
        super().__init__(message, details)
        self.existing_id = existing_id


class StaleStateError(ConflictError):
    """The claim is no longer in the state the caller read.

    Expected under overlapping ticks; the monitor skips the claim silently.
    """

    def __init__(self, claim_id: str, expected: str, actual: str):
        super().__init__(f"Claim {claim_id} is {actual}, expected {expected}", existing_id=claim_id)
        self.details.update({"expected": expected, "actual": actual})
        self.claim_id = claim_id
        self.expected = expected
        self.actual = actual


class TransitionError(VerdictException):
    """A requested status change is not allowed.

    Raised when:
    - The edge is not in the transition table (including anything out of
      a terminal state)
    - A final resolution is below the auto-resolve floor without override
    - A precondition (expiry, window close) does not hold yet
    """

    def __init__(self, message: str, claim_id: str | None = None, from_status: str | None = None, to_status: str | None = None):
        details = {}
        if claim_id:
            details["claim_id"] = claim_id
        if from_status:
            details["from_status"] = from_status
        if to_status:
            details["to_status"] = to_status
        super().__init__(message, details)
        self.claim_id = claim_id
        self.from_status = from_status
        self.to_status = to_status


class DataInconsistencyError(VerdictException):
    """A claim is missing data its current status requires.

    The claim is left untouched for the next tick and does not count as a
    failed attempt.
    """

    def __init__(self, claim_id: str, missing: list[str]):
        super().__init__(
            f"Claim {claim_id} is missing required fields: {', '.join(missing)}",
            {"claim_id": claim_id, "missing": missing},
        )
        self.claim_id = claim_id
        self.missing = missing


class SourceError(VerdictException):
    """A signal source could not produce a score.

    Raised when:
    - The ledger, evidence store or document provider is unreachable
    - The analyzer returned output that fails schema validation
    """

    def __init__(self, message: str, source: str | None = None):
        details = {}
        if source:
            details["source"] = source
        super().__init__(message, details)
        self.source = source
