"""Custom exceptions and error handling for dbanonimize.

This module provides user-friendly error messages with actionable suggestions.
"""

from typing import List, Optional, Tuple


class AnonimizeError(Exception):
    """Base exception for dbanonimize errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nHint: {self.suggestion}"
        return self.message


class UsageError(AnonimizeError):
    """Raised when the anonymizator is called with invalid arguments."""


class InvalidTargetError(UsageError):
    """Raised when a target selector is malformed or unknown."""

    def __init__(self, selector: str, reason: str):
        suggestion = (
            "Target selectors are written as:\n"
            "  - 'TABLE' for a complete table\n"
            "  - 'TABLE.TARGET' for a single table column"
        )
        super().__init__(f"Invalid target '{selector}': {reason}", suggestion)
        self.selector = selector


class UnknownAnonymizerError(UsageError):
    """Raised when a configured anonymizer name is not registered."""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        suggestion = None
        if available:
            suggestion = f"Registered anonymizers: {', '.join(sorted(available))}"
        super().__init__(f"Unknown anonymizer: '{name}'", suggestion)
        self.name = name


class ConfigurationError(AnonimizeError):
    """Raised when configuration is invalid."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        suggestion = None
        if errors:
            suggestion = "Configuration errors:\n" + "\n".join(
                f"  - {e}" for e in errors
            )
        super().__init__(message, suggestion)
        self.errors = errors or []


class StrategyLifecycleError(AnonimizeError):
    """Raised when an anonymizer fails during one of its lifecycle steps.

    Attributes:
        table: Table the anonymizer is bound to.
        target: Target (column) the anonymizer is bound to.
        phase: Lifecycle step that failed ('initialize', 'anonymize', 'clean').
    """

    def __init__(
        self,
        table: str,
        target: Optional[str],
        phase: str,
        cause: Optional[BaseException] = None,
    ):
        where = f'"{table}"."{target}"' if target else f'"{table}"'
        message = f"Anonymizer for {where} failed during {phase}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
        self.table = table
        self.target = target
        self.phase = phase


class CleanupError(StrategyLifecycleError):
    """Raised once per table when one or more anonymizers failed to clean."""

    def __init__(self, table: str, failures: List[Tuple[str, BaseException]]):
        super().__init__(table, None, "clean")
        self.failures = failures
        self.message = (
            f'{len(failures)} anonymizer(s) of table "{table}" failed to clean: '
            + ", ".join(f'"{target}" ({error})' for target, error in failures)
        )
        self.args = (self.message,)
        self.suggestion = (
            "Temporary tables may have been left behind, list them with:\n"
            "  dbanonimize clean URL"
        )


class ExecutionError(AnonimizeError):
    """Raised when an UPDATE statement fails to execute."""

    def __init__(self, table: str, cause: BaseException):
        suggestion = (
            "Tables processed before this one were already anonymized.\n"
            "  - Fix the failing configuration or database issue\n"
            f"  - Resume with --exclude for already processed tables or --only {table}"
        )
        super().__init__(f'UPDATE on table "{table}" failed: {cause}', suggestion)
        self.table = table


def format_error(e: Exception) -> str:
    """Format an exception into a user-friendly message.

    Args:
        e: The exception to format.

    Returns:
        A user-friendly error message with suggestions.
    """
    if isinstance(e, AnonimizeError):
        return str(e)

    if isinstance(e, ValueError):
        return f"Invalid value: {e}\n\nHint: Check your input parameters match the expected format."

    if isinstance(e, KeyError):
        return f"Missing key: {e}\n\nHint: Check that your configuration contains all expected tables and targets."

    return f"Unexpected error: {type(e).__name__}: {e}"
