"""
netguard Custom Exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~

All custom exception classes for netguard, organized by domain.
Every distinct failure mode of a protected change has its own type.

**Structured Error Messages**

Errors the operator must act on (a failed rollback) carry three
structured fields:
- ``what_happened``: Clear plain-English description
- ``component``: The part of the protocol that failed
- ``how_to_fix``: Concrete, actionable steps
"""

__all__ = [
    # Base
    "NetGuardError",
    # Config
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigValidationError",
    # Ruleset tool
    "RulesetToolError",
    "RulesetToolBusyError",
    # Transaction
    "TransactionError",
    "SnapshotFailureError",
    "MutationFailureError",
    "RestoreFailureError",
    "SchedulingFailureError",
    # Store
    "StoreError",
]


# ── Formatting Helper ────────────────────────────────────────────────────────

_SEPARATOR = "─" * 52


def _format_structured_error(
    title: str,
    what_happened: str,
    component: str,
    how_to_fix: str,
) -> str:
    """Build a rich, structured error message."""
    lines = [
        f"  {title}",
        f"  {_SEPARATOR}",
        "  What happened:",
        *[f"    {line}" for line in what_happened.strip().splitlines()],
        "",
        "  Component:",
        f"    {component}",
        "",
        "  How to fix:",
        *[f"    {line}" for line in how_to_fix.strip().splitlines()],
    ]
    return "\n".join(lines)


# ── Base Exception ───────────────────────────────────────────────────────────


class NetGuardError(Exception):
    """Base exception for all netguard errors."""

    def __init__(self, message: str = "", details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


# ── Config Exceptions ────────────────────────────────────────────────────────


class ConfigError(NetGuardError):
    """Base exception for configuration-related errors."""


class ConfigFileNotFoundError(ConfigError):
    """Raised when a configuration file cannot be found at the specified path."""


class ConfigValidationError(ConfigError):
    """Raised when configuration values fail validation."""


# ── Ruleset Tool Exceptions ──────────────────────────────────────────────────


class RulesetToolError(NetGuardError):
    """
    Raised when the ruleset tool cannot run or reports failure.

    Attributes:
        command: The argv that failed, if any.
        returncode: Exit status of the command, if it ran.
        output: Captured stderr/stdout of the command.
    """

    def __init__(
        self,
        message: str = "Ruleset tool failed",
        command: list[str] | None = None,
        returncode: int | None = None,
        output: str = "",
        details: dict | None = None,
    ) -> None:
        self.command = command or []
        self.returncode = returncode
        self.output = output
        super().__init__(message, details)


class RulesetToolBusyError(RulesetToolError):
    """Raised when the tool is transiently busy (xtables lock held). Retryable."""


# ── Transaction Exceptions ───────────────────────────────────────────────────


class TransactionError(NetGuardError):
    """Base exception for commit-confirm transaction errors."""


class SnapshotFailureError(TransactionError):
    """Raised when the pre-change state could not be captured. Nothing was mutated."""


class MutationFailureError(TransactionError):
    """
    Raised when a protected mutation failed partially or fully.

    The transaction is still pending and will roll back on its own.
    """

    def __init__(
        self,
        message: str = "Mutation failed",
        step: list[str] | None = None,
        details: dict | None = None,
    ) -> None:
        self.step = step or []
        super().__init__(message, details)


class RestoreFailureError(TransactionError):
    """
    Raised when rolling back to the captured snapshot failed.

    This leaves the host in an unconfirmed state that could not be
    undone automatically, so it is always surfaced to the operator.

    Structured fields:
    - ``what_happened``: description of the failed restore
    - ``component``: the actor that attempted the restore
    - ``how_to_fix``: actionable remediation steps
    """

    def __init__(
        self,
        message: str = "Rollback failed",
        transaction_id: str = "",
        actor: str = "",
        details: dict | None = None,
        what_happened: str = "",
        how_to_fix: str = "",
    ) -> None:
        self.transaction_id = transaction_id
        self.actor = actor
        self.what_happened = what_happened or (
            f'Restoring the snapshot of transaction "{transaction_id}" failed '
            f"during {actor or 'rollback'}. The unconfirmed change is still live."
        )
        self.component = f"snapshot_store ({actor})" if actor else "snapshot_store"
        self.how_to_fix = how_to_fix or (
            "1. Check that the ruleset tool runs on this host\n"
            "   (sudo iptables-restore --test < /dev/null)\n"
            "2. Retry explicitly:\n"
            "   netguard revert\n"
            "3. Or accept the current ruleset:\n"
            "   netguard confirm"
        )
        super().__init__(message, details)

    def __str__(self) -> str:
        return _format_structured_error(
            title=f"RestoreFailureError: {self.args[0]}",
            what_happened=self.what_happened,
            component=self.component,
            how_to_fix=self.how_to_fix,
        )


class SchedulingFailureError(TransactionError):
    """Raised when the rollback watchdog could not be armed."""


# ── Store Exceptions ─────────────────────────────────────────────────────────


class StoreError(NetGuardError):
    """Raised when the transaction store cannot be read or written."""
