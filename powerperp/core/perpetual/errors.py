"""Exception types for the perpetual ledger.

Every exception carries a stable ``reason`` string so callers (and tests) can
tell violated rules apart without parsing messages. Raising any of these from
inside an engine operation rolls the whole operation back.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger failures."""

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(f"{reason}: {message}" if message else reason)


class LedgerGuardError(LedgerError):
    """Raised when an operation's precondition is not satisfied."""


class LedgerOverflowError(LedgerError):
    """Raised when a value leaves its fixed integer width."""


class LedgerArithmeticError(LedgerError):
    """Raised on invalid arithmetic (division by zero, time going backwards)."""


class LedgerInvariantError(LedgerError):
    """Raised when a post-state violates one or more invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(
            violations[0] if violations else "invariant",
            f"invariant violations: {', '.join(violations)}",
        )


class ReentrancyError(LedgerError):
    """Raised when a collaborator calls back into a guarded entry point."""

    def __init__(self) -> None:
        super().__init__("reentrant_call")
