"""Explicit per-operation outcomes.

Every handler returns a HandlerResult instead of only logging, so the
dispatcher, scripts and tests can tell apart "applied", "nothing to do",
"referenced record missing" and "collaborator failed".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Outcome(Enum):
    APPLIED = "applied"
    NOOP = "noop"
    MISSING = "missing"
    FAILED = "failed"


@dataclass(frozen=True)
class HandlerResult:
    outcome: Outcome
    address: str
    detail: str = ""
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED

    @classmethod
    def applied(cls, address: str, detail: str = "") -> HandlerResult:
        return cls(Outcome.APPLIED, address, detail)

    @classmethod
    def noop(cls, address: str, detail: str = "") -> HandlerResult:
        return cls(Outcome.NOOP, address, detail)

    @classmethod
    def missing(cls, address: str, detail: str = "") -> HandlerResult:
        return cls(Outcome.MISSING, address, detail)

    @classmethod
    def failed(cls, address: str, error: Exception, detail: str = "") -> HandlerResult:
        return cls(Outcome.FAILED, address, detail or str(error), error)


@dataclass
class RepairReport:
    """Summary of one repair sweep."""

    scanned: int = 0
    fixed: int = 0
    unchanged: int = 0
    conflicts: int = 0
    failed: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return (
            f"scanned={self.scanned} fixed={self.fixed} unchanged={self.unchanged} "
            f"conflicts={self.conflicts} failed={len(self.failed)}"
        )
