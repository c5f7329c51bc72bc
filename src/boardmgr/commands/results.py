"""Results of operations over many targets.

Operations such as Init and Upgrade continue past the failure of one target.
They return an OperationReport with one Outcome per target so callers see
every failure instead of only the first one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class OutcomeStatus(Enum):
    SUCCESS = "success"
    ALREADY_INSTALLED = "already_installed"
    SKIPPED = "skipped"
    FAILED = "failed"
    ROLLBACK_FAILED = "rollback_failed"
    CANCELLED = "cancelled"


@dataclass
class Outcome:
    """What happened to one target of an operation."""

    target: str
    status: OutcomeStatus
    error: Optional[BaseException] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.ALREADY_INSTALLED, OutcomeStatus.SKIPPED)

    def to_dict(self) -> dict:
        return {
            "target": self.target,
            "status": self.status.value,
            "error": str(self.error) if self.error else None,
            "warnings": list(self.warnings),
        }


@dataclass
class OperationReport:
    """Per-target outcomes of an operation, in processing order."""

    operation: str
    outcomes: List[Outcome] = field(default_factory=list)

    def add(
        self,
        target: Any,
        status: OutcomeStatus,
        error: Optional[BaseException] = None,
        warnings: Optional[List[str]] = None,
    ) -> Outcome:
        outcome = Outcome(str(target), status, error, list(warnings or []))
        self.outcomes.append(outcome)
        return outcome

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failures(self) -> List[Outcome]:
        return [o for o in self.outcomes if not o.ok]

    def get(self, target: str) -> Optional[Outcome]:
        for outcome in self.outcomes:
            if outcome.target == target:
                return outcome
        return None

    def statuses(self) -> dict:
        return {o.target: o.status for o in self.outcomes}

    def to_dict(self) -> dict:
        return {"operation": self.operation, "outcomes": [o.to_dict() for o in self.outcomes]}
