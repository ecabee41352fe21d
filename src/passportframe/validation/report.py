from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

@dataclass(frozen=True)
class RuleResult:
    """
    Outcome of one photo check.
    """
    rule_id: str
    passed: bool
    message: str
    metrics: dict[str, Any] | None = None

@dataclass(frozen=True)
class ValidationReport:
    """
    All check results for one rendered photo, plus the standard it was checked against.
    """
    passed: bool
    results: list[RuleResult]
    spec_id: Optional[str] = None

    def get(self, rule_id: str) -> Optional[RuleResult]:
        for r in self.results:
            if r.rule_id == rule_id:
                return r
        return None

    @property
    def failed(self) -> list[RuleResult]:
        return [r for r in self.results if not r.passed]
