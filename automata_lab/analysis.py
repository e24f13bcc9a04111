from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .automata import Automaton


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    tokens: Tuple[str, ...]
    expected: bool
    label: str = ""

    @staticmethod
    def from_raw(raw_tokens: Iterable[str] | str, expected: bool, label: str = "") -> "TestCase":
        return TestCase(tokens=tuple(raw_tokens), expected=expected, label=label)

    @property
    def text(self) -> str:
        return "".join(self.tokens)


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    case: TestCase
    actual: bool
    error: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.actual == self.case.expected


def run_test_cases(automaton: Automaton, test_cases: Sequence[TestCase]) -> List[TestResult]:
    results: List[TestResult] = []
    for case in test_cases:
        report = automaton.process_input(case.tokens)
        results.append(TestResult(case=case, actual=report.accepted, error=report.error))
    return results


def summarize_results(results: Sequence[TestResult]) -> Dict[str, int]:
    summary = {"total": len(results), "passed": 0, "failed": 0}
    for result in results:
        if result.passed:
            summary["passed"] += 1
        else:
            summary["failed"] += 1
    return summary
