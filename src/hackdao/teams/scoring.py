"""Contribution scoring — turns raw work metrics into a contribution score.

Each contribution type has its own heuristic over a metrics dict
(``lines_added``, ``comments``, ``word_count`` and so on). Missing
metrics count as zero or false. Capped terms stop growing at their cap,
so a huge diff cannot dominate a team's royalty basis on its own.

The result is rounded half-up to a whole number. Unknown types score a
flat 10.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping, Optional

from hackdao.errors import InvalidArgumentError
from hackdao.models.common import to_decimal

DEFAULT_SCORE = Decimal("10")

_DOC_TYPE_BONUS = {
    "api": Decimal("30"),
    "tutorial": Decimal("40"),
    "architecture": Decimal("50"),
}


def _num(data: Mapping[str, Any], key: str, default: Any = 0) -> Decimal:
    value = data.get(key)
    if value is None or value == "":
        value = default
    result = to_decimal(value)
    if result < 0:
        raise InvalidArgumentError(f"Metric {key} must be >= 0, got {result}")
    return result


def _flag(data: Mapping[str, Any], key: str, points: int) -> Decimal:
    return Decimal(points) if data.get(key) else Decimal("0")


def _capped(value: Decimal, cap: int) -> Decimal:
    return min(value, Decimal(cap))


def _score_code(data: Mapping[str, Any]) -> Decimal:
    added = _num(data, "lines_added")
    score = _capped(added * Decimal("0.5"), 200)
    score += _num(data, "complexity") * 20
    score += (_num(data, "files_changed") or Decimal("1")) * 10
    score += _flag(data, "has_tests", 30)
    score += _flag(data, "has_documentation", 20)
    score += _flag(data, "follows_standards", 15)
    # Net-negative refactors earn a cleanup bonus.
    if _num(data, "lines_removed") > added * Decimal("0.5"):
        score += 25
    return score


def _score_review(data: Mapping[str, Any]) -> Decimal:
    score = _num(data, "comments") * 5
    score += _num(data, "found_bugs") * 20
    score += _num(data, "suggested_improvements") * 10
    score += _num(data, "thoroughness") * 15
    score += _capped(_num(data, "time_spent") * Decimal("0.5"), 50)
    return score


def _score_documentation(data: Mapping[str, Any]) -> Decimal:
    score = _capped(_num(data, "word_count") * Decimal("0.1"), 100)
    score += _DOC_TYPE_BONUS.get(str(data.get("doc_type", "")).lower(), Decimal("0"))
    score += _flag(data, "has_examples", 25)
    score += _flag(data, "has_diagrams", 20)
    return score


def _score_design(data: Mapping[str, Any]) -> Decimal:
    score = (_num(data, "design_count") or Decimal("1")) * 30
    score += _flag(data, "is_interactive", 25)
    score += _flag(data, "has_specifications", 20)
    score += _flag(data, "is_responsive", 15)
    score += _flag(data, "professional_tool", 10)
    return score


def _score_testing(data: Mapping[str, Any]) -> Decimal:
    score = _num(data, "test_count") * 5
    score += _num(data, "coverage_improvement") * 2
    score += _flag(data, "has_unit_tests", 20)
    score += _flag(data, "has_integration_tests", 30)
    score += _flag(data, "has_e2e_tests", 40)
    score += _num(data, "bugs_found") * 15
    return score


def _score_research(data: Mapping[str, Any]) -> Decimal:
    score = _num(data, "sources_count") * 10
    score += _flag(data, "has_analysis", 30)
    score += _flag(data, "has_recommendations", 25)
    score += _flag(data, "is_comprehensive", 35)
    score += _flag(data, "led_to_implementation", 50)
    return score


def _score_ideation(data: Mapping[str, Any]) -> Decimal:
    return _num(data, "impact_score", default=50)


def _score_presentation(data: Mapping[str, Any]) -> Decimal:
    return _num(data, "quality_score", default=75)


SCORERS: dict[str, Callable[[Mapping[str, Any]], Decimal]] = {
    "code": _score_code,
    "review": _score_review,
    "documentation": _score_documentation,
    "design": _score_design,
    "testing": _score_testing,
    "research": _score_research,
    "ideation": _score_ideation,
    "presentation": _score_presentation,
}


def score_contribution(
    contribution_type: str,
    data: Optional[Mapping[str, Any]] = None,
) -> Decimal:
    """Score a contribution from its metrics, rounded half-up to an integer."""
    scorer = SCORERS.get(contribution_type)
    if scorer is None:
        return DEFAULT_SCORE
    raw = scorer(data or {})
    return raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
