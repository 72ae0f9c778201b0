"""Pure scoring helpers. Nothing in here touches the database."""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence


@dataclass(frozen=True)
class ScoreResult:
    total_score: float
    max_score: float
    percentage_score: float
    is_passed: Optional[bool]


def correct_option_indexes(options: Sequence[dict]) -> set[int]:
    return {i for i, option in enumerate(options) if option.get("is_correct")}


def is_correct_selection(options: Sequence[dict], selected: Iterable[int]) -> bool:
    """Exact match: a strict subset or superset of the correct options is wrong."""
    return set(selected) == correct_option_indexes(options)


def score_multiple_choice(options: Sequence[dict], selected: Iterable[int], points: float) -> float:
    return float(points) if is_correct_selection(options, selected) else 0.0


def percentage(total_score: float, max_score: float) -> float:
    # not clamped: teacher-entered scores may exceed the question points
    if not max_score:
        return 0.0
    return total_score / max_score * 100


def is_passed(percentage_score: float, passing_score: Optional[float]) -> Optional[bool]:
    if passing_score is None:
        return None
    return percentage_score >= passing_score


def summarize(total_score: float, max_score: float, passing_score: Optional[float] = None) -> ScoreResult:
    pct = percentage(total_score, max_score)
    return ScoreResult(
        total_score=float(total_score),
        max_score=float(max_score),
        percentage_score=pct,
        is_passed=is_passed(pct, passing_score),
    )
