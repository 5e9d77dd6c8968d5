"""
SM-2 Spaced Repetition Algorithm

Quality ratings:
0 - Again: failed recall
3 - Hard: correct with serious difficulty
4 - Good: correct after hesitation
5 - Easy: perfect response

Grades 1 and 2 exist in SM-2 but the four study buttons never produce them.
"""

import math
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import NamedTuple, Optional

from errors import InvalidGradeInput

MIN_EFACTOR = 1.3
DEFAULT_EFACTOR = 2.5
PASSING_GRADE = 3


class Rating(str, Enum):
    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"


RATING_TO_GRADE = {
    Rating.AGAIN: 0,
    Rating.HARD: 3,
    Rating.GOOD: 4,
    Rating.EASY: 5,
}


class ReviewResult(NamedTuple):
    interval: int
    repetition: int
    efactor: float


def parse_rating(token) -> Rating:
    """Turn a user-facing token into a Rating, rejecting anything else."""
    if isinstance(token, Rating):
        return token
    try:
        return Rating(token)
    except ValueError:
        raise InvalidGradeInput(f"Unknown rating {token!r}; expected one of "
                                f"{', '.join(r.value for r in Rating)}") from None


def rating_to_grade(rating: Rating) -> int:
    return RATING_TO_GRADE[rating]


def is_failing(grade: int) -> bool:
    return grade < PASSING_GRADE


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the database stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute(grade: int, prev_interval: int, prev_repetition: int, prev_efactor: float) -> ReviewResult:
    """
    Apply SM-2 to a card's previous scheduling state.

    Args:
        grade: Response quality (0-5)
        prev_interval: Days of the previous interval
        prev_repetition: Consecutive successful reviews so far
        prev_efactor: Previous ease factor

    Returns:
        The new (interval, repetition, efactor)
    """
    if grade >= PASSING_GRADE:
        if prev_repetition == 0:
            interval = 1
        elif prev_repetition == 1:
            interval = 6
        else:
            # Uses the ease factor from before this review
            interval = _round_half_up(prev_interval * prev_efactor)
        repetition = prev_repetition + 1
    else:
        repetition = 0
        interval = 1

    # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    efactor = max(
        MIN_EFACTOR,
        prev_efactor + (0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02))
    )

    return ReviewResult(interval=interval, repetition=repetition, efactor=efactor)


def next_review_date(interval: int, now: Optional[datetime] = None) -> datetime:
    """Due date for a card scheduled `interval` days from now."""
    return (now or utcnow()) + timedelta(days=interval)
