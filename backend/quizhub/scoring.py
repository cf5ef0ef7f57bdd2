# Point computation for submitted answers.
from typing import Dict, Union

from quizhub.models import Difficulty

BASE_POINTS: Dict[Difficulty, int] = {
    Difficulty.BEGINNER: 5,
    Difficulty.INTERMEDIATE: 10,
    Difficulty.ADVANCED: 20,
    Difficulty.EXPERT: 30,
}
FAST_ANSWER_BONUS = 10


# True when the answer came in under half the timer (whole seconds, truncated).
def is_fast_answer(time_taken: int, timer_duration: int) -> bool:
    return time_taken < timer_duration // 2


# Points for one answer; incorrect answers are always worth zero.
def compute_points(
    difficulty: Union[Difficulty, str],
    correct: bool,
    time_taken: int,
    timer_duration: int,
) -> int:
    if not correct:
        return 0
    base = BASE_POINTS[Difficulty(difficulty)]
    bonus = FAST_ANSWER_BONUS if is_fast_answer(time_taken, timer_duration) else 0
    return base + bonus


# Exact, case-sensitive comparison against the stored answer.
def is_correct_answer(submitted: str, expected: str) -> bool:
    return submitted == expected
