"""Grade bands for exam scores."""

from typing import Optional

# Highest band first; a score takes the first band whose minimum it reaches
DEFAULT_GRADE_BANDS = [
    (80, "A"),
    (75, "A-"),
    (70, "B+"),
    (65, "B"),
    (60, "B-"),
    (55, "C+"),
    (50, "C"),
    (45, "C-"),
    (40, "D+"),
    (35, "D"),
    (30, "D-"),
    (0, "E"),
]


def grade_from_score(score: Optional[float], bands=DEFAULT_GRADE_BANDS) -> Optional[str]:
    """Map a 0-100 score to a letter grade; None stays None."""
    if score is None:
        return None
    clamped = max(0.0, min(100.0, float(score)))
    for minimum, grade in bands:
        if clamped >= minimum:
            return grade
    return bands[-1][1]
