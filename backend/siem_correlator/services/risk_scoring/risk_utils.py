import math
from typing import Optional

SEVERITY_WEIGHT = {"info": 1, "low": 2, "medium": 3, "high": 4, "critical": 5}


def severity_weight(severity: Optional[str]) -> int:
    """Ordinal weight of a severity label; unknown or missing labels weigh 0."""
    return SEVERITY_WEIGHT.get(str(severity).lower(), 0) if severity else 0


def severity_from_score(score: int) -> str:
    if score >= 70:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 30:
        return "medium"
    return "low"


def round_half_up(value: float) -> int:
    # round() would use banker's rounding: 62.5 -> 62
    return int(math.floor(value + 0.5))
