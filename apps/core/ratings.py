import math
from typing import Iterable

def round_rating(value: float) -> float:
    """Round half up to one decimal (3.25 -> 3.3, not banker's 3.2)."""
    return math.floor(value * 10 + 0.5) / 10

def average_rating(values: Iterable[int]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return round_rating(sum(values) / len(values))
