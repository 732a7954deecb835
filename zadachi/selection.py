import math
import random
from typing import Optional, Sequence

from .engine import coerce_timeframe, key_of
from .models import TaskTemplate, Timeframe

DRAW_SIZE = 3

# Daily chores come up more often than weekly ones, weekly more than monthly.
TIMEFRAME_WEIGHTS = {Timeframe.daily: 2.0, Timeframe.weekly: 1.5, Timeframe.monthly: 1.0}


def template_weight(template: TaskTemplate) -> int:
    """Number of tickets a template gets in the draw."""
    weight = template.frequency * TIMEFRAME_WEIGHTS[coerce_timeframe(template.timeframe)]
    return math.ceil(weight)


def draw_candidates(
    available: Sequence[TaskTemplate],
    rng: Optional[random.Random] = None,
    count: int = DRAW_SIZE,
) -> list[TaskTemplate]:
    """Pick up to ``count`` distinct templates, favouring frequent and short-window ones."""
    if count <= 0:
        return []
    rng = rng or random.Random()
    pool = [t for t in available for _ in range(template_weight(t))]
    rng.shuffle(pool)
    picked: list[TaskTemplate] = []
    seen: set[str] = set()
    for template in pool:
        key = key_of(template)
        if key in seen:
            continue
        seen.add(key)
        picked.append(template)
        if len(picked) == count:
            break
    return picked
