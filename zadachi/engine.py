"""Task availability engine.

Decides which catalog templates a member may draw from right now, given the
usage ledger. Everything here is a pure function over already-loaded
objects: no I/O, no session, no clock reads.

Window rules:

* ``daily``   - rolls over when the calendar date changes.
* ``weekly``  - rolls over once 7 whole days have elapsed since last use
  (a sliding window, not aligned to calendar weeks).
* ``monthly`` - rolls over when the calendar (year, month) changes.
"""

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from .errors import DataIntegrityError
from .models import TaskTemplate, TaskUsage, Timeframe, enum_value

if TYPE_CHECKING:
    from .usage import UsageLedger

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def template_key(title: str, category) -> str:
    """Derive the usage key for a template, e.g. ("Wash Dishes", "home") -> "wash-dishes-home"."""
    return _WHITESPACE.sub("-", f"{title}-{enum_value(category)}".lower())


def key_of(template: TaskTemplate) -> str:
    return template_key(template.title, template.category)


def coerce_timeframe(value) -> Timeframe:
    try:
        return Timeframe(enum_value(value))
    except ValueError:
        raise DataIntegrityError(f"Unknown timeframe: {value!r}") from None


def coerce_frequency(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise DataIntegrityError(f"Frequency must be a positive integer, got {value!r}")
    return value


def _align(last_used: datetime, now: datetime) -> datetime:
    if (last_used.tzinfo is None) != (now.tzinfo is None):
        raise DataIntegrityError("Cannot compare naive and timezone-aware timestamps")
    if now.tzinfo is not None:
        return last_used.astimezone(now.tzinfo)
    return last_used


def window_elapsed(timeframe, last_used: datetime, now: datetime) -> bool:
    """Return True when the recurrence window containing ``last_used`` is over at ``now``."""
    timeframe = coerce_timeframe(timeframe)
    last_used = _align(last_used, now)
    if timeframe is Timeframe.daily:
        return now.date() != last_used.date()
    if timeframe is Timeframe.weekly:
        # timedelta.days floors, so 6 days 23 hours is still 6.
        return (now - last_used).days >= 7
    return (now.year, now.month) != (last_used.year, last_used.month)


def is_allowed(template: TaskTemplate, user_id: str) -> bool:
    allowed = template.allowed_users or []
    return not allowed or user_id in allowed


def is_available(
    template: TaskTemplate,
    usage: Optional[TaskUsage],
    user_id: str,
    now: datetime,
) -> bool:
    if not is_allowed(template, user_id):
        logger.debug("%r hidden from %s (not in allowed users)", template.title, user_id)
        return False

    timeframe = coerce_timeframe(template.timeframe)
    frequency = coerce_frequency(template.frequency)

    if usage is None:
        logger.debug("%r available to %s (no usage record)", template.title, user_id)
        return True

    if usage.usage_count < frequency:
        logger.debug(
            "%r available to %s (under limit %d/%d)",
            template.title, user_id, usage.usage_count, frequency,
        )
        return True

    if window_elapsed(timeframe, usage.last_used_date, now):
        logger.debug("%r available to %s (%s window reset)", template.title, user_id, timeframe.value)
        return True

    logger.debug(
        "%r unavailable to %s (limit reached %d/%d)",
        template.title, user_id, usage.usage_count, frequency,
    )
    return False


def available_templates(
    templates: Iterable[TaskTemplate],
    usage: "UsageLedger",
    user_id: str,
    now: datetime,
) -> list[TaskTemplate]:
    """Templates ``user_id`` may select at ``now``, in catalog order.

    Raises DataIntegrityError when a template carries an unknown timeframe or
    a non-positive frequency; such a template is never silently skipped.
    """
    return [
        template
        for template in templates
        if is_available(template, usage.get(key_of(template), user_id), user_id, now)
    ]
