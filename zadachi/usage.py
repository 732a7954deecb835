import logging
from datetime import datetime
from typing import Iterable, Iterator, Optional

from .engine import coerce_timeframe, key_of, window_elapsed
from .models import TaskTemplate, TaskUsage

logger = logging.getLogger(__name__)


class UsageLedger:
    """Per (template key, member) recurrence counters.

    ``record_usage`` is the only writer. Records are never removed one at a
    time: they survive template deletion and only ``reset`` drops them.
    """

    def __init__(self, records: Iterable[TaskUsage] = ()) -> None:
        self._records: dict[tuple[str, str], TaskUsage] = {}
        for record in records:
            self._records[(record.template_key, record.user_id)] = record

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TaskUsage]:
        return iter(list(self._records.values()))

    def get(self, key: str, user_id: str) -> Optional[TaskUsage]:
        return self._records.get((key, user_id))

    def for_user(self, user_id: str) -> list[TaskUsage]:
        return [r for r in self._records.values() if r.user_id == user_id]

    def record_usage(self, template: TaskTemplate, user_id: str, now: datetime) -> TaskUsage:
        """Count one accepted assignment of ``template`` by ``user_id``.

        When the template's window has rolled over since the last use the
        counter restarts at 1 instead of climbing past the quota.
        """
        key = key_of(template)
        timeframe = coerce_timeframe(template.timeframe)
        record = self._records.get((key, user_id))
        if record is None:
            record = TaskUsage(
                template_key=key,
                user_id=user_id,
                last_used_date=now,
                usage_count=1,
                timeframe=timeframe,
                version=1,
            )
            self._records[(key, user_id)] = record
        else:
            if window_elapsed(timeframe, record.last_used_date, now):
                record.usage_count = 1
            else:
                record.usage_count += 1
            record.last_used_date = now
            record.timeframe = timeframe
            record.version += 1
        logger.debug("usage %s/%s -> %d (v%d)", key, user_id, record.usage_count, record.version)
        return record

    def reset(self) -> None:
        logger.info("Clearing %d usage records", len(self._records))
        self._records.clear()
