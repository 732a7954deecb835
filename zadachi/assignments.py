import logging
import secrets
from datetime import datetime
from typing import Iterable, Iterator, Optional, Protocol

from .errors import InstanceNotFoundError
from .models import TaskInstance, TaskTemplate

logger = logging.getLogger(__name__)


class PointsLedger(Protocol):
    """Member point balances. Implemented in memory here and over SQL in ``store``."""

    def balance(self, user_id: str) -> int: ...

    def credit(
        self,
        user_id: str,
        points: int,
        description: Optional[str] = None,
        related_task_id: Optional[str] = None,
    ) -> None: ...

    def debit(self, user_id: str, points: int, description: Optional[str] = None) -> None: ...


class UserDirectory(Protocol):
    def display_name(self, user_id: str) -> str: ...

    def all_user_ids(self) -> list[str]: ...


class InMemoryPointsLedger:
    def __init__(self, balances: Optional[dict[str, int]] = None) -> None:
        self._balances: dict[str, int] = dict(balances or {})
        self.entries: list[tuple[str, int, Optional[str]]] = []

    def balance(self, user_id: str) -> int:
        return self._balances.get(user_id, 0)

    def credit(self, user_id, points, description=None, related_task_id=None) -> None:
        self._balances[user_id] = self.balance(user_id) + points
        self.entries.append((user_id, points, description))

    def debit(self, user_id, points, description=None) -> None:
        self._balances[user_id] = self.balance(user_id) - abs(points)
        self.entries.append((user_id, -abs(points), description))


class InMemoryUserDirectory:
    def __init__(self, names: Optional[dict[str, str]] = None) -> None:
        self._names = dict(names or {})

    def display_name(self, user_id: str) -> str:
        return self._names[user_id]

    def all_user_ids(self) -> list[str]:
        return list(self._names)


def new_instance_id() -> str:
    return f"task-{secrets.token_hex(6)}"


class AssignmentLedger:
    """Task instances currently assigned to members and not yet completed or removed."""

    def __init__(self, instances: Iterable[TaskInstance] = ()) -> None:
        self._instances: dict[str, TaskInstance] = {i.id: i for i in instances}

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> Iterator[TaskInstance]:
        return iter(list(self._instances.values()))

    def assign(self, template: TaskTemplate, user_id: str, now: datetime) -> TaskInstance:
        instance = TaskInstance(
            id=new_instance_id(),
            title=template.title,
            category=template.category,
            points=template.points,
            user_id=user_id,
            completed=False,
            assigned_at=now,
        )
        self._instances[instance.id] = instance
        return instance

    def get(self, instance_id: str) -> TaskInstance:
        instance = self._instances.get(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance

    def pop(self, instance_id: str) -> TaskInstance:
        instance = self.get(instance_id)
        del self._instances[instance_id]
        return instance

    def for_user(self, user_id: str) -> list[TaskInstance]:
        return sorted(
            (i for i in self._instances.values() if i.user_id == user_id),
            key=lambda i: i.assigned_at,
        )

    def clear(self) -> None:
        logger.info("Clearing %d assigned tasks", len(self._instances))
        self._instances.clear()
