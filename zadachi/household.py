"""Household aggregate: the catalog, usage and assignment ledgers together.

Every state change a member can make goes through here, so the rules that
span more than one store stay in one place:

* accepting a template consumes quota immediately; removing the instance
  later never gives it back,
* completing credits points exactly once and deletes the instance,
* the reset operations each leave a different subset of state untouched.

=======================  =========  =====  ===========
operation                catalog    usage  assignments
=======================  =========  =====  ===========
remove_all_assigned      kept       kept   cleared
reset_usage              kept       clear  kept
clear_all_templates      cleared    kept   kept
reset_all                kept       clear  cleared
=======================  =========  =====  ===========
"""

import logging
from datetime import datetime
from typing import Optional

from .assignments import AssignmentLedger, InMemoryPointsLedger, PointsLedger
from .catalog import Catalog
from .engine import available_templates, is_available
from .errors import InsufficientPointsError, TemplateUnavailableError
from .models import TaskInstance, TaskTemplate, TaskUsage
from .usage import UsageLedger

logger = logging.getLogger(__name__)

RESET_KINDS = ("assigned", "usage", "templates", "all")


class Household:
    def __init__(
        self,
        catalog: Optional[Catalog] = None,
        usage: Optional[UsageLedger] = None,
        assignments: Optional[AssignmentLedger] = None,
        points: Optional[PointsLedger] = None,
    ) -> None:
        self.catalog = catalog if catalog is not None else Catalog()
        self.usage = usage if usage is not None else UsageLedger()
        self.assignments = assignments if assignments is not None else AssignmentLedger()
        self.points = points if points is not None else InMemoryPointsLedger()

    def available_templates(self, user_id: str, now: datetime) -> list[TaskTemplate]:
        return available_templates(self.catalog, self.usage, user_id, now)

    def accept(self, key: str, user_id: str, now: datetime) -> tuple[TaskInstance, TaskUsage]:
        template = self.catalog.get(key)
        if not is_available(template, self.usage.get(key, user_id), user_id, now):
            raise TemplateUnavailableError(key, user_id)
        record = self.usage.record_usage(template, user_id, now)
        instance = self.assignments.assign(template, user_id, now)
        logger.info("%s accepted %s as %s", user_id, key, instance.id)
        return instance, record

    def complete(self, instance_id: str) -> int:
        instance = self.assignments.get(instance_id)
        self.points.credit(
            instance.user_id,
            instance.points,
            description=f"Completed {instance.title}",
            related_task_id=instance.id,
        )
        self.assignments.pop(instance_id)
        instance.completed = True
        logger.info("%s completed %s (+%d)", instance.user_id, instance.id, instance.points)
        return instance.points

    def remove(self, instance_id: str) -> TaskInstance:
        instance = self.assignments.pop(instance_id)
        logger.info("Removed %s from %s without credit", instance.id, instance.user_id)
        return instance

    def redeem(self, user_id: str, points: int) -> int:
        if points <= 0:
            raise ValueError("Points to redeem must be positive")
        balance = self.points.balance(user_id)
        if points > balance:
            raise InsufficientPointsError(user_id, balance, points)
        self.points.debit(user_id, points, description="Points redeemed")
        logger.info("%s redeemed %d points", user_id, points)
        return balance - points

    def remove_all_assigned_tasks(self) -> None:
        self.assignments.clear()

    def reset_usage(self) -> None:
        self.usage.reset()

    def clear_all_templates(self) -> None:
        self.catalog.clear()

    def reset_all(self) -> None:
        self.assignments.clear()
        self.usage.reset()

    def reset(self, kind: str) -> None:
        if kind == "assigned":
            self.remove_all_assigned_tasks()
        elif kind == "usage":
            self.reset_usage()
        elif kind == "templates":
            self.clear_all_templates()
        elif kind == "all":
            self.reset_all()
        else:
            raise ValueError(f"Unknown reset kind: {kind}")
