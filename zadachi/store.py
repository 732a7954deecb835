"""SQLModel binding for the household stores.

The domain objects in ``catalog``, ``usage``, ``assignments`` and
``household`` never touch a session. This module loads them (load-all),
writes them back (save-all, as an atomic replace inside one transaction)
and guards the writes that can race between family members' clients:

* usage upserts are version-checked; a lost race reloads and re-applies the
  accept up to ``USAGE_UPSERT_RETRIES`` times,
* instance inserts and deletes are targeted row writes. Complete and remove
  delete the row before anything else and fail if it was already gone, so
  points are credited once,
* redemptions re-read the balance after the debit and roll back below zero,
* creating and deleting a template touch only that row.

Template edits, CSV imports and resets replace the whole catalog: when two
clients do those at once, the last commit wins.
"""

import logging
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, insert, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .assignments import AssignmentLedger
from .catalog import Catalog, preset_templates
from .engine import key_of
from .errors import (
    ConcurrentUpdateError,
    DuplicateTemplateError,
    InstanceNotFoundError,
    InsufficientPointsError,
    MemberNotFoundError,
    TemplateNotFoundError,
)
from .household import Household
from .models import (
    Member,
    PointTransaction,
    PointTransactionType,
    TaskInstance,
    TaskTemplate,
    TaskUsage,
)
from .usage import UsageLedger

logger = logging.getLogger(__name__)

USAGE_UPSERT_RETRIES = 3


def _copy(row):
    return type(row)(**row.model_dump())


def _load(session: Session, statement) -> list:
    rows = session.exec(statement).all()
    # Detach so in-memory edits are never autoflushed behind our back.
    for row in rows:
        session.expunge(row)
    return list(rows)


class SqlPointsLedger:
    def __init__(self, session: Session) -> None:
        self.session = session

    def balance(self, user_id: str) -> int:
        total = self.session.exec(
            select(func.coalesce(func.sum(PointTransaction.amount), 0)).where(
                PointTransaction.user_id == user_id
            )
        ).one()
        return int(total or 0)

    def balances(self) -> dict[str, int]:
        rows = self.session.exec(
            select(PointTransaction.user_id, func.coalesce(func.sum(PointTransaction.amount), 0))
            .group_by(PointTransaction.user_id)
        ).all()
        return {user_id: int(total) for user_id, total in rows}

    def _add(self, user_id, amount, transaction_type, description=None, related_task_id=None):
        self.session.add(
            PointTransaction(
                user_id=user_id,
                amount=amount,
                transaction_type=transaction_type,
                description=description,
                related_task_id=related_task_id,
            )
        )

    def credit(self, user_id, points, description=None, related_task_id=None) -> None:
        self._add(user_id, abs(points), PointTransactionType.earn, description, related_task_id)

    def debit(self, user_id, points, description=None) -> None:
        self._add(user_id, -abs(points), PointTransactionType.spend, description)

    def adjust(self, user_id, points, description=None) -> None:
        self._add(user_id, points, PointTransactionType.adjust, description)

    def history(self, user_id: str) -> list[PointTransaction]:
        return list(
            self.session.exec(
                select(PointTransaction)
                .where(PointTransaction.user_id == user_id)
                .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            ).all()
        )


class SqlUserDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: str) -> Member:
        member = self.session.get(Member, user_id)
        if member is None:
            raise MemberNotFoundError(user_id)
        return member

    def display_name(self, user_id: str) -> str:
        return self.get(user_id).display_name

    def all_user_ids(self) -> list[str]:
        return list(self.session.exec(select(Member.id).order_by(Member.created_at, Member.id)).all())

    def members(self) -> list[Member]:
        return list(self.session.exec(select(Member).order_by(Member.created_at, Member.id)).all())


def create_member(session: Session, first_name: str, last_name: str = "", starting_points: int = 0) -> Member:
    first_name = first_name.strip()
    if not first_name:
        raise ValueError("First name is required")
    member = Member(id=f"user-{secrets.token_hex(4)}", first_name=first_name, last_name=last_name.strip())
    session.add(member)
    if starting_points:
        SqlPointsLedger(session).adjust(member.id, starting_points, description="Starting points")
    session.commit()
    session.refresh(member)
    logger.info("Created member %s (%s)", member.id, member.display_name)
    return member


def delete_member(session: Session, user_id: str) -> None:
    directory = SqlUserDirectory(session)
    member = directory.get(user_id)
    if len(directory.all_user_ids()) <= 1:
        raise ValueError("Cannot delete the last member")
    session.delete(member)
    session.commit()
    logger.info("Deleted member %s", user_id)


def load_catalog(session: Session) -> Catalog:
    return Catalog(_load(session, select(TaskTemplate).order_by(TaskTemplate.position)))


def load_usage(session: Session) -> UsageLedger:
    return UsageLedger(_load(session, select(TaskUsage)))


def load_assignments(session: Session) -> AssignmentLedger:
    return AssignmentLedger(_load(session, select(TaskInstance).order_by(TaskInstance.assigned_at)))


def load_household(session: Session) -> Household:
    return Household(
        catalog=load_catalog(session),
        usage=load_usage(session),
        assignments=load_assignments(session),
        points=SqlPointsLedger(session),
    )


def save_household(
    session: Session,
    household: Household,
    *,
    catalog: bool = False,
    usage: bool = False,
    assignments: bool = False,
) -> None:
    """Replace the selected stores wholesale in a single commit."""
    if catalog:
        session.execute(delete(TaskTemplate))
        for position, template in enumerate(household.catalog):
            row = _copy(template)
            row.position = position
            session.add(row)
    if usage:
        session.execute(delete(TaskUsage))
        for record in household.usage:
            session.add(_copy(record))
    if assignments:
        session.execute(delete(TaskInstance))
        for instance in household.assignments:
            session.add(_copy(instance))
    session.commit()


def upsert_usage(session: Session, record: TaskUsage) -> bool:
    """Write ``record`` only if nobody else has bumped it since we loaded it.

    Returns False (after rolling back) when the stored version moved on.
    """
    if record.version == 1:
        try:
            session.execute(insert(TaskUsage).values(**record.model_dump()))
        except IntegrityError:
            session.rollback()
            return False
        return True
    result = session.execute(
        update(TaskUsage)
        .where(
            TaskUsage.template_key == record.template_key,
            TaskUsage.user_id == record.user_id,
            TaskUsage.version == record.version - 1,
        )
        .values(
            usage_count=record.usage_count,
            last_used_date=record.last_used_date,
            timeframe=record.timeframe,
            version=record.version,
        ),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        session.rollback()
        return False
    return True


def accept_task(session: Session, key: str, user_id: str, now: Optional[datetime] = None) -> TaskInstance:
    now = now or datetime.now()
    for attempt in range(1, USAGE_UPSERT_RETRIES + 1):
        household = load_household(session)
        instance, record = household.accept(key, user_id, now)
        if upsert_usage(session, record):
            session.add(_copy(instance))
            session.commit()
            return instance
        logger.warning("Usage for %s/%s changed concurrently (attempt %d)", key, user_id, attempt)
    raise ConcurrentUpdateError(f"Could not record usage for {key}/{user_id}")


def _delete_instance(session: Session, instance_id: str) -> None:
    result = session.execute(
        delete(TaskInstance).where(TaskInstance.id == instance_id),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        session.rollback()
        raise InstanceNotFoundError(instance_id)


def complete_task(session: Session, instance_id: str) -> int:
    household = load_household(session)
    # The delete claims the instance; only the client whose delete hit the row credits.
    _delete_instance(session, instance_id)
    points = household.complete(instance_id)
    session.commit()
    return points


def remove_task(session: Session, instance_id: str) -> TaskInstance:
    household = load_household(session)
    _delete_instance(session, instance_id)
    instance = household.remove(instance_id)
    session.commit()
    return instance


def redeem_points(session: Session, user_id: str, points: int) -> int:
    """Debit ``points`` and return the new balance.

    The balance is re-read after the debit is flushed, so two redemptions
    racing on the same balance cannot both commit.
    """
    ledger = SqlPointsLedger(session)
    Household(points=ledger).redeem(user_id, points)
    session.flush()
    balance = ledger.balance(user_id)
    if balance < 0:
        session.rollback()
        raise InsufficientPointsError(user_id, balance + points, points)
    session.commit()
    return balance


def add_template(session: Session, template: TaskTemplate) -> TaskTemplate:
    """Insert one template row at the end of the catalog."""
    load_catalog(session).add_template(template)
    last = session.exec(select(func.max(TaskTemplate.position))).one()
    row = _copy(template)
    row.position = 0 if last is None else last + 1
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateTemplateError(key_of(template)) from None
    return template


def delete_template(session: Session, key: str) -> TaskTemplate:
    template = load_catalog(session).remove_template(key)
    result = session.execute(
        delete(TaskTemplate).where(
            TaskTemplate.title == template.title,
            TaskTemplate.category == template.category,
        ),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        session.rollback()
        raise TemplateNotFoundError(key)
    session.commit()
    return template


def apply_reset(session: Session, kind: str) -> Household:
    household = load_household(session)
    household.reset(kind)
    save_household(
        session,
        household,
        catalog=kind == "templates",
        usage=kind in ("usage", "all"),
        assignments=kind in ("assigned", "all"),
    )
    logger.info("Applied %s reset", kind)
    return household


def seed_catalog(session: Session) -> int:
    existing = session.exec(select(func.count()).select_from(TaskTemplate)).one()
    if existing:
        return 0
    presets = preset_templates()
    for position, template in enumerate(presets):
        template.position = position
        session.add(template)
    session.commit()
    logger.info("Seeded %d preset templates", len(presets))
    return len(presets)
