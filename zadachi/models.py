from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class TaskCategory(str, Enum):
    exercise = "exercise"
    water = "water"
    cleaning = "cleaning"
    home = "home"
    family = "family"
    creativity = "creativity"
    meditation = "meditation"
    general = "general"
    chill = "chill"
    outdoors = "outdoors"
    unknown = "unknown"


class Timeframe(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class PointTransactionType(str, Enum):
    earn = "earn"
    spend = "spend"
    adjust = "adjust"


# Allowed completions per timeframe window.
FREQUENCY_CHOICES = (1, 2, 3, 5, 10)


def enum_value(value):
    return value.value if isinstance(value, Enum) else value


class Member(SQLModel, table=True):
    id: str = Field(primary_key=True)
    first_name: str
    last_name: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class TaskTemplate(SQLModel, table=True):
    # Identity is the (title, category) pair; there is no surrogate key.
    title: str = Field(primary_key=True)
    category: TaskCategory = Field(primary_key=True)
    points: int
    timeframe: Timeframe = Field(default=Timeframe.daily)
    frequency: int = Field(default=1)
    allowed_users: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    position: int = Field(default=0)


class TaskUsage(SQLModel, table=True):
    template_key: str = Field(primary_key=True)
    user_id: str = Field(primary_key=True)
    last_used_date: datetime
    usage_count: int = Field(default=0)
    timeframe: Timeframe
    version: int = Field(default=0)


class TaskInstance(SQLModel, table=True):
    id: str = Field(primary_key=True)
    title: str
    category: TaskCategory
    points: int
    user_id: str = Field(index=True)
    completed: bool = False
    assigned_at: datetime = Field(default_factory=datetime.utcnow)


class PointTransaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    amount: int
    transaction_type: PointTransactionType
    description: Optional[str] = None
    related_task_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


__all__ = [
    "FREQUENCY_CHOICES",
    "Member",
    "PointTransaction",
    "PointTransactionType",
    "TaskCategory",
    "TaskInstance",
    "TaskTemplate",
    "TaskUsage",
    "Timeframe",
    "enum_value",
]
