"""CSV import/export for the template catalog.

Header-first, comma-delimited, columns ``Title, Points, Category, Users,
Timeframe, Frequency`` (headers matched case-insensitively). ``Users`` is
either ``All`` or member names separated by ``|``.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .assignments import UserDirectory
from .catalog import Catalog
from .engine import key_of
from .errors import DataIntegrityError
from .models import TaskTemplate, enum_value

logger = logging.getLogger(__name__)

HEADERS = ("Title", "Points", "Category", "Users", "Timeframe", "Frequency")
REQUIRED_COLUMNS = ("title", "points", "category", "timeframe", "frequency")
ALL_USERS = "All"

EXAMPLE_ROWS = [
    ("Go for a run", "300", "exercise", "All", "daily", "1"),
    ("Drink 8 glasses of water", "100", "water", "All", "daily", "3"),
    ("Clean bedroom", "250", "cleaning", "All", "daily", "2"),
    ("Fix something around the house", "200", "home", "All", "weekly", "2"),
    ("Call grandparents", "150", "family", "User One | User Two", "weekly", "1"),
    ("Practice piano", "300", "creativity", "User One", "weekly", "3"),
    ("Meditate for 10 minutes", "100", "meditation", "All", "daily", "5"),
    ("Complete homework assignment", "250", "general", "All", "daily", "3"),
    ("Read a book for fun", "200", "chill", "All", "daily", "2"),
    ("Play outside for 30 minutes", "150", "outdoors", "All", "daily", "3"),
]


@dataclass
class CsvTaskRow:
    line: int
    title: str
    points: int
    category: str
    users: str
    timeframe: str
    frequency: int


@dataclass
class ImportResult:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def skip(self, line: int, reason: str) -> None:
        self.skipped += 1
        self.errors.append(f"row {line}: {reason}")
        logger.warning("Skipping CSV row %d: %s", line, reason)


def _write(rows: Iterable[Iterable[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(HEADERS)
    writer.writerows(rows)
    return buffer.getvalue()


def generate_csv_template() -> str:
    return _write(EXAMPLE_ROWS)


def parse_csv(text: str, result: Optional[ImportResult] = None) -> tuple[list[CsvTaskRow], ImportResult]:
    """Parse CSV text into typed rows. Malformed rows are counted as skipped."""
    result = result or ImportResult()
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff").strip()))
    header = next(reader, None)
    if not header:
        return [], result
    columns = [h.strip().lower() for h in header]

    rows: list[CsvTaskRow] = []
    for line, values in enumerate(reader, start=2):
        if not any(v.strip() for v in values):
            continue
        if len(values) != len(columns):
            result.skip(line, f"expected {len(columns)} columns, got {len(values)}")
            continue
        record = {column: value.strip() for column, value in zip(columns, values)}
        missing = [c for c in REQUIRED_COLUMNS if not record.get(c)]
        if missing:
            result.skip(line, f"missing {', '.join(missing)}")
            continue
        try:
            points = int(record["points"])
            frequency = int(record["frequency"])
        except ValueError:
            result.skip(line, "points and frequency must be whole numbers")
            continue
        rows.append(
            CsvTaskRow(
                line=line,
                title=record["title"],
                points=points,
                category=record["category"].lower(),
                users=record.get("users") or ALL_USERS,
                timeframe=record["timeframe"].lower(),
                frequency=frequency,
            )
        )
    return rows, result


def resolve_users(users: str, directory: UserDirectory) -> Optional[list[str]]:
    """Map a ``Users`` cell to member ids. Returns None if any name is unknown."""
    if users.strip().lower() == ALL_USERS.lower():
        return []
    by_name: dict[str, str] = {}
    for user_id in directory.all_user_ids():
        full = directory.display_name(user_id).strip().lower()
        by_name.setdefault(full, user_id)
        first = full.split(" ")[0] if full else ""
        by_name.setdefault(first, user_id)
    resolved: list[str] = []
    for name in (n.strip().lower() for n in users.split("|")):
        if not name:
            continue
        user_id = by_name.get(name)
        if user_id is None:
            return None
        resolved.append(user_id)
    return resolved


def import_csv(text: str, catalog: Catalog, directory: UserDirectory) -> ImportResult:
    """Upsert every well-formed row into ``catalog``; bad rows are skipped, never fatal."""
    rows, result = parse_csv(text)
    for row in rows:
        allowed = resolve_users(row.users, directory)
        if allowed is None:
            result.skip(row.line, f"unknown user in {row.users!r}")
            continue
        template = TaskTemplate(
            title=row.title,
            category=row.category,
            points=row.points,
            timeframe=row.timeframe,
            frequency=row.frequency,
            allowed_users=allowed,
        )
        try:
            catalog.upsert_template(template)
        except DataIntegrityError as exc:
            result.skip(row.line, str(exc))
            continue
        result.imported += 1
    logger.info("CSV import: %d imported, %d skipped", result.imported, result.skipped)
    return result


def export_csv(templates: Iterable[TaskTemplate], directory: UserDirectory) -> str:
    """Write ``templates`` as CSV.

    Members who no longer exist are dropped from the ``Users`` cell. A
    restricted template with none of its members left is not exported, since
    an empty cell would read back as ``All``.
    """
    known = set(directory.all_user_ids())
    rows = []
    for template in templates:
        restricted = template.allowed_users or []
        allowed = [u for u in restricted if u in known]
        if restricted and not allowed:
            logger.warning("Not exporting %s: none of its members exist", key_of(template))
            continue
        users = " | ".join(directory.display_name(u) for u in allowed) if allowed else ALL_USERS
        rows.append(
            (
                template.title,
                str(template.points),
                enum_value(template.category),
                users,
                enum_value(template.timeframe),
                str(template.frequency),
            )
        )
    return _write(rows)
