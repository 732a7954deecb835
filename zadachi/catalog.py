import logging
from typing import Iterable, Iterator

from .engine import coerce_timeframe, key_of, template_key
from .errors import DataIntegrityError, DuplicateTemplateError, TemplateNotFoundError
from .models import FREQUENCY_CHOICES, TaskCategory, TaskTemplate, Timeframe, enum_value

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("title", "category", "points", "frequency", "timeframe")
_TIMEFRAME_ORDER = {Timeframe.daily: 0, Timeframe.weekly: 1, Timeframe.monthly: 2}

EDITABLE_FIELDS = ("title", "category", "points", "timeframe", "frequency", "allowed_users")


def validate_template(template: TaskTemplate) -> TaskTemplate:
    """Check a template's fields and normalise category/timeframe to enums."""
    if not isinstance(template.title, str) or not template.title.strip():
        raise DataIntegrityError("Template title is required")
    try:
        template.category = TaskCategory(enum_value(template.category))
    except ValueError:
        raise DataIntegrityError(f"Unknown category: {template.category!r}") from None
    if isinstance(template.points, bool) or not isinstance(template.points, int) or template.points <= 0:
        raise DataIntegrityError(f"Points must be a positive integer, got {template.points!r}")
    template.timeframe = coerce_timeframe(template.timeframe)
    if template.frequency not in FREQUENCY_CHOICES or isinstance(template.frequency, bool):
        raise DataIntegrityError(
            f"Frequency must be one of {FREQUENCY_CHOICES}, got {template.frequency!r}"
        )
    template.allowed_users = list(dict.fromkeys(template.allowed_users or []))
    return template


class Catalog:
    """The household's task templates, keyed by (title, category), in insertion order."""

    def __init__(self, templates: Iterable[TaskTemplate] = ()) -> None:
        self._templates: dict[str, TaskTemplate] = {}
        for template in templates:
            self._templates[key_of(template)] = template

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[TaskTemplate]:
        return iter(list(self._templates.values()))

    def __contains__(self, key: str) -> bool:
        return key in self._templates

    def keys(self) -> list[str]:
        return list(self._templates)

    def get(self, key: str) -> TaskTemplate:
        template = self._templates.get(key)
        if template is None:
            raise TemplateNotFoundError(key)
        return template

    def add_template(self, template: TaskTemplate) -> TaskTemplate:
        """Create-only insert; an existing key is an error."""
        validate_template(template)
        key = key_of(template)
        if key in self._templates:
            raise DuplicateTemplateError(key)
        self._templates[key] = template
        logger.info("Added template %s", key)
        return template

    def upsert_template(self, template: TaskTemplate) -> TaskTemplate:
        """Replace the template with the same key in place, or append it."""
        validate_template(template)
        key = key_of(template)
        existed = key in self._templates
        # Re-assigning an existing dict key keeps its position.
        self._templates[key] = template
        logger.info("%s template %s", "Replaced" if existed else "Added", key)
        return template

    def edit_template(self, key: str, **changes) -> TaskTemplate:
        """Edit fields of an existing template.

        Changing title or category re-keys the template at the same position.
        Usage recorded under the old key is left behind.
        """
        current = self.get(key)
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise DataIntegrityError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        values = {field: getattr(current, field) for field in EDITABLE_FIELDS}
        values.update(changes)
        updated = validate_template(TaskTemplate(**values))
        new_key = key_of(updated)
        if new_key != key and new_key in self._templates:
            raise DuplicateTemplateError(new_key)
        self._templates = {
            (new_key if k == key else k): (updated if k == key else t)
            for k, t in self._templates.items()
        }
        if new_key != key:
            logger.info("Renamed template %s -> %s", key, new_key)
        return updated

    def remove_template(self, key: str) -> TaskTemplate:
        template = self._templates.pop(key, None)
        if template is None:
            raise TemplateNotFoundError(key)
        logger.info("Removed template %s", key)
        return template

    def clear(self) -> None:
        logger.info("Clearing %d templates", len(self._templates))
        self._templates.clear()


def filter_by_category(templates: Iterable[TaskTemplate], category=None) -> list[TaskTemplate]:
    if not category:
        return list(templates)
    wanted = enum_value(category)
    return [t for t in templates if enum_value(t.category) == wanted]


def sort_templates(
    templates: Iterable[TaskTemplate], sort: str = "title", direction: str = "asc"
) -> list[TaskTemplate]:
    if sort not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort option: {sort}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unknown sort direction: {direction}")

    def sort_key(template: TaskTemplate):
        if sort == "title":
            return template.title.lower()
        if sort == "category":
            return enum_value(template.category)
        if sort == "timeframe":
            return _TIMEFRAME_ORDER[coerce_timeframe(template.timeframe)]
        return getattr(template, sort)

    return sorted(templates, key=sort_key, reverse=direction == "desc")


PRESET_TEMPLATES = [
    {"title": "Clear your stuff from kitchen table", "category": "cleaning", "points": 300, "timeframe": "weekly", "frequency": 1},
    {"title": "Pick up all trash in a room", "category": "cleaning", "points": 450, "timeframe": "daily", "frequency": 1},
    {"title": "Sweep / Vacuum kitchen floor", "category": "cleaning", "points": 750, "timeframe": "daily", "frequency": 1},
    {"title": "Put away clean laundry", "category": "cleaning", "points": 1200, "timeframe": "weekly", "frequency": 2},
    {"title": "Practice guitar for 15 minutes", "category": "creativity", "points": 120, "timeframe": "weekly", "frequency": 1},
    {"title": "Draw something with chalk outside", "category": "creativity", "points": 60, "timeframe": "weekly", "frequency": 2},
    {"title": "Make a healthy snack", "category": "home", "points": 300, "timeframe": "weekly", "frequency": 2},
    {"title": "Help prepare a meal", "category": "home", "points": 500, "timeframe": "weekly", "frequency": 1},
    {"title": "Dance for 10 minutes", "category": "exercise", "points": 270, "timeframe": "daily", "frequency": 1},
    {"title": "Stretch for 5 minutes", "category": "exercise", "points": 180, "timeframe": "daily", "frequency": 1},
    {"title": "Ride your bike", "category": "outdoors", "points": 320, "timeframe": "daily", "frequency": 2},
    {"title": "Go for a nature walk", "category": "outdoors", "points": 400, "timeframe": "daily", "frequency": 2},
    {"title": "Do a random act of kindness", "category": "general", "points": 300, "timeframe": "daily", "frequency": 2},
    {"title": "Write a letter to a grandparent", "category": "family", "points": 280, "timeframe": "weekly", "frequency": 1},
    {"title": "Play a board game", "category": "chill", "points": 30, "timeframe": "weekly", "frequency": 2},
    {"title": "Drink a glass of water", "category": "water", "points": 50, "timeframe": "daily", "frequency": 5},
    {"title": "Meditate for 10 minutes", "category": "meditation", "points": 100, "timeframe": "daily", "frequency": 1},
    {"title": "Deep clean your room", "category": "cleaning", "points": 1500, "timeframe": "monthly", "frequency": 1},
]


def preset_templates() -> list[TaskTemplate]:
    return [validate_template(TaskTemplate(**preset)) for preset in PRESET_TEMPLATES]


__all__ = [
    "Catalog",
    "PRESET_TEMPLATES",
    "SORT_OPTIONS",
    "filter_by_category",
    "preset_templates",
    "sort_templates",
    "template_key",
    "validate_template",
]
