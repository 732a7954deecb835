import pytest

from zadachi.catalog import (
    PRESET_TEMPLATES,
    Catalog,
    filter_by_category,
    preset_templates,
    sort_templates,
)
from zadachi.errors import DataIntegrityError, DuplicateTemplateError, TemplateNotFoundError
from zadachi.models import TaskCategory, TaskTemplate, Timeframe


def make_template(title="Dishes", category="home", points=100, timeframe="daily", frequency=1):
    return TaskTemplate(
        title=title,
        category=category,
        points=points,
        timeframe=timeframe,
        frequency=frequency,
        allowed_users=[],
    )


def test_upsert_appends_then_replaces_in_place():
    catalog = Catalog()
    catalog.upsert_template(make_template("Dishes"))
    catalog.upsert_template(make_template("Laundry"))
    catalog.upsert_template(make_template("Dishes", points=250))

    assert len(catalog) == 2
    assert [t.title for t in catalog] == ["Dishes", "Laundry"]
    assert catalog.get("dishes-home").points == 250


def test_upsert_normalises_enums():
    template = Catalog().upsert_template(make_template(category="cleaning", timeframe="weekly"))
    assert template.category is TaskCategory.cleaning
    assert template.timeframe is Timeframe.weekly


def test_same_title_in_different_categories_are_distinct():
    catalog = Catalog()
    catalog.upsert_template(make_template("Tidy", category="home"))
    catalog.upsert_template(make_template("Tidy", category="cleaning"))
    assert len(catalog) == 2


def test_add_template_is_create_only():
    catalog = Catalog()
    catalog.add_template(make_template())
    with pytest.raises(DuplicateTemplateError):
        catalog.add_template(make_template(points=5))
    assert catalog.get("dishes-home").points == 100


@pytest.mark.parametrize(
    "overrides",
    [
        {"title": "  "},
        {"category": "gardening"},
        {"points": 0},
        {"points": -10},
        {"timeframe": "hourly"},
        {"frequency": 4},
        {"frequency": 0},
    ],
)
def test_invalid_templates_are_rejected(overrides):
    with pytest.raises(DataIntegrityError):
        Catalog().upsert_template(make_template(**overrides))


def test_remove_template():
    catalog = Catalog([make_template()])
    removed = catalog.remove_template("dishes-home")
    assert removed.title == "Dishes"
    assert len(catalog) == 0
    with pytest.raises(TemplateNotFoundError):
        catalog.remove_template("dishes-home")


def test_edit_changes_fields_in_place():
    catalog = Catalog()
    catalog.upsert_template(make_template("Dishes"))
    catalog.upsert_template(make_template("Laundry"))
    catalog.edit_template("dishes-home", points=300, frequency=2)
    assert catalog.get("dishes-home").points == 300
    assert catalog.get("dishes-home").frequency == 2


def test_rename_rekeys_at_same_position():
    catalog = Catalog()
    for title in ("A", "B", "C"):
        catalog.upsert_template(make_template(title))
    catalog.edit_template("b-home", title="Bee", category="family")
    assert catalog.keys() == ["a-home", "bee-family", "c-home"]
    assert "b-home" not in catalog


def test_rename_onto_existing_key_is_rejected():
    catalog = Catalog([make_template("A"), make_template("B")])
    with pytest.raises(DuplicateTemplateError):
        catalog.edit_template("a-home", title="B")
    assert catalog.keys() == ["a-home", "b-home"]


def test_edit_rejects_unknown_fields():
    catalog = Catalog([make_template()])
    with pytest.raises(DataIntegrityError):
        catalog.edit_template("dishes-home", colour="red")


def test_clear():
    catalog = Catalog([make_template("A"), make_template("B")])
    catalog.clear()
    assert len(catalog) == 0


def test_filter_by_category():
    templates = [make_template("A", category="home"), make_template("B", category="water")]
    assert [t.title for t in filter_by_category(templates, "water")] == ["B"]
    assert len(filter_by_category(templates, None)) == 2


def test_sort_templates():
    templates = [
        make_template("b", points=10, timeframe="monthly", frequency=2),
        make_template("A", points=30, timeframe="daily", frequency=1),
        make_template("c", points=20, timeframe="weekly", frequency=5),
    ]
    assert [t.title for t in sort_templates(templates)] == ["A", "b", "c"]
    assert [t.points for t in sort_templates(templates, "points", "desc")] == [30, 20, 10]
    assert [t.title for t in sort_templates(templates, "timeframe")] == ["A", "c", "b"]
    assert [t.frequency for t in sort_templates(templates, "frequency")] == [1, 2, 5]
    with pytest.raises(ValueError):
        sort_templates(templates, "colour")


def test_presets_are_valid_and_unique():
    presets = preset_templates()
    assert len(presets) == len(PRESET_TEMPLATES)
    catalog = Catalog()
    for template in presets:
        catalog.add_template(template)
    assert len(catalog) == len(presets)
