from datetime import datetime, timedelta

import pytest

from zadachi.assignments import InMemoryPointsLedger
from zadachi.catalog import Catalog
from zadachi.errors import (
    InstanceNotFoundError,
    InsufficientPointsError,
    TemplateNotFoundError,
    TemplateUnavailableError,
)
from zadachi.household import Household
from zadachi.models import TaskTemplate


def make_template(title="Dishes", category="home", points=100, timeframe="daily", frequency=1, allowed_users=None):
    return TaskTemplate(
        title=title,
        category=category,
        points=points,
        timeframe=timeframe,
        frequency=frequency,
        allowed_users=allowed_users or [],
    )


def make_household(*templates, balances=None):
    catalog = Catalog()
    for template in templates or (make_template(),):
        catalog.add_template(template)
    return Household(catalog=catalog, points=InMemoryPointsLedger(balances))


NOW = datetime(2024, 3, 1, 9, 0)


def test_daily_dishes_walkthrough():
    household = make_household(make_template("Dishes", "home", points=100, timeframe="daily", frequency=1))
    assert [t.title for t in household.available_templates("alice", NOW)] == ["Dishes"]

    instance, record = household.accept("dishes-home", "alice", NOW)
    assert instance.user_id == "alice"
    assert instance.points == 100
    assert instance.completed is False
    assert record.usage_count == 1

    later = NOW + timedelta(hours=3)
    assert household.available_templates("alice", later) == []

    assert household.complete(instance.id) == 100
    assert household.points.balance("alice") == 100
    assert household.available_templates("alice", later) == []

    tomorrow = datetime(2024, 3, 2, 7, 0)
    assert [t.title for t in household.available_templates("alice", tomorrow)] == ["Dishes"]


def test_accept_unavailable_template_is_rejected():
    household = make_household()
    household.accept("dishes-home", "alice", NOW)
    with pytest.raises(TemplateUnavailableError):
        household.accept("dishes-home", "alice", NOW + timedelta(minutes=1))
    assert len(household.assignments) == 1


def test_accept_respects_allowed_users():
    household = make_household(make_template(allowed_users=["alice"]))
    with pytest.raises(TemplateUnavailableError):
        household.accept("dishes-home", "bob", NOW)
    assert len(household.usage) == 0


def test_accept_unknown_template():
    household = make_household()
    with pytest.raises(TemplateNotFoundError):
        household.accept("laundry-home", "alice", NOW)


def test_instance_is_a_snapshot_of_the_template():
    household = make_household()
    instance, _ = household.accept("dishes-home", "alice", NOW)
    household.catalog.edit_template("dishes-home", points=999)
    assert instance.points == 100
    assert household.complete(instance.id) == 100


def test_complete_credits_only_once():
    household = make_household()
    instance, _ = household.accept("dishes-home", "alice", NOW)
    household.complete(instance.id)
    with pytest.raises(InstanceNotFoundError):
        household.complete(instance.id)
    assert household.points.balance("alice") == 100
    assert len(household.points.entries) == 1


def test_remove_gives_no_points_and_keeps_quota_consumed():
    household = make_household()
    instance, _ = household.accept("dishes-home", "alice", NOW)
    household.remove(instance.id)
    assert household.points.balance("alice") == 0
    assert household.assignments.for_user("alice") == []
    assert household.available_templates("alice", NOW + timedelta(minutes=5)) == []
    with pytest.raises(InstanceNotFoundError):
        household.remove(instance.id)


def test_deleting_template_keeps_instances_and_usage():
    household = make_household()
    instance, _ = household.accept("dishes-home", "alice", NOW)
    household.catalog.remove_template("dishes-home")
    assert household.assignments.get(instance.id).title == "Dishes"
    assert household.usage.get("dishes-home", "alice").usage_count == 1

    # Recreating the same template picks the old usage back up.
    household.catalog.add_template(make_template())
    assert household.available_templates("alice", NOW + timedelta(minutes=5)) == []


def test_rename_starts_fresh_usage():
    household = make_household()
    household.accept("dishes-home", "alice", NOW)
    household.catalog.edit_template("dishes-home", title="Wash dishes")
    assert [t.title for t in household.available_templates("alice", NOW)] == ["Wash dishes"]


def test_remove_all_assigned_keeps_usage_and_catalog():
    household = make_household()
    household.accept("dishes-home", "alice", NOW)
    household.reset("assigned")
    assert len(household.assignments) == 0
    assert len(household.usage) == 1
    assert len(household.catalog) == 1
    assert household.available_templates("alice", NOW) == []


def test_reset_usage_keeps_assignments_and_catalog():
    household = make_household()
    household.accept("dishes-home", "alice", NOW)
    household.reset("usage")
    assert len(household.assignments) == 1
    assert len(household.usage) == 0
    assert [t.title for t in household.available_templates("alice", NOW)] == ["Dishes"]


def test_clear_templates_keeps_usage_and_assignments():
    household = make_household()
    household.accept("dishes-home", "alice", NOW)
    household.reset("templates")
    assert len(household.catalog) == 0
    assert len(household.usage) == 1
    assert len(household.assignments) == 1


def test_reset_all_keeps_catalog():
    household = make_household(balances={"alice": 40})
    household.accept("dishes-home", "alice", NOW)
    household.reset("all")
    assert len(household.catalog) == 1
    assert len(household.usage) == 0
    assert len(household.assignments) == 0
    assert household.points.balance("alice") == 40


def test_unknown_reset_kind():
    with pytest.raises(ValueError):
        make_household().reset("everything")


def test_redeem_debits_balance():
    household = make_household(balances={"alice": 500})
    assert household.redeem("alice", 200) == 300
    assert household.points.balance("alice") == 300


@pytest.mark.parametrize("points", [0, -5])
def test_redeem_requires_positive_points(points):
    household = make_household(balances={"alice": 500})
    with pytest.raises(ValueError):
        household.redeem("alice", points)


def test_redeem_more_than_balance():
    household = make_household(balances={"alice": 50})
    with pytest.raises(InsufficientPointsError) as excinfo:
        household.redeem("alice", 80)
    assert excinfo.value.shortfall == 30
    assert household.points.balance("alice") == 50
