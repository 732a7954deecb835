import random

from zadachi.engine import key_of
from zadachi.models import TaskTemplate
from zadachi.selection import DRAW_SIZE, draw_candidates, template_weight


def make_template(title, timeframe="daily", frequency=1):
    return TaskTemplate(
        title=title,
        category="general",
        points=10,
        timeframe=timeframe,
        frequency=frequency,
        allowed_users=[],
    )


def test_nothing_available_draws_nothing():
    assert draw_candidates([], random.Random(1)) == []


def test_draw_is_distinct_and_bounded():
    templates = [make_template(f"Task {i}", frequency=5) for i in range(10)]
    picked = draw_candidates(templates, random.Random(7))
    assert len(picked) == DRAW_SIZE
    assert len({key_of(t) for t in picked}) == DRAW_SIZE
    assert all(t in templates for t in picked)


def test_fewer_templates_than_draw_size():
    templates = [make_template("Only", frequency=10), make_template("Other")]
    picked = draw_candidates(templates, random.Random(3))
    assert sorted(t.title for t in picked) == ["Only", "Other"]


def test_same_seed_same_draw():
    templates = [make_template(f"Task {i}") for i in range(8)]
    first = draw_candidates(templates, random.Random(42))
    second = draw_candidates(templates, random.Random(42))
    assert [t.title for t in first] == [t.title for t in second]


def test_count_zero():
    assert draw_candidates([make_template("A")], random.Random(1), count=0) == []


def test_weights_favour_frequent_short_window_templates():
    assert template_weight(make_template("a", "daily", 3)) == 6
    assert template_weight(make_template("b", "weekly", 1)) == 2
    assert template_weight(make_template("c", "monthly", 5)) == 5


def test_heavier_template_is_drawn_first_more_often():
    heavy = make_template("Heavy", "daily", 10)
    light = make_template("Light", "monthly", 1)
    rng = random.Random(0)
    firsts = [draw_candidates([heavy, light], rng, count=1)[0].title for _ in range(200)]
    assert firsts.count("Heavy") > firsts.count("Light")
