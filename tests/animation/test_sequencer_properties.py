import pytest

hypothesis = pytest.importorskip("hypothesis", reason="hypothesis is a dev optional dependency")
from hypothesis import given, strategies as st  # type: ignore

from engine.animation import AnimationStyle, ContentUnit, plan


def _units(texts):
    return [ContentUnit(f"u{i}", i, t) for i, t in enumerate(texts)]


@given(
    style=st.sampled_from(list(AnimationStyle)),
    texts=st.lists(st.text(max_size=12), max_size=8),
    budget=st.integers(-3, 80),
)
def test_plan_non_empty_within_budget_and_deterministic(style, texts, budget):
    units = _units(texts)
    p = plan(style, units, budget)
    assert 1 <= len(p) <= max(1, budget)
    assert [m.index for m in p] == list(range(len(p)))
    assert plan(style, units, budget) == p


@given(n=st.integers(0, 10), budget=st.integers(1, 40))
def test_reveal_never_hides_a_revealed_unit(n, budget):
    p = plan("reveal", _units(["x"] * n), budget)
    seen: set[str] = set()
    for m in p:
        visible = set(m.visible_ids)
        assert seen <= visible
        seen = visible
    assert set(p[-1].visible_ids) == {f"u{i}" for i in range(n)}


@given(n=st.integers(0, 10))
def test_none_is_always_one_frame(n):
    assert len(plan(AnimationStyle.NONE, _units(["x"] * n), 99)) == 1
