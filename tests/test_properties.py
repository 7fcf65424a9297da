"""Property-based tests using Hypothesis.

Verifies invariants of the filter engine, sort engine, filter session and
settings validation. Each test runs 50 examples in CI, 200 in dev.

Run:
    pytest tests/test_properties.py -v
    pytest tests/test_properties.py -v --hypothesis-seed=0  # reproducible
"""

from __future__ import annotations

import hypothesis.strategies as st
from hypothesis import given, settings

from wallet_catalog.config import _dict_to_settings, _settings_to_dict
from wallet_catalog.filter_session import FilterSessionManager, toggle_in_group
from wallet_catalog.filtering import apply_filters, sort_collection
from wallet_catalog.models import (
    MAX_POLL_DELAY_SECONDS,
    DocumentAttributes,
    FilterableCollection,
    FilterableItem,
    FilterConfiguration,
    FilterGroup,
    FilterItem,
    GroupKind,
    Predicate,
    SortDirection,
    SortKey,
    match_all_item,
)

# ── Hypothesis profiles ─────────────────────────────────────────────
settings.register_profile("ci", max_examples=50, deadline=None)
settings.register_profile("dev", max_examples=200, deadline=None)
settings.load_profile("ci")

# ── Custom strategies ────────────────────────────────────────────────

_ISSUERS = ["X", "Y", "Z"]
_NAMES = ["alpha", "bravo", "charlie", "delta"]


@st.composite
def collections(draw: st.DrawFn) -> FilterableCollection:
    """Collections with unique ids and frequent duplicate names/ranks."""
    count = draw(st.integers(min_value=0, max_value=12))
    items = []
    for index in range(count):
        attributes = DocumentAttributes(
            name=draw(st.sampled_from(_NAMES)),
            format_type="mso_mdoc",
            issuer=draw(st.sampled_from([*_ISSUERS, None])),
        )
        items.append(FilterableItem(id=f"doc-{index}", attributes=attributes))
    return FilterableCollection(items=tuple(items))


def _issuer_group(selected: frozenset[str]) -> FilterGroup:
    entries = tuple(
        FilterItem(
            id=issuer,
            name=issuer,
            selected=issuer in selected,
            action=Predicate(lambda a, issuer=issuer: a.issuer == issuer),
        )
        for issuer in _ISSUERS
    )
    return FilterGroup(
        id="issuer",
        name="Issuer",
        items=(match_all_item("all", "All", selected=not selected), *entries),
    )


def _name_key(attributes: DocumentAttributes) -> str:
    return attributes.name


def _sort_group(selected: str) -> FilterGroup:
    return FilterGroup(
        id="sort",
        name="Sort",
        kind=GroupKind.SORT,
        items=(
            FilterItem(
                id="name", name="Name", selected=selected == "name", action=SortKey(_name_key)
            ),
            FilterItem(
                id="issuer",
                name="Issuer",
                selected=selected == "issuer",
                action=SortKey(lambda a: a.issuer),
            ),
        ),
    )


@st.composite
def configurations(draw: st.DrawFn) -> FilterConfiguration:
    selected = draw(st.frozensets(st.sampled_from(_ISSUERS)))
    sort_by = draw(st.sampled_from(["name", "issuer"]))
    direction = draw(st.sampled_from(list(SortDirection)))
    return FilterConfiguration(
        groups=(_issuer_group(selected), _sort_group(sort_by)), sort_direction=direction
    )


toggles = st.lists(
    st.tuples(
        st.sampled_from(["issuer", "sort"]),
        st.sampled_from(["all", *_ISSUERS, "name", "issuer", "missing"]),
    ),
    max_size=8,
)


# ── Filter engine ────────────────────────────────────────────────────


@given(collection=collections(), config=configurations())
def test_apply_filters_is_idempotent(collection, config) -> None:
    once = apply_filters(collection, config)

    assert apply_filters(once, config) == once


@given(collection=collections(), config=configurations())
def test_apply_filters_returns_subset_with_unique_ids(collection, config) -> None:
    result = apply_filters(collection, config)

    assert set(result.ids()) <= set(collection.ids())
    assert len(set(result.ids())) == len(result)


@given(collection=collections(), direction=st.sampled_from(list(SortDirection)))
def test_sort_is_stable_for_equal_keys(collection, direction) -> None:
    result = sort_collection(collection, SortKey(_name_key), direction)
    input_order = {item_id: index for index, item_id in enumerate(collection.ids())}

    for name in _NAMES:
        same = [item.id for item in result.items if item.attributes.name == name]
        assert same == sorted(same, key=input_order.__getitem__)


@given(collection=collections(), direction=st.sampled_from(list(SortDirection)))
def test_none_keys_sort_last(collection, direction) -> None:
    result = sort_collection(collection, SortKey(lambda a: a.issuer), direction)
    issuers = [item.attributes.issuer for item in result.items]

    first_none = issuers.index(None) if None in issuers else len(issuers)
    assert all(issuer is None for issuer in issuers[first_none:])


# ── Filter session ───────────────────────────────────────────────────


@given(config=configurations(), steps=toggles)
def test_revert_restores_applied_configuration(config, steps) -> None:
    manager = FilterSessionManager(config)
    before = manager.applied

    manager.begin_edit()
    for group_id, filter_id in steps:
        manager.toggle_selection(group_id, filter_id)
    manager.revert()

    assert manager.applied == before
    assert manager.working == before


@given(config=configurations(), steps=toggles)
def test_group_invariants_hold_after_toggles(config, steps) -> None:
    for group_id, filter_id in steps:
        group = config.group(group_id)
        config = config.replace_group(toggle_in_group(group, filter_id))

    sort_group = config.group("sort")
    issuer_group = config.group("issuer")
    assert len(sort_group.selected_ids()) == 1
    specific = [entry for entry in issuer_group.items if entry.selected and not entry.sentinel]
    assert issuer_group.sentinel.selected is (not specific)


@given(selected=st.sampled_from(_ISSUERS))
def test_selecting_specific_deselects_sentinel(selected) -> None:
    group = toggle_in_group(_issuer_group(frozenset()), selected)

    assert group.selected_ids() == [selected]
    assert toggle_in_group(group, "all").selected_ids() == ["all"]


# ── Settings ─────────────────────────────────────────────────────────


@given(
    delay=st.one_of(
        st.floats(allow_nan=False, allow_infinity=False), st.integers(), st.text(), st.none()
    )
)
def test_poll_delay_always_within_bounds(delay) -> None:
    value = _dict_to_settings({"poll_delay_seconds": delay}).poll_delay_seconds

    assert 0.0 <= value <= MAX_POLL_DELAY_SECONDS


@given(data=st.dictionaries(st.text(max_size=20), st.none() | st.integers() | st.text()))
def test_settings_serialization_is_stable(data) -> None:
    first = _dict_to_settings(data)

    assert _dict_to_settings(_settings_to_dict(first)) == first
