"""
Custom Field Resolution Tests.

This module tests the display rules for each custom-field type and the
generic fallback, including values the rules do not expect.
"""

from __future__ import annotations

import pytest

from clickdown.apps.extractor.fields import FieldResolver, resolve_field
from clickdown.utils.schemas import CustomField

from tests.conftest import CustomFieldFactory

pytestmark = [pytest.mark.unit]

OPTIONS = [("opt-a", "Alpha", 0), ("opt-b", "Beta", 1), ("opt-c", "Gamma", 2)]


def field(**kwargs) -> CustomField:
    return CustomField.model_validate(CustomFieldFactory.create(**kwargs))


def dropdown(value) -> CustomField:
    return CustomField.model_validate(CustomFieldFactory.dropdown("Stage", value, OPTIONS))


# =============================================================================
# Option Fields
# =============================================================================


class TestOptionFields:
    """Dropdown and label fields map option ids to their labels."""

    def test_dropdown_by_option_id(self):
        assert resolve_field(dropdown("opt-b")) == "Beta"

    def test_dropdown_by_orderindex(self):
        assert resolve_field(dropdown(2)) == "Gamma"

    def test_dropdown_by_orderindex_string(self):
        assert resolve_field(dropdown("0")) == "Alpha"

    def test_unknown_option_id_is_returned_unchanged(self):
        assert resolve_field(dropdown("opt-zzz")) == "opt-zzz"

    def test_labels_field(self):
        labels = field(
            name="Areas",
            type="labels",
            value=["l1", "l3"],
            type_config={
                "options": [
                    {"id": "l1", "label": "Backend"},
                    {"id": "l2", "label": "Frontend"},
                    {"id": "l3", "label": "Infra"},
                ]
            },
        )

        assert resolve_field(labels) == "Backend, Infra"

    def test_option_without_label_uses_raw_value(self):
        f = field(type="drop_down", value="x", type_config={"options": [{"id": "x"}]})

        assert resolve_field(f) == "x"

    def test_dropdown_without_options(self):
        assert resolve_field(field(type="drop_down", value="opt-a")) == "opt-a"


# =============================================================================
# Scalar Fields
# =============================================================================


class TestScalarFields:
    """Checkbox, date, rating and location rules."""

    @pytest.mark.parametrize("value", [True, "true"])
    def test_checkbox_checked(self, value):
        assert resolve_field(field(type="checkbox", value=value)) == "Yes"

    @pytest.mark.parametrize("value", [False, "false", 0])
    def test_checkbox_unchecked(self, value):
        assert resolve_field(field(type="checkbox", value=value)) == "No"

    def test_checkbox_string_and_bool_agree(self):
        as_string = resolve_field(field(type="checkbox", value="true"))
        as_bool = resolve_field(field(type="checkbox", value=True))

        assert as_string == as_bool

    def test_custom_checkbox_labels(self):
        resolver = FieldResolver(yes_label="Sí", no_label="-")

        assert resolver.resolve(field(type="checkbox", value=True)) == "Sí"
        assert resolver.resolve(field(type="checkbox", value=False)) == "-"

    @pytest.mark.parametrize("value", ["1700000000000", 1700000000000])
    def test_date_in_utc(self, value):
        assert resolve_field(field(type="date", value=value)) == "14/11/2023"

    def test_date_custom_format(self):
        resolver = FieldResolver(date_format="%Y-%m-%d")

        assert resolver.resolve(field(type="date", value="1700000000000")) == "2023-11-14"

    def test_unparseable_date_falls_back(self):
        assert resolve_field(field(type="date", value="tomorrow")) == "tomorrow"

    def test_rating_with_count(self):
        f = field(type="rating", value=4, type_config={"count": 5})

        assert resolve_field(f) == "4/5"

    def test_emoji_rating(self):
        f = field(type="emoji", value=2, type_config={"count": 3, "code_point": "2b50"})

        assert resolve_field(f) == "2/3"

    def test_rating_without_count(self):
        assert resolve_field(field(type="rating", value=4)) == "4"

    def test_location(self):
        f = field(type="location", value={"formatted_address": "Madrid, Spain", "lat": 40.4})

        assert resolve_field(f) == "Madrid, Spain"


# =============================================================================
# Collection Fields
# =============================================================================


class TestCollectionFields:
    """Users and relationship fields list names."""

    def test_users(self):
        f = field(
            type="users",
            value=[{"id": 1, "username": "ana"}, {"id": 2, "username": None}],
        )

        assert resolve_field(f) == "ana, 2"

    @pytest.mark.parametrize("field_type", ["list_relationship", "task_relationship", "tasks"])
    def test_relationships(self, field_type):
        f = field(type=field_type, value=[{"id": "t1", "name": "Login"}, {"id": "t2"}])

        assert resolve_field(f) == "Login, t2"


# =============================================================================
# Fallback Rendering
# =============================================================================


class TestFallback:
    """Untyped values and unexpected shapes never raise."""

    def test_null_value_is_empty(self):
        assert resolve_field(field(type="drop_down", value=None)) == ""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("plain", "plain"),
            (12, "12"),
            (3.0, "3"),
            (2.5, "2.5"),
            (True, "true"),
            (["a", 1], "a, 1"),
            ({"name": "Named"}, "Named"),
            ({"label": "Labelled"}, "Labelled"),
            ({"value": 9}, "9"),
            ({"b": 1, "a": 2}, '{"a":2,"b":1}'),
        ],
    )
    def test_generic_rendering(self, value, expected):
        assert resolve_field(field(type="short_text", value=value)) == expected

    @pytest.mark.parametrize(
        "type_, value, type_config",
        [
            ("drop_down", {"weird": True}, {"options": "nope"}),
            ("drop_down", ["opt-a"], {"options": [None, 3, {"id": "opt-a"}]}),
            ("users", "not-a-list", None),
            ("date", 10**20, None),
            ("date", True, None),
            ("rating", "x", {"count": "five"}),
            ("location", "somewhere", None),
            ("task_relationship", [None, 5, "t"], None),
            ("labels", 3, ["bad-config"]),
            ("", {"nested": {"deep": [1, 2]}}, None),
        ],
    )
    def test_resolution_is_total(self, type_, value, type_config):
        f = field(type=type_, value=value, type_config=type_config)

        result = resolve_field(f)

        assert isinstance(result, str)

    def test_huge_date_falls_back_to_raw(self):
        assert resolve_field(field(type="date", value=10**20)) == str(10**20)
