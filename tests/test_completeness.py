"""Field completeness policy — which record values satisfy a stage exit requirement."""

from datetime import date
from decimal import Decimal

import pytest

from dealflow.engine.completeness import classify_value, is_filled
from dealflow.engine.types import FieldValueKind


class TestClassifyValue:
    @pytest.mark.parametrize(
        "value, kind",
        [
            (None, FieldValueKind.NULL),
            ("", FieldValueKind.STR),
            (0, FieldValueKind.NUM),
            (1.5, FieldValueKind.NUM),
            (Decimal("0"), FieldValueKind.NUM),
            (False, FieldValueKind.BOOL),
            (True, FieldValueKind.BOOL),
            ([], FieldValueKind.STR_ARRAY),
            (("a",), FieldValueKind.STR_ARRAY),
            ({"a"}, FieldValueKind.STR_ARRAY),
            (date(2024, 1, 1), FieldValueKind.OTHER),
            ({"id": 1}, FieldValueKind.OTHER),
        ],
    )
    def test_kind(self, value, kind):
        assert classify_value(value) is kind

    def test_bool_is_not_a_number(self):
        assert classify_value(False) is not FieldValueKind.NUM


class TestIsFilled:
    def test_none_is_not_filled(self):
        assert is_filled(None) is False
        assert is_filled(None, "date") is False

    @pytest.mark.parametrize("value", ["", "   ", "\t\n"])
    def test_blank_strings_are_not_filled(self, value):
        assert is_filled(value, "text") is False

    def test_string_with_content_is_filled(self):
        assert is_filled("  Acme  ", "text") is True

    @pytest.mark.parametrize("value", [0, 0.0, -3, Decimal("0.00")])
    def test_zero_and_negative_numbers_are_filled(self, value):
        assert is_filled(value, "number") is True

    def test_false_is_filled(self):
        assert is_filled(False, "boolean") is True

    def test_empty_list_is_not_filled(self):
        assert is_filled([], "multi-select") is False

    def test_non_empty_list_is_filled(self):
        assert is_filled(["hot"], "multi-select") is True

    def test_structured_values_are_filled(self):
        assert is_filled(date(2024, 1, 1), "date") is True
        assert is_filled({"id": 7}, "relation") is True

    def test_runtime_kind_wins_over_declared_type(self):
        assert is_filled(0, "text") is True
        assert is_filled("", "number") is False
