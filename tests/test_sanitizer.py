"""Tests for fragment repair: fences, arithmetic, trailing commas, truncation."""

import json

import pytest

from swimflow.sanitizer import (
    SanitizeError,
    evaluate_arithmetic,
    evaluate_geometry_expressions,
    parse_fragment,
    recover_truncated,
    sanitize,
    strip_code_fence,
    strip_trailing_commas,
)


class TestCodeFence:

    def test_json_fence(self) -> None:
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_plain_fence(self) -> None:
        assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_unfenced_text_is_only_trimmed(self) -> None:
        assert strip_code_fence('  {"a": 1}\n') == '{"a": 1}'

    def test_unterminated_fence_left_alone(self) -> None:
        assert strip_code_fence('```json\n{"a": 1}') == '```json\n{"a": 1}'


class TestArithmetic:

    def test_operators_and_precedence(self) -> None:
        assert evaluate_arithmetic("190 + 45") == 235
        assert evaluate_arithmetic("2 + 3 * 4") == 14
        assert evaluate_arithmetic("300 / 4 - 5") == 70
        assert evaluate_arithmetic("-5 + 10") == 5

    def test_rejects_names_and_calls(self) -> None:
        with pytest.raises(ValueError):
            evaluate_arithmetic("__import__('os')")
        with pytest.raises(ValueError):
            evaluate_arithmetic("2 ** 8")

    def test_division_by_zero(self) -> None:
        with pytest.raises(ZeroDivisionError):
            evaluate_arithmetic("10 / 0")

    def test_geometry_fields_substituted(self) -> None:
        text = '{"x": 190 + 45, "y": 230*2, "width": 100, "height": 10 / 4}'
        fixed = evaluate_geometry_expressions(text)
        assert json.loads(fixed) == {"x": 235, "y": 460, "width": 100, "height": 2.5}

    def test_integral_result_has_no_decimal_point(self) -> None:
        assert evaluate_geometry_expressions('"x": 100.5 + 99.5') == '"x": 200'

    def test_other_keys_untouched(self) -> None:
        text = '{"stepNumber": 1 + 1, "x": 1 + 1}'
        assert evaluate_geometry_expressions(text) == '{"stepNumber": 1 + 1, "x": 2}'

    def test_literals_untouched(self) -> None:
        text = '{"x": -5, "y": 12.5, "width": "100"}'
        assert evaluate_geometry_expressions(text) == text

    def test_division_by_zero_leaves_text(self) -> None:
        text = '{"x": 10 / 0}'
        assert evaluate_geometry_expressions(text) == text

    def test_overflow_leaves_text(self) -> None:
        text = '{"x": 1' + "0" * 400 + ' / 2}'
        assert evaluate_geometry_expressions(text) == text


def test_strip_trailing_commas() -> None:
    assert strip_trailing_commas('{"a": [1, 2, ], "b": 3, }') == '{"a": [1, 2], "b": 3}'


def test_sanitize_applies_all_repairs() -> None:
    raw = '```json\n{"command": "createLane", "x": 160 + 30, "y": 80,}\n```'
    assert json.loads(sanitize(raw)) == {"command": "createLane", "x": 190, "y": 80}


class TestTruncationRecovery:

    def test_trailing_garbage_after_object(self) -> None:
        assert recover_truncated('{"a": {"b": 1}} ,,, {"c"') == {"a": {"b": 1}}

    def test_prefers_longest_balanced_prefix(self) -> None:
        text = '[{"a": 1}, {"b": 2}] extra'
        assert recover_truncated(text) == [{"a": 1}, {"b": 2}]

    def test_no_balanced_prefix(self) -> None:
        with pytest.raises(SanitizeError):
            recover_truncated('[{"a": 1}, {"b":')

    def test_truncated_after_balancing_bracket(self) -> None:
        full = '{"command": "addShape", "id": "T1", "x": 10}'
        # Cut right after the closing brace, followed by a partial next object.
        truncated = full + ', {"command": "addSh'
        recovered = parse_fragment(truncated)
        assert recovered == json.loads(full)


class TestParseFragment:

    def test_clean_object(self) -> None:
        assert parse_fragment('{"command": "addConnection"}') == {"command": "addConnection"}

    def test_arithmetic_and_fence(self) -> None:
        parsed = parse_fragment('```json\n{"command": "addShape", "x": 200 + 50, "y": 300 - 20}\n```')
        assert parsed["x"] == 250
        assert parsed["y"] == 280

    def test_unrepairable_raises(self) -> None:
        with pytest.raises(SanitizeError, match="truncation recovery"):
            parse_fragment('{"command": createLane}')

    def test_division_by_zero_is_unparseable(self) -> None:
        with pytest.raises(SanitizeError):
            parse_fragment('{"x": 10 / 0}')

    def test_overflowing_arithmetic_is_unparseable(self) -> None:
        with pytest.raises(SanitizeError):
            parse_fragment('{"x": 1' + "0" * 400 + " / 2}")


def test_non_decode_value_error_is_wrapped(monkeypatch) -> None:
    def refuse(text):
        raise ValueError("Exceeds the limit (4300 digits) for integer string conversion")

    monkeypatch.setattr("swimflow.sanitizer.json.loads", refuse)
    with pytest.raises(SanitizeError):
        parse_fragment('{"x": 1}')
