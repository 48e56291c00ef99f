from __future__ import annotations

import pytest

from toolrelay.core.schema import (
    SchemaDefinitionError,
    SchemaValidationError,
    ValidatedInput,
    compile_schema,
    validate,
)

SEARCH_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "max_results": {"type": "integer", "default": 5},
    },
    "required": ["query"],
}


def _issues(exc: pytest.ExceptionInfo[SchemaValidationError]) -> dict[str, str]:
    return {issue.field: issue.message for issue in exc.value.issues}


def test_valid_arguments_pass_and_defaults_fill_in() -> None:
    result = validate(SEARCH_SCHEMA, {"query": "weather in Paris"})
    assert isinstance(result, ValidatedInput)
    assert result["query"] == "weather in Paris"
    assert result["max_results"] == 5


def test_validated_input_is_read_only() -> None:
    result = validate(SEARCH_SCHEMA, {"query": "x"})
    with pytest.raises(TypeError):
        result["query"] = "y"  # type: ignore[index]
    copy = result.to_dict()
    copy["query"] = "y"
    assert result["query"] == "x"


def test_missing_required_field_is_reported() -> None:
    with pytest.raises(SchemaValidationError) as exc:
        validate(SEARCH_SCHEMA, {})
    issues = _issues(exc)
    assert issues == {"query": "query: missing required field (expected string)"}


def test_wrong_type_reports_expected_and_received() -> None:
    with pytest.raises(SchemaValidationError) as exc:
        validate(SEARCH_SCHEMA, {"query": 42})
    issue = exc.value.issues[0]
    assert issue.field == "query"
    assert issue.expected == "string"
    assert issue.received == "integer"
    assert "query: expected string, received integer" in str(exc.value)


def test_no_coercion_between_string_and_integer() -> None:
    with pytest.raises(SchemaValidationError) as exc:
        validate(SEARCH_SCHEMA, {"query": "q", "max_results": "3"})
    assert _issues(exc)["max_results"] == "max_results: expected integer, received string"


def test_boolean_is_not_an_integer() -> None:
    with pytest.raises(SchemaValidationError):
        validate(SEARCH_SCHEMA, {"query": "q", "max_results": True})


def test_every_offending_field_is_listed() -> None:
    schema = {
        "type": "object",
        "properties": {"a": {"type": "string"}, "b": {"type": "boolean"}, "c": {"type": "number"}},
        "required": ["a", "b", "c"],
    }
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"a": 1, "c": "nope"})
    assert set(_issues(exc)) == {"a", "b", "c"}


def test_number_accepts_int_and_float() -> None:
    schema = {"type": "object", "properties": {"n": {"type": "number"}}, "required": ["n"]}
    assert validate(schema, {"n": 3})["n"] == 3
    assert validate(schema, {"n": 2.5})["n"] == 2.5


def test_non_object_arguments_are_rejected() -> None:
    compiled = compile_schema(SEARCH_SCHEMA, name="searchWeb")
    with pytest.raises(SchemaValidationError) as exc:
        compiled.validate("not json")
    assert str(exc.value) == "arguments: expected object, received string"
    with pytest.raises(SchemaValidationError):
        compiled.validate(["query"])


def test_extra_fields_are_dropped_by_default() -> None:
    result = validate(SEARCH_SCHEMA, {"query": "q", "unexpected": 1})
    assert "unexpected" not in result


def test_additional_properties_false_rejects_extra_fields() -> None:
    schema = {**SEARCH_SCHEMA, "additionalProperties": False}
    compiled = compile_schema(schema)
    assert compiled.strict
    with pytest.raises(SchemaValidationError) as exc:
        compiled.validate({"query": "q", "unexpected": 1})
    assert _issues(exc)["unexpected"].startswith("unexpected: unexpected field")


def test_enum_mismatch_lists_allowed_values() -> None:
    schema = {
        "type": "object",
        "properties": {"mode": {"type": "string", "enum": ["fast", "deep"]}},
        "required": ["mode"],
    }
    assert validate(schema, {"mode": "deep"})["mode"] == "deep"
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"mode": "slow"})
    message = _issues(exc)["mode"]
    assert "one of ['fast', 'deep']" in message
    assert "'slow'" in message


@pytest.mark.parametrize(("members", "value"), [([1, 2], True), ([0, 1], False), ([True, False], 1)])
def test_enum_does_not_mix_booleans_and_integers(members: list[object], value: object) -> None:
    schema = {"type": "object", "properties": {"level": {"enum": members}}, "required": ["level"]}
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"level": value})
    assert f"one of {members!r}" in _issues(exc)["level"]


def test_enum_keeps_matching_members() -> None:
    numbers = {"type": "object", "properties": {"level": {"enum": [1, 2]}}, "required": ["level"]}
    flags = {"type": "object", "properties": {"level": {"enum": [True, False]}}, "required": ["level"]}
    assert validate(numbers, {"level": 2})["level"] == 2
    assert validate(flags, {"level": False})["level"] is False


@pytest.mark.parametrize("count", [0, -1, 21])
def test_integer_bounds_are_inclusive(count: int) -> None:
    schema = {
        "type": "object",
        "properties": {"count": {"type": "integer", "minimum": 1, "maximum": 20}},
        "required": ["count"],
    }
    assert validate(schema, {"count": 1})["count"] == 1
    assert validate(schema, {"count": 20})["count"] == 20
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"count": count})
    assert _issues(exc)["count"] == f"count: expected integer between 1 and 20, received integer {count!r}"


def test_number_bounds_cover_integers_and_floats() -> None:
    schema = {"type": "object", "properties": {"ratio": {"type": "number", "minimum": 0}}, "required": ["ratio"]}
    assert validate(schema, {"ratio": 0})["ratio"] == 0
    assert validate(schema, {"ratio": 0.5})["ratio"] == 0.5
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"ratio": -0.5})
    assert _issues(exc)["ratio"].startswith("ratio: expected number >= 0")


def test_compile_rejects_non_numeric_bounds() -> None:
    with pytest.raises(SchemaDefinitionError):
        compile_schema({"type": "object", "properties": {"n": {"type": "integer", "minimum": "1"}}})


def test_nested_objects_and_arrays_report_dotted_paths() -> None:
    schema = {
        "type": "object",
        "properties": {
            "filters": {
                "type": "object",
                "properties": {"site": {"type": "string"}},
                "required": ["site"],
            },
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["filters"],
    }
    ok = validate(schema, {"filters": {"site": "example.com"}, "tags": ["a", "b"]})
    assert ok["filters"] == {"site": "example.com"}
    assert ok["tags"] == ["a", "b"]

    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"filters": {"site": 1}, "tags": ["a", 2]})
    issues = _issues(exc)
    assert "filters.site" in issues
    assert "tags.1" in issues


def test_optional_fields_accept_null() -> None:
    result = validate(SEARCH_SCHEMA, {"query": "q", "max_results": None})
    assert result["max_results"] is None


def test_type_lists_accept_any_member() -> None:
    schema = {"type": "object", "properties": {"answer": {"type": ["string", "null"]}}, "required": ["answer"]}
    assert validate(schema, {"answer": None})["answer"] is None
    assert validate(schema, {"answer": "yes"})["answer"] == "yes"
    with pytest.raises(SchemaValidationError) as exc:
        validate(schema, {"answer": 3})
    assert _issues(exc)["answer"] == "answer: expected string or null, received integer"


def test_compile_rejects_non_object_root() -> None:
    with pytest.raises(SchemaDefinitionError):
        compile_schema({"type": "string"})


def test_compile_rejects_required_without_property() -> None:
    with pytest.raises(SchemaDefinitionError):
        compile_schema({"type": "object", "properties": {}, "required": ["ghost"]})


def test_compile_rejects_unknown_types() -> None:
    with pytest.raises(SchemaDefinitionError):
        compile_schema({"type": "object", "properties": {"x": {"type": "datetime"}}})


def test_property_names_that_shadow_model_attributes() -> None:
    schema = {
        "type": "object",
        "properties": {"model_config": {"type": "string"}, "dict": {"type": "integer"}},
        "required": ["model_config"],
    }
    result = validate(schema, {"model_config": "x", "dict": 1})
    assert result.to_dict() == {"model_config": "x", "dict": 1}
