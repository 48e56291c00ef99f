"""Validation of model-supplied tool arguments against JSON-Schema-like shapes.

Arguments produced by a language model are untrusted. ``compile_schema``
turns a tool's ``input_schema`` into a strict pydantic model once; every call
then goes through :meth:`CompiledSchema.validate`, which either returns a
read-only :class:`ValidatedInput` or raises :class:`SchemaValidationError`
listing each offending field with the expected and received type.

Supported keywords: ``type`` (object, string, integer, number, boolean,
array, null, or a list of those), ``properties``, ``required``, ``items``,
``enum``, ``minimum``, ``maximum``, ``default``, ``description`` and
``additionalProperties: false`` (strict mode: unknown fields are rejected
instead of dropped). Bounds are inclusive.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from copy import deepcopy
from dataclasses import dataclass
from types import MappingProxyType
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)
from pydantic_core import PydanticCustomError

_PRIMITIVES: dict[str, Any] = {
    "string": StrictStr,
    "boolean": StrictBool,
    "null": type(None),
}
_ROOT_FIELD = "arguments"
_BOUND_ERRORS = {"greater_than_equal", "less_than_equal"}


class SchemaDefinitionError(ValueError):
    """Raised when a tool schema uses constructs the validator cannot compile."""


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """A single problem found while validating arguments."""

    field: str
    expected: str
    received: str
    message: str


class SchemaValidationError(ValueError):
    """Raised when raw arguments do not satisfy a tool schema."""

    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues) or "invalid arguments")


class ValidatedInput(Mapping[str, Any]):
    """Read-only arguments that passed schema validation."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = MappingProxyType(dict(data))

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ValidatedInput({dict(self._data)!r})"

    def to_dict(self) -> dict[str, Any]:
        return deepcopy(dict(self._data))


@dataclass(frozen=True, slots=True)
class CompiledSchema:
    """A tool input schema paired with the pydantic model enforcing it."""

    schema: dict[str, Any]
    model: type[BaseModel]

    @property
    def strict(self) -> bool:
        return self.schema.get("additionalProperties") is False

    def validate(self, raw_arguments: object) -> ValidatedInput:
        if not isinstance(raw_arguments, Mapping):
            received = json_type_name(raw_arguments)
            raise SchemaValidationError(
                [
                    ValidationIssue(
                        field=_ROOT_FIELD,
                        expected="object",
                        received=received,
                        message=f"{_ROOT_FIELD}: expected object, received {received}",
                    )
                ]
            )
        try:
            instance = self.model.model_validate(dict(raw_arguments))
        except ValidationError as exc:
            raise SchemaValidationError(_collect_issues(self.schema, exc)) from None
        data = instance.model_dump(by_alias=True, exclude_unset=True)
        return ValidatedInput(_apply_defaults(self.schema, data))


def compile_schema(schema: Mapping[str, Any], *, name: str = "tool") -> CompiledSchema:
    """Compile ``schema`` into a strict pydantic model."""
    if not isinstance(schema, Mapping):
        raise SchemaDefinitionError(f"Schema for '{name}' must be a mapping")
    schema_dict = dict(schema)
    declared = schema_dict.get("type", "object")
    if declared != "object":
        raise SchemaDefinitionError(f"Schema for '{name}' must describe an object, got {declared!r}")
    model = _object_model(schema_dict, f"{_model_prefix(name)}Arguments")
    return CompiledSchema(schema=schema_dict, model=model)


def validate(schema: Mapping[str, Any], raw_arguments: object) -> ValidatedInput:
    """Validate ``raw_arguments`` against ``schema`` in one step."""
    return compile_schema(schema).validate(raw_arguments)


def json_type_name(value: object) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def describe_expected(schema: Mapping[str, Any]) -> str:
    enum = schema.get("enum")
    if isinstance(enum, list):
        return f"one of {enum!r}"
    declared = schema.get("type")
    if isinstance(declared, list):
        return " or ".join(str(item) for item in declared) + _describe_bounds(schema)
    if isinstance(declared, str):
        return declared + _describe_bounds(schema)
    if "properties" in schema:
        return "object"
    return "any"


def _describe_bounds(schema: Mapping[str, Any]) -> str:
    low, high = schema.get("minimum"), schema.get("maximum")
    if low is not None and high is not None:
        return f" between {low} and {high}"
    if low is not None:
        return f" >= {low}"
    if high is not None:
        return f" <= {high}"
    return ""


# ----------------------------------------------------------------------
# Model construction
# ----------------------------------------------------------------------


def _model_prefix(name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() else "_" for ch in name)
    return cleaned[:1].upper() + cleaned[1:] if cleaned else "Tool"


def _object_model(schema: dict[str, Any], model_name: str) -> type[BaseModel]:
    properties = schema.get("properties") or {}
    if not isinstance(properties, Mapping):
        raise SchemaDefinitionError(f"{model_name}: 'properties' must be a mapping")
    required = schema.get("required") or []
    if not isinstance(required, list):
        raise SchemaDefinitionError(f"{model_name}: 'required' must be a list")
    missing = [key for key in required if key not in properties]
    if missing:
        raise SchemaDefinitionError(f"{model_name}: required fields without properties: {missing}")

    extra = "forbid" if schema.get("additionalProperties") is False else "ignore"
    fields: dict[str, Any] = {}
    # Field names go through aliases so property names never clash with
    # BaseModel attributes or need to be valid identifiers.
    for index, (prop_name, prop_schema) in enumerate(properties.items()):
        if not isinstance(prop_schema, Mapping):
            raise SchemaDefinitionError(f"{model_name}.{prop_name}: property schema must be a mapping")
        annotation = _annotation_for(dict(prop_schema), f"{model_name}_{_model_prefix(str(prop_name))}")
        if prop_name in required:
            fields[f"f_{index}"] = (annotation, Field(..., alias=prop_name))
        else:
            default = deepcopy(prop_schema.get("default"))
            fields[f"f_{index}"] = (Optional[annotation], Field(default, alias=prop_name))

    return create_model(  # type: ignore[call-overload]
        model_name,
        __config__=ConfigDict(extra=extra),
        **fields,
    )


def _enum_guard(members: list[Any]) -> Any:
    # Literal matching alone treats True as 1 and 1 as True.
    def check(value: Any) -> Any:
        if not any(member == value and isinstance(member, bool) == isinstance(value, bool) for member in members):
            raise PydanticCustomError("literal_error", "Input should be one of {expected}", {"expected": repr(members)})
        return value

    return check


def _bounded(base: Any, schema: Mapping[str, Any], model_name: str) -> Any:
    bounds: dict[str, Any] = {}
    for keyword, constraint in (("minimum", "ge"), ("maximum", "le")):
        if keyword not in schema:
            continue
        limit = schema[keyword]
        if isinstance(limit, bool) or not isinstance(limit, (int, float)):
            raise SchemaDefinitionError(f"{model_name}: '{keyword}' must be a number")
        if base is StrictInt and isinstance(limit, float):
            limit = math.ceil(limit) if constraint == "ge" else math.floor(limit)
        bounds[constraint] = limit
    return Annotated[base, Field(**bounds)] if bounds else base


def _annotation_for(schema: dict[str, Any], model_name: str) -> Any:
    enum = schema.get("enum")
    if enum is not None:
        if not isinstance(enum, list) or not enum:
            raise SchemaDefinitionError(f"{model_name}: 'enum' must be a non-empty list")
        return Annotated[Literal[tuple(enum)], BeforeValidator(_enum_guard(enum))]  # type: ignore[valid-type]

    declared = schema.get("type")
    if declared is None:
        return Any
    if isinstance(declared, list):
        members = tuple(_annotation_for({**schema, "type": item}, model_name) for item in declared)
        return Union[members] if len(members) > 1 else members[0]  # type: ignore[valid-type]
    if declared == "integer":
        return _bounded(StrictInt, schema, model_name)
    if declared == "number":
        return Union[_bounded(StrictInt, schema, model_name), _bounded(StrictFloat, schema, model_name)]
    if declared in _PRIMITIVES:
        return _PRIMITIVES[declared]
    if declared == "array":
        items = schema.get("items")
        if items is None:
            return list[Any]
        if not isinstance(items, Mapping):
            raise SchemaDefinitionError(f"{model_name}: 'items' must be a mapping")
        return list[_annotation_for(dict(items), f"{model_name}Item")]  # type: ignore[misc]
    if declared == "object":
        if "properties" in schema:
            return _object_model(schema, model_name)
        return dict[str, Any]
    raise SchemaDefinitionError(f"{model_name}: unsupported type {declared!r}")


# ----------------------------------------------------------------------
# Error reporting
# ----------------------------------------------------------------------


def _collect_issues(schema: dict[str, Any], exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    seen: set[str] = set()
    for error in exc.errors():
        error_type = error.get("type", "")
        path, node = _resolve_location(
            schema, tuple(error.get("loc", ())), keep_unknown=error_type == "extra_forbidden"
        )
        field_name = ".".join(path) or _ROOT_FIELD
        if field_name in seen:
            continue
        seen.add(field_name)
        if error_type == "extra_forbidden":
            received = json_type_name(error.get("input"))
            issues.append(
                ValidationIssue(
                    field=field_name,
                    expected="no such field",
                    received=received,
                    message=f"{field_name}: unexpected field (schema does not allow additional properties)",
                )
            )
            continue
        expected = describe_expected(node) if node is not None else "any"
        if error_type == "missing":
            issues.append(
                ValidationIssue(
                    field=field_name,
                    expected=expected,
                    received="nothing",
                    message=f"{field_name}: missing required field (expected {expected})",
                )
            )
            continue
        value = error.get("input")
        received = json_type_name(value)
        if error_type == "literal_error" or error_type in _BOUND_ERRORS:
            message = f"{field_name}: expected {expected}, received {received} {value!r}"
        else:
            message = f"{field_name}: expected {expected}, received {received}"
        issues.append(ValidationIssue(field=field_name, expected=expected, received=received, message=message))
    return issues


def _resolve_location(
    schema: dict[str, Any],
    loc: tuple[Any, ...],
    *,
    keep_unknown: bool,
) -> tuple[list[str], dict[str, Any] | None]:
    path: list[str] = []
    node: dict[str, Any] | None = schema
    last = len(loc) - 1
    for position, part in enumerate(loc):
        if node is None:
            break
        properties = node.get("properties")
        if isinstance(part, str) and isinstance(properties, Mapping) and part in properties:
            path.append(part)
            node = dict(properties[part])
            continue
        if isinstance(part, int) and isinstance(node.get("items"), Mapping):
            path.append(str(part))
            node = dict(node["items"])
            continue
        if keep_unknown and position == last:
            path.append(str(part))
            node = None
        # Anything else is a pydantic union member tag and names no field.
    return path, node


def _apply_defaults(schema: Mapping[str, Any], data: dict[str, Any]) -> dict[str, Any]:
    properties = schema.get("properties") or {}
    for prop_name, prop_schema in properties.items():
        if not isinstance(prop_schema, Mapping):
            continue
        if prop_name not in data:
            if "default" in prop_schema:
                data[prop_name] = deepcopy(prop_schema["default"])
            continue
        value = data[prop_name]
        if isinstance(value, dict) and "properties" in prop_schema:
            data[prop_name] = _apply_defaults(prop_schema, value)
        elif isinstance(value, list) and isinstance(prop_schema.get("items"), Mapping):
            items = prop_schema["items"]
            if "properties" in items:
                data[prop_name] = [
                    _apply_defaults(items, item) if isinstance(item, dict) else item for item in value
                ]
    return data


__all__ = [
    "CompiledSchema",
    "SchemaDefinitionError",
    "SchemaValidationError",
    "ValidatedInput",
    "ValidationIssue",
    "compile_schema",
    "describe_expected",
    "json_type_name",
    "validate",
]
