"""Structured-output contract: strict JSON schemas for pydantic result shapes.

:func:`generate_schema` produces the schema handed to a provider's
schema-constrained mode; :func:`decode` is its inverse and turns the raw
model output back into the result shape.  :func:`encode` renders an
instance in the same wire shape.

Wire rules:

- Property names are lower camel case (``route_name`` → ``routeName``).
- Enum fields are strings restricted to the enum's member *names*.
- ``X | None`` is described as ``X``; nullability is not encoded.
- Every field is required and no other properties are allowed.
- Decoding matches keys and enum names case-insensitively.
"""

from __future__ import annotations

import json
import types
import typing
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_core import to_json

from agentcore.errors import SchemaValidationError
from agentcore.tools.registry import json_type_for

T = TypeVar("T", bound=BaseModel)


def _unwrap_optional(annotation: Any) -> Any:
    """Return ``X`` for ``X | None`` / ``Optional[X]``; other types unchanged."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _enum_type(annotation: Any) -> type[Enum] | None:
    annotation = _unwrap_optional(annotation)
    if (
        typing.get_origin(annotation) is None
        and isinstance(annotation, type)
        and issubclass(annotation, Enum)
    ):
        return annotation
    return None


def _property_schema(annotation: Any, description: str | None) -> dict[str, Any]:
    annotation = _unwrap_optional(annotation)
    enum_cls = _enum_type(annotation)
    if enum_cls is not None:
        schema: dict[str, Any] = {"type": "string", "enum": [m.name for m in enum_cls]}
    else:
        schema = {"type": json_type_for(annotation)}
    if description:
        schema["description"] = description
    return schema


def wire_name(field_name: str) -> str:
    """Lower-camel property name for a model field."""
    return to_camel(field_name)


def generate_schema(shape: type[BaseModel]) -> dict[str, Any]:
    """Build a strict JSON schema for ``shape``.

    For ``class Verdict(BaseModel): is_ok: bool; route: Route | None`` the
    result is::

        {"type": "object",
         "properties": {"isOk": {"type": "boolean"},
                        "route": {"type": "string", "enum": ["TOOL", "ANSWER"]}},
         "required": ["isOk", "route"],
         "additionalProperties": false}
    """
    properties: dict[str, Any] = {}
    for name, field in shape.model_fields.items():
        properties[wire_name(name)] = _property_schema(field.annotation, field.description)

    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def decode(raw_json: str, shape: type[T]) -> T:
    """Deserialize provider output into ``shape``.

    Raises:
        SchemaValidationError: The text is not a JSON object, a field is
            missing, an enum value is not a declared name, or a value fails
            type coercion.
    """
    try:
        data = json.loads(raw_json)
    except (json.JSONDecodeError, TypeError) as exc:
        raise SchemaValidationError(
            f"{shape.__name__}: output is not valid JSON: {exc}"
        ) from exc
    if not isinstance(data, dict):
        raise SchemaValidationError(
            f"{shape.__name__}: expected a JSON object, got {type(data).__name__}"
        )

    lowered = {str(key).lower(): value for key, value in data.items()}
    values: dict[str, Any] = {}
    for name, field in shape.model_fields.items():
        candidates = (wire_name(name).lower(), name.lower())
        key = next((c for c in candidates if c in lowered), None)
        if key is None:
            raise SchemaValidationError(f"{shape.__name__}: missing field '{wire_name(name)}'")
        value = lowered[key]

        enum_cls = _enum_type(field.annotation)
        if enum_cls is not None and value is not None:
            value = _decode_enum(shape.__name__, name, enum_cls, value)
        values[name] = value

    try:
        return shape.model_validate(values)
    except ValidationError as exc:
        raise SchemaValidationError(f"{shape.__name__}: {exc}") from exc


def _decode_enum(shape_name: str, field_name: str, enum_cls: type[Enum], value: Any) -> Enum:
    if isinstance(value, str):
        for member in enum_cls:
            if member.name.lower() == value.lower():
                return member
    allowed = ", ".join(m.name for m in enum_cls)
    raise SchemaValidationError(
        f"{shape_name}: field '{wire_name(field_name)}' must be one of [{allowed}], got {value!r}"
    )


def encode(instance: BaseModel) -> str:
    """Render ``instance`` as JSON text in the wire shape :func:`decode` reads."""
    payload: dict[str, Any] = {}
    for name in type(instance).model_fields:
        value = getattr(instance, name)
        payload[wire_name(name)] = value.name if isinstance(value, Enum) else value
    return to_json(payload).decode()
