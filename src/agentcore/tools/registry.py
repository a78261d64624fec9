"""Lightweight tool registry for LLM function-calling.

Tools are plain Python functions (sync or async) that the LLM can invoke.
The registry stores a :class:`ToolDescriptor` plus the bound handler for
every tool name and provides methods to:

- Register tools via the :meth:`ToolRegistry.tool` decorator or
  :meth:`ToolRegistry.register`
- List descriptors (sent verbatim to the completion provider)
- Render the tool list as text for prompt templates
- Dispatch a tool call by name, binding JSON arguments to typed parameters

Descriptors are either declared explicitly (``parameters=[...]``) or built
from the handler's signature by :func:`build_descriptor`.
"""

from __future__ import annotations

import inspect
import json
import logging
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from agentcore.errors import (
    ArgumentConversionError,
    InvalidToolDefinition,
    MissingRequiredParameter,
    UnknownTool,
)

if TYPE_CHECKING:
    from agentcore.agent.llm_client import ToolCallRequest

logger = logging.getLogger(__name__)

JsonType = Literal["integer", "number", "boolean", "string"]

# Type alias for a tool handler: any callable, sync or async.
ToolHandler = Callable[..., Any]


# ── Descriptors ───────────────────────────────────────────────────────────────


class ToolParameterDescriptor(BaseModel):
    """A single named parameter of a tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: JsonType = "string"
    description: str = ""
    is_required: bool = True
    default_value: Any = None


class ToolDescriptor(BaseModel):
    """Model-facing description of a callable tool."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: tuple[ToolParameterDescriptor, ...] = Field(default_factory=tuple)

    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's parameters (OpenAI function format)."""
        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.default_value is not None:
                prop["default"] = param.default_value
            properties[param.name] = prop
            if param.is_required:
                required.append(param.name)

        schema: dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema


def json_type_for(annotation: Any) -> JsonType:
    """Map a Python annotation to one of the four JSON parameter types.

    The mapping is total: anything unrecognised becomes ``"string"``.
    ``bool`` is checked before ``int`` since it subclasses it.
    """
    if typing.get_origin(annotation) is Annotated:
        annotation = typing.get_args(annotation)[0]
    if typing.get_origin(annotation) is not None or not isinstance(annotation, type):
        return "string"
    if issubclass(annotation, bool):
        return "boolean"
    if issubclass(annotation, int):
        return "integer"
    if issubclass(annotation, (float, Decimal)):
        return "number"
    return "string"


def build_descriptor(name: str, description: str, handler: ToolHandler) -> ToolDescriptor:
    """Describe ``handler``'s parameters.

    Each parameter's annotation gives its JSON type.  A description can be
    attached with ``Annotated[int, "The number of sides"]``.  Parameters with
    a default value are optional.

    Raises:
        InvalidToolDefinition: If ``handler`` is not callable, takes
            ``*args`` / ``**kwargs``, or has keyword-only parameters.
    """
    if not callable(handler):
        raise InvalidToolDefinition(f"Tool '{name}' handler is not callable")

    try:
        signature = inspect.signature(handler)
        hints = typing.get_type_hints(handler, include_extras=True)
    except (TypeError, ValueError, NameError) as exc:
        raise InvalidToolDefinition(f"Cannot describe tool '{name}': {exc}") from exc

    params: list[ToolParameterDescriptor] = []
    for param in signature.parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise InvalidToolDefinition(
                f"Tool '{name}' cannot take variadic parameter '{param.name}'"
            )
        if param.kind == param.KEYWORD_ONLY:
            # Handlers are invoked positionally.
            raise InvalidToolDefinition(
                f"Tool '{name}' cannot take keyword-only parameter '{param.name}'"
            )
        annotation = hints.get(param.name, str)
        param_description = ""
        if typing.get_origin(annotation) is Annotated:
            texts = [m for m in typing.get_args(annotation)[1:] if isinstance(m, str)]
            param_description = texts[0] if texts else ""

        has_default = param.default is not param.empty
        params.append(
            ToolParameterDescriptor(
                name=param.name,
                type=json_type_for(annotation),
                description=param_description,
                is_required=not has_default,
                default_value=param.default if has_default else None,
            )
        )

    return ToolDescriptor(name=name, description=description, parameters=tuple(params))


# ── Argument binding ──────────────────────────────────────────────────────────


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"not an integer: {value!r}")


def _to_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise ValueError(f"not a number: {value!r}")


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"not a boolean: {value!r}")


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        raise ValueError("null is not a string")
    return json.dumps(value)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a decimal: {value!r}")
    if not isinstance(value, (int, float, str, Decimal)):
        raise ValueError(f"not a decimal: {value!r}")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"not a decimal: {value!r}") from exc


_COERCERS: dict[str, Callable[[Any], Any]] = {
    "integer": _to_integer,
    "number": _to_number,
    "boolean": _to_boolean,
    "string": _to_string,
}


def native_coercers(handler: ToolHandler) -> dict[str, Callable[[Any], Any]]:
    """Coercers that keep a parameter's declared Python type.

    ``Decimal`` parameters are described as ``"number"`` but must not pass
    through ``float``; they are built from the value's text instead.
    """
    try:
        hints = typing.get_type_hints(handler, include_extras=True)
    except (TypeError, ValueError, NameError):
        return {}
    coercers: dict[str, Callable[[Any], Any]] = {}
    for param_name, annotation in hints.items():
        if param_name == "return":
            continue
        if typing.get_origin(annotation) is Annotated:
            annotation = typing.get_args(annotation)[0]
        if annotation is Decimal:
            coercers[param_name] = _to_decimal
    return coercers


def parse_arguments(tool_name: str, raw: str | None) -> dict[str, Any]:
    """Parse a tool call's JSON argument text into a dict (empty → ``{}``)."""
    if raw is None or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ArgumentConversionError(tool_name, None, raw, "JSON object") from exc
    if not isinstance(parsed, dict):
        raise ArgumentConversionError(tool_name, None, parsed, "JSON object")
    return parsed


def bind_arguments(
    descriptor: ToolDescriptor,
    arguments: dict[str, Any],
    coercers: dict[str, Callable[[Any], Any]] | None = None,
) -> list[Any]:
    """Build the positional argument list for a tool call.

    Declared parameters are bound in order.  Unknown keys are ignored.
    ``coercers`` overrides the JSON-type coercer per parameter name.

    Raises:
        MissingRequiredParameter: A parameter without default is absent.
        ArgumentConversionError: A present value cannot be coerced.
    """
    bound: list[Any] = []
    for param in descriptor.parameters:
        if param.name in arguments:
            value = arguments[param.name]
            try:
                coerce = (coercers or {}).get(param.name, _COERCERS[param.type])
                bound.append(coerce(value))
            except (TypeError, ValueError) as exc:
                raise ArgumentConversionError(
                    descriptor.name, param.name, value, param.type,
                ) from exc
        elif not param.is_required:
            bound.append(param.default_value)
        else:
            raise MissingRequiredParameter(descriptor.name, param.name)
    return bound


# ── Registry ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolDef:
    """A registered tool: its descriptor and the handler that runs it."""

    descriptor: ToolDescriptor
    handler: ToolHandler
    coercers: dict[str, Callable[[Any], Any]] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.descriptor.name


class ToolRegistry:
    """Registry of tools available to the LLM agent.

    Usage::

        registry = ToolRegistry()

        @registry.tool(name="roll_dice", description="Roll a dice.")
        def roll_dice(sides: Annotated[int, "Number of sides"] = 6) -> int:
            ...

        # Descriptors for the completion provider.
        descriptors = registry.get_descriptors()

        # Execute a tool call from the LLM.
        result = await registry.dispatch(
            ToolCallRequest(id="call_0", name="roll_dice", arguments='{"sides": 20}')
        )
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def tool(
        self,
        *,
        name: str,
        description: str,
        parameters: list[ToolParameterDescriptor] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator to register a tool function.

        Returns:
            The original function, unmodified.
        """

        def decorator(func: ToolHandler) -> ToolHandler:
            self.register(
                name=name,
                description=description,
                handler=func,
                parameters=parameters,
            )
            return func

        return decorator

    def register(
        self,
        *,
        name: str,
        description: str,
        handler: ToolHandler,
        parameters: list[ToolParameterDescriptor] | None = None,
    ) -> ToolDescriptor:
        """Imperatively register a tool.

        Args:
            name: Unique tool name.
            description: What the tool does (shown to the LLM).
            handler: Callable that executes the tool; receives arguments
                positionally in declaration order.
            parameters: Explicit parameter list.  When omitted the list is
                built from ``handler``'s signature.

        Returns:
            The stored descriptor.

        Raises:
            InvalidToolDefinition: Duplicate name or undescribable handler.
        """
        if name in self._tools:
            raise InvalidToolDefinition(f"Tool '{name}' is already registered")
        if parameters is None:
            descriptor = build_descriptor(name, description, handler)
        else:
            if not callable(handler):
                raise InvalidToolDefinition(f"Tool '{name}' handler is not callable")
            descriptor = ToolDescriptor(
                name=name, description=description, parameters=tuple(parameters),
            )
        self._tools[name] = ToolDef(
            descriptor=descriptor,
            handler=handler,
            coercers=native_coercers(handler),
        )
        logger.debug("Registered tool: %s", name)
        return descriptor

    def get_tool(self, name: str) -> ToolDef | None:
        """Look up a tool by name.

        Returns:
            The :class:`ToolDef` if found, else ``None``.
        """
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDef]:
        """Return all registered tools."""
        return list(self._tools.values())

    def get_descriptors(self) -> tuple[ToolDescriptor, ...]:
        """Return all descriptors in registration order."""
        return tuple(t.descriptor for t in self._tools.values())

    def format_as_text(self) -> str:
        """Render the tools as a markdown bullet list for prompt templates."""
        lines: list[str] = []
        for tool in self.get_descriptors():
            lines.append(f"- **{tool.name}**: {tool.description}")
            for param in tool.parameters:
                marker = "(required)" if param.is_required else "(optional)"
                lines.append(f"  - {param.name} ({param.type}) {marker}: {param.description}")
        return "".join(f"{line}\n" for line in lines)

    async def dispatch(self, tool_call: ToolCallRequest) -> str:
        """Execute a tool call and return its result as text.

        Raises:
            UnknownTool: If the tool is not registered.
            MissingRequiredParameter: If a required argument is absent.
            ArgumentConversionError: If an argument has the wrong type.
        """
        tool_def = self._tools.get(tool_call.name)
        if tool_def is None:
            raise UnknownTool(tool_call.name)

        arguments = parse_arguments(tool_call.name, tool_call.arguments)
        args = bind_arguments(tool_def.descriptor, arguments, tool_def.coercers)

        logger.info("Executing tool: %s(%s)", tool_call.name, arguments)
        result = tool_def.handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return "" if result is None else str(result)
