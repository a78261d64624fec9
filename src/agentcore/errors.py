"""Error taxonomy for the agent runtime.

Every failure raised by the core derives from :class:`AgentError`.  None of
them is retried or repaired: they are recorded on the telemetry span that is
open when they pass through and then propagate to the caller of
:meth:`~agentcore.agent.orchestrator.Agent.get_response`.

Exceptions raised by the LLM SDKs themselves are passed through unchanged;
:class:`ProviderError` is only used for failures our adapters detect.
"""

from __future__ import annotations

from typing import Any


class AgentError(Exception):
    """Base class for all agent runtime errors."""


class InvalidToolDefinition(AgentError):
    """A tool could not be registered (duplicate name, undescribable signature)."""


class UnknownTool(AgentError):
    """Dispatch was requested for a tool name that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: '{name}'")
        self.name = name


class MissingRequiredParameter(AgentError):
    """A tool call omitted a parameter that has no default."""

    def __init__(self, tool: str, parameter: str) -> None:
        super().__init__(f"Missing required parameter '{parameter}' for tool '{tool}'")
        self.tool = tool
        self.parameter = parameter


class ArgumentConversionError(AgentError):
    """A tool-call argument could not be coerced to its declared type."""

    def __init__(
        self,
        tool: str,
        parameter: str | None,
        value: Any,
        expected_type: str,
    ) -> None:
        target = f"parameter '{parameter}'" if parameter else "arguments"
        super().__init__(
            f"Cannot convert {value!r} to {expected_type} for {target} of tool '{tool}'"
        )
        self.tool = tool
        self.parameter = parameter
        self.value = value
        self.expected_type = expected_type


class SchemaValidationError(AgentError):
    """Structured model output did not match the expected shape."""


class IterationLimitExceeded(AgentError):
    """The reasoning/tool loop hit its bound without producing an answer."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Max iterations ({max_iterations}) exceeded")
        self.max_iterations = max_iterations


class ProviderError(AgentError):
    """The completion service returned something the adapter cannot use."""
