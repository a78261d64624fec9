"""Completion provider interface and its SDK adapters.

Defines the shared message model, a protocol-based interface for LLM
communication, and three concrete implementations:

- :class:`OpenAIProvider` — wraps the OpenAI async client
- :class:`AnthropicProvider` — wraps the Anthropic async client
- :class:`OllamaProvider` — wraps the Ollama async client (local)

Every provider supports two modes: a plain completion that may return tool
calls, and a schema-constrained completion decoded into a pydantic model
(see :mod:`agentcore.agent.schema`).  Each call is wrapped in a generation
span.  Exceptions raised by the SDKs pass through unchanged; nothing is
retried.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

from agentcore.agent.schema import decode, generate_schema
from agentcore.config import Settings, settings
from agentcore.errors import ProviderError
from agentcore.telemetry import Telemetry

if TYPE_CHECKING:
    from agentcore.tools.registry import ToolDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


# ── Message types ─────────────────────────────────────────────────────────────


class ChatRole(StrEnum):
    """Role of a message in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A single tool call requested by the LLM.

    ``arguments`` is the raw JSON text produced by the model; it is parsed
    only when the call is dispatched.
    """

    id: str
    name: str
    arguments: str = ""


class ChatMessage(BaseModel):
    """A single message in a chat conversation.

    ``tool`` messages carry the id and name of the call they answer;
    ``assistant`` messages that request tools carry ``tool_call_requests``.
    """

    role: ChatRole
    content: str = ""
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_call_requests: list[ToolCallRequest] | None = None


class CompletionResult(BaseModel):
    """Result of a plain completion: either text content or tool calls."""

    content: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    model: str = ""

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


def to_text_format(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    """Rewrite tool traffic as plain assistant text.

    Tool results become ``[Tool Result: <name>]`` messages and assistant
    tool-call requests become a ``[Tool Calls]`` listing, so a model called
    without tools never sees raw tool-call structures.  Other messages pass
    through unchanged.
    """
    result: list[ChatMessage] = []
    for msg in messages:
        if msg.role == ChatRole.TOOL:
            result.append(
                ChatMessage(
                    role=ChatRole.ASSISTANT,
                    content=f"[Tool Result: {msg.tool_name}]\n{msg.content}",
                )
            )
        elif msg.role == ChatRole.ASSISTANT and msg.tool_call_requests:
            calls = "\n".join(f"- {tc.name}({tc.arguments})" for tc in msg.tool_call_requests)
            result.append(ChatMessage(role=ChatRole.ASSISTANT, content=f"[Tool Calls]\n{calls}"))
        else:
            result.append(msg)
    return result


# ── Protocol ──────────────────────────────────────────────────────────────────


@runtime_checkable
class CompletionProvider(Protocol):
    """Abstract interface for LLM communication."""

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> CompletionResult:
        """Send a chat completion request.

        Args:
            messages: Conversation history.
            tools: Optional tool descriptors the model may call.

        Returns:
            Text content, or the list of tool calls the model requested.
        """
        ...

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema_name: str,
        shape: type[T],
    ) -> T:
        """Send a request constrained to ``shape``'s JSON schema.

        Raises:
            SchemaValidationError: If the output cannot be decoded.
        """
        ...


# ── OpenAI implementation ─────────────────────────────────────────────────────


class OpenAIProvider:
    """Provider wrapping the OpenAI async client.

    Structured mode uses a strict ``json_schema`` response format.
    """

    provider_name = "openai"

    def __init__(
        self,
        telemetry: Telemetry,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        client: Any = None,
    ) -> None:
        self._telemetry = telemetry
        self._model = model or settings.openai_model
        self._temperature = settings.temperature if temperature is None else temperature
        if client is None:
            import openai

            client = openai.AsyncOpenAI(api_key=api_key or settings.openai_api_key)
        self._client = client

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> CompletionResult:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
        ) as generation:
            kwargs: dict[str, Any] = {
                "model": self._model,
                "messages": _messages_to_openai(messages),
                "temperature": self._temperature,
            }
            if tools:
                kwargs["tools"] = _tools_to_openai(tools)

            response = await self._client.chat.completions.create(**kwargs)
            result = _parse_openai_response(response)

            generation.set_response_model(result.model)
            generation.set_token_usage(result.input_tokens, result.output_tokens)
            generation.set_completion(_completion_summary(result))
            return result

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema_name: str,
        shape: type[T],
    ) -> T:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
        ) as generation:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=_messages_to_openai(messages),
                temperature=self._temperature,
                response_format={
                    "type": "json_schema",
                    "json_schema": {
                        "name": schema_name,
                        "schema": generate_schema(shape),
                        "strict": True,
                    },
                },
            )
            result = _parse_openai_response(response)

            generation.set_response_model(result.model)
            generation.set_token_usage(result.input_tokens, result.output_tokens)
            generation.set_completion(result.content)
            return decode(result.content or "", shape)


# ── Anthropic implementation ──────────────────────────────────────────────────


class AnthropicProvider:
    """Provider wrapping the Anthropic async client.

    Structured mode forces a single tool whose input schema is the generated
    schema and decodes the tool input.
    """

    provider_name = "anthropic"

    def __init__(
        self,
        telemetry: Telemetry,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        client: Any = None,
    ) -> None:
        self._telemetry = telemetry
        self._model = model or settings.anthropic_model
        self._temperature = settings.temperature if temperature is None else temperature
        self._max_tokens = max_tokens or settings.max_tokens
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(api_key=api_key or settings.anthropic_api_key)
        self._client = client

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> CompletionResult:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        ) as generation:
            kwargs = self._request_kwargs(messages)
            if tools:
                kwargs["tools"] = _tools_to_anthropic(tools)

            response = await self._client.messages.create(**kwargs)

            content = ""
            tool_calls: list[ToolCallRequest] = []
            for block in response.content:
                if block.type == "text":
                    content += block.text
                elif block.type == "tool_use":
                    tool_calls.append(
                        ToolCallRequest(
                            id=block.id,
                            name=block.name,
                            arguments=json.dumps(block.input if isinstance(block.input, dict) else {}),
                        )
                    )

            result = CompletionResult(
                content=None if tool_calls else content,
                tool_calls=tool_calls or None,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                model=response.model,
            )
            generation.set_response_model(result.model)
            generation.set_token_usage(result.input_tokens, result.output_tokens)
            generation.set_completion(_completion_summary(result))
            return result

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema_name: str,
        shape: type[T],
    ) -> T:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        ) as generation:
            kwargs = self._request_kwargs(messages)
            kwargs["tools"] = [
                {
                    "name": schema_name,
                    "description": f"Respond with a {schema_name} object.",
                    "input_schema": generate_schema(shape),
                }
            ]
            kwargs["tool_choice"] = {"type": "tool", "name": schema_name}

            response = await self._client.messages.create(**kwargs)

            payload = next(
                (b.input for b in response.content if b.type == "tool_use"),
                None,
            )
            if payload is None:
                raise ProviderError(f"Anthropic returned no '{schema_name}' payload")

            raw = json.dumps(payload)
            generation.set_response_model(response.model)
            generation.set_token_usage(
                response.usage.input_tokens, response.usage.output_tokens,
            )
            generation.set_completion(raw)
            return decode(raw, shape)

    def _request_kwargs(self, messages: Sequence[ChatMessage]) -> dict[str, Any]:
        system_text, api_messages = _messages_to_anthropic(messages)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": api_messages,
        }
        if system_text:
            kwargs["system"] = system_text
        return kwargs


# ── Ollama implementation ─────────────────────────────────────────────────────


class OllamaProvider:
    """Provider wrapping the Ollama async API.

    Structured mode passes the generated schema as ``format``.  Ollama does
    not assign tool-call ids, so each call gets a random one.
    """

    provider_name = "ollama"

    def __init__(
        self,
        telemetry: Telemetry,
        base_url: str | None = None,
        model: str | None = None,
        temperature: float | None = None,
        client: Any = None,
    ) -> None:
        self._telemetry = telemetry
        self._model = model or settings.ollama_model
        self._temperature = settings.temperature if temperature is None else temperature
        if client is None:
            import ollama

            client = ollama.AsyncClient(host=base_url or settings.ollama_base_url)
        self._client = client

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> CompletionResult:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
        ) as generation:
            kwargs: dict[str, Any] = {
                "model": self._model,
                "messages": _messages_to_ollama(messages),
                "options": {"temperature": self._temperature},
            }
            if tools:
                kwargs["tools"] = _tools_to_openai(tools)

            response = await self._client.chat(**kwargs)

            message = response.get("message", {}) or {}
            raw_tool_calls = message.get("tool_calls") or []
            tool_calls: list[ToolCallRequest] = []
            for tc in raw_tool_calls:
                func = tc.get("function", {})
                arguments = func.get("arguments", {})
                tool_calls.append(
                    ToolCallRequest(
                        id=f"call_{uuid.uuid4().hex[:8]}",
                        name=func.get("name", ""),
                        arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
                    )
                )

            result = CompletionResult(
                content=None if tool_calls else (message.get("content", "") or ""),
                tool_calls=tool_calls or None,
                input_tokens=response.get("prompt_eval_count"),
                output_tokens=response.get("eval_count"),
                model=response.get("model", self._model) or self._model,
            )
            generation.set_response_model(result.model)
            generation.set_token_usage(result.input_tokens, result.output_tokens)
            generation.set_completion(_completion_summary(result))
            return result

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage],
        schema_name: str,
        shape: type[T],
    ) -> T:
        with self._telemetry.start_generation(
            provider=self.provider_name,
            model=self._model,
            input=list(messages),
            temperature=self._temperature,
        ) as generation:
            response = await self._client.chat(
                model=self._model,
                messages=_messages_to_ollama(messages),
                format=generate_schema(shape),
                options={"temperature": self._temperature},
            )
            message = response.get("message", {}) or {}
            content = message.get("content", "") or ""

            generation.set_response_model(response.get("model", self._model))
            generation.set_token_usage(
                response.get("prompt_eval_count"), response.get("eval_count"),
            )
            generation.set_completion(content)
            logger.debug("Ollama structured output for %s: %s", schema_name, content[:200])
            return decode(content, shape)


# ── Factory ───────────────────────────────────────────────────────────────────


def create_provider(config: Settings, telemetry: Telemetry) -> CompletionProvider:
    """Instantiate the provider named by ``config.llm_provider``."""
    name = config.llm_provider.strip().lower()
    if name == "openai":
        return OpenAIProvider(
            telemetry,
            api_key=config.openai_api_key,
            model=config.openai_model,
            temperature=config.temperature,
        )
    if name == "anthropic":
        return AnthropicProvider(
            telemetry,
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )
    if name == "ollama":
        return OllamaProvider(
            telemetry,
            base_url=config.ollama_base_url,
            model=config.ollama_model,
            temperature=config.temperature,
        )
    raise ProviderError(f"Unknown LLM provider: {config.llm_provider}")


# ── Format conversion helpers ─────────────────────────────────────────────────


def _messages_to_openai(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    """Convert ChatMessage list to OpenAI's message format.

    Assistant tool-call requests and tool results keep their ids so the
    API can pair them.
    """
    result: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == ChatRole.ASSISTANT and msg.tool_call_requests:
            result.append(
                {
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": tc.arguments or "{}"},
                        }
                        for tc in msg.tool_call_requests
                    ],
                }
            )
        elif msg.role == ChatRole.TOOL:
            result.append(
                {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
            )
        else:
            result.append({"role": msg.role.value, "content": msg.content})
    return result


def _messages_to_anthropic(
    messages: Sequence[ChatMessage],
) -> tuple[str, list[dict[str, Any]]]:
    """Split out the system text and convert the rest to Anthropic blocks.

    Consecutive tool results are merged into one ``user`` message, as the
    API requires all results of a turn to follow the ``tool_use`` turn.
    """
    system_parts: list[str] = []
    api_messages: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == ChatRole.SYSTEM:
            system_parts.append(msg.content)
        elif msg.role == ChatRole.ASSISTANT and msg.tool_call_requests:
            blocks: list[dict[str, Any]] = []
            if msg.content:
                blocks.append({"type": "text", "text": msg.content})
            for tc in msg.tool_call_requests:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": json.loads(tc.arguments) if tc.arguments.strip() else {},
                    }
                )
            api_messages.append({"role": "assistant", "content": blocks})
        elif msg.role == ChatRole.TOOL:
            block = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content,
            }
            previous = api_messages[-1] if api_messages else None
            if (
                previous is not None
                and previous["role"] == "user"
                and isinstance(previous["content"], list)
                and all(b.get("type") == "tool_result" for b in previous["content"])
            ):
                previous["content"].append(block)
            else:
                api_messages.append({"role": "user", "content": [block]})
        else:
            api_messages.append({"role": msg.role.value, "content": msg.content})
    return "\n\n".join(system_parts), api_messages


def _messages_to_ollama(messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    """Convert ChatMessage list to Ollama's message format."""
    result: list[dict[str, Any]] = []
    for msg in messages:
        entry: dict[str, Any] = {"role": msg.role.value, "content": msg.content}
        if msg.role == ChatRole.ASSISTANT and msg.tool_call_requests:
            entry["tool_calls"] = [
                {
                    "function": {
                        "name": tc.name,
                        "arguments": json.loads(tc.arguments) if tc.arguments.strip() else {},
                    }
                }
                for tc in msg.tool_call_requests
            ]
        elif msg.role == ChatRole.TOOL and msg.tool_name:
            entry["tool_name"] = msg.tool_name
        result.append(entry)
    return result


def _tools_to_openai(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    """Convert descriptors to the OpenAI function-calling format.

    Ollama accepts the same format.
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema(),
            },
        }
        for tool in tools
    ]


def _tools_to_anthropic(tools: Sequence[ToolDescriptor]) -> list[dict[str, Any]]:
    """Convert descriptors to Anthropic's tool format."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.parameters_schema(),
        }
        for tool in tools
    ]


def _parse_openai_response(response: Any) -> CompletionResult:
    """Extract content or tool calls from an OpenAI chat completion."""
    if not response.choices:
        raise ProviderError("OpenAI returned no choices")

    message = response.choices[0].message
    tool_calls: list[ToolCallRequest] = []
    for tc in message.tool_calls or []:
        arguments = tc.function.arguments
        tool_calls.append(
            ToolCallRequest(
                id=tc.id,
                name=tc.function.name,
                arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
            )
        )

    usage = response.usage
    return CompletionResult(
        content=None if tool_calls else (message.content or ""),
        tool_calls=tool_calls or None,
        input_tokens=usage.prompt_tokens if usage else None,
        output_tokens=usage.completion_tokens if usage else None,
        model=response.model or "",
    )


def _completion_summary(result: CompletionResult) -> Any:
    """What a generation span records as its completion."""
    if result.tool_calls:
        return {
            "toolCalls": [{"name": tc.name, "arguments": tc.arguments} for tc in result.tool_calls]
        }
    return result.content
