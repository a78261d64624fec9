"""Application settings loaded from environment variables / .env file."""

import logging

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _strip_str(v: str | object) -> str | object:
    """Strip whitespace from string env values (common .env copy-paste issue)."""
    return v.strip() if isinstance(v, str) else v


class TavilySettings(BaseModel):
    """Configuration for the Tavily web search tool.

    Handed to :class:`~agentcore.tools.search.TavilySearchTool` at
    construction time.
    """

    api_key: str = Field(default="", description="Tavily API key.")
    base_url: str = Field(
        default="https://api.tavily.com/search",
        description="Tavily search endpoint.",
    )
    search_depth: str = Field(default="basic", description="'basic' or 'advanced'.")
    max_results: int = Field(default=3, description="Number of results to return.")
    include_answer: bool = Field(
        default=True,
        description="Ask Tavily for a direct answer in addition to results.",
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def strip_api_key(cls, v: str | object) -> str | object:
        return _strip_str(v)


class Settings(BaseSettings):
    """Agent runtime configuration.

    Values are loaded from environment variables and/or an ``.env`` file
    located at the project root.  Nested values use ``__`` as delimiter,
    e.g. ``TAVILY__API_KEY``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Completion provider ───────────────────────────────────────────
    llm_provider: str = Field(
        default="openai",
        description="Completion provider: 'openai', 'anthropic' or 'ollama'.",
    )
    temperature: float = Field(
        default=0.0,
        description="Sampling temperature for every completion call.",
    )

    # ── OpenAI ────────────────────────────────────────────────────────
    openai_api_key: str = Field(
        default="",
        description="OpenAI API key (required if llm_provider='openai').",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model.",
    )

    # ── Anthropic ─────────────────────────────────────────────────────
    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API key (required if llm_provider='anthropic').",
    )
    anthropic_model: str = Field(
        default="claude-3-5-haiku-latest",
        description="Anthropic model name.",
    )
    max_tokens: int = Field(
        default=2048,
        description="Completion token cap (Anthropic requires one).",
    )

    # ── Local LLM (Ollama) ────────────────────────────────────────────
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama API base URL.",
    )
    ollama_model: str = Field(
        default="qwen2.5:7b-instruct-q4_K_M",
        description="Ollama model name to use for inference.",
    )

    @field_validator("anthropic_api_key", "openai_api_key", mode="before")
    @classmethod
    def strip_api_keys(cls, v: str | object) -> str | object:
        return _strip_str(v)

    # ── Prompts ───────────────────────────────────────────────────────
    prompts_dir: str = Field(
        default="prompts",
        description="Directory holding '<key>.txt' prompt files.",
    )
    system_prompt_key: str = Field(
        default="system",
        description="Prompt key of the base system prompt.",
    )
    reasoning_prompt_key: str = Field(
        default="reasoning",
        description="Prompt key of the reasoning instruction ({{tools}} is substituted).",
    )

    # ── Agent loop ────────────────────────────────────────────────────
    agent_name: str = Field(
        default="Agent",
        description="Name used for the trace and agent spans.",
    )
    max_iterations: int = Field(
        default=10,
        ge=1,
        description="Maximum reasoning/tool round-trips per call.",
    )

    # ── Tools ─────────────────────────────────────────────────────────
    tavily: TavilySettings = Field(default_factory=TavilySettings)

    # ── General ───────────────────────────────────────────────────────
    debug: bool = Field(
        default=False,
        description="Enable debug logging.",
    )


def configure_logging(debug: bool = False) -> None:
    """Set up root logging for scripts embedding the agent."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


settings = Settings()
