"""Prompt lookup for the agent orchestrator.

Prompts are fetched by key from a :class:`PromptProvider`.  Templates use
``{{name}}`` placeholders, e.g. the reasoning instruction receives the text
rendering of the registered tools as ``{{tools}}``.

A provider returns ``None`` for an unknown key instead of raising; the
orchestrator then runs without a system prompt and falls back to
:data:`REASONING_PROMPT` for the reasoning step.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# ── Fallback reasoning instruction ────────────────────────────────────────────

REASONING_PROMPT = """\
Before responding, think about what the user needs and decide how to proceed.

Available tools:
{{tools}}

Choose route "TOOL" if one of the tools above is needed to gather information \
or perform an action that the conversation does not already cover. Choose \
route "ANSWER" if you can answer the user directly, including when earlier tool \
results in the conversation already contain what you need.

Explain your reasoning briefly in "reasoning".\
"""


def compile_template(template: str, variables: Mapping[str, str] | None = None) -> str:
    """Substitute ``{{name}}`` placeholders; unknown placeholders are left as is."""
    for name, value in (variables or {}).items():
        template = template.replace("{{" + name + "}}", value)
    return template


# ── Protocol ──────────────────────────────────────────────────────────────────


@runtime_checkable
class PromptProvider(Protocol):
    """Source of named prompt templates."""

    def get_prompt(
        self,
        key: str,
        variables: Mapping[str, str] | None = None,
        label: str | None = None,
        version: int | None = None,
    ) -> str | None:
        """Return the compiled prompt for ``key``, or ``None`` if absent."""
        ...


# ── Implementations ───────────────────────────────────────────────────────────


class LocalPromptProvider:
    """Reads prompts from ``<directory>/<key>.txt``.

    ``label`` and ``version`` are accepted for interface compatibility and
    ignored.
    """

    def __init__(self, directory: str | Path = "prompts") -> None:
        self._directory = Path(directory)

    def get_prompt(
        self,
        key: str,
        variables: Mapping[str, str] | None = None,
        label: str | None = None,
        version: int | None = None,
    ) -> str | None:
        path = self._directory / f"{key}.txt"
        if not path.is_file():
            logger.debug("Prompt '%s' not found at %s", key, path)
            return None
        content = path.read_text(encoding="utf-8").strip()
        return compile_template(content, variables)


class StaticPromptProvider:
    """Serves prompts from an in-memory key-to-template mapping.

    ``label`` and ``version`` are ignored, as in :class:`LocalPromptProvider`.
    """

    def __init__(self, prompts: Mapping[str, str] | None = None) -> None:
        self._prompts = dict(prompts or {})

    def get_prompt(
        self,
        key: str,
        variables: Mapping[str, str] | None = None,
        label: str | None = None,
        version: int | None = None,
    ) -> str | None:
        template = self._prompts.get(key)
        if template is None:
            return None
        return compile_template(template, variables)
