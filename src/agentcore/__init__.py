"""Stateless LLM agent runtime: tool registry, structured output and a bounded reasoning/tool loop."""

__version__ = "0.1.0"
