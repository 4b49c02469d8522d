"""LLM provider abstraction layer.

Provides a unified async text completion interface across OpenAI-compatible
chat endpoints, Vertex AI and Ollama.

Usage:
    from reelpipe.services.llm import get_adapter

    adapter = get_adapter("gpt-4o", settings)
    outcome = await adapter.text_completion(prompt, temperature=0.9)
    if outcome.ok:
        print(outcome.value)
"""

from reelpipe.services.llm.base import LLMAdapter, strip_code_fences
from reelpipe.services.llm.registry import get_adapter

__all__ = ["LLMAdapter", "get_adapter", "strip_code_fences"]
