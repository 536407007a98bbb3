"""
Completion providers for Autopoiesis.

This module is the only place that *directly* calls an LLM.  Everything else (driver, tools,
history) stays model-agnostic: a provider turns an ordered list of turns into raw completion text,
and the orchestrator takes it from there.

We support three back-ends out of the box:

1. **OpenAI / Anthropic** via their official SDKs (requires env keys).
2. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models.

Additional providers can be added by subclassing :class:`BaseProvider` and registering via
:func:`register_provider`.
"""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    List,
    Sequence,
    Type,
)

import httpx

from autopoiesis.config import settings
from autopoiesis.core.schema import Turn

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(name: str | None = None) -> "BaseProvider":
    """
    Factory that returns an instantiated provider.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "PROVIDER", "openai")
    cls = _PROVIDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(ABC):
    """Abstract provider that converts an ordered prompt into completion text."""

    @abstractmethod
    async def complete(self, messages: Sequence[Turn]) -> str:
        """Return the raw completion text for *messages*."""


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI chat completions in JSON mode."""

    async def complete(self, messages: Sequence[Turn]) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY, timeout=settings.COMPLETION_TIMEOUT
        )
        resp = await client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[m.model_dump() for m in messages],  # type: ignore[misc]
            temperature=settings.TEMPERATURE,
            response_format={"type": "json_object"},
        )
        content = resp.choices[0].message.content or ""
        logger.debug("OpenAI provider response: %s", content)
        return content


@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Claude messages API."""

    async def complete(self, messages: Sequence[Turn]) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        # Anthropic takes system text separately and expects alternating user/assistant turns
        system_parts = [m.content for m in messages if m.role == "system"]
        conversation: List[dict[str, str]] = []
        for m in messages:
            if m.role == "system":
                continue
            if conversation and conversation[-1]["role"] == m.role:
                conversation[-1]["content"] += "\n\n" + m.content
            else:
                conversation.append({"role": m.role, "content": m.content})

        client = anthropic.AsyncAnthropic(
            api_key=settings.ANTHROPIC_API_KEY, timeout=settings.COMPLETION_TIMEOUT
        )
        response = await client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=8192,
            system="\n\n".join(system_parts),
            messages=conversation,  # type: ignore[arg-type]
            temperature=settings.TEMPERATURE,
        )

        # Handle different content block types from Anthropic API
        if response.content and response.content[0].type == "text":
            content = response.content[0].text
        else:
            content = str(response.content[0]) if response.content else ""

        logger.debug("Anthropic provider response: %s", content)
        return content


@register_provider("tgi")
class TGIProvider(BaseProvider):
    """TGI-based provider over plain httpx."""

    async def complete(self, messages: Sequence[Turn]) -> str:
        prompt = "\n\n".join(f"{m.role.capitalize()}: {m.content}" for m in messages)
        payload = {
            "inputs": f"{prompt}\n\nAssistant:",
            "parameters": {
                "max_new_tokens": 2048,
                "temperature": settings.TEMPERATURE,
                "stop": ["User:", "</s>"],
            },
        }

        async with httpx.AsyncClient(timeout=settings.COMPLETION_TIMEOUT) as client:
            resp = await client.post(settings.TGI_ENDPOINT, json=payload)
            resp.raise_for_status()
            content = resp.json()["generated_text"]

        logger.debug("TGI provider response: %s", content)
        return content
