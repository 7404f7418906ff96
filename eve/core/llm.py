"""
Eve Assistant — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Provider is selected at startup via the LLM_PROVIDER env var.
Supports: gemini (default), anthropic, openai, cohere.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# Prior turns: [{"role": "user" | "assistant", "content": "..."}]
History = list[dict[str, str]]

# (api_key, model, system, messages, max_tokens, json_mode, temperature) -> text
_ProviderFn = Callable[[str, str, str, History, int, bool, float], Awaitable[str]]

# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_gemini(
    api_key: str, model: str, system: str, messages: History,
    max_tokens: int, json_mode: bool, temperature: float,
) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(
        model_name=model,
        system_instruction=system,
    )
    contents = [
        {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
        for m in messages
    ]
    response = await gm.generate_content_async(
        contents,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=temperature,
            response_mime_type="application/json" if json_mode else "text/plain",
        ),
    )
    return response.text


async def _complete_anthropic(
    api_key: str, model: str, system: str, messages: History,
    max_tokens: int, json_mode: bool, temperature: float,
) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    if json_mode:
        system += "\n\nReply with a single JSON object and nothing else."
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system=system,
        messages=messages,
    )
    return response.content[0].text


async def _complete_openai(
    api_key: str, model: str, system: str, messages: History,
    max_tokens: int, json_mode: bool, temperature: float,
) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "system", "content": system}, *messages],
        **kwargs,
    )
    return response.choices[0].message.content


async def _complete_cohere(
    api_key: str, model: str, system: str, messages: History,
    max_tokens: int, json_mode: bool, temperature: float,
) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "system", "content": system}, *messages],
        **kwargs,
    )
    return response.message.content[0].text


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read env vars and return (provider_fn, model, api_key)."""
    from eve.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton, populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str,
    user_message: str,
    history: History | None = None,
    max_tokens: int = 1024,
    json_mode: bool = False,
    temperature: float = 0.2,
) -> str:
    """Send a prompt plus prior turns to the configured provider.

    Raises on API errors — callers should handle exceptions.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    messages = [*(history or []), {"role": "user", "content": user_message}]
    return await _provider_fn(
        _api_key, _model, system, messages, max_tokens, json_mode, temperature
    )
