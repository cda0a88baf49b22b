"""
Thin async wrapper around the OpenAI Chat Completions API.

Behaviour hierarchy:
1. If USE_OFFLINE_MODEL is set, return a deterministic placeholder without any
   external calls.
2. Otherwise call the OpenAI API through ``AsyncOpenAI``.

Any exception raised by the SDK (network errors, API errors, timeouts, empty
choices) is converted into a RuntimeError chaining the original so callers
have a single error path.
"""

from __future__ import annotations

import hashlib
import os
from typing import Dict, List, Optional, Tuple

from openai import AsyncOpenAI


_CLIENTS: Dict[Tuple[str, Optional[str], float], AsyncOpenAI] = {}


def _use_offline() -> bool:
    return os.getenv("USE_OFFLINE_MODEL", "").lower() in {"1", "true", "yes"}


def _deterministic_placeholder(messages: List[Dict[str, str]]) -> str:
    """Return a deterministic placeholder string based on the message content."""

    joined = "\n".join(f"{m.get('role')}:{m.get('content','')}" for m in messages)
    h = hashlib.sha1(joined.encode("utf-8")).hexdigest()[:12]
    return f"Offline response ({h})"


def _get_client(api_key: str, base_url: Optional[str], timeout: float) -> AsyncOpenAI:
    key = (api_key, base_url, timeout)
    if key not in _CLIENTS:
        _CLIENTS[key] = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
    return _CLIENTS[key]


async def call_openai(
    messages: List[Dict[str, str]],
    *,
    api_key: str,
    model: str = "gpt-4",
    temperature: float = 0.7,
    max_tokens: int = 300,
    timeout: float = 30.0,
    base_url: Optional[str] = None,
) -> str:
    """Chat completion returning the assistant message content.

    Raises:
        RuntimeError on any SDK, network or response-shape failure.
    """

    if _use_offline():
        return _deterministic_placeholder(messages)

    try:
        client = _get_client(api_key, base_url, timeout)
        response = await client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        content = response.choices[0].message.content
    except Exception as exc:
        raise RuntimeError(f"Error calling OpenAI: {exc}") from exc
    if not content:
        raise RuntimeError("Empty OpenAI response")
    return content


def reset_clients() -> None:
    _CLIENTS.clear()


__all__ = ["call_openai", "reset_clients"]
