"""
OpenRouter chat-completions wire layer (sync via requests, async via aiohttp).

Single-shot: no retries here, the caller owns retry policy. Every failure
(non-2xx, timeout, connection error, malformed body) becomes a ProviderError.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
import requests

from .errors import ProviderError

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1"


def _log_llm_call(log_path: str, start_time: datetime, end_time: datetime, tokens_in: int, tokens_out: int, function_name: str, prompt_preview: str):
    """Append one call line to the LLM call ledger"""
    duration = (end_time - start_time).total_seconds()
    log_line = f"{start_time.strftime('%Y-%m-%d %H:%M:%S')} | {function_name} | Duration: {duration:.2f}s | Tokens In: {tokens_in} | Tokens Out: {tokens_out} | Prompt: {prompt_preview}\n"

    with open(log_path, "a", encoding="utf-8") as f:
        f.write(log_line)


def _count_tokens_in_messages(messages: List[Dict[str, Any]]) -> int:
    """Rough token count estimation for input messages"""
    total_chars = sum(len(m.get("content", "")) for m in messages)
    # Rough estimation: ~4 characters per token
    return total_chars // 4


def _build_messages(system_prompt: Optional[str], prompt: str) -> List[Dict[str, Any]]:
    """Build message list for API request.

    Args:
        system_prompt: Optional system instruction
        prompt: User's text prompt

    Returns:
        List of message dicts ready for API
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


def _build_payload(
    model: str,
    messages: List[Dict[str, Any]],
    temperature: float,
    max_tokens: int,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build API request payload; passthrough params override the defaults."""
    payload = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if extra:
        payload.update(extra)
    return payload


def _headers(api_key: str, referer: str, title: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "HTTP-Referer": referer,
        "X-Title": title,
        "Content-Type": "application/json",
    }


def _upstream_message(body: Any, fallback: str) -> str:
    """Pull the provider's error message out of an error body, if any."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return fallback


def _parse_completion(full_response: Any) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
    """Extract (content, usage, metadata) from a chat-completions body.

    Raises:
        ProviderError: If the body has no choices/message structure
    """
    try:
        choice = full_response["choices"][0]
        content = choice["message"].get("content") or ""
    except (KeyError, IndexError, TypeError, AttributeError):
        raise ProviderError(
            "OpenRouter API error: malformed response (no choices)",
            provider="openrouter",
            payload=full_response,
        )

    usage = full_response.get("usage") or {}
    usage_out = {
        "prompt_tokens": usage.get("prompt_tokens"),
        "completion_tokens": usage.get("completion_tokens"),
        "total_tokens": usage.get("total_tokens"),
    }
    metadata = {
        "id": full_response.get("id"),
        "created": full_response.get("created"),
        "finish_reason": choice.get("finish_reason"),
    }
    return content, usage_out, metadata


def _finish_call(log_path: Optional[str], start_time: datetime, messages, prompt: str, usage: Dict[str, Any], caller: str):
    if not log_path:
        return
    tokens_in = usage.get("prompt_tokens") or _count_tokens_in_messages(messages)
    tokens_out = usage.get("completion_tokens") or 0
    prompt_preview = prompt[:20] + "..." if len(prompt) > 20 else prompt
    try:
        _log_llm_call(log_path, start_time, datetime.now(), tokens_in, tokens_out, caller, prompt_preview)
    except OSError as e:
        logger.warning("Could not write LLM call ledger %s: %s", log_path, e)


def llm(
    model: str,
    prompt: str,
    api_key: str,
    system_prompt: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 4000,
    extra: Optional[Dict[str, Any]] = None,
    base_url: str = OPENROUTER_URL,
    timeout: float = 120.0,
    referer: str = "http://localhost:3000",
    title: str = "Cine-AI",
    log_path: Optional[str] = "llm_log.txt",
) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
    """
    OpenRouter chat completion (blocking).

    Args:
        model: Target model (e.g., "anthropic/claude-3.5-sonnet")
        prompt: User prompt
        api_key: OpenRouter credential for this call
        system_prompt: Optional system instruction
        temperature: Sampling temperature
        max_tokens: Completion token cap
        extra: Passthrough request parameters
        base_url: API root
        timeout: Per-call timeout in seconds
        log_path: Call-ledger file, or None to skip ledger logging

    Returns:
        Tuple of (content, usage, metadata)

    Raises:
        ProviderError: On any transport, status or body failure
    """
    if not api_key:
        raise ProviderError("OpenRouter API key is required", provider="openrouter")

    start_time = datetime.now()
    messages = _build_messages(system_prompt, prompt)
    payload = _build_payload(model, messages, temperature, max_tokens, extra)

    try:
        response = requests.post(
            url=f"{base_url}/chat/completions",
            headers=_headers(api_key, referer, title),
            data=json.dumps(payload),
            timeout=timeout,
        )
    except requests.Timeout as e:
        raise ProviderError(f"OpenRouter API error: timed out after {timeout}s", provider="openrouter") from e
    except requests.RequestException as e:
        raise ProviderError(f"OpenRouter API error: {e}", provider="openrouter") from e

    try:
        full_response = response.json()
    except ValueError:
        full_response = None

    if not response.ok:
        message = _upstream_message(full_response, response.text[:200] or response.reason or "request failed")
        logger.error("OpenRouter generation error (%s): %s", response.status_code, message)
        raise ProviderError(
            f"OpenRouter API error: {message}",
            status=response.status_code,
            provider="openrouter",
            payload=full_response,
        )
    if full_response is None:
        raise ProviderError(
            "OpenRouter API error: non-JSON response",
            status=response.status_code,
            provider="openrouter",
        )

    content, usage, metadata = _parse_completion(full_response)
    _finish_call(log_path, start_time, messages, prompt, usage, "llm")
    return content, usage, metadata


async def llm_async(
    model: str,
    prompt: str,
    api_key: str,
    system_prompt: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 4000,
    extra: Optional[Dict[str, Any]] = None,
    base_url: str = OPENROUTER_URL,
    timeout: float = 120.0,
    referer: str = "http://localhost:3000",
    title: str = "Cine-AI",
    log_path: Optional[str] = "llm_log.txt",
) -> Tuple[str, Dict[str, Any], Dict[str, Any]]:
    """
    Async version of `llm`.
    """
    if not api_key:
        raise ProviderError("OpenRouter API key is required", provider="openrouter")

    start_time = datetime.now()
    messages = _build_messages(system_prompt, prompt)
    payload = _build_payload(model, messages, temperature, max_tokens, extra)

    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.post(
                f"{base_url}/chat/completions",
                headers=_headers(api_key, referer, title),
                data=json.dumps(payload),
            ) as response:
                status = response.status
                text = await response.text()
    except aiohttp.ClientError as e:
        raise ProviderError(f"OpenRouter API error: {e}", provider="openrouter") from e
    except asyncio.TimeoutError as e:
        raise ProviderError(f"OpenRouter API error: timed out after {timeout}s", provider="openrouter") from e

    try:
        full_response = json.loads(text)
    except json.JSONDecodeError:
        full_response = None

    if status >= 400:
        message = _upstream_message(full_response, text[:200] or "request failed")
        logger.error("OpenRouter generation error (%s): %s", status, message)
        raise ProviderError(f"OpenRouter API error: {message}", status=status, provider="openrouter", payload=full_response)
    if full_response is None:
        raise ProviderError("OpenRouter API error: non-JSON response", status=status, provider="openrouter")

    content, usage, metadata = _parse_completion(full_response)
    _finish_call(log_path, start_time, messages, prompt, usage, "async")
    return content, usage, metadata


def list_models(api_key: str, base_url: str = OPENROUTER_URL, timeout: float = 10.0) -> List[Dict[str, Any]]:
    """GET /models; used as the credential/reachability check.

    Raises:
        ProviderError: If the request fails or returns non-2xx
    """
    try:
        response = requests.get(
            f"{base_url}/models",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
        )
        response.raise_for_status()
        body = response.json()
        return body.get("data", []) if isinstance(body, dict) else []
    except (requests.RequestException, ValueError) as e:
        raise ProviderError(f"OpenRouter API error: {e}", provider="openrouter") from e
