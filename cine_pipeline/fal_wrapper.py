"""
fal.ai media generation wire layer (image / video / audio).

Same contract as the OpenRouter wrapper: one request per call, no retries,
every failure becomes a ProviderError.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
import requests

from .errors import ProviderError

logger = logging.getLogger(__name__)

FAL_URL = "https://fal.run"

ENDPOINTS = {
    "image": "/fal-ai/flux/dev",
    "video": "/fal-ai/runway-gen3/turbo/image-to-video",
    "audio": "/fal-ai/kokoro-tts",
}


def build_payload(modality: str, prompt: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """Build the request body for a modality from a prompt plus passthrough params.

    Args:
        modality: "image", "video" or "audio"
        prompt: Text prompt (motion prompt for video, narration text for audio)
        params: Extra generation parameters (image_size, seed, image_url, voice, ...)

    Returns:
        Payload dict ready for the fal endpoint
    """
    if modality == "image":
        payload = {
            "prompt": prompt,
            "image_size": params.get("image_size", "landscape_16_9"),
            "num_inference_steps": params.get("steps", 28),
            "guidance_scale": params.get("guidance_scale", 3.5),
            "num_images": params.get("num_images", 1),
            "enable_safety_checker": True,
        }
        if params.get("seed") is not None:
            payload["seed"] = params["seed"]
        return payload

    if modality == "video":
        return {
            "prompt": prompt,
            "image_url": params.get("image_url"),
            "duration": params.get("duration", 5),
            "ratio": params.get("ratio", "16:9"),
        }

    if modality == "audio":
        return {
            "text": prompt,
            "voice": params.get("voice") or "af_bella",
        }

    raise ValueError(f"Unknown media modality: {modality}")


def extract_media_url(data: Any) -> Optional[str]:
    """Find the media URL in a fal response.

    Handles:
    - {"images": [{"url": ...}]}
    - {"video": {"url": ...}} / {"audio": {"url": ...}}
    - {"audio_url": ...} / {"url": ...}
    """
    if not isinstance(data, dict):
        return None

    images = data.get("images")
    if isinstance(images, list) and images:
        first = images[0]
        if isinstance(first, dict) and first.get("url"):
            return first["url"]
        if isinstance(first, str):
            return first

    for key in ("video", "audio", "audio_file"):
        node = data.get(key)
        if isinstance(node, dict) and node.get("url"):
            return node["url"]
        if isinstance(node, str) and node:
            return node

    for key in ("audio_url", "video_url", "url"):
        if isinstance(data.get(key), str) and data[key]:
            return data[key]
    return None


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list) and detail:
            return json.dumps(detail)[:200]
    return fallback


def fal_request(
    endpoint: str,
    payload: Dict[str, Any],
    api_key: str,
    base_url: str = FAL_URL,
    timeout: float = 300.0,
) -> Dict[str, Any]:
    """POST a generation request to fal.run and return the JSON body.

    Raises:
        ProviderError: On any transport, status or body failure
    """
    if not api_key:
        raise ProviderError("FAL.ai API key is required", provider="falai")

    try:
        response = requests.post(
            f"{base_url}{endpoint}",
            headers={"Authorization": f"Key {api_key}", "Content-Type": "application/json"},
            json=payload,
            timeout=timeout,
        )
    except requests.Timeout as e:
        raise ProviderError(f"FAL.ai API error: timed out after {timeout}s", provider="falai") from e
    except requests.RequestException as e:
        raise ProviderError(f"FAL.ai API error: {e}", provider="falai") from e

    try:
        body = response.json()
    except ValueError:
        body = None

    if not response.ok:
        message = _error_message(body, response.text[:200] or "request failed")
        logger.error("FAL.ai generation error (%s): %s", response.status_code, message)
        raise ProviderError(f"FAL.ai API error: {message}", status=response.status_code, provider="falai", payload=body)
    if not isinstance(body, dict):
        raise ProviderError("FAL.ai API error: malformed response", status=response.status_code, provider="falai")
    return body


async def fal_request_async(
    endpoint: str,
    payload: Dict[str, Any],
    api_key: str,
    base_url: str = FAL_URL,
    timeout: float = 300.0,
) -> Dict[str, Any]:
    """Async version of `fal_request`."""
    if not api_key:
        raise ProviderError("FAL.ai API key is required", provider="falai")

    try:
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
            async with session.post(
                f"{base_url}{endpoint}",
                headers={"Authorization": f"Key {api_key}", "Content-Type": "application/json"},
                data=json.dumps(payload),
            ) as response:
                status = response.status
                text = await response.text()
    except aiohttp.ClientError as e:
        raise ProviderError(f"FAL.ai API error: {e}", provider="falai") from e
    except asyncio.TimeoutError as e:
        raise ProviderError(f"FAL.ai API error: timed out after {timeout}s", provider="falai") from e

    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        body = None

    if status >= 400:
        message = _error_message(body, text[:200] or "request failed")
        logger.error("FAL.ai generation error (%s): %s", status, message)
        raise ProviderError(f"FAL.ai API error: {message}", status=status, provider="falai", payload=body)
    if not isinstance(body, dict):
        raise ProviderError("FAL.ai API error: malformed response", status=status, provider="falai")
    return body
