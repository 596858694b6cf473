"""
Runtime configuration.

Provider credentials and target models travel with each call as an
`AdapterConfig`; `Settings` only fills in what the caller left out.
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

Provider = Literal["openrouter", "falai"]
Modality = Literal["llm", "image", "audio", "video"]

DEFAULT_TEXT_MODEL = "anthropic/claude-3.5-sonnet"


class Settings(BaseModel):
    """Process defaults read from the environment (and a local .env file)."""
    openrouter_api_key: str = ""
    fal_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    fal_base_url: str = "https://fal.run"
    default_model: str = DEFAULT_TEXT_MODEL
    http_referer: str = "http://localhost:3000"
    app_title: str = "Cine-AI"
    text_timeout: float = 120.0
    media_timeout: float = 300.0
    llm_log_path: str = "llm_log.txt"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY", ""),
            fal_api_key=os.getenv("FAL_AI_API_KEY", ""),
            openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
            fal_base_url=os.getenv("FAL_BASE_URL", "https://fal.run"),
            default_model=os.getenv("CINE_DEFAULT_MODEL", DEFAULT_TEXT_MODEL),
            http_referer=os.getenv("CINE_HTTP_REFERER", "http://localhost:3000"),
            app_title=os.getenv("CINE_APP_TITLE", "Cine-AI"),
            text_timeout=float(os.getenv("CINE_TEXT_TIMEOUT", "120")),
            media_timeout=float(os.getenv("CINE_MEDIA_TIMEOUT", "300")),
            llm_log_path=os.getenv("CINE_LLM_LOG", "llm_log.txt"),
        )


class AdapterConfig(BaseModel):
    """Immutable per-call provider configuration; also the adapter cache key."""
    model_config = ConfigDict(frozen=True)

    provider: Provider = "openrouter"
    model: str = DEFAULT_TEXT_MODEL
    api_key: str = Field("", repr=False)
    modality: Modality = "llm"
    base_url: Optional[str] = None
    timeout: Optional[float] = None


# ---------- Named Configurations ----------

_NAMED_MODELS = {
    "claude": "anthropic/claude-3-5-sonnet",
    "gpt": "openai/gpt-4o",
    "gemini": "google/gemini-2.0-flash-exp",
}

_NAMED_MEDIA = {
    "falai": "image",
    "falai/image": "image",
    "falai/video": "video",
    "falai/audio": "audio",
}


def resolve_named_config(name: str, settings: Settings, api_key: Optional[str] = None) -> AdapterConfig:
    """Turn a named configuration ('claude', 'falai/video', ...) into an AdapterConfig.

    Args:
        name: Configuration name; unknown names resolve to the default text model
        settings: Source of default credentials and endpoints
        api_key: Per-call credential overriding the settings value

    Returns:
        Frozen AdapterConfig
    """
    if name in _NAMED_MEDIA:
        return AdapterConfig(
            provider="falai",
            model=name,
            api_key=api_key or settings.fal_api_key,
            modality=_NAMED_MEDIA[name],
            base_url=settings.fal_base_url,
            timeout=settings.media_timeout,
        )

    return text_config(settings, model=_NAMED_MODELS.get(name), api_key=api_key)


def text_config(settings: Settings, model: Optional[str] = None, api_key: Optional[str] = None) -> AdapterConfig:
    """OpenRouter config for a specific target model (e.g. Blueprint.selected_model)."""
    return AdapterConfig(
        provider="openrouter",
        model=model or settings.default_model,
        api_key=api_key or settings.openrouter_api_key,
        modality="llm",
        base_url=settings.openrouter_base_url,
        timeout=settings.text_timeout,
    )
