"""
Generation adapters.

One adapter implementation per provider family behind a single contract
{generate, generate_async, get_capabilities, validate}. Instances are
selected by AdapterConfig through an explicit AdapterCache owned by the
caller's composition root.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel

from . import fal_wrapper, openrouter_wrapper
from .config import AdapterConfig, Settings, resolve_named_config, text_config
from .errors import ProviderError

logger = logging.getLogger(__name__)


# ---------- Result / Capability Models ----------

class Usage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class GenerationResult(BaseModel):
    output: Union[str, Dict[str, Any]]
    model: str
    usage: Optional[Usage] = None
    metadata: Dict[str, Any] = {}

    @property
    def text(self) -> str:
        """Output as text (structured outputs are JSON-encoded)."""
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output)

    @property
    def media_url(self) -> Optional[str]:
        if isinstance(self.output, str):
            return self.output or None
        return fal_wrapper.extract_media_url(self.output)


class Capabilities(BaseModel):
    modality: str
    max_tokens: Optional[int] = None
    supported_formats: List[str] = []
    avg_response_time: Optional[int] = None  # milliseconds


# ---------- Adapter Contract ----------

class GenerationAdapter(ABC):
    """Submit a generation request; receive text or a media reference."""

    def __init__(self, config: AdapterConfig, settings: Optional[Settings] = None):
        self.config = config
        self.settings = settings or Settings()

    @abstractmethod
    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **params: Any,
    ) -> GenerationResult:
        """Blocking generation. Raises ProviderError on upstream failure."""

    @abstractmethod
    async def generate_async(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **params: Any,
    ) -> GenerationResult:
        """Async generation. Raises ProviderError on upstream failure."""

    @abstractmethod
    def get_capabilities(self) -> Capabilities:
        """Static metadata; never touches the network."""

    @abstractmethod
    def validate(self) -> bool:
        """Lightweight reachability/credential check; never raises."""


# ---------- OpenRouter (text) ----------

class OpenRouterAdapter(GenerationAdapter):
    """LLM adapter; one instance per target model (GPT, Claude, Gemini, ...)."""

    def _call_kwargs(self, prompt, system_prompt, temperature, max_tokens, params) -> Dict[str, Any]:
        return dict(
            model=self.config.model,
            prompt=prompt,
            api_key=self.config.api_key,
            system_prompt=system_prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            extra=params or None,
            base_url=self.config.base_url or self.settings.openrouter_base_url,
            timeout=self.config.timeout or self.settings.text_timeout,
            referer=self.settings.http_referer,
            title=self.settings.app_title,
            log_path=self.settings.llm_log_path or None,
        )

    def _result(self, content: str, usage: Dict[str, Any], metadata: Dict[str, Any]) -> GenerationResult:
        return GenerationResult(output=content, model=self.config.model, usage=Usage(**usage), metadata=metadata)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params) -> GenerationResult:
        content, usage, metadata = openrouter_wrapper.llm(
            **self._call_kwargs(prompt, system_prompt, temperature, max_tokens, params)
        )
        return self._result(content, usage, metadata)

    async def generate_async(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params) -> GenerationResult:
        content, usage, metadata = await openrouter_wrapper.llm_async(
            **self._call_kwargs(prompt, system_prompt, temperature, max_tokens, params)
        )
        return self._result(content, usage, metadata)

    def get_capabilities(self) -> Capabilities:
        return Capabilities(modality="llm", max_tokens=8000, supported_formats=["text"], avg_response_time=5000)

    def validate(self) -> bool:
        try:
            openrouter_wrapper.list_models(
                self.config.api_key,
                base_url=self.config.base_url or self.settings.openrouter_base_url,
            )
            return True
        except ProviderError as e:
            logger.warning("OpenRouter validation failed: %s", e)
            return False


# ---------- fal.ai (image / video / audio) ----------

_FAL_CAPABILITIES = {
    "image": Capabilities(modality="image", supported_formats=["png", "jpg"], avg_response_time=8000),
    "video": Capabilities(modality="video", supported_formats=["mp4"], avg_response_time=45000),
    "audio": Capabilities(modality="audio", supported_formats=["mp3", "wav"], avg_response_time=3000),
}


class FalAiAdapter(GenerationAdapter):
    """Media adapter; modality comes from the config (image by default)."""

    @property
    def modality(self) -> str:
        return self.config.modality if self.config.modality in _FAL_CAPABILITIES else "image"

    def _request(self, prompt: str, params: Dict[str, Any]):
        endpoint = params.pop("endpoint", None) or fal_wrapper.ENDPOINTS[self.modality]
        payload = fal_wrapper.build_payload(self.modality, prompt, params)
        return endpoint, payload, dict(
            api_key=self.config.api_key,
            base_url=self.config.base_url or self.settings.fal_base_url,
            timeout=self.config.timeout or self.settings.media_timeout,
        )

    @staticmethod
    def _result(endpoint: str, data: Dict[str, Any]) -> GenerationResult:
        return GenerationResult(
            output=data,
            model=endpoint,
            metadata={
                "seed": data.get("seed"),
                "timings": data.get("timings"),
                "has_nsfw_concepts": data.get("has_nsfw_concepts"),
            },
        )

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params) -> GenerationResult:
        endpoint, payload, kwargs = self._request(prompt, params)
        data = fal_wrapper.fal_request(endpoint, payload, **kwargs)
        return self._result(endpoint, data)

    async def generate_async(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params) -> GenerationResult:
        endpoint, payload, kwargs = self._request(prompt, params)
        data = await fal_wrapper.fal_request_async(endpoint, payload, **kwargs)
        return self._result(endpoint, data)

    def get_capabilities(self) -> Capabilities:
        return _FAL_CAPABILITIES[self.modality].model_copy()

    def validate(self) -> bool:
        # fal has no credential-check endpoint; trust a non-empty key
        return bool(self.config.api_key)


# ---------- Factory / Cache ----------

AdapterFactory = Callable[[AdapterConfig, Settings], GenerationAdapter]

DEFAULT_FACTORIES: Dict[str, AdapterFactory] = {
    "openrouter": OpenRouterAdapter,
    "falai": FalAiAdapter,
}


class AdapterCache:
    """Configuration-keyed adapter cache.

    Adapters hold only immutable configuration, so one instance per
    AdapterConfig is shared across concurrent requests.
    """

    def __init__(self, settings: Optional[Settings] = None, factories: Optional[Dict[str, AdapterFactory]] = None):
        self.settings = settings or Settings.from_env()
        self.factories = dict(factories or DEFAULT_FACTORIES)
        self._adapters: Dict[AdapterConfig, GenerationAdapter] = {}
        self._lock = threading.Lock()

    def create(self, config: AdapterConfig) -> GenerationAdapter:
        """Build a new adapter without caching it."""
        factory = self.factories.get(config.provider)
        if factory is None:
            raise ValueError(f"No adapter registered for provider: {config.provider}")
        return factory(config, self.settings)

    def get(self, config: AdapterConfig) -> GenerationAdapter:
        with self._lock:
            adapter = self._adapters.get(config)
            if adapter is None:
                adapter = self.create(config)
                self._adapters[config] = adapter
            return adapter

    def get_named(self, name: str, api_key: Optional[str] = None) -> GenerationAdapter:
        return self.get(resolve_named_config(name, self.settings, api_key))

    def text_adapter(self, model: Optional[str] = None, api_key: Optional[str] = None) -> GenerationAdapter:
        """OpenRouter adapter for a target model, e.g. Blueprint.selected_model."""
        return self.get(text_config(self.settings, model=model, api_key=api_key))

    def clear(self) -> None:
        with self._lock:
            self._adapters.clear()

    def __len__(self) -> int:
        return len(self._adapters)

    def __contains__(self, config: AdapterConfig) -> bool:
        return config in self._adapters
