"""
Pytest Configuration and Fixtures

Shared fixtures: a scripted generation adapter (test double with call
recording), an adapter cache wired to it, an in-memory store and a
standard three-scene blueprint.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from cine_pipeline.adapters import AdapterCache, Capabilities, GenerationAdapter, GenerationResult
from cine_pipeline.artifact import Blueprint
from cine_pipeline.config import AdapterConfig, Settings
from cine_pipeline.steps import create_project
from cine_pipeline.store import InMemoryRecordStore

Response = Union[str, Dict[str, Any], Exception, Callable[[str], Any]]

FILLER = (
    "pale light rests on the quiet harbor glass while salt hangs in the still air "
    "and a brass lantern glows beside the wet stone steps under a heavy grey sky"
).split()


class ScriptedAdapter(GenerationAdapter):
    """Returns queued responses in order, or asks a responder callable; records every call."""

    def __init__(self, config: AdapterConfig, settings: Optional[Settings] = None, responses: Sequence[Response] = ()):
        super().__init__(config, settings)
        self.responses: List[Response] = list(responses)
        self.responder: Optional[Callable[[str], Any]] = None
        self.calls: List[Dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def queue(self, *responses: Response) -> None:
        self.responses.extend(responses)

    def _next(self, prompt: str, **kwargs) -> GenerationResult:
        self.calls.append({"prompt": prompt, **kwargs})
        if self.responder is not None:
            output = self.responder(prompt)
        elif self.responses:
            output = self.responses.pop(0)
        else:
            raise AssertionError(f"Unexpected generation call: {prompt[:80]!r}")

        if isinstance(output, Exception):
            raise output
        metadata = {"seed": output.get("seed")} if isinstance(output, dict) else {}
        return GenerationResult(output=output, model=self.config.model, metadata=metadata)

    def generate(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params):
        return self._next(prompt, system_prompt=system_prompt, temperature=temperature, max_tokens=max_tokens, **params)

    async def generate_async(self, prompt, system_prompt=None, temperature=0.7, max_tokens=4000, **params):
        return self._next(prompt, system_prompt=system_prompt, temperature=temperature, max_tokens=max_tokens, **params)

    def get_capabilities(self) -> Capabilities:
        return Capabilities(modality=self.config.modality)

    def validate(self) -> bool:
        return True


# ---------- Text Builders ----------

def words(count: int, offset: int = 0) -> str:
    """`count` lowercase filler words: no banned verbs, no capitalized names."""
    return " ".join(FILLER[(offset + i) % len(FILLER)] for i in range(count))


def story_response(
    scenes: Sequence[str],
    title: Optional[str] = "The Lantern Keeper",
    word_count: Optional[int] = None,
    confirmation: Optional[str] = "This story contains exactly the requested scenes and characters.",
) -> str:
    parts = []
    if title is not None:
        parts.append(f"**STORY TITLE:**\n{title}\n")
    if confirmation is not None:
        parts.append(f"**CONSTRAINT CONFIRMATION:**\n{confirmation}\n")
    parts.append("**STORY:**\n")
    for i, scene in enumerate(scenes):
        parts.append(f"Scene {i + 1}: {scene}\n")
    if word_count is not None:
        parts.append(f"**WORD COUNT:**\n{word_count}")
    return "\n".join(parts)


@pytest.fixture
def make_words():
    return words


@pytest.fixture
def make_story_response():
    return story_response


# ---------- Core Fixtures ----------

@pytest.fixture
def settings() -> Settings:
    return Settings(openrouter_api_key="test-key", fal_api_key="fal-key", llm_log_path="")


@pytest.fixture
def text_adapter(settings) -> ScriptedAdapter:
    return ScriptedAdapter(AdapterConfig(provider="openrouter", model=settings.default_model, api_key="test-key"), settings)


@pytest.fixture
def media_adapter(settings) -> ScriptedAdapter:
    return ScriptedAdapter(AdapterConfig(provider="falai", model="falai/image", api_key="fal-key", modality="image"), settings)


@pytest.fixture
def adapters(settings, text_adapter, media_adapter):
    """Adapter cache whose factories hand out the scripted doubles."""
    cache = AdapterCache(
        settings=settings,
        factories={
            "openrouter": lambda config, s: text_adapter,
            "falai": lambda config, s: media_adapter,
        },
    )
    yield cache
    cache.clear()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def blueprint() -> Blueprint:
    return Blueprint(
        core_idea="A lighthouse keeper guards a secret beneath the lamp room.",
        genre="Mystery",
        tone_mood="Quiet, uneasy",
        word_count=900,
        narration="third-person",
        scene_count=3,
        characters=["Ava", "Leo"],
    )


@pytest.fixture
def project_id(store) -> str:
    return create_project(store, "Lantern", project_id="proj-1")["id"]


@pytest.fixture
def stored_story(store, project_id, blueprint):
    """Project with a persisted blueprint and a validated three-scene story."""
    scenes = [words(300, offset=i) for i in range(3)]
    store.upsert("blueprint", project_id, {"project_id": project_id, **blueprint.model_dump(mode="json")})
    store.upsert("story", project_id, {
        "project_id": project_id,
        "title": "The Lantern Keeper",
        "story_text": "\n\n".join(f"Scene {i + 1}: {s}" for i, s in enumerate(scenes)),
        "word_count_actual": 906,
        "constraints_confirmation": "Three scenes.",
        "scenes": scenes,
        "is_validated": True,
        "validation_errors": {"soft": [], "warnings": []},
    })
    return store.find_unique("story", project_id)
