"""
Shared stage plumbing: generation steps, adapter selection per step,
record lookups and project status.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional

from .adapters import AdapterCache, GenerationAdapter
from .artifact import Blueprint, ProjectStatus
from .errors import InputError, RecordNotFound
from .store import Record, RecordStore

logger = logging.getLogger(__name__)


# ---------- Generation Steps ----------

class GenerationStep(Enum):
    STORY = "story"
    EDIT = "edit"
    SCENE_BLUEPRINTS = "scene_blueprints"
    IMAGES = "images"
    MOTION = "motion"
    NARRATION = "narration"
    AUDIO = "audio"
    VIDEO = "video"


# Media steps use a fixed named configuration; text steps use Blueprint.selected_model
_MEDIA_STEP_CONFIGS = {
    GenerationStep.IMAGES: "falai/image",
    GenerationStep.AUDIO: "falai/audio",
    GenerationStep.VIDEO: "falai/video",
}


def adapter_for_step(
    step: GenerationStep,
    adapters: AdapterCache,
    blueprint: Optional[Blueprint] = None,
    api_key: Optional[str] = None,
) -> GenerationAdapter:
    """
    Select the adapter that serves a generation step.

    Raises:
        InputError: If the resolved configuration has no credential, so no
            generation call is attempted without one
    """
    name = _MEDIA_STEP_CONFIGS.get(step)
    if name:
        adapter = adapters.get_named(name, api_key)
        provider_label = "FAL.ai"
    else:
        model = blueprint.selected_model if blueprint else None
        adapter = adapters.text_adapter(model, api_key)
        provider_label = "OpenRouter"

    if not adapter.config.api_key:
        raise InputError(
            f"{provider_label} API key is required",
            [{"field": "apiKey", "message": f"No {provider_label} credential supplied or configured"}],
        )
    return adapter


# ---------- Records ----------

def require_project_id(project_id: Any) -> str:
    if not project_id or not isinstance(project_id, str):
        raise InputError("projectId is required", [{"field": "projectId", "message": "Required"}])
    return project_id


def require_record(store: RecordStore, entity_kind: str, key: Hashable) -> Record:
    record = store.find_unique(entity_kind, key)
    if record is None:
        raise RecordNotFound(entity_kind, key)
    return record


def load_blueprint(store: RecordStore, project_id: str) -> Blueprint:
    record = require_record(store, "blueprint", project_id)
    return Blueprint.model_validate({k: v for k, v in record.items() if k in Blueprint.model_fields})


def project_scenes(store: RecordStore, project_id: str) -> List[Record]:
    rows = store.find_many("scene", lambda r: r.get("project_id") == project_id)
    return sorted(rows, key=lambda r: r["scene_index"])


def create_project(store: RecordStore, name: str, project_id: Optional[str] = None) -> Record:
    return store.create("project", project_id, {"name": name, "status": ProjectStatus.DRAFT.value})


def set_project_status(store: RecordStore, project_id: str, status: ProjectStatus) -> Record:
    logger.info("Project %s -> %s", project_id, status.value)
    return store.update("project", project_id, {"status": status.value})


def dump_issues(issues: List[Any]) -> List[Dict[str, Any]]:
    return [i.model_dump(mode="json", by_alias=True, exclude_none=True) for i in issues]
