"""
Stage 2: story editing.

An EditSession walks one edit batch through
Stored -> EditsApplied -> Validated -> Committed | Rejected.
The stored story is written once, on commit, or not at all.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .adapters import AdapterCache, GenerationAdapter
from .artifact import Blueprint, EditRequest, EditType, ProjectStatus, ValidationOutput
from .errors import ConstraintViolation, InputError
from .parser import count_words, join_scenes
from .prompt_compiler import compile_scene_regeneration_prompt
from .steps import (
    GenerationStep,
    adapter_for_step,
    dump_issues,
    load_blueprint,
    require_project_id,
    require_record,
    set_project_status,
)
from .store import Record, RecordStore
from .validator import validate_scenes

logger = logging.getLogger(__name__)

REGENERATE_TEMPERATURE = 0.7
REGENERATE_MAX_TOKENS = 2000


class EditState(str, Enum):
    STORED = "stored"
    EDITS_APPLIED = "edits_applied"
    VALIDATED = "validated"
    COMMITTED = "committed"
    REJECTED = "rejected"


def parse_edit_requests(requests: Sequence[Union[EditRequest, Mapping[str, Any]]]) -> List[EditRequest]:
    """Coerce raw edit payloads, converting schema failures to InputError."""
    parsed = []
    for i, request in enumerate(requests):
        if isinstance(request, EditRequest):
            parsed.append(request)
            continue
        try:
            parsed.append(EditRequest.model_validate(dict(request)))
        except (ValidationError, TypeError, ValueError) as e:
            raise InputError("Invalid edit request", [{"field": f"edits.{i}", "message": str(e)}]) from e
    return parsed


def check_scene_indexes(requests: Sequence[EditRequest], scene_total: int) -> None:
    errors = [
        {"field": f"edits.{i}.sceneIndex", "message": f"Scene index {r.scene_index} out of range (0-{scene_total - 1})"}
        for i, r in enumerate(requests)
        if r.scene_index >= scene_total
    ]
    if errors:
        raise InputError("Invalid scene index", errors)


async def regenerate_scene_text(
    blueprint: Blueprint,
    scene_index: int,
    instructions: str,
    adapter: GenerationAdapter,
) -> str:
    """One generation call; the raw reply is the new scene text."""
    prompt = compile_scene_regeneration_prompt(blueprint, scene_index, instructions)
    result = await adapter.generate_async(
        prompt.user_prompt,
        system_prompt=prompt.system_prompt,
        temperature=REGENERATE_TEMPERATURE,
        max_tokens=REGENERATE_MAX_TOKENS,
    )
    return result.text.strip()


class EditSession:
    """One edit batch against one stored story."""

    def __init__(
        self,
        project_id: str,
        blueprint: Blueprint,
        story: Record,
        store: RecordStore,
        adapter: GenerationAdapter,
        edited_scenes: Optional[Sequence[str]] = None,
    ):
        self.project_id = project_id
        self.blueprint = blueprint
        self.store = store
        self.adapter = adapter
        self.original_scenes: List[str] = list(story.get("scenes") or [])
        # caller-supplied text from "modify" edits starts the clone
        self.scenes: List[str] = list(edited_scenes) if edited_scenes is not None else list(self.original_scenes)
        self.report: Optional[ValidationOutput] = None
        self.state = EditState.STORED

    def _expect(self, state: EditState) -> None:
        if self.state != state:
            raise RuntimeError(f"Edit session is {self.state.value}, expected {state.value}")

    async def apply_edits(self, requests: Sequence[EditRequest]) -> List[str]:
        """Run every regeneration, then apply them to the clone in request order."""
        self._expect(EditState.STORED)
        check_scene_indexes(requests, len(self.scenes))

        regenerations = [r for r in requests if r.edit_type == EditType.REGENERATE]
        texts = await asyncio.gather(*(
            regenerate_scene_text(self.blueprint, r.scene_index, r.instructions, self.adapter)
            for r in regenerations
        ))
        for request, text in zip(regenerations, texts):
            self.scenes[request.scene_index] = text

        self.state = EditState.EDITS_APPLIED
        return self.scenes

    async def validate(self) -> ValidationOutput:
        self._expect(EditState.EDITS_APPLIED)
        self.report = await validate_scenes(self.blueprint, self.scenes, self.adapter, self.original_scenes)
        self.state = EditState.VALIDATED
        return self.report

    def commit(self) -> Record:
        """
        Persist the clone if the report has no hard errors.

        Raises:
            ConstraintViolation: On any hard error; the stored story is untouched
        """
        self._expect(EditState.VALIDATED)
        hard_errors = self.report.hard_errors
        if hard_errors:
            self.state = EditState.REJECTED
            logger.warning("Edit for %s rejected: %s", self.project_id, [e.message for e in hard_errors])
            raise ConstraintViolation(hard_errors, self.report)

        scenes = list(self.scenes)
        story_text = join_scenes(scenes)
        saved = self.store.update("story", self.project_id, {
            "scenes": scenes,
            "story_text": story_text,
            "word_count_actual": count_words(story_text),
            "is_validated": True,
            "validation_errors": {
                "soft": dump_issues(self.report.soft_errors),
                "warnings": list(self.report.warnings),
            },
        })
        self.state = EditState.COMMITTED
        return saved

    async def run(self, requests: Sequence[EditRequest]) -> Record:
        await self.apply_edits(requests)
        await self.validate()
        return self.commit()


# ---------- Stage 2 Entry Points ----------

async def edit_story(
    project_id: str,
    edit_requests: Sequence[Union[EditRequest, Mapping[str, Any]]],
    store: RecordStore,
    adapters: AdapterCache,
    edited_scenes: Optional[Sequence[str]] = None,
    api_key: Optional[str] = None,
) -> Record:
    """
    Apply an edit batch, re-validate the whole story and commit or reject.

    Args:
        project_id: Owning project
        edit_requests: Per-scene edits; "regenerate" edits cost one call each
        store: Record store
        adapters: Adapter cache owned by the caller
        edited_scenes: Full scene list already holding out-of-band "modify" text
        api_key: Per-call OpenRouter credential

    Returns:
        The updated story record

    Raises:
        InputError: Bad payload or scene index (before any generation call)
        ConstraintViolation: Hard validation errors; nothing is written
    """
    project_id = require_project_id(project_id)
    requests = parse_edit_requests(edit_requests)
    require_record(store, "project", project_id)
    story = require_record(store, "story", project_id)
    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.EDIT, adapters, blueprint, api_key)

    session = EditSession(project_id, blueprint, story, store, adapter, edited_scenes)
    saved = await session.run(requests)
    set_project_status(store, project_id, ProjectStatus.STAGE2_COMPLETE)
    return saved


async def validate_story(
    project_id: str,
    edited_scenes: Sequence[str],
    store: RecordStore,
    adapters: AdapterCache,
    api_key: Optional[str] = None,
) -> ValidationOutput:
    """Validate a candidate scene list against the stored story; writes nothing."""
    project_id = require_project_id(project_id)
    story = require_record(store, "story", project_id)
    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.EDIT, adapters, blueprint, api_key)
    return await validate_scenes(blueprint, list(edited_scenes), adapter, story.get("scenes") or [])


async def regenerate_scene(
    project_id: str,
    scene_index: int,
    instructions: str,
    store: RecordStore,
    adapters: AdapterCache,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Regenerate one scene's text without persisting it."""
    project_id = require_project_id(project_id)
    story = require_record(store, "story", project_id)
    request = parse_edit_requests([{"scene_index": scene_index, "edit_type": "regenerate", "instructions": instructions}])
    check_scene_indexes(request, len(story.get("scenes") or []))

    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.EDIT, adapters, blueprint, api_key)
    text = await regenerate_scene_text(blueprint, scene_index, instructions, adapter)
    return {"scene_index": scene_index, "scene": text}
