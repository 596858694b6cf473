"""
Story pipeline: Stage 1 (story generation) and Stage 3 (scene blueprints).

Stage 2 editing lives in `editor`, Stages 4-5 media in `media`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .adapters import AdapterCache, GenerationAdapter
from .artifact import (
    BackgroundBlueprint,
    Blueprint,
    CharacterProfile,
    ProjectStatus,
    ShotBlueprint,
    StoryOutput,
)
from .blueprint_parsers import parse_background_blueprint, parse_character_profiles, parse_shot_blueprint
from .errors import ConstraintViolation, InputError
from .parser import parse_story
from .prompt_compiler import (
    compile_background_prompt,
    compile_character_prompt,
    compile_shot_prompt,
    compile_story_prompt,
)
from .steps import (
    GenerationStep,
    adapter_for_step,
    dump_issues,
    load_blueprint,
    project_scenes,
    require_project_id,
    require_record,
    set_project_status,
)
from .store import Record, RecordStore
from .validator import check_structure

logger = logging.getLogger(__name__)

STORY_TEMPERATURE = 0.7
STORY_MAX_TOKENS = 6000


# ---------- Stage 1: Story Generation ----------

async def generate_story_output(blueprint: Blueprint, adapter: GenerationAdapter) -> StoryOutput:
    """Compile -> generate -> parse. No validation, no persistence."""
    prompt = compile_story_prompt(blueprint)
    result = await adapter.generate_async(
        prompt.user_prompt,
        system_prompt=prompt.system_prompt,
        temperature=STORY_TEMPERATURE,
        max_tokens=STORY_MAX_TOKENS,
    )
    return parse_story(result.text)


async def generate_story(
    project_id: str,
    blueprint: Union[Blueprint, Mapping[str, Any]],
    store: RecordStore,
    adapters: AdapterCache,
    api_key: Optional[str] = None,
) -> Record:
    """
    Generate, validate and persist a project's story.

    Input checks (project id, blueprint schema, project existence,
    credential) all run before the generation call. Hard validation errors
    raise ConstraintViolation and nothing is written.

    Args:
        project_id: Owning project
        blueprint: Blueprint or raw payload (camelCase or snake_case keys)
        store: Record store
        adapters: Adapter cache owned by the caller
        api_key: Per-call OpenRouter credential (falls back to settings)

    Returns:
        The persisted story record
    """
    project_id = require_project_id(project_id)
    if not isinstance(blueprint, Blueprint):
        blueprint = Blueprint.from_payload(blueprint)
    require_record(store, "project", project_id)
    adapter = adapter_for_step(GenerationStep.STORY, adapters, blueprint, api_key)

    logger.info("🎬 Generating story for %s (%s scenes, %s words)", project_id, blueprint.scene_count, blueprint.word_count)
    story = await generate_story_output(blueprint, adapter)

    report = check_structure(blueprint, story.scenes, story.word_count_actual)
    if not report.is_valid:
        logger.warning("Story for %s rejected: %s", project_id, [e.message for e in report.hard_errors])
        raise ConstraintViolation(report.hard_errors, report)

    # Blueprint and story land together; a story never pairs with another run's blueprint
    _, saved = store.upsert_many([
        ("blueprint", project_id, {"project_id": project_id, **blueprint.model_dump(mode="json")}),
        ("story", project_id, {
            "project_id": project_id,
            **story.model_dump(mode="json"),
            "selected_model": blueprint.selected_model,
            "is_validated": True,
            "validation_errors": {"soft": dump_issues(report.soft_errors), "warnings": list(report.warnings)},
        }),
    ])
    set_project_status(store, project_id, ProjectStatus.STAGE1_COMPLETE)
    logger.info("✅ Story saved: %s (%s scenes)", story.title, len(story.scenes))
    return saved


def get_story(project_id: str, store: RecordStore) -> Dict[str, Record]:
    """Return the stored story and its blueprint."""
    project_id = require_project_id(project_id)
    story = require_record(store, "story", project_id)
    return {"story": story, "blueprint": store.find_unique("blueprint", project_id)}


# ---------- Stage 3: Scene Blueprints ----------

async def _character_profiles(
    adapter: GenerationAdapter,
    story_text: str,
    names: Sequence[str],
    custom_prompt: Optional[str] = None,
) -> List[CharacterProfile]:
    prompt = compile_character_prompt(story_text, names, custom_prompt)
    result = await adapter.generate_async(prompt.user_prompt, system_prompt=prompt.system_prompt, temperature=0.7)
    return parse_character_profiles(result.text, names)


async def _shot_blueprint(
    adapter: GenerationAdapter,
    scene_text: str,
    scene_index: int,
    names: Sequence[str],
    custom_prompt: Optional[str] = None,
) -> ShotBlueprint:
    prompt = compile_shot_prompt(scene_text, names, custom_prompt)
    result = await adapter.generate_async(prompt.user_prompt, system_prompt=prompt.system_prompt, temperature=0.6)
    return parse_shot_blueprint(result.text, scene_index, scene_text)


async def _background_blueprint(adapter: GenerationAdapter, scene_text: str) -> BackgroundBlueprint:
    prompt = compile_background_prompt(scene_text)
    result = await adapter.generate_async(prompt.user_prompt, system_prompt=prompt.system_prompt, temperature=0.7)
    return parse_background_blueprint(result.text)


def _scene_record(project_id: str, shot: ShotBlueprint, background: BackgroundBlueprint, is_locked: bool = False) -> Record:
    return {
        "project_id": project_id,
        **shot.model_dump(mode="json"),
        "background_blueprint": background.model_dump(mode="json"),
        "is_locked": is_locked,
    }


def _character_record(project_id: str, profile: CharacterProfile) -> Record:
    return {"project_id": project_id, **profile.model_dump(mode="json")}


async def generate_scene_blueprints(
    project_id: str,
    store: RecordStore,
    adapters: AdapterCache,
    custom_prompt: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Stage 3: character profiles, then one shot and one background blueprint per scene.

    Locked scenes keep their stored blueprints.

    Args:
        custom_prompt: Replaces the character-profile prompt entirely

    Returns:
        {"characters": [profile dicts], "scene_count": int}
    """
    project_id = require_project_id(project_id)
    require_record(store, "project", project_id)
    story = require_record(store, "story", project_id)
    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.SCENE_BLUEPRINTS, adapters, blueprint, api_key)

    characters = await _character_profiles(adapter, story["story_text"], blueprint.characters, custom_prompt)
    names = [c.name for c in characters]

    scenes = story.get("scenes") or []
    logger.info("🎬 Generating blueprints for %s scenes", len(scenes))

    for i, scene_text in enumerate(scenes):
        existing = store.find_unique("scene", (project_id, i))
        if existing and existing.get("is_locked"):
            logger.info("  🔒 Scene %s locked, skipping", i + 1)
            continue

        shot, background = await asyncio.gather(
            _shot_blueprint(adapter, scene_text, i, names),
            _background_blueprint(adapter, scene_text),
        )
        store.upsert("scene", (project_id, i), _scene_record(project_id, shot, background))
        logger.info("  ✅ Scene %s: %s, %s view", i + 1, shot.shot_type, shot.view)

    for profile in characters:
        store.upsert("character", (project_id, profile.name), _character_record(project_id, profile))

    set_project_status(store, project_id, ProjectStatus.STAGE3_COMPLETE)
    return {"characters": [c.model_dump(mode="json") for c in characters], "scene_count": len(scenes)}


async def regenerate_scene_blueprint(
    project_id: str,
    scene_index: int,
    store: RecordStore,
    adapters: AdapterCache,
    custom_prompt: Optional[str] = None,
    api_key: Optional[str] = None,
) -> ShotBlueprint:
    """Regenerate one scene's shot blueprint; the background blueprint is kept."""
    project_id = require_project_id(project_id)
    scene = require_record(store, "scene", (project_id, scene_index))
    if scene.get("is_locked"):
        raise InputError(f"Scene {scene_index} is locked", [{"field": "sceneIndex", "message": "Scene is locked"}])

    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.SCENE_BLUEPRINTS, adapters, blueprint, api_key)
    characters = store.find_many("character", lambda r: r.get("project_id") == project_id)
    names = [c["name"] for c in characters] or list(blueprint.characters)

    shot = await _shot_blueprint(adapter, scene["original_scene"], scene_index, names, custom_prompt)
    store.update("scene", (project_id, scene_index), shot.model_dump(mode="json"))
    return shot


def lock_scene(project_id: str, scene_index: int, store: RecordStore) -> Record:
    return store.update("scene", (project_id, scene_index), {"is_locked": True})


def unlock_scene(project_id: str, scene_index: int, store: RecordStore) -> Record:
    return store.update("scene", (project_id, scene_index), {"is_locked": False})


def list_scenes(project_id: str, store: RecordStore) -> List[Record]:
    return project_scenes(store, project_id)
