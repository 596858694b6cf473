"""
Stage 4 (image prompts and images) and Stage 5 (motion cues, narration, video).
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .adapters import AdapterCache, GenerationAdapter, GenerationResult
from .artifact import (
    BackgroundBlueprint,
    CharacterProfile,
    ImagePrompt,
    MotionCue,
    ProjectStatus,
    ShotBlueprint,
)
from .blueprint_parsers import parse_motion_cue
from .errors import InputError, ProviderError, RecordNotFound
from .prompt_compiler import compile_motion_prompt, compile_narration_prompt
from .steps import (
    GenerationStep,
    adapter_for_step,
    load_blueprint,
    project_scenes,
    require_project_id,
    require_record,
    set_project_status,
)
from .store import Record, RecordStore

logger = logging.getLogger(__name__)

IMAGE_SIZE = "landscape_16_9"
IMAGE_STYLE = "cinematic"

_SNIPPET_SIZE = {"Close-up": "closeup", "Medium": "medium", "Wide": "wide"}
_SNIPPET_VIEW = {"Front": "front", "Side": "side", "Profile": "side", "Back": "back", "OTS": "back"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _media_url(result: GenerationResult, kind: str) -> str:
    url = result.media_url
    if not url:
        raise ProviderError(f"FAL.ai API error: no {kind} URL in response", provider="falai", payload=result.output)
    return url


# ---------- Record Helpers ----------

def _shot_from_record(scene: Record) -> ShotBlueprint:
    return ShotBlueprint.model_validate({k: v for k, v in scene.items() if k in ShotBlueprint.model_fields})


def _background_from_record(scene: Record) -> BackgroundBlueprint:
    return BackgroundBlueprint.model_validate(scene.get("background_blueprint") or {})


def _project_characters(store: RecordStore, project_id: str) -> List[CharacterProfile]:
    rows = store.find_many("character", lambda r: r.get("project_id") == project_id)
    return [CharacterProfile.model_validate({k: v for k, v in r.items() if k in CharacterProfile.model_fields}) for r in rows]


def characters_in_scene(scene_text: str, characters: Sequence[CharacterProfile]) -> List[CharacterProfile]:
    lower = scene_text.lower()
    return [c for c in characters if c.name.lower() in lower]


def _create_asset(store: RecordStore, data: Record) -> Record:
    asset_id = uuid.uuid4().hex
    return store.create("asset", asset_id, {"id": asset_id, "is_locked": False, **data})


# ---------- Stage 4: Image Prompts ----------

def snippet_for(profile: CharacterProfile, shot_type: str, view: str) -> str:
    """Pick the character snippet for a framing; Profile reads as side, OTS as back."""
    size = _SNIPPET_SIZE.get(shot_type, "medium")
    view_key = _SNIPPET_VIEW.get(view, "front")
    return profile.snippets.get(size, {}).get(view_key) or f"{profile.name}, {view.lower()} view"


def build_character_snippet(characters: Sequence[CharacterProfile], shot: ShotBlueprint) -> str:
    if not characters:
        return "A solo environmental shot with no characters, focusing on the setting and atmosphere."
    return " | ".join(f"{c.name}: {snippet_for(c, shot.shot_type, shot.view)}" for c in characters)


def build_staging_line(shot: ShotBlueprint, characters: Sequence[CharacterProfile]) -> str:
    staging = shot.staging.rstrip(". ")
    if len(characters) > 1 and shot.relational_staging:
        staging = f"{staging} with {shot.relational_staging.rstrip('. ')}"
    return f"{staging}. Scene function: {shot.scene_function.rstrip('. ')}."


def build_style_background_line(background: BackgroundBlueprint) -> str:
    return (
        f"{background.master_location.rstrip('. ')}. "
        f"Lighting: {background.lighting.rstrip('. ')}. "
        f"Atmosphere: {background.atmospheric_details.rstrip('. ')}. "
        "Cinematic, professional photography."
    )


def assemble_image_prompt(
    shot: ShotBlueprint,
    background: BackgroundBlueprint,
    characters: Sequence[CharacterProfile],
) -> ImagePrompt:
    """Three paragraphs: character snippets, staging, style and background."""
    character_snippet = build_character_snippet(characters, shot)
    staging_line = build_staging_line(shot, characters)
    style_background_line = build_style_background_line(background)
    return ImagePrompt(
        scene_index=shot.scene_index,
        character_snippet=character_snippet,
        staging_line=staging_line,
        style_background_line=style_background_line,
        full_prompt=f"{character_snippet}\n\n{staging_line}\n\n{style_background_line}",
    )


def prompt_for_scene(scene: Record, characters: Sequence[CharacterProfile]) -> ImagePrompt:
    shot = _shot_from_record(scene)
    return assemble_image_prompt(shot, _background_from_record(scene), characters_in_scene(shot.original_scene, characters))


# ---------- Stage 4: Images ----------

async def _render_image(adapter: GenerationAdapter, prompt: ImagePrompt, seed: Optional[int]) -> Dict[str, Any]:
    result = await adapter.generate_async(prompt.full_prompt, seed=seed, image_size=IMAGE_SIZE)
    return {
        "url": _media_url(result, "image"),
        "seed": seed if result.metadata.get("seed") is None else result.metadata["seed"],
        "model_used": result.model,
    }


def _image_asset(project_id: str, scene_index: int, prompt: ImagePrompt, rendered: Dict[str, Any]) -> Record:
    return {
        "project_id": project_id,
        "scene_index": scene_index,
        "type": "image",
        "url": rendered["url"],
        "prompt": prompt.full_prompt,
        "model_used": rendered["model_used"],
        "metadata": {
            "seed": rendered["seed"],
            "resolution": IMAGE_SIZE,
            "style": IMAGE_STYLE,
            "model_used": rendered["model_used"],
            "timestamp": _now(),
        },
    }


async def generate_images(
    project_id: str,
    store: RecordStore,
    adapters: AdapterCache,
    use_seeds: bool = True,
    api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Render one image per unlocked scene.

    Requests run concurrently; assets are written only after every request
    succeeded, in scene order.

    Returns:
        {"images_generated": int, "assets": [asset records]}
    """
    project_id = require_project_id(project_id)
    require_record(store, "project", project_id)
    scenes = project_scenes(store, project_id)
    if not scenes:
        raise RecordNotFound("scenes", project_id)
    adapter = adapter_for_step(GenerationStep.IMAGES, adapters, api_key=api_key)

    characters = _project_characters(store, project_id)
    todo = [s for s in scenes if not s.get("is_locked")]
    prompts = [prompt_for_scene(s, characters) for s in todo]
    logger.info("🎨 Generating %s scene images (%s locked)", len(todo), len(scenes) - len(todo))

    rendered = await asyncio.gather(*(
        _render_image(adapter, p, random.randint(0, 999_999) if use_seeds else None) for p in prompts
    ))

    assets = [
        _create_asset(store, _image_asset(project_id, scene["scene_index"], prompt, r))
        for scene, prompt, r in zip(todo, prompts, rendered)
    ]
    set_project_status(store, project_id, ProjectStatus.STAGE4_COMPLETE)
    return {"images_generated": len(assets), "assets": assets}


def _latest_asset(store: RecordStore, project_id: str, asset_type: str, scene_index: Optional[int] = None) -> Optional[Record]:
    assets = list_assets(project_id, store, asset_type)
    if scene_index is not None:
        assets = [a for a in assets if a.get("scene_index") == scene_index]
    return assets[0] if assets else None


async def regenerate_scene_image(
    project_id: str,
    scene_index: int,
    store: RecordStore,
    adapters: AdapterCache,
    api_key: Optional[str] = None,
) -> Record:
    """Re-render one scene's image, replacing its latest unlocked image asset."""
    project_id = require_project_id(project_id)
    scene = require_record(store, "scene", (project_id, scene_index))
    existing = _latest_asset(store, project_id, "image", scene_index)
    if existing and existing.get("is_locked"):
        raise InputError("Asset is locked", [{"field": "assetId", "message": f"{existing['id']} is locked"}])
    adapter = adapter_for_step(GenerationStep.IMAGES, adapters, api_key=api_key)

    prompt = prompt_for_scene(scene, _project_characters(store, project_id))
    rendered = await _render_image(adapter, prompt, random.randint(0, 999_999))

    if existing:
        return store.update("asset", existing["id"], {
            "url": rendered["url"],
            "prompt": prompt.full_prompt,
            "metadata": {**(existing.get("metadata") or {}), "seed": rendered["seed"], "timestamp": _now()},
        })
    return _create_asset(store, _image_asset(project_id, scene_index, prompt, rendered))


def list_assets(project_id: str, store: RecordStore, asset_type: Optional[str] = None) -> List[Record]:
    """Project assets, newest first."""
    rows = store.find_many(
        "asset",
        lambda r: r.get("project_id") == project_id and (asset_type is None or r.get("type") == asset_type),
    )
    # reversed first so equal timestamps keep newest-first
    return sorted(reversed(rows), key=lambda r: r.get("created_at", ""), reverse=True)


def lock_asset(asset_id: str, store: RecordStore) -> Record:
    return store.update("asset", asset_id, {"is_locked": True})


def unlock_asset(asset_id: str, store: RecordStore) -> Record:
    return store.update("asset", asset_id, {"is_locked": False})


def delete_asset(asset_id: str, store: RecordStore) -> None:
    store.delete("asset", asset_id)


# ---------- Stage 5: Motion Cues ----------

async def generate_motion_cue(
    adapter: GenerationAdapter,
    scene: Record,
    characters: Sequence[CharacterProfile],
) -> MotionCue:
    shot = _shot_from_record(scene)
    prompt = compile_motion_prompt(shot.original_scene, shot, characters)
    result = await adapter.generate_async(prompt.user_prompt, system_prompt=prompt.system_prompt, temperature=0.6)
    return parse_motion_cue(result.text, shot.scene_index)


async def generate_motion_cues(
    project_id: str,
    store: RecordStore,
    adapters: AdapterCache,
    api_key: Optional[str] = None,
) -> List[MotionCue]:
    """One motion cue per scene, stored on the scene record."""
    project_id = require_project_id(project_id)
    scenes = project_scenes(store, project_id)
    if not scenes:
        raise RecordNotFound("scenes", project_id)
    blueprint = load_blueprint(store, project_id)
    adapter = adapter_for_step(GenerationStep.MOTION, adapters, blueprint, api_key)
    characters = _project_characters(store, project_id)

    cues = await asyncio.gather(*(generate_motion_cue(adapter, s, characters) for s in scenes))
    for scene, cue in zip(scenes, cues):
        store.update("scene", (project_id, scene["scene_index"]), {"motion_cue": cue.model_dump(mode="json")})
    return list(cues)


# ---------- Stage 5: Narration ----------

async def generate_audio(
    project_id: str,
    store: RecordStore,
    adapters: AdapterCache,
    narration_style: str = "neutral",
    api_key: Optional[str] = None,
    fal_api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """Narration script via the text adapter, then text-to-speech via the audio adapter."""
    project_id = require_project_id(project_id)
    story = require_record(store, "story", project_id)
    blueprint = load_blueprint(store, project_id)
    text_adapter = adapter_for_step(GenerationStep.NARRATION, adapters, blueprint, api_key)
    audio_adapter = adapter_for_step(GenerationStep.AUDIO, adapters, api_key=fal_api_key)

    prompt = compile_narration_prompt(story["story_text"], narration_style)
    script = await text_adapter.generate_async(prompt.user_prompt, system_prompt=prompt.system_prompt, temperature=0.5)
    narration = script.text.strip()

    speech = await audio_adapter.generate_async(narration)
    audio_url = _media_url(speech, "audio")

    asset = _create_asset(store, {
        "project_id": project_id,
        "type": "audio",
        "url": audio_url,
        "prompt": narration,
        "model_used": speech.model,
        "metadata": {"narration_style": narration_style, "timestamp": _now()},
    })
    return {"audio_url": audio_url, "asset": asset}


# ---------- Stage 5: Video ----------

def compile_video_prompt(cues: Sequence[MotionCue]) -> str:
    return " ".join(f"Scene {c.scene_index + 1}: {c.motion_cue}" for c in cues)


async def generate_video(
    project_id: str,
    store: RecordStore,
    adapters: AdapterCache,
    with_audio: bool = True,
    api_key: Optional[str] = None,
    fal_api_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Motion cues for every scene, then one image-to-video request seeded
    with the first scene image.

    Returns:
        {"video_url": str, "job_id": asset id}
    """
    project_id = require_project_id(project_id)
    require_record(store, "project", project_id)
    images = list_assets(project_id, store, "image")
    if not project_scenes(store, project_id) or not images:
        raise RecordNotFound("scenes or images", project_id)
    video_adapter = adapter_for_step(GenerationStep.VIDEO, adapters, api_key=fal_api_key)

    cues = await generate_motion_cues(project_id, store, adapters, api_key)
    first_image = min(images, key=lambda a: a.get("scene_index", 0))

    logger.info("🎞️ Generating video from %s scenes", len(cues))
    result = await video_adapter.generate_async(compile_video_prompt(cues), image_url=first_image["url"])
    video_url = _media_url(result, "video")

    asset = _create_asset(store, {
        "project_id": project_id,
        "type": "video",
        "url": video_url,
        "model_used": result.model,
        "metadata": {
            "fps": 24,
            "with_audio": with_audio,
            "motion_cues": [c.model_dump(mode="json") for c in cues],
            "timestamp": _now(),
        },
    })
    set_project_status(store, project_id, ProjectStatus.STAGE5_COMPLETE)
    return {"video_url": video_url, "job_id": asset["id"]}


def get_video_status(project_id: str, store: RecordStore) -> Dict[str, Any]:
    video = _latest_asset(store, project_id, "video")
    if video is None:
        return {"project_id": project_id, "status": "pending", "progress": 0}

    metadata = video.get("metadata") or {}
    status = {
        "project_id": project_id,
        "status": "completed" if video.get("url") else "processing",
        "progress": 100 if video.get("url") else metadata.get("progress", 0),
    }
    if metadata.get("error"):
        status["error_message"] = metadata["error"]
    return status


def cancel_video(project_id: str, store: RecordStore) -> bool:
    """Delete the latest video asset; False when there is none."""
    video = _latest_asset(store, project_id, "video")
    if video is None:
        return False
    store.delete("asset", video["id"])
    return True
