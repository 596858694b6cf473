"""
Prompt compiler: structured input -> (system_prompt, user_prompt).

Every function here is pure and deterministic; sampling variability only
enters through the temperature passed to the adapter.
"""

from __future__ import annotations

import json
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from . import guides
from .artifact import Blueprint, CharacterProfile, ShotBlueprint


class CompiledPrompt(BaseModel):
    system_prompt: Optional[str] = None
    user_prompt: str


# Action type -> shot types that may frame it
NARRATIVE_LOGIC_PRIORITY: Dict[str, List[str]] = {
    "dialog": ["Close-up", "Medium", "Wide"],
    "action": ["Wide", "Medium"],
    "reaction": ["Close-up", "Medium"],
    "environment_reveal": ["Wide"],
    "movement": ["Medium", "Wide"],
    "internal_state": ["Close-up"],
    "group_interaction": ["Medium", "Wide"],
    "intimate_moment": ["Close-up", "Medium"],
    "establishing": ["Wide"],
}


def _numbered_scenes(scenes: Sequence[str]) -> str:
    return "\n\n".join(f"Scene {i + 1}:\n{scene}" for i, scene in enumerate(scenes))


# ---------- Stage 1-2 ----------

def compile_story_prompt(blueprint: Blueprint) -> CompiledPrompt:
    """Render every blueprint field as a labeled block plus the static style directives."""
    low, high = blueprint.word_count_window
    extra = f"\nAdditional Instructions:\n{blueprint.custom_prompt}\n" if blueprint.custom_prompt else ""

    user_prompt = f"""
USER NARRATIVE BLUEPRINT:

Core Idea: {blueprint.core_idea}

Genre: {blueprint.genre}

Tone & Mood: {blueprint.tone_mood}

Target Word Count: {blueprint.word_count} words (±3% tolerance: {low}-{high} words)

Language & Style: {blueprint.language_style}

Narration Perspective: {blueprint.narration.value}

Required Scene Count: {blueprint.scene_count} (EXACT)

Characters (ONLY these may appear): {", ".join(blueprint.characters)}
{extra}
---

Generate a complete story following ALL constraints above. Remember:
- Use ONLY static imagery (frozen moments, poses, expressions)
- NO continuous action verbs
- Minimal, impactful dialogue
- Clear scene transitions
- Exact scene count: {blueprint.scene_count}
- Word count within ±3% of {blueprint.word_count}
"""
    return CompiledPrompt(system_prompt=guides.STORY_ARCHITECT_GUIDE, user_prompt=user_prompt)


def compile_scene_regeneration_prompt(blueprint: Blueprint, scene_index: int, instructions: str) -> CompiledPrompt:
    """Single-scene mode: only the constraints that bind one scene, plus free-text instructions."""
    user_prompt = f"""
You are rewriting Scene {scene_index + 1} of a cinematic story.

CONSTRAINTS:
- Genre: {blueprint.genre}
- Tone: {blueprint.tone_mood}
- Characters (only these): {", ".join(blueprint.characters)}
- Narration: {blueprint.narration.value}
- Use static imagery (frozen moments, poses)
- NO continuous action verbs
- Minimal dialogue

INSTRUCTIONS: {instructions or "Rewrite the scene while keeping every constraint."}

Generate ONLY the new scene text, nothing else."""
    return CompiledPrompt(system_prompt=guides.SCENE_REWRITE_GUIDE, user_prompt=user_prompt)


def compile_validation_prompt(
    blueprint: Blueprint,
    original_scenes: Sequence[str],
    edited_scenes: Sequence[str],
) -> CompiledPrompt:
    """Embed both scene sets and the full constraint checklist for the semantic pass."""
    user_prompt = f"""
ORIGINAL BLUEPRINT CONSTRAINTS:
- Scene Count: {blueprint.scene_count} (EXACT)
- Characters: {", ".join(blueprint.characters)}
- Narration: {blueprint.narration.value}
- Genre: {blueprint.genre}
- Tone: {blueprint.tone_mood}

ORIGINAL SCENES:
{_numbered_scenes(original_scenes)}

EDITED SCENES:
{_numbered_scenes(edited_scenes)}

VALIDATION CHECKLIST:
1. Scene count matches blueprint (exactly {blueprint.scene_count})
2. Only blueprint characters appear (no new characters)
3. POV/Narration is consistent with blueprint
4. Genre and tone alignment maintained
5. No continuous action verbs used (static imagery only)
6. Dialogue remains sparse and impactful
7. Scene boundaries are preserved

Validate the edited scenes against all constraints and answer with the JSON report."""
    return CompiledPrompt(system_prompt=guides.STORY_VALIDATOR_GUIDE, user_prompt=user_prompt)


# ---------- Stage 3 ----------

def compile_character_prompt(story_text: str, names: Sequence[str], custom_prompt: Optional[str] = None) -> CompiledPrompt:
    if custom_prompt:
        return CompiledPrompt(system_prompt=guides.CHARACTER_DESIGN_GUIDE, user_prompt=custom_prompt)

    user_prompt = f"""
Extract detailed character profiles from this story.

STORY:
{story_text}

CHARACTER NAMES TO EXTRACT:
{", ".join(names)}

For EACH character, generate:
1. "name", "role"
2. "appearance": {{"eyes", "skin", "hair"}}
3. "outfit" in FFCPP format: {{"upper", "lower", "footwear"}}
4. "props": list of carried items
5. "snippets": 9 cinematic descriptions as a 3x3 grid
   {{"closeup": {{"front", "side", "back"}}, "medium": {{...}}, "wide": {{...}}}}

Return a VALID JSON array of characters.
"""
    return CompiledPrompt(system_prompt=guides.CHARACTER_DESIGN_GUIDE, user_prompt=user_prompt)


def compile_shot_prompt(scene_text: str, character_names: Sequence[str], custom_prompt: Optional[str] = None) -> CompiledPrompt:
    extra = f"\nAdditional Instructions:\n{custom_prompt}\n" if custom_prompt else ""
    user_prompt = f"""
Analyze this scene and generate ONE optimal shot blueprint.

SCENE TEXT:
{scene_text}

AVAILABLE CHARACTERS: {", ".join(character_names)}

NARRATIVE_LOGIC_PRIORITY (Action Type -> Allowed Shots):
{json.dumps(NARRATIVE_LOGIC_PRIORITY, indent=2)}

Generate ONE shot blueprint with:
1. SHOT_TYPE: "Wide", "Medium" or "Close-up"
2. ANGLE: camera angle (e.g. "Low angle", "Eye level", "High angle")
3. VIEW: "Front", "Back", "OTS", "Profile" or "Side"
4. STAGING: actor/object positions relative to frame
5. RELATIONAL_STAGING: relationships between multiple elements
6. SCENE_FUNCTION: what the shot accomplishes narratively

Choose the shot type from NARRATIVE_LOGIC_PRIORITY for the primary action in the scene.
Return a valid JSON object with these exact keys.
{extra}"""
    return CompiledPrompt(system_prompt=guides.KEYFRAME_DIRECTOR_GUIDE, user_prompt=user_prompt)


def compile_background_prompt(scene_text: str) -> CompiledPrompt:
    user_prompt = f"""
Analyze this scene and create a background blueprint.

SCENE TEXT:
{scene_text}

Generate a background blueprint with:
1. MASTER_LOCATION: the primary setting (e.g. "Modern office building, glass walls")
2. OVERLAY_ELEMENTS: array of secondary elements
3. LIGHTING: lighting mood and direction
4. ATMOSPHERIC_DETAILS: weather, time of day, special effects

Return a valid JSON object with these exact keys.
"""
    return CompiledPrompt(system_prompt=guides.PRODUCTION_DESIGN_GUIDE, user_prompt=user_prompt)


# ---------- Stage 5 ----------

def compile_motion_prompt(scene_text: str, shot: ShotBlueprint, characters: Sequence[CharacterProfile]) -> CompiledPrompt:
    user_prompt = f"""
Generate ONE concise motion cue for this scene.

SCENE TEXT:
{scene_text}

AVAILABLE CHARACTERS: {", ".join(c.name for c in characters)}

SHOT BLUEPRINT:
- Shot Type: {shot.shot_type}
- View: {shot.view}
- Staging: {shot.staging}

RULES:
1. Motion cue MUST be at most 40 words
2. ONE sentence only
3. NO continuous action verbs
4. Only subtle gestures and minimal movement
5. Without characters, describe environment-only motion (wind, light, subtle effects)

Output format:
{{
  "synopsis": "One sentence scene summary",
  "motion_cue": "Motion cue (at most 40 words)",
  "character_motion": ["character1: specific motion"]
}}
"""
    return CompiledPrompt(system_prompt=guides.MOTION_CUE_GUIDE, user_prompt=user_prompt)


def compile_narration_prompt(story_text: str, narration_style: str = "neutral") -> CompiledPrompt:
    user_prompt = f"""
Create narration from this story text in a {narration_style} tone.

STORY:
{story_text}

Output: clear, professional narration suitable for a cinematic video.
"""
    return CompiledPrompt(system_prompt=guides.NARRATION_GUIDE, user_prompt=user_prompt)
