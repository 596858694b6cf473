"""
Stage 3 and Stage 5 response parsing.

Same pattern as the story parser: extract JSON, then fill every missing
field with a fixed default. Unparseable responses yield default records,
never exceptions.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .artifact import Appearance, BackgroundBlueprint, CharacterProfile, MotionCue, Outfit, ShotBlueprint
from .errors import ExtractionError
from .json_extract import extract_json_object, extract_json_value

logger = logging.getLogger(__name__)

SHOT_SIZES = ("closeup", "medium", "wide")
SNIPPET_VIEWS = ("front", "side", "back")
_SHOT_LABELS = {"closeup": "close-up", "medium": "medium shot", "wide": "wide shot"}

MOTION_CUE_MAX_WORDS = 40

UNPARSED_BACKGROUND = BackgroundBlueprint(
    master_location="Scene setting",
    overlay_elements=["Props", "Furniture"],
    lighting="Natural lighting",
    atmospheric_details="Neutral atmosphere",
)


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """First non-empty value among alternative key spellings (SHOT_TYPE / shot_type / shotType)."""
    for key in keys:
        value = data.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _text(value: Any, default: str) -> str:
    return value.strip() if isinstance(value, str) and value.strip() else default


# ---------- Shot Blueprints ----------

def normalize_shot_type(value: Any) -> str:
    """Map free-form shot names onto Wide / Medium / Close-up."""
    normalized = str(value or "medium").lower().strip()
    if "wide" in normalized or "establishing" in normalized:
        return "Wide"
    if "close" in normalized:
        return "Close-up"
    return "Medium"


def normalize_view(value: Any) -> str:
    """Map free-form view names onto Front / Back / OTS / Profile / Side."""
    normalized = str(value or "front").lower().strip()
    if "ots" in normalized or "over" in normalized:
        return "OTS"
    if "back" in normalized:
        return "Back"
    if "profile" in normalized:
        return "Profile"
    if "side" in normalized:
        return "Side"
    return "Front"


def parse_shot_blueprint(text: str, scene_index: int, scene_text: str = "") -> ShotBlueprint:
    try:
        data = extract_json_object(text)
    except ExtractionError:
        logger.warning("Scene %s: unparseable shot blueprint, using defaults", scene_index)
        return ShotBlueprint(scene_index=scene_index, original_scene=scene_text)

    relational = _pick(data, "RELATIONAL_STAGING", "relational_staging", "relationalStaging")
    return ShotBlueprint(
        scene_index=scene_index,
        original_scene=scene_text,
        shot_type=normalize_shot_type(_pick(data, "SHOT_TYPE", "shot_type", "shotType")),
        angle=_text(_pick(data, "ANGLE", "angle"), "Eye level"),
        view=normalize_view(_pick(data, "VIEW", "view")),
        staging=_text(_pick(data, "STAGING", "staging"), "Standard staging"),
        relational_staging=relational if isinstance(relational, str) else None,
        scene_function=_text(_pick(data, "SCENE_FUNCTION", "scene_function", "sceneFunction"), "Advance narrative"),
    )


# ---------- Backgrounds ----------

def parse_background_blueprint(text: str) -> BackgroundBlueprint:
    try:
        data = extract_json_object(text)
    except ExtractionError:
        logger.warning("Unparseable background blueprint, using defaults")
        return UNPARSED_BACKGROUND.model_copy(deep=True)

    defaults = BackgroundBlueprint()
    overlay = _pick(data, "OVERLAY_ELEMENTS", "overlay_elements", "overlayElements")
    return BackgroundBlueprint(
        master_location=_text(_pick(data, "MASTER_LOCATION", "master_location", "masterLocation"), defaults.master_location),
        overlay_elements=[str(o) for o in overlay] if isinstance(overlay, list) else list(defaults.overlay_elements),
        lighting=_text(_pick(data, "LIGHTING", "lighting"), defaults.lighting),
        atmospheric_details=_text(
            _pick(data, "ATMOSPHERIC_DETAILS", "atmospheric_details", "atmosphericDetails"),
            defaults.atmospheric_details,
        ),
    )


# ---------- Characters ----------

def default_snippets(name: str, given: Optional[Mapping[str, Any]] = None) -> Dict[str, Dict[str, str]]:
    """Full 3x3 snippet grid (shot size x view), keeping any snippet the model supplied."""
    given = given if isinstance(given, Mapping) else {}
    grid: Dict[str, Dict[str, str]] = {}
    for size in SHOT_SIZES:
        row = given.get(size) if isinstance(given.get(size), Mapping) else {}
        grid[size] = {
            view: _text(row.get(view), f"{name} {_SHOT_LABELS[size]}, {view} view")
            for view in SNIPPET_VIEWS
        }
    return grid


def default_profile(name: str) -> CharacterProfile:
    return CharacterProfile(
        name=name,
        design_prompt=f"Character: {name} (Character)",
        snippets=default_snippets(name),
    )


def profile_from_dict(data: Mapping[str, Any], fallback_name: str = "") -> Optional[CharacterProfile]:
    name = _text(data.get("name"), fallback_name)
    if not name:
        return None

    appearance = data.get("appearance") if isinstance(data.get("appearance"), Mapping) else {}
    outfit = data.get("outfit") if isinstance(data.get("outfit"), Mapping) else {}
    role = _text(data.get("role"), "Character")
    props = data.get("props")

    return CharacterProfile(
        name=name,
        role=role,
        appearance=Appearance(**{k: _text(appearance.get(k), "Not specified") for k in ("eyes", "skin", "hair")}),
        outfit=Outfit(**{k: _text(outfit.get(k), "Not specified") for k in ("upper", "lower", "footwear")}),
        props=[str(p) for p in props] if isinstance(props, list) else [],
        design_prompt=_text(_pick(data, "design_prompt", "designPrompt"), f"Character: {name} ({role})"),
        snippets=default_snippets(name, data.get("snippets")),
    )


def parse_character_profiles(text: str, names: Sequence[str]) -> List[CharacterProfile]:
    """
    Parse character profiles from a JSON array or a `{"characters": [...]}` wrapper.

    Returns exactly one profile per blueprint name, in roster order: names
    the model skipped (or the whole roster, when nothing parses) receive
    default profiles, and names outside the roster are dropped.
    """
    try:
        value = extract_json_value(text)
    except ExtractionError:
        logger.warning("Unparseable character profiles, using defaults for %s", list(names))
        return [default_profile(n) for n in names]

    if isinstance(value, dict):
        value = value.get("characters") if isinstance(value.get("characters"), list) else [value]

    roster = {n.lower() for n in names}
    parsed: Dict[str, CharacterProfile] = {}
    for item in value:
        if not isinstance(item, Mapping):
            continue
        profile = profile_from_dict(item)
        if profile is None or profile.name.lower() in parsed:
            continue
        if profile.name.lower() not in roster:
            logger.warning("Dropping profile for %r: not a blueprint character", profile.name)
            continue
        parsed[profile.name.lower()] = profile

    return [parsed.get(n.lower()) or default_profile(n) for n in names]


# ---------- Motion Cues ----------

def trim_words(text: str, limit: int = MOTION_CUE_MAX_WORDS) -> str:
    words = text.split()
    if len(words) <= limit:
        return text.strip()
    return " ".join(words[:limit]).rstrip(".,;:!?") + "."


def parse_motion_cue(text: str, scene_index: int) -> MotionCue:
    try:
        data = extract_json_object(text)
    except ExtractionError:
        logger.warning("Scene %s: unparseable motion cue, using defaults", scene_index)
        return MotionCue(scene_index=scene_index)

    defaults = MotionCue(scene_index=scene_index)
    cue = _text(_pick(data, "motion_cue", "motionCue", "MOTION_CUE"), defaults.motion_cue)
    character_motion = _pick(data, "character_motion", "characterMotion")
    return MotionCue(
        scene_index=scene_index,
        synopsis=_text(data.get("synopsis"), defaults.synopsis),
        motion_cue=trim_words(cue),
        character_motion=[str(c) for c in character_motion] if isinstance(character_motion, list) else [],
    )
