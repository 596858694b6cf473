"""
Cine Pipeline

Turns a structured story blueprint into a validated narrative, then into
shot/character/background blueprints, scene images, narration and video.
Stages 1-2 (generation, constraint validation, edit/regenerate cycles)
are the core; Stages 3-5 reuse the same compile -> generate -> parse
pattern.
"""

from .artifact import (
    Blueprint,
    StoryOutput,
    ValidationIssue,
    ValidationOutput,
    Severity,
    EditRequest,
    EditType,
    ShotBlueprint,
    CharacterProfile,
    BackgroundBlueprint,
    ImagePrompt,
    MotionCue,
    ProjectStatus,
)

from .adapters import (
    GenerationAdapter,
    GenerationResult,
    Capabilities,
    OpenRouterAdapter,
    FalAiAdapter,
    AdapterCache,
)

from .config import Settings, AdapterConfig, resolve_named_config

from .logconf import init as init_logging

from .errors import (
    CinePipelineError,
    InputError,
    RecordNotFound,
    ProviderError,
    ConstraintViolation,
    ExtractionError,
    to_error_payload,
)

from .store import RecordStore, InMemoryRecordStore

from .parser import parse_story, parse_validation_response
from .validator import check_structure, validate_scenes
from .json_extract import extract_json_object, extract_json_array

from .steps import GenerationStep, create_project

from .pipeline import (
    generate_story,
    get_story,
    generate_scene_blueprints,
    regenerate_scene_blueprint,
    lock_scene,
    unlock_scene,
)

from .editor import EditSession, EditState, edit_story, validate_story, regenerate_scene

from .media import (
    assemble_image_prompt,
    generate_images,
    regenerate_scene_image,
    list_assets,
    lock_asset,
    unlock_asset,
    delete_asset,
    generate_motion_cues,
    generate_audio,
    generate_video,
    get_video_status,
    cancel_video,
)

__all__ = [
    # Core models
    "Blueprint",
    "StoryOutput",
    "ValidationIssue",
    "ValidationOutput",
    "Severity",
    "EditRequest",
    "EditType",
    "ShotBlueprint",
    "CharacterProfile",
    "BackgroundBlueprint",
    "ImagePrompt",
    "MotionCue",
    "ProjectStatus",

    # Adapters & config
    "GenerationAdapter",
    "GenerationResult",
    "Capabilities",
    "OpenRouterAdapter",
    "FalAiAdapter",
    "AdapterCache",
    "Settings",
    "AdapterConfig",
    "resolve_named_config",
    "init_logging",

    # Errors
    "CinePipelineError",
    "InputError",
    "RecordNotFound",
    "ProviderError",
    "ConstraintViolation",
    "ExtractionError",
    "to_error_payload",

    # Persistence
    "RecordStore",
    "InMemoryRecordStore",

    # Parsing & validation
    "parse_story",
    "parse_validation_response",
    "check_structure",
    "validate_scenes",
    "extract_json_object",
    "extract_json_array",

    # Stage 1 & 3
    "GenerationStep",
    "create_project",
    "generate_story",
    "get_story",
    "generate_scene_blueprints",
    "regenerate_scene_blueprint",
    "lock_scene",
    "unlock_scene",

    # Stage 2
    "EditSession",
    "EditState",
    "edit_story",
    "validate_story",
    "regenerate_scene",

    # Stages 4-5
    "assemble_image_prompt",
    "generate_images",
    "regenerate_scene_image",
    "list_assets",
    "lock_asset",
    "unlock_asset",
    "delete_asset",
    "generate_motion_cues",
    "generate_audio",
    "generate_video",
    "get_video_status",
    "cancel_video",
]
