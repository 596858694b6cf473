from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_TEXT_MODEL
from .errors import InputError


# ---------- Base (camelCase aliases for the wire, snake_case in Python) ----------

class ArtifactModel(BaseModel):
    """Base model accepting both field names and their camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Narration(str, Enum):
    FIRST_PERSON = "first-person"
    THIRD_PERSON = "third-person"
    SECOND_PERSON = "second-person"


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    STAGE1_COMPLETE = "stage1_complete"
    STAGE2_COMPLETE = "stage2_complete"
    STAGE3_COMPLETE = "stage3_complete"
    STAGE4_COMPLETE = "stage4_complete"
    STAGE5_COMPLETE = "stage5_complete"


# ---------- Stage 1: Blueprint & Story ----------

class Blueprint(ArtifactModel):
    """Immutable creative-constraint input for one narrative generation run."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    core_idea: str = Field(..., min_length=10, description="The central plot or concept.")
    genre: str = Field(..., min_length=1)
    tone_mood: str = Field(..., min_length=1)
    word_count: int = Field(..., ge=500, le=10000, description="Target word count (±3% tolerance).")
    language_style: str = "English, cinematic"
    narration: Narration
    scene_count: int = Field(..., ge=1, le=20, description="Exact number of scenes required.")
    characters: List[str] = Field(..., min_length=1, max_length=10, description="Only these characters may appear.")
    custom_prompt: Optional[str] = None
    selected_model: str = DEFAULT_TEXT_MODEL

    @field_validator("characters")
    @classmethod
    def _unique_names(cls, names: List[str]) -> List[str]:
        cleaned = [n.strip() for n in names]
        if any(not n for n in cleaned):
            raise ValueError("character names must be non-empty")
        if len({n.lower() for n in cleaned}) != len(cleaned):
            raise ValueError("character names must be unique")
        return cleaned

    @property
    def word_count_window(self) -> Tuple[int, int]:
        """[floor(wc*0.97), ceil(wc*1.03)] in integer arithmetic."""
        low = (self.word_count * 97) // 100
        high = -((-self.word_count * 103) // 100)
        return low, high

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Blueprint":
        """Validate caller input, converting schema failures to InputError."""
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            details = [
                {"field": ".".join(str(p) for p in err["loc"]) or "blueprint", "message": err["msg"]}
                for err in e.errors()
            ]
            raise InputError("Invalid blueprint data", details) from e


class StoryOutput(ArtifactModel):
    """Generated narrative; scenes may diverge from Blueprint.scene_count until validated."""
    title: str
    story_text: str
    word_count_actual: int
    constraints_confirmation: str
    scenes: List[str]


# ---------- Stage 2: Validation & Edits ----------

class Severity(str, Enum):
    HARD = "hard"
    SOFT = "soft"


class ValidationIssue(ArtifactModel):
    severity: Severity = Field(..., validation_alias=AliasChoices("severity", "type"))
    field: str = "general"
    message: str
    scene_index: Optional[int] = None


class ValidationOutput(ArtifactModel):
    """Result of one validation pass; is_valid means no hard errors."""
    is_valid: bool
    errors: List[ValidationIssue] = []
    warnings: List[str] = []

    @classmethod
    def from_findings(cls, errors: List[ValidationIssue], warnings: List[str]) -> "ValidationOutput":
        return cls(
            is_valid=not any(e.severity == Severity.HARD for e in errors),
            errors=list(errors),
            warnings=list(warnings),
        )

    @property
    def hard_errors(self) -> List[ValidationIssue]:
        return [e for e in self.errors if e.severity == Severity.HARD]

    @property
    def soft_errors(self) -> List[ValidationIssue]:
        return [e for e in self.errors if e.severity == Severity.SOFT]


class EditType(str, Enum):
    MODIFY = "modify"
    REGENERATE = "regenerate"


class EditRequest(ArtifactModel):
    scene_index: int = Field(..., ge=0)
    edit_type: EditType
    instructions: str = ""


# ---------- Stage 3: Scene Blueprints ----------

class ShotBlueprint(ArtifactModel):
    """Camera framing for one scene."""
    scene_index: int
    original_scene: str = ""
    shot_type: str = "Medium"
    angle: str = "Eye level"
    view: str = "Front"
    staging: str = "Standard staging"
    relational_staging: Optional[str] = None
    scene_function: str = "Advance narrative"


class Appearance(ArtifactModel):
    eyes: str = "Not specified"
    skin: str = "Not specified"
    hair: str = "Not specified"


class Outfit(ArtifactModel):
    """FFCPP outfit: [Color] [Fabric/Style] [Garment Type] per slot."""
    upper: str = "Not specified"
    lower: str = "Not specified"
    footwear: str = "Not specified"


class CharacterProfile(ArtifactModel):
    name: str
    role: str = "Character"
    appearance: Appearance = Field(default_factory=Appearance)
    outfit: Outfit = Field(default_factory=Outfit)
    props: List[str] = []
    design_prompt: str = ""
    snippets: Dict[str, Dict[str, str]] = Field(
        default_factory=dict,
        description="Shot size (closeup/medium/wide) -> view (front/side/back) -> description.",
    )


class BackgroundBlueprint(ArtifactModel):
    master_location: str = "Interior setting"
    overlay_elements: List[str] = ["Standard elements"]
    lighting: str = "Soft, natural lighting"
    atmospheric_details: str = "Clear, neutral atmosphere"


# ---------- Stage 4-5: Image Prompts & Motion ----------

class ImagePrompt(ArtifactModel):
    """Three-paragraph image prompt for one scene."""
    scene_index: int
    character_snippet: str
    staging_line: str
    style_background_line: str
    full_prompt: str
    model_used: str = "flux-pro"


class MotionCue(ArtifactModel):
    scene_index: int
    synopsis: str = "Scene progression"
    motion_cue: str = Field("Subtle movement and ambient atmosphere.", description="One sentence, at most 40 words.")
    character_motion: List[str] = []
