"""
Constraint validation.

Structural pass: local and deterministic (scene count, word-count window,
banned-verb scan, new-name heuristic). Semantic pass: one text-generation
call, run only when the structural pass found no hard error.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from .adapters import GenerationAdapter
from .artifact import Blueprint, Severity, ValidationIssue, ValidationOutput
from .parser import parse_validation_response
from .prompt_compiler import compile_validation_prompt

logger = logging.getLogger(__name__)

# Verb stem -> inflected forms
CONTINUOUS_ACTION_VERBS = {
    "run": ("run", "runs", "ran", "running"),
    "walk": ("walk", "walks", "walked", "walking"),
    "climb": ("climb", "climbs", "climbed", "climbing"),
    "fight": ("fight", "fights", "fought", "fighting"),
    "chase": ("chase", "chases", "chased", "chasing"),
    "fly": ("fly", "flies", "flew", "flown", "flying"),
    "swim": ("swim", "swims", "swam", "swum", "swimming"),
}
_VERB_FORMS = [form for forms in CONTINUOUS_ACTION_VERBS.values() for form in forms]

_VERB_PATTERN = re.compile(r"\b(" + "|".join(_VERB_FORMS) + r")\b", re.IGNORECASE)

# Capitalized word followed by a speech/state verb; a name-detection heuristic, not NER
_NAME_PATTERN = re.compile(r"\b([A-Z][a-z]+) (?:says|thinks|is|was|stood|sat)\b")

# Sentence-initial words the name heuristic would otherwise flag on every page
_COMMON_CAPITALIZED = frozenset({
    "I", "It", "He", "She", "They", "We", "You", "There", "This", "That", "These",
    "Those", "Here", "What", "Who", "Everything", "Nothing", "Everyone", "Someone",
    "Something", "Nobody", "Time", "Silence",
})

SEMANTIC_TEMPERATURE = 0.3
SEMANTIC_MAX_TOKENS = 2000


# ---------- Structural Pass ----------

def check_scene_count(blueprint: Blueprint, scenes: Sequence[str]) -> Optional[ValidationIssue]:
    if len(scenes) == blueprint.scene_count:
        return None
    return ValidationIssue(
        severity=Severity.HARD,
        field="sceneCount",
        message=f"Scene count mismatch: expected {blueprint.scene_count}, got {len(scenes)}",
    )


def check_word_count(blueprint: Blueprint, word_count: int) -> Optional[ValidationIssue]:
    low, high = blueprint.word_count_window
    if low <= word_count <= high:
        return None
    return ValidationIssue(
        severity=Severity.HARD,
        field="wordCount",
        message=f"Word count out of range: expected {low}-{high}, got {word_count}",
    )


def find_continuous_verbs(text: str) -> List[str]:
    """Banned verb forms present in the text, in denylist order."""
    found = {m.group(1).lower() for m in _VERB_PATTERN.finditer(text)}
    return [v for v in _VERB_FORMS if v in found]


def find_unknown_names(text: str, characters: Sequence[str]) -> List[str]:
    """Capitalized-word-plus-verb hits whose word is not a blueprint character."""
    known = [c.lower() for c in characters]
    hits: List[str] = []
    for match in _NAME_PATTERN.finditer(text):
        word = match.group(1)
        if word in _COMMON_CAPITALIZED:
            continue
        if any(word.lower() in name.split() or name in match.group(0).lower() for name in known):
            continue
        if match.group(0) not in hits:
            hits.append(match.group(0))
    return hits


def check_structure(
    blueprint: Blueprint,
    scenes: Sequence[str],
    word_count: Optional[int] = None,
) -> ValidationOutput:
    """
    Cheap local checks. Deterministic: same input, same report.

    Args:
        blueprint: Constraint source
        scenes: Candidate scene texts
        word_count: Full-story word count; None skips the word-count window
            check (edit validation judges scenes, not totals)

    Returns:
        ValidationOutput with hard errors for count violations and soft
        warnings for style/name findings
    """
    errors: List[ValidationIssue] = []
    warnings: List[str] = []

    scene_issue = check_scene_count(blueprint, scenes)
    if scene_issue:
        errors.append(scene_issue)

    if word_count is not None:
        word_issue = check_word_count(blueprint, word_count)
        if word_issue:
            errors.append(word_issue)

    text = "\n".join(scenes)

    verbs = find_continuous_verbs(text)
    if verbs:
        warnings.append(f"Found continuous action verbs (use static imagery): {', '.join(verbs)}")

    names = find_unknown_names(text, blueprint.characters)
    if names:
        warnings.append(
            f"Potential new characters detected: {', '.join(names)}. "
            "Please verify only blueprint characters are used."
        )

    report = ValidationOutput.from_findings(errors, warnings)
    if warnings:
        logger.warning("Structural validation warnings: %s", warnings)
    return report


# ---------- Semantic Pass ----------

def merge_reports(structural: ValidationOutput, semantic: ValidationOutput) -> ValidationOutput:
    """Concatenate findings; validity is recomputed as 'no hard errors'."""
    warnings = list(structural.warnings)
    for w in semantic.warnings:
        if w not in warnings:
            warnings.append(w)
    return ValidationOutput.from_findings(structural.errors + semantic.errors, warnings)


async def validate_scenes(
    blueprint: Blueprint,
    candidate_scenes: Sequence[str],
    adapter: GenerationAdapter,
    original_scenes: Optional[Sequence[str]] = None,
) -> ValidationOutput:
    """
    Two-tier validation of an edited scene list.

    The semantic pass is skipped entirely when the structural pass already
    has a hard error, so no generation call is made in that case.

    Raises:
        ProviderError: If the semantic validation call fails
    """
    structural = check_structure(blueprint, candidate_scenes)
    if not structural.is_valid:
        logger.info("Structural validation failed; skipping semantic pass")
        return structural

    prompt = compile_validation_prompt(blueprint, original_scenes or [], candidate_scenes)
    result = await adapter.generate_async(
        prompt.user_prompt,
        system_prompt=prompt.system_prompt,
        temperature=SEMANTIC_TEMPERATURE,
        max_tokens=SEMANTIC_MAX_TOKENS,
    )
    semantic = parse_validation_response(result.text)
    return merge_reports(structural, semantic)
