"""
Response parsing: free-form generated text -> structured records.

Parsing never raises. Every missing field has one explicit fallback rule
(a small function below) so malformed output degrades to a usable result
and the validator, not the parser, decides whether to reject it.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .artifact import Severity, StoryOutput, ValidationIssue, ValidationOutput
from .errors import ExtractionError
from .json_extract import extract_json_object

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Story"
MANUAL_REVIEW_WARNING = "Could not fully validate - manual review recommended"

TITLE_MARKERS = ("STORY TITLE:", "Title:")
CONFIRMATION_MARKERS = ("CONSTRAINT CONFIRMATION:", "Confirmation:")
STORY_MARKER = "STORY:"
WORD_COUNT_MARKER = "WORD COUNT:"
ALL_MARKERS = TITLE_MARKERS + CONFIRMATION_MARKERS + (STORY_MARKER, WORD_COUNT_MARKER)

# "Scene 3:", "**Scene 3:**", "## Scene 3: ..."
SCENE_MARKER = re.compile(r"^[#*\s]*Scene\s+(\d+)\s*:", re.IGNORECASE)


# ---------- Helpers ----------

def count_words(text: str) -> int:
    return len(text.split())


def _has_marker(line: str, markers: Tuple[str, ...]) -> bool:
    return any(m in line for m in markers)


def _after_colon(line: str) -> str:
    return line.split(":", 1)[1].strip().strip("*").strip() if ":" in line else ""


def _marker_value(lines: List[str], i: int) -> Tuple[str, int]:
    """Value of the marker on line i: same line after the colon, else the next non-empty line.

    Returns:
        (value, index of the last line consumed)
    """
    inline = _after_colon(lines[i])
    if inline:
        return inline, i
    for j in range(i + 1, len(lines)):
        candidate = lines[j].strip().strip("*").strip()
        if not candidate:
            continue
        if _has_marker(candidate, ALL_MARKERS) or SCENE_MARKER.match(candidate):
            break
        return candidate, j
    return "", i


def _parse_word_count(lines: List[str], i: int) -> int:
    value, _ = _marker_value(lines, i)
    match = re.search(r"\d[\d,]*", value)
    return int(match.group(0).replace(",", "")) if match else 0


# ---------- Fallback Rules ----------

def title_or_default(title: str) -> str:
    return title or UNTITLED


def scenes_or_whole_text(scenes: List[str], story_text: str) -> List[str]:
    return scenes if scenes else [story_text]


def word_count_or_computed(stated: int, story_text: str) -> int:
    """No stated count: whitespace tokens of the whole story body, scene labels included."""
    return stated if stated > 0 else count_words(story_text)


def confirmation_or_default(confirmation: str, scene_total: int, word_count: int) -> str:
    return confirmation or f"Story generated with {scene_total} scenes and approximately {word_count} words."


def body_or_unmarked_lines(body: List[str], unmarked: List[str]) -> List[str]:
    """No story-start marker at all: every line not consumed by a marker becomes the body."""
    return body if body else [ln for ln in unmarked if ln]


# ---------- Story Parsing ----------

def split_scenes(body: List[str]) -> List[str]:
    """Split body lines on "Scene N:" markers; text after the colon starts the scene."""
    scenes: List[str] = []
    current: Optional[List[str]] = None

    for line in body:
        match = SCENE_MARKER.match(line)
        if match:
            if current is not None:
                scenes.append("\n".join(current).strip())
            rest = line[match.end():].strip().lstrip("*").strip()
            current = [rest] if rest else []
        elif current is not None and line:
            current.append(line)

    if current is not None:
        scenes.append("\n".join(current).strip())
    return scenes


def parse_story(raw_text: str) -> StoryOutput:
    """
    Parse a Stage 1 response into a StoryOutput.

    Section markers are matched by substring, not anchored, since the model's
    formatting is not guaranteed. Parsing stops at the word-count marker.

    Args:
        raw_text: Model output

    Returns:
        Best-effort StoryOutput (never raises)
    """
    lines = (raw_text or "").replace("\r\n", "\n").split("\n")

    title = ""
    confirmation = ""
    stated_word_count = 0
    body: List[str] = []
    unmarked: List[str] = []
    in_story = False
    skip_until = -1

    for i, raw_line in enumerate(lines):
        if i <= skip_until:
            continue
        line = raw_line.strip()

        if _has_marker(line, TITLE_MARKERS):
            value, skip_until = _marker_value(lines, i)
            title = title or value
            continue

        if _has_marker(line, CONFIRMATION_MARKERS):
            value, skip_until = _marker_value(lines, i)
            confirmation = confirmation or value
            continue

        if WORD_COUNT_MARKER in line:
            stated_word_count = _parse_word_count(lines, i)
            break

        if not in_story and STORY_MARKER in line:
            in_story = True
            rest = line.split(STORY_MARKER, 1)[1].strip().strip("*").strip()
            if rest:
                body.append(rest)
            continue

        if not in_story and SCENE_MARKER.match(line):
            in_story = True

        if in_story:
            body.append(line)
        else:
            unmarked.append(line)

    if not body:
        logger.warning("No story marker found in response; using all unmarked lines as the story body")
    body = body_or_unmarked_lines(body, unmarked)

    story_text = "\n".join(body).strip()
    scenes = split_scenes(body)
    if not scenes:
        logger.warning("No scene markers found; treating the whole story as one scene")
    scenes = scenes_or_whole_text(scenes, story_text)

    word_count = word_count_or_computed(stated_word_count, story_text)

    return StoryOutput(
        title=title_or_default(title),
        story_text=story_text,
        word_count_actual=word_count,
        constraints_confirmation=confirmation_or_default(confirmation, len(scenes), word_count),
        scenes=scenes,
    )


def join_scenes(scenes: List[str]) -> str:
    """Rebuild story text from a scene list in the same "Scene N:" layout the parser reads."""
    return "\n\n".join(f"Scene {i + 1}: {scene.strip()}" for i, scene in enumerate(scenes))


# ---------- Validation Report Parsing ----------

def heuristic_validation(text: str) -> ValidationOutput:
    """No JSON in the response: absence of "error"/"violation" implies validity."""
    lower = text.lower()
    is_valid = "error" not in lower and "violation" not in lower
    errors = [] if is_valid else [
        ValidationIssue(
            severity=Severity.SOFT,
            field="general",
            message="Please review the scenes for potential issues",
        )
    ]
    return ValidationOutput(is_valid=is_valid, errors=errors, warnings=[MANUAL_REVIEW_WARNING])


def _report_issues(items: list) -> Tuple[List[ValidationIssue], int]:
    """Validate report items one at a time; returns (issues, number skipped)."""
    issues: List[ValidationIssue] = []
    skipped = 0
    for item in items:
        try:
            issues.append(ValidationIssue.model_validate(item))
        except ValueError as e:
            logger.warning("Skipping unreadable validation issue %r: %s", item, e)
            skipped += 1
    return issues, skipped


def parse_validation_response(text: str) -> ValidationOutput:
    """
    Parse a semantic validation response. Never raises.

    Returns:
        The model's report (is_valid recomputed from its hard errors), the
        keyword heuristic when no JSON object is present, or an
        is_valid=True report flagged for manual review when the JSON does
        not fit the report shape. Individual unreadable issues are dropped
        with a manual-review warning; the readable ones, hard errors
        included, are kept.
    """
    try:
        data = extract_json_object(text)
    except ExtractionError:
        logger.warning("Validation response had no JSON object; using keyword heuristic")
        return heuristic_validation(text or "")

    errors = data.get("errors") or []
    warnings = data.get("warnings") or []
    if not isinstance(errors, list) or not isinstance(warnings, list):
        logger.warning("Validation report has the wrong shape: %s", sorted(data))
        return ValidationOutput(is_valid=True, errors=[], warnings=[MANUAL_REVIEW_WARNING])

    issues, skipped = _report_issues(errors)
    warnings = [str(w) for w in warnings]
    if skipped:
        warnings.append(MANUAL_REVIEW_WARNING)
    return ValidationOutput.from_findings(issues, warnings)
