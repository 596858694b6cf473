"""
Tests for story and validation-report parsing.
"""

import pytest

from cine_pipeline.artifact import Severity
from cine_pipeline.parser import (
    MANUAL_REVIEW_WARNING,
    UNTITLED,
    body_or_unmarked_lines,
    confirmation_or_default,
    join_scenes,
    parse_story,
    parse_validation_response,
    scenes_or_whole_text,
    title_or_default,
    word_count_or_computed,
)


class TestFallbackRules:
    """Each missing field has exactly one fallback."""

    def test_title_default(self):
        assert title_or_default("") == UNTITLED
        assert title_or_default("The Lantern") == "The Lantern"

    def test_scenes_default_to_whole_text(self):
        assert scenes_or_whole_text([], "All of it.") == ["All of it."]
        assert scenes_or_whole_text(["a", "b"], "a b") == ["a", "b"]

    def test_word_count_computed_from_story_text(self):
        assert word_count_or_computed(0, "Scene 1: one two\n\nScene 2: three") == 7
        assert word_count_or_computed(950, "Scene 1: one two") == 950

    def test_confirmation_synthesized(self):
        assert confirmation_or_default("", 3, 900) == "Story generated with 3 scenes and approximately 900 words."
        assert confirmation_or_default("All constraints met.", 3, 900) == "All constraints met."

    def test_body_from_unmarked_lines(self):
        assert body_or_unmarked_lines([], ["first", "", "second"]) == ["first", "second"]
        assert body_or_unmarked_lines(["kept"], ["ignored"]) == ["kept"]


class TestParseStory:
    """Tests for parse_story."""

    def test_well_formed_response(self, make_story_response):
        raw = make_story_response(["the lamp glows", "the door rests ajar"], word_count=7)
        story = parse_story(raw)

        assert story.title == "The Lantern Keeper"
        assert story.constraints_confirmation == "This story contains exactly the requested scenes and characters."
        assert story.scenes == ["the lamp glows", "the door rests ajar"]
        assert story.word_count_actual == 7
        assert story.story_text.startswith("Scene 1: the lamp glows")

    @pytest.mark.parametrize("count", [1, 2, 3, 5, 8])
    def test_scene_marker_count_matches_scene_count(self, make_story_response, count):
        raw = make_story_response([f"still frame number {i}" for i in range(count)])
        assert len(parse_story(raw).scenes) == count

    def test_inline_marker_values(self):
        raw = "Title: Salt and Glass\nConfirmation: Two scenes only.\nSTORY:\nScene 1: one\nScene 2: two"
        story = parse_story(raw)

        assert story.title == "Salt and Glass"
        assert story.constraints_confirmation == "Two scenes only."
        assert story.scenes == ["one", "two"]

    def test_missing_title_uses_default(self, make_story_response):
        story = parse_story(make_story_response(["a quiet room"], title=None))
        assert story.title == "Untitled Story"

    def test_marker_value_does_not_swallow_next_marker(self):
        raw = "STORY TITLE:\n\nCONSTRAINT CONFIRMATION:\nAll good.\nSTORY:\nScene 1: hush"
        story = parse_story(raw)

        assert story.title == UNTITLED
        assert story.constraints_confirmation == "All good."

    def test_missing_confirmation_is_synthesized(self, make_story_response):
        story = parse_story(make_story_response(["a b c", "d e"], confirmation=None))
        assert story.constraints_confirmation == "Story generated with 2 scenes and approximately 9 words."

    def test_no_scene_markers_yields_single_scene(self):
        raw = "STORY TITLE: Alone\nSTORY:\nThe harbor rests under fog.\nA lamp glows."
        story = parse_story(raw)

        assert story.scenes == [story.story_text]
        assert story.story_text == "The harbor rests under fog.\nA lamp glows."

    def test_no_markers_at_all(self):
        raw = "Just some prose.\nMore prose here."
        story = parse_story(raw)

        assert story.title == UNTITLED
        assert story.story_text == raw
        assert story.scenes == [raw]
        assert story.word_count_actual == 6

    def test_scene_marker_starts_body_without_story_marker(self):
        raw = "Title: Fog\nScene 1: first frame\nScene 2: second frame"
        story = parse_story(raw)

        assert story.title == "Fog"
        assert story.scenes == ["first frame", "second frame"]

    def test_markdown_scene_headings(self):
        raw = "STORY:\n## Scene 1: Dawn\nthe light rises\n**Scene 2:** dusk falls"
        story = parse_story(raw)

        assert story.scenes == ["Dawn\nthe light rises", "dusk falls"]

    def test_stated_word_count_with_comma(self):
        raw = "STORY:\nScene 1: a b c\nWORD COUNT: 1,020 words"
        assert parse_story(raw).word_count_actual == 1020

    def test_computed_word_count_covers_whole_story_body(self):
        raw = "STORY:\nThe night before.\nScene 1: a b c\nScene 2: d e"
        story = parse_story(raw)

        assert story.scenes == ["a b c", "d e"]
        assert story.word_count_actual == len(story.story_text.split()) == 12

    def test_parsing_stops_at_word_count(self):
        raw = "STORY:\nScene 1: a b c\nWORD COUNT: 3\nScene 2: trailing commentary"
        story = parse_story(raw)

        assert story.scenes == ["a b c"]
        assert "trailing" not in story.story_text

    def test_text_after_story_marker_on_same_line(self):
        story = parse_story("STORY: the lamp glows above the water")
        assert story.story_text == "the lamp glows above the water"

    def test_empty_response_never_raises(self):
        story = parse_story("")
        assert story.title == UNTITLED
        assert story.scenes == [""]
        assert story.word_count_actual == 0

    def test_join_scenes_round_trips_through_parser(self):
        scenes = ["the lamp glows", "the door rests ajar", "fog settles"]
        assert parse_story("STORY:\n" + join_scenes(scenes)).scenes == scenes


class TestParseValidationResponse:
    """Tests for parse_validation_response."""

    def test_json_report(self):
        text = """Analysis complete.
```json
{"isValid": false, "errors": [{"type": "hard", "field": "characters", "message": "New character: Marcus", "sceneIndex": 1}], "warnings": ["Dialogue heavy"]}
```"""
        report = parse_validation_response(text)

        assert report.is_valid is False
        assert report.errors[0].severity == Severity.HARD
        assert report.errors[0].field == "characters"
        assert report.errors[0].scene_index == 1
        assert report.warnings == ["Dialogue heavy"]

    def test_validity_recomputed_from_hard_errors(self):
        text = '{"isValid": false, "errors": [{"type": "soft", "message": "Tone drifts"}]}'
        report = parse_validation_response(text)

        assert report.is_valid is True
        assert report.soft_errors[0].field == "general"

    def test_no_json_clean_prose_is_valid_with_manual_review(self):
        report = parse_validation_response("Everything looks consistent with the blueprint.")

        assert report.is_valid is True
        assert report.errors == []
        assert report.warnings == [MANUAL_REVIEW_WARNING]

    def test_no_json_with_violation_keyword(self):
        report = parse_validation_response("There is a violation of the character roster.")

        assert report.is_valid is False
        assert report.errors[0].severity == Severity.SOFT
        assert report.warnings == [MANUAL_REVIEW_WARNING]

    def test_wrong_shape_degrades_to_manual_review(self):
        report = parse_validation_response('{"errors": ["just a string"]}')

        assert report.is_valid is True
        assert report.errors == []
        assert report.warnings == [MANUAL_REVIEW_WARNING]

    def test_hard_error_kept_beside_unknown_severity(self):
        text = (
            '{"errors": [{"type": "hard", "field": "characters", "message": "New character Zed"},'
            ' {"type": "warning", "message": "tone drift"}], "warnings": ["Dialogue heavy"]}'
        )
        report = parse_validation_response(text)

        assert report.is_valid is False
        assert [e.message for e in report.hard_errors] == ["New character Zed"]
        assert len(report.errors) == 1
        assert report.warnings == ["Dialogue heavy", MANUAL_REVIEW_WARNING]

    def test_errors_not_a_list_degrades_to_manual_review(self):
        report = parse_validation_response('{"errors": "none found"}')

        assert report.is_valid is True
        assert report.warnings == [MANUAL_REVIEW_WARNING]
