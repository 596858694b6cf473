"""
Tests for Stage 2 editing: edit batches, validation and commit/reject.
"""

import pytest

from cine_pipeline.artifact import EditRequest
from cine_pipeline.editor import (
    EditSession,
    EditState,
    edit_story,
    parse_edit_requests,
    regenerate_scene,
    validate_story,
)
from cine_pipeline.errors import ConstraintViolation, InputError, RecordNotFound
from cine_pipeline.parser import count_words, join_scenes
from cine_pipeline.steps import load_blueprint

VALID_REPORT = '{"isValid": true, "errors": [], "warnings": []}'


class TestEditStory:
    """Tests for the edit_story entry point."""

    @pytest.mark.asyncio
    async def test_regenerate_commits_once(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue("  the tide rests against the pier  ", VALID_REPORT)

        saved = await edit_story(
            project_id,
            [{"sceneIndex": 1, "editType": "regenerate", "instructions": "Colder light."}],
            store,
            adapters,
        )

        assert saved["scenes"][1] == "the tide rests against the pier"
        assert saved["scenes"][0] == stored_story["scenes"][0]
        assert saved["story_text"] == join_scenes(saved["scenes"])
        assert saved["word_count_actual"] == count_words(saved["story_text"]) == 600 + 6 + 6
        assert saved["is_validated"] is True
        assert store.find_unique("project", project_id)["status"] == "stage2_complete"
        assert text_adapter.call_count == 2
        assert "You are rewriting Scene 2" in text_adapter.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_validation_sees_every_replacement(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue("first rewrite", "third rewrite", VALID_REPORT)

        await edit_story(
            project_id,
            [
                {"scene_index": 0, "edit_type": "regenerate"},
                {"scene_index": 2, "edit_type": "regenerate"},
            ],
            store,
            adapters,
        )

        validation_prompt = text_adapter.calls[-1]["prompt"]
        assert "first rewrite" in validation_prompt and "third rewrite" in validation_prompt

    @pytest.mark.asyncio
    async def test_repeated_index_last_edit_wins(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue("first take", "second take", VALID_REPORT)

        saved = await edit_story(
            project_id,
            [
                {"scene_index": 0, "edit_type": "regenerate"},
                {"scene_index": 0, "edit_type": "regenerate"},
            ],
            store,
            adapters,
        )

        assert saved["scenes"][0] == "second take"

    @pytest.mark.asyncio
    async def test_modify_uses_supplied_scenes(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue(VALID_REPORT)
        edited = ["hand edited frame", *stored_story["scenes"][1:]]

        saved = await edit_story(
            project_id,
            [{"scene_index": 0, "edit_type": "modify"}],
            store,
            adapters,
            edited_scenes=edited,
        )

        assert saved["scenes"] == edited
        assert text_adapter.call_count == 1

    @pytest.mark.asyncio
    async def test_soft_findings_are_stored(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue("Ava keeps running along the pier", VALID_REPORT)

        saved = await edit_story(project_id, [{"scene_index": 1, "edit_type": "regenerate"}], store, adapters)

        assert saved["validation_errors"]["warnings"] == [
            "Found continuous action verbs (use static imagery): running"
        ]

    @pytest.mark.asyncio
    async def test_structural_rejection_writes_nothing(self, store, adapters, text_adapter, project_id, stored_story):
        before = store.find_unique("story", project_id)

        with pytest.raises(ConstraintViolation) as exc_info:
            await edit_story(
                project_id,
                [{"scene_index": 0, "edit_type": "modify"}],
                store,
                adapters,
                edited_scenes=stored_story["scenes"][:2],
            )

        assert exc_info.value.errors[0].field == "sceneCount"
        assert store.find_unique("story", project_id) == before
        assert store.find_unique("project", project_id)["status"] == "draft"
        assert text_adapter.call_count == 0

    @pytest.mark.asyncio
    async def test_semantic_rejection_writes_nothing(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue(
            "a new frame",
            '{"isValid": false, "errors": [{"type": "hard", "field": "characters", "message": "New character introduced: Marcus"}]}',
        )
        before = store.find_unique("story", project_id)

        with pytest.raises(ConstraintViolation) as exc_info:
            await edit_story(project_id, [{"scene_index": 2, "edit_type": "regenerate"}], store, adapters)

        assert str(exc_info.value) == "Validation failed: New character introduced: Marcus"
        assert exc_info.value.details() == [
            {"severity": "hard", "field": "characters", "message": "New character introduced: Marcus"}
        ]
        assert store.find_unique("story", project_id) == before

    @pytest.mark.asyncio
    async def test_unreadable_issue_does_not_mask_hard_error(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue(
            "a new frame",
            '{"errors": [{"type": "hard", "field": "characters", "message": "New character Zed"},'
            ' {"type": "warning", "message": "tone drift"}]}',
        )
        before = store.find_unique("story", project_id)

        with pytest.raises(ConstraintViolation, match="New character Zed"):
            await edit_story(project_id, [{"scene_index": 2, "edit_type": "regenerate"}], store, adapters)

        assert store.find_unique("story", project_id) == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [3, 10])
    async def test_out_of_range_index_before_any_call(self, store, adapters, text_adapter, project_id, stored_story, index):
        with pytest.raises(InputError) as exc_info:
            await edit_story(project_id, [{"scene_index": index, "edit_type": "regenerate"}], store, adapters)

        assert exc_info.value.message == "Invalid scene index"
        assert text_adapter.call_count == 0

    @pytest.mark.asyncio
    async def test_negative_index_rejected(self, store, adapters, text_adapter, project_id, stored_story):
        with pytest.raises(InputError) as exc_info:
            await edit_story(project_id, [{"scene_index": -1, "edit_type": "regenerate"}], store, adapters)

        assert exc_info.value.message == "Invalid edit request"
        assert text_adapter.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_story(self, store, adapters, project_id):
        with pytest.raises(RecordNotFound):
            await edit_story(project_id, [], store, adapters)

    @pytest.mark.asyncio
    async def test_missing_project_id(self, store, adapters):
        with pytest.raises(InputError, match="projectId is required"):
            await edit_story("", [], store, adapters)


class TestEditSession:
    """State transitions of one edit batch."""

    @pytest.mark.asyncio
    async def test_happy_path_states(self, store, text_adapter, project_id, stored_story):
        session = EditSession(project_id, load_blueprint(store, project_id), stored_story, store, text_adapter)
        assert session.state == EditState.STORED

        text_adapter.queue("rewritten frame", VALID_REPORT)
        await session.apply_edits(parse_edit_requests([{"scene_index": 0, "edit_type": "regenerate"}]))
        assert session.state == EditState.EDITS_APPLIED

        await session.validate()
        assert session.state == EditState.VALIDATED

        session.commit()
        assert session.state == EditState.COMMITTED

    @pytest.mark.asyncio
    async def test_rejected_state(self, store, text_adapter, project_id, stored_story):
        session = EditSession(
            project_id, load_blueprint(store, project_id), stored_story, store, text_adapter,
            edited_scenes=["only one"],
        )
        await session.apply_edits([])
        await session.validate()

        with pytest.raises(ConstraintViolation):
            session.commit()
        assert session.state == EditState.REJECTED

    def test_commit_requires_validation(self, store, text_adapter, project_id, stored_story):
        session = EditSession(project_id, load_blueprint(store, project_id), stored_story, store, text_adapter)

        with pytest.raises(RuntimeError):
            session.commit()

    @pytest.mark.asyncio
    async def test_clone_does_not_alias_stored_scenes(self, store, text_adapter, project_id, stored_story):
        session = EditSession(project_id, load_blueprint(store, project_id), stored_story, store, text_adapter)
        text_adapter.queue("changed")

        await session.apply_edits([EditRequest(scene_index=0, edit_type="regenerate")])

        assert session.original_scenes[0] == stored_story["scenes"][0]
        assert store.find_unique("story", project_id)["scenes"][0] == stored_story["scenes"][0]


class TestStandaloneOperations:
    """validate_story and regenerate_scene never write."""

    @pytest.mark.asyncio
    async def test_validate_story_writes_nothing(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue(VALID_REPORT)
        before = store.find_unique("story", project_id)

        report = await validate_story(project_id, ["a", "b", "c"], store, adapters)

        assert report.is_valid
        assert store.find_unique("story", project_id) == before

    @pytest.mark.asyncio
    async def test_regenerate_scene_returns_text(self, store, adapters, text_adapter, project_id, stored_story):
        text_adapter.queue("\nfresh frame\n")
        before = store.find_unique("story", project_id)

        result = await regenerate_scene(project_id, 1, "Warmer.", store, adapters)

        assert result == {"scene_index": 1, "scene": "fresh frame"}
        assert store.find_unique("story", project_id) == before

    @pytest.mark.asyncio
    async def test_regenerate_scene_bad_index(self, store, adapters, text_adapter, project_id, stored_story):
        with pytest.raises(InputError):
            await regenerate_scene(project_id, 5, "", store, adapters)
        assert text_adapter.call_count == 0
