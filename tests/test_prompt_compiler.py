"""
Tests for prompt compilation.
"""

from cine_pipeline import guides
from cine_pipeline.artifact import CharacterProfile, ShotBlueprint
from cine_pipeline.prompt_compiler import (
    compile_background_prompt,
    compile_character_prompt,
    compile_motion_prompt,
    compile_narration_prompt,
    compile_scene_regeneration_prompt,
    compile_shot_prompt,
    compile_story_prompt,
    compile_validation_prompt,
)


class TestStoryPrompt:
    """Tests for compile_story_prompt."""

    def test_every_blueprint_field_rendered(self, blueprint):
        prompt = compile_story_prompt(blueprint)
        user = prompt.user_prompt

        assert prompt.system_prompt == guides.STORY_ARCHITECT_GUIDE
        assert f"Core Idea: {blueprint.core_idea}" in user
        assert "Genre: Mystery" in user
        assert "Tone & Mood: Quiet, uneasy" in user
        assert "Target Word Count: 900 words (±3% tolerance: 873-927 words)" in user
        assert "Language & Style: English, cinematic" in user
        assert "Narration Perspective: third-person" in user
        assert "Required Scene Count: 3 (EXACT)" in user
        assert "Characters (ONLY these may appear): Ava, Leo" in user
        assert "Additional Instructions" not in user

    def test_custom_prompt_appended(self, blueprint):
        custom = blueprint.model_copy(update={"custom_prompt": "End on a cliffhanger."})
        assert "Additional Instructions:\nEnd on a cliffhanger." in compile_story_prompt(custom).user_prompt

    def test_deterministic(self, blueprint):
        assert compile_story_prompt(blueprint) == compile_story_prompt(blueprint)


class TestEditPrompts:
    """Tests for the single-scene and validation prompts."""

    def test_regeneration_prompt_is_one_based(self, blueprint):
        prompt = compile_scene_regeneration_prompt(blueprint, 2, "Make it colder.")

        assert "You are rewriting Scene 3 of a cinematic story." in prompt.user_prompt
        assert "INSTRUCTIONS: Make it colder." in prompt.user_prompt
        assert "Characters (only these): Ava, Leo" in prompt.user_prompt
        assert "Word Count" not in prompt.user_prompt

    def test_regeneration_prompt_default_instructions(self, blueprint):
        prompt = compile_scene_regeneration_prompt(blueprint, 0, "")
        assert "INSTRUCTIONS: Rewrite the scene while keeping every constraint." in prompt.user_prompt

    def test_validation_prompt_embeds_both_scene_sets(self, blueprint):
        prompt = compile_validation_prompt(blueprint, ["old one", "old two"], ["new one", "new two"])
        user = prompt.user_prompt

        assert prompt.system_prompt == guides.STORY_VALIDATOR_GUIDE
        assert user.index("ORIGINAL SCENES") < user.index("old one") < user.index("EDITED SCENES") < user.index("new one")
        assert "Scene 2:\nnew two" in user
        assert "exactly 3" in user


class TestBlueprintPrompts:
    """Tests for the Stage 3 and Stage 5 prompts."""

    def test_character_prompt_lists_names(self):
        prompt = compile_character_prompt("the story", ["Ava", "Leo"])

        assert "CHARACTER NAMES TO EXTRACT:\nAva, Leo" in prompt.user_prompt
        assert prompt.system_prompt == guides.CHARACTER_DESIGN_GUIDE

    def test_character_custom_prompt_replaces_prompt(self):
        prompt = compile_character_prompt("the story", ["Ava"], custom_prompt="Only describe Ava's coat.")
        assert prompt.user_prompt == "Only describe Ava's coat."

    def test_shot_prompt(self):
        prompt = compile_shot_prompt("Ava rests at the rail.", ["Ava"], custom_prompt="Prefer low angles.")

        assert "SCENE TEXT:\nAva rests at the rail." in prompt.user_prompt
        assert '"internal_state"' in prompt.user_prompt
        assert prompt.user_prompt.rstrip().endswith("Prefer low angles.")

    def test_background_prompt(self):
        prompt = compile_background_prompt("A foggy pier.")
        assert "MASTER_LOCATION" in prompt.user_prompt and "A foggy pier." in prompt.user_prompt

    def test_motion_prompt(self):
        shot = ShotBlueprint(scene_index=0, shot_type="Wide", view="Back", staging="Ava at frame left")
        prompt = compile_motion_prompt("fog", shot, [CharacterProfile(name="Ava")])

        assert "AVAILABLE CHARACTERS: Ava" in prompt.user_prompt
        assert "- Shot Type: Wide" in prompt.user_prompt
        assert "at most 40 words" in prompt.user_prompt

    def test_narration_prompt(self):
        prompt = compile_narration_prompt("the story", "dramatic")
        assert "in a dramatic tone" in prompt.user_prompt
