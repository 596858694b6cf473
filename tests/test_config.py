"""
Tests for settings, named configurations, error payloads and logging setup.
"""

import logging

import pytest

from cine_pipeline import init_logging
from cine_pipeline.artifact import Blueprint, Severity, ValidationIssue
from cine_pipeline.config import Settings, resolve_named_config
from cine_pipeline.errors import ConstraintViolation, InputError, ProviderError, to_error_payload


class TestSettings:
    """Tests for Settings and named configurations."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
        monkeypatch.setenv("FAL_AI_API_KEY", "env-fal")
        monkeypatch.setenv("CINE_DEFAULT_MODEL", "openai/gpt-4o")
        monkeypatch.setenv("CINE_LLM_LOG", "")

        settings = Settings.from_env()

        assert settings.openrouter_api_key == "env-key"
        assert settings.fal_api_key == "env-fal"
        assert settings.default_model == "openai/gpt-4o"
        assert settings.llm_log_path == ""

    def test_per_call_key_overrides_settings(self, settings):
        assert resolve_named_config("claude", settings).api_key == "test-key"
        assert resolve_named_config("claude", settings, api_key="caller").api_key == "caller"
        assert resolve_named_config("falai/audio", settings).api_key == "fal-key"

    def test_named_models(self, settings):
        assert resolve_named_config("claude", settings).model == "anthropic/claude-3-5-sonnet"
        assert resolve_named_config("gemini", settings).model == "google/gemini-2.0-flash-exp"
        assert resolve_named_config("falai/audio", settings).modality == "audio"

    def test_key_not_in_repr(self, settings):
        assert "test-key" not in repr(resolve_named_config("gpt", settings))


class TestErrorPayloads:
    """Tests for to_error_payload."""

    def test_input_error_carries_field_details(self):
        with pytest.raises(InputError) as exc_info:
            Blueprint.from_payload({"coreIdea": "too short"})

        payload = to_error_payload(exc_info.value)
        assert payload["error"] is True
        assert payload["message"] == "Invalid blueprint data"
        assert {d["field"] for d in payload["details"]} >= {"coreIdea", "genre", "sceneCount"}

    def test_constraint_violation(self):
        issue = ValidationIssue(severity=Severity.HARD, field="sceneCount", message="Scene count mismatch: expected 3, got 2")
        payload = to_error_payload(ConstraintViolation([issue]))

        assert payload["message"] == "Validation failed: Scene count mismatch: expected 3, got 2"
        assert payload["details"][0]["field"] == "sceneCount"

    def test_provider_error_without_upstream(self):
        assert to_error_payload(ProviderError("OpenRouter API error: down")) == {
            "error": True,
            "message": "OpenRouter API error: down",
        }


def test_init_logging_sets_level():
    init_logging("debug")
    assert logging.getLogger().level == logging.DEBUG
    init_logging("INFO")
