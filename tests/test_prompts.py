# tests/test_prompts.py
"""Tests for prompt templates and model-reply JSON extraction."""

from govflow.models import ArtifactType, GenerationRequest
from govflow.prompts import (
    build_chat_prompt,
    build_generation_prompt,
    build_intent_prompt,
    build_workflow_parse_prompt,
    extract_json_object,
)


class TestPromptBuilders:
    """Prompt composition."""

    def test_generation_prompt_uses_artifact_instructions(self):
        prompt = build_generation_prompt(GenerationRequest(user_input="login page", artifact_type=ArtifactType.PAGE_OBJECT))
        assert "page object" in prompt
        assert "login page" in prompt
        assert "Existing code" not in prompt

    def test_generation_prompt_includes_existing_code(self):
        prompt = build_generation_prompt(GenerationRequest(user_input="update", existing_code_context="class A {}"))
        assert "Existing code to update or follow" in prompt
        assert "class A {}" in prompt

    def test_chat_prompt_with_and_without_context(self):
        assert "Relevant code" not in build_chat_prompt("what is x?")
        prompt = build_chat_prompt("what is x?", "// File: a.ts\nconst x = 1;")
        assert "Relevant code from the repository" in prompt
        assert "const x = 1;" in prompt

    def test_intent_prompt_lists_catalogue(self):
        prompt = build_intent_prompt('say "hi"', [("count_tests", "Count tests")])
        assert "- count_tests: Count tests" in prompt
        assert "say 'hi'" in prompt

    def test_workflow_prompt_asks_for_json_keys(self):
        prompt = build_workflow_parse_prompt("create branch x")
        for key in ("branchName", "featureDescription", "filesToGenerate", "commitMessage"):
            assert key in prompt


class TestExtractJsonObject:
    """Lenient JSON extraction from chatty model replies."""

    def test_plain_object(self):
        assert extract_json_object('{"action": "count_tests"}') == {"action": "count_tests"}

    def test_object_surrounded_by_prose(self):
        reply = 'Sure! Here you go:\n{"action": "coverage", "confidence": 0.9}\nHope that helps.'
        assert extract_json_object(reply) == {"action": "coverage", "confidence": 0.9}

    def test_invalid_json(self):
        assert extract_json_object("{not json}") is None

    def test_no_object(self):
        assert extract_json_object("no braces here") is None
        assert extract_json_object("") is None

    def test_array_is_not_an_object(self):
        assert extract_json_object("[1, 2]") is None
