# tests/commands/test_interpreter.py
"""
Tests for CommandInterpreter: exact phrasing match, model classification
and fuzzy fallback over the special-command catalogue.
"""

import json

import pytest

from conftest import ScriptedGenerator
from govflow.commands import (
    CommandInterpreter,
    CommandKind,
    MatchSource,
    command_for_action,
    similarity,
)
from govflow.exceptions import GenerationError


def intent_reply(action, confidence, target=""):
    return json.dumps({"action": action, "target": target, "confidence": confidence, "reasoning": "test"})


# ============================================================================
# Exact Matching
# ============================================================================


class TestExactMatch:
    """Known phrasings contained in the text."""

    @pytest.mark.asyncio
    async def test_exact_phrase_skips_model(self):
        gen = ScriptedGenerator(intent_reply("coverage", 0.99))
        parsed = await CommandInterpreter(gen).parse("Count Tests")

        assert parsed.is_special is True
        assert parsed.command is CommandKind.COUNT_TESTS
        assert parsed.matched_by is MatchSource.EXACT
        assert parsed.intent.confidence == 1.0
        assert gen.calls == []

    @pytest.mark.asyncio
    async def test_phrase_inside_sentence(self):
        parsed = await CommandInterpreter().parse("could you run login feature for me?")
        assert parsed.command is CommandKind.RUN_LOGIN

    @pytest.mark.asyncio
    async def test_longest_phrase_wins(self):
        # "test results" (view) and "open test results" (open) both match
        parsed = await CommandInterpreter().parse("open test results")
        assert parsed.command is CommandKind.OPEN_REPORT

    @pytest.mark.asyncio
    async def test_tie_goes_to_table_order(self):
        parsed = await CommandInterpreter().parse("framework analysis")
        assert parsed.command is CommandKind.COUNT_TESTS

    def test_whole_words_only(self):
        assert CommandInterpreter.exact_match("discount tests") is None
        assert CommandInterpreter.exact_match("please count tests") is CommandKind.COUNT_TESTS

    @pytest.mark.asyncio
    async def test_empty_text(self):
        parsed = await CommandInterpreter().parse("   ")
        assert parsed.is_special is False
        assert parsed.matched_by is MatchSource.NONE


# ============================================================================
# Model Classification
# ============================================================================


class TestModelClassification:
    @pytest.mark.asyncio
    async def test_confident_known_action(self):
        gen = ScriptedGenerator(intent_reply("coverage", 0.9))
        parsed = await CommandInterpreter(gen).parse("how well are my page objects exercised")

        assert parsed.command is CommandKind.COVERAGE
        assert parsed.matched_by is MatchSource.MODEL
        assert parsed.intent.reasoning == "test"
        assert gen.calls[0]["profile"] == "analysis"

    @pytest.mark.asyncio
    async def test_reply_wrapped_in_prose(self):
        gen = ScriptedGenerator("Sure! " + intent_reply("view_results", 0.8) + " Hope that helps.")
        parsed = await CommandInterpreter(gen).parse("what happened in the last run")
        assert parsed.command is CommandKind.VIEW_RESULTS

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self):
        gen = ScriptedGenerator(intent_reply("coverage", 0.7))
        parsed = await CommandInterpreter(gen).parse("how well are my page objects exercised")
        assert parsed.is_special is False

    @pytest.mark.asyncio
    async def test_unknown_action_ignored(self):
        gen = ScriptedGenerator(intent_reply("deploy_production", 0.95))
        parsed = await CommandInterpreter(gen).parse("ship it to prod")
        assert parsed.is_special is False

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        gen = ScriptedGenerator("I think you want coverage.")
        parsed = await CommandInterpreter(gen).parse("tell me a joke")
        assert parsed.is_special is False

    @pytest.mark.asyncio
    async def test_failure_falls_back_to_fuzzy(self):
        gen = ScriptedGenerator(GenerationError("ollama", "connection refused"))
        parsed = await CommandInterpreter(gen).parse("tests count")

        assert parsed.command is CommandKind.COUNT_TESTS
        assert parsed.matched_by is MatchSource.FUZZY
        assert len(gen.calls) == 1


# ============================================================================
# Fuzzy Matching And Help
# ============================================================================


class TestFuzzyAndHelp:
    def test_similarity(self):
        assert similarity("tests count", "count tests") == 1.0
        assert similarity("count my tests", "count tests") == pytest.approx(2 / 3)
        assert similarity("", "count tests") == 0.0

    @pytest.mark.asyncio
    async def test_fuzzy_below_threshold_is_chat(self):
        parsed = await CommandInterpreter().parse("count my tests")
        assert parsed.is_special is False

    def test_suggestions(self):
        suggestions = CommandInterpreter.suggestions("count my tests")
        assert suggestions[0] == "count tests"
        assert len(suggestions) <= 3
        assert len(set(suggestions)) == len(suggestions)

    def test_no_suggestions_for_unrelated_text(self):
        assert CommandInterpreter.suggestions("weather tomorrow") == []

    def test_available_commands(self):
        commands = CommandInterpreter.available_commands()
        assert len(commands) == len(CommandKind)
        assert ("coverage", "Show test coverage analysis") in commands

    def test_command_for_action(self):
        assert command_for_action(" Count_Tests ") is CommandKind.COUNT_TESTS
        assert command_for_action("none") is None
        assert command_for_action(None) is None
