# src/govflow/prompts.py
"""
Prompt templates used by the governor, the command interpreter and the
workflow orchestrator.

All prompts are plain ``str.format`` templates; callers never concatenate
prompt text themselves.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, Optional, Tuple

from .models import ArtifactType, GenerationRequest

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

ARTIFACT_INSTRUCTIONS = {
    ArtifactType.TEST: (
        "Write a Playwright test in TypeScript using @playwright/test. "
        "Use page objects where they exist and explicit expectations."
    ),
    ArtifactType.PAGE_OBJECT: (
        "Write a Playwright page object class in TypeScript. Expose locators as "
        "readonly properties and user actions as async methods."
    ),
    ArtifactType.STEP_DEFINITION: (
        "Write Cucumber step definitions in TypeScript using @cucumber/cucumber "
        "and Playwright. Reuse existing page objects."
    ),
    ArtifactType.FEATURE: (
        "Write a Cucumber feature file in Gherkin with a Feature description, "
        "a Background if useful, and focused Scenarios."
    ),
}

DEFAULT_INSTRUCTIONS = "Write the requested TypeScript code for the test automation framework."

GENERATION_TEMPLATE = """You are an expert test automation engineer.
{instructions}

Request:
{user_input}
{context_block}
Return only the file content, without markdown fences or commentary."""

EXISTING_CODE_BLOCK = """
Existing code to update or follow:
{existing}
"""

CHAT_TEMPLATE = """You are an assistant for a Playwright and Cucumber test automation framework.
Answer the question concisely and accurately.
{context_block}
Question: {question}
Answer:"""

RETRIEVED_CONTEXT_BLOCK = """
Relevant code from the repository:
{context}
"""

EXPLAIN_FEATURE_TEMPLATE = """Explain the following Cucumber feature file for a tester.
Summarize what it covers, list each scenario with one sentence, and note missing edge cases.

Feature file ({path}):
{content}"""

INTENT_TEMPLATE = """Classify the user's request into one of these commands:
{catalogue}

User request: "{text}"

Respond with JSON only, in this exact shape:
{{"action": "<command id or none>", "target": "<object of the request or empty>", "confidence": <0.0-1.0>, "reasoning": "<short reason>"}}"""

WORKFLOW_PARSE_TEMPLATE = """Extract a git workflow plan from the request below.

Request: "{text}"

Respond with JSON only, in this exact shape:
{{"branchName": "<git branch name>", "featureDescription": "<short description>", "filesToGenerate": ["<repository relative path>", ...], "commitMessage": "<commit message>"}}

Use paths under automation/tests/features, automation/tests/steps, automation/tests and automation/src/pages."""


def build_generation_prompt(request: GenerationRequest) -> str:
    instructions = ARTIFACT_INSTRUCTIONS.get(request.artifact_type, DEFAULT_INSTRUCTIONS)
    context_block = (
        EXISTING_CODE_BLOCK.format(existing=request.existing_code_context)
        if request.existing_code_context
        else ""
    )
    return GENERATION_TEMPLATE.format(
        instructions=instructions, user_input=request.user_input, context_block=context_block
    )


def build_chat_prompt(question: str, context: Optional[str] = None) -> str:
    block = RETRIEVED_CONTEXT_BLOCK.format(context=context) if context else ""
    return CHAT_TEMPLATE.format(question=question, context_block=block)


def build_explain_feature_prompt(path: str, content: str) -> str:
    return EXPLAIN_FEATURE_TEMPLATE.format(path=path, content=content)


def build_intent_prompt(text: str, catalogue: Iterable[Tuple[str, str]]) -> str:
    lines = "\n".join(f"- {command}: {description}" for command, description in catalogue)
    return INTENT_TEMPLATE.format(catalogue=lines, text=text.replace('"', "'"))


def build_workflow_parse_prompt(text: str) -> str:
    return WORKFLOW_PARSE_TEMPLATE.format(text=text.replace('"', "'"))


def extract_json_object(reply: str) -> Optional[Dict[str, Any]]:
    """First-to-last brace span of a model reply parsed as a JSON object, or None."""
    match = JSON_OBJECT.search(reply or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
