# src/govflow/commands/interpreter.py
"""
Free text to typed command intent.

Three stages, in priority order:

1. Exact match: a known phrasing contained in the lower-cased text (whole
   words). The longest contained phrasing wins; no model call is made.
2. Model classification: the analysis profile is asked for a JSON guess
   ``{action, target, confidence, reasoning}``. Accepted only when the
   confidence is above 0.7 and the action is in the catalogue.
3. Fuzzy match: word-set overlap ``|common| / max(|input|, |phrasing|)``,
   best score above 0.8.

Anything else is not a special command and goes to free-form chat.  A
failing model call in stage 2 is logged and the parse continues with
stage 3.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel

from ..exceptions import GovFlowError
from ..prompts import build_intent_prompt, extract_json_object
from ..providers import GenerationClient
from .catalogue import PHRASES, CommandKind, command_for_action, describe

logger = logging.getLogger(__name__)

MODEL_CONFIDENCE_THRESHOLD = 0.7
FUZZY_THRESHOLD = 0.8
SUGGESTION_THRESHOLD = 0.3

_WORD = re.compile(r"[a-z0-9]+(?:[.\-][a-z0-9]+)*")


class CommandIntent(BaseModel):
    action: str
    target: str = ""
    confidence: float = 0.0
    reasoning: str = ""


class MatchSource(str, Enum):
    EXACT = "exact"
    MODEL = "model"
    FUZZY = "fuzzy"
    NONE = "none"


class ParsedCommand(BaseModel):
    is_special: bool
    command: Optional[CommandKind] = None
    intent: Optional[CommandIntent] = None
    matched_by: MatchSource = MatchSource.NONE
    original_text: str = ""


def words(text: str) -> Set[str]:
    return set(_WORD.findall(text.lower()))


def similarity(text: str, phrase: str) -> float:
    a, b = words(text), words(phrase)
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


@lru_cache(maxsize=None)
def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<![\w.]){re.escape(phrase)}(?![\w])")


class CommandInterpreter:
    """Classifies text against the closed :class:`CommandKind` catalogue."""

    def __init__(self, generator: Optional[GenerationClient] = None, timeout: Optional[float] = 30.0):
        """
        Args:
            generator: Client used for model classification. None skips stage 2.
            timeout: Seconds allowed for the classification call.
        """
        self._generator = generator
        self._timeout = timeout

    async def parse(self, text: str) -> ParsedCommand:
        lowered = text.lower().strip()
        if not lowered:
            return ParsedCommand(is_special=False, original_text=text)

        exact = self.exact_match(lowered)
        if exact is not None:
            return ParsedCommand(
                is_special=True,
                command=exact,
                intent=CommandIntent(action=exact.value, target="", confidence=1.0),
                matched_by=MatchSource.EXACT,
                original_text=text,
            )

        intent = await self._classify(text)
        if intent is not None and intent.confidence > MODEL_CONFIDENCE_THRESHOLD:
            kind = command_for_action(intent.action)
            if kind is not None:
                return ParsedCommand(
                    is_special=True, command=kind, intent=intent, matched_by=MatchSource.MODEL, original_text=text
                )
            logger.debug(f"Model proposed unknown action '{intent.action}'")

        fuzzy = self.fuzzy_match(lowered)
        if fuzzy is not None:
            kind, score = fuzzy
            return ParsedCommand(
                is_special=True,
                command=kind,
                intent=CommandIntent(action=kind.value, confidence=score),
                matched_by=MatchSource.FUZZY,
                original_text=text,
            )

        return ParsedCommand(is_special=False, original_text=text)

    @staticmethod
    def exact_match(lowered: str) -> Optional[CommandKind]:
        best: Optional[Tuple[int, CommandKind]] = None
        for kind, phrases in PHRASES.items():
            for phrase in phrases:
                if (best is None or len(phrase) > best[0]) and _phrase_pattern(phrase).search(lowered):
                    best = (len(phrase), kind)
        return best[1] if best else None

    @staticmethod
    def fuzzy_match(lowered: str) -> Optional[Tuple[CommandKind, float]]:
        best: Optional[Tuple[CommandKind, float]] = None
        for kind, phrases in PHRASES.items():
            for phrase in phrases:
                score = similarity(lowered, phrase)
                if score > FUZZY_THRESHOLD and (best is None or score > best[1]):
                    best = (kind, score)
        return best

    async def _classify(self, text: str) -> Optional[CommandIntent]:
        if self._generator is None:
            return None
        prompt = build_intent_prompt(text, self.available_commands())
        try:
            result = await self._generator.generate(prompt, profile="analysis", timeout=self._timeout)
        except GovFlowError as e:
            logger.warning(f"Model intent classification failed, falling back to fuzzy matching: {e}")
            return None

        data = extract_json_object(result.text)
        if data is None:
            logger.debug("Intent classification reply had no JSON object")
            return None
        action = str(data.get("action") or "").strip()
        if not action or action.lower() == "none":
            return None
        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            return None
        return CommandIntent(
            action=action,
            target=str(data.get("target") or ""),
            confidence=confidence,
            reasoning=str(data.get("reasoning") or ""),
        )

    # ------------------------------------------------------------------
    # Help
    # ------------------------------------------------------------------

    @staticmethod
    def describe(kind: CommandKind) -> str:
        return describe(kind)

    @staticmethod
    def available_commands() -> List[Tuple[str, str]]:
        return [(kind.value, describe(kind)) for kind in CommandKind]

    @staticmethod
    def suggestions(text: str, limit: int = 3) -> List[str]:
        """Known phrasings closest to ``text``, for near misses."""
        scored = [
            (similarity(text, phrase), phrase)
            for phrases in PHRASES.values()
            for phrase in phrases
        ]
        close = sorted((s for s in scored if s[0] >= SUGGESTION_THRESHOLD), key=lambda s: -s[0])
        seen: List[str] = []
        for _, phrase in close:
            if phrase not in seen:
                seen.append(phrase)
            if len(seen) >= limit:
                break
        return seen
