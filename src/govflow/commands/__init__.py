# src/govflow/commands/__init__.py
"""Special-command catalogue, intent interpretation and handlers."""

from .catalogue import ACTION_MAP, DESCRIPTIONS, PHRASES, CommandKind, command_for_action, describe
from .framework import FrameworkScanner
from .handlers import CommandContext, CommandHandlers, ProcessResult, run_process
from .interpreter import CommandIntent, CommandInterpreter, MatchSource, ParsedCommand, similarity

__all__ = [
    "ACTION_MAP",
    "CommandContext",
    "CommandHandlers",
    "CommandIntent",
    "CommandInterpreter",
    "CommandKind",
    "DESCRIPTIONS",
    "FrameworkScanner",
    "MatchSource",
    "PHRASES",
    "ParsedCommand",
    "ProcessResult",
    "command_for_action",
    "describe",
    "run_process",
    "similarity",
]
