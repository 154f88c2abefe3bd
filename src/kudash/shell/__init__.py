"""Shell module for the interactive command-line shell.

Provides the raw line editor, tab completion, the command parser and the
pipeline executor, plus the REPL that ties them together.
"""

from __future__ import annotations

from kudash.shell.builtins import execute_builtin, get_registry, is_builtin
from kudash.shell.completion import Completer, CompletionKind, CompletionOutcome
from kudash.shell.context import ExecutionContext, ExitSignal
from kudash.shell.editor import EditorState, EditResult, LineEditor, RawTerminal
from kudash.shell.executor import PipelineExecutor, execute_command, find_executable
from kudash.shell.parser import Command, CommandParser, parse_command
from kudash.shell.repl import REPL, run_command, run_repl

__all__ = [
    "REPL",
    "Command",
    "CommandParser",
    "Completer",
    "CompletionKind",
    "CompletionOutcome",
    "EditorState",
    "EditResult",
    "ExecutionContext",
    "ExitSignal",
    "LineEditor",
    "PipelineExecutor",
    "RawTerminal",
    "run_repl",
    "run_command",
    "parse_command",
    "execute_command",
    "find_executable",
    "get_registry",
    "is_builtin",
    "execute_builtin",
]
