"""REPL (Read-Eval-Print Loop) for the interactive shell.

Reads lines with the raw line editor, parses them, and runs them with the
pipeline executor until exit or end of input.
"""

from __future__ import annotations

import logging
from typing import Optional, TextIO

from kudash.shell.builtins import get_registry
from kudash.shell.completion import Completer
from kudash.shell.context import ExecutionContext, ExitSignal
from kudash.shell.editor import LineEditor, render_prompt
from kudash.shell.executor import PipelineExecutor
from kudash.shell.parser import COMPLETION_MARKER, WHITESPACE, Command, parse_command

logger = logging.getLogger(__name__)


class REPL:
    """Read-Eval-Print Loop for the interactive shell."""

    def __init__(
        self,
        context: Optional[ExecutionContext] = None,
        input_fd: Optional[int] = None,
        output: Optional[TextIO] = None
    ):
        """Initialize REPL.

        Args:
            context: Execution context (creates new if None)
            input_fd: Descriptor to read keystrokes from (default: stdin)
            output: Stream for prompt and echo (default: sys.stdout)
        """
        self.context = context or ExecutionContext()
        config = self.context.config
        self.completer = Completer(
            get_registry().names(),
            prompt=self.prompt,
            command_threshold=config.completion.command_threshold,
            argument_threshold=config.completion.argument_threshold,
        )
        self.editor = LineEditor(self.completer, prompt=self.prompt, input_fd=input_fd, output=output)
        self.executor = PipelineExecutor(self.context)
        self.running = False

    def prompt(self) -> str:
        """Current prompt text."""
        config = self.context.config
        return render_prompt(config.prompt, config.sysname)

    def run(self) -> None:
        """Run the REPL loop."""
        self.running = True
        while self.running:
            try:
                result = self.editor.edit_line(self.context.editor_state)
                if result.terminate:
                    break
                signal = self._execute_line(result.line)
                if signal == ExitSignal.TERMINATE:
                    break
            except KeyboardInterrupt:
                # Ctrl+C
                print()
                continue
        self.running = False
        self._print_goodbye()

    def _print_goodbye(self) -> None:
        print()

    def _execute_line(self, line: str) -> ExitSignal:
        """Execute a single line of input.

        Args:
            line: Input line

        Returns:
            Exit signal from the executor
        """
        command = parse_command(line)
        if command.needs_completion_marker:
            self._list_completions(line)
            return ExitSignal.CONTINUE
        return self.executor.execute(command)

    def _list_completions(self, line: str) -> None:
        """Print the candidates for a line ending in the completion marker."""
        request = line.strip(WHITESPACE)[:-len(COMPLETION_MARKER)]
        candidates = self.completer.candidates(request)
        if candidates:
            print('\n'.join(candidates))
        else:
            print("No matches found")


def run_repl(context: Optional[ExecutionContext] = None) -> None:
    """Run interactive REPL.

    Args:
        context: Optional execution context
    """
    repl = REPL(context=context)
    repl.run()


def run_command(command: str, context: Optional[ExecutionContext] = None) -> ExitSignal:
    """Run a single command line non-interactively.

    Args:
        command: Command line to execute
        context: Optional execution context

    Returns:
        Exit signal
    """
    if context is None:
        context = ExecutionContext()

    parsed: Command = parse_command(command)
    return PipelineExecutor(context).execute(parsed)
