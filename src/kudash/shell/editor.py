"""Raw-mode line editor.

Reads the terminal one byte at a time with canonical mode and echo turned
off, echoing and editing the line itself. Supports tab completion,
backspace, and recall of the previously accepted line with the up arrow.
"""

from __future__ import annotations

import codecs
import getpass
import logging
import os
import socket
import sys
import termios
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TextIO

from kudash.shell.completion import Completer, CompletionKind

logger = logging.getLogger(__name__)

TAB = "\t"
BACKSPACE = ("\x7f", "\b")
ESCAPE = "\x1b"
CSI = "["
SS3 = "O"
# Parameter and intermediate bytes of a CSI sequence (0x20-0x3F)
CSI_PARAM_FIRST = " "
CSI_PARAM_LAST = "?"
UP_ARROW = "A"
CTRL_D = "\x04"
NEWLINE = ("\n", "\r")
ERASE = "\b \b"


def render_prompt(template: str = "{user}@{host}:{cwd} {sysname}> ", sysname: str = "dash") -> str:
    """Render the prompt template.

    Args:
        template: Format string with user, host, cwd and sysname fields
        sysname: Shell name

    Returns:
        Prompt text
    """
    try:
        cwd = os.getcwd()
    except OSError:
        cwd = "?"
    user = os.environ.get("USER") or getpass.getuser()
    return template.format(user=user, host=socket.gethostname(), cwd=cwd, sysname=sysname)


class RawTerminal:
    """Context manager putting a terminal in non-canonical, no-echo mode.

    The saved attributes are restored on exit, whatever way the block is
    left. Non-terminal file descriptors are left untouched.
    """

    def __init__(self, fd: int):
        self.fd = fd
        self._saved: Optional[list] = None

    def __enter__(self) -> RawTerminal:
        try:
            self._saved = termios.tcgetattr(self.fd)
        except termios.error:
            logger.debug(f"fd {self.fd} is not a terminal; raw mode skipped")
            return self

        mode = termios.tcgetattr(self.fd)
        mode[3] &= ~(termios.ICANON | termios.ECHO)
        mode[6][termios.VMIN] = 1
        mode[6][termios.VTIME] = 0
        termios.tcsetattr(self.fd, termios.TCSANOW, mode)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSANOW, self._saved)
            self._saved = None

    @property
    def active(self) -> bool:
        """True while the terminal is in raw mode."""
        return self._saved is not None


@dataclass
class EditorState:
    """Per-session editor state.

    Holds the line being edited and the single remembered previous line.
    """

    capacity: int = 4095
    buffer: List[str] = field(default_factory=list)
    previous: str = ""

    @property
    def text(self) -> str:
        """Current buffer contents."""
        return "".join(self.buffer)

    @property
    def cursor(self) -> int:
        """Cursor index (always at the end of the buffer)."""
        return len(self.buffer)

    @property
    def full(self) -> bool:
        """True when the buffer has reached capacity."""
        return len(self.buffer) >= self.capacity

    def clear(self) -> None:
        """Discard the current buffer."""
        self.buffer.clear()

    def recall(self) -> str:
        """Swap the buffer with the remembered line; return the new buffer."""
        current = self.text
        self.buffer = list(self.previous)
        self.previous = current
        return self.text

    def accept(self) -> str:
        """Finish the line: remember it, clear the buffer, return it."""
        line = self.text
        self.previous = line
        self.buffer.clear()
        return line


@dataclass
class EditResult:
    """Outcome of reading one line."""

    line: str = ""
    terminate: bool = False

    @classmethod
    def terminated(cls) -> EditResult:
        """End of input: the session should stop."""
        return cls(terminate=True)


class LineEditor:
    """Reads and edits one line at a time from a raw terminal."""

    def __init__(
        self,
        completer: Completer,
        prompt: Callable[[], str] = lambda: "",
        input_fd: Optional[int] = None,
        output: Optional[TextIO] = None
    ):
        """Initialize editor.

        Args:
            completer: Completion engine invoked on tab
            prompt: Returns the prompt text
            input_fd: Descriptor to read keys from (default: stdin)
            output: Stream to echo to (default: sys.stdout)
        """
        self.completer = completer
        self.prompt = prompt
        self.input_fd = input_fd if input_fd is not None else sys.stdin.fileno()
        self._output = output
        self._decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')

    @property
    def output(self) -> TextIO:
        return self._output if self._output is not None else sys.stdout

    def _write(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()

    def _read_char(self) -> Optional[str]:
        """Read one character, or None at end of input."""
        while True:
            data = os.read(self.input_fd, 1)
            if not data:
                return None
            text = self._decoder.decode(data)
            if text:
                return text

    def edit_line(self, state: EditorState) -> EditResult:
        """Read one line, editing it in place.

        Args:
            state: Session editor state; its buffer is consumed and its
                remembered line updated when a line is accepted

        Returns:
            The accepted line, or a terminate result on end of input
        """
        state.clear()
        self._decoder.reset()
        with RawTerminal(self.input_fd):
            self._write(self.prompt())
            return self._read_loop(state)

    def _read_loop(self, state: EditorState) -> EditResult:
        while True:
            c = self._read_char()

            if c is None or c == CTRL_D:
                state.clear()
                return EditResult.terminated()

            if c == TAB:
                self._complete(state)
                if state.full:
                    return self._accept_full(state)
                continue

            if c in BACKSPACE:
                if state.buffer:
                    state.buffer.pop()
                    self._write(ERASE)
                continue

            if c == ESCAPE:
                self._escape_sequence(state)
                continue

            if c in NEWLINE:
                self._write("\n")
                return EditResult(line=state.accept())

            if not c.isprintable():
                continue

            self._write(c)
            state.buffer.append(c)
            if state.full:
                return self._accept_full(state)

    def _accept_full(self, state: EditorState) -> EditResult:
        logger.warning(f"Line exceeds {state.capacity} characters; truncated")
        self._write("\n")
        return EditResult(line=state.accept())

    def _escape_sequence(self, state: EditorState) -> None:
        """Consume an escape sequence; act on up-arrow, drop the rest.

        CSI sequences are read through their final byte, so parameters of
        keys like Delete (ESC [ 3 ~) never reach the buffer.
        """
        c = self._read_char()
        if c == SS3:
            self._read_char()
            return
        if c != CSI:
            return

        params = []
        c = self._read_char()
        while c is not None and CSI_PARAM_FIRST <= c <= CSI_PARAM_LAST:
            params.append(c)
            c = self._read_char()

        if c == UP_ARROW and not params:
            self._write(ERASE * len(state.buffer))
            self._write(state.recall())

    def _complete(self, state: EditorState) -> None:
        outcome = self.completer.complete(state.text, state.cursor)
        echo = outcome.echo
        if outcome.kind == CompletionKind.COMPLETED:
            room = state.capacity - len(state.buffer)
            echo = echo[:room]
            state.buffer = list(outcome.buffer)
            del state.buffer[state.capacity:]
        self._write(echo)
