"""Tab completion for the line editor.

The first token of a line completes against builtin names and the
executables on the search path; later tokens complete against entries of
the current working directory.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

logger = logging.getLogger(__name__)

WHITESPACE = " \t"


class CompletionKind(Enum):
    """Result of a completion attempt."""
    COMPLETED = "completed"
    NO_MATCHES = "no_matches"
    AMBIGUOUS = "ambiguous"


@dataclass
class CompletionOutcome:
    """Buffer after completion and the text to show on the terminal."""

    kind: CompletionKind
    buffer: str
    cursor: int
    candidates: List[str] = field(default_factory=list)
    echo: str = ""


def search_path() -> List[str]:
    """Directories of $PATH, in lookup order (empty entries skipped)."""
    return [d for d in os.environ.get("PATH", "").split(":") if d]


def path_executables(directories: Iterable[str]) -> List[str]:
    """List executable file names found in the given directories.

    Each directory contributes its entries in sorted order; unreadable
    directories are skipped.

    Args:
        directories: Directories to scan, in priority order

    Returns:
        Executable names, duplicates removed, first occurrence kept
    """
    names: dict = {}
    for directory in directories:
        try:
            with os.scandir(directory) as entries:
                found = sorted(
                    entry.name for entry in entries
                    if entry.is_file() and os.access(entry.path, os.X_OK)
                )
        except OSError:
            logger.debug(f"Skipping unreadable search path entry: {directory}")
            continue
        for name in found:
            names.setdefault(name, None)
    return list(names)


def directory_entries(prefix: str = "") -> List[str]:
    """List entries of the current directory, sorted.

    Hidden entries are only listed when the prefix itself starts with a dot.
    """
    try:
        entries = os.listdir(".")
    except OSError:
        return []
    if not prefix.startswith("."):
        entries = [e for e in entries if not e.startswith(".")]
    return sorted(entries)


def _token_start(buffer: str) -> int:
    """Index where the last whitespace-separated token begins."""
    return max(buffer.rfind(c) for c in WHITESPACE) + 1


class Completer:
    """Completion engine for the raw line editor."""

    def __init__(
        self,
        builtin_names: Iterable[str],
        prompt: Callable[[], str] = lambda: "",
        command_threshold: int = 2,
        argument_threshold: int = 1
    ):
        """Initialize completer.

        Args:
            builtin_names: Names handled by the shell itself
            prompt: Returns the prompt to repaint after listing candidates
            command_threshold: Max command candidates that still complete
            argument_threshold: Max directory candidates that still complete
        """
        self.builtin_names = list(builtin_names)
        self.prompt = prompt
        self.command_threshold = command_threshold
        self.argument_threshold = argument_threshold

    def is_command_position(self, buffer: str) -> bool:
        """True when the buffer has no whitespace at all."""
        return not any(c in buffer for c in WHITESPACE)

    def candidates(self, buffer: str) -> List[str]:
        """All candidates matching the token at the end of the buffer.

        Args:
            buffer: Text before the cursor

        Returns:
            Matching names, in listing order
        """
        prefix = buffer[_token_start(buffer):]
        if self.is_command_position(buffer):
            pool = list(dict.fromkeys(self.builtin_names + path_executables(search_path())))
        else:
            pool = directory_entries(prefix)
        return [name for name in pool if name.startswith(prefix)]

    def complete(self, buffer: str, cursor: Optional[int] = None) -> CompletionOutcome:
        """Complete the token under the cursor.

        Args:
            buffer: Current line buffer
            cursor: Cursor index (defaults to end of buffer)

        Returns:
            Completion outcome; buffer is unchanged unless kind is COMPLETED
        """
        if cursor is None:
            cursor = len(buffer)
        head, tail = buffer[:cursor], buffer[cursor:]
        prefix = head[_token_start(head):]
        command_position = self.is_command_position(buffer)

        matches = self.candidates(head)
        threshold = self.command_threshold if command_position else self.argument_threshold
        logger.debug(f"Completing {prefix!r}: {len(matches)} candidates")

        if not matches:
            return CompletionOutcome(
                kind=CompletionKind.NO_MATCHES,
                buffer=buffer,
                cursor=cursor,
                echo=f"\nNo matches found\n{self.prompt()}{buffer}",
            )

        if len(matches) > threshold:
            listing = '\n'.join(matches)
            return CompletionOutcome(
                kind=CompletionKind.AMBIGUOUS,
                buffer=buffer,
                cursor=cursor,
                candidates=matches,
                echo=f"\n{listing}\n{self.prompt()}{buffer}",
            )

        suffix = matches[0][len(prefix):] + " "
        return CompletionOutcome(
            kind=CompletionKind.COMPLETED,
            buffer=head + suffix + tail,
            cursor=cursor + len(suffix),
            candidates=matches,
            echo=suffix,
        )
