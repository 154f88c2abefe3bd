"""Parser for shell command lines.

Parses lines like: cat <in.txt | sort | uniq -c >>counts.txt
into a chain of Command nodes, one per pipe segment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)

WHITESPACE = " \t"
PIPE = "|"
BACKGROUND = "&"
COMPLETION_MARKER = "?"


@dataclass
class Command:
    """Represents a single command in the pipe chain.

    ``args[0]`` is always the command name; positional arguments follow it.
    Each node exclusively owns the node it pipes into via ``next``.
    """

    name: str = ""
    args: List[str] = field(default_factory=list)
    redirect_in: Optional[str] = None
    redirect_out_truncate: Optional[str] = None
    redirect_out_append: Optional[str] = None
    background: bool = False
    needs_completion_marker: bool = False
    next: Optional[Command] = None

    def __iter__(self) -> Iterator[Command]:
        """Iterate over this node and every node it pipes into."""
        node: Optional[Command] = self
        while node is not None:
            yield node
            node = node.next

    def __len__(self) -> int:
        """Number of nodes in the chain starting here."""
        return sum(1 for _ in self)

    @property
    def positional(self) -> List[str]:
        """Arguments after the command name."""
        return self.args[1:]

    @property
    def is_piped(self) -> bool:
        """True if this command feeds another one."""
        return self.next is not None

    @property
    def redirects(self) -> List[Optional[str]]:
        """Redirect targets in wiring order: input, truncate, append."""
        return [self.redirect_in, self.redirect_out_truncate, self.redirect_out_append]

    def describe(self) -> str:
        """Render a human-readable description of the whole chain.

        Returns:
            Multi-line description, used for debug logging
        """
        lines = [
            f"Command: <{self.name}>",
            f"\tIs Background: {'yes' if self.background else 'no'}",
            f"\tNeeds Auto-complete: {'yes' if self.needs_completion_marker else 'no'}",
            "\tRedirects:",
        ]
        for i, target in enumerate(self.redirects):
            lines.append(f"\t\t{i}: {target if target is not None else 'N/A'}")

        lines.append(f"\tArguments ({len(self.args)}):")
        for i, arg in enumerate(self.args):
            lines.append(f"\t\tArg {i}: {arg}")

        if self.next is not None:
            lines.append("\tPiped to:")
            lines.append(self.next.describe())

        return '\n'.join(lines)


class CommandParser:
    """Parser for pipe and redirection syntax.

    Converts shell syntax like:
        ls -l | grep py >matches.txt &

    To a chain of Command objects that the executor turns into processes.
    Parsing never fails: an empty line yields a Command with an empty name.
    """

    def parse(self, command_line: str) -> Command:
        """Parse a command line into a command chain.

        Args:
            command_line: Raw line as accepted by the editor

        Returns:
            Head of the command chain
        """
        line = command_line.strip(WHITESPACE)

        # Flags are read off the raw line, so a quoted trailing "&" still counts.
        background = line.endswith(BACKGROUND)
        needs_completion = line.endswith(COMPLETION_MARKER)

        segments = self._split_pipeline(line.split())

        head: Optional[Command] = None
        for tokens in reversed(segments):
            cmd = self._parse_command(tokens)
            cmd.background = background
            cmd.needs_completion_marker = needs_completion
            cmd.next = head
            head = cmd

        return head

    def _split_pipeline(self, tokens: List[str]) -> List[List[str]]:
        """Split a token list on pipe tokens.

        Args:
            tokens: Whitespace-separated tokens of the whole line

        Returns:
            One token list per pipe segment (always at least one)
        """
        segments: List[List[str]] = [[]]
        for token in tokens:
            if token == PIPE and segments[-1]:
                segments.append([])
            else:
                segments[-1].append(token)
        return segments

    def _parse_command(self, tokens: List[str]) -> Command:
        """Parse the tokens of one pipe segment.

        Args:
            tokens: Segment tokens, the first one being the command name

        Returns:
            Command with no successor
        """
        if not tokens:
            return Command(name="", args=[""])

        name = tokens[0]
        cmd = Command(name=name)
        positional: List[str] = []

        for token in tokens[1:]:
            token = token.strip(WHITESPACE)
            if not token or token == BACKGROUND:
                continue

            if token.startswith("<"):
                cmd.redirect_in = token[1:]
            elif token.startswith(">>"):
                cmd.redirect_out_append = token[2:]
            elif token.startswith(">"):
                cmd.redirect_out_truncate = token[1:]
            else:
                positional.append(self._unquote(token))

        cmd.args = [name, *positional]
        return cmd

    def _unquote(self, token: str) -> str:
        """Strip one matching pair of surrounding quotes.

        Args:
            token: Argument token (e.g., "'hello'")

        Returns:
            Token without the quotes, or unchanged if not quote-wrapped
        """
        if len(token) > 2 and token[0] == token[-1] and token[0] in ('"', "'"):
            return token[1:-1]
        return token


def parse_command(command_line: str) -> Command:
    """Parse a command line.

    Convenience function that creates a parser and parses the line.

    Args:
        command_line: Command line to parse

    Returns:
        Head of the command chain
    """
    parser = CommandParser()
    command = parser.parse(command_line)
    logger.debug(f"Parsed command:\n{command.describe()}")
    return command
