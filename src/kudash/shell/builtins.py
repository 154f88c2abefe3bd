"""Built-in commands for the shell.

Provides cd and exit, which run in the shell process itself, and kuhex and
psvis, which run inside the spawned child like any other command (so they
honor redirection).
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from kudash.lib.config_parser import RENDER_FORMATS
from kudash.lib.hexdump import GROUP_SIZES, hexdump
from kudash.lib.process_tree import (
    KernelModuleError,
    ProcessTreeError,
    ProcessTreeReporter,
    ProcessTreeVisualizer,
)
from kudash.shell.context import ExecutionContext, ExitSignal
from kudash.shell.parser import Command

logger = logging.getLogger(__name__)


class BuiltinCommand:
    """A command implemented by the shell rather than an executable."""

    def __init__(self, name: str, description: str, func: Callable, in_shell: bool = False):
        """Initialize builtin command.

        Args:
            name: Command name
            description: Help text
            func: Function taking (command, context)
            in_shell: Run in the shell process instead of a spawned child
        """
        self.name = name
        self.description = description
        self.func = func
        self.in_shell = in_shell

    def execute(self, command: Command, context: ExecutionContext) -> Any:
        """Execute the command.

        Args:
            command: Parsed command node
            context: Execution context

        Returns:
            ExitSignal for in-shell builtins, exit status for child builtins
        """
        return self.func(command, context)


class BuiltinRegistry:
    """Registry of built-in shell commands."""

    def __init__(self):
        """Initialize registry."""
        self.commands: Dict[str, BuiltinCommand] = {}

    def register(self, name: str, description: str, in_shell: bool = False) -> Callable:
        """Decorator to register a built-in command.

        Args:
            name: Command name
            description: Help text
            in_shell: Run in the shell process instead of a spawned child

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            cmd = BuiltinCommand(name, description, func, in_shell=in_shell)
            self.commands[cmd.name] = cmd
            logger.debug(f"Registered builtin: {cmd.name}")
            return func
        return decorator

    def get(self, name: str) -> Optional[BuiltinCommand]:
        """Get a built-in command, or None if name is not a builtin."""
        return self.commands.get(name)

    def list_commands(self) -> List[BuiltinCommand]:
        """List all built-in commands."""
        return list(self.commands.values())

    def names(self) -> List[str]:
        """Names of all built-in commands, in registration order."""
        return list(self.commands)


_registry = BuiltinRegistry()


def get_registry() -> BuiltinRegistry:
    """Get the global builtin registry.

    Returns:
        Registry instance
    """
    return _registry


def _parse_args(parser: argparse.ArgumentParser, argv: List[str]) -> Tuple[Optional[argparse.Namespace], int]:
    """Parse builtin arguments without leaving the process on usage errors.

    Returns:
        (namespace, 0) on success, (None, status) after argparse printed
        usage or help
    """
    try:
        return parser.parse_args(argv), 0
    except SystemExit as e:
        return None, e.code or 0


@_registry.register("cd", "Change the working directory", in_shell=True)
def cd_command(command: Command, context: ExecutionContext) -> ExitSignal:
    """Change directory.

    Failures are reported and leave the working directory unchanged.

    Args:
        command: Parsed command (target in the first positional argument)
        context: Execution context

    Returns:
        Always ExitSignal.CONTINUE
    """
    if not command.positional:
        print(f"{context.error_prefix('cd')}: missing argument", file=sys.stderr)
        return ExitSignal.CONTINUE

    target = os.path.expanduser(command.positional[0])
    try:
        os.chdir(target)
        logger.debug(f"Changed directory to {os.getcwd()}")
    except OSError as e:
        print(f"{context.error_prefix('cd')}: {command.positional[0]}: {e.strerror}", file=sys.stderr)
    return ExitSignal.CONTINUE


@_registry.register("exit", "Exit the shell", in_shell=True)
def exit_command(command: Command, context: ExecutionContext) -> ExitSignal:
    """Exit the shell, removing the psvis kernel module if it is loaded.

    Args:
        command: Parsed command (arguments ignored)
        context: Execution context

    Returns:
        ExitSignal.TERMINATE, even if the module cannot be removed
    """
    module = context.kernel_module
    try:
        if module.is_loaded():
            print("Removing Kernel Module.")
            module.unload()
    except KernelModuleError as e:
        logger.error(f"Module cleanup failed: {e}")
        print(f"{context.error_prefix('exit')}: {e}", file=sys.stderr)
    logger.info("Exiting shell...")
    return ExitSignal.TERMINATE


@_registry.register("kuhex", "Dump a file as offset, hex and ASCII columns")
def kuhex_command(command: Command, context: ExecutionContext) -> int:
    """Hex dump a file.

    Usage:
        kuhex <file> [-g <1|2|4|8|16>]

    Args:
        command: Parsed command
        context: Execution context

    Returns:
        Exit status
    """
    parser = argparse.ArgumentParser(prog="kuhex", description="Dump a file in hex")
    parser.add_argument("file", help="File to dump")
    parser.add_argument(
        "-g", "--group-size",
        type=int,
        default=1,
        choices=GROUP_SIZES,
        metavar="<1|2|4|8|16>",
        help="Bytes per hex group (default: 1)"
    )
    args, status = _parse_args(parser, command.positional)
    if args is None:
        return status

    try:
        hexdump(args.file, sys.stdout, group_size=args.group_size)
    except OSError as e:
        print(f"kuhex: {args.file}: {e.strerror}", file=sys.stderr)
        return 1
    return 0


@_registry.register("psvis", "Render the process tree under a PID to an image")
def psvis_command(command: Command, context: ExecutionContext) -> int:
    """Visualize a process tree.

    Usage:
        psvis <pid> <output-image>

    Loads the reporter kernel module when needed, queries the tree rooted
    at pid and renders it with graphviz.

    Args:
        command: Parsed command
        context: Execution context

    Returns:
        Exit status
    """
    parser = argparse.ArgumentParser(prog="psvis", description="Visualize a process tree")
    parser.add_argument("pid", help="Root process ID")
    parser.add_argument("output", type=Path, help="Output image (format from suffix)")
    args, status = _parse_args(parser, command.positional)
    if args is None:
        return status

    settings = context.config.psvis
    try:
        if context.kernel_module.ensure_loaded():
            print("Kernel Module is already loaded.")
        edges = ProcessTreeReporter(settings.proc_file).query(args.pid)
        viz = ProcessTreeVisualizer.from_edges(edges)
        fmt = args.output.suffix.lstrip('.').lower()
        if fmt not in RENDER_FORMATS:
            fmt = settings.default_format
        viz.render(args.output, format=fmt)
    except (KernelModuleError, ProcessTreeError, RuntimeError) as e:
        logger.error(f"psvis failed: {e}")
        print(f"psvis: {e}", file=sys.stderr)
        return 1

    print(f"Process tree visualization saved to {args.output}")
    return 0


def is_builtin(name: str) -> bool:
    """Check if a command is a built-in.

    Args:
        name: Command name

    Returns:
        True if builtin
    """
    return _registry.get(name) is not None


def execute_builtin(command: Command, context: ExecutionContext) -> Any:
    """Execute a built-in command.

    Args:
        command: Parsed command whose name is a builtin
        context: Execution context

    Returns:
        Command result

    Raises:
        ValueError: If command not found
    """
    cmd = _registry.get(command.name)
    if cmd is None:
        raise ValueError(f"Unknown built-in command: {command.name}")
    return cmd.execute(command, context)
