"""Pipeline executor.

Runs a parsed command chain as OS processes: one forked child per node,
adjacent nodes connected by anonymous pipes, redirect targets duplicated
onto the standard descriptors inside the child.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import List, Optional, Tuple

from kudash.shell.builtins import BuiltinRegistry, get_registry
from kudash.shell.completion import search_path
from kudash.shell.context import ExecutionContext, ExitSignal
from kudash.shell.parser import Command

logger = logging.getLogger(__name__)

STDIN_FILENO = 0
STDOUT_FILENO = 1
STDERR_FILENO = 2
TRUNCATE_FLAGS = os.O_WRONLY | os.O_TRUNC | os.O_CREAT
APPEND_FLAGS = os.O_WRONLY | os.O_APPEND | os.O_CREAT


class ExecutionError(Exception):
    """Base class for command execution failures."""
    pass


class SpawnError(ExecutionError):
    """Raised when a pipe or child process cannot be created."""
    pass


class RedirectError(ExecutionError):
    """Raised in the child when a redirect target cannot be opened."""
    pass


def find_executable(name: str) -> Optional[str]:
    """Resolve a command name against the search path.

    Names containing a slash are taken as paths and not searched.

    Args:
        name: Command name

    Returns:
        Path of the first executable match, or None
    """
    if not name:
        return None
    if "/" in name:
        candidates = [name]
    else:
        candidates = [os.path.join(d, name) for d in search_path()]

    for candidate in candidates:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


def _write_fd(fd: int, message: str) -> None:
    """Write a line straight to a descriptor (no Python buffering)."""
    os.write(fd, (message + "\n").encode(errors='replace'))


class PipelineExecutor:
    """Executes command chains produced by the parser."""

    def __init__(self, context: ExecutionContext, registry: Optional[BuiltinRegistry] = None):
        """Initialize executor.

        Args:
            context: Execution context
            registry: Builtin registry (defaults to the global one)
        """
        self.context = context
        self.registry = registry or get_registry()
        self.last_pids: List[int] = []
        self.last_status: Optional[int] = None

    def execute(self, command: Command) -> ExitSignal:
        """Execute a command chain.

        Args:
            command: Head of the chain

        Returns:
            Signal telling the session loop how to proceed
        """
        self.last_pids = []
        self.last_status = None

        if command.name == "":
            return ExitSignal.CONTINUE

        builtin = self.registry.get(command.name)
        if builtin is not None and builtin.in_shell:
            return builtin.execute(command, self.context)

        try:
            if command.is_piped:
                status = self._run_pipeline(command)
            else:
                status = self._run_single(command)
        except SpawnError as e:
            logger.error(f"Spawn failed: {e}")
            print(f"{self.context.error_prefix(command.name)}: {e}", file=sys.stderr)
            return ExitSignal.COMMAND_ERROR

        self.last_status = status
        if status:
            return ExitSignal.COMMAND_ERROR
        return ExitSignal.CONTINUE

    def _run_single(self, command: Command) -> int:
        """Run a non-piped command, in the background if requested.

        Returns:
            Exit status of the child (0 for background jobs)
        """
        pid = self._fork()
        if pid == 0:
            self._child(command)

        self.last_pids.append(pid)
        logger.debug(f"Spawned {pid} for {command.name}")

        if command.background:
            print(f"[{pid}] Running in background")
            return 0

        return self._wait(pid)

    def _run_pipeline(self, head: Command) -> int:
        """Run every node of a chain, wired together with pipes.

        The background flag is not honored here: the shell always waits for
        every stage.

        Returns:
            Exit status of the last stage
        """
        prev_read: Optional[int] = None
        pipe_fds: Tuple[Optional[int], Optional[int]] = (None, None)
        try:
            for node in head:
                pipe_fds = self._pipe() if node.next is not None else (None, None)
                read_end, write_end = pipe_fds

                pid = self._fork()
                if pid == 0:
                    self._child(node, stdin_fd=prev_read, stdout_fd=write_end, unused_fd=read_end)

                self.last_pids.append(pid)
                logger.debug(f"Spawned {pid} for pipeline stage {node.name}")

                if write_end is not None:
                    os.close(write_end)
                if prev_read is not None:
                    os.close(prev_read)
                prev_read, pipe_fds = read_end, (None, None)
        except SpawnError:
            for fd in (prev_read, *pipe_fds):
                if fd is not None:
                    os.close(fd)
            for pid in self.last_pids:
                self._wait(pid)
            raise

        statuses = [self._wait(pid) for pid in self.last_pids]
        return statuses[-1]

    def _pipe(self) -> Tuple[int, int]:
        try:
            return os.pipe()
        except OSError as e:
            raise SpawnError(f"Pipe failed: {e.strerror}") from e

    def _fork(self) -> int:
        sys.stdout.flush()
        sys.stderr.flush()
        try:
            return os.fork()
        except OSError as e:
            raise SpawnError(f"Fork failed: {e.strerror}") from e

    def _wait(self, pid: int) -> int:
        """Wait for one child and return its exit code (negative if signaled)."""
        try:
            _, status = os.waitpid(pid, 0)
        except ChildProcessError:
            logger.debug(f"Child {pid} was already reaped")
            return 0
        code = os.waitstatus_to_exitcode(status)
        logger.debug(f"Child {pid} exited with {code}")
        return code

    def _child(
        self,
        command: Command,
        stdin_fd: Optional[int] = None,
        stdout_fd: Optional[int] = None,
        unused_fd: Optional[int] = None
    ) -> None:
        """Body of a forked child; never returns.

        Args:
            command: Node this child runs
            stdin_fd: Read end of the previous pipe, if any
            stdout_fd: Write end of this node's pipe, if any
            unused_fd: Read end of this node's pipe (belongs to the next stage)
        """
        status = 1
        try:
            if unused_fd is not None:
                os.close(unused_fd)
            if stdin_fd is not None:
                os.dup2(stdin_fd, STDIN_FILENO)
                os.close(stdin_fd)
            if stdout_fd is not None:
                os.dup2(stdout_fd, STDOUT_FILENO)
                os.close(stdout_fd)
            self._apply_redirects(command)
            status = self._run_in_child(command)
        except RedirectError as e:
            _write_fd(STDERR_FILENO, str(e))
        except Exception as e:
            _write_fd(STDERR_FILENO, f"{self.context.error_prefix(command.name)}: {e}")
        finally:
            for stream in (sys.stdout, sys.stderr):
                try:
                    stream.flush()
                except (OSError, ValueError):
                    pass
            os._exit(status)

    def _apply_redirects(self, command: Command) -> None:
        """Open redirect targets, then duplicate them onto stdin/stdout.

        Targets are opened and wired in the order input, truncate, append,
        so an append target wins over a truncate target.

        Raises:
            RedirectError: If a target cannot be opened
        """
        targets = [
            (command.redirect_in, os.O_RDONLY, STDIN_FILENO),
            (command.redirect_out_truncate, TRUNCATE_FLAGS, STDOUT_FILENO),
            (command.redirect_out_append, APPEND_FLAGS, STDOUT_FILENO),
        ]
        opened = []
        for path, flags, target_fd in targets:
            if path is None:
                continue
            try:
                opened.append((os.open(path, flags, 0o666), target_fd))
            except OSError as e:
                raise RedirectError(
                    f"{self.context.error_prefix(path or repr(path))}: {e.strerror}"
                ) from e

        for fd, target_fd in opened:
            os.dup2(fd, target_fd)
            os.close(fd)

    def _run_in_child(self, command: Command) -> int:
        """Run a child-side builtin or exec the resolved executable.

        Returns:
            Exit status (only when no exec happened)
        """
        builtin = self.registry.get(command.name)
        if builtin is not None and not builtin.in_shell:
            sys.stdin = open(STDIN_FILENO, closefd=False)
            sys.stdout = open(STDOUT_FILENO, 'w', closefd=False)
            sys.stderr = open(STDERR_FILENO, 'w', closefd=False)
            return builtin.execute(command, self.context)

        path = find_executable(command.name)
        if path is None:
            _write_fd(STDERR_FILENO, f"{self.context.error_prefix(command.name)}: command not found")
            return 1

        try:
            os.execv(path, command.args)
        except OSError as e:
            _write_fd(STDERR_FILENO, f"{self.context.error_prefix(command.name)}: {e.strerror}")
        return 126


def execute_command(command: Command, context: Optional[ExecutionContext] = None) -> ExitSignal:
    """Execute a parsed command chain.

    Convenience function that creates an executor and runs the chain.

    Args:
        command: Head of the chain
        context: Optional execution context

    Returns:
        Exit signal
    """
    executor = PipelineExecutor(context or ExecutionContext())
    return executor.execute(command)
