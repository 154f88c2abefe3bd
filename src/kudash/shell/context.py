"""Execution context shared by the REPL, executor and builtins."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from kudash.lib.config_parser import ShellConfig
from kudash.lib.process_tree import KernelModule
from kudash.shell.editor import EditorState

logger = logging.getLogger(__name__)


class ExitSignal(Enum):
    """What the session loop should do after a command."""
    CONTINUE = "continue"
    TERMINATE = "terminate"
    COMMAND_ERROR = "command_error"


class ExecutionContext:
    """Execution context for shell commands.

    Maintains state across command executions for one session: the
    configuration, the editor state (with its one remembered line), and the
    handle on the process-tree kernel module.
    """

    def __init__(self, config: Optional[ShellConfig] = None):
        """Initialize execution context.

        Args:
            config: Shell configuration (defaults when None)
        """
        self.config = config or ShellConfig()
        self.editor_state = EditorState(capacity=self.config.buffer_size - 1)
        self._kernel_module: Optional[KernelModule] = None

    @property
    def sysname(self) -> str:
        return self.config.sysname

    @property
    def kernel_module(self) -> KernelModule:
        """Handle on the psvis kernel module, created on first use."""
        if self._kernel_module is None:
            psvis = self.config.psvis
            self._kernel_module = KernelModule(
                psvis.module_name,
                path=psvis.get_module_path(),
                modules_file=psvis.modules_file,
                use_sudo=psvis.use_sudo,
            )
        return self._kernel_module

    def error_prefix(self, subject: str) -> str:
        """Prefix for error messages, e.g. "-dash: cd"."""
        return f"-{self.sysname}: {subject}"
