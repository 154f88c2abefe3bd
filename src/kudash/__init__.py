"""kudash - an interactive command-line shell.

A small Unix shell with a raw-mode line editor and pipeline execution.

Features:
- Tab completion of commands and file names
- One-line history recall with the up arrow
- Pipes, input/output redirection and background jobs
- kuhex binary dump and psvis process-tree visualization builtins
"""

__version__ = "1.0.0"
__license__ = "MIT"

from kudash.cli import main

__all__ = ["main", "__version__"]
