"""Process tree visualization through the psvis kernel module.

The kernel module exposes a pseudo-file: writing a PID to it selects the
root process, reading it back yields one DOT edge per parent/child pair:

    "1 systemd" -> "412 sshd";

This module loads/unloads the kernel module, talks to the pseudo-file, and
renders the resulting tree with graphviz.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

EDGE_PATTERN = re.compile(
    r'^\s*"(?P<ppid>\d+) (?P<pname>[^"]*)"\s*->\s*"(?P<cpid>\d+) (?P<cname>[^"]*)";?\s*$'
)


class KernelModuleError(Exception):
    """Raised when the kernel module cannot be loaded or removed."""
    pass


class ProcessTreeError(Exception):
    """Raised when the reporter pseudo-file cannot be used."""
    pass


@dataclass(frozen=True)
class ProcessEdge:
    """A parent -> child relation reported by the kernel module."""

    parent_pid: int
    parent_name: str
    child_pid: int
    child_name: str

    @property
    def parent_label(self) -> str:
        """Node label of the parent, as the module prints it."""
        return f"{self.parent_pid} {self.parent_name}"

    @property
    def child_label(self) -> str:
        """Node label of the child, as the module prints it."""
        return f"{self.child_pid} {self.child_name}"


def parse_edge(line: str) -> ProcessEdge:
    """Parse one line of reporter output.

    Args:
        line: Line like '"1 init" -> "42 sh";'

    Returns:
        Parsed edge

    Raises:
        ProcessTreeError: If the line is not an edge (e.g. "Invalid PID")
    """
    match = EDGE_PATTERN.match(line)
    if match is None:
        raise ProcessTreeError(line.strip() or "Empty reporter output line")
    return ProcessEdge(
        parent_pid=int(match.group('ppid')),
        parent_name=match.group('pname'),
        child_pid=int(match.group('cpid')),
        child_name=match.group('cname'),
    )


class KernelModule:
    """Load state and control of a kernel module."""

    def __init__(
        self,
        name: str,
        path: Optional[Path] = None,
        modules_file: Path = Path("/proc/modules"),
        use_sudo: bool = True
    ):
        """Initialize module handle.

        Args:
            name: Module name as listed in /proc/modules
            path: Path to the .ko file (needed for loading)
            modules_file: Module list resource
            use_sudo: Prefix insmod/rmmod with sudo
        """
        self.name = name
        self.path = Path(path) if path is not None else None
        self.modules_file = Path(modules_file)
        self.use_sudo = use_sudo

    def is_loaded(self) -> bool:
        """Check whether the module is loaded.

        Returns:
            True if the module name appears in the module list

        Raises:
            KernelModuleError: If the module list cannot be read
        """
        try:
            with open(self.modules_file) as f:
                return any(self.name in line for line in f)
        except OSError as e:
            raise KernelModuleError(f"Failed to open {self.modules_file}: {e.strerror}") from e

    def load(self) -> None:
        """Insert the module.

        Raises:
            KernelModuleError: If insmod fails
        """
        if self.path is None:
            raise KernelModuleError(f"No module file configured for {self.name}")
        logger.info(f"Loading kernel module {self.path}")
        self._run(['insmod', str(self.path)])

    def unload(self) -> None:
        """Remove the module.

        Raises:
            KernelModuleError: If rmmod fails
        """
        logger.info(f"Removing kernel module {self.name}")
        self._run(['rmmod', self.name])

    def ensure_loaded(self) -> bool:
        """Load the module unless it is already loaded.

        Returns:
            True if the module was already loaded
        """
        if self.is_loaded():
            return True
        self.load()
        return False

    def _run(self, argv: List[str]) -> None:
        """Run a module utility, optionally through sudo."""
        if self.use_sudo:
            argv = ['sudo'] + argv
        try:
            subprocess.run(argv, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as e:
            raise KernelModuleError(
                f"{' '.join(argv)} failed: {e.stderr.strip() or e.returncode}"
            ) from e
        except FileNotFoundError as e:
            raise KernelModuleError(f"{argv[0]} command not found") from e


class ProcessTreeReporter:
    """Client of the kernel reporter pseudo-file."""

    def __init__(self, proc_file: Path = Path("/proc/psvis")):
        """Initialize reporter.

        Args:
            proc_file: Pseudo-file exposed by the kernel module
        """
        self.proc_file = Path(proc_file)

    def send_pid(self, pid: Union[int, str]) -> None:
        """Select the root process of the next report.

        Raises:
            ProcessTreeError: If the PID is not numeric or the write fails
        """
        pid_text = str(pid).strip()
        if not pid_text.isdigit():
            raise ProcessTreeError(f"Invalid PID: {pid}")
        try:
            with open(self.proc_file, 'w') as f:
                f.write(pid_text)
        except OSError as e:
            raise ProcessTreeError(
                f"Failed to open {self.proc_file} for writing: {e.strerror}"
            ) from e

    def read_edges(self) -> List[ProcessEdge]:
        """Read the edge list of the current report.

        Returns:
            Edges in the order reported (depth-first from the root)

        Raises:
            ProcessTreeError: If reading fails or the module reports an error
        """
        try:
            with open(self.proc_file) as f:
                lines = [line for line in f if line.strip()]
        except OSError as e:
            raise ProcessTreeError(
                f"Failed to open {self.proc_file} for reading: {e.strerror}"
            ) from e
        return [parse_edge(line) for line in lines]

    def query(self, pid: Union[int, str]) -> List[ProcessEdge]:
        """Report the process tree rooted at pid.

        Args:
            pid: Root process ID

        Returns:
            List of parent -> child edges
        """
        self.send_pid(pid)
        edges = self.read_edges()
        logger.debug(f"Reporter returned {len(edges)} edges for PID {pid}")
        return edges


class ProcessTreeVisualizer:
    """Visualize a process tree.

    Creates visual representations of the tree using graphviz.
    """

    def __init__(self):
        """Initialize visualizer."""
        self.nodes: Dict[str, bool] = {}
        self.edges: List[Tuple[str, str]] = []

    def add_node(self, label: str, root: bool = False) -> None:
        """Add a process node.

        Args:
            label: Node label ("<pid> <name>")
            root: Whether this is the queried root process
        """
        self.nodes[label] = self.nodes.get(label, False) or root

    def add_edge(self, from_node: str, to_node: str) -> None:
        """Add a parent -> child edge, adding missing nodes."""
        self.add_node(from_node)
        self.add_node(to_node)
        self.edges.append((from_node, to_node))

    @classmethod
    def from_edges(cls, edges: List[ProcessEdge]) -> ProcessTreeVisualizer:
        """Build a visualizer from reporter edges.

        The parent of the first edge is the root of the report.
        """
        viz = cls()
        if edges:
            viz.add_node(edges[0].parent_label, root=True)
        for edge in edges:
            viz.add_edge(edge.parent_label, edge.child_label)
        return viz

    def to_dot(self) -> str:
        """Generate DOT (Graphviz) syntax.

        Returns:
            DOT diagram as string
        """
        lines = [
            "digraph ProcessTree {",
            "node [shape=ellipse];",
        ]
        for label, root in self.nodes.items():
            if root:
                lines.append(f'"{label}" [style=filled, fillcolor=lightblue];')
        for from_node, to_node in self.edges:
            lines.append(f'"{from_node}" -> "{to_node}";')
        lines.append("}")
        return '\n'.join(lines) + '\n'

    def render(self, output_path: Path, format: Optional[str] = None) -> Path:
        """Render the tree to an image file.

        Args:
            output_path: Output image path
            format: Output format (png, svg, ...); taken from the suffix when None

        Returns:
            Path to rendered file

        Raises:
            RuntimeError: If rendering fails
        """
        import graphviz

        output_path = Path(output_path)
        if format is None:
            format = output_path.suffix.lstrip('.').lower() or 'png'
        output_path.parent.mkdir(parents=True, exist_ok=True)

        source = graphviz.Source(self.to_dot())
        try:
            rendered = source.render(outfile=output_path, format=format, cleanup=True)
        except (graphviz.ExecutableNotFound, graphviz.CalledProcessError) as e:
            raise RuntimeError(f"Failed to render process tree: {e}") from e

        logger.info(f"Process tree visualization saved to: {rendered}")
        return Path(rendered)

    def clear(self) -> None:
        """Clear all nodes and edges."""
        self.nodes.clear()
        self.edges.clear()
