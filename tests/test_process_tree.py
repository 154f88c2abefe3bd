"""Tests for the process tree reporter client and visualizer."""

import shutil
import subprocess
from pathlib import Path

import pytest

from kudash.lib.process_tree import (
    KernelModule,
    KernelModuleError,
    ProcessEdge,
    ProcessTreeError,
    ProcessTreeReporter,
    ProcessTreeVisualizer,
    parse_edge,
)

REPORT = '''"1 init" -> "2 a";
"1 init" -> "3 b";

"2 a" -> "4 c";
'''


@pytest.fixture
def fake_run(monkeypatch):
    """Record subprocess invocations instead of running them."""
    calls = []

    def run(argv, **kwargs):
        calls.append(argv)
        return subprocess.CompletedProcess(argv, 0, "", "")

    monkeypatch.setattr(subprocess, "run", run)
    return calls


class TestParseEdge:
    """Test parsing reporter lines."""

    def test_edge(self):
        """Test a well-formed edge."""
        edge = parse_edge('"1 systemd" -> "412 sshd";\n')
        assert edge == ProcessEdge(1, "systemd", 412, "sshd")
        assert edge.parent_label == "1 systemd"
        assert edge.child_label == "412 sshd"

    def test_names_with_spaces(self):
        """Test process names may contain spaces and punctuation."""
        edge = parse_edge('"2 kthreadd" -> "9 kworker/0:1 H";')
        assert edge.child_name == "kworker/0:1 H"

    def test_error_line(self):
        """Test an error reported by the module."""
        with pytest.raises(ProcessTreeError, match="Invalid PID"):
            parse_edge("Invalid PID\n")


class TestKernelModule:
    """Test kernel module control."""

    def test_is_loaded(self, tmp_path):
        """Test detection through the module list."""
        modules = tmp_path / "modules"
        modules.write_text("ext4 749568 2 - Live 0x0\npsvis 16384 0 - Live 0x0\n")
        assert KernelModule("psvis", modules_file=modules).is_loaded()
        assert not KernelModule("btrfs", modules_file=modules).is_loaded()

    def test_unreadable_module_list(self, tmp_path):
        """Test a missing module list raises."""
        module = KernelModule("psvis", modules_file=tmp_path / "missing")
        with pytest.raises(KernelModuleError, match="Failed to open"):
            module.is_loaded()

    def test_load_and_unload(self, fake_run, tmp_path):
        """Test insmod and rmmod invocations through sudo."""
        module = KernelModule("psvis", path=tmp_path / "psvis.ko")
        module.load()
        module.unload()
        assert fake_run == [
            ["sudo", "insmod", str(tmp_path / "psvis.ko")],
            ["sudo", "rmmod", "psvis"],
        ]

    def test_without_sudo(self, fake_run):
        """Test sudo can be disabled."""
        KernelModule("psvis", use_sudo=False).unload()
        assert fake_run == [["rmmod", "psvis"]]

    def test_load_needs_path(self, fake_run):
        """Test loading without a module file."""
        with pytest.raises(KernelModuleError, match="No module file"):
            KernelModule("psvis").load()
        assert fake_run == []

    def test_command_failure(self, monkeypatch):
        """Test a failing utility is wrapped."""
        def run(argv, **kwargs):
            raise subprocess.CalledProcessError(1, argv, output="", stderr="Operation not permitted\n")
        monkeypatch.setattr(subprocess, "run", run)
        with pytest.raises(KernelModuleError, match="Operation not permitted"):
            KernelModule("psvis", use_sudo=False).unload()

    def test_ensure_loaded(self, fake_run, tmp_path):
        """Test the module is only inserted when missing."""
        modules = tmp_path / "modules"
        modules.write_text("psvis 16384 0 - Live\n")
        module = KernelModule("psvis", path=tmp_path / "psvis.ko", modules_file=modules, use_sudo=False)
        assert module.ensure_loaded() is True
        assert fake_run == []

        modules.write_text("")
        assert module.ensure_loaded() is False
        assert fake_run == [["insmod", str(tmp_path / "psvis.ko")]]


class TestReporter:
    """Test the pseudo-file client."""

    def test_send_pid(self, tmp_path):
        """Test the PID is written to the pseudo-file."""
        proc_file = tmp_path / "psvis"
        ProcessTreeReporter(proc_file).send_pid(42)
        assert proc_file.read_text() == "42"

    def test_send_invalid_pid(self, tmp_path):
        """Test non-numeric PIDs are rejected before writing."""
        proc_file = tmp_path / "psvis"
        with pytest.raises(ProcessTreeError, match="Invalid PID: -1"):
            ProcessTreeReporter(proc_file).send_pid("-1")
        assert not proc_file.exists()

    def test_read_edges(self, tmp_path):
        """Test reading a report, skipping blank lines."""
        proc_file = tmp_path / "psvis"
        proc_file.write_text(REPORT)
        edges = ProcessTreeReporter(proc_file).read_edges()
        assert [(e.parent_pid, e.child_pid) for e in edges] == [(1, 2), (1, 3), (2, 4)]

    def test_missing_pseudo_file(self, tmp_path):
        """Test a missing pseudo-file (module not loaded)."""
        reporter = ProcessTreeReporter(tmp_path / "missing" / "psvis")
        with pytest.raises(ProcessTreeError, match="for writing"):
            reporter.send_pid(1)
        with pytest.raises(ProcessTreeError, match="for reading"):
            reporter.read_edges()


class TestVisualizer:
    """Test DOT generation and rendering."""

    def edges(self, tmp_path):
        proc_file = tmp_path / "psvis"
        proc_file.write_text(REPORT)
        return ProcessTreeReporter(proc_file).read_edges()

    def test_to_dot(self, tmp_path):
        """Test the generated DOT text."""
        viz = ProcessTreeVisualizer.from_edges(self.edges(tmp_path))
        assert viz.to_dot() == (
            "digraph ProcessTree {\n"
            "node [shape=ellipse];\n"
            '"1 init" [style=filled, fillcolor=lightblue];\n'
            '"1 init" -> "2 a";\n'
            '"1 init" -> "3 b";\n'
            '"2 a" -> "4 c";\n'
            "}\n"
        )

    def test_nodes(self, tmp_path):
        """Test every process becomes one node and only the first parent is the root."""
        viz = ProcessTreeVisualizer.from_edges(self.edges(tmp_path))
        assert viz.nodes == {"1 init": True, "2 a": False, "3 b": False, "4 c": False}

    def test_empty_report(self):
        """Test a report without edges."""
        viz = ProcessTreeVisualizer.from_edges([])
        assert viz.nodes == {}
        assert viz.to_dot() == "digraph ProcessTree {\nnode [shape=ellipse];\n}\n"

    def test_clear(self, tmp_path):
        """Test clearing the graph."""
        viz = ProcessTreeVisualizer.from_edges(self.edges(tmp_path))
        viz.clear()
        assert viz.nodes == {}
        assert viz.edges == []

    @pytest.mark.skipif(shutil.which("dot") is None, reason="Graphviz dot not installed")
    def test_render(self, tmp_path):
        """Test rendering an image with graphviz."""
        viz = ProcessTreeVisualizer.from_edges(self.edges(tmp_path))
        output = viz.render(tmp_path / "out" / "tree.svg")
        assert output == tmp_path / "out" / "tree.svg"
        assert Path(output).read_text().lstrip().startswith("<?xml")
