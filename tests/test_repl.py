"""Tests for the interactive session loop and the command-line entry point."""

import io
import os

import pytest

from kudash.cli import main
from kudash.lib.config_parser import ShellConfig
from kudash.shell.context import ExecutionContext, ExitSignal
from kudash.shell.repl import REPL, run_command


@pytest.fixture
def context(tmp_path):
    """Context whose module list never contains psvis."""
    modules = tmp_path / "modules"
    modules.write_text("")
    config = ShellConfig(prompt="{sysname}> ", psvis={"modules_file": str(modules)})
    return ExecutionContext(config)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


def run_session(context, keystrokes: bytes) -> str:
    """Run a REPL over the given keystrokes; return what the editor echoed."""
    read_fd, write_fd = os.pipe()
    os.write(write_fd, keystrokes)
    os.close(write_fd)
    output = io.StringIO()
    try:
        REPL(context, input_fd=read_fd, output=output).run()
    finally:
        os.close(read_fd)
    return output.getvalue()


class TestSession:
    """Test the read-execute loop."""

    def test_end_of_input_stops(self, context):
        """Test the loop ends when input runs out."""
        assert run_session(context, b"") == "dash> "

    def test_exit_stops(self, context, workdir):
        """Test lines after exit are not executed."""
        run_session(context, b"exit\necho late >late.txt\n")
        assert not (workdir / "late.txt").exists()

    def test_ctrl_d_stops(self, context, workdir):
        """Test Ctrl-D ends the session."""
        run_session(context, b"\x04echo late >late.txt\n")
        assert not (workdir / "late.txt").exists()

    def test_cd_persists(self, context, workdir):
        """Test the working directory carries over between lines."""
        (workdir / "sub").mkdir()
        run_session(context, b"cd sub\necho hi >here.txt\nexit\n")
        assert (workdir / "sub" / "here.txt").read_text() == "hi\n"

    def test_errors_do_not_stop_the_session(self, context, workdir, capfd):
        """Test the loop continues after a failing command."""
        run_session(context, b"definitely-not-a-command-xyz\necho ok >ok.txt\n")
        assert "command not found" in capfd.readouterr().err
        assert (workdir / "ok.txt").read_text() == "ok\n"

    def test_up_arrow_repeats_previous_line(self, context, workdir):
        """Test recalling and re-running the previous line."""
        run_session(context, b"echo again >>log.txt\n\x1b[A\n")
        assert (workdir / "log.txt").read_text() == "again\nagain\n"

    def test_prompt_shown_per_line(self, context, workdir):
        """Test the prompt is printed before every line."""
        echoed = run_session(context, b"cd .\ncd .\n")
        assert echoed == "dash> cd .\ndash> cd .\ndash> "


class TestCompletionMarker:
    """Test lines ending in the completion marker."""

    def test_lists_candidates(self, context, workdir, capsys):
        """Test candidates are listed instead of running the line."""
        (workdir / "notes.txt").write_text("")
        (workdir / "news.txt").write_text("")
        run_session(context, b"cat n?\n")
        assert capsys.readouterr().out.splitlines()[:2] == ["news.txt", "notes.txt"]

    def test_no_candidates(self, context, workdir, capsys):
        """Test the no-match message."""
        run_session(context, b"cat zz?\n")
        assert "No matches found" in capsys.readouterr().out


class TestRunCommand:
    """Test one-shot execution."""

    def test_success(self, context):
        """Test a succeeding command."""
        assert run_command("true", context) == ExitSignal.CONTINUE

    def test_failure(self, context):
        """Test a failing command."""
        assert run_command("false", context) == ExitSignal.COMMAND_ERROR

    def test_empty(self, context):
        """Test an empty line."""
        assert run_command("   ", context) == ExitSignal.CONTINUE

    def test_exit(self, context):
        """Test exit requests termination."""
        assert run_command("exit", context) == ExitSignal.TERMINATE


class TestCli:
    """Test the command-line entry point."""

    def test_generate_config(self, tmp_path, capsys):
        """Test writing a sample configuration."""
        path = tmp_path / "config.yaml"
        assert main(["--generate-config", str(path)]) == 0
        assert path.exists()
        assert str(path) in capsys.readouterr().out

    def test_missing_config(self, tmp_path):
        """Test an explicit config file must exist."""
        assert main(["-c", str(tmp_path / "missing.yaml"), "-e", "true"]) == 1

    def test_invalid_config(self, tmp_path):
        """Test a config failing validation."""
        path = tmp_path / "config.yaml"
        path.write_text("buffer_size: 1\n")
        assert main(["-c", str(path), "-e", "true"]) == 1

    def test_invalid_prompt_config(self, tmp_path):
        """Test a prompt with an unknown field is rejected before the shell starts."""
        path = tmp_path / "config.yaml"
        path.write_text('prompt: "{cwd} {oops}> "\n')
        assert main(["-c", str(path)]) == 1

    def test_one_shot_command(self, tmp_path):
        """Test -e runs a line and reports its status."""
        path = tmp_path / "config.yaml"
        path.write_text("sysname: kush\n")
        assert main(["-c", str(path), "-e", "true"]) == 0
        assert main(["-c", str(path), "-e", "false"]) == 1

    def test_version(self, capsys):
        """Test --version."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "kudash" in capsys.readouterr().out
