"""Tests for the privilege broker."""

import os
import sys
from pathlib import Path

import pytest

from azeroth_winebar.backend.errors import ElevationCancelled, NoElevationAvailable, PrivilegeDenied
from azeroth_winebar.backend.handlers.privilege_handler import PrivilegeBroker
from azeroth_winebar.backend.handlers.subprocess_utils import CommandResult, CommandRunner

from conftest import FakeRunner, make_executable_file


def make_broker(runner: FakeRunner, tools=(), euid: int = 1000, notes=None, confirm=None) -> PrivilegeBroker:
    notes = notes if notes is not None else []
    return PrivilegeBroker(
        runner,
        notify=notes.append,
        confirm=confirm,
        which=lambda name: f"/usr/bin/{name}" if name in tools else None,
        geteuid=lambda: euid,
    )


class TestRunElevated:
    """Method selection and failure mapping."""

    def test_root_runs_directly(self, runner: FakeRunner) -> None:
        broker = make_broker(runner, euid=0)
        assert broker.available_method() == "direct"
        code, _ = broker.run_elevated(["sysctl", "-w", "vm.max_map_count=16777216"], "Apply map count")
        assert code == 0
        assert runner.calls == [["sysctl", "-w", "vm.max_map_count=16777216"]]

    def test_pkexec_preferred_over_sudo(self, runner: FakeRunner) -> None:
        broker = make_broker(runner, tools=("pkexec", "sudo"))
        assert broker.available_method() == "pkexec"
        broker.run_elevated(["true"], "Test")
        assert runner.calls == [["/usr/bin/pkexec", "true"]]

    def test_description_is_shown_verbatim(self, runner: FakeRunner) -> None:
        notes = []
        broker = make_broker(runner, tools=("pkexec",), notes=notes)
        broker.run_elevated(["true"], "Azeroth Winebar needs to write /etc/sysctl.d/99-azeroth-winebar.conf.")
        assert notes == ["Azeroth Winebar needs to write /etc/sysctl.d/99-azeroth-winebar.conf."]

    def test_dismissed_prompt_is_cancelled(self, runner: FakeRunner) -> None:
        runner.on("pkexec", lambda argv, env: CommandResult(argv=argv, returncode=126))
        broker = make_broker(runner, tools=("pkexec", "sudo"))
        with pytest.raises(ElevationCancelled):
            broker.run_elevated(["true"], "Test")
        assert len(runner.calls) == 1

    def test_unauthorized_pkexec_falls_back_to_sudo_after_consent(self, runner: FakeRunner) -> None:
        runner.on("pkexec", lambda argv, env: CommandResult(argv=argv, returncode=127))
        asked = []
        broker = make_broker(runner, tools=("pkexec", "sudo"),
                             confirm=lambda title, message: asked.append(title) or True)
        code, _ = broker.run_elevated(["true"], "Test")
        assert code == 0
        assert asked == ["Authorisation refused"]
        assert runner.calls[-1] == ["/usr/bin/sudo", "--", "true"]

    def test_unauthorized_pkexec_without_consent_is_denied(self, runner: FakeRunner) -> None:
        runner.on("pkexec", lambda argv, env: CommandResult(argv=argv, returncode=127))
        broker = make_broker(runner, tools=("pkexec", "sudo"))
        with pytest.raises(PrivilegeDenied):
            broker.run_elevated(["true"], "Test")
        assert runner.calls == [["/usr/bin/pkexec", "true"]]

    def test_unauthorized_pkexec_without_sudo_is_denied(self, runner: FakeRunner) -> None:
        runner.on("pkexec", lambda argv, env: CommandResult(argv=argv, returncode=127))
        broker = make_broker(runner, tools=("pkexec",), confirm=lambda title, message: True)
        with pytest.raises(PrivilegeDenied):
            broker.run_elevated(["true"], "Test")
        assert len(runner.calls) == 1

    def test_sudo_wrong_password_is_denied(self, runner: FakeRunner) -> None:
        runner.on("sudo", lambda argv, env: CommandResult(
            argv=argv, returncode=1, stderr="sudo: 3 incorrect password attempts\n"))
        broker = make_broker(runner, tools=("sudo",))
        with pytest.raises(PrivilegeDenied):
            broker.run_elevated(["true"], "Test")

    def test_other_sudo_failures_return_the_exit_code(self, runner: FakeRunner) -> None:
        runner.on("sudo", lambda argv, env: CommandResult(argv=argv, returncode=2, stderr="sysctl: bad key\n"))
        broker = make_broker(runner, tools=("sudo",))
        code, stderr = broker.run_elevated(["sysctl", "-w", "x=1"], "Test")
        assert code == 2
        assert "bad key" in stderr

    def test_pkexec_and_sudo_run_in_our_session(self, runner: FakeRunner) -> None:
        runner.on("pkexec", lambda argv, env: CommandResult(argv=argv, returncode=127))
        broker = make_broker(runner, tools=("pkexec", "sudo"), confirm=lambda title, message: True)
        broker.run_elevated(["true"], "Test")
        assert [argv[0] for argv in runner.calls] == ["/usr/bin/pkexec", "/usr/bin/sudo"]
        assert runner.interactive == [True, True]

    def test_sudo_without_terminal_is_denied(self, runner: FakeRunner) -> None:
        runner.on("sudo", lambda argv, env: CommandResult(
            argv=argv, returncode=1, stderr="sudo: a terminal is required to read the password\n"))
        broker = make_broker(runner, tools=("sudo",))
        with pytest.raises(PrivilegeDenied):
            broker.run_elevated(["true"], "Test")

    def test_no_method_available(self, runner: FakeRunner) -> None:
        broker = make_broker(runner)
        assert broker.available_method() is None
        with pytest.raises(NoElevationAvailable):
            broker.run_elevated(["true"], "Test")
        assert runner.calls == []


def test_write_root_file_stages_a_temp_copy(runner: FakeRunner, tmp_path: Path) -> None:
    staged = {}

    def capture(argv, env):
        staged["content"] = Path(argv[-2]).read_text()
        staged["argv"] = argv
        return None

    runner.on("install", capture)
    broker = make_broker(runner, euid=0)
    destination = tmp_path / "etc" / "sysctl.d" / "99-azeroth-winebar.conf"

    code, _ = broker.write_root_file(destination, "vm.max_map_count=16777216\n", "Write sysctl drop-in")

    assert code == 0
    assert staged["content"] == "vm.max_map_count=16777216\n"
    assert staged["argv"][:4] == ["install", "-D", "-m", "0644"]
    assert staged["argv"][-1] == str(destination)
    assert not Path(staged["argv"][-2]).exists()


class TestElevatedSession:
    """The elevated child must be able to reach the operator's terminal."""

    PRINT_SID = [sys.executable, "-c", "import os; print(os.getsid(0))"]

    def test_interactive_child_shares_our_session(self) -> None:
        result = CommandRunner().run(self.PRINT_SID, interactive=True, timeout=30)
        assert result.ok
        assert int(result.stdout.strip()) == os.getsid(0)

    def test_background_child_gets_its_own_session(self) -> None:
        result = CommandRunner().run(self.PRINT_SID, timeout=30)
        assert result.ok
        assert int(result.stdout.strip()) != os.getsid(0)

    def test_broker_runs_sudo_in_our_session(self, tmp_path: Path) -> None:
        # sudo stand-in: drops "--" and runs the rest
        fake_sudo = make_executable_file(tmp_path / "sudo", "#!/bin/sh\nshift\nexec \"$@\"\n")
        broker = PrivilegeBroker(CommandRunner(), notify=lambda message: None,
                                 which=lambda name: str(fake_sudo) if name == "sudo" else None,
                                 geteuid=lambda: 1000)

        code, stderr = broker.run_elevated(
            [sys.executable, "-c", f"import os, sys; sys.exit(0 if os.getsid(0) == {os.getsid(0)} else 3)"],
            "Test")

        assert code == 0, stderr
