"""Shared fixtures and fakes for the Azeroth Winebar test suite."""

import logging
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import requests

from azeroth_winebar.backend.handlers.subprocess_utils import CommandResult
from azeroth_winebar.backend.models.preflight import HostProfile


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every per-user directory at a throwaway home."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for name in ("XDG_CONFIG_HOME", "XDG_DATA_HOME", "WINEPREFIX", "DEBUG", "FORCE_TERMINAL"):
        monkeypatch.delenv(name, raising=False)
    yield home
    pkg_logger = logging.getLogger("azeroth_winebar")
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()


class FakeProcess:
    """Stands in for a spawned ProcessManager."""

    def __init__(self, argv: List[str]) -> None:
        self.cmd = argv
        self.cancelled = False
        self.running = True

    def is_running(self) -> bool:
        return self.running and not self.cancelled

    def cancel(self) -> None:
        self.cancelled = True
        self.running = False


class FakeRunner:
    """
    Scripted CommandRunner.

    Emulates the wine commands the services issue (wineboot, reg add/query/
    delete, --version), plus tar extraction. Tests register extra handlers
    with `on(name, handler)`; a handler returns a CommandResult or None to
    fall through to the default success result.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.envs: List[Optional[Dict[str, str]]] = []
        self.interactive: List[bool] = []
        self.registry: Dict[tuple, str] = {}
        self.spawned: List[FakeProcess] = []
        self.forgotten: List[FakeProcess] = []
        self.handlers: Dict[str, Callable] = {}
        self.spawn_hook: Optional[Callable] = None
        self.cancel_all_calls = 0

    def on(self, name: str, handler: Callable) -> None:
        self.handlers[name] = handler

    def commands(self, name: str) -> List[List[str]]:
        return [argv for argv in self.calls if name in argv or (argv and os.path.basename(argv[0]) == name)]

    def run(self, argv, env=None, timeout=None, cwd=None, capture=True, interactive=False) -> CommandResult:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        self.envs.append(env)
        self.interactive.append(interactive)
        name = os.path.basename(argv[0])
        if name in self.handlers:
            result = self.handlers[name](argv, env)
            if result is not None:
                return result
        if len(argv) > 1 and argv[1] in self.handlers:
            result = self.handlers[argv[1]](argv, env)
            if result is not None:
                return result
        if name == "tar":
            return self._tar(argv)
        if len(argv) > 1 and argv[1] == "wineboot":
            (Path(env["WINEPREFIX"]) / "drive_c").mkdir(parents=True, exist_ok=True)
        elif len(argv) > 1 and argv[1] == "reg":
            return self._reg(argv[2:])
        elif len(argv) > 1 and argv[1] == "--version":
            return CommandResult(argv=argv, returncode=0, stdout="wine-9.0 (Staging)\n")
        return CommandResult(argv=argv, returncode=0)

    def _tar(self, argv: List[str]) -> CommandResult:
        stage = Path(argv[argv.index("-C") + 1])
        wine = stage / "files" / "bin" / "wine"
        wine.parent.mkdir(parents=True, exist_ok=True)
        wine.write_text("#!/bin/sh\n")
        (stage / "proton").write_text("#!/usr/bin/env python3\n")
        return CommandResult(argv=argv, returncode=0)

    def _reg(self, args: List[str]) -> CommandResult:
        action, key = args[0], args[1]
        if action == "add":
            name = args[args.index("/v") + 1]
            self.registry[(key, name)] = args[args.index("/d") + 1]
            return CommandResult(argv=args, returncode=0)
        if action == "query":
            name = args[args.index("/v") + 1]
            if (key, name) not in self.registry:
                return CommandResult(argv=args, returncode=1, stderr="value not found")
            stdout = f"\n{key}\n    {name}    REG_SZ    {self.registry[(key, name)]}\n\n"
            return CommandResult(argv=args, returncode=0, stdout=stdout)
        if action == "delete":
            for entry in [e for e in self.registry if e[0] == key]:
                del self.registry[entry]
            return CommandResult(argv=args, returncode=0)
        return CommandResult(argv=args, returncode=1)

    def spawn(self, argv, env=None, cwd=None) -> FakeProcess:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        self.envs.append(env)
        self.interactive.append(False)
        process = FakeProcess(argv)
        self.spawned.append(process)
        if self.spawn_hook is not None:
            self.spawn_hook(argv, env)
        return process

    def forget(self, manager) -> None:
        self.forgotten.append(manager)

    def cancel_all(self) -> int:
        self.cancel_all_calls += 1
        running = [p for p in self.spawned if p.is_running()]
        for process in running:
            process.cancel()
        return len(running)


class FakeProbe:
    """HostProbe replacement with settable readings."""

    def __init__(self, map_count: int = 16777216, nofile_hard=524288,
                 memory_gb: int = 32, memory_swap_gb: int = 48) -> None:
        self.map_count = map_count
        self.nofile_hard = nofile_hard
        self.memory_gb = memory_gb
        self.memory_swap_gb = memory_swap_gb
        self.samples = 0

    def read_map_count(self) -> int:
        return self.map_count

    def read_nofile_hard(self):
        return self.nofile_hard

    def sample(self) -> HostProfile:
        self.samples += 1
        return HostProfile(
            map_count=self.map_count,
            nofile_hard=self.nofile_hard,
            memory_gb=self.memory_gb,
            memory_swap_gb=self.memory_swap_gb,
        )


class FakeResponse:
    """Minimal requests.Response used by the download and feed fakes."""

    def __init__(self, body: bytes = b"", json_data=None, status_code: int = 200,
                 interrupt_after: Optional[int] = None) -> None:
        self.body = body
        self.json_data = json_data
        self.status_code = status_code
        self.headers = {"content-length": str(len(body))}
        self.interrupt_after = interrupt_after

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self.json_data

    def iter_content(self, chunk_size: int = 8192):
        sent = 0
        for start in range(0, len(self.body), chunk_size):
            if self.interrupt_after is not None and sent >= self.interrupt_after:
                raise KeyboardInterrupt
            chunk = self.body[start:start + chunk_size]
            sent += len(chunk)
            yield chunk


class FakeHttp:
    """Records GETs and answers them from a URL -> FakeResponse table."""

    def __init__(self) -> None:
        self.routes: Dict[str, FakeResponse] = {}
        self.requested: List[str] = []

    def get(self, url, **kwargs):
        self.requested.append(url)
        if url not in self.routes:
            return FakeResponse(status_code=404)
        return self.routes[url]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def http(monkeypatch: pytest.MonkeyPatch) -> FakeHttp:
    fake = FakeHttp()
    monkeypatch.setattr("azeroth_winebar.backend.handlers.filesystem_handler.requests.get", fake.get)
    return fake


@pytest.fixture
def all_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    """Every external tool resolves on PATH."""
    monkeypatch.setattr("azeroth_winebar.backend.handlers.subprocess_utils.shutil.which",
                        lambda name: f"/usr/bin/{name}")


def make_executable_file(path: Path, content: str = "#!/bin/sh\n") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    path.chmod(0o755)
    return path


@pytest.fixture
def steam_proton(tmp_path: Path) -> Path:
    """A Proton Experimental tree as Steam lays it out."""
    root = tmp_path / "steam" / "steamapps" / "common" / "Proton - Experimental"
    make_executable_file(root / "files" / "bin" / "wine")
    make_executable_file(root / "proton", "#!/usr/bin/env python3\n")
    return root


