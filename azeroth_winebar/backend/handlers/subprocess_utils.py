import logging
import os
import resource
import shutil
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import psutil

from azeroth_winebar.backend.errors import DependencyMissing

logger = logging.getLogger(__name__)

SYSTEM_PATHS = ['/usr/bin', '/usr/local/bin', '/bin', '/sbin', '/usr/sbin']


def get_clean_subprocess_env(extra_env=None):
    """
    Returns a copy of os.environ with variables that confuse child wine
    processes removed, and the common system directories appended to PATH.
    Optionally merges in extra_env dict.
    """
    env = os.environ.copy()

    # Inherited wine settings would redirect children to the wrong prefix/binary
    for key in ['WINEPREFIX', 'WINE', 'WINESERVER', 'WINEDLLOVERRIDES', 'WINEARCH']:
        env.pop(key, None)

    current_path = env.get('PATH', '')
    path_parts = current_path.split(':') if current_path else []
    for sys_path in SYSTEM_PATHS:
        if sys_path not in path_parts and os.path.isdir(sys_path):
            path_parts.append(sys_path)

    seen = set()
    final_path_parts = []
    for path_part in path_parts:
        if path_part and path_part not in seen:
            final_path_parts.append(path_part)
            seen.add(path_part)
    env['PATH'] = ':'.join(final_path_parts)

    if extra_env:
        env.update({k: str(v) for k, v in extra_env.items()})
    return env


def get_hard_nofile_limit() -> Union[int, str]:
    """
    Hard RLIMIT_NOFILE of this process.

    Returns:
        int or "unlimited"
    """
    _soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    if hard == resource.RLIM_INFINITY:
        return "unlimited"
    return hard


def require_tools(*names: str) -> Dict[str, str]:
    """
    Resolve each tool on PATH.

    Raises:
        DependencyMissing: naming the first tool that is absent
    """
    resolved = {}
    for name in names:
        path = shutil.which(name)
        if not path:
            logger.error(f"Required tool not found on PATH: {name}")
            raise DependencyMissing(name)
        resolved[name] = path
    return resolved


@dataclass
class CommandResult:
    """Structured outcome of one external command."""
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def timed_out(self) -> bool:
        return self.returncode == -signal.SIGKILL and self.stderr.endswith("[timed out]")


class ProcessManager:
    """
    Shared process manager for subprocess launching, tracking, and cancellation.
    """
    def __init__(self, cmd, env=None, cwd=None, text=True, capture=True, interactive=False):
        self.cmd = list(cmd)
        # Default to cleaned environment if None
        if env is None:
            self.env = get_clean_subprocess_env()
        else:
            self.env = env
        self.cwd = cwd
        self.text = text
        self.capture = capture
        # Interactive children share our session and stdin so they can prompt on the terminal
        self.interactive = interactive
        self.proc = None
        self.process_group_pid = None
        self._start_process()

    def _start_process(self):
        pipe = subprocess.PIPE if self.capture else subprocess.DEVNULL
        self.proc = subprocess.Popen(
            self.cmd,
            stdin=None if self.interactive else subprocess.DEVNULL,
            stdout=pipe,
            stderr=pipe,
            env=self.env,
            cwd=self.cwd,
            text=self.text,
            errors='replace' if self.text else None,
            start_new_session=not self.interactive
        )
        if self.interactive:
            # Same process group as us; never killpg it
            self.process_group_pid = None
            return
        try:
            self.process_group_pid = os.getpgid(self.proc.pid)
        except ProcessLookupError:
            self.process_group_pid = None

    def communicate(self, timeout=None) -> Tuple[str, str]:
        stdout, stderr = self.proc.communicate(timeout=timeout)
        return stdout or "", stderr or ""

    def _reap_children(self):
        try:
            parent = psutil.Process(self.proc.pid)
            children = parent.children(recursive=True)
        except psutil.Error:
            return
        for child in children:
            try:
                child.kill()
            except psutil.Error:
                continue
        psutil.wait_procs(children, timeout=1)

    def cancel(self, timeout_terminate=2, timeout_kill=1):
        """
        Terminate the process, then kill it, then kill its process group.
        """
        if not self.proc or self.proc.poll() is not None:
            return
        self._reap_children()
        try:
            self.proc.terminate()
            self.proc.wait(timeout=timeout_terminate)
            return
        except subprocess.TimeoutExpired:
            logger.debug(f"Process {self.proc.pid} ignored SIGTERM")
        except ProcessLookupError:
            return
        try:
            self.proc.kill()
            self.proc.wait(timeout=timeout_kill)
            return
        except subprocess.TimeoutExpired:
            logger.debug(f"Process {self.proc.pid} ignored SIGKILL")
        except ProcessLookupError:
            return
        if self.process_group_pid:
            try:
                os.killpg(self.process_group_pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError) as e:
                logger.debug(f"killpg({self.process_group_pid}) failed: {e}")

    def is_running(self):
        return self.proc is not None and self.proc.poll() is None

    def wait(self, timeout=None):
        if self.proc:
            return self.proc.wait(timeout=timeout)
        return None


class CommandRunner:
    """
    Runs external commands and returns CommandResult values.

    Every live child is tracked so that `cancel_all()` can stop it from a
    signal handler.
    """

    def __init__(self):
        self._active: List[ProcessManager] = []
        self._lock = threading.Lock()

    def run(self, argv: Sequence[str], env: Optional[Dict[str, str]] = None,
            timeout: Optional[float] = None, cwd=None, capture: bool = True,
            interactive: bool = False) -> CommandResult:
        """
        Run `argv` to completion.

        With `interactive=True` the child stays in our session and inherits
        stdin, so sudo or a text polkit agent can ask for a password on the
        controlling terminal. Output is still captured.
        """
        argv = [str(a) for a in argv]
        logger.debug(f"Running: {' '.join(argv)}")
        start = time.monotonic()
        try:
            manager = ProcessManager(argv, env=env, cwd=cwd, capture=capture, interactive=interactive)
        except FileNotFoundError:
            raise DependencyMissing(os.path.basename(argv[0]))
        with self._lock:
            self._active.append(manager)
        try:
            try:
                stdout, stderr = manager.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"Command timed out after {timeout}s: {argv[0]}")
                manager.cancel()
                stdout, stderr = manager.communicate()
                stderr = (stderr or "") + "[timed out]"
            except BaseException:
                manager.cancel()
                raise
        finally:
            with self._lock:
                if manager in self._active:
                    self._active.remove(manager)
        duration = time.monotonic() - start
        result = CommandResult(argv=argv, returncode=manager.proc.returncode,
                               stdout=stdout, stderr=stderr, duration=duration)
        if result.ok:
            logger.debug(f"Command finished in {duration:.1f}s: {argv[0]}")
        else:
            logger.debug(f"Command exited {result.returncode} in {duration:.1f}s: {argv[0]}: {stderr.strip()[:500]}")
        return result

    def spawn(self, argv: Sequence[str], env: Optional[Dict[str, str]] = None, cwd=None) -> ProcessManager:
        """Start a command without waiting; it is still covered by `cancel_all()`."""
        argv = [str(a) for a in argv]
        logger.debug(f"Spawning: {' '.join(argv)}")
        try:
            manager = ProcessManager(argv, env=env, cwd=cwd, capture=False)
        except FileNotFoundError:
            raise DependencyMissing(os.path.basename(argv[0]))
        with self._lock:
            self._active.append(manager)
        return manager

    def forget(self, manager: ProcessManager) -> None:
        with self._lock:
            if manager in self._active:
                self._active.remove(manager)

    def cancel_all(self) -> int:
        """Cancel every tracked child. Returns how many were still running."""
        with self._lock:
            active = list(self._active)
            self._active.clear()
        cancelled = 0
        for manager in active:
            if manager.is_running():
                logger.info(f"Cancelling {manager.cmd[0]} (pid {manager.proc.pid})")
                manager.cancel()
                cancelled += 1
        return cancelled
