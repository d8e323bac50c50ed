#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Privilege Handler Module
Handles running commands as root: directly when already privileged,
otherwise through pkexec or sudo.
"""

import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple

from azeroth_winebar.backend.errors import (
    PrivilegeDenied, ElevationCancelled, NoElevationAvailable,
)
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner

logger = logging.getLogger(__name__)

PKEXEC_DISMISSED = 126
PKEXEC_NOT_AUTHORIZED = 127
SUDO_DENIED_MARKERS = ("incorrect password", "password is required", "not in the sudoers",
                       "a terminal is required")


class PrivilegeBroker:
    """
    Runs commands with elevated privileges, one attempt at a time.

    The description passed to `run_elevated` is logged and shown to the
    operator verbatim before the authentication prompt appears. pkexec and
    sudo run in our own session so their prompts can reach the terminal.
    When polkit refuses authorisation, sudo is only tried after `confirm`
    approves a second prompt.
    """

    def __init__(self, runner: Optional[CommandRunner] = None,
                 notify: Optional[Callable[[str], None]] = None,
                 confirm: Optional[Callable[[str, str], bool]] = None,
                 which: Callable[[str], Optional[str]] = shutil.which,
                 geteuid: Callable[[], int] = os.geteuid):
        self.runner = runner or CommandRunner()
        self.notify = notify or (lambda message: print(message))
        self.confirm = confirm or (lambda title, message: False)
        self._which = which
        self._geteuid = geteuid
        self._lock = threading.Lock()

    def available_method(self) -> Optional[str]:
        """Return "direct", "pkexec", "sudo" or None."""
        if self._geteuid() == 0:
            return "direct"
        if self._which("pkexec"):
            return "pkexec"
        if self._which("sudo"):
            return "sudo"
        return None

    def run_elevated(self, argv: Sequence[str], description: str) -> Tuple[int, str]:
        """
        Run `argv` as root.

        Args:
            argv: command and arguments
            description: operator-facing explanation, shown verbatim

        Returns:
            Tuple[int, str]: the exit code and captured stderr

        Raises:
            ElevationCancelled: the operator dismissed the pkexec prompt
            PrivilegeDenied: sudo rejected the credentials, or polkit refused
                and falling back to sudo was declined
            NoElevationAvailable: not root and neither pkexec nor sudo exists
        """
        argv = [str(a) for a in argv]
        with self._lock:
            logger.info(f"Elevation requested: {description}")
            logger.debug(f"Elevated command: {' '.join(argv)}")
            self.notify(description)

            if self._geteuid() == 0:
                result = self.runner.run(argv)
                return result.returncode, result.stderr

            pkexec = self._which("pkexec")
            if pkexec:
                result = self.runner.run([pkexec] + argv, interactive=True)
                if result.returncode == PKEXEC_DISMISSED:
                    logger.warning("Authentication dialog dismissed")
                    raise ElevationCancelled(f"Authentication cancelled for: {description}")
                if result.returncode != PKEXEC_NOT_AUTHORIZED:
                    return result.returncode, result.stderr
                logger.warning("pkexec could not authorize")
                if not self._which("sudo") or not self.confirm(
                        "Authorisation refused",
                        "The desktop authentication agent refused the request. Try again with sudo?"):
                    raise PrivilegeDenied(f"Authorisation refused for: {description}")
                logger.info("Falling back to sudo")

            sudo = self._which("sudo")
            if sudo:
                result = self.runner.run([sudo, "--"] + argv, interactive=True)
                lowered = result.stderr.lower()
                if result.returncode != 0 and any(marker in lowered for marker in SUDO_DENIED_MARKERS):
                    logger.error(f"sudo refused elevation: {result.stderr.strip()}")
                    raise PrivilegeDenied(f"sudo refused elevation for: {description}")
                return result.returncode, result.stderr

            logger.error("No way to elevate privileges: neither pkexec nor sudo is installed")
            raise NoElevationAvailable(f"Cannot run as root: {description}")

    def write_root_file(self, destination: Path, content: str, description: str) -> Tuple[int, str]:
        """
        Install `content` at a root-owned `destination` with mode 0644.

        The file is staged in a user temp file and copied with `install -D`
        by the elevated process, so the destination is replaced in one step.
        """
        fd, tmp_name = tempfile.mkstemp(prefix="azeroth-winebar-", suffix=".conf")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp_name, 0o644)
            return self.run_elevated(
                ["install", "-D", "-m", "0644", tmp_name, str(destination)],
                description,
            )
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
