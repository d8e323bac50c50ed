#!/usr/bin/env python3
"""
Platform Detection Service

Host checks performed once at application startup and shared across
components: architecture, external tools and whether GUI dialogs may be used.
"""

import os
import platform
import shutil
import logging
from typing import Callable, Dict, List, Optional

from azeroth_winebar.backend.errors import EnvUnsupported

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ["tar", "xz", "gzip"]
OPTIONAL_TOOLS = ["winetricks", "zenity", "pkexec", "sudo", "lspci"]
SUPPORTED_MACHINES = ("x86_64", "amd64", "aarch64", "arm64")


class PlatformDetectionService:
    """
    Service for detecting platform-specific information once at startup
    """

    def __init__(self, environ: Optional[Dict[str, str]] = None,
                 which: Callable[[str], Optional[str]] = shutil.which,
                 machine: Optional[str] = None):
        self._environ = os.environ if environ is None else environ
        self._which = which
        self._machine = machine
        self._tools = None

    @property
    def machine(self) -> str:
        return (self._machine or platform.machine() or "").lower()

    def is_64bit(self) -> bool:
        return self.machine in SUPPORTED_MACHINES

    def ensure_supported(self) -> None:
        """
        Raises:
            EnvUnsupported: the host is not 64-bit
        """
        if not self.is_64bit():
            logger.error(f"Unsupported architecture: {self.machine or 'unknown'}")
            raise EnvUnsupported(
                f"Architecture '{self.machine or 'unknown'}' is not supported",
                hint="World of Warcraft requires a 64-bit host.",
            )
        logger.debug(f"Platform detection complete: machine={self.machine}")

    def dependency_report(self) -> Dict[str, Optional[str]]:
        """Map every required and optional tool to its path (None if absent)."""
        if self._tools is None:
            self._tools = {name: self._which(name) for name in REQUIRED_TOOLS + OPTIONAL_TOOLS}
            for name, path in self._tools.items():
                logger.debug(f"Tool {name}: {path or 'not found'}")
        return dict(self._tools)

    def missing_required(self) -> List[str]:
        report = self.dependency_report()
        return [name for name in REQUIRED_TOOLS if not report.get(name)]

    def missing_optional(self) -> List[str]:
        report = self.dependency_report()
        return [name for name in OPTIONAL_TOOLS if not report.get(name)]

    @property
    def force_terminal(self) -> bool:
        return bool(self._environ.get("FORCE_TERMINAL"))

    @property
    def has_display(self) -> bool:
        return bool(self._environ.get("DISPLAY") or self._environ.get("WAYLAND_DISPLAY"))

    def gui_allowed(self) -> bool:
        """zenity present, a display available and FORCE_TERMINAL unset."""
        if self.force_terminal:
            return False
        return self.has_display and bool(self.dependency_report().get("zenity"))
