"""
Install State Models

Checkpoints of the provisioning state machine and the phases of a
launcher install.
"""

from enum import Enum
from typing import Optional


class InstallState(Enum):
    START = "START"
    PREFLIGHT_OK = "PREFLIGHT_OK"
    RUNTIME_READY = "RUNTIME_READY"
    PREFIX_READY = "PREFIX_READY"
    LAUNCHER_READY = "LAUNCHER_READY"
    GAME_TUNED = "GAME_TUNED"
    GRAPHICS_TUNED = "GRAPHICS_TUNED"
    DESKTOP_INTEGRATED = "DESKTOP_INTEGRATED"
    DONE = "DONE"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'InstallState':
        """Unknown or missing values restart from START."""
        if not value:
            return cls.START
        try:
            return cls(value.strip())
        except ValueError:
            return cls.START

    @property
    def index(self) -> int:
        return list(InstallState).index(self)


class LauncherInstallPhase(Enum):
    IDLE = "idle"
    INSTALLER_DOWNLOADED = "installer-downloaded"
    INSTALLER_RUNNING = "installer-running"
    LAUNCHER_DETECTED = "launcher-detected"
    CONFIG_WRITTEN = "config-written"
    DONE = "done"
