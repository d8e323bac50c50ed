#!/usr/bin/env python3
"""
Launcher Install Service

Downloads the Battle.net installer, runs it silently inside the prefix,
waits for the launcher executable to appear and writes the launcher's
configuration file.
"""

import getpass
import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from azeroth_winebar.backend.errors import PrefixCorrupt
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler, MIN_DOWNLOAD_SIZE
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner
from azeroth_winebar.backend.handlers.wine_utils import WineUtils
from azeroth_winebar.backend.models.install_state import LauncherInstallPhase
from azeroth_winebar.backend.models.runtime import Runtime, utc_stamp

logger = logging.getLogger(__name__)

INSTALLER_URL = "https://downloader.battle.net/download/getInstallerForGame?os=win&gameProgram=BATTLENET_APP&version=Live"
INSTALLER_NAME = "installer.exe"
LAUNCHER_DIR = Path("drive_c") / "Program Files (x86)" / "Battle.net"
LAUNCHER_EXE = "Battle.net.exe"
LAUNCHER_WINDOWS_PATH = "C:\\Program Files (x86)\\Battle.net\\Battle.net Launcher.exe"
OPTIMIZED_MARKER = ".azeroth-winebar-optimized"
POLL_INTERVAL = 2
INSTALLER_TIMEOUT = 300

LAUNCHER_CONFIG = {
    "Client": {
        "GameLaunchWindowBehavior": "2",
        "GameSearch": {"BackgroundSearch": "false"},
        "HardwareAcceleration": "false",
        "Sound": {"Enabled": "false"},
        "Streaming": {"StreamingEnabled": "false"},
        "UserInterface": {"CloseToTray": "true"},
    }
}


def render_launcher_config() -> str:
    return json.dumps(LAUNCHER_CONFIG, indent=2) + "\n"


def launcher_executable(prefix: Path) -> Path:
    return Path(prefix) / LAUNCHER_DIR / LAUNCHER_EXE


def launcher_config_path(prefix: Path, user: Optional[str] = None) -> Path:
    user = user or getpass.getuser()
    return Path(prefix) / "drive_c" / "users" / user / "AppData" / "Roaming" / "Battle.net" / "Battle.net.config"


class LauncherInstallService:
    """
    Drives one launcher install through its phases:
    idle -> installer-downloaded -> installer-running -> launcher-detected
    -> config-written -> done.
    """

    def __init__(self, runner: Optional[CommandRunner] = None, wine: Optional[WineUtils] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 user: Optional[str] = None):
        self.runner = runner or CommandRunner()
        self.wine = wine or WineUtils(self.runner)
        self._sleep = sleep
        self._clock = clock
        self.user = user
        self.phase = LauncherInstallPhase.IDLE

    def _advance(self, phase: LauncherInstallPhase) -> None:
        logger.debug(f"Launcher install phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    @staticmethod
    def is_installed(prefix: Path) -> bool:
        return launcher_executable(prefix).is_file()

    def config_written(self, prefix: Path) -> bool:
        path = launcher_config_path(prefix, self.user)
        try:
            return path.read_text(encoding="utf-8") == render_launcher_config()
        except OSError:
            return False

    def download_installer(self, download_dir: Path) -> Path:
        """
        Fetch the vendor installer into `<download_dir>/installer.exe`.
        An existing file of at least 1 MB is reused.
        """
        installer = Path(download_dir) / INSTALLER_NAME
        if installer.is_file() and installer.stat().st_size >= MIN_DOWNLOAD_SIZE:
            logger.info(f"Using existing Battle.net installer: {installer}")
        else:
            FileSystemHandler.download_file(INSTALLER_URL, installer)
        self._advance(LauncherInstallPhase.INSTALLER_DOWNLOADED)
        return installer

    def run_installer(self, prefix: Path, runtime: Runtime, installer_path: Path) -> Path:
        """
        Run the installer with /S and poll for Battle.net.exe every 2 s for
        up to 300 s.

        Raises:
            PrefixCorrupt: the launcher executable did not appear in time
        """
        prefix = Path(prefix)
        target = launcher_executable(prefix)
        argv = [str(runtime.executable_path), str(installer_path), "/S"]
        env = self.wine.build_wine_env(prefix, runtime)
        logger.info("Running Battle.net installer...")
        manager = self.runner.spawn(argv, env=env)
        self._advance(LauncherInstallPhase.INSTALLER_RUNNING)
        try:
            deadline = self._clock() + INSTALLER_TIMEOUT
            waited = 0
            while not target.is_file():
                if self._clock() >= deadline:
                    break
                self._sleep(POLL_INTERVAL)
                waited += POLL_INTERVAL
                if waited % 30 == 0:
                    logger.info(f"Still waiting for Battle.net installation... ({waited}/{INSTALLER_TIMEOUT} seconds)")
            if not target.is_file():
                manager.cancel()
                raise PrefixCorrupt(
                    f"Battle.net.exe did not appear within {INSTALLER_TIMEOUT} seconds",
                    hint="Recreate the wine prefix and run the launcher installation again.",
                )
        finally:
            self.runner.forget(manager)

        logger.info("Battle.net installation detected")
        self._advance(LauncherInstallPhase.LAUNCHER_DETECTED)
        self.wine.wait_for_wineserver(prefix, runtime)
        return target

    def write_launcher_config(self, prefix: Path) -> Path:
        """Write Battle.net.config (mode 0644), the ProgramData dir and the optimisation marker."""
        prefix = Path(prefix)
        path = launcher_config_path(prefix, self.user)
        logger.info(f"Writing Battle.net configuration to: {path}")
        FileSystemHandler.atomic_write_text(path, render_launcher_config(), mode=0o644)

        data_dir = prefix / "drive_c" / "ProgramData" / "Battle.net"
        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create Battle.net data directory: {e}")

        launcher_dir = prefix / LAUNCHER_DIR
        if launcher_dir.is_dir():
            FileSystemHandler.atomic_write_text(launcher_dir / OPTIMIZED_MARKER, utc_stamp() + "\n")
            logger.debug("Battle.net optimization marker created")
        self._advance(LauncherInstallPhase.CONFIG_WRITTEN)
        return path

    def install(self, prefix: Path, runtime: Runtime, download_dir: Path) -> Path:
        """Run every phase, skipping the installer when the launcher is already present."""
        self.phase = LauncherInstallPhase.IDLE
        if self.is_installed(prefix):
            logger.info("Battle.net already installed, skipping the installer")
            self._advance(LauncherInstallPhase.LAUNCHER_DETECTED)
        else:
            installer = self.download_installer(download_dir)
            self.run_installer(prefix, runtime, installer)
        config = self.write_launcher_config(prefix)
        self._advance(LauncherInstallPhase.DONE)
        return config
