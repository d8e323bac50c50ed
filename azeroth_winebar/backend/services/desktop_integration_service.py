#!/usr/bin/env python3
"""
Desktop Integration Service

Creates and removes the Battle.net desktop entry that runs the launch helper.
"""

import logging
from pathlib import Path
from typing import List, Optional

from azeroth_winebar.backend.errors import IntegrityError
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler
from azeroth_winebar.shared.paths import get_applications_dir, get_desktop_dir, get_icon_path

logger = logging.getLogger(__name__)

DESKTOP_FILE_NAME = "Battle.net.desktop"
FALLBACK_ICON = "applications-games"


def render_desktop_entry(launch_script: Path, icon: str) -> str:
    return (
        "[Desktop Entry]\n"
        "Name=Battle.net\n"
        "Comment=Blizzard Battle.net Launcher for World of Warcraft\n"
        f"Exec={launch_script}\n"
        f"Icon={icon}\n"
        "Terminal=false\n"
        "Type=Application\n"
        "Categories=Game;\n"
        "StartupNotify=true\n"
        "StartupWMClass=battle.net.exe\n"
    )


class DesktopIntegrationService:
    def __init__(self, applications_dir: Optional[Path] = None, desktop_dir: Optional[Path] = None,
                 icon_path: Optional[Path] = None):
        self.applications_dir = Path(applications_dir) if applications_dir else get_applications_dir()
        self.desktop_dir = Path(desktop_dir) if desktop_dir else get_desktop_dir()
        self.icon_path = Path(icon_path) if icon_path else get_icon_path()

    @property
    def menu_entry_path(self) -> Path:
        return self.applications_dir / DESKTOP_FILE_NAME

    @property
    def desktop_shortcut_path(self) -> Path:
        return self.desktop_dir / DESKTOP_FILE_NAME

    def resolve_icon(self) -> str:
        if self.icon_path.is_file():
            return str(self.icon_path)
        return FALLBACK_ICON

    def is_installed(self) -> bool:
        return self.menu_entry_path.is_file()

    def install(self, launch_script: Path, desktop_shortcut: bool = False) -> List[Path]:
        """
        Write the applications-menu entry and optionally a desktop shortcut.

        Raises:
            IntegrityError: the launch helper does not exist yet
        """
        launch_script = Path(launch_script)
        if not launch_script.is_file():
            raise IntegrityError(f"Launch script not found: {launch_script}",
                                 hint="Run the graphics and wine environment step to generate the launch script.")
        FileSystemHandler.make_executable(launch_script)
        content = render_desktop_entry(launch_script, self.resolve_icon())

        written = []
        targets = [self.menu_entry_path]
        if desktop_shortcut:
            targets.append(self.desktop_shortcut_path)
        for target in targets:
            FileSystemHandler.atomic_write_text(target, content, mode=0o755)
            logger.info(f"Desktop entry created: {target}")
            written.append(target)
        return written

    def remove(self) -> List[Path]:
        removed = []
        for path in (self.menu_entry_path, self.desktop_shortcut_path):
            if path.is_file():
                path.unlink()
                logger.info(f"Removed desktop entry: {path}")
                removed.append(path)
        return removed
