#!/usr/bin/env python3
"""
Prefix Service

Creates and initialises the 64-bit wine prefix and applies the fixed
registry and DLL-override tweaks.
"""

import logging
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional

from azeroth_winebar.backend.errors import DependencyMissing, PrefixCorrupt, UserCancelled
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner
from azeroth_winebar.backend.handlers.wine_utils import WineUtils
from azeroth_winebar.backend.handlers.winetricks_handler import WinetricksHandler
from azeroth_winebar.backend.models.prefix import Prefix
from azeroth_winebar.backend.models.runtime import Runtime, parse_manifest

logger = logging.getLogger(__name__)

DXVA2_KEY = "HKEY_CURRENT_USER\\Software\\Wine\\DXVA2"
DLL_OVERRIDES_KEY = "HKEY_CURRENT_USER\\Software\\Wine\\DllOverrides"
DISABLED = "disabled"

REGISTRY_TWEAKS = [
    (DXVA2_KEY, "backend", "va"),
    (DLL_OVERRIDES_KEY, "nvapi", DISABLED),
    (DLL_OVERRIDES_KEY, "nvapi64", DISABLED),
]
EXTRA_DISABLED_DLLS = ["nvcuda", "nvcuvid", "nvencodeapi", "nvencodeapi64"]
DEFAULT_FONT = "arial"


class PrefixService:
    """
    Owns the lifecycle of the wine prefix.

    Args:
        runner: command runner shared with the other services
        confirm: callback(title, message) -> bool asked before a destructive recreate
    """

    def __init__(self, runner: Optional[CommandRunner] = None,
                 confirm: Optional[Callable[[str, str], bool]] = None,
                 wine: Optional[WineUtils] = None,
                 winetricks: Optional[WinetricksHandler] = None):
        self.runner = runner or CommandRunner()
        self.confirm = confirm or (lambda title, message: False)
        self.wine = wine or WineUtils(self.runner)
        self.winetricks = winetricks or WinetricksHandler(self.runner, self.wine)

    @staticmethod
    def verify(path: Path) -> bool:
        """True if the prefix has a drive_c/ tree."""
        return (Path(path) / "drive_c").is_dir()

    @staticmethod
    def describe(path: Path) -> Prefix:
        prefix = Prefix(path=Path(path), initialised=PrefixService.verify(path))
        if prefix.marker_path.is_file():
            values = parse_manifest(prefix.marker_path.read_text(encoding="utf-8"))
            prefix.runtime_used_for_init = values.get("RUNTIME")
        return prefix

    def create(self, path: Path, runtime: Runtime) -> Prefix:
        """
        Create and initialise a prefix at `path` with `runtime`.

        Raises:
            UserCancelled: an initialised prefix exists and recreating it was declined
            PrefixCorrupt: wineboot failed or drive_c/ is missing afterwards
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)

        if self.verify(path):
            logger.info(f"Wine prefix already exists at: {path}")
            if not self.confirm(
                "Prefix Exists",
                f"A wine prefix already exists at:\n{path}\n\nDo you want to recreate it? "
                "This will delete all existing data in the prefix.",
            ):
                raise UserCancelled(f"Recreating the prefix at {path} was declined")
            self.wine.kill_wineserver(path, runtime)
            logger.info("Removing existing prefix content")
            for child in path.iterdir():
                FileSystemHandler.remove_path(child)

        logger.info(f"Initializing wine prefix {path} with {runtime.id}")
        result = self.wine.wineboot_init(path, runtime)
        if not result.ok:
            logger.error(f"wineboot --init exited {result.returncode}: {result.stderr.strip()[-500:]}")
            raise PrefixCorrupt(f"Wine prefix initialisation failed (exit {result.returncode})")
        self.wine.wait_for_wineserver(path, runtime)

        if not self.verify(path):
            raise PrefixCorrupt(f"Wine prefix creation failed: {path / 'drive_c'} not found")

        prefix = Prefix(path=path, initialised=True, runtime_used_for_init=runtime.id)
        FileSystemHandler.atomic_write_text(prefix.marker_path, f"RUNTIME={runtime.id}\n")
        logger.info(f"Wine prefix created successfully: {path}")
        return prefix

    def install_font(self, path: Path, runtime: Runtime, font_id: str = DEFAULT_FONT) -> bool:
        """Install a font through winetricks. Failure is tolerated and reported as False."""
        try:
            result = self.winetricks.install_verb(path, runtime, font_id)
        except DependencyMissing as e:
            logger.warning(f"Skipping font {font_id}: {e}")
            return False
        self.wine.wait_for_wineserver(path, runtime)
        if not result.ok:
            logger.warning(f"Font {font_id} could not be installed, text may render with a fallback font")
            return False
        return True

    def apply_registry_tweaks(self, path: Path, runtime: Runtime) -> List[str]:
        """
        Write the DXVA2 backend and the nvapi/nvapi64 overrides.

        Returns:
            List[str]: warnings for tolerated failures (DXVA2 backend)

        Raises:
            PrefixCorrupt: an nvapi override could not be written
        """
        warnings = []
        for key, name, value in REGISTRY_TWEAKS:
            result = self.wine.reg_add(path, runtime, key, name, value)
            if result.ok:
                continue
            if key == DXVA2_KEY:
                message = "Failed to set DXVA2 backend (Wine Staging may not be available)"
                logger.warning(message)
                warnings.append(message)
                continue
            logger.error(f"reg add {name} exited {result.returncode}: {result.stderr.strip()}")
            raise PrefixCorrupt(f"Failed to disable {name} DLL override")
        self.wine.wait_for_wineserver(path, runtime)
        logger.info("Wine registry tweaks applied successfully")
        return warnings

    def apply_dll_overrides(self, path: Path, runtime: Runtime, extras: Optional[List[str]] = None) -> List[str]:
        """Disable nvapi, nvapi64, the CUDA/NVENC libraries and any `extras`."""
        dlls = ["nvapi", "nvapi64"] + EXTRA_DISABLED_DLLS + list(extras or [])
        seen = []
        for dll in dlls:
            if dll in seen:
                continue
            seen.append(dll)
            result = self.wine.reg_add(path, runtime, DLL_OVERRIDES_KEY, dll, DISABLED)
            if not result.ok:
                raise PrefixCorrupt(f"Failed to disable {dll} DLL override")
        self.wine.wait_for_wineserver(path, runtime)
        logger.info(f"Disabled DLL overrides: {', '.join(seen)}")
        return seen

    def read_registry_value(self, path: Path, runtime: Runtime, key: str, name: str) -> Optional[str]:
        return self.wine.reg_query(path, runtime, key, name)

    def read_registry_tweaks(self, path: Path, runtime: Runtime) -> Dict[str, Optional[str]]:
        """Current values of the three mandated registry settings, keyed by value name."""
        return {name: self.read_registry_value(path, runtime, key, name)
                for key, name, _value in REGISTRY_TWEAKS}

    def registry_tweaks_applied(self, path: Path, runtime: Runtime) -> bool:
        """True if both nvapi overrides read back as disabled."""
        values = self.read_registry_tweaks(path, runtime)
        return values.get("nvapi") == DISABLED and values.get("nvapi64") == DISABLED

    def reset_dll_overrides(self, path: Path, runtime: Runtime) -> bool:
        result = self.wine.reg_delete(path, runtime, DLL_OVERRIDES_KEY)
        self.wine.wait_for_wineserver(path, runtime)
        if not result.ok:
            logger.warning(f"Could not delete DllOverrides key: {result.stderr.strip()}")
            return False
        logger.info("DLL overrides reset")
        return True

    @staticmethod
    def remove(path: Path) -> None:
        """Delete a prefix directory entirely."""
        path = Path(path)
        if path.exists():
            shutil.rmtree(path)
            logger.info(f"Removed wine prefix {path}")
