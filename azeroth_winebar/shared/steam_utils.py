"""
Steam Utilities Module

Locates Steam installations and their library folders so the vendor-provided
Proton Experimental build can be linked into the runtime catalogue.
"""

import logging
from pathlib import Path
from typing import List, Optional

import vdf

from azeroth_winebar.shared.paths import get_home_dir

logger = logging.getLogger(__name__)

PROTON_EXPERIMENTAL_SUBPATHS = [
    Path("compatibilitytools.d") / "Proton-Experimental",
    Path("steamapps") / "common" / "Proton - Experimental",
    Path("steamapps") / "common" / "Proton Experimental",
]


def get_steam_root_candidates() -> List[Path]:
    """Well-known Steam roots, in search order."""
    home = get_home_dir()
    return [
        home / ".steam" / "steam",
        home / ".local" / "share" / "Steam",
        home / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",  # Flatpak
        Path("/usr/share/steam"),
    ]


def find_steam_directories() -> List[Path]:
    """
    Return every existing Steam root, de-duplicated by resolved path.

    Returns:
        List[Path]: existing Steam roots in search order
    """
    found = []
    seen = set()
    for candidate in get_steam_root_candidates():
        if not candidate.is_dir():
            continue
        try:
            key = candidate.resolve()
        except OSError:
            key = candidate
        if key in seen:
            continue
        seen.add(key)
        logger.debug(f"Found Steam directory: {candidate}")
        found.append(candidate)
    if not found:
        logger.info("Steam installation not found")
    return found


def get_library_paths(steam_root: Path) -> List[Path]:
    """
    Parse steamapps/libraryfolders.vdf (or config/libraryfolders.vdf) and
    return the library roots it lists.
    """
    libraries = []
    for vdf_path in (steam_root / "steamapps" / "libraryfolders.vdf",
                     steam_root / "config" / "libraryfolders.vdf"):
        if not vdf_path.is_file():
            continue
        try:
            with open(vdf_path, "r", encoding="utf-8", errors="replace") as f:
                data = vdf.load(f)
        except (OSError, SyntaxError, ValueError) as e:
            logger.warning(f"Could not parse {vdf_path}: {e}")
            continue
        folders = data.get("libraryfolders", {})
        for entry in folders.values():
            path_str = entry.get("path") if isinstance(entry, dict) else entry
            if path_str:
                libraries.append(Path(path_str))
        break
    return libraries


def find_proton_experimental() -> Optional[Path]:
    """
    Search the Steam roots and their libraries for a Proton Experimental
    directory that contains a `proton` launcher script.
    """
    roots = []
    for steam_root in find_steam_directories():
        roots.append(steam_root)
        roots.extend(get_library_paths(steam_root))

    for root in roots:
        for subpath in PROTON_EXPERIMENTAL_SUBPATHS:
            candidate = root / subpath
            if (candidate / "proton").is_file():
                logger.info(f"Found Proton Experimental: {candidate}")
                return candidate
    logger.info("Proton Experimental not found in any Steam installation")
    return None
