"""
Path helpers for Azeroth Winebar

Central place for the per-user directories the tool reads and writes.
All helpers resolve against $HOME at call time so tests can redirect them.
"""

import os
from pathlib import Path

APP_DIR_NAME = "azeroth-winebar"


def get_home_dir() -> Path:
    """Return the user's home directory, honouring $HOME."""
    home = os.environ.get("HOME")
    if home:
        return Path(home)
    return Path.home()


def get_config_root() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return get_home_dir() / ".config"


def get_data_root() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return get_home_dir() / ".local" / "share"


def get_config_dir() -> Path:
    """Config Store directory (~/.config/azeroth-winebar)."""
    return get_config_root() / APP_DIR_NAME


def get_data_dir() -> Path:
    return get_data_root() / APP_DIR_NAME


def get_runners_dir() -> Path:
    """Runtime catalogue root (~/.local/share/azeroth-winebar/runners)."""
    return get_data_dir() / "runners"


def get_logs_dir() -> Path:
    return get_data_dir() / "logs"


def get_downloads_dir() -> Path:
    """Where the vendor installer is cached between runs."""
    return get_data_dir() / "downloads"


def get_default_prefix_dir() -> Path:
    return get_home_dir() / "Games" / "world-of-warcraft"


def get_default_game_dir(prefix_path: Path) -> Path:
    return Path(prefix_path) / "drive_c" / "Program Files (x86)" / "World of Warcraft"


def get_applications_dir() -> Path:
    return get_data_root() / "applications"


def get_desktop_dir() -> Path:
    return get_home_dir() / "Desktop"


def get_icon_path() -> Path:
    return get_data_root() / "icons" / "hicolor" / "256x256" / "apps" / "battlenet.png"
