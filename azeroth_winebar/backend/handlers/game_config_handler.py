#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Game Config Handler Module
Handles the game's `SET <key> "<value>"` text config (Config.wtf) and
backups of it and of the keybinding caches.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from azeroth_winebar.backend.handlers.config_handler import ConfigStore
from azeroth_winebar.backend.errors import IntegrityError
from azeroth_winebar.backend.models.configuration import BackupResult
from azeroth_winebar.shared.paths import get_default_game_dir

logger = logging.getLogger(__name__)

CONFIG_SUBPATHS = [
    Path("WTF") / "Config.wtf",
    Path("_retail_") / "WTF" / "Config.wtf",
    Path("_classic_") / "WTF" / "Config.wtf",
    Path("_classic_era_") / "WTF" / "Config.wtf",
]
WTF_ROOTS = [Path("WTF"), Path("_retail_") / "WTF", Path("_classic_") / "WTF", Path("_classic_era_") / "WTF"]
KEYBINDS_FILE = "bindings-cache.wtf"

CONFIG_BACKUP_KIND = "config"
KEYBINDS_BACKUP_KIND = "keybinds"

# worldPreloadNonCritical: faster world entry; rawMouseEnable: cursor reset fix
STANDARD_TWEAKS = [
    ("worldPreloadNonCritical", "0"),
    ("rawMouseEnable", "1"),
]


def _setting_re(key: str):
    return re.compile(r"^\s*SET\s+" + re.escape(key) + r"\s")


def format_setting(key: str, value: str) -> str:
    return f'SET {key} "{value}"'


class GameConfigHandler:
    """
    Line-oriented editor for Config.wtf.

    Unknown and blank lines are preserved verbatim; every key written
    through `set` ends up on exactly one line.
    """

    def __init__(self, store: Optional[ConfigStore] = None):
        self.store = store

    @staticmethod
    def find_game_path(prefix: Path) -> Optional[Path]:
        """The World of Warcraft directory inside `prefix`, if the game is installed there."""
        candidate = get_default_game_dir(prefix)
        return candidate if candidate.is_dir() else None

    @staticmethod
    def find_config(game_path: Path) -> Path:
        """Return the first existing Config.wtf, else the canonical WTF/Config.wtf path."""
        game_path = Path(game_path)
        for subpath in CONFIG_SUBPATHS:
            candidate = game_path / subpath
            if candidate.is_file():
                logger.debug(f"Found Config.wtf: {candidate}")
                return candidate
        logger.debug("Config.wtf not found, using default location")
        return game_path / CONFIG_SUBPATHS[0]

    @staticmethod
    def _read_lines(config_file: Path) -> List[str]:
        try:
            with open(config_file, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
                return f.read().splitlines(keepends=True)
        except FileNotFoundError:
            return []

    @staticmethod
    def get(config_file: Path, key: str) -> Optional[str]:
        """First value of `key`, without quotes, or None."""
        pattern = _setting_re(key)
        for line in GameConfigHandler._read_lines(Path(config_file)):
            if pattern.match(line):
                parts = line.strip().split(None, 2)
                if len(parts) < 3:
                    return ""
                return parts[2].strip().strip('"')
        return None

    @staticmethod
    def read_all(config_file: Path) -> Dict[str, str]:
        values = {}
        for line in GameConfigHandler._read_lines(Path(config_file)):
            parts = line.strip().split(None, 2)
            if len(parts) >= 2 and parts[0] == "SET" and parts[1] not in values:
                values[parts[1]] = parts[2].strip().strip('"') if len(parts) == 3 else ""
        return values

    @staticmethod
    def render(lines: List[str], key: str, value: str) -> List[str]:
        """
        Return `lines` with `key` set to `value`: the first matching line is
        rewritten in canonical form, later duplicates are dropped, and a
        missing key is appended.
        """
        pattern = _setting_re(key)
        newline = "\r\n" if lines and lines[0].endswith("\r\n") else "\n"
        canonical = format_setting(key, value)
        result = []
        replaced = False
        for line in lines:
            if pattern.match(line):
                if replaced:
                    continue
                ending = line[len(line.rstrip("\r\n")):] or newline
                result.append(canonical + ending)
                replaced = True
            else:
                result.append(line)
        if not replaced:
            if result and not result[-1].endswith(("\n", "\r")):
                result[-1] = result[-1] + newline
            result.append(canonical + newline)
        return result

    def set(self, config_file: Path, key: str, value: str) -> Path:
        config_file = Path(config_file)
        lines = self._read_lines(config_file)
        if not lines:
            logger.debug(f"Creating new Config.wtf file: {config_file}")
        new_lines = self.render(lines, key, str(value))
        if new_lines == lines:
            logger.debug(f"{key} already set to {value}")
            return config_file
        content = "".join(new_lines)
        config_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = config_file.with_name(config_file.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
                f.write(content)
            tmp_path.replace(config_file)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        logger.info(f"Set {key} to {value} in {config_file}")
        return config_file

    def apply_standard_tweaks(self, config_file: Path) -> Path:
        for key, value in STANDARD_TWEAKS:
            self.set(config_file, key, value)
        return Path(config_file)

    # ------------------------------------------------------------------
    # Backups (delegated to the Config Store)
    # ------------------------------------------------------------------

    def _require_store(self) -> ConfigStore:
        if self.store is None:
            raise RuntimeError("GameConfigHandler was created without a ConfigStore")
        return self.store

    def backup(self, config_file: Path) -> BackupResult:
        return self._require_store().create_backup(CONFIG_BACKUP_KIND, [Path(config_file)])

    def list_backups(self) -> List[str]:
        return self._require_store().list_backups(CONFIG_BACKUP_KIND)

    def restore(self, config_file: Path, backup_id: str) -> Path:
        self._require_store().restore_backup(CONFIG_BACKUP_KIND, backup_id, Path(config_file))
        return Path(config_file)

    @staticmethod
    def find_keybind_files(game_path: Path) -> List[Path]:
        game_path = Path(game_path)
        found = []
        for root in WTF_ROOTS:
            wtf = game_path / root
            if wtf.is_dir():
                found.extend(sorted(wtf.rglob(KEYBINDS_FILE)))
        return found

    def backup_keybinds(self, game_path: Path) -> BackupResult:
        files = self.find_keybind_files(game_path)
        if not files:
            raise IntegrityError(f"No {KEYBINDS_FILE} files found under {game_path}",
                                 hint="Log into the game once so it writes your keybindings, then try again.")
        return self._require_store().create_backup(KEYBINDS_BACKUP_KIND, files, relative_to=Path(game_path))

    def list_keybind_backups(self) -> List[str]:
        return self._require_store().list_backups(KEYBINDS_BACKUP_KIND)

    def restore_keybinds(self, game_path: Path, backup_id: str) -> List[Path]:
        game_path = Path(game_path)
        game_path.mkdir(parents=True, exist_ok=True)
        return self._require_store().restore_backup(KEYBINDS_BACKUP_KIND, backup_id, game_path)

    def cleanup_backups(self, older_than_days: int = 30) -> int:
        store = self._require_store()
        return (store.gc_backups(CONFIG_BACKUP_KIND, older_than_days)
                + store.gc_backups(KEYBINDS_BACKUP_KIND, older_than_days))
