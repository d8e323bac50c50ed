#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Handler Module
Handles the on-disk Config Store: one `<key>.conf` file per setting,
timestamped backups and the single-instance lock.
"""

import errno
import fcntl
import logging
import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from packaging import version

from azeroth_winebar.backend.errors import (
    EnvUnsupported, IntegrityError, InstanceBusy, ConflictError,
)
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler
from azeroth_winebar.backend.models.configuration import ConfigSnapshot, BackupResult
from azeroth_winebar.shared.paths import get_config_dir

# Initialize logger
logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"
KNOWN_KEYS = (
    "prefix_path",
    "game_path",
    "default_runtime",
    "first_run_done",
    "install_state",
    "config_version",
)
LEGACY_KEYS = {
    "winedir": "prefix_path",
    "gamedir": "game_path",
    "firstrun": "first_run_done",
    "default-runner": "default_runtime",
}
LOCK_NAME = "azeroth-winebar.lock"
BACKUP_INFO_NAME = "backup_info.txt"
STAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class ConfigStore:
    """
    Durable key/value state for Azeroth Winebar.

    Every key lives in its own `<key>.conf` text file. A missing file means
    the key is unset. Writes go through a `.tmp` sibling and a rename.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.backups_dir = self.config_dir / "backups"
        self._ensure_config_dir()
        self._migrate_config()

    def _ensure_config_dir(self):
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise EnvUnsupported(
                f"Config directory {self.config_dir} is not writable: {e}",
                hint=f"Fix the ownership of {self.config_dir} and try again.",
            )
        if not os.access(self.config_dir, os.W_OK | os.X_OK):
            raise EnvUnsupported(
                f"Config directory {self.config_dir} is not writable",
                hint=f"Fix the ownership of {self.config_dir} and try again.",
            )

    def _migrate_config(self):
        """
        Migrate the store between schema versions.
        Renames the key files written by older releases.
        """
        current_version = self.get("config_version") or "0.0.0"
        try:
            outdated = version.parse(current_version) < version.parse(CONFIG_VERSION)
        except version.InvalidVersion:
            logger.warning(f"Unparseable config_version '{current_version}', re-running migration")
            outdated = True
        if not outdated:
            return

        logger.info(f"Migrating config from {current_version} to {CONFIG_VERSION}")
        renamed = 0
        for old_key, new_key in LEGACY_KEYS.items():
            old_file = self._key_path(old_key)
            if not old_file.exists():
                continue
            if self._key_path(new_key).exists():
                logger.debug(f"Keeping existing {new_key}, dropping legacy {old_key}")
                old_file.unlink()
                continue
            value = old_file.read_text(encoding="utf-8").rstrip()
            if new_key == "first_run_done":
                # the old marker file only ever existed once first run had completed
                value = "true"
            self.set(new_key, value)
            old_file.unlink()
            renamed += 1
        if renamed:
            logger.info(f"Migrated {renamed} legacy config keys")
        self.set("config_version", CONFIG_VERSION)

    def _key_path(self, key: str) -> Path:
        if not key or "/" in key or key.startswith("."):
            raise ValueError(f"Invalid config key: {key!r}")
        return self.config_dir / f"{key}.conf"

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Read one key. Missing files return `default`."""
        path = self._key_path(key)
        try:
            value = path.read_text(encoding="utf-8").rstrip()
        except FileNotFoundError:
            return default
        except PermissionError as e:
            raise EnvUnsupported(f"Cannot read {path}: {e}",
                                 hint=f"Fix the ownership of {self.config_dir} and try again.")
        return value if value else default

    def set(self, key: str, value) -> None:
        value = "" if value is None else str(value)
        try:
            FileSystemHandler.atomic_write_text(self._key_path(key), value.rstrip() + "\n")
        except PermissionError as e:
            raise EnvUnsupported(f"Cannot write {key}: {e}",
                                 hint=f"Fix the ownership of {self.config_dir} and try again.")
        logger.debug(f"Config set: {key}={value.rstrip()}")

    def unset(self, key: str) -> None:
        path = self._key_path(key)
        if path.exists():
            path.unlink()
            logger.debug(f"Config unset: {key}")

    def load(self) -> ConfigSnapshot:
        return ConfigSnapshot.from_dict({key: self.get(key) for key in KNOWN_KEYS})

    def reset(self) -> List[str]:
        """Erase every `<key>.conf` file. Backups, the lock and generated scripts are kept."""
        removed = []
        for conf in sorted(self.config_dir.glob("*.conf")):
            conf.unlink()
            removed.append(conf.stem)
        logger.info(f"Config reset, removed keys: {', '.join(removed) if removed else 'none'}")
        return removed

    def is_first_run(self) -> bool:
        return self.get("first_run_done") != "true"

    def mark_first_run_done(self) -> None:
        self.set("first_run_done", "true")

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def _kind_dir(self, kind: str) -> Path:
        if not kind or "/" in kind or kind.startswith("."):
            raise ValueError(f"Invalid backup kind: {kind!r}")
        return self.backups_dir / kind

    def _new_backup_dir(self, kind: str) -> Path:
        base = datetime.now(timezone.utc).strftime(STAMP_FORMAT)
        kind_dir = self._kind_dir(kind)
        candidate = kind_dir / base
        suffix = 1
        while candidate.exists():
            candidate = kind_dir / f"{base}-{suffix}"
            suffix += 1
        candidate.mkdir(parents=True)
        return candidate

    def create_backup(self, kind: str, source_paths: Iterable[Path],
                      relative_to: Optional[Path] = None) -> BackupResult:
        """
        Copy `source_paths` into a new `backups/<kind>/<stamp>/` directory.

        Args:
            kind: backup family, e.g. "config" or "keybinds"
            source_paths: files to copy
            relative_to: if given, keep each file's path relative to this root

        Returns:
            BackupResult: the new backup id plus copy/failure counts

        Raises:
            IntegrityError: not a single file could be copied
        """
        sources = [Path(p) for p in source_paths]
        backup_dir = self._new_backup_dir(kind)
        copied, failed_paths = [], []
        for src in sources:
            if relative_to is not None:
                try:
                    target = backup_dir / src.relative_to(relative_to)
                except ValueError:
                    target = backup_dir / src.name
            else:
                target = backup_dir / src.name
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, target)
                copied.append(src)
            except OSError as e:
                logger.warning(f"Could not back up {src}: {e}")
                failed_paths.append(src)

        if not copied:
            shutil.rmtree(backup_dir, ignore_errors=True)
            raise IntegrityError(f"No files could be backed up for '{kind}'",
                                 hint="Check that the files exist and are readable.")

        info_lines = [
            f"created={backup_dir.name}",
            f"kind={kind}",
            f"file_count={len(copied)}",
            f"failed_count={len(failed_paths)}",
        ]
        if relative_to is not None:
            info_lines.append(f"root={relative_to}")
        info_lines.extend(f"source={p}" for p in copied)
        FileSystemHandler.atomic_write_text(backup_dir / BACKUP_INFO_NAME, "\n".join(info_lines) + "\n")

        if failed_paths:
            logger.warning(f"Partial backup {kind}/{backup_dir.name}: {len(copied)} copied, {len(failed_paths)} failed")
        else:
            logger.info(f"Created backup {kind}/{backup_dir.name} with {len(copied)} file(s)")
        return BackupResult(backup_id=backup_dir.name, copied=len(copied),
                            failed=len(failed_paths), failed_paths=failed_paths)

    def list_backups(self, kind: str) -> List[str]:
        """Backup ids of `kind`, newest first."""
        kind_dir = self._kind_dir(kind)
        if not kind_dir.is_dir():
            return []
        ids = [p.name for p in kind_dir.iterdir() if p.is_dir()]
        return sorted(ids, reverse=True)

    def get_backup_dir(self, kind: str, backup_id: str) -> Path:
        backup_dir = self._kind_dir(kind) / backup_id
        if not backup_dir.is_dir():
            raise ConflictError(f"Backup {kind}/{backup_id} does not exist",
                                hint="Pick one of the listed backups.")
        return backup_dir

    def backup_files(self, kind: str, backup_id: str) -> List[Path]:
        """Files stored in a backup, relative to the backup directory."""
        backup_dir = self.get_backup_dir(kind, backup_id)
        return sorted(
            p.relative_to(backup_dir)
            for p in backup_dir.rglob("*")
            if p.is_file() and p.name != BACKUP_INFO_NAME
        )

    def restore_backup(self, kind: str, backup_id: str, destination: Path) -> List[Path]:
        """
        Restore a backup.

        If `destination` is an existing directory (or the backup holds more
        than one file) files are restored beneath it at their relative
        locations; otherwise the single backed-up file replaces `destination`.
        """
        backup_dir = self.get_backup_dir(kind, backup_id)
        files = self.backup_files(kind, backup_id)
        if not files:
            raise IntegrityError(f"Backup {kind}/{backup_id} is empty")
        destination = Path(destination)
        restored = []
        if len(files) == 1 and not destination.is_dir():
            FileSystemHandler.atomic_copy(backup_dir / files[0], destination)
            restored.append(destination)
        else:
            for rel in files:
                target = destination / rel
                FileSystemHandler.atomic_copy(backup_dir / rel, target)
                restored.append(target)
        logger.info(f"Restored backup {kind}/{backup_id} ({len(restored)} file(s)) to {destination}")
        return restored

    def gc_backups(self, kind: str, older_than_days: int = 30) -> int:
        """Delete backups of `kind` older than `older_than_days`. Returns the number removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        removed = 0
        for backup_id in self.list_backups(kind):
            created = _parse_stamp(backup_id)
            if created is None:
                backup_dir = self._kind_dir(kind) / backup_id
                created = datetime.fromtimestamp(backup_dir.stat().st_mtime, timezone.utc)
            if created < cutoff:
                shutil.rmtree(self._kind_dir(kind) / backup_id)
                logger.debug(f"Removed old backup {kind}/{backup_id}")
                removed += 1
        if removed:
            logger.info(f"Removed {removed} {kind} backup(s) older than {older_than_days} days")
        return removed


def _parse_stamp(backup_id: str) -> Optional[datetime]:
    stamp = backup_id[:20]
    try:
        return datetime.strptime(stamp, STAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class InstanceLock:
    """Non-blocking exclusive flock on `<config>/azeroth-winebar.lock`."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.path = (Path(config_dir) if config_dir else get_config_dir()) / LOCK_NAME
        self._fd = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> 'InstanceLock':
        if self._fd is not None:
            return self
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            if e.errno in (errno.EAGAIN, errno.EACCES, errno.EWOULDBLOCK):
                raise InstanceBusy(f"Lock {self.path} is held by another process")
            raise
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Acquired instance lock {self.path}")
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        logger.debug(f"Released instance lock {self.path}")

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
