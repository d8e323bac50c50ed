"""
FileSystemHandler module for file and download operations.
This module handles atomic writes, streamed downloads and path removal.
"""

import os
import shutil
import stat
import logging
import tempfile
from pathlib import Path
from typing import Optional

import requests
from tqdm import tqdm

from azeroth_winebar.backend.errors import NetworkError, IntegrityError

# Initialize logger for the module
logger = logging.getLogger(__name__)

MIN_DOWNLOAD_SIZE = 1000000
DOWNLOAD_CHUNK_SIZE = 8192
USER_AGENT = "azeroth-winebar"


class FileSystemHandler:

    @staticmethod
    def atomic_write_text(path: Path, content: str, mode: Optional[int] = None) -> Path:
        """
        Write text to `path` through a sibling `.tmp` file and a rename.

        Args:
            path: destination file
            content: text to write (UTF-8)
            mode: optional permission bits applied before the rename

        Returns:
            Path: the destination path
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if mode is not None:
                os.chmod(tmp_path, mode)
            os.replace(tmp_path, path)
        except BaseException:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        return path

    @staticmethod
    def atomic_copy(src: Path, dst: Path) -> Path:
        """Copy `src` over `dst` via a temp file in the destination directory."""
        dst = Path(dst)
        dst.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=str(dst.parent))
        os.close(fd)
        try:
            shutil.copy2(src, tmp_name)
            os.replace(tmp_name, dst)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return dst

    @staticmethod
    def remove_path(path: Path) -> bool:
        """Remove a file, symlink or directory tree. Returns True if something was removed."""
        path = Path(path)
        if path.is_symlink() or path.is_file():
            path.unlink()
            logger.debug(f"Removed file: {path}")
            return True
        if path.is_dir():
            shutil.rmtree(path)
            logger.debug(f"Removed directory: {path}")
            return True
        return False

    @staticmethod
    def make_executable(path: Path) -> None:
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    @staticmethod
    def is_executable_file(path: Optional[Path]) -> bool:
        return bool(path) and Path(path).is_file() and os.access(path, os.X_OK)

    @staticmethod
    def download_file(url: str, destination_path: Path, min_size: int = MIN_DOWNLOAD_SIZE,
                      show_progress: bool = True) -> Path:
        """
        Stream `url` into `destination_path`.

        The partial file is removed on any failure, including KeyboardInterrupt.

        Raises:
            NetworkError: the request failed
            IntegrityError: the file is smaller than `min_size` bytes
        """
        destination_path = Path(destination_path)
        logger.info(f"Downloading {url} to {destination_path}...")
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        headers = {"User-Agent": USER_AGENT}
        try:
            with requests.get(url, stream=True, timeout=300, headers=headers) as r:
                r.raise_for_status()
                total = int(r.headers.get("content-length", 0) or 0)
                progress = tqdm(
                    total=total or None,
                    unit="B",
                    unit_scale=True,
                    desc=destination_path.name,
                    disable=not (show_progress and os.isatty(1)),
                )
                with progress, open(destination_path, "wb") as f:
                    for chunk in r.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
                            progress.update(len(chunk))
        except requests.exceptions.RequestException as e:
            logger.error(f"Download failed: {e}")
            _discard(destination_path)
            raise NetworkError(f"Download failed for {url}: {e}")
        except BaseException:
            _discard(destination_path)
            raise

        size = destination_path.stat().st_size
        if size < min_size:
            logger.error(f"Downloaded file too small: {size} bytes (minimum {min_size})")
            _discard(destination_path)
            raise IntegrityError(f"Downloaded file {destination_path.name} is only {size} bytes")
        logger.info(f"Download complete: {destination_path} ({size} bytes)")
        return destination_path

    @staticmethod
    def get_json(url: str, timeout: int = 30):
        """GET a JSON document from a GitHub-style release API."""
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        logger.debug(f"Fetching JSON from {url}")
        try:
            response = requests.get(url, headers=headers, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise NetworkError(f"Could not fetch {url}: {e}")
        except ValueError as e:
            logger.error(f"Invalid JSON from {url}: {e}")
            raise NetworkError(f"Malformed response from {url}")


def _discard(path: Path) -> None:
    if path.exists():
        try:
            path.unlink()
            logger.debug(f"Removed incomplete download: {path}")
        except OSError as e:
            logger.warning(f"Could not remove incomplete download {path}: {e}")
