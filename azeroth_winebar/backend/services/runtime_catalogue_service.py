#!/usr/bin/env python3
"""
Runtime Catalogue Service

Lists upstream release feeds, downloads and installs compatibility
runtimes into the runners directory, links Steam's Proton Experimental,
and maintains the default-runtime pointer in the Config Store.
"""

import fcntl
import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, List, Optional

from packaging import version

from azeroth_winebar.backend.errors import (
    ConflictError, DependencyMissing, EnvUnsupported, IntegrityError, NetworkError,
)
from azeroth_winebar.backend.handlers.config_handler import ConfigStore
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner, require_tools
from azeroth_winebar.backend.handlers.wine_utils import WineUtils, proton_environment
from azeroth_winebar.backend.models.runtime import (
    ArchiveFormat, DownloadPlan, KindDescriptor, Runtime, RuntimeKind,
    MANIFEST_NAME, VENDOR_EXPERIMENTAL_ID, VENDOR_LATEST_TAG, VENDOR_SOURCE_MARKER,
    sort_runtimes, utc_stamp,
)
from azeroth_winebar.shared.paths import get_runners_dir
from azeroth_winebar.shared.steam_utils import find_proton_experimental

logger = logging.getLogger(__name__)

MAX_RELEASES = 10
STAGING_DIR_NAME = ".staging"
INSTALL_LOCK_NAME = ".install.lock"
EXECUTABLE_CANDIDATES = [
    Path("bin") / "wine",
    Path("files") / "bin" / "wine",
    Path("dist") / "bin" / "wine",
]
VENDOR_EXECUTABLE_CANDIDATES = [
    Path("files") / "bin" / "wine",
    Path("dist") / "bin" / "wine",
]
MIN_WINE_VERSION = "6.0"

SOURCES = [
    KindDescriptor(
        kind=RuntimeKind.VENDOR_EXPERIMENTAL,
        label="Proton Experimental (Steam)",
    ),
    KindDescriptor(
        kind=RuntimeKind.COMMUNITY_PROTON,
        label="GE-Proton",
        feed_url="https://api.github.com/repos/GloriousEggroll/proton-ge-custom/releases",
        archive_format=ArchiveFormat.GZ_TAR,
    ),
    KindDescriptor(
        kind=RuntimeKind.COMMUNITY_WINE,
        label="Wine-GE (Lutris)",
        feed_url="https://api.github.com/repos/GloriousEggroll/wine-ge-custom/releases",
        archive_format=ArchiveFormat.XZ_TAR,
    ),
    KindDescriptor(
        kind=RuntimeKind.COMMUNITY_WINE_TKG,
        label="Wine staging-tkg (Kron4ek)",
        feed_url="https://api.github.com/repos/Kron4ek/Wine-Builds/releases",
        archive_format=ArchiveFormat.XZ_TAR,
        tag_prefix="wine-",
        asset_keywords=("staging", "tkg"),
    ),
]


def _validate_id(runtime_id: str) -> str:
    if not runtime_id or "/" in runtime_id or runtime_id.startswith("."):
        raise ConflictError(f"Invalid runtime id: {runtime_id!r}",
                            hint="Runtime ids may not contain '/' or start with '.'.")
    return runtime_id


class RuntimeCatalogueService:
    """
    Catalogue of installed compatibility runtimes.

    Args:
        store: Config Store holding `default_runtime`
        runner: command runner used for archive extraction
        confirm: callback(title, message) -> bool used before replacing an install
        runners_dir: catalogue root (defaults to the data dir's runners/)
        locator: finds Steam's Proton Experimental directory
    """

    def __init__(self, store: ConfigStore, runner: Optional[CommandRunner] = None,
                 confirm: Optional[Callable[[str, str], bool]] = None,
                 runners_dir: Optional[Path] = None,
                 locator: Callable[[], Optional[Path]] = find_proton_experimental,
                 wine: Optional[WineUtils] = None):
        self.store = store
        self.runner = runner or CommandRunner()
        self.confirm = confirm or (lambda title, message: False)
        self.runners_dir = Path(runners_dir) if runners_dir else get_runners_dir()
        self.locator = locator
        self.wine = wine or WineUtils(self.runner)
        self._release_cache: Dict[RuntimeKind, List[dict]] = {}

    @property
    def staging_dir(self) -> Path:
        return self.runners_dir / STAGING_DIR_NAME

    # ------------------------------------------------------------------
    # Sources and releases
    # ------------------------------------------------------------------

    def list_sources(self) -> List[KindDescriptor]:
        return list(SOURCES)

    def descriptor(self, kind: RuntimeKind) -> KindDescriptor:
        for source in SOURCES:
            if source.kind is kind:
                return source
        raise EnvUnsupported(f"No release source for runtime kind '{kind.value}'",
                             hint="Pick one of the listed runtime sources.")

    def _fetch_releases(self, kind: RuntimeKind) -> List[dict]:
        if kind not in self._release_cache:
            source = self.descriptor(kind)
            data = FileSystemHandler.get_json(source.feed_url)
            if not isinstance(data, list):
                raise NetworkError(f"Unexpected release feed format from {source.feed_url}")
            self._release_cache[kind] = data
        return self._release_cache[kind]

    def list_remote_releases(self, kind: RuntimeKind, limit: int = MAX_RELEASES) -> List[str]:
        """Most recent release tags of `kind` (at most `limit`)."""
        if kind is RuntimeKind.VENDOR_EXPERIMENTAL:
            return [VENDOR_LATEST_TAG]
        source = self.descriptor(kind)
        tags = []
        for release in self._fetch_releases(kind):
            tag = release.get("tag_name") if isinstance(release, dict) else None
            if not tag:
                continue
            if source.tag_prefix and not tag.startswith(source.tag_prefix):
                continue
            tags.append(tag)
            if len(tags) >= limit:
                break
        logger.info(f"Found {len(tags)} releases for {kind.value}")
        return tags

    def _find_release(self, kind: RuntimeKind, tag: str) -> dict:
        for release in self._release_cache.get(kind, []):
            if isinstance(release, dict) and release.get("tag_name") == tag:
                return release
        source = self.descriptor(kind)
        release = FileSystemHandler.get_json(f"{source.feed_url}/tags/{tag}")
        if not isinstance(release, dict):
            raise NetworkError(f"Unexpected release format for {kind.value} {tag}")
        return release

    def resolve_download(self, kind: RuntimeKind, tag: str) -> DownloadPlan:
        """Pick the archive asset of a release, or a delegated plan for Proton Experimental."""
        if kind is RuntimeKind.VENDOR_EXPERIMENTAL:
            return DownloadPlan(kind=kind, tag=VENDOR_LATEST_TAG, delegated=True)
        source = self.descriptor(kind)
        release = self._find_release(kind, tag)
        for asset in release.get("assets", []):
            url = asset.get("browser_download_url", "")
            name = asset.get("name") or url.rsplit("/", 1)[-1]
            if not name.lower().endswith(source.archive_format.suffix):
                continue
            if source.asset_keywords and not any(k in name.lower() for k in source.asset_keywords):
                continue
            logger.info(f"Resolved {kind.value} {tag} to {url}")
            return DownloadPlan(kind=kind, tag=tag, url=url, archive_format=source.archive_format)
        raise IntegrityError(f"No {source.archive_format.suffix} asset in {kind.value} release {tag}",
                             hint="Pick another release.")

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    @contextmanager
    def _install_lock(self):
        self.runners_dir.mkdir(parents=True, exist_ok=True)
        lock_path = self.runners_dir / INSTALL_LOCK_NAME
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def install(self, plan: DownloadPlan, runtime_id: Optional[str] = None) -> Runtime:
        """
        Download, verify, extract and register a runtime.

        The archive and the staged tree live under `<runners>/.staging/`
        until the final rename; both are removed on any failure or interrupt.

        Raises:
            DependencyMissing: tar or the decompressor is not installed
            NetworkError: the download failed
            IntegrityError: the archive is too small or has no wine binary
            ConflictError: the id exists and replacing it was declined
        """
        if plan.delegated:
            runtime = self.locate_vendor_experimental()
            if runtime is None:
                raise DependencyMissing(
                    "Proton Experimental",
                    hint="Install Proton Experimental from Steam (Settings > Compatibility), then try again.",
                )
            return runtime

        if plan.archive_format is None or plan.url is None:
            raise EnvUnsupported(f"Unsupported archive for {plan.kind.value} {plan.tag}",
                                 hint="Only .tar.xz and .tar.gz runtimes can be installed.")
        runtime_id = _validate_id(runtime_id or plan.tag)
        require_tools("tar", plan.archive_format.decompressor)

        with self._install_lock():
            target = self.runners_dir / runtime_id
            if target.exists() or target.is_symlink():
                if not self.confirm("Runtime already installed",
                                    f"'{runtime_id}' is already installed. Replace it?"):
                    raise ConflictError(f"Runtime '{runtime_id}' is already installed",
                                        hint="Delete the existing runtime first or pick another release.")

            self.staging_dir.mkdir(parents=True, exist_ok=True)
            archive = self.staging_dir / f"{runtime_id}{plan.archive_format.suffix}"
            stage = self.staging_dir / runtime_id
            try:
                FileSystemHandler.remove_path(stage)
                FileSystemHandler.download_file(plan.url, archive)
                stage.mkdir(parents=True)
                self._extract(archive, stage, plan.archive_format)
                relative_exe = self._find_executable(stage, EXECUTABLE_CANDIDATES)
                if relative_exe is None:
                    raise IntegrityError(f"No wine binary found in {plan.url}",
                                         hint="The archive does not look like a wine runtime. Pick another release.")
                FileSystemHandler.make_executable(stage / relative_exe)

                runtime = Runtime(
                    id=runtime_id,
                    kind=plan.kind,
                    install_root=target,
                    executable_path=target / relative_exe,
                    source_url=plan.url,
                    installed_at=utc_stamp(),
                )
                FileSystemHandler.atomic_write_text(stage / MANIFEST_NAME, runtime.to_manifest())
                self._move_into_place(stage, target)
            finally:
                FileSystemHandler.remove_path(archive)
                FileSystemHandler.remove_path(stage)

        logger.info(f"Runtime installed: {runtime_id} ({plan.kind.value}) at {target}")
        return runtime

    def _extract(self, archive: Path, stage: Path, archive_format: ArchiveFormat) -> None:
        logger.info(f"Extracting {archive.name}")
        result = self.runner.run(
            ["tar", archive_format.tar_flag, str(archive), "-C", str(stage), "--strip-components=1"],
        )
        if not result.ok:
            logger.error(f"tar exited {result.returncode}: {result.stderr.strip()}")
            raise IntegrityError(f"Could not extract {archive.name}",
                                 hint="The archive is corrupt or incomplete. Try the download again.")

    @staticmethod
    def _find_executable(root: Path, candidates: List[Path]) -> Optional[Path]:
        for candidate in candidates:
            if (root / candidate).is_file():
                return candidate
        return None

    def _move_into_place(self, stage: Path, target: Path) -> None:
        previous = None
        if target.is_symlink():
            target.unlink()
        elif target.exists():
            previous = self.staging_dir / f"{target.name}.old"
            FileSystemHandler.remove_path(previous)
            os.replace(target, previous)
        try:
            os.replace(stage, target)
        except OSError:
            if previous is not None:
                os.replace(previous, target)
            raise
        if previous is not None:
            FileSystemHandler.remove_path(previous)

    def cleanup_staging(self) -> None:
        """Remove everything left in the staging area."""
        if self.staging_dir.exists():
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            logger.debug(f"Removed staging area {self.staging_dir}")

    # ------------------------------------------------------------------
    # Installed runtimes
    # ------------------------------------------------------------------

    def _read_runtime(self, entry: Path) -> Optional[Runtime]:
        manifest = entry / MANIFEST_NAME
        runtime = None
        if manifest.is_file():
            try:
                runtime = Runtime.from_manifest(manifest.read_text(encoding="utf-8"), entry)
            except OSError as e:
                logger.warning(f"Could not read {manifest}: {e}")
        if runtime is None:
            if entry.name == VENDOR_EXPERIMENTAL_ID and entry.is_symlink():
                relative = self._find_executable(entry, VENDOR_EXECUTABLE_CANDIDATES)
                runtime = Runtime(id=VENDOR_EXPERIMENTAL_ID, kind=RuntimeKind.VENDOR_EXPERIMENTAL,
                                  install_root=entry,
                                  executable_path=entry / relative if relative else None,
                                  source_url=VENDOR_SOURCE_MARKER,
                                  proton_binary=entry / "proton")
            else:
                relative = self._find_executable(entry, EXECUTABLE_CANDIDATES)
                runtime = Runtime(id=entry.name, kind=RuntimeKind.CUSTOM, install_root=entry,
                                  executable_path=entry / relative if relative else None)
        runtime.id = entry.name
        runtime.install_root = entry
        if not FileSystemHandler.is_executable_file(runtime.executable_path):
            logger.warning(f"Runtime {entry.name} has no usable wine binary, skipping")
            return None
        return runtime

    def list_installed(self) -> List[Runtime]:
        if not self.runners_dir.is_dir():
            return []
        runtimes = []
        for entry in self.runners_dir.iterdir():
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            runtime = self._read_runtime(entry)
            if runtime is not None:
                runtimes.append(runtime)
        return sort_runtimes(runtimes)

    def get_runtime(self, runtime_id: str) -> Optional[Runtime]:
        entry = self.runners_dir / _validate_id(runtime_id)
        if not entry.is_dir():
            return None
        return self._read_runtime(entry)

    def get_runtime_executable(self, runtime_id: str) -> Optional[Path]:
        runtime = self.get_runtime(runtime_id)
        return runtime.executable_path if runtime else None

    def get_default(self) -> str:
        return self.store.get("default_runtime") or VENDOR_EXPERIMENTAL_ID

    def set_default(self, runtime_id: str) -> None:
        if runtime_id != VENDOR_EXPERIMENTAL_ID and self.get_runtime(runtime_id) is None:
            raise ConflictError(f"Runtime '{runtime_id}' is not installed",
                                hint="Install the runtime before selecting it.")
        self.store.set("default_runtime", runtime_id)
        logger.info(f"Default runtime set to {runtime_id}")

    def delete(self, runtime_id: str) -> None:
        """Remove a runtime; deleting the default promotes vendor-experimental."""
        entry = self.runners_dir / _validate_id(runtime_id)
        was_default = self.get_default() == runtime_id
        if entry.is_symlink():
            manifest = entry / MANIFEST_NAME
            if manifest.is_file():
                try:
                    manifest.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove {manifest}: {e}")
            entry.unlink()
        elif entry.exists():
            shutil.rmtree(entry)
        else:
            raise ConflictError(f"Runtime '{runtime_id}' is not installed")
        logger.info(f"Runtime deleted: {runtime_id}")
        if was_default:
            self.store.set("default_runtime", VENDOR_EXPERIMENTAL_ID)
            logger.info(f"Default runtime reset to {VENDOR_EXPERIMENTAL_ID}")

    # ------------------------------------------------------------------
    # Proton Experimental
    # ------------------------------------------------------------------

    def locate_vendor_experimental(self) -> Optional[Runtime]:
        """
        Link Steam's Proton Experimental into the catalogue by symlink and
        write its manifest. Returns None if Steam has no Proton Experimental.
        """
        source = self.locator()
        if source is None:
            return None
        source = Path(source)
        relative = self._find_executable(source, VENDOR_EXECUTABLE_CANDIDATES)
        if relative is None:
            logger.warning(f"Proton Experimental at {source} has no wine binary")
            return None

        self.runners_dir.mkdir(parents=True, exist_ok=True)
        link = self.runners_dir / VENDOR_EXPERIMENTAL_ID
        if link.is_symlink():
            if Path(os.readlink(link)) != source:
                link.unlink()
        elif link.exists():
            logger.warning(f"Replacing directory {link} with a link to {source}")
            shutil.rmtree(link)
        if not link.is_symlink():
            link.symlink_to(source, target_is_directory=True)
            logger.info(f"Linked Proton Experimental: {link} -> {source}")

        runtime = Runtime(
            id=VENDOR_EXPERIMENTAL_ID,
            kind=RuntimeKind.VENDOR_EXPERIMENTAL,
            install_root=link,
            executable_path=link / relative,
            source_url=VENDOR_SOURCE_MARKER,
            installed_at=utc_stamp(),
            proton_binary=link / "proton",
            extra={"STEAM_SOURCE": str(source)},
        )
        try:
            FileSystemHandler.atomic_write_text(link / MANIFEST_NAME, runtime.to_manifest())
        except OSError as e:
            logger.warning(f"Could not write manifest into {source}: {e}")
        return runtime

    def resolve_runtime(self, runtime_id: Optional[str] = None) -> Optional[Runtime]:
        """The named (or default) runtime; vendor-experimental is linked on demand."""
        runtime_id = runtime_id or self.get_default()
        runtime = self.get_runtime(runtime_id)
        if runtime is None and runtime_id == VENDOR_EXPERIMENTAL_ID:
            runtime = self.locate_vendor_experimental()
        return runtime

    # ------------------------------------------------------------------
    # Validation and launch environment
    # ------------------------------------------------------------------

    def validate_wine_version(self, runtime_id: str, min_version: str = MIN_WINE_VERSION) -> bool:
        """
        Check `<wine> --version` against `min_version`. An unparseable
        version is accepted with a warning.
        """
        executable = self.get_runtime_executable(runtime_id)
        if executable is None:
            raise ConflictError(f"Runtime '{runtime_id}' is not installed")
        found = self.wine.wine_version(executable)
        if not found:
            logger.warning(f"Could not determine the wine version of {runtime_id}, assuming it is usable")
            return True
        try:
            ok = version.parse(found) >= version.parse(min_version)
        except version.InvalidVersion:
            logger.warning(f"Unparseable wine version '{found}' for {runtime_id}, assuming it is usable")
            return True
        if ok:
            logger.info(f"{runtime_id} wine version {found} >= {min_version}")
        else:
            logger.warning(f"{runtime_id} wine version {found} is older than {min_version}")
        return ok

    @staticmethod
    def runtime_environment(runtime: Runtime, prefix: Path) -> Dict[str, str]:
        return proton_environment(runtime, prefix)
