"""Tests for the runtime catalogue: feeds, installs, defaults and the vendor link."""

import fcntl
import os
import threading
from pathlib import Path

import pytest

from azeroth_winebar.backend.errors import (
    ConflictError, DependencyMissing, IntegrityError, NetworkError,
)
from azeroth_winebar.backend.handlers.config_handler import ConfigStore
from azeroth_winebar.backend.handlers.subprocess_utils import CommandResult
from azeroth_winebar.backend.models.runtime import (
    MANIFEST_NAME, VENDOR_EXPERIMENTAL_ID, ArchiveFormat, DownloadPlan, RuntimeKind,
)
from azeroth_winebar.backend.services.runtime_catalogue_service import INSTALL_LOCK_NAME, RuntimeCatalogueService

from conftest import FakeHttp, FakeResponse, FakeRunner, make_executable_file

GE_FEED = "https://api.github.com/repos/GloriousEggroll/proton-ge-custom/releases"
GE_ASSET = "https://github.com/GloriousEggroll/proton-ge-custom/releases/download/GE-Proton9-1/GE-Proton9-1.tar.gz"
ARCHIVE_BODY = b"\x1f\x8b" + b"\0" * 1_100_000

GE_RELEASES = [
    {
        "tag_name": "GE-Proton9-1",
        "assets": [
            {"name": "GE-Proton9-1.sha512sum",
             "browser_download_url": GE_ASSET.replace(".tar.gz", ".sha512sum")},
            {"name": "GE-Proton9-1.tar.gz", "browser_download_url": GE_ASSET},
        ],
    },
    {"tag_name": "GE-Proton8-32", "assets": []},
]


@pytest.fixture
def store(tmp_path: Path) -> ConfigStore:
    return ConfigStore(tmp_path / "cfg")


@pytest.fixture
def catalogue(store: ConfigStore, runner: FakeRunner, tmp_path: Path, steam_proton: Path) -> RuntimeCatalogueService:
    return RuntimeCatalogueService(
        store, runner,
        confirm=lambda title, message: False,
        runners_dir=tmp_path / "runners",
        locator=lambda: steam_proton,
    )


@pytest.fixture
def ge_feed(http: FakeHttp) -> FakeHttp:
    http.routes[GE_FEED] = FakeResponse(json_data=GE_RELEASES)
    http.routes[GE_ASSET] = FakeResponse(body=ARCHIVE_BODY)
    return http


class TestReleases:
    """Release feeds and asset selection."""

    def test_list_and_resolve_use_one_feed_request(self, catalogue, ge_feed) -> None:
        tags = catalogue.list_remote_releases(RuntimeKind.COMMUNITY_PROTON)
        plan = catalogue.resolve_download(RuntimeKind.COMMUNITY_PROTON, "GE-Proton9-1")

        assert tags == ["GE-Proton9-1", "GE-Proton8-32"]
        assert plan.url == GE_ASSET
        assert plan.archive_format is ArchiveFormat.GZ_TAR
        assert ge_feed.requested == [GE_FEED]

    def test_release_without_archive_is_rejected(self, catalogue, ge_feed) -> None:
        catalogue.list_remote_releases(RuntimeKind.COMMUNITY_PROTON)
        with pytest.raises(IntegrityError):
            catalogue.resolve_download(RuntimeKind.COMMUNITY_PROTON, "GE-Proton8-32")

    def test_tkg_feed_filters_tags_and_assets(self, catalogue, http) -> None:
        feed = "https://api.github.com/repos/Kron4ek/Wine-Builds/releases"
        http.routes[feed] = FakeResponse(json_data=[
            {"tag_name": "proton-9.0", "assets": []},
            {"tag_name": "wine-9.5", "assets": [
                {"name": "wine-9.5-amd64.tar.xz", "browser_download_url": "https://x/wine-9.5-amd64.tar.xz"},
                {"name": "wine-9.5-staging-tkg-amd64.tar.xz",
                 "browser_download_url": "https://x/wine-9.5-staging-tkg-amd64.tar.xz"},
            ]},
        ])
        assert catalogue.list_remote_releases(RuntimeKind.COMMUNITY_WINE_TKG) == ["wine-9.5"]
        plan = catalogue.resolve_download(RuntimeKind.COMMUNITY_WINE_TKG, "wine-9.5")
        assert plan.url.endswith("staging-tkg-amd64.tar.xz")

    def test_vendor_plan_is_delegated(self, catalogue) -> None:
        assert catalogue.list_remote_releases(RuntimeKind.VENDOR_EXPERIMENTAL) == ["vendor-latest"]
        assert catalogue.resolve_download(RuntimeKind.VENDOR_EXPERIMENTAL, "vendor-latest").delegated

    def test_feed_failure_is_a_network_error(self, catalogue, http) -> None:
        with pytest.raises(NetworkError):
            catalogue.list_remote_releases(RuntimeKind.COMMUNITY_WINE)


class TestInstall:
    """Download, extract and register."""

    def test_community_install(self, catalogue, ge_feed, all_tools, runner) -> None:
        catalogue.list_remote_releases(RuntimeKind.COMMUNITY_PROTON)
        plan = catalogue.resolve_download(RuntimeKind.COMMUNITY_PROTON, "GE-Proton9-1")

        runtime = catalogue.install(plan)

        assert ge_feed.requested == [GE_FEED, GE_ASSET]
        assert runtime.id == "GE-Proton9-1"
        assert [r.id for r in catalogue.list_installed()] == ["GE-Proton9-1"]
        manifest = (catalogue.runners_dir / "GE-Proton9-1" / MANIFEST_NAME).read_text()
        assert "RUNNER_TYPE=community-proton" in manifest
        executable = catalogue.get_runtime_executable("GE-Proton9-1")
        assert executable.is_file()
        assert os.access(executable, os.X_OK)
        assert not any(catalogue.staging_dir.iterdir())
        assert runner.commands("tar")[0][1] == "-xzf"

    def test_missing_archive_tool(self, catalogue, ge_feed, monkeypatch) -> None:
        monkeypatch.setattr("azeroth_winebar.backend.handlers.subprocess_utils.shutil.which",
                            lambda name: None if name == "tar" else f"/usr/bin/{name}")
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)

        with pytest.raises(DependencyMissing) as excinfo:
            catalogue.install(plan)

        assert excinfo.value.tool == "tar"
        assert not catalogue.runners_dir.exists() or not any(catalogue.runners_dir.iterdir())
        assert ge_feed.requested == []

    def test_interrupted_download_leaves_nothing_behind(self, catalogue, http, all_tools) -> None:
        http.routes[GE_ASSET] = FakeResponse(body=ARCHIVE_BODY, interrupt_after=65536)
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)

        with pytest.raises(KeyboardInterrupt):
            catalogue.install(plan)

        assert not (catalogue.runners_dir / "GE-Proton9-1").exists()
        assert list(catalogue.staging_dir.iterdir()) == []
        assert catalogue.list_installed() == []

    def test_truncated_download_is_rejected(self, catalogue, http, all_tools) -> None:
        http.routes[GE_ASSET] = FakeResponse(body=b"x" * 999_999)
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)
        with pytest.raises(IntegrityError):
            catalogue.install(plan)
        assert not (catalogue.runners_dir / "GE-Proton9-1").exists()

    def test_archive_without_wine_binary(self, catalogue, ge_feed, all_tools, runner) -> None:
        runner.on("tar", lambda argv, env: CommandResult(argv=argv, returncode=0))
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)
        with pytest.raises(IntegrityError):
            catalogue.install(plan)
        assert catalogue.list_installed() == []

    def test_existing_install_is_not_replaced_without_consent(self, catalogue, ge_feed, all_tools) -> None:
        existing = make_executable_file(catalogue.runners_dir / "GE-Proton9-1" / "bin" / "wine")
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)
        with pytest.raises(ConflictError):
            catalogue.install(plan)
        assert existing.is_file()

    def test_existing_install_is_replaced_with_consent(self, catalogue, ge_feed, all_tools) -> None:
        stale = catalogue.runners_dir / "GE-Proton9-1" / "stale.txt"
        make_executable_file(catalogue.runners_dir / "GE-Proton9-1" / "bin" / "wine")
        stale.write_text("old build")
        asked = []
        catalogue.confirm = lambda title, message: asked.append(title) or True
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)

        runtime = catalogue.install(plan)

        assert asked == ["Runtime already installed"]
        assert not stale.exists()
        assert (runtime.install_root / MANIFEST_NAME).is_file()
        assert list(catalogue.staging_dir.iterdir()) == []

    def test_failed_replace_restores_previous_install(self, catalogue, ge_feed, all_tools, monkeypatch) -> None:
        stale = catalogue.runners_dir / "GE-Proton9-1" / "stale.txt"
        make_executable_file(catalogue.runners_dir / "GE-Proton9-1" / "bin" / "wine")
        stale.write_text("old build")
        catalogue.confirm = lambda title, message: True
        real_replace = os.replace

        def replace(src, dst):
            if Path(src) == catalogue.staging_dir / "GE-Proton9-1":
                raise OSError(18, "Invalid cross-device link")
            real_replace(src, dst)

        monkeypatch.setattr("azeroth_winebar.backend.services.runtime_catalogue_service.os.replace", replace)
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)

        with pytest.raises(OSError):
            catalogue.install(plan)

        assert stale.read_text() == "old build"
        assert list(catalogue.staging_dir.iterdir()) == []

    def test_installs_wait_for_the_runtimes_lock(self, catalogue, ge_feed, all_tools) -> None:
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="GE-Proton9-1", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)
        catalogue.runners_dir.mkdir(parents=True)
        results = []

        with open(catalogue.runners_dir / INSTALL_LOCK_NAME, "w") as held:
            fcntl.flock(held.fileno(), fcntl.LOCK_EX)
            worker = threading.Thread(target=lambda: results.append(catalogue.install(plan)))
            worker.start()
            worker.join(timeout=0.5)

            assert worker.is_alive()
            assert GE_ASSET not in ge_feed.requested
            fcntl.flock(held.fileno(), fcntl.LOCK_UN)

        worker.join(timeout=30)
        assert not worker.is_alive()
        assert [runtime.id for runtime in results] == ["GE-Proton9-1"]

    def test_invalid_id_rejected(self, catalogue, all_tools) -> None:
        plan = DownloadPlan(kind=RuntimeKind.COMMUNITY_PROTON, tag="../evil", url=GE_ASSET,
                            archive_format=ArchiveFormat.GZ_TAR)
        with pytest.raises(ConflictError):
            catalogue.install(plan)


class TestDefaults:
    """The default-runtime pointer."""

    def test_default_falls_back_to_vendor(self, catalogue) -> None:
        assert catalogue.get_default() == VENDOR_EXPERIMENTAL_ID

    def test_set_default_requires_installed_runtime(self, catalogue) -> None:
        with pytest.raises(ConflictError):
            catalogue.set_default("GE-Proton9-1")

    def test_deleting_default_promotes_vendor(self, catalogue, store) -> None:
        make_executable_file(catalogue.runners_dir / "wine-9.5" / "bin" / "wine")
        catalogue.set_default("wine-9.5")

        catalogue.delete("wine-9.5")

        assert catalogue.get_default() == VENDOR_EXPERIMENTAL_ID
        assert store.get("default_runtime") == VENDOR_EXPERIMENTAL_ID
        assert not (catalogue.runners_dir / "wine-9.5").exists()

    def test_deleting_unknown_runtime(self, catalogue) -> None:
        with pytest.raises(ConflictError):
            catalogue.delete("nothing-here")


class TestVendorExperimental:
    """Steam's Proton Experimental is linked, never copied."""

    def test_locate_links_and_writes_manifest(self, catalogue, steam_proton) -> None:
        runtime = catalogue.locate_vendor_experimental()

        link = catalogue.runners_dir / VENDOR_EXPERIMENTAL_ID
        assert link.is_symlink()
        assert Path(os.readlink(link)) == steam_proton
        assert runtime.kind is RuntimeKind.VENDOR_EXPERIMENTAL
        assert (steam_proton / MANIFEST_NAME).is_file()
        assert [r.id for r in catalogue.list_installed()] == [VENDOR_EXPERIMENTAL_ID]

    def test_resolve_runtime_links_on_demand(self, catalogue) -> None:
        runtime = catalogue.resolve_runtime()
        assert runtime.id == VENDOR_EXPERIMENTAL_ID
        assert runtime.executable_path.is_file()

    def test_missing_steam_install(self, store, runner, tmp_path) -> None:
        catalogue = RuntimeCatalogueService(store, runner, runners_dir=tmp_path / "runners", locator=lambda: None)
        assert catalogue.resolve_runtime() is None
        with pytest.raises(DependencyMissing):
            catalogue.install(DownloadPlan(kind=RuntimeKind.VENDOR_EXPERIMENTAL, tag="vendor-latest",
                                           delegated=True))

    def test_delete_removes_only_the_link(self, catalogue, steam_proton) -> None:
        catalogue.locate_vendor_experimental()
        catalogue.delete(VENDOR_EXPERIMENTAL_ID)
        assert not (catalogue.runners_dir / VENDOR_EXPERIMENTAL_ID).exists()
        assert (steam_proton / "files" / "bin" / "wine").is_file()
        assert not (steam_proton / MANIFEST_NAME).exists()


class TestListing:
    """Installed runtimes are discovered from the runners directory."""

    def test_runtime_without_manifest_is_custom(self, catalogue) -> None:
        make_executable_file(catalogue.runners_dir / "my-wine" / "bin" / "wine")
        runtimes = catalogue.list_installed()
        assert [(r.id, r.kind) for r in runtimes] == [("my-wine", RuntimeKind.CUSTOM)]

    def test_entries_without_a_wine_binary_are_skipped(self, catalogue) -> None:
        (catalogue.runners_dir / "broken").mkdir(parents=True)
        (catalogue.runners_dir / ".staging").mkdir()
        assert catalogue.list_installed() == []

    def test_validate_wine_version(self, catalogue, runner) -> None:
        make_executable_file(catalogue.runners_dir / "my-wine" / "bin" / "wine")
        assert catalogue.validate_wine_version("my-wine")
        assert catalogue.validate_wine_version("my-wine", min_version="10.0") is False

    def test_runtime_environment(self, catalogue, tmp_path) -> None:
        vendor = catalogue.locate_vendor_experimental()
        make_executable_file(catalogue.runners_dir / "my-wine" / "bin" / "wine")
        community = catalogue.get_runtime("my-wine")

        env = catalogue.runtime_environment(vendor, tmp_path / "prefix")

        assert env["STEAM_COMPAT_DATA_PATH"] == str(tmp_path / "prefix")
        assert env["STEAM_COMPAT_CLIENT_INSTALL_PATH"] == str(vendor.install_root)
        assert env["PROTON_ENABLE_NVAPI"] == "0"
        assert catalogue.runtime_environment(community, tmp_path / "prefix") == {}
