"""Tests for dxvk.conf, the environment scripts and the launch helper."""

from pathlib import Path

import pytest

from azeroth_winebar.backend.errors import DependencyMissing, UserCancelled
from azeroth_winebar.backend.handlers.subprocess_utils import CommandResult
from azeroth_winebar.backend.handlers.wine_utils import WineUtils
from azeroth_winebar.backend.models.runtime import Runtime, RuntimeKind
from azeroth_winebar.backend.services.graphics_tuning_service import (
    DXVK_CONFIG, SHADER_CACHE_DIRS, WINE_ENV_SCRIPT, GraphicsTuningService, GraphicsVendor,
    classify_vendor, render_graphics_env,
)
from azeroth_winebar.backend.services.prefix_service import DLL_OVERRIDES_KEY

from conftest import FakeRunner, make_executable_file

LSPCI_NVIDIA = (
    "00:00.0 Host bridge: Intel Corporation 8th Gen Core Processor Host Bridge\n"
    "01:00.0 VGA compatible controller: NVIDIA Corporation TU106 [GeForce RTX 2070]\n"
    "01:00.1 Audio device: NVIDIA Corporation TU106 High Definition Audio Controller\n"
)
LSPCI_AMD = "03:00.0 VGA compatible controller: Advanced Micro Devices, Inc. [AMD/ATI] Navi 21\n"


def make_service(runner: FakeRunner, tmp_path: Path, confirm=lambda title, message: True, tools=()):
    return GraphicsTuningService(
        runner, WineUtils(runner), confirm=confirm, config_dir=tmp_path / "cfg",
        which=lambda name: f"/usr/bin/{name}" if name in tools else None,
    )


@pytest.fixture
def runtime(tmp_path: Path) -> Runtime:
    root = tmp_path / "runners" / "vendor-experimental"
    return Runtime(id="vendor-experimental", kind=RuntimeKind.VENDOR_EXPERIMENTAL, install_root=root,
                   executable_path=make_executable_file(root / "files" / "bin" / "wine"))


class TestVendor:
    @pytest.mark.parametrize("text,vendor", [
        ("VGA compatible controller: NVIDIA Corporation GA102", GraphicsVendor.NVIDIA),
        ("VGA compatible controller: Advanced Micro Devices, Inc. [AMD/ATI]", GraphicsVendor.AMD),
        ("vendor: Advanced Micro Devices Radeon RX 6800", GraphicsVendor.AMD),
        ("VGA compatible controller: Intel Corporation UHD Graphics 630", GraphicsVendor.INTEL),
        ("Display controller: Matrox G200", GraphicsVendor.UNKNOWN),
        ("", GraphicsVendor.UNKNOWN),
    ])
    def test_classify(self, text: str, vendor: GraphicsVendor) -> None:
        assert classify_vendor(text) is vendor

    def test_only_display_devices_count(self, runner, tmp_path) -> None:
        runner.on("lspci", lambda argv, env: CommandResult(argv=argv, returncode=0, stdout=LSPCI_NVIDIA))
        assert make_service(runner, tmp_path, tools=("lspci",)).detect_vendor() is GraphicsVendor.NVIDIA

    def test_lshw_fallback(self, runner, tmp_path) -> None:
        runner.on("lshw", lambda argv, env: CommandResult(
            argv=argv, returncode=0, stdout="  *-display\n       vendor: Intel Corporation\n"))
        assert make_service(runner, tmp_path, tools=("lshw",)).detect_vendor() is GraphicsVendor.INTEL

    def test_no_tools_is_unknown(self, runner, tmp_path) -> None:
        assert make_service(runner, tmp_path).detect_vendor() is GraphicsVendor.UNKNOWN
        assert runner.calls == []


class TestEnvScripts:
    def test_vendor_specific_exports(self) -> None:
        nvidia = render_graphics_env(GraphicsVendor.NVIDIA)
        amd = render_graphics_env(GraphicsVendor.AMD)
        unknown = render_graphics_env(GraphicsVendor.UNKNOWN)

        assert nvidia.startswith("#!/bin/bash\n")
        assert "export __GL_SHADER_DISK_CACHE=1" in nvidia
        assert "RADV_PERFTEST" not in nvidia
        assert 'export RADV_PERFTEST="aco,llvm"' in amd
        assert 'export DXVK_CONFIG_FILE="$GAMEDIR/dxvk.conf"' in unknown
        assert 'export WINE_CPU_TOPOLOGY="4:2"' in unknown

    def test_apply_writes_everything(self, runner, tmp_path) -> None:
        runner.on("lspci", lambda argv, env: CommandResult(argv=argv, returncode=0, stdout=LSPCI_AMD))
        service = make_service(runner, tmp_path, tools=("lspci",))
        game = tmp_path / "game"

        warnings = service.apply(game)

        assert warnings == []
        assert (game / "dxvk.conf").read_text() == DXVK_CONFIG
        assert all((game / name).is_dir() for name in SHADER_CACHE_DIRS)
        assert "amd graphics" in service.graphics_env_path.read_text()
        assert service.wine_env_path.read_text() == WINE_ENV_SCRIPT
        assert service.graphics_env_path.stat().st_mode & 0o777 == 0o755
        assert service.wine_env_path.stat().st_mode & 0o777 == 0o755
        assert service.env_scripts_written()

    def test_apply_without_game_path(self, runner, tmp_path) -> None:
        service = make_service(runner, tmp_path)
        warnings = service.apply(None)
        assert len(warnings) == 1
        assert service.env_scripts_written()

    def test_reset_wine_environment(self, runner, runtime, tmp_path) -> None:
        service = make_service(runner, tmp_path)
        service.apply(None)
        runner.registry[(DLL_OVERRIDES_KEY, "nvapi")] = "disabled"

        removed = service.reset_wine_environment(tmp_path / "prefix", runtime)

        assert sorted(removed) == sorted([service.wine_env_path, service.graphics_env_path])
        assert not service.env_scripts_written()
        assert runner.registry == {}

    def test_reset_declined(self, runner, runtime, tmp_path) -> None:
        service = make_service(runner, tmp_path, confirm=lambda title, message: False)
        service.apply(None)
        with pytest.raises(UserCancelled):
            service.reset_wine_environment(tmp_path / "prefix", runtime)
        assert service.env_scripts_written()


class TestDxvkConfig:
    def test_toggle_options(self, runner, tmp_path) -> None:
        service = make_service(runner, tmp_path)
        game = tmp_path / "game"

        service.set_dxvk_option(game, "useAsync", False)
        service.set_dxvk_option(game, "enableStateCache", False)

        values = service.read_dxvk_config(game)
        assert values["dxvk.useAsync"] == "False"
        assert values["dxvk.enableStateCache"] == "False"
        assert values["dxvk.maxFrameLatency"] == "1"
        text = (game / "dxvk.conf").read_text()
        assert text.count("dxvk.useAsync") == 1

    def test_unknown_option(self, runner, tmp_path) -> None:
        with pytest.raises(ValueError):
            make_service(runner, tmp_path).set_dxvk_option(tmp_path, "hud", True)

    def test_reset(self, runner, tmp_path) -> None:
        service = make_service(runner, tmp_path)
        game = tmp_path / "game"
        service.set_dxvk_option(game, "useAsync", False)
        service.reset_dxvk_config(game)
        assert (game / "dxvk.conf").read_text() == DXVK_CONFIG

    def test_reset_declined(self, runner, tmp_path) -> None:
        service = make_service(runner, tmp_path, confirm=lambda title, message: False)
        with pytest.raises(UserCancelled):
            service.reset_dxvk_config(tmp_path / "game")
        assert not (tmp_path / "game" / "dxvk.conf").exists()

    def test_missing_config_reads_empty(self, runner, tmp_path) -> None:
        assert make_service(runner, tmp_path).read_dxvk_config(tmp_path / "nowhere") == {}


class TestLaunchScript:
    def test_launch_script_sources_both_env_files(self, runner, runtime, tmp_path) -> None:
        service = make_service(runner, tmp_path)
        prefix = tmp_path / "My Games" / "wow"

        path = service.write_launch_script(prefix, tmp_path / "game", runtime)
        text = path.read_text()

        assert path == tmp_path / "cfg" / "launch.sh"
        assert path.stat().st_mode & 0o777 == 0o755
        assert text.startswith("#!/bin/bash\n")
        assert f"export WINE_PREFIX_PATH='{prefix}'" in text
        assert f"source {service.wine_env_path}" in text
        assert f"source {service.graphics_env_path}" in text
        assert "export WINE_RT_PRIORITY_BASE=15" in text
        assert "export STEAM_COMPAT_DATA_PATH=" in text
        last = text.splitlines()[-1]
        assert last.startswith(f"exec {runtime.executable_path}")
        assert last.endswith('Battle.net Launcher.exe\' "$@"')

    def test_community_runtime_has_no_proton_exports(self, runner, tmp_path) -> None:
        root = tmp_path / "runners" / "wine-9.5"
        runtime = Runtime(id="wine-9.5", kind=RuntimeKind.COMMUNITY_WINE_TKG, install_root=root,
                          executable_path=make_executable_file(root / "bin" / "wine"))
        text = make_service(runner, tmp_path).render_launch_script(tmp_path / "prefix", None, runtime)
        assert "STEAM_COMPAT_DATA_PATH" not in text
        assert "export GAMEDIR=''" in text

    def test_runtime_without_executable(self, runner, tmp_path) -> None:
        runtime = Runtime(id="broken", kind=RuntimeKind.CUSTOM, install_root=tmp_path)
        with pytest.raises(DependencyMissing):
            make_service(runner, tmp_path).render_launch_script(tmp_path, None, runtime)
