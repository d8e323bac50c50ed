#!/usr/bin/env python3
"""
Graphics Tuning Service

Writes dxvk.conf into the game directory, the vendor-aware graphics_env.sh
and wine_env.sh scripts into the config directory, and the launch.sh helper
that sources both.
"""

import logging
import re
import shlex
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from azeroth_winebar.backend.errors import DependencyMissing, UserCancelled
from azeroth_winebar.backend.handlers.filesystem_handler import FileSystemHandler
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner
from azeroth_winebar.backend.handlers.wine_utils import WineUtils, proton_environment
from azeroth_winebar.backend.models.runtime import Runtime
from azeroth_winebar.backend.services.launcher_install_service import LAUNCHER_WINDOWS_PATH
from azeroth_winebar.backend.services.prefix_service import DLL_OVERRIDES_KEY
from azeroth_winebar.shared.paths import get_config_dir

logger = logging.getLogger(__name__)

DXVK_CONFIG_NAME = "dxvk.conf"
GRAPHICS_ENV_NAME = "graphics_env.sh"
WINE_ENV_NAME = "wine_env.sh"
LAUNCH_SCRIPT_NAME = "launch.sh"
SHADER_CACHE_DIRS = ["shadercache", "dxvk_cache", "vkd3d_cache"]

DISPLAY_CLASS_RE = re.compile(r"vga|3d controller|display controller", re.IGNORECASE)
AMD_RE = re.compile(r"\b(amd|ati|radeon)\b", re.IGNORECASE)

DXVK_CONFIG = """\
# DXVK Configuration for World of Warcraft
# Generated by Azeroth Winebar

# Enable state cache for faster loading
dxvk.enableStateCache = True

# Optimize memory usage
dxvk.maxFrameLatency = 1

# Enable async shader compilation for smoother gameplay
dxvk.useAsync = True

# Optimize for gaming performance
dxvk.numCompilerThreads = 0

# Enable graphics pipeline library for better performance
dxvk.enableGraphicsPipelineLibrary = True

# Optimize VRAM usage
dxvk.maxDeviceMemory = 0

# Enable fast geometry shader passthrough
dxvk.useRawSsbo = True

# Optimize for WoW's rendering patterns
dxvk.shrinkNvidiaHvv = False

# Enable optimizations for older games
dxvk.enableOpenVR = False
"""

DXVK_TOGGLES = ("useAsync", "enableStateCache")

COMMON_GRAPHICS_ENV = [
    ("DXVK_CONFIG_FILE", '"$GAMEDIR/dxvk.conf"'),
    ("DXVK_STATE_CACHE_PATH", '"$GAMEDIR/dxvk_cache"'),
    ("DXVK_LOG_LEVEL", '"warn"'),
    ("DXVK_HUD", '"compiler"'),
    ("VKD3D_CONFIG", '"dxr"'),
    ("VKD3D_SHADER_CACHE_PATH", '"$GAMEDIR/vkd3d_cache"'),
]

PERFORMANCE_GRAPHICS_ENV = [
    ("WINE_CPU_TOPOLOGY", '"4:2"'),
    ("WINE_LARGE_ADDRESS_AWARE", "1"),
]

WINE_ENV_SCRIPT = """\
#!/bin/bash
# Wine environment variables for World of Warcraft
# Generated by Azeroth Winebar

# Wine prefix and basic configuration
export WINEPREFIX="$WINE_PREFIX_PATH"
export WINEARCH="win64"
export WINE_LARGE_ADDRESS_AWARE=1

# DLL overrides for WoW optimization
export WINEDLLOVERRIDES="nvapi=disabled;nvapi64=disabled;nvcuda=disabled;nvcuvid=disabled;nvencodeapi=disabled;nvencodeapi64=disabled"

# Wine Staging optimizations
export STAGING_SHARED_MEMORY=1
export STAGING_RT_PRIORITY_SERVER=90
export STAGING_RT_PRIORITY_BASE=90

# DXVK and VKD3D optimizations
export DXVK_ASYNC=1
export DXVK_STATE_CACHE=1
export VKD3D_CONFIG="dxr"

# Memory and performance optimizations
export WINE_CPU_TOPOLOGY="4:2"
export WINE_HEAP_DELAY_FREE=1

# Audio optimizations
export PULSE_LATENCY_MSEC=60
export ALSA_PERIOD_SIZE=1024

# Disable wine debugging for performance
export WINEDEBUG=-all

# Enable DXVA2 backend for Wine Staging
export WINE_DXVA2_BACKEND=1

# Esync and Fsync optimizations (if available)
export WINEESYNC=1
export WINEFSYNC=1

# Prevent wine from creating desktop shortcuts and menu entries
export WINEDLLOVERRIDES="$WINEDLLOVERRIDES;winemenubuilder.exe=disabled"

export WINE_VK_USE_FSR=0
"""


class GraphicsVendor(Enum):
    NVIDIA = "nvidia"
    AMD = "amd"
    INTEL = "intel"
    UNKNOWN = "unknown"


VENDOR_GRAPHICS_ENV: Dict[GraphicsVendor, List[tuple]] = {
    GraphicsVendor.NVIDIA: [
        ("__GL_SHADER_DISK_CACHE", "1"),
        ("__GL_SHADER_DISK_CACHE_PATH", '"$GAMEDIR/shadercache"'),
        ("__GL_SHADER_DISK_CACHE_SKIP_CLEANUP", "1"),
        ("__GL_THREADED_OPTIMIZATIONS", "1"),
        ("__GL_DXVK_OPTIMIZATIONS", "1"),
        ("NVIDIA_WINE_DLSS", "1"),
    ],
    GraphicsVendor.AMD: [
        ("RADV_PERFTEST", '"aco,llvm"'),
        ("AMD_VULKAN_ICD", '"RADV"'),
        ("MESA_VK_VERSION_OVERRIDE", '"1.3"'),
        ("ACO_DEBUG", '"validateir,validatera"'),
    ],
    GraphicsVendor.INTEL: [
        ("ANV_ENABLE_PIPELINE_CACHE", "1"),
        ("MESA_VK_VERSION_OVERRIDE", '"1.3"'),
    ],
    GraphicsVendor.UNKNOWN: [],
}


def classify_vendor(gpu_info: str) -> GraphicsVendor:
    """Map hardware-listing text to a vendor; NVIDIA wins over AMD over Intel."""
    if not gpu_info.strip():
        return GraphicsVendor.UNKNOWN
    lowered = gpu_info.lower()
    if "nvidia" in lowered:
        return GraphicsVendor.NVIDIA
    if AMD_RE.search(gpu_info):
        return GraphicsVendor.AMD
    if "intel" in lowered:
        return GraphicsVendor.INTEL
    return GraphicsVendor.UNKNOWN


def graphics_env_lines(vendor: GraphicsVendor) -> List[str]:
    assignments = COMMON_GRAPHICS_ENV + VENDOR_GRAPHICS_ENV[vendor] + PERFORMANCE_GRAPHICS_ENV
    return [f"export {name}={value}" for name, value in assignments]


def render_graphics_env(vendor: GraphicsVendor) -> str:
    header = [
        "#!/bin/bash",
        "# Graphics optimization environment variables",
        f"# Generated by Azeroth Winebar for {vendor.value} graphics",
        "",
        "# GAMEDIR is set by the launch script to the WoW installation directory",
        "",
    ]
    return "\n".join(header + graphics_env_lines(vendor)) + "\n"


class GraphicsTuningService:
    """
    Owns dxvk.conf, graphics_env.sh, wine_env.sh and launch.sh.

    Args:
        runner: used for the hardware listing and the registry reset
        confirm: callback(title, message) -> bool asked before destructive resets
        which: PATH lookup, replaceable in tests
    """

    def __init__(self, runner: Optional[CommandRunner] = None,
                 wine: Optional[WineUtils] = None,
                 confirm: Optional[Callable[[str, str], bool]] = None,
                 config_dir: Optional[Path] = None,
                 which: Callable[[str], Optional[str]] = shutil.which):
        self.runner = runner or CommandRunner()
        self.wine = wine or WineUtils(self.runner)
        self.confirm = confirm or (lambda title, message: True)
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self._which = which

    @property
    def graphics_env_path(self) -> Path:
        return self.config_dir / GRAPHICS_ENV_NAME

    @property
    def wine_env_path(self) -> Path:
        return self.config_dir / WINE_ENV_NAME

    @property
    def launch_script_path(self) -> Path:
        return self.config_dir / LAUNCH_SCRIPT_NAME

    # ------------------------------------------------------------------
    # Vendor detection
    # ------------------------------------------------------------------

    def _gpu_info(self) -> str:
        if self._which("lspci"):
            result = self.runner.run(["lspci"], timeout=30)
            if result.ok:
                return "\n".join(line for line in result.stdout.splitlines()
                                 if DISPLAY_CLASS_RE.search(line))
            logger.debug(f"lspci exited {result.returncode}")
        if self._which("lshw"):
            result = self.runner.run(["lshw", "-c", "display"], timeout=60)
            if result.ok:
                return "\n".join(line for line in result.stdout.splitlines()
                                 if "vendor" in line.lower())
            logger.debug(f"lshw exited {result.returncode}")
        logger.debug("Unable to detect graphics vendor - no lspci or lshw available")
        return ""

    def detect_vendor(self) -> GraphicsVendor:
        vendor = classify_vendor(self._gpu_info())
        logger.info(f"Graphics vendor detected: {vendor.value}")
        return vendor

    # ------------------------------------------------------------------
    # dxvk.conf
    # ------------------------------------------------------------------

    @staticmethod
    def dxvk_config_path(game_path: Path) -> Path:
        return Path(game_path) / DXVK_CONFIG_NAME

    def write_dxvk_config(self, game_path: Path) -> Path:
        path = self.dxvk_config_path(game_path)
        logger.info(f"Creating DXVK config at: {path}")
        FileSystemHandler.atomic_write_text(path, DXVK_CONFIG)
        return path

    def ensure_dxvk_config(self, game_path: Path) -> Path:
        path = self.dxvk_config_path(game_path)
        if path.is_file():
            return path
        return self.write_dxvk_config(game_path)

    def reset_dxvk_config(self, game_path: Path) -> Path:
        """Overwrite dxvk.conf with the default content after confirmation."""
        if not self.confirm(
            "Reset Configuration",
            "Are you sure you want to reset the DXVK configuration to defaults?\n\n"
            "This will overwrite any custom settings.",
        ):
            raise UserCancelled("DXVK configuration reset was declined")
        return self.write_dxvk_config(game_path)

    def read_dxvk_config(self, game_path: Path) -> Dict[str, str]:
        values = {}
        path = self.dxvk_config_path(game_path)
        if not path.is_file():
            return values
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, value = line.split("=", 1)
            values[key.strip()] = value.strip()
        return values

    def set_dxvk_option(self, game_path: Path, option: str, enabled: bool) -> Path:
        """Toggle `dxvk.useAsync` or `dxvk.enableStateCache`."""
        if option not in DXVK_TOGGLES:
            raise ValueError(f"Unsupported DXVK option: {option}")
        path = self.ensure_dxvk_config(game_path)
        key = f"dxvk.{option}"
        wanted = f"{key} = {'True' if enabled else 'False'}"
        lines = path.read_text(encoding="utf-8").splitlines()
        found = False
        for index, line in enumerate(lines):
            if line.strip().startswith(key) and line.split("=", 1)[0].strip() == key:
                lines[index] = wanted
                found = True
        if not found:
            lines.append(wanted)
        FileSystemHandler.atomic_write_text(path, "\n".join(lines) + "\n")
        logger.info(f"Set {wanted} in {path}")
        return path

    # ------------------------------------------------------------------
    # Shader caches and environment scripts
    # ------------------------------------------------------------------

    def setup_shader_cache(self, game_path: Path) -> List[str]:
        """Create the shader cache directories. Returns warnings for any that failed."""
        warnings = []
        for name in SHADER_CACHE_DIRS:
            cache_dir = Path(game_path) / name
            try:
                cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                message = f"Failed to create shader cache directory {cache_dir}: {e}"
                logger.warning(message)
                warnings.append(message)
        return warnings

    def write_graphics_env(self, vendor: Optional[GraphicsVendor] = None) -> Path:
        vendor = vendor or self.detect_vendor()
        FileSystemHandler.atomic_write_text(self.graphics_env_path, render_graphics_env(vendor), mode=0o755)
        logger.info(f"Graphics environment written for {vendor.value}: {self.graphics_env_path}")
        return self.graphics_env_path

    def write_wine_env(self) -> Path:
        FileSystemHandler.atomic_write_text(self.wine_env_path, WINE_ENV_SCRIPT, mode=0o755)
        logger.info(f"Wine environment written: {self.wine_env_path}")
        return self.wine_env_path

    def env_scripts_written(self) -> bool:
        return self.graphics_env_path.is_file() and self.wine_env_path.is_file()

    def apply(self, game_path: Optional[Path]) -> List[str]:
        """
        Apply every graphics optimisation. Without a game path only the
        environment scripts are written.

        Returns:
            List[str]: warnings for the parts that were skipped or failed
        """
        warnings = []
        vendor = self.detect_vendor()
        if game_path:
            self.write_dxvk_config(game_path)
            warnings.extend(self.setup_shader_cache(game_path))
        else:
            message = "Game directory not configured, skipping dxvk.conf and shader caches"
            logger.warning(message)
            warnings.append(message)
        self.write_graphics_env(vendor)
        self.write_wine_env()
        return warnings

    def reset_wine_environment(self, prefix: Path, runtime: Runtime) -> List[Path]:
        """Delete both environment scripts and the prefix's DllOverrides key."""
        if not self.confirm(
            "Reset Wine Environment",
            "Are you sure you want to reset the wine environment configuration?\n\n"
            "This will remove all DLL overrides and the custom environment variables.",
        ):
            raise UserCancelled("Wine environment reset was declined")
        result = self.wine.reg_delete(prefix, runtime, DLL_OVERRIDES_KEY)
        if not result.ok:
            logger.warning(f"Could not delete DllOverrides key: {result.stderr.strip()}")
        removed = []
        for path in (self.wine_env_path, self.graphics_env_path):
            if path.is_file():
                logger.debug(f"Removing environment file: {path}")
                path.unlink()
                removed.append(path)
        logger.info("Wine environment reset completed")
        return removed

    # ------------------------------------------------------------------
    # Launch helper
    # ------------------------------------------------------------------

    def render_launch_script(self, prefix: Path, game_path: Optional[Path], runtime: Runtime) -> str:
        if not runtime.executable_path:
            raise DependencyMissing(runtime.id, f"Runtime {runtime.id} has no wine executable")
        game_dir = str(game_path) if game_path else ""
        lines = [
            "#!/bin/bash",
            "# World of Warcraft launch helper",
            "# Generated by Azeroth Winebar",
            "",
            f"export WINE_PREFIX_PATH={shlex.quote(str(prefix))}",
            f"export GAMEDIR={shlex.quote(game_dir)}",
            "",
            f"if [[ -f {shlex.quote(str(self.wine_env_path))} ]]; then",
            f"    source {shlex.quote(str(self.wine_env_path))}",
            "fi",
            "",
            f"if [[ -f {shlex.quote(str(self.graphics_env_path))} ]]; then",
            f"    source {shlex.quote(str(self.graphics_env_path))}",
            "fi",
            "",
            "export WINE_RT_PRIORITY_BASE=15",
            "export WINE_RT_PRIORITY_SERVER=15",
            "export WINE_HEAP_DELAY_FREE=1",
            "export WINE_DISABLE_WRITE_WATCH=1",
            'export WINEPREFIX="$WINE_PREFIX_PATH"',
            "",
        ]
        for name, value in proton_environment(runtime, Path(prefix)).items():
            lines.append(f"export {name}={shlex.quote(value)}")
        lines.append(f"exec {shlex.quote(str(runtime.executable_path))} {shlex.quote(LAUNCHER_WINDOWS_PATH)} \"$@\"")
        return "\n".join(lines) + "\n"

    def write_launch_script(self, prefix: Path, game_path: Optional[Path], runtime: Runtime) -> Path:
        content = self.render_launch_script(prefix, game_path, runtime)
        FileSystemHandler.atomic_write_text(self.launch_script_path, content, mode=0o755)
        logger.info(f"Launch script written: {self.launch_script_path}")
        return self.launch_script_path
