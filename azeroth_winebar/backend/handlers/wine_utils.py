#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Wine Utilities Module
Handles wine invocations inside a prefix: environment setup, prefix
initialisation, registry edits and wineserver synchronisation.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Dict, Optional

from azeroth_winebar.backend.handlers.subprocess_utils import (
    CommandRunner, CommandResult, get_clean_subprocess_env,
)
from azeroth_winebar.backend.models.runtime import Runtime

# Initialize logger
logger = logging.getLogger(__name__)

REG_VALUE_RE = re.compile(r"^\s*(.+?)\s+(REG_[A-Z_]+)\s*(.*)$")
WINE_VERSION_RE = re.compile(r"wine-(\d+(?:\.\d+)+)")
BARE_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)*)")

WINEBOOT_TIMEOUT = 600
REG_TIMEOUT = 120
WINESERVER_TIMEOUT = 300


def proton_environment(runtime: Runtime, prefix: Path) -> Dict[str, str]:
    """
    Variables a Proton-derived runtime needs in addition to the plain wine
    ones. Empty for other kinds.
    """
    if not runtime.is_vendor_experimental:
        return {}
    return {
        "STEAM_COMPAT_DATA_PATH": str(prefix),
        "STEAM_COMPAT_CLIENT_INSTALL_PATH": str(runtime.install_root),
        "PROTON_USE_WINE3D": "1",
        "PROTON_NO_ESYNC": "0",
        "PROTON_NO_FSYNC": "0",
        "PROTON_FORCE_LARGE_ADDRESS_AWARE": "1",
        "PROTON_ENABLE_NVAPI": "0",
        "PROTON_HIDE_NVIDIA_GPU": "0",
        "PROTON_USE_WINED3D": "0",
    }


class WineUtils:
    """
    Utilities for running a runtime's wine binary against a prefix
    """

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    @staticmethod
    def wineserver_for(runtime: Runtime) -> Optional[str]:
        """The runtime's own wineserver, else the one on PATH."""
        if runtime.executable_path:
            sibling = Path(runtime.executable_path).parent / "wineserver"
            if sibling.is_file():
                return str(sibling)
        return shutil.which("wineserver")

    def build_wine_env(self, prefix: Path, runtime: Runtime, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env_vars = {
            "WINEPREFIX": str(prefix),
            "WINEARCH": "win64",
            "WINEDEBUG": "-all",
        }
        if runtime.executable_path:
            env_vars["WINE"] = str(runtime.executable_path)
        wineserver = self.wineserver_for(runtime)
        if wineserver:
            env_vars["WINESERVER"] = wineserver
        env_vars.update(proton_environment(runtime, prefix))
        if extra:
            env_vars.update(extra)
        return get_clean_subprocess_env(env_vars)

    def run_wine(self, prefix: Path, runtime: Runtime, args, timeout: Optional[float] = None,
                 extra_env: Optional[Dict[str, str]] = None) -> CommandResult:
        argv = [str(runtime.executable_path)] + [str(a) for a in args]
        return self.runner.run(argv, env=self.build_wine_env(prefix, runtime, extra_env), timeout=timeout)

    def wineboot_init(self, prefix: Path, runtime: Runtime) -> CommandResult:
        logger.info(f"Initialising wine prefix {prefix}")
        return self.run_wine(prefix, runtime, ["wineboot", "--init"], timeout=WINEBOOT_TIMEOUT)

    def wait_for_wineserver(self, prefix: Path, runtime: Runtime) -> bool:
        """
        Block until the prefix's wineserver has exited.
        Returns False (with a warning) if the wait could not be performed.
        """
        wineserver = self.wineserver_for(runtime)
        if not wineserver:
            logger.warning("wineserver not found, cannot wait for the prefix to settle")
            return False
        result = self.runner.run([wineserver, "--wait"], env=self.build_wine_env(prefix, runtime),
                                 timeout=WINESERVER_TIMEOUT)
        if result.timed_out:
            logger.warning(f"wineserver --wait did not finish within {WINESERVER_TIMEOUT}s, continuing anyway")
            return False
        if not result.ok:
            logger.warning(f"wineserver --wait exited {result.returncode}, continuing anyway")
            return False
        return True

    def kill_wineserver(self, prefix: Path, runtime: Runtime) -> None:
        wineserver = self.wineserver_for(runtime)
        if wineserver:
            self.runner.run([wineserver, "-k"], env=self.build_wine_env(prefix, runtime), timeout=30)

    def reg_add(self, prefix: Path, runtime: Runtime, key: str, name: str, value: str,
                value_type: str = "REG_SZ") -> CommandResult:
        logger.debug(f"reg add {key} /v {name} /d {value}")
        return self.run_wine(
            prefix, runtime,
            ["reg", "add", key, "/v", name, "/t", value_type, "/d", value, "/f"],
            timeout=REG_TIMEOUT,
        )

    def reg_delete(self, prefix: Path, runtime: Runtime, key: str, name: Optional[str] = None) -> CommandResult:
        args = ["reg", "delete", key]
        if name:
            args += ["/v", name]
        args.append("/f")
        return self.run_wine(prefix, runtime, args, timeout=REG_TIMEOUT)

    def reg_query(self, prefix: Path, runtime: Runtime, key: str, name: str) -> Optional[str]:
        """Return the data of one registry value, or None if it is not set."""
        result = self.run_wine(prefix, runtime, ["reg", "query", key, "/v", name], timeout=REG_TIMEOUT)
        if not result.ok:
            return None
        return parse_reg_query(result.stdout, name)

    def wine_version(self, executable: Path) -> Optional[str]:
        result = self.runner.run([str(executable), "--version"], timeout=60)
        if not result.ok:
            logger.warning(f"{executable} --version exited {result.returncode}")
            return None
        return parse_wine_version(result.stdout)


def parse_reg_query(output: str, name: str) -> Optional[str]:
    for line in output.splitlines():
        match = REG_VALUE_RE.match(line)
        if match and match.group(1).strip().lower() == name.lower():
            return match.group(3).strip()
    return None


def parse_wine_version(output: str) -> Optional[str]:
    match = WINE_VERSION_RE.search(output)
    if match:
        return match.group(1)
    match = BARE_VERSION_RE.search(output)
    return match.group(1) if match else None
