#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Winetricks Handler Module
Handles font and component installation through the system winetricks
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from azeroth_winebar.backend.errors import DependencyMissing
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner, CommandResult
from azeroth_winebar.backend.handlers.wine_utils import WineUtils
from azeroth_winebar.backend.models.runtime import Runtime

logger = logging.getLogger(__name__)

WINETRICKS_TIMEOUT = 1800


class WinetricksHandler:
    """
    Runs winetricks verbs unattended against a prefix
    """

    def __init__(self, runner: Optional[CommandRunner] = None, wine: Optional[WineUtils] = None):
        self.runner = runner or CommandRunner()
        self.wine = wine or WineUtils(self.runner)
        self.winetricks_path = shutil.which("winetricks")

    def is_available(self) -> bool:
        return self.winetricks_path is not None

    def install_verb(self, prefix: Path, runtime: Runtime, verb: str) -> CommandResult:
        """
        Run `winetricks --unattended <verb>`.

        Raises:
            DependencyMissing: winetricks is not installed
        """
        if not self.is_available():
            self.winetricks_path = shutil.which("winetricks")
        if not self.is_available():
            raise DependencyMissing(
                "winetricks",
                hint="Install winetricks using your distribution's package manager.",
            )
        env = self.wine.build_wine_env(prefix, runtime, {"WINETRICKS_GUI": "none"})
        logger.info(f"Running winetricks {verb} in {prefix}")
        result = self.runner.run([self.winetricks_path, "--unattended", verb], env=env,
                                 timeout=WINETRICKS_TIMEOUT)
        if result.ok:
            logger.info(f"winetricks {verb} completed")
        else:
            logger.warning(f"winetricks {verb} exited {result.returncode}: {result.stderr.strip()[-500:]}")
        return result
