"""
Application context

One explicit value holding the Config Store, the services and the
environment overrides of the current run. It is built once at start-up and
handed to the orchestrator and the menus.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from azeroth_winebar.backend.handlers.config_handler import ConfigStore, InstanceLock
from azeroth_winebar.backend.handlers.game_config_handler import GameConfigHandler
from azeroth_winebar.backend.handlers.menu_handler import MenuHandler
from azeroth_winebar.backend.handlers.privilege_handler import PrivilegeBroker
from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner
from azeroth_winebar.backend.handlers.wine_utils import WineUtils
from azeroth_winebar.backend.handlers.winetricks_handler import WinetricksHandler
from azeroth_winebar.backend.services.desktop_integration_service import DesktopIntegrationService
from azeroth_winebar.backend.services.graphics_tuning_service import GraphicsTuningService
from azeroth_winebar.backend.services.launcher_install_service import LauncherInstallService
from azeroth_winebar.backend.services.platform_detection_service import PlatformDetectionService
from azeroth_winebar.backend.services.preflight_service import PreflightService
from azeroth_winebar.backend.services.prefix_service import PrefixService
from azeroth_winebar.backend.services.runtime_catalogue_service import RuntimeCatalogueService
from azeroth_winebar.shared.paths import get_downloads_dir

logger = logging.getLogger(__name__)


@dataclass
class EnvOverrides:
    """User-facing environment variables, read once per run."""
    home: Optional[str] = None
    debug: bool = False
    force_terminal: bool = False
    wineprefix: Optional[str] = None

    @classmethod
    def from_environ(cls, environ: Optional[Dict[str, str]] = None) -> 'EnvOverrides':
        environ = os.environ if environ is None else environ
        return cls(
            home=environ.get("HOME") or None,
            debug=bool(environ.get("DEBUG")),
            force_terminal=bool(environ.get("FORCE_TERMINAL")),
            wineprefix=environ.get("WINEPREFIX") or None,
        )


@dataclass
class AppContext:
    store: ConfigStore
    runner: CommandRunner
    menu: MenuHandler
    broker: PrivilegeBroker
    platform: PlatformDetectionService
    catalogue: RuntimeCatalogueService
    preflight: PreflightService
    prefixes: PrefixService
    launcher: LauncherInstallService
    game_config: GameConfigHandler
    graphics: GraphicsTuningService
    desktop: DesktopIntegrationService
    lock: InstanceLock
    overrides: EnvOverrides
    download_dir: Path

    @property
    def prefix_path(self) -> Optional[Path]:
        """WINEPREFIX for this run if set, else the stored prefix path."""
        if self.overrides.wineprefix:
            return Path(self.overrides.wineprefix)
        stored = self.store.get("prefix_path")
        return Path(stored) if stored else None

    @property
    def game_path(self) -> Optional[Path]:
        stored = self.store.get("game_path")
        return Path(stored) if stored else None

    def set_prefix_path(self, path: Path) -> None:
        self.store.set("prefix_path", str(path))

    def set_game_path(self, path: Path) -> None:
        self.store.set("game_path", str(path))


def build_context(environ: Optional[Dict[str, str]] = None,
                  input_func: Callable[[str], str] = input,
                  config_dir: Optional[Path] = None) -> AppContext:
    """Wire every service around one CommandRunner and one Config Store."""
    overrides = EnvOverrides.from_environ(environ)
    platform = PlatformDetectionService(environ=environ)
    runner = CommandRunner()
    menu = MenuHandler(gui_allowed=platform.gui_allowed(), input_func=input_func, runner=runner)
    store = ConfigStore(config_dir)
    wine = WineUtils(runner)
    winetricks = WinetricksHandler(runner, wine)
    broker = PrivilegeBroker(runner, notify=lambda message: menu.info("Administrator access", message),
                             confirm=menu.question)

    context = AppContext(
        store=store,
        runner=runner,
        menu=menu,
        broker=broker,
        platform=platform,
        catalogue=RuntimeCatalogueService(store, runner, confirm=menu.question, wine=wine),
        preflight=PreflightService(broker),
        prefixes=PrefixService(runner, confirm=menu.question, wine=wine, winetricks=winetricks),
        launcher=LauncherInstallService(runner, wine),
        game_config=GameConfigHandler(store),
        graphics=GraphicsTuningService(runner, wine, confirm=menu.question, config_dir=store.config_dir),
        desktop=DesktopIntegrationService(),
        lock=InstanceLock(store.config_dir),
        overrides=overrides,
        download_dir=get_downloads_dir(),
    )
    if overrides.wineprefix:
        logger.info(f"Using WINEPREFIX override for this run: {overrides.wineprefix}")
    return context
