"""
Settings Menu Handler for Azeroth Winebar CLI Frontend
"""

from enum import Enum

from azeroth_winebar.backend.errors import AzerothWinebarError
from azeroth_winebar.backend.handlers.logging_handler import LoggingHandler, Severity, report
from azeroth_winebar.shared.colors import COLOR_INFO, COLOR_RESET, COLOR_WARNING
from azeroth_winebar.shared.paths import get_default_prefix_dir, get_default_game_dir

from .menu_utils import show_enum_menu, pause


class SettingsMenuAction(Enum):
    PREFIX_PATH = ("Wine Prefix Directory", "Where the Battle.net prefix lives")
    GAME_PATH = ("Game Directory", "The World of Warcraft installation directory")
    SHOW = ("Show Configuration", "Current values of every stored setting")
    VIEW_LOG = ("View Log", "Last lines of the Azeroth Winebar log")
    RESET = ("Reset Configuration", "Erase stored settings (backups are kept)")


class SettingsMenuHandler:
    """
    Handles the settings submenu
    """

    def __init__(self):
        self.logger = None  # Will be set by CLI when needed

    def show_settings_menu(self, cli_instance):
        actions = {
            SettingsMenuAction.PREFIX_PATH: self._prefix_path,
            SettingsMenuAction.GAME_PATH: self._game_path,
            SettingsMenuAction.SHOW: self._show,
            SettingsMenuAction.VIEW_LOG: self._view_log,
            SettingsMenuAction.RESET: self._reset,
        }
        while True:
            action = show_enum_menu("Settings", SettingsMenuAction, cli_instance.input_func)
            if action is None:
                return
            try:
                actions[action](cli_instance)
            except AzerothWinebarError as e:
                cli_instance.context.menu.error(e.title, f"{e}\n\n{e.hint}")
            pause(cli_instance.input_func)

    def _prefix_path(self, cli_instance):
        context = cli_instance.context
        default = context.prefix_path or get_default_prefix_dir()
        chosen = context.menu.get_directory_path("Select the wine prefix directory", default)
        if chosen is None:
            return
        context.set_prefix_path(chosen)
        report(Severity.INFO, f"Wine prefix directory set to {chosen}")

    def _game_path(self, cli_instance):
        context = cli_instance.context
        default = context.game_path
        if default is None and context.prefix_path is not None:
            default = get_default_game_dir(context.prefix_path)
        chosen = context.menu.get_directory_path("Select the World of Warcraft directory", default,
                                                 create_if_missing=False)
        if chosen is None:
            return
        context.set_game_path(chosen)
        report(Severity.INFO, f"Game directory set to {chosen}")

    def _show(self, cli_instance):
        context = cli_instance.context
        snapshot = context.store.load()
        print(f"\n{COLOR_INFO}Configuration ({context.store.config_dir}){COLOR_RESET}")
        for key, value in snapshot.to_dict().items():
            print(f"  {key}: {value if value not in (None, '') else '-'}")
        print(f"  default runtime in use: {context.catalogue.get_default()}")
        if context.prefix_path is not None:
            prefix = context.prefixes.describe(context.prefix_path)
            state = "initialised" if prefix.initialised else "not initialised"
            print(f"  wine prefix: {state}, created with {prefix.runtime_used_for_init or 'unknown runtime'}")
        if context.overrides.wineprefix:
            print(f"  {COLOR_WARNING}WINEPREFIX override for this run: {context.overrides.wineprefix}{COLOR_RESET}")

    def _view_log(self, cli_instance):
        for line in LoggingHandler().get_log_content(lines=40):
            print(line.rstrip())

    def _reset(self, cli_instance):
        context = cli_instance.context
        if not context.menu.question("Reset Configuration",
                                     "Erase every stored setting? Backups are kept.", default=False):
            return
        removed = context.store.reset()
        report(Severity.INFO, f"Removed {len(removed)} settings.")
