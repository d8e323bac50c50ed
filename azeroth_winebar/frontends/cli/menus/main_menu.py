"""
Main Menu Handler for Azeroth Winebar CLI Frontend
"""

from enum import Enum
from typing import Optional

from .menu_utils import show_enum_menu


class MainMenuAction(Enum):
    PREFLIGHT = ("System Preflight", "Check vm.max_map_count, open file limits and memory")
    INSTALL_LAUNCHER = ("Install Battle.net", "Runtime, wine prefix, launcher and tweaks in one go")
    RUNTIMES = ("Wine Runtimes", "Install, select and remove Proton and wine builds")
    GAME_TWEAKS = ("World of Warcraft Tweaks", "Config.wtf settings and keybinding backups")
    GRAPHICS = ("Graphics & Wine Environment", "DXVK config, vendor optimisations, DLL overrides")
    DESKTOP = ("Desktop Integration", "Applications menu entry and desktop shortcut")
    SETTINGS = ("Settings", "Prefix and game directories, logs, reset configuration")
    LAUNCH = ("Launch Battle.net", "Start the launcher with the generated launch script")


class MainMenuHandler:
    """
    Handles the main interactive menu display and user input routing
    """

    def __init__(self):
        self.logger = None  # Will be set by CLI when needed

    def show_main_menu(self, cli_instance) -> Optional[MainMenuAction]:
        """
        Show the main menu and return the user's selection

        Args:
            cli_instance: Reference to main CLI instance for access to the context

        Returns:
            MainMenuAction, or None to exit
        """
        subtitle = None
        if cli_instance.context.store.is_first_run():
            subtitle = "First run: start with 'Install Battle.net' to set everything up."
        return show_enum_menu("Main Menu", MainMenuAction, cli_instance.input_func,
                              exit_label="Exit Azeroth Winebar", subtitle=subtitle)
