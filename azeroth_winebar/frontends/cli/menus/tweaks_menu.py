"""
Game Tweaks Menu Handler for Azeroth Winebar CLI Frontend
"""

from enum import Enum

from azeroth_winebar.backend.errors import AzerothWinebarError
from azeroth_winebar.backend.handlers.game_config_handler import STANDARD_TWEAKS
from azeroth_winebar.shared.colors import COLOR_INFO, COLOR_RESET, COLOR_WARNING, COLOR_PROMPT

from .menu_utils import show_enum_menu, pause


class TweaksMenuAction(Enum):
    APPLY_STANDARD = ("Apply Recommended Settings", "worldPreloadNonCritical 0, rawMouseEnable 1")
    SET_VALUE = ("Set a Config.wtf Value", "Write any SET <key> \"<value>\" line")
    SHOW = ("Show Config.wtf Settings", "List the current SET lines")
    BACKUP_CONFIG = ("Back Up Config.wtf", "Timestamped copy in the config directory")
    RESTORE_CONFIG = ("Restore Config.wtf", "Pick a backup to restore")
    BACKUP_KEYBINDS = ("Back Up Keybindings", "Copy every bindings-cache.wtf")
    RESTORE_KEYBINDS = ("Restore Keybindings", "Put keybinding caches back in place")
    CLEANUP = ("Remove Old Backups", "Delete backups older than 30 days")


class TweaksMenuHandler:
    """
    Handles the World of Warcraft tweaks submenu
    """

    def __init__(self):
        self.logger = None  # Will be set by CLI when needed

    def show_tweaks_menu(self, cli_instance):
        actions = {
            TweaksMenuAction.APPLY_STANDARD: self._apply_standard,
            TweaksMenuAction.SET_VALUE: self._set_value,
            TweaksMenuAction.SHOW: self._show,
            TweaksMenuAction.BACKUP_CONFIG: self._backup_config,
            TweaksMenuAction.RESTORE_CONFIG: self._restore_config,
            TweaksMenuAction.BACKUP_KEYBINDS: self._backup_keybinds,
            TweaksMenuAction.RESTORE_KEYBINDS: self._restore_keybinds,
            TweaksMenuAction.CLEANUP: self._cleanup,
        }
        while True:
            game_path = cli_instance.context.game_path
            subtitle = f"Game directory: {game_path}" if game_path else "Game directory not set (see Settings)"
            action = show_enum_menu("World of Warcraft Tweaks", TweaksMenuAction, cli_instance.input_func,
                                    subtitle=subtitle)
            if action is None:
                return
            if action is not TweaksMenuAction.CLEANUP and game_path is None:
                print(f"\n{COLOR_WARNING}Set the game directory in Settings first.{COLOR_RESET}")
                pause(cli_instance.input_func)
                continue
            try:
                actions[action](cli_instance, game_path)
            except AzerothWinebarError as e:
                cli_instance.context.menu.error(e.title, f"{e}\n\n{e.hint}")
            pause(cli_instance.input_func)

    def _apply_standard(self, cli_instance, game_path):
        handler = cli_instance.context.game_config
        config_file = handler.find_config(game_path)
        if config_file.is_file():
            handler.backup(config_file)
        handler.apply_standard_tweaks(config_file)
        for key, value in STANDARD_TWEAKS:
            print(f"{COLOR_INFO}SET {key} \"{value}\"{COLOR_RESET}")

    def _set_value(self, cli_instance, game_path):
        key = cli_instance.input_func(f"{COLOR_PROMPT}Setting name: {COLOR_RESET}").strip()
        if not key or " " in key:
            print(f"{COLOR_WARNING}Invalid setting name.{COLOR_RESET}")
            return
        value = cli_instance.input_func(f"{COLOR_PROMPT}Value: {COLOR_RESET}").strip()
        handler = cli_instance.context.game_config
        handler.set(handler.find_config(game_path), key, value)
        print(f"{COLOR_INFO}SET {key} \"{value}\"{COLOR_RESET}")

    def _show(self, cli_instance, game_path):
        handler = cli_instance.context.game_config
        config_file = handler.find_config(game_path)
        values = handler.read_all(config_file)
        if not values:
            print(f"\n{COLOR_WARNING}No settings in {config_file}{COLOR_RESET}")
            return
        print(f"\n{COLOR_INFO}{config_file}{COLOR_RESET}")
        for key, value in values.items():
            print(f"  {key} = {value}")

    def _backup_config(self, cli_instance, game_path):
        handler = cli_instance.context.game_config
        result = handler.backup(handler.find_config(game_path))
        print(f"\n{COLOR_INFO}Backup created: {result.backup_id}{COLOR_RESET}")

    def _restore_config(self, cli_instance, game_path):
        context = cli_instance.context
        backups = context.game_config.list_backups()
        if not backups:
            print(f"\n{COLOR_WARNING}No Config.wtf backups found.{COLOR_RESET}")
            return
        index = context.menu.select_from_list(backups, "Select a backup to restore")
        if index is None:
            return
        config_file = context.game_config.find_config(game_path)
        context.game_config.restore(config_file, backups[index])
        print(f"\n{COLOR_INFO}Restored {config_file} from {backups[index]}{COLOR_RESET}")

    def _backup_keybinds(self, cli_instance, game_path):
        result = cli_instance.context.game_config.backup_keybinds(game_path)
        print(f"\n{COLOR_INFO}Keybinding backup created: {result.backup_id} ({result.copied} files){COLOR_RESET}")
        if result.partial:
            print(f"{COLOR_WARNING}{result.failed} files could not be copied.{COLOR_RESET}")

    def _restore_keybinds(self, cli_instance, game_path):
        context = cli_instance.context
        backups = context.game_config.list_keybind_backups()
        if not backups:
            print(f"\n{COLOR_WARNING}No keybinding backups found.{COLOR_RESET}")
            return
        index = context.menu.select_from_list(backups, "Select a keybinding backup to restore")
        if index is None:
            return
        restored = context.game_config.restore_keybinds(game_path, backups[index])
        print(f"\n{COLOR_INFO}Restored {len(restored)} keybinding files{COLOR_RESET}")

    def _cleanup(self, cli_instance, game_path):
        removed = cli_instance.context.game_config.cleanup_backups()
        print(f"\n{COLOR_INFO}Removed {removed} old backups{COLOR_RESET}")
