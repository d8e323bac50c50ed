"""
Graphics & Wine Environment Menu Handler for Azeroth Winebar CLI Frontend
"""

from enum import Enum

from azeroth_winebar.backend.errors import AzerothWinebarError, DependencyMissing, PrefixCorrupt
from azeroth_winebar.shared.colors import COLOR_INFO, COLOR_RESET, COLOR_WARNING

from .menu_utils import show_enum_menu, pause


class GraphicsMenuAction(Enum):
    APPLY = ("Apply Graphics Optimisations", "dxvk.conf, shader caches, graphics_env.sh, wine_env.sh, launch.sh")
    ASYNC_ON = ("Enable Async Shader Compilation", "dxvk.useAsync = True")
    ASYNC_OFF = ("Disable Async Shader Compilation", "dxvk.useAsync = False")
    STATE_CACHE_ON = ("Enable State Cache", "dxvk.enableStateCache = True")
    STATE_CACHE_OFF = ("Disable State Cache", "dxvk.enableStateCache = False")
    VIEW_DXVK = ("View DXVK Configuration", "Show the current dxvk.conf values")
    RESET_DXVK = ("Reset DXVK Configuration", "Overwrite dxvk.conf with the defaults")
    DLL_OVERRIDES = ("Disable NVIDIA DLLs", "nvapi, nvapi64, nvcuda, nvcuvid, nvencodeapi overrides")
    RESET_WINE_ENV = ("Reset Wine Environment", "Remove the env scripts and the prefix's DLL overrides")


class GraphicsMenuHandler:
    """
    Handles the graphics and wine environment submenu
    """

    def __init__(self):
        self.logger = None  # Will be set by CLI when needed

    def show_graphics_menu(self, cli_instance):
        actions = {
            GraphicsMenuAction.APPLY: self._apply,
            GraphicsMenuAction.ASYNC_ON: lambda cli: self._toggle(cli, "useAsync", True),
            GraphicsMenuAction.ASYNC_OFF: lambda cli: self._toggle(cli, "useAsync", False),
            GraphicsMenuAction.STATE_CACHE_ON: lambda cli: self._toggle(cli, "enableStateCache", True),
            GraphicsMenuAction.STATE_CACHE_OFF: lambda cli: self._toggle(cli, "enableStateCache", False),
            GraphicsMenuAction.VIEW_DXVK: self._view_dxvk,
            GraphicsMenuAction.RESET_DXVK: self._reset_dxvk,
            GraphicsMenuAction.DLL_OVERRIDES: self._dll_overrides,
            GraphicsMenuAction.RESET_WINE_ENV: self._reset_wine_env,
        }
        while True:
            action = show_enum_menu("Graphics & Wine Environment", GraphicsMenuAction, cli_instance.input_func)
            if action is None:
                return
            try:
                actions[action](cli_instance)
            except AzerothWinebarError as e:
                cli_instance.context.menu.error(e.title, f"{e}\n\n{e.hint}")
            pause(cli_instance.input_func)

    @staticmethod
    def _require_game_path(cli_instance):
        game_path = cli_instance.context.game_path
        if game_path is None:
            print(f"\n{COLOR_WARNING}Set the game directory in Settings first.{COLOR_RESET}")
        return game_path

    @staticmethod
    def _require_prefix_and_runtime(cli_instance):
        context = cli_instance.context
        prefix = context.prefix_path
        if prefix is None or not context.prefixes.verify(prefix):
            raise PrefixCorrupt("No initialised wine prefix configured",
                                hint="Run 'Install Battle.net' or set the prefix directory in Settings.")
        runtime = context.catalogue.resolve_runtime()
        if runtime is None:
            raise DependencyMissing(context.catalogue.get_default(),
                                    "The default runtime is not installed",
                                    hint="Install a runtime from the Wine Runtimes menu.")
        return prefix, runtime

    def _apply(self, cli_instance):
        context = cli_instance.context
        prefix, runtime = self._require_prefix_and_runtime(cli_instance)
        warnings = context.graphics.apply(context.game_path)
        script = context.graphics.write_launch_script(prefix, context.game_path, runtime)
        for message in warnings:
            print(f"{COLOR_WARNING}{message}{COLOR_RESET}")
        print(f"\n{COLOR_INFO}Graphics optimisations applied. Launch script: {script}{COLOR_RESET}")

    def _toggle(self, cli_instance, option, enabled):
        game_path = self._require_game_path(cli_instance)
        if game_path is None:
            return
        path = cli_instance.context.graphics.set_dxvk_option(game_path, option, enabled)
        print(f"\n{COLOR_INFO}dxvk.{option} = {enabled} in {path}{COLOR_RESET}")

    def _view_dxvk(self, cli_instance):
        game_path = self._require_game_path(cli_instance)
        if game_path is None:
            return
        values = cli_instance.context.graphics.read_dxvk_config(game_path)
        if not values:
            print(f"\n{COLOR_WARNING}No dxvk.conf in {game_path}{COLOR_RESET}")
            return
        for key, value in values.items():
            print(f"  {key} = {value}")

    def _reset_dxvk(self, cli_instance):
        game_path = self._require_game_path(cli_instance)
        if game_path is None:
            return
        path = cli_instance.context.graphics.reset_dxvk_config(game_path)
        print(f"\n{COLOR_INFO}DXVK configuration reset: {path}{COLOR_RESET}")

    def _dll_overrides(self, cli_instance):
        prefix, runtime = self._require_prefix_and_runtime(cli_instance)
        disabled = cli_instance.context.prefixes.apply_dll_overrides(prefix, runtime)
        print(f"\n{COLOR_INFO}Disabled: {', '.join(disabled)}{COLOR_RESET}")

    def _reset_wine_env(self, cli_instance):
        prefix, runtime = self._require_prefix_and_runtime(cli_instance)
        removed = cli_instance.context.graphics.reset_wine_environment(prefix, runtime)
        print(f"\n{COLOR_INFO}Wine environment reset ({len(removed)} scripts removed).{COLOR_RESET}")
