"""
Runtime Menu Handler for Azeroth Winebar CLI Frontend
"""

from enum import Enum

from azeroth_winebar.backend.errors import AzerothWinebarError
from azeroth_winebar.backend.models.runtime import RuntimeKind
from azeroth_winebar.shared.colors import COLOR_INFO, COLOR_RESET, COLOR_WARNING, COLOR_SELECTION

from .menu_utils import show_enum_menu, pause


class RuntimeMenuAction(Enum):
    LIST = ("List Installed Runtimes", "Show every runtime and the current default")
    INSTALL = ("Install Runtime", "Download GE-Proton, Wine-GE or wine-tkg, or link Proton Experimental")
    SET_DEFAULT = ("Set Default Runtime", "Runtime used for the prefix and the launcher")
    DELETE = ("Delete Runtime", "Remove an installed runtime")
    VALIDATE = ("Check Runtime Version", "Verify a runtime reports wine 6.0 or newer")


class RuntimeMenuHandler:
    """
    Handles the Runtime Catalogue submenu
    """

    def __init__(self):
        self.logger = None  # Will be set by CLI when needed

    def show_runtime_menu(self, cli_instance):
        actions = {
            RuntimeMenuAction.LIST: self._list_installed,
            RuntimeMenuAction.INSTALL: self._install_runtime,
            RuntimeMenuAction.SET_DEFAULT: self._set_default,
            RuntimeMenuAction.DELETE: self._delete_runtime,
            RuntimeMenuAction.VALIDATE: self._validate_runtime,
        }
        while True:
            action = show_enum_menu("Wine Runtimes", RuntimeMenuAction, cli_instance.input_func)
            if action is None:
                return
            try:
                actions[action](cli_instance)
            except AzerothWinebarError as e:
                cli_instance.context.menu.error(e.title, f"{e}\n\n{e.hint}")
            pause(cli_instance.input_func)

    def _list_installed(self, cli_instance):
        catalogue = cli_instance.context.catalogue
        runtimes = catalogue.list_installed()
        default = catalogue.get_default()
        if not runtimes:
            print(f"\n{COLOR_WARNING}No runtimes installed.{COLOR_RESET}")
            return
        print(f"\n{COLOR_INFO}Installed runtimes:{COLOR_RESET}")
        for runtime in runtimes:
            marker = f" {COLOR_SELECTION}(default){COLOR_RESET}" if runtime.id == default else ""
            print(f"  {runtime.id} [{runtime.kind.value}]{marker}")
            print(f"     {runtime.executable_path}")

    def _install_runtime(self, cli_instance):
        context = cli_instance.context
        catalogue = context.catalogue
        sources = catalogue.list_sources()
        index = context.menu.select_from_list([source.label for source in sources], "Select a runtime source")
        if index is None:
            return
        source = sources[index]

        if source.kind is RuntimeKind.VENDOR_EXPERIMENTAL:
            runtime = catalogue.locate_vendor_experimental()
            if runtime is None:
                print(f"\n{COLOR_WARNING}Proton - Experimental was not found in any Steam library.{COLOR_RESET}")
                print("Install it through Steam (Library > Tools) and try again.")
                return
            print(f"\n{COLOR_INFO}Linked {runtime.id} -> {runtime.extra.get('STEAM_SOURCE')}{COLOR_RESET}")
        else:
            print(f"\n{COLOR_INFO}Fetching {source.label} releases...{COLOR_RESET}")
            tags = catalogue.list_remote_releases(source.kind)
            if not tags:
                print(f"{COLOR_WARNING}No releases found for {source.label}.{COLOR_RESET}")
                return
            tag_index = context.menu.select_from_list(tags, f"Select a {source.label} release")
            if tag_index is None:
                return
            plan = catalogue.resolve_download(source.kind, tags[tag_index])
            runtime = catalogue.install(plan)
            print(f"\n{COLOR_INFO}Installed {runtime.id}{COLOR_RESET}")

        if catalogue.get_default() != runtime.id and context.menu.question(
                "Default Runtime", f"Use {runtime.id} as the default runtime?"):
            catalogue.set_default(runtime.id)

    def _select_installed(self, cli_instance, prompt):
        runtimes = cli_instance.context.catalogue.list_installed()
        if not runtimes:
            print(f"\n{COLOR_WARNING}No runtimes installed.{COLOR_RESET}")
            return None
        index = cli_instance.context.menu.select_from_list([r.id for r in runtimes], prompt)
        return None if index is None else runtimes[index]

    def _set_default(self, cli_instance):
        runtime = self._select_installed(cli_instance, "Select the default runtime")
        if runtime is not None:
            cli_instance.context.catalogue.set_default(runtime.id)
            print(f"\n{COLOR_INFO}Default runtime set to {runtime.id}{COLOR_RESET}")

    def _delete_runtime(self, cli_instance):
        runtime = self._select_installed(cli_instance, "Select a runtime to delete")
        if runtime is None:
            return
        if not cli_instance.context.menu.question("Delete Runtime", f"Delete {runtime.id}?", default=False):
            return
        cli_instance.context.catalogue.delete(runtime.id)
        print(f"\n{COLOR_INFO}Deleted {runtime.id}. Default runtime: "
              f"{cli_instance.context.catalogue.get_default()}{COLOR_RESET}")

    def _validate_runtime(self, cli_instance):
        runtime = self._select_installed(cli_instance, "Select a runtime to check")
        if runtime is None:
            return
        if cli_instance.context.catalogue.validate_wine_version(runtime.id):
            print(f"\n{COLOR_INFO}{runtime.id} is usable.{COLOR_RESET}")
        else:
            print(f"\n{COLOR_WARNING}{runtime.id} is older than wine 6.0 and may not run Battle.net.{COLOR_RESET}")
