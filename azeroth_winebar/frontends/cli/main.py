#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Azeroth Winebar CLI Frontend - Main Entry Point

Command-line verbs and the interactive menu on top of the backend services.
"""

import argparse
import logging
import os
import sys
from typing import Callable, Dict, List, Optional

from azeroth_winebar import APP_NAME, __version__
from azeroth_winebar.backend.core.context import AppContext, EnvOverrides, build_context
from azeroth_winebar.backend.core.provisioning_orchestrator import ProvisioningOrchestrator
from azeroth_winebar.backend.errors import AzerothWinebarError, IntegrityError, InternalInvariant, UserCancelled
from azeroth_winebar.backend.handlers.logging_handler import LoggingHandler, Severity, report
from azeroth_winebar.backend.services.platform_detection_service import PlatformDetectionService
from azeroth_winebar.shared.colors import COLOR_INFO, COLOR_ERROR, COLOR_SUCCESS, COLOR_RESET

from .menus.main_menu import MainMenuHandler, MainMenuAction
from .menus.runtime_menu import RuntimeMenuHandler
from .menus.tweaks_menu import TweaksMenuHandler
from .menus.graphics_menu import GraphicsMenuHandler
from .menus.settings_menu import SettingsMenuHandler
from .menus.menu_utils import pause

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

VERBS = {
    "help": "Show this list of commands",
    "version": "Show the version",
    "install-launcher": "Install Battle.net end to end (preflight, runtime, prefix, launcher, tweaks)",
    "runtimes": "Manage wine runtimes",
    "preflight": "Check host settings and offer to fix them",
    "launch": "Start Battle.net through the generated launch script",
    "reset-config": "Erase stored settings (backups are kept)",
}


class AzerothWinebarCLI:
    """Main application class for the Azeroth Winebar CLI Frontend"""

    def __init__(self, environ: Optional[Dict[str, str]] = None,
                 input_func: Callable[[str], str] = input,
                 context_factory: Callable[..., AppContext] = build_context):
        self.environ = os.environ if environ is None else environ
        self.input_func = input_func
        self.context_factory = context_factory
        self.context: Optional[AppContext] = None
        self.debug = False
        self.menus = self._initialize_menu_handlers()

    def _initialize_menu_handlers(self):
        """Initialize menu handler instances.

        Returns:
            Dictionary of menu handler instances
        """
        menus = {
            'main': MainMenuHandler(),
            'runtimes': RuntimeMenuHandler(),
            'tweaks': TweaksMenuHandler(),
            'graphics': GraphicsMenuHandler(),
            'settings': SettingsMenuHandler(),
        }
        for menu in menus.values():
            menu.logger = logger
        return menus

    def _parse_args(self, argv: Optional[List[str]]):
        epilog = "commands:\n" + "\n".join(f"  {verb:<18}{text}" for verb, text in VERBS.items())
        parser = argparse.ArgumentParser(
            prog="azeroth-winebar",
            description=f"{APP_NAME}: Battle.net and World of Warcraft helper for Linux",
            epilog=epilog,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument("-V", "--version", action="store_true", help="Show version and exit")
        parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging on the console")
        parser.add_argument("verb", nargs="?", choices=list(VERBS), metavar="command",
                            help="Command to run; omit for the interactive menu")
        return parser, parser.parse_args(argv)

    def _configure_logging(self) -> None:
        logging_handler = LoggingHandler()
        logging_handler.setup_package_logger(debug=self.debug)
        removed = logging_handler.cleanup_old_logs(30)
        if removed:
            logger.debug(f"Removed {removed} old log files")

    def run(self, argv: Optional[List[str]] = None) -> int:
        parser, args = self._parse_args(argv)
        if args.version or args.verb == "version":
            print(f"{APP_NAME} v{__version__}")
            return EXIT_OK
        if args.verb == "help":
            parser.print_help()
            return EXIT_OK

        self.debug = args.debug or EnvOverrides.from_environ(self.environ).debug
        self._configure_logging()
        report(Severity.DEBUG, f"Parsed args: {args}", logger)

        try:
            self._check_platform()
            self.context = self.context_factory(environ=self.environ, input_func=self.input_func)
            with self.context.lock:
                return self._dispatch(args.verb)
        except KeyboardInterrupt:
            self._interrupt_cleanup()
            return EXIT_INTERRUPTED
        except AzerothWinebarError as e:
            self._report_fatal(e)
            return EXIT_FAILURE
        except Exception as e:
            self._report_fatal(self._wrap_unexpected(e))
            return EXIT_FAILURE

    def _check_platform(self) -> None:
        platform = PlatformDetectionService(environ=self.environ)
        platform.ensure_supported()
        for tool in platform.missing_required():
            logger.warning(f"Required tool not found: {tool}")
        for tool in platform.missing_optional():
            logger.debug(f"Optional tool not found: {tool}")

    def _wrap_unexpected(self, error: Exception) -> AzerothWinebarError:
        """Turn an exception from outside the backend's error kinds into one that can be reported."""
        # Traceback goes to the log file; the console only shows it in debug mode
        logger.error(f"Unexpected {type(error).__name__}: {error}", exc_info=True,
                     extra={"console": self.debug})
        if isinstance(error, EOFError):
            return UserCancelled("Input closed", hint="Run azeroth-winebar from an interactive terminal.")
        if isinstance(error, OSError):
            return InternalInvariant(str(error), title="System error",
                                     hint=f"{error.strerror or error}. Check the path and its permissions, "
                                          "then try again.")
        return InternalInvariant(f"{type(error).__name__}: {error}")

    def _report_fatal(self, error: AzerothWinebarError) -> None:
        logger.debug(f"{error.kind}: {error}", exc_info=self.debug)
        report(Severity.FATAL, f"{error.title}: {error.hint}")

    def _interrupt_cleanup(self) -> None:
        print(f"\n{COLOR_INFO}Interrupted, cleaning up...{COLOR_RESET}", file=sys.stderr)
        if self.context is None:
            return
        cancelled = self.context.runner.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} running processes")
        self.context.catalogue.cleanup_staging()
        self.context.lock.release()

    def _dispatch(self, verb: Optional[str]) -> int:
        if verb is None:
            return self._run_interactive()
        if verb == "install-launcher":
            return self._install_launcher()
        if verb == "runtimes":
            self.menus['runtimes'].show_runtime_menu(self)
            return EXIT_OK
        if verb == "preflight":
            return self._preflight()
        if verb == "launch":
            return self._launch()
        if verb == "reset-config":
            removed = self.context.store.reset()
            report(Severity.INFO, f"Configuration reset ({len(removed)} settings removed).", logger)
            return EXIT_OK
        print(f"Unknown command: {verb}")
        return EXIT_FAILURE

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def _install_launcher(self) -> int:
        orchestrator = ProvisioningOrchestrator(self.context)
        orchestrator.run()
        for message in orchestrator.warnings:
            report(Severity.LOG, f"Warning: {message}", logger)
        self.context.menu.info("Installation Complete",
                               "Battle.net is installed and optimised. Start it from your applications "
                               "menu or with 'azeroth-winebar launch'.")
        return EXIT_OK

    def _confirm_remediation(self, preflight_report) -> bool:
        return self.context.menu.question(
            "System Configuration",
            "\n".join(preflight_report.summary_lines()) + "\n\nApply the fixes now? Administrator access is required.",
        )

    def _preflight(self) -> int:
        result = self.context.preflight.run_with_remediation(self._confirm_remediation)
        for line in result.summary_lines():
            print(line)
        if result.passed:
            print(f"{COLOR_SUCCESS}All preflight checks passed.{COLOR_RESET}")
            return EXIT_OK
        print(f"{COLOR_ERROR}Some preflight checks failed.{COLOR_RESET}")
        return EXIT_FAILURE

    def _launch(self) -> int:
        script = self.context.graphics.launch_script_path
        if not script.is_file():
            raise IntegrityError(f"Launch script not found: {script}",
                                 hint="Run 'azeroth-winebar install-launcher' first.")
        logger.info(f"Launching {script}")
        self.context.lock.release()
        os.execv(str(script), [str(script)])
        return EXIT_FAILURE

    def _desktop_integration(self) -> None:
        context = self.context
        choice = context.menu.select_from_list(
            ["Create applications menu entry", "Remove desktop entries"], "Desktop Integration")
        if choice is None:
            return
        if choice == 0:
            shortcut = context.menu.question("Desktop Shortcut",
                                             "Would you like to create a desktop shortcut for Battle.net?")
            written = context.desktop.install(context.graphics.launch_script_path, desktop_shortcut=shortcut)
            for path in written:
                report(Severity.INFO, f"Created {path}", logger)
        else:
            removed = context.desktop.remove()
            report(Severity.INFO, f"Removed {len(removed)} desktop entries.", logger)

    # ------------------------------------------------------------------
    # Interactive mode
    # ------------------------------------------------------------------

    def _run_interactive(self) -> int:
        """Run the CLI interface interactively using the menu system"""
        while True:
            choice = self.menus['main'].show_main_menu(self)
            if choice is None:
                print(f"{COLOR_INFO}Thank you for using {APP_NAME}!{COLOR_RESET}")
                return EXIT_OK
            try:
                self._run_main_action(choice)
            except EOFError:
                raise
            except Exception as e:
                if isinstance(e, AzerothWinebarError):
                    logger.debug(f"{e.kind}: {e}", exc_info=self.debug)
                    error = e
                else:
                    error = self._wrap_unexpected(e)
                self.context.menu.error(error.title, f"{error}\n\n{error.hint}")
                pause(self.input_func)

    def _run_main_action(self, choice: MainMenuAction) -> None:
        if choice is MainMenuAction.PREFLIGHT:
            self._preflight()
            pause(self.input_func)
        elif choice is MainMenuAction.INSTALL_LAUNCHER:
            self._install_launcher()
            pause(self.input_func)
        elif choice is MainMenuAction.RUNTIMES:
            self.menus['runtimes'].show_runtime_menu(self)
        elif choice is MainMenuAction.GAME_TWEAKS:
            self.menus['tweaks'].show_tweaks_menu(self)
        elif choice is MainMenuAction.GRAPHICS:
            self.menus['graphics'].show_graphics_menu(self)
        elif choice is MainMenuAction.DESKTOP:
            self._desktop_integration()
            pause(self.input_func)
        elif choice is MainMenuAction.SETTINGS:
            self.menus['settings'].show_settings_menu(self)
        elif choice is MainMenuAction.LAUNCH:
            self._launch()


def main(argv: Optional[List[str]] = None) -> int:
    return AzerothWinebarCLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
