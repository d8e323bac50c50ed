#!/usr/bin/env python3
"""
Provisioning Orchestrator

End-to-end install of Battle.net: preflight, runtime, prefix, launcher,
game tweaks, graphics tuning and desktop integration. Every state is a
checkpoint persisted as `install_state` in the Config Store; entering a
state re-validates its post-conditions and skips work that is already done.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from azeroth_winebar.backend.core.context import AppContext
from azeroth_winebar.backend.errors import (
    AzerothWinebarError, DependencyMissing, InsufficientResources, IntegrityError,
    InternalInvariant, UserCancelled,
)
from azeroth_winebar.backend.models.install_state import InstallState
from azeroth_winebar.backend.models.preflight import MEMORY_CHECK, PreflightReport
from azeroth_winebar.backend.models.runtime import Runtime
from azeroth_winebar.backend.handlers.game_config_handler import STANDARD_TWEAKS, GameConfigHandler
from azeroth_winebar.shared.paths import get_default_prefix_dir

logger = logging.getLogger(__name__)

STATE_KEY = "install_state"


class ProvisioningOrchestrator:
    """
    Drives the install state machine over an AppContext.

    Args:
        context: services and Config Store of this run
        ask_retry: callback(error) -> bool asked after a recoverable failure
        confirm: callback(title, message) -> bool for yes/no questions
    """

    def __init__(self, context: AppContext,
                 ask_retry: Optional[Callable[[AzerothWinebarError], bool]] = None,
                 confirm: Optional[Callable[[str, str], bool]] = None):
        self.context = context
        self.ask_retry = ask_retry or self._default_ask_retry
        self.confirm = confirm or context.menu.question
        self.runtime: Optional[Runtime] = None
        self.prefix: Optional[Path] = None
        self.warnings: List[str] = []
        self._steps = [
            (InstallState.PREFLIGHT_OK, self._validate_preflight, self._run_preflight),
            (InstallState.RUNTIME_READY, self._validate_runtime, self._prepare_runtime),
            (InstallState.PREFIX_READY, self._validate_prefix, self._prepare_prefix),
            (InstallState.LAUNCHER_READY, self._validate_launcher, self._install_launcher),
            (InstallState.GAME_TUNED, self._validate_game, self._tune_game),
            (InstallState.GRAPHICS_TUNED, self._validate_graphics, self._tune_graphics),
            (InstallState.DESKTOP_INTEGRATED, self._validate_desktop, self._integrate_desktop),
        ]

    def _default_ask_retry(self, error: AzerothWinebarError) -> bool:
        self.context.menu.error(error.title, f"{error}\n\n{error.hint}")
        return self.context.menu.ask_try_again()

    # ------------------------------------------------------------------
    # State persistence
    # ------------------------------------------------------------------

    def current_state(self) -> InstallState:
        return InstallState.parse(self.context.store.get(STATE_KEY))

    def _persist(self, state: InstallState) -> None:
        self.context.store.set(STATE_KEY, state.value)
        logger.info(f"Install state: {state.value}")

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def run(self) -> InstallState:
        """
        Run every state in order and return the final state (DONE).

        Raises:
            AzerothWinebarError: a step failed and was not retried
        """
        self.warnings = []
        reached = self.current_state()
        logger.info(f"Starting provisioning from persisted state {reached.value}")
        for state, validate, execute in self._steps:
            if state.index <= reached.index and validate():
                logger.info(f"{state.value} already satisfied, skipping")
                continue
            self._run_step(state, validate, execute)
            self._persist(state)
            reached = state
        self.context.store.mark_first_run_done()
        self._persist(InstallState.DONE)
        return InstallState.DONE

    def run_step(self, state: InstallState) -> None:
        """Run a single step on its own; earlier post-conditions must already hold."""
        for step_state, validate, execute in self._steps:
            if step_state is state:
                self._run_step(step_state, validate, execute)
                return
            if not validate():
                raise UserCancelled(f"{step_state.value} is not satisfied yet",
                                    hint="Run the full launcher installation first.")
        raise InternalInvariant(f"Unknown install state {state.value}")

    def _run_step(self, state: InstallState, validate: Callable[[], bool], execute: Callable[[], None]) -> None:
        while True:
            try:
                logger.info(f"Entering {state.value}")
                execute()
                if not validate():
                    raise InternalInvariant(f"Post-conditions of {state.value} do not hold after the step ran")
                return
            except InternalInvariant:
                raise
            except AzerothWinebarError as e:
                logger.error(f"{state.value} failed: {e.kind}: {e}")
                if e.recoverable and self.ask_retry(e):
                    logger.info(f"Retrying {state.value}")
                    continue
                raise

    # ------------------------------------------------------------------
    # PREFLIGHT_OK
    # ------------------------------------------------------------------

    def _validate_preflight(self) -> bool:
        return self.context.preflight.run_preflight().passed

    def _confirm_remediation(self, report: PreflightReport) -> bool:
        lines = "\n".join(report.summary_lines())
        return self.confirm(
            "System Configuration",
            f"Some system settings are below what World of Warcraft needs:\n\n{lines}\n\n"
            "Apply the fixes now? Administrator access is required.",
        )

    def _run_preflight(self) -> None:
        report = self.context.preflight.run_with_remediation(self._confirm_remediation)
        if report.passed:
            return
        memory = report.get(MEMORY_CHECK)
        if memory is not None and not memory.ok:
            raise InsufficientResources(
                f"Memory check failed: {memory.observed} (required {memory.required})",
                hint="Add RAM or swap so the host has at least 16 GB RAM and 40 GB RAM + swap.",
            )
        failed = ", ".join(r.check_id for r in report.failures)
        raise UserCancelled(f"Host preflight not satisfied: {failed}",
                            hint="Accept the system configuration fixes or apply them manually.")

    # ------------------------------------------------------------------
    # RUNTIME_READY
    # ------------------------------------------------------------------

    def _validate_runtime(self) -> bool:
        self.runtime = self.context.catalogue.resolve_runtime()
        return self.runtime is not None

    def _prepare_runtime(self) -> None:
        catalogue = self.context.catalogue
        runtime = catalogue.resolve_runtime()
        if runtime is None:
            raise DependencyMissing(
                "Proton Experimental",
                f"Default runtime '{catalogue.get_default()}' is not available",
                hint="Install Proton - Experimental through Steam or install a runtime from the Runtimes menu.",
            )
        if self.context.store.get("default_runtime") is None:
            catalogue.set_default(runtime.id)
        self.runtime = runtime

    # ------------------------------------------------------------------
    # PREFIX_READY
    # ------------------------------------------------------------------

    def _resolve_prefix_path(self) -> Path:
        path = self.context.prefix_path
        if path is None:
            path = get_default_prefix_dir()
            logger.info(f"No prefix configured, using {path}")
            self.context.set_prefix_path(path)
        return path

    def _require_runtime(self) -> Runtime:
        if self.runtime is None and not self._validate_runtime():
            raise InternalInvariant("No runtime resolved before a step that needs one")
        return self.runtime

    def _validate_prefix(self) -> bool:
        self.prefix = self._resolve_prefix_path()
        if not self.context.prefixes.verify(self.prefix):
            return False
        return self.context.prefixes.registry_tweaks_applied(self.prefix, self._require_runtime())

    def _prepare_prefix(self) -> None:
        prefixes = self.context.prefixes
        runtime = self._require_runtime()
        self.prefix = self._resolve_prefix_path()
        if not prefixes.verify(self.prefix):
            prefixes.create(self.prefix, runtime)
        if not prefixes.install_font(self.prefix, runtime):
            self._warn("Font installation failed, text may render with a fallback font")
        for message in prefixes.apply_registry_tweaks(self.prefix, runtime):
            self._warn(message)

    # ------------------------------------------------------------------
    # LAUNCHER_READY
    # ------------------------------------------------------------------

    def _require_prefix(self) -> Path:
        if self.prefix is None:
            self.prefix = self._resolve_prefix_path()
        return self.prefix

    def _validate_launcher(self) -> bool:
        prefix = self._require_prefix()
        launcher = self.context.launcher
        return launcher.is_installed(prefix) and launcher.config_written(prefix)

    def _install_launcher(self) -> None:
        self.context.launcher.install(self._require_prefix(), self._require_runtime(), self.context.download_dir)

    # ------------------------------------------------------------------
    # GAME_TUNED
    # ------------------------------------------------------------------

    def _game_path(self) -> Optional[Path]:
        path = self.context.game_path
        if path is None:
            path = GameConfigHandler.find_game_path(self._require_prefix())
            if path is not None and not self.context.overrides.wineprefix:
                logger.info(f"Found World of Warcraft at {path}")
                self.context.set_game_path(path)
        return path

    def _validate_game(self) -> bool:
        game_path = self._game_path()
        if game_path is None:
            return True
        config_file = self.context.game_config.find_config(game_path)
        return all(self.context.game_config.get(config_file, key) == value for key, value in STANDARD_TWEAKS)

    def _tune_game(self) -> None:
        game_path = self._game_path()
        if game_path is None:
            self._warn("Game directory not configured, skipping Config.wtf tweaks")
            return
        handler = self.context.game_config
        config_file = handler.find_config(game_path)
        if config_file.is_file():
            try:
                handler.backup(config_file)
            except IntegrityError as e:
                self._warn(f"Config.wtf backup failed: {e}")
        handler.apply_standard_tweaks(config_file)

    # ------------------------------------------------------------------
    # GRAPHICS_TUNED
    # ------------------------------------------------------------------

    def _validate_graphics(self) -> bool:
        graphics = self.context.graphics
        if not graphics.env_scripts_written() or not graphics.launch_script_path.is_file():
            return False
        game_path = self.context.game_path
        return game_path is None or graphics.dxvk_config_path(game_path).is_file()

    def _tune_graphics(self) -> None:
        graphics = self.context.graphics
        game_path = self.context.game_path
        for message in graphics.apply(game_path):
            self._warn(message)
        graphics.write_launch_script(self._require_prefix(), game_path, self._require_runtime())

    # ------------------------------------------------------------------
    # DESKTOP_INTEGRATED
    # ------------------------------------------------------------------

    def _validate_desktop(self) -> bool:
        return self.context.desktop.is_installed()

    def _integrate_desktop(self) -> None:
        shortcut = self.confirm("Desktop Shortcut", "Would you like to create a desktop shortcut for Battle.net?")
        self.context.desktop.install(self.context.graphics.launch_script_path, desktop_shortcut=shortcut)
