"""
Menu Handler Module
Operator prompts: information, errors, yes/no questions, list selection and
directory entry. Uses zenity dialogs when GUI dialogs are allowed, the
terminal otherwise.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from azeroth_winebar.backend.handlers.subprocess_utils import CommandRunner
from azeroth_winebar.shared.colors import (
    COLOR_PROMPT, COLOR_SELECTION, COLOR_RESET, COLOR_INFO, COLOR_ERROR, COLOR_WARNING,
)

logger = logging.getLogger(__name__)

ZENITY_WIDTH = "420"


class MenuHandler:
    """
    Operator-facing prompts shared by the CLI menus and the services.
    """

    def __init__(self, gui_allowed: bool = False, input_func: Callable[[str], str] = input,
                 runner: Optional[CommandRunner] = None):
        self.gui_allowed = gui_allowed and shutil.which("zenity") is not None
        self._input = input_func
        self.runner = runner or CommandRunner()
        self.logger = logger

    def _zenity(self, args: Sequence[str]):
        return self.runner.run(["zenity"] + list(args) + ["--width", ZENITY_WIDTH])

    def info(self, title: str, message: str) -> None:
        self.logger.info(f"{title}: {message}")
        if self.gui_allowed:
            self._zenity(["--info", "--title", title, "--text", message])
            return
        print(f"\n{COLOR_INFO}{title}{COLOR_RESET}")
        print(message)

    def warning(self, title: str, message: str) -> None:
        self.logger.warning(f"{title}: {message}")
        if self.gui_allowed:
            self._zenity(["--warning", "--title", title, "--text", message])
            return
        print(f"\n{COLOR_WARNING}{title}{COLOR_RESET}")
        print(message)

    def error(self, title: str, hint: str) -> None:
        """Show the title/remediation pair of a failure."""
        self.logger.error(f"{title}: {hint}")
        if self.gui_allowed:
            self._zenity(["--error", "--title", title, "--text", hint])
            return
        print(f"\n{COLOR_ERROR}{title}{COLOR_RESET}")
        print(hint)

    def question(self, title: str, message: str, default: bool = True) -> bool:
        """Ask a yes/no question. Returns the operator's answer."""
        if self.gui_allowed:
            result = self._zenity(["--question", "--title", title, "--text", message])
            answer = result.returncode == 0
            self.logger.debug(f"Question '{title}' answered {'yes' if answer else 'no'}")
            return answer
        suffix = "(Y/n)" if default else "(y/N)"
        print(f"\n{COLOR_PROMPT}{title}{COLOR_RESET}")
        print(message)
        while True:
            choice = self._input(f"{COLOR_PROMPT}{suffix}: {COLOR_RESET}").strip().lower()
            if choice == "":
                answer = default
            elif choice.startswith("y"):
                answer = True
            elif choice.startswith("n") or choice == "q":
                answer = False
            else:
                print(f"{COLOR_ERROR}Invalid input. Please enter 'y' or 'n'.{COLOR_RESET}")
                continue
            self.logger.debug(f"Question '{title}' answered {'yes' if answer else 'no'}")
            return answer

    def ask_try_again(self) -> bool:
        """Prompt the user to try again or cancel. Returns True to retry, False to cancel."""
        if self.gui_allowed:
            return self.question("Try again?", "The step did not complete. Try again?")
        while True:
            choice = self._input(f"{COLOR_PROMPT}Try again? (Y/n/q): {COLOR_RESET}").strip().lower()
            if choice == '' or choice.startswith('y'):
                return True
            elif choice == 'n' or choice == 'q':
                return False
            else:
                print(f"{COLOR_ERROR}Invalid input. Please enter 'y', 'n', or 'q'.{COLOR_RESET}")

    def select_from_list(self, items: List[str], prompt: str = "Select an option") -> Optional[int]:
        """
        Display a list of labels and let the user select one.

        Returns:
            The index of the selected item, or None if cancelled (0 or q).
        """
        if not items:
            print(f"{COLOR_WARNING}No items available to select from.{COLOR_RESET}")
            return None

        if self.gui_allowed:
            args = ["--list", "--title", prompt, "--column", "#", "--column", "Option", "--hide-column", "1",
                    "--print-column", "1", "--height", "400"]
            for i, item in enumerate(items, 1):
                args += [str(i), item]
            result = self._zenity(args)
            choice = result.stdout.strip()
            if result.returncode != 0 or not choice.isdigit():
                self.logger.info("User cancelled selection from list.")
                return None
            return int(choice) - 1

        print("\n" + "-" * 28)
        print(f"{COLOR_PROMPT}{prompt}{COLOR_RESET}")
        for i, item in enumerate(items, 1):
            print(f"  {COLOR_SELECTION}{i}.{COLOR_RESET} {item}")
        print(f"  {COLOR_SELECTION}0.{COLOR_RESET} Cancel selection")

        while True:
            choice_input = self._input(f"{COLOR_PROMPT}Enter your choice (0-{len(items)}): {COLOR_RESET}").strip()
            if choice_input.lower() == 'q' or choice_input == '0':
                self.logger.info("User cancelled selection from list.")
                print(f"{COLOR_INFO}Selection cancelled.{COLOR_RESET}")
                return None
            if choice_input.isdigit():
                choice_int = int(choice_input)
                if 1 <= choice_int <= len(items):
                    return choice_int - 1
            print(f"{COLOR_ERROR}Invalid choice. Please enter a number between 0 and {len(items)}.{COLOR_RESET}")

    def get_directory_path(self, prompt_message: str, default_path: Optional[Path],
                           create_if_missing: bool = True) -> Optional[Path]:
        """
        Prompt for a directory. Enter accepts the default, 'q' cancels.
        A missing directory is created after confirmation when create_if_missing is set.
        """
        if self.gui_allowed:
            args = ["--file-selection", "--directory", "--title", prompt_message]
            if default_path is not None:
                args += ["--filename", f"{default_path}/"]
            result = self._zenity(args)
            if result.returncode != 0 or not result.stdout.strip():
                return None
            return Path(result.stdout.strip())

        print("\n" + "-" * 28)
        print(f"{COLOR_PROMPT}{prompt_message}{COLOR_RESET}")
        if default_path is not None:
            print(f"{COLOR_INFO}(Default: {default_path}){COLOR_RESET}")
        print(f"{COLOR_PROMPT}Enter path (or 'q' to cancel, Enter for default):{COLOR_RESET}")
        while True:
            user_input = self._input("Path: ").strip()
            if user_input.lower() == 'q':
                self.logger.info("User cancelled path input with 'q'.")
                print(f"{COLOR_INFO}Input cancelled by user.{COLOR_RESET}")
                return None
            if not user_input:
                if default_path is None:
                    print(f"{COLOR_ERROR}No path entered and no default path was available.{COLOR_RESET}")
                    if not self.ask_try_again():
                        return None
                    continue
                chosen_path = Path(default_path).expanduser()
            else:
                chosen_path = Path(os.path.expanduser(user_input))
            chosen_path = chosen_path.absolute()

            if chosen_path.is_dir():
                return chosen_path
            if chosen_path.exists():
                print(f"{COLOR_ERROR}{chosen_path} exists but is not a directory.{COLOR_RESET}")
                if not self.ask_try_again():
                    return None
                continue
            if not create_if_missing:
                print(f"{COLOR_ERROR}Directory does not exist: {chosen_path}{COLOR_RESET}")
                if not self.ask_try_again():
                    return None
                continue
            if self.question("Create directory?", f"{chosen_path} does not exist. Create it?"):
                chosen_path.mkdir(parents=True, exist_ok=True)
                return chosen_path
            if not self.ask_try_again():
                return None
