"""
Shared rendering for the enum-driven CLI menus.

Each menu is an Enum whose members hold (label, description); the on-screen
number of a member is its position in the declaration order, and 0 leaves
the menu.
"""

import time
from enum import Enum
from typing import Callable, Optional, Type

from azeroth_winebar.shared.colors import (
    COLOR_SELECTION, COLOR_RESET, COLOR_ACTION, COLOR_PROMPT, COLOR_ERROR, COLOR_INFO
)
from azeroth_winebar.shared.ui_utils import print_banner, print_section_header, clear_screen


def numbered_actions(actions: Type[Enum]):
    return list(enumerate(actions, 1))


def show_enum_menu(title: str, actions: Type[Enum], input_func: Callable[[str], str],
                   exit_label: str = "Return to Main Menu",
                   subtitle: Optional[str] = None) -> Optional[Enum]:
    """
    Show the menu until a valid selection is made.

    Returns:
        The chosen member, or None for 0.
    """
    members = numbered_actions(actions)
    while True:
        clear_screen()
        print_banner()
        print_section_header(title)
        if subtitle:
            print(f"{COLOR_INFO}{subtitle}{COLOR_RESET}\n")
        for number, action in members:
            label, description = action.value
            print(f"{COLOR_SELECTION}{number}.{COLOR_RESET} {label}")
            print(f"   {COLOR_ACTION}→ {description}{COLOR_RESET}")
        print(f"{COLOR_SELECTION}0.{COLOR_RESET} {exit_label}")
        choice = input_func(f"\n{COLOR_PROMPT}Enter your selection (0-{len(members)}): {COLOR_RESET}").strip()

        if choice.lower() == 'q':  # Allow 'q' to re-display menu
            continue
        if choice == "0":
            return None
        if choice.isdigit() and 1 <= int(choice) <= len(members):
            return members[int(choice) - 1][1]
        print(f"{COLOR_ERROR}Invalid selection. Please try again.{COLOR_RESET}")
        time.sleep(1)


def pause(input_func: Callable[[str], str]) -> None:
    input_func("\nPress Enter to return to menu...")
