"""
UI Utilities

Banner, section header and screen clearing helpers for the terminal frontend.
"""

import logging
import os
import subprocess

from azeroth_winebar import APP_NAME, __version__
from azeroth_winebar.shared.colors import COLOR_SELECTION, COLOR_INFO, COLOR_RESET

logger = logging.getLogger(__name__)


def print_banner():
    """Print the application banner."""
    print(f"{COLOR_SELECTION}{'=' * 60}{COLOR_RESET}")
    print(f"{COLOR_SELECTION}  {APP_NAME} v{__version__}{COLOR_RESET}")
    print(f"{COLOR_INFO}  Battle.net and World of Warcraft helper for Linux{COLOR_RESET}")
    print(f"{COLOR_SELECTION}{'=' * 60}{COLOR_RESET}")


def print_section_header(title: str):
    print(f"\n{COLOR_SELECTION}{title}{COLOR_RESET}")
    print(f"{COLOR_SELECTION}{'-' * max(22, len(title))}{COLOR_RESET}")


def clear_screen():
    """Clear the terminal screen, falling back to newlines."""
    if not os.isatty(1):
        return
    for cmd in (["/usr/bin/clear"], ["clear"]):
        try:
            subprocess.run(cmd, check=True)
            return
        except FileNotFoundError:
            logger.debug(f"clear_screen: {cmd[0]} not found")
        except subprocess.CalledProcessError as e:
            logger.debug(f"clear_screen: {cmd[0]} failed: {e}")
    print("\n" * 100, flush=True)
