"""
CLI Menu Components for Azeroth Winebar Frontend
"""

from .main_menu import MainMenuHandler, MainMenuAction
from .runtime_menu import RuntimeMenuHandler
from .tweaks_menu import TweaksMenuHandler
from .graphics_menu import GraphicsMenuHandler
from .settings_menu import SettingsMenuHandler

__all__ = [
    'MainMenuHandler',
    'MainMenuAction',
    'RuntimeMenuHandler',
    'TweaksMenuHandler',
    'GraphicsMenuHandler',
    'SettingsMenuHandler',
]
