"""
Azeroth Winebar

Prepares a Linux workstation to run Battle.net and World of Warcraft
through wine or Proton.
"""

__version__ = "1.0.0"
APP_NAME = "Azeroth Winebar"
