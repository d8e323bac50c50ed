"""
Terminal colour constants shared by the CLI frontend and prompt handlers.
"""

COLOR_RESET = "\033[0m"
COLOR_PROMPT = "\033[1;36m"
COLOR_SELECTION = "\033[1;34m"
COLOR_INFO = "\033[0;32m"
COLOR_SUCCESS = "\033[1;32m"
COLOR_WARNING = "\033[1;33m"
COLOR_ERROR = "\033[1;31m"
COLOR_ACTION = "\033[0;37m"
