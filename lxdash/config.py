"""Dashboard defaults, debug logging and layout helpers."""

import os
from enum import IntEnum

SEARCH_PATH_CONFIG = "lithiumx.toml"
DATABASE_PATH = "lithiumx.db"
ROOT_PATH = "."
LAUNCH_EXE = "default.xbe"
MAX_PAGES = 8
MAX_PATHS_PER_PAGE = 16
MAX_GAMES = 1024
MAX_PATHLEN = 256
MAX_PATH = 255
DEFAULT_THUMBNAIL = "default_tbn.jpg"
GAME_THUMBNAIL = "default.tbn"
PATH_SEPARATOR = os.sep

NEXT_PAGE = ">"
PREV_PAGE = "<"
SETTINGS_PAGE = "s"
INFO_PAGE = "i"

THUMBNAIL_ASPECT = 1.4


class DebugLevel(IntEnum):
    """Severity of a debug message; NONE silences everything."""

    TRACE = 0
    WARN = 1
    ERROR = 2
    NONE = 3


DEBUG_LEVEL = DebugLevel.WARN


def log(level, message, *args):
    """Print a message if ``level`` reaches the configured threshold.

    Returns the text that was printed, or None when it was filtered out.
    """
    level = DebugLevel(level)
    if level == DebugLevel.NONE or level < DEBUG_LEVEL:
        return None
    text = message % args if args else message
    print(text, end="" if text.endswith("\n") else "\n")
    return text


def thumbnail_size(screen_width, margin, items_per_row):
    """Return ``(width, height)`` of one thumbnail in the game grid."""
    if items_per_row <= 0:
        raise ValueError("items_per_row must be positive")
    width = (screen_width - 2 * margin) // items_per_row
    height = int(width * THUMBNAIL_ASPECT)
    return width, height