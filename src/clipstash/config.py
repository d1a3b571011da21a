import os
from pathlib import Path

DATA_DIR = Path(os.environ.get("CLIPSTASH_DATA_DIR", Path.home() / ".local" / "share" / "clipstash"))
HISTORY_PATH = DATA_DIR / "history.json"
LEGACY_PINNED_PATH = DATA_DIR / "pinned.json"  # pre-0.2 layout, migrated on load
IMAGE_DIR = DATA_DIR / "images"
LOG_PATH = DATA_DIR / "clipstash.log"

DOCUMENT_VERSION = 1
POLL_INTERVAL = 0.5  # seconds between clipboard checks
MAX_TEXT_SIZE = 1_000_000  # 1MB text limit
MAX_IMAGE_SIZE = 10_000_000  # 10MB image limit
PREVIEW_LENGTH = 60  # characters shown in menu item


def _parse_int_env(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


MAX_HISTORY_SIZE = _parse_int_env("CLIPSTASH_MAX_HISTORY", 200, 10, 1000)
MAX_PINNED_SIZE = _parse_int_env("CLIPSTASH_MAX_PINNED", 10, 1, 50)
MENU_DISPLAY_COUNT = _parse_int_env("CLIPSTASH_MENU_DISPLAY_COUNT", 15, 5, 50)
THUMBNAIL_SIZE = (32, 32)  # pixels, for menu icon display
