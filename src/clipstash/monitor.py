import logging
from enum import Enum

from clipstash.models import CaptureResult, ClipboardSnapshot
from clipstash.pasteboard import ClipboardSource
from clipstash.store import EntryStore

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class ClipboardMonitor:
    def __init__(self, source: ClipboardSource, store: EntryStore):
        self._source = source
        self._store = store
        self._state = MonitorState.IDLE
        self._last_change_count = -1
        # Promoting an entry writes to the clipboard; don't capture our own write.
        store.subscribe_clipboard_write(self.sync_change_count)

    @property
    def state(self) -> MonitorState:
        return self._state

    def start(self) -> None:
        """Arm the monitor and read whatever is already on the clipboard."""
        self._state = MonitorState.ARMED
        self._last_change_count = -1
        self.check_clipboard()

    def stop(self) -> None:
        self._state = MonitorState.IDLE

    def check_clipboard(self) -> bool:
        if self._state is not MonitorState.ARMED:
            return False

        try:
            current_count = self._source.change_count()
        except Exception:
            logger.exception("Error reading clipboard change count")
            return False
        if current_count == self._last_change_count:
            return False

        self._last_change_count = current_count

        try:
            snapshot = self._extract(self._source.read_snapshot())
        except Exception:
            logger.exception("Error reading clipboard")
            return False
        if snapshot is None:
            return False

        return self._store.capture(snapshot) is CaptureResult.INSERTED

    def sync_change_count(self) -> None:
        try:
            self._last_change_count = self._source.change_count()
        except Exception:
            logger.exception("Error reading clipboard change count")

    @staticmethod
    def _extract(snapshot: ClipboardSnapshot) -> ClipboardSnapshot | None:
        """Pick one representation: rich text, then plain text, then image."""
        if snapshot.rich_text is not None and snapshot.plain_text is not None:
            return ClipboardSnapshot(plain_text=snapshot.plain_text, rich_text=snapshot.rich_text)
        if snapshot.plain_text is not None:
            return ClipboardSnapshot(plain_text=snapshot.plain_text)
        if snapshot.image is not None:
            return ClipboardSnapshot(image=snapshot.image, image_format=snapshot.image_format)
        return None
