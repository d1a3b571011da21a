import logging
import uuid
from collections.abc import Callable, Iterator
from datetime import datetime

from clipstash.config import MAX_HISTORY_SIZE, MAX_PINNED_SIZE
from clipstash.models import (
    CaptureResult,
    ClipboardEntry,
    ClipboardSnapshot,
    ContentType,
    ImageContent,
    MutationResult,
    TextContent,
)
from clipstash.pasteboard import ClipboardSource
from clipstash.storage import StorageManager
from clipstash.utils import partition_pinned

logger = logging.getLogger(__name__)

Observer = Callable[[], None]


class EntryStore:
    """Ordered clipboard history: a pinned prefix followed by unpinned entries.

    Not thread-safe. Every method is expected to run on the main thread, the
    same one that drives the poller and renders the menu.
    """

    def __init__(
        self,
        storage: StorageManager,
        source: ClipboardSource | None = None,
        max_history_size: int = MAX_HISTORY_SIZE,
        max_pinned_size: int = MAX_PINNED_SIZE,
    ):
        self._storage = storage
        self._source = source
        self._max_history_size = max_history_size
        self._max_pinned_size = max_pinned_size
        self._entries: list[ClipboardEntry] = []
        self._observers: list[Observer] = []
        self._clipboard_write_observers: list[Observer] = []

    @property
    def max_history_size(self) -> int:
        return self._max_history_size

    @property
    def max_pinned_size(self) -> int:
        return self._max_pinned_size

    # -- observers ---------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register a change callback. Returns a function that unregisters it."""
        self._observers.append(callback)
        return lambda: self._unsubscribe(self._observers, callback)

    def subscribe_clipboard_write(self, callback: Observer) -> Callable[[], None]:
        """Register a callback fired after an entry is pushed back onto the clipboard."""
        self._clipboard_write_observers.append(callback)
        return lambda: self._unsubscribe(self._clipboard_write_observers, callback)

    @staticmethod
    def _unsubscribe(observers: list[Observer], callback: Observer) -> None:
        if callback in observers:
            observers.remove(callback)

    @staticmethod
    def _fire(observers: list[Observer]) -> None:
        for callback in list(observers):
            try:
                callback()
            except Exception:
                logger.exception("Observer %r failed", callback)

    # -- read accessors ----------------------------------------------------

    @property
    def entries(self) -> list[ClipboardEntry]:
        return list(self._entries)

    @property
    def pinned_entries(self) -> list[ClipboardEntry]:
        return [e for e in self._entries if e.pinned]

    @property
    def unpinned_entries(self) -> list[ClipboardEntry]:
        return [e for e in self._entries if not e.pinned]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ClipboardEntry]:
        return iter(list(self._entries))

    def count(self) -> int:
        return len(self._entries)

    def count_pinned(self) -> int:
        return sum(1 for e in self._entries if e.pinned)

    def get_entry(self, entry_id: str) -> ClipboardEntry | None:
        index = self._index_of(entry_id)
        return self._entries[index] if index is not None else None

    def search(self, query: str, limit: int | None = None) -> list[ClipboardEntry]:
        needle = query.strip().casefold()
        if not needle:
            return []
        results = [e for e in self._entries if e.plain_text is not None and needle in e.plain_text.casefold()]
        return results[:limit] if limit is not None else results

    # -- startup -----------------------------------------------------------

    def load(self) -> None:
        """Restore history from disk, migrate the legacy pinned file and sweep orphans."""
        entries = self._storage.load()
        entries = self._storage.migrate_legacy_if_present(entries)
        self._entries = partition_pinned(entries)

        unpinned = self._enforce_pin_cap()
        evicted = self._evict()
        if unpinned or evicted:
            logger.info("Trimmed loaded history: %d unpinned over cap, %d evicted", unpinned, evicted)
            self._storage.save(self._entries)

        self._storage.prune_orphan_sidecars(self._entries)
        logger.info("Loaded %d entries (%d pinned)", self.count(), self.count_pinned())
        self._fire(self._observers)

    # -- mutations ---------------------------------------------------------

    def capture(self, snapshot: ClipboardSnapshot) -> CaptureResult:
        entry_id = str(uuid.uuid4())

        if snapshot.plain_text is not None:
            text = snapshot.plain_text
            if not text.strip():
                return CaptureResult.REJECTED_EMPTY
            if self._find_by_text(text) is not None:
                return CaptureResult.REJECTED_DUPLICATE
            content = TextContent(plain_text=text, rich_text=snapshot.rich_text)
        elif snapshot.image:
            content = ImageContent(
                data=snapshot.image,
                file_name=f"{entry_id}.{snapshot.image_format}",
                image_format=snapshot.image_format,
            )
        else:
            return CaptureResult.REJECTED_EMPTY

        entry = ClipboardEntry(id=entry_id, content=content, created_at=self._next_timestamp())
        self._entries.insert(self.count_pinned(), entry)
        logger.info("Captured %s entry %s", entry.content_type.value, entry_id)

        evicted = self._evict()
        if evicted:
            logger.debug("Evicted %d entries over the history cap", evicted)

        self._commit()
        return CaptureResult.INSERTED

    def promote(self, entry_id: str) -> MutationResult:
        index = self._index_of(entry_id)
        if index is None:
            return MutationResult.NOT_FOUND

        entry = self._entries.pop(index)
        self._insert_at_partition_head(entry)
        self._write_to_clipboard(entry)
        self._commit()
        return MutationResult.SUCCESS

    def toggle_pin(self, entry_id: str) -> MutationResult:
        index = self._index_of(entry_id)
        if index is None:
            return MutationResult.NOT_FOUND

        entry = self._entries[index]
        if not entry.pinned and self.count_pinned() >= self._max_pinned_size:
            logger.info("Pin limit of %d reached, not pinning %s", self._max_pinned_size, entry_id)
            return MutationResult.CAP_REACHED

        del self._entries[index]
        entry.pinned = not entry.pinned
        self._insert_at_partition_head(entry)
        self._commit()
        return MutationResult.SUCCESS

    def delete(self, entry_id: str) -> MutationResult:
        index = self._index_of(entry_id)
        if index is None:
            return MutationResult.NOT_FOUND

        removed = self._entries.pop(index)
        self._release(removed)
        self._commit()
        return MutationResult.SUCCESS

    def clear(self) -> None:
        for entry in self._entries:
            self._release(entry)
        self._entries = []
        logger.info("History cleared")
        self._commit()

    def clear_pinned(self) -> None:
        # Former pinned entries stay where they are: at the head of the unpinned section.
        for entry in self.pinned_entries:
            entry.pinned = False
        self._commit()

    # -- internals ---------------------------------------------------------

    def _commit(self) -> None:
        self._storage.save(self._entries)
        self._fire(self._observers)

    def _index_of(self, entry_id: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return index
        return None

    def _find_by_text(self, text: str) -> ClipboardEntry | None:
        for entry in self._entries:
            if entry.plain_text == text:
                return entry
        return None

    def _insert_at_partition_head(self, entry: ClipboardEntry) -> None:
        self._entries.insert(0 if entry.pinned else self.count_pinned(), entry)

    def _next_timestamp(self) -> datetime:
        now = datetime.now()
        if self._entries:
            newest = max(e.created_at for e in self._entries)
            if newest > now:
                return newest
        return now

    def _evict(self) -> int:
        evicted = 0
        while len(self._entries) > self._max_history_size:
            index = self._last_unpinned_index()
            if index is None:
                break
            self._release(self._entries.pop(index))
            evicted += 1
        return evicted

    def _last_unpinned_index(self) -> int | None:
        for index in range(len(self._entries) - 1, -1, -1):
            if not self._entries[index].pinned:
                return index
        return None

    def _enforce_pin_cap(self) -> int:
        pinned = self.pinned_entries
        excess = pinned[self._max_pinned_size:]
        if not excess:
            return 0
        # The excess sits at the tail of the pinned prefix, so once unpinned it
        # already heads the unpinned section.
        for entry in excess:
            entry.pinned = False
        return len(excess)

    def _release(self, entry: ClipboardEntry) -> None:
        if entry.content_type is ContentType.IMAGE and not self._storage.delete_sidecar(entry):
            logger.warning("Image file for entry %s was not removed", entry.id)

    def _write_to_clipboard(self, entry: ClipboardEntry) -> None:
        if self._source is None:
            return
        try:
            self._source.write(entry)
        except Exception:
            logger.exception("Error copying entry %s to clipboard", entry.id)
            return
        self._fire(self._clipboard_write_observers)
