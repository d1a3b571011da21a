import struct
import uuid
from datetime import datetime

import pytest

from clipstash.models import ClipboardEntry, ClipboardSnapshot, ImageContent, TextContent
from clipstash.storage import StorageManager
from clipstash.store import EntryStore


def _make_png(width: int = 100, height: int = 50, filler: bytes = b"\x00") -> bytes:
    """Minimal PNG-looking payload: signature, IHDR dimensions and padding."""
    header = b"\x89PNG\r\n\x1a\n"
    ihdr = b"\x00\x00\x00\rIHDR" + struct.pack(">II", width, height)
    return header + ihdr + filler * 100


class FakeClipboard:
    """In-memory stand-in for the system pasteboard."""

    def __init__(self):
        self.count = 0
        self.snapshot = ClipboardSnapshot()
        self.written: list[ClipboardEntry] = []

    def change_count(self) -> int:
        return self.count

    def read_snapshot(self) -> ClipboardSnapshot:
        return self.snapshot

    def write(self, entry: ClipboardEntry) -> None:
        self.written.append(entry)
        self.count += 1

    def copy(self, **fields) -> None:
        """Simulate another app copying something."""
        self.snapshot = ClipboardSnapshot(**fields)
        self.count += 1


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def storage(data_dir):
    return StorageManager(data_dir=data_dir)


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def store(storage, clipboard):
    return EntryStore(storage, clipboard, max_history_size=10, max_pinned_size=3)


@pytest.fixture
def make_png():
    return _make_png


@pytest.fixture
def png_bytes():
    return _make_png()


@pytest.fixture
def make_entry():
    """Factory fixture to create ClipboardEntry instances for testing."""

    def _make_entry(
        text: str | None = "hello world",
        image: bytes | None = None,
        rich_text: bytes | None = None,
        pinned: bool = False,
        entry_id: str | None = None,
        file_name: str | None = None,
    ) -> ClipboardEntry:
        entry_id = entry_id or str(uuid.uuid4())
        if image is not None:
            content = ImageContent(data=image, file_name=file_name or f"{entry_id}.png")
        else:
            content = TextContent(plain_text=text, rich_text=rich_text)
        return ClipboardEntry(id=entry_id, content=content, created_at=datetime.now(), pinned=pinned)

    return _make_entry
