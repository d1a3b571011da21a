from unittest.mock import MagicMock

import pytest

from clipstash.models import ContentType
from clipstash.monitor import ClipboardMonitor, MonitorState


@pytest.fixture
def monitor(clipboard, store):
    mon = ClipboardMonitor(clipboard, store)
    mon.start()
    return mon


class TestStateMachine:
    def test_starts_idle(self, clipboard, store):
        mon = ClipboardMonitor(clipboard, store)
        assert mon.state is MonitorState.IDLE

    def test_idle_ignores_ticks(self, clipboard, store):
        mon = ClipboardMonitor(clipboard, store)
        clipboard.copy(plain_text="hello")
        assert mon.check_clipboard() is False
        assert len(store) == 0

    def test_start_captures_current_content(self, clipboard, store):
        clipboard.copy(plain_text="already there")
        mon = ClipboardMonitor(clipboard, store)
        mon.start()
        assert mon.state is MonitorState.ARMED
        assert [e.plain_text for e in store.entries] == ["already there"]

    def test_stop(self, monitor, clipboard, store):
        monitor.stop()
        assert monitor.state is MonitorState.IDLE
        clipboard.copy(plain_text="after stop")
        assert monitor.check_clipboard() is False
        assert len(store) == 0


class TestCheckClipboard:
    def test_no_change(self, monitor, clipboard):
        assert monitor.check_clipboard() is False

    def test_text_change(self, monitor, clipboard, store):
        clipboard.copy(plain_text="hello world")
        assert monitor.check_clipboard() is True
        entries = store.entries
        assert len(entries) == 1
        assert entries[0].content_type == ContentType.TEXT
        assert entries[0].plain_text == "hello world"

    def test_unchanged_counter_not_reread(self, monitor, clipboard):
        clipboard.copy(plain_text="hello")
        monitor.check_clipboard()
        clipboard.read_snapshot = MagicMock()
        assert monitor.check_clipboard() is False
        clipboard.read_snapshot.assert_not_called()

    def test_duplicate_text_not_captured(self, monitor, clipboard, store):
        clipboard.copy(plain_text="duplicate")
        assert monitor.check_clipboard() is True
        clipboard.copy(plain_text="duplicate")
        assert monitor.check_clipboard() is False
        assert len(store) == 1

    def test_empty_clipboard_adopts_counter(self, monitor, clipboard, store):
        clipboard.copy()
        assert monitor.check_clipboard() is False
        clipboard.read_snapshot = MagicMock()
        assert monitor.check_clipboard() is False
        clipboard.read_snapshot.assert_not_called()
        assert len(store) == 0

    def test_whitespace_not_captured(self, monitor, clipboard, store):
        clipboard.copy(plain_text="   \n")
        assert monitor.check_clipboard() is False
        assert len(store) == 0

    def test_image_change(self, monitor, clipboard, store, png_bytes):
        clipboard.copy(image=png_bytes)
        assert monitor.check_clipboard() is True
        assert store.entries[0].content_type == ContentType.IMAGE
        assert store.entries[0].content.data == png_bytes

    def test_callback_called_on_change(self, monitor, clipboard, store):
        callback = MagicMock()
        store.subscribe(callback)
        clipboard.copy(plain_text="test")
        monitor.check_clipboard()
        callback.assert_called_once()

    def test_read_error_returns_false(self, monitor, clipboard):
        clipboard.count += 1
        clipboard.read_snapshot = MagicMock(side_effect=RuntimeError("Test error"))
        assert monitor.check_clipboard() is False

    def test_read_error_still_adopts_counter(self, monitor, clipboard):
        clipboard.count += 1
        clipboard.read_snapshot = MagicMock(side_effect=RuntimeError("Test error"))
        monitor.check_clipboard()
        monitor.check_clipboard()
        clipboard.read_snapshot.assert_called_once()

    def test_change_count_error_returns_false(self, monitor, clipboard):
        clipboard.change_count = MagicMock(side_effect=RuntimeError("gone"))
        assert monitor.check_clipboard() is False


class TestExtractionPreference:
    def test_rich_text_wins(self, monitor, clipboard, store, png_bytes):
        clipboard.copy(plain_text="styled", rich_text=b"{\\rtf1 styled}", image=png_bytes)
        monitor.check_clipboard()
        entry = store.entries[0]
        assert entry.plain_text == "styled"
        assert entry.content.rich_text == b"{\\rtf1 styled}"
        assert len(store) == 1

    def test_plain_text_before_image(self, monitor, clipboard, store, png_bytes):
        clipboard.copy(plain_text="caption", image=png_bytes)
        monitor.check_clipboard()
        assert len(store) == 1
        assert store.entries[0].content_type == ContentType.TEXT
        assert store.entries[0].content.rich_text is None

    def test_rich_text_without_plain_text_falls_back_to_image(self, monitor, clipboard, store, png_bytes):
        clipboard.copy(rich_text=b"{\\rtf1 }", image=png_bytes)
        monitor.check_clipboard()
        assert store.entries[0].content_type == ContentType.IMAGE


class TestSyncChangeCount:
    def test_sync_change_count(self, monitor, clipboard):
        clipboard.count = 42
        monitor.sync_change_count()
        assert monitor.check_clipboard() is False

    def test_promoted_image_not_recaptured(self, monitor, clipboard, store, png_bytes):
        clipboard.copy(image=png_bytes)
        monitor.check_clipboard()
        clipboard.copy(plain_text="text")
        monitor.check_clipboard()
        image_id = store.unpinned_entries[1].id

        store.promote(image_id)
        assert monitor.check_clipboard() is False
        assert len(store) == 2
        assert store.entries[0].id == image_id
