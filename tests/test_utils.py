import struct
from datetime import datetime
from unittest.mock import patch

from clipstash.models import ClipboardEntry, ImageContent, TextContent
from clipstash.utils import (
    dedupe_entries,
    ensure_dirs,
    entry_preview,
    get_image_dimensions,
    partition_pinned,
    sniff_image_format,
    truncate_text,
)


def _entry(entry_id, text=None, pinned=False, image=None):
    content = TextContent(text) if text is not None else ImageContent(data=image, file_name=f"{entry_id}.png")
    return ClipboardEntry(id=entry_id, content=content, created_at=datetime.now(), pinned=pinned)


class TestTruncateText:
    def test_short_text_unchanged(self):
        assert truncate_text("hello", 60) == "hello"

    def test_long_text_truncated(self):
        result = truncate_text("a" * 100, 60)
        assert len(result) == 60
        assert result.endswith("...")

    def test_multiline_collapsed(self):
        assert truncate_text("hello\nworld\nfoo", 60) == "hello world foo"

    def test_exact_length_not_truncated(self):
        text = "a" * 60
        assert truncate_text(text, 60) == text


class TestImageHelpers:
    def test_dimensions_valid_png(self):
        header = b"\x89PNG\r\n\x1a\n"
        png_bytes = header + b"\x00\x00\x00\rIHDR" + struct.pack(">II", 1920, 1080) + b"\x00" * 100
        assert get_image_dimensions(png_bytes) == (1920, 1080)

    def test_dimensions_invalid_data(self):
        assert get_image_dimensions(b"not a png") == (0, 0)
        assert get_image_dimensions(b"") == (0, 0)

    def test_sniff_png(self, png_bytes):
        assert sniff_image_format(png_bytes) == "png"

    def test_sniff_tiff(self):
        assert sniff_image_format(b"II*\x00rest") == "tiff"
        assert sniff_image_format(b"MM\x00*rest") == "tiff"

    def test_sniff_unknown(self):
        assert sniff_image_format(b"GIF89a") is None
        assert sniff_image_format(b"") is None


class TestEntryPreview:
    def test_text(self):
        assert entry_preview(_entry("1", "line one\nline two"), 60) == "line one line two"

    def test_image_with_dimensions(self, make_png):
        assert entry_preview(_entry("1", image=make_png(640, 480)), 60) == "[Image: 640x480]"

    def test_image_unknown_format(self):
        assert entry_preview(_entry("1", image=b"II*\x00"), 60) == "[Image]"

    def test_degraded_image(self):
        assert entry_preview(_entry("1", image=None), 60) == "[Image unavailable]"


class TestPartitionPinned:
    def test_stable_partition(self):
        entries = [_entry("1", "a"), _entry("2", "b", pinned=True), _entry("3", "c"), _entry("4", "d", pinned=True)]
        assert [e.id for e in partition_pinned(entries)] == ["2", "4", "1", "3"]

    def test_empty(self):
        assert partition_pinned([]) == []


class TestDedupeEntries:
    def test_duplicate_ids_dropped_first(self):
        entries = [_entry("1", "a"), _entry("1", "b"), _entry("2", "b")]
        assert [(e.id, e.plain_text) for e in dedupe_entries(entries)] == [("1", "a"), ("2", "b")]

    def test_duplicate_text_keeps_first(self):
        entries = [_entry("1", "same"), _entry("2", "same", pinned=True)]
        assert [e.id for e in dedupe_entries(entries)] == ["1"]

    def test_images_never_deduplicated_by_content(self, png_bytes):
        entries = [_entry("1", image=png_bytes), _entry("2", image=png_bytes)]
        assert len(dedupe_entries(entries)) == 2


class TestEnsureDirs:
    def test_creates_directories(self, tmp_path):
        data_dir = tmp_path / "data"
        image_dir = data_dir / "images"

        with patch("clipstash.utils.DATA_DIR", data_dir), patch("clipstash.utils.IMAGE_DIR", image_dir):
            ensure_dirs()

        assert data_dir.exists()
        assert image_dir.exists()

    def test_idempotent(self, tmp_path):
        data_dir = tmp_path / "data"
        image_dir = data_dir / "images"

        with patch("clipstash.utils.DATA_DIR", data_dir), patch("clipstash.utils.IMAGE_DIR", image_dir):
            ensure_dirs()
            ensure_dirs()

        assert image_dir.exists()
