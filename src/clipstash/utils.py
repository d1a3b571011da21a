import struct

from clipstash.config import DATA_DIR, IMAGE_DIR
from clipstash.models import ClipboardEntry, ImageContent, TextContent

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
TIFF_MAGICS = (b"II*\x00", b"MM\x00*")


def truncate_text(text: str, max_len: int) -> str:
    single_line = " ".join(text.split())
    if len(single_line) <= max_len:
        return single_line
    return single_line[: max_len - 3] + "..."


def ensure_dirs() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    IMAGE_DIR.mkdir(parents=True, exist_ok=True)


def sniff_image_format(data: bytes) -> str | None:
    """Return "png" or "tiff" based on magic bytes, or None if unrecognized."""
    if data.startswith(PNG_MAGIC):
        return "png"
    if data[:4] in TIFF_MAGICS:
        return "tiff"
    return None


def get_image_dimensions(png_bytes: bytes) -> tuple[int, int]:
    if len(png_bytes) < 24 or png_bytes[:8] != PNG_MAGIC:
        return (0, 0)
    width = struct.unpack(">I", png_bytes[16:20])[0]
    height = struct.unpack(">I", png_bytes[20:24])[0]
    return (width, height)


def entry_preview(entry: ClipboardEntry, max_len: int) -> str:
    match entry.content:
        case TextContent(plain_text=text):
            return truncate_text(text, max_len)
        case ImageContent(data=None):
            return "[Image unavailable]"
        case ImageContent(data=data):
            width, height = get_image_dimensions(data)
            return f"[Image: {width}x{height}]" if width > 0 else "[Image]"
    return ""


def partition_pinned(entries: list[ClipboardEntry]) -> list[ClipboardEntry]:
    """Stable reorder: pinned entries first, each group keeps its relative order."""
    return [e for e in entries if e.pinned] + [e for e in entries if not e.pinned]


def dedupe_entries(entries: list[ClipboardEntry]) -> list[ClipboardEntry]:
    """Drop repeated ids, then repeated plain text, keeping the first occurrence."""
    seen_ids: set[str] = set()
    unique_ids = []
    for entry in entries:
        if entry.id in seen_ids:
            continue
        seen_ids.add(entry.id)
        unique_ids.append(entry)

    seen_texts: set[str] = set()
    result = []
    for entry in unique_ids:
        text = entry.plain_text
        if text is not None:
            if text in seen_texts:
                continue
            seen_texts.add(text)
        result.append(entry)
    return result
