"""Clipboard Source: the system pasteboard seen through a small protocol.

The core only needs a change counter, a snapshot read and a write-back.
``MacPasteboard`` provides them over ``NSPasteboard``; pyobjc is imported
lazily so the rest of the package stays importable off macOS.
"""

import logging
from typing import Protocol

from clipstash.config import MAX_IMAGE_SIZE, MAX_TEXT_SIZE
from clipstash.models import ClipboardEntry, ClipboardSnapshot, ImageContent, TextContent

logger = logging.getLogger(__name__)

NS_BITMAP_PNG_FILE_TYPE = 4


class ClipboardSource(Protocol):
    def change_count(self) -> int: ...

    def read_snapshot(self) -> ClipboardSnapshot: ...

    def write(self, entry: ClipboardEntry) -> None: ...


class MacPasteboard:
    def __init__(self, pasteboard=None):
        if pasteboard is None:
            from AppKit import NSPasteboard

            pasteboard = NSPasteboard.generalPasteboard()
        self._pasteboard = pasteboard

    def change_count(self) -> int:
        return int(self._pasteboard.changeCount())

    def read_snapshot(self) -> ClipboardSnapshot:
        from AppKit import NSPasteboardTypePNG, NSPasteboardTypeRTF, NSPasteboardTypeString, NSPasteboardTypeTIFF

        types = self._pasteboard.types()
        if types is None:
            return ClipboardSnapshot()

        rich_text = None
        if NSPasteboardTypeRTF in types:
            rich_text = self._read_data(NSPasteboardTypeRTF, MAX_TEXT_SIZE)

        plain_text = None
        if NSPasteboardTypeString in types:
            text = self._pasteboard.stringForType_(NSPasteboardTypeString)
            if text is not None and len(text.encode("utf-8")) <= MAX_TEXT_SIZE:
                plain_text = str(text)
        if plain_text is None and rich_text is not None:
            plain_text = self._plain_text_from_rtf(rich_text)

        image = None
        image_format = "png"
        if NSPasteboardTypePNG in types:
            image = self._read_data(NSPasteboardTypePNG, MAX_IMAGE_SIZE)
        if image is None and NSPasteboardTypeTIFF in types:
            tiff = self._read_data(NSPasteboardTypeTIFF, MAX_IMAGE_SIZE)
            if tiff is not None:
                image = self._tiff_to_png(tiff)
                if image is None:
                    image, image_format = tiff, "tiff"

        return ClipboardSnapshot(
            plain_text=plain_text,
            rich_text=rich_text,
            image=image,
            image_format=image_format,
        )

    def write(self, entry: ClipboardEntry) -> None:
        from AppKit import NSPasteboardTypePNG, NSPasteboardTypeRTF, NSPasteboardTypeString, NSPasteboardTypeTIFF

        match entry.content:
            case TextContent(plain_text=text, rich_text=rich_text):
                self._pasteboard.clearContents()
                if rich_text:
                    self._pasteboard.setData_forType_(_ns_data(rich_text), NSPasteboardTypeRTF)
                self._pasteboard.setString_forType_(text, NSPasteboardTypeString)
            case ImageContent(data=None):
                logger.warning("Entry %s has no image data to copy", entry.id)
            case ImageContent(data=data, image_format=image_format):
                ns_type = NSPasteboardTypePNG if image_format == "png" else NSPasteboardTypeTIFF
                self._pasteboard.clearContents()
                self._pasteboard.setData_forType_(_ns_data(data), ns_type)

    def _read_data(self, ns_type, limit: int) -> bytes | None:
        data = self._pasteboard.dataForType_(ns_type)
        if data is None:
            return None
        raw = bytes(data)
        if len(raw) > limit:
            logger.warning("Clipboard payload too large (%d bytes), skipping", len(raw))
            return None
        return raw

    @staticmethod
    def _plain_text_from_rtf(rtf: bytes) -> str | None:
        from AppKit import NSAttributedString

        attributed, _attrs = NSAttributedString.alloc().initWithRTF_documentAttributes_(_ns_data(rtf), None)
        if attributed is None:
            return None
        return str(attributed.string())

    @staticmethod
    def _tiff_to_png(tiff: bytes) -> bytes | None:
        from AppKit import NSBitmapImageRep

        bitmap_rep = NSBitmapImageRep.imageRepWithData_(_ns_data(tiff))
        if not bitmap_rep:
            return None
        png_data = bitmap_rep.representationUsingType_properties_(NS_BITMAP_PNG_FILE_TYPE, None)
        if not png_data:
            return None
        return bytes(png_data)


def _ns_data(raw: bytes):
    from Foundation import NSData

    return NSData.dataWithBytes_length_(raw, len(raw))
