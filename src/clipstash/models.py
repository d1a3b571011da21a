from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


class CaptureResult(str, Enum):
    INSERTED = "inserted"
    REJECTED_EMPTY = "rejected_empty"
    REJECTED_DUPLICATE = "rejected_duplicate"


class MutationResult(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    CAP_REACHED = "cap_reached"


@dataclass(frozen=True)
class TextContent:
    plain_text: str
    rich_text: bytes | None = None  # RTF


@dataclass(frozen=True)
class ImageContent:
    """Encoded image bytes plus the sidecar file they live in.

    ``data`` is None when the sidecar could not be read back at load time;
    the entry is kept but has nothing to display.
    """

    data: bytes | None
    file_name: str | None = None
    image_format: str = "png"


EntryContent = TextContent | ImageContent


@dataclass
class ClipboardEntry:
    id: str
    content: EntryContent
    created_at: datetime
    pinned: bool = False

    @property
    def content_type(self) -> ContentType:
        match self.content:
            case TextContent():
                return ContentType.TEXT
            case ImageContent():
                return ContentType.IMAGE
        raise TypeError(f"Unknown entry content: {self.content!r}")

    @property
    def plain_text(self) -> str | None:
        match self.content:
            case TextContent(plain_text=text):
                return text
        return None

    @property
    def image_file_name(self) -> str | None:
        match self.content:
            case ImageContent(file_name=name):
                return name
        return None


@dataclass(frozen=True)
class ClipboardSnapshot:
    """A single best-effort read of the clipboard formats."""

    plain_text: str | None = None
    rich_text: bytes | None = None
    image: bytes | None = None
    image_format: str = "png"

    @property
    def is_empty(self) -> bool:
        return self.plain_text is None and self.rich_text is None and self.image is None
