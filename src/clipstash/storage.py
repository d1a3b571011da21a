import base64
import contextlib
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from clipstash.config import DOCUMENT_VERSION, HISTORY_PATH, IMAGE_DIR, LEGACY_PINNED_PATH
from clipstash.models import ClipboardEntry, ContentType, ImageContent, TextContent
from clipstash.utils import dedupe_entries, partition_pinned, sniff_image_format

logger = logging.getLogger(__name__)

HISTORY_FILENAME = HISTORY_PATH.name
LEGACY_PINNED_FILENAME = LEGACY_PINNED_PATH.name
IMAGE_DIRNAME = IMAGE_DIR.name

# Keys written by 0.1.x, before the field layout was versioned.
_LEGACY_KEYS = {"kind": "type", "plainText": "text", "createdAt": "date", "pinned": "isPinned"}


class StorageManager:
    """JSON document plus image sidecar files on local disk.

    Every public method absorbs I/O and decode failures: they are logged and
    reported through the return value, never raised.
    """

    def __init__(self, data_dir: str | Path | None = None):
        if data_dir is None:
            self.history_path = HISTORY_PATH
            self.legacy_pinned_path = LEGACY_PINNED_PATH
            self.image_dir = IMAGE_DIR
        else:
            root = Path(data_dir)
            self.history_path = root / HISTORY_FILENAME
            self.legacy_pinned_path = root / LEGACY_PINNED_FILENAME
            self.image_dir = root / IMAGE_DIRNAME

    def sidecar_path(self, file_name: str) -> Path:
        return self.image_dir / file_name

    def save(self, entries: list[ClipboardEntry]) -> bool:
        try:
            self.history_path.parent.mkdir(parents=True, exist_ok=True)
            self.image_dir.mkdir(parents=True, exist_ok=True)
            records = [self._entry_to_record(e) for e in partition_pinned(entries)]
            payload = json.dumps({"version": DOCUMENT_VERSION, "entries": records}, ensure_ascii=False, indent=2)
            self._atomic_write(self.history_path, payload.encode("utf-8"))
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to save history to %s", self.history_path)
            return False
        return True

    def load(self) -> list[ClipboardEntry]:
        records = self._read_records(self.history_path)
        if records is None:
            return []
        entries = self._decode_records(records)
        deduped = dedupe_entries(entries)
        if len(deduped) != len(entries):
            logger.warning("Dropped %d duplicate entries while loading", len(entries) - len(deduped))
        return partition_pinned(deduped)

    def migrate_legacy_if_present(self, entries: list[ClipboardEntry]) -> list[ClipboardEntry]:
        """Merge the old standalone pinned document into ``entries``.

        Legacy items are pinned and placed ahead of existing content in their
        original order. The legacy file is removed only once the merged list
        has been saved.
        """
        if not self.legacy_pinned_path.exists():
            return entries

        records = self._read_records(self.legacy_pinned_path)
        if records is None:
            logger.warning("Legacy pinned file %s is unreadable; leaving it in place", self.legacy_pinned_path)
            return entries

        seen_ids = {e.id for e in entries}
        seen_texts = {e.plain_text for e in entries if e.plain_text is not None}
        migrated: list[ClipboardEntry] = []
        for item in self._decode_records(records):
            if item.id in seen_ids or (item.plain_text is not None and item.plain_text in seen_texts):
                continue
            item.pinned = True
            migrated.append(item)
            seen_ids.add(item.id)
            if item.plain_text is not None:
                seen_texts.add(item.plain_text)

        merged = migrated + entries
        if not self.save(merged):
            return entries

        self._delete_file(self.legacy_pinned_path)
        logger.info("Migrated %d legacy pinned entries", len(migrated))
        return merged

    def prune_orphan_sidecars(self, entries: list[ClipboardEntry]) -> int:
        referenced = {e.image_file_name for e in entries if e.image_file_name}
        try:
            files = [p for p in self.image_dir.iterdir() if p.is_file()]
        except FileNotFoundError:
            return 0
        except OSError:
            logger.warning("Could not list image directory %s", self.image_dir, exc_info=True)
            return 0

        removed = 0
        for path in files:
            if path.name in referenced:
                continue
            if self._delete_file(path):
                logger.info("Removed orphaned image: %s", path.name)
                removed += 1
        return removed

    def delete_sidecar(self, entry: ClipboardEntry) -> bool:
        file_name = entry.image_file_name
        if not file_name:
            return True
        return self._delete_file(self.sidecar_path(file_name))

    @staticmethod
    def _delete_file(path: Path) -> bool:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to delete %s", path, exc_info=True)
            return False
        return True

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def _read_records(self, path: Path) -> list | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.exception("Failed to read %s", path)
            return None

        try:
            document = json.loads(raw)
        except json.JSONDecodeError:
            logger.exception("Malformed document %s", path)
            return None

        # Unversioned files are a bare list of records.
        if isinstance(document, list):
            return document
        if isinstance(document, dict) and isinstance(document.get("entries"), list):
            version = document.get("version")
            if version != DOCUMENT_VERSION:
                logger.warning("Document %s has version %r, expected %d", path, version, DOCUMENT_VERSION)
            return document["entries"]

        logger.error("Unrecognized document layout in %s", path)
        return None

    def _decode_records(self, records: list) -> list[ClipboardEntry]:
        entries = []
        for index, record in enumerate(records):
            try:
                entries.append(self._record_to_entry(record))
            except (KeyError, TypeError, ValueError, AttributeError):
                logger.warning("Skipping undecodable record #%d", index, exc_info=True)
        return entries

    def _entry_to_record(self, entry: ClipboardEntry) -> dict:
        record = {
            "id": entry.id,
            "kind": entry.content_type.value,
            "plainText": None,
            "richTextBlob": None,
            "createdAt": entry.created_at.isoformat(),
            "pinned": entry.pinned,
            "imageFileName": None,
        }
        match entry.content:
            case TextContent(plain_text=text, rich_text=rich):
                record["plainText"] = text
                if rich is not None:
                    record["richTextBlob"] = base64.b64encode(rich).decode("ascii")
            case ImageContent(data=data, file_name=file_name, image_format=fmt):
                if file_name is None and data is not None:
                    file_name = f"{entry.id}.{fmt}"
                record["imageFileName"] = file_name
                if file_name is not None:
                    self._write_sidecar(file_name, data)
        return record

    def _write_sidecar(self, file_name: str, data: bytes | None) -> None:
        path = self.sidecar_path(file_name)
        if data is None or path.exists():
            return
        try:
            self._atomic_write(path, data)
        except OSError:
            # The document still references the file; load degrades the entry.
            logger.warning("Failed to write image %s", path, exc_info=True)

    def _record_to_entry(self, record: dict) -> ClipboardEntry:
        def field(name: str, default=None):
            if name in record:
                return record[name]
            return record.get(_LEGACY_KEYS.get(name, name), default)

        entry_id = record["id"]
        if not isinstance(entry_id, str) or not entry_id:
            raise ValueError(f"Invalid entry id: {entry_id!r}")

        kind = ContentType(field("kind"))
        match kind:
            case ContentType.TEXT:
                text = field("plainText")
                if not isinstance(text, str):
                    raise ValueError(f"Text entry {entry_id} has no plain text")
                blob = field("richTextBlob")
                content = TextContent(text, base64.b64decode(blob) if blob else None)
            case ContentType.IMAGE:
                content = self._load_image(entry_id, field("imageFileName"))

        return ClipboardEntry(
            id=entry_id,
            content=content,
            created_at=_parse_timestamp(field("createdAt")),
            pinned=bool(field("pinned", False)),
        )

    def _load_image(self, entry_id: str, file_name: str | None) -> ImageContent:
        if not file_name or Path(file_name).name != file_name:
            logger.warning("Image entry %s has no usable file reference", entry_id)
            return ImageContent(data=None, file_name=None)

        image_format = Path(file_name).suffix.lstrip(".").lower() or "png"
        try:
            data = self.sidecar_path(file_name).read_bytes()
        except OSError:
            logger.warning("Image file %s for entry %s is missing or unreadable", file_name, entry_id)
            return ImageContent(data=None, file_name=file_name, image_format=image_format)

        sniffed = sniff_image_format(data)
        if sniffed is None:
            logger.warning("Image file %s for entry %s is not a recognized image", file_name, entry_id)
            return ImageContent(data=None, file_name=file_name, image_format=image_format)
        return ImageContent(data=data, file_name=file_name, image_format=sniffed)


def _parse_timestamp(value) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed
