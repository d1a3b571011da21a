import logging
from dataclasses import dataclass
from typing import Callable

import rumps

from clipstash import __version__
from clipstash.config import MENU_DISPLAY_COUNT, POLL_INTERVAL, PREVIEW_LENGTH, THUMBNAIL_SIZE
from clipstash.models import ClipboardEntry, ImageContent, MutationResult
from clipstash.monitor import ClipboardMonitor
from clipstash.pasteboard import MacPasteboard
from clipstash.storage import StorageManager
from clipstash.store import EntryStore
from clipstash.utils import ensure_dirs, entry_preview

logger = logging.getLogger(__name__)

ENTRY_KEY_PREFIX = "clipstash_entry_"


@dataclass
class MenuItemSpec:
    """Specification for a menu item, separating logic from rumps rendering."""

    title: str
    callback: Callable | None = None
    icon: str | None = None
    dimensions: tuple[int, int] | None = None
    template: bool | None = None
    entry_id: str | None = None
    is_submenu: bool = False
    children: list["MenuItemSpec | None"] | None = None


class ClipstashApp(rumps.App):
    def __init__(self):
        super().__init__("Clipstash", title="📋", quit_button=None)
        self._init_app()

    def _init_app(self) -> None:
        """Wire storage, store, pasteboard and poller. Separated for testability."""
        ensure_dirs()
        self._storage = StorageManager()
        self._pasteboard = MacPasteboard()
        self._store = EntryStore(self._storage, self._pasteboard)
        self._monitor = ClipboardMonitor(self._pasteboard, self._store)
        self._entry_ids: dict[str, str] = {}
        self._store.subscribe(self._refresh_menu)
        self._store.load()
        self._monitor.start()

    def _build_menu(self) -> None:
        self.menu.clear()
        self._entry_ids.clear()
        self._render_menu_specs(self._compute_menu_specs())

    def _compute_menu_specs(self) -> list[MenuItemSpec | None]:
        """Compute menu item specifications. Pure logic, no rumps dependency."""
        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(f"Clipstash v{__version__} - Clipboard History"),
            None,
            MenuItemSpec("Search...", callback=self._on_search),
            None,
        ]

        pinned_entries = self._store.pinned_entries
        if pinned_entries:
            pinned_children: list[MenuItemSpec | None] = [self._compute_entry_spec(e) for e in pinned_entries]
            pinned_children.append(None)
            pinned_children.append(MenuItemSpec("Clear Pinned", callback=self._on_clear_pinned))
            specs.append(MenuItemSpec("📌 Pinned", is_submenu=True, children=pinned_children))
            specs.append(None)

        entries = self._store.unpinned_entries[:MENU_DISPLAY_COUNT]
        if not entries and not pinned_entries:
            specs.append(MenuItemSpec("(No clipboard history)"))
        else:
            specs.extend(self._compute_entry_spec(e) for e in entries)

        specs.extend([
            None,
            MenuItemSpec("⌥-click to pin, ⌘-click to delete"),
            MenuItemSpec("Clear History", callback=self._on_clear),
            None,
            MenuItemSpec("Quit Clipstash", callback=self._on_quit),
        ])
        return specs

    def _compute_entry_spec(self, entry: ClipboardEntry) -> MenuItemSpec:
        self._entry_ids[f"{ENTRY_KEY_PREFIX}{entry.id}"] = entry.id
        spec = MenuItemSpec(
            title=entry_preview(entry, PREVIEW_LENGTH),
            callback=self._on_entry_click,
            entry_id=entry.id,
        )

        match entry.content:
            case ImageContent(data=bytes(), file_name=str() as file_name):
                image_path = self._storage.sidecar_path(file_name)
                if image_path.exists():
                    spec.icon = str(image_path)
                    spec.dimensions = THUMBNAIL_SIZE
                    spec.template = False

        return spec

    def _render_menu_specs(self, specs: list[MenuItemSpec | None]) -> None:
        self._add_specs(self.menu, specs)

    def _add_specs(self, menu, specs: list[MenuItemSpec | None]) -> None:
        # rumps keys menu items by title and ignores a repeated key, so entries are keyed by id.
        for spec in specs:
            if spec is None:
                menu.add(rumps.separator)
            else:
                menu[self._menu_key(spec)] = self._render_single_spec(spec)

    @staticmethod
    def _menu_key(spec: MenuItemSpec) -> str:
        if spec.entry_id is not None:
            return f"{ENTRY_KEY_PREFIX}{spec.entry_id}"
        return spec.title

    def _render_single_spec(self, spec: MenuItemSpec) -> rumps.MenuItem:
        if spec.is_submenu and spec.children:
            submenu = rumps.MenuItem(spec.title)
            self._add_specs(submenu, spec.children)
            return submenu

        kwargs = {"callback": spec.callback}
        if spec.icon:
            kwargs["icon"] = spec.icon
        if spec.dimensions:
            kwargs["dimensions"] = spec.dimensions
        if spec.template is not None:
            kwargs["template"] = spec.template

        item = rumps.MenuItem(spec.title, **kwargs)
        if spec.entry_id is not None:
            item._id = self._menu_key(spec)
        return item

    def _refresh_menu(self) -> None:
        self._build_menu()

    @rumps.timer(POLL_INTERVAL)
    def _poll_clipboard(self, _sender) -> None:
        self._monitor.check_clipboard()

    def _on_entry_click(self, sender) -> None:
        entry_id = self._entry_ids.get(getattr(sender, "_id", ""))
        if entry_id is None:
            return

        modifiers = self._modifier_flags()
        if modifiers.get("option"):
            self._on_pin_toggle(entry_id)
        elif modifiers.get("command"):
            self._store.delete(entry_id)
        elif self._store.promote(entry_id) is MutationResult.SUCCESS:
            rumps.notification("Clipstash", "", "Copied to clipboard", sound=False)

    @staticmethod
    def _modifier_flags() -> dict[str, bool]:
        try:
            from AppKit import NSAlternateKeyMask, NSCommandKeyMask, NSEvent

            flags = NSEvent.modifierFlags()
        except Exception:
            logger.debug("Could not read modifier keys", exc_info=True)
            return {}
        return {"option": bool(flags & NSAlternateKeyMask), "command": bool(flags & NSCommandKeyMask)}

    def _on_pin_toggle(self, entry_id: str) -> None:
        entry = self._store.get_entry(entry_id)
        if entry is None:
            return
        result = self._store.toggle_pin(entry_id)
        if result is MutationResult.CAP_REACHED:
            rumps.notification("Clipstash", "", f"Maximum {self._store.max_pinned_size} pinned items", sound=False)
        elif result is MutationResult.SUCCESS:
            rumps.notification("Clipstash", "", "Pinned" if entry.pinned else "Unpinned", sound=False)

    def _on_clear_pinned(self, _sender) -> None:
        self._store.clear_pinned()

    def _on_search(self, _sender) -> None:
        response = rumps.Window(
            message="Search clipboard history:",
            title="Clipstash Search",
            default_text="",
            ok="Search",
            cancel="Cancel",
            dimensions=(300, 24),
        ).run()

        if not response.clicked or not response.text.strip():
            return

        query = response.text.strip()
        results = self._store.search(query, limit=MENU_DISPLAY_COUNT)
        if not results:
            rumps.alert("Clipstash Search", f'No results for "{query}"')
            return

        self._entry_ids.clear()
        self.menu.clear()
        self._render_menu_specs(self._compute_search_results_specs(query, results))

    def _compute_search_results_specs(self, query: str, results: list[ClipboardEntry]) -> list[MenuItemSpec | None]:
        specs: list[MenuItemSpec | None] = [
            MenuItemSpec(f'Search: "{query}" ({len(results)} results)'),
            None,
            MenuItemSpec("Show All", callback=lambda _: self._refresh_menu()),
            None,
        ]
        specs.extend(self._compute_entry_spec(e) for e in results)
        specs.extend([
            None,
            MenuItemSpec("Quit Clipstash", callback=self._on_quit),
        ])
        return specs

    def _on_clear(self, _sender) -> None:
        if rumps.alert("Clipstash", "Clear all clipboard history?", ok="Clear", cancel="Cancel"):
            self._store.clear()

    def _on_quit(self, _sender) -> None:
        self._monitor.stop()
        rumps.quit_application()
