import argparse
import logging
import shutil
import subprocess
import sys
from pathlib import Path
from xml.sax.saxutils import escape

from clipstash.config import LOG_PATH, PREVIEW_LENGTH
from clipstash.storage import StorageManager
from clipstash.utils import ensure_dirs, entry_preview

AGENT_LABEL = "com.clipstash.app"
PLIST_NAME = f"{AGENT_LABEL}.plist"
LAUNCHAGENT_DIR = Path.home() / "Library" / "LaunchAgents"
PLIST_PATH = LAUNCHAGENT_DIR / PLIST_NAME


def get_clipstash_command() -> list[str]:
    """Get the command line that starts clipstash, one element per argument."""
    installed = shutil.which("clipstash")
    if installed:
        return [installed]
    return [sys.executable, "-m", "clipstash"]


def create_plist(command: list[str]) -> str:
    """Generate the LaunchAgent plist content."""
    arguments = "\n".join(f"        <string>{escape(part)}</string>" for part in command)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{AGENT_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
{arguments}
        <string>run</string>
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <true/>
    <key>StandardOutPath</key>
    <string>{escape(str(LOG_PATH))}</string>
    <key>StandardErrorPath</key>
    <string>{escape(str(LOG_PATH))}</string>
</dict>
</plist>
"""


def install_launchagent() -> int:
    """Install and start the LaunchAgent."""
    ensure_dirs()

    command = get_clipstash_command()
    print(f"Installing LaunchAgent for: {' '.join(command)}")
    LAUNCHAGENT_DIR.mkdir(parents=True, exist_ok=True)

    if PLIST_PATH.exists():
        subprocess.run(["launchctl", "unload", str(PLIST_PATH)], capture_output=True)

    PLIST_PATH.write_text(create_plist(command))
    print(f"Created: {PLIST_PATH}")

    result = subprocess.run(["launchctl", "load", str(PLIST_PATH)], capture_output=True, text=True)
    if result.returncode != 0:
        print(f"Failed to load LaunchAgent: {result.stderr}")
        return 1

    print("Clipstash is now running in the background.")
    return 0


def uninstall_launchagent() -> int:
    """Stop and remove the LaunchAgent."""
    if not PLIST_PATH.exists():
        print("LaunchAgent not installed.")
        return 0

    subprocess.run(["launchctl", "unload", str(PLIST_PATH)], capture_output=True)
    PLIST_PATH.unlink()
    print("LaunchAgent uninstalled.")
    return 0


def is_agent_running() -> bool:
    try:
        result = subprocess.run(["launchctl", "list", AGENT_LABEL], capture_output=True, text=True)
    except FileNotFoundError:
        return False
    return result.returncode == 0


def check_status() -> int:
    """Check if Clipstash is running."""
    if is_agent_running():
        print("Clipstash is running.")
        return 0

    print("Clipstash is not running.")
    if PLIST_PATH.exists():
        print(f"LaunchAgent installed but not loaded: {PLIST_PATH}")
    else:
        print("LaunchAgent not installed. Run: clipstash install")
    return 1


def list_history(storage: StorageManager | None = None) -> int:
    """Print the stored history, pinned entries first."""
    storage = storage or StorageManager()
    entries = storage.load()
    if not entries:
        print("(No clipboard history)")
        return 0

    for entry in entries:
        marker = "*" if entry.pinned else " "
        print(f"{marker} {entry.content_type.value:<5} {entry_preview(entry, PREVIEW_LENGTH)}")
    return 0


def prune_images(storage: StorageManager | None = None) -> int:
    """Delete image files no stored entry refers to."""
    if is_agent_running():
        print("Clipstash is running and owns the data directory. Run: clipstash uninstall, then prune.")
        return 1

    storage = storage or StorageManager()
    entries = storage.migrate_legacy_if_present(storage.load())
    removed = storage.prune_orphan_sidecars(entries)
    print(f"Removed {removed} orphaned image file(s).")
    return 0


def run_app() -> None:
    """Run the Clipstash menu bar application."""
    ensure_dirs()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(LOG_PATH),
            logging.StreamHandler(sys.stderr),
        ],
    )

    from clipstash.app import ClipstashApp

    ClipstashApp().run()


def main():
    parser = argparse.ArgumentParser(
        description="Clipstash - Clipboard history with pinning for macOS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run         Run Clipstash in foreground (default)
  install     Install as LaunchAgent (runs on login)
  uninstall   Remove LaunchAgent
  status      Check if Clipstash is running
  list        Print stored clipboard history
  prune       Delete orphaned image files
""",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "install", "uninstall", "status", "list", "prune"],
        help="Command to run",
    )

    args = parser.parse_args()

    commands = {
        "install": install_launchagent,
        "uninstall": uninstall_launchagent,
        "status": check_status,
        "list": list_history,
        "prune": prune_images,
    }
    if args.command in commands:
        sys.exit(commands[args.command]())
    run_app()


if __name__ == "__main__":
    main()
