"""
Export the directory's initial payload (boot data + first page of prompts) to JSON.

The app serves this file when the database is unreachable and the in-memory
boot cache is empty.

Usage:
  python scripts/export_directory_snapshot.py [path]
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.promptlib.config import load_settings
from app.promptlib.models import Base  # noqa: F401  (registers every table)
from app.promptlib.modules.directory.service import get_approved_prompts, get_directory_boot_data
from app.promptlib.modules.directory.state import DirectorySnapshot, write_snapshot
from scripts._db_utils import resolve_database_url, script_session

DEFAULT_PATH = "instance/directory_snapshot.json"


def build_snapshot(s, *, page_size: int | None = None) -> DirectorySnapshot:
    boot = get_directory_boot_data(s)
    # Page 1 as /directory would page it.
    limit = page_size or load_settings().directory_page_size
    page = get_approved_prompts(s, limit=limit, page=1)
    return DirectorySnapshot(boot=boot, prompts=tuple(page.prompts))


def export(path: str, *, database_url: str | None = None, page_size: int | None = None) -> DirectorySnapshot:
    with script_session(resolve_database_url(database_url)) as s:
        snap = build_snapshot(s, page_size=page_size)
    write_snapshot(path, snap)
    print(f"Wrote directory snapshot to {path} ({len(snap.prompts)} prompts).", flush=True)
    return snap


def main() -> None:
    path = sys.argv[1] if len(sys.argv) > 1 else (os.environ.get("DIRECTORY_SNAPSHOT_PATH") or DEFAULT_PATH)
    export(path)


if __name__ == "__main__":
    main()
