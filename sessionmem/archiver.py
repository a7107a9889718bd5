from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .fs_paths import ensure_path
from .session_state import generate_current_md

if TYPE_CHECKING:
    from .config import SessionMemConfig
    from .store import MemoryStore

logger = logging.getLogger(__name__)

MIN_ARCHIVE_CHARS = 10
SLUG_CHARS = 50
DEFAULT_SLUG = "session"

ISO_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")
LONG_DATE_RE = re.compile(r"# Session State - (\w+ \d+, \d+)")
TASK_LINE_RE = re.compile(r"\*\*Task\*\*:\s*(.+)")
STATUS_LINE_RE = re.compile(r"\*\*Status\*\*:\s*\w+\s*-\s*(.+)")
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


@dataclass
class ArchiveResult:
    archived: bool
    archive_path: Path | None
    content: str


def slugify(text: str) -> str:
    slug = NON_ALNUM_RE.sub("-", text.lower()).strip("-")
    return slug[:SLUG_CHARS]


def archive_name(content: str, *, today: dt.date | None = None) -> tuple[str, str]:
    """Return the (date, slug) an existing state document is archived under."""
    date = (today or dt.datetime.now(dt.UTC).date()).isoformat()
    long_match = LONG_DATE_RE.search(content)
    if long_match:
        try:
            date = dt.datetime.strptime(long_match.group(1), "%B %d, %Y").date().isoformat()
        except ValueError:
            pass
    iso_match = ISO_DATE_RE.search(content)
    if iso_match:
        date = iso_match.group(1)

    slug = DEFAULT_SLUG
    task_match = TASK_LINE_RE.search(content)
    if task_match:
        slug = slugify(task_match.group(1)) or DEFAULT_SLUG
    if slug == DEFAULT_SLUG:
        status_match = STATUS_LINE_RE.search(content)
        if status_match:
            slug = slugify(status_match.group(1)) or DEFAULT_SLUG
    return date, slug


def _free_archive_path(archive_dir: Path, date: str, slug: str) -> Path:
    candidate = archive_dir / f"{date}-{slug}.md"
    suffix = 2
    while candidate.exists():
        candidate = archive_dir / f"{date}-{slug}-{suffix}.md"
        suffix += 1
    return candidate


def archive_current(current_path: Path, archive_dir: Path) -> Path | None:
    """Move a non-trivial state document into the archive. Returns its new path."""
    if not current_path.exists():
        return None
    content = current_path.read_text(encoding="utf-8")
    if len(content.strip()) <= MIN_ARCHIVE_CHARS:
        return None
    date, slug = archive_name(content)
    archive_dir.mkdir(parents=True, exist_ok=True)
    target = _free_archive_path(archive_dir, date, slug)
    try:
        current_path.rename(target)
    except OSError:
        target.write_text(content, encoding="utf-8")
        current_path.unlink(missing_ok=True)
    return target


def archive_and_regenerate(
    store: MemoryStore, session_id: str, config: SessionMemConfig
) -> ArchiveResult:
    current_path = config.resolve(config.session_state_path)
    archive_dir = config.resolve(config.archive_dir)

    archive_path: Path | None = None
    try:
        archive_path = archive_current(current_path, archive_dir)
    except (OSError, ValueError) as exc:
        logger.warning("failed to archive %s", current_path, exc_info=exc)

    content = generate_current_md(store, session_id)
    ensure_path(current_path).write_text(content, encoding="utf-8")
    return ArchiveResult(archived=archive_path is not None, archive_path=archive_path, content=content)
