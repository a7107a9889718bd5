from __future__ import annotations

import os
from pathlib import Path


def ensure_path(path: str | Path) -> Path:
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


def display_path(path: str, project_root: str | Path | None = None) -> str:
    """Render a path relative to the project root, or with ``~/`` for home."""
    if not path:
        return path
    if project_root is not None:
        root = os.path.abspath(os.path.expanduser(str(project_root))).rstrip("/")
        if root and path.startswith(root + "/"):
            return path[len(root) + 1 :]
    home = str(Path.home()).rstrip("/")
    if home and path.startswith(home + "/"):
        return "~/" + path[len(home) + 1 :]
    return path
